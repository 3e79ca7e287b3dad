"""
Tests for the document flow session and header view-model.
Tests services/document_flow.py
"""
import logging
from unittest.mock import AsyncMock

import httpx
import pytest

from docflow.services.custom_route import CustomAction
from docflow.services.document_flow import (
    CODE_NOT_AVAILABLE, DocumentFlowSession, LatestRequestGuard, SideTab, build_header_actions,
    build_version_actions, format_when,
)
from docflow.services.documents_client import DocumentsApiClient
from docflow.services.errors import DocumentsApiError, WorkflowError
from docflow.services.flow_catalog import QA_EDIT, ShapeKind
from docflow.services.models import TransitionAction
from docflow.services.office_directory import OfficeClusterMap
from docflow.tests.helpers import (
    HR_ID, IT_ID, NURSING_ID, QA_ID, VA_ID, make_client, make_document, make_task, make_version, route,
)


async def open_session(client, acting_office_id=QA_ID, version_id=100):
    return await DocumentFlowSession(client, version_id, acting_office_id).load()


def api_with_route_steps(route_steps):
    """Real client over a MockTransport serving one Draft version and the given route rows."""
    def handler(request):
        path = request.url.path
        if path.endswith("/route-steps"):
            return httpx.Response(200, json=route_steps)
        if path.endswith("/tasks") or path.endswith("/messages"):
            return httpx.Response(200, json=[])
        if path.endswith("/offices"):
            return httpx.Response(200, json=[
                {"id": QA_ID, "name": "Quality Assurance", "code": "QA"},
                {"id": NURSING_ID, "name": "College of Nursing", "code": "CN"},
            ])
        if path.endswith("/documents/50"):
            return httpx.Response(200, json={
                "id": 50, "title": "Quality Manual", "code": "QM-001",
                "owner_office_id": NURSING_ID, "owner_office": {"code": "CN"},
            })
        if path.endswith("/document-versions/100"):
            return httpx.Response(200, json={
                "id": 100, "status": "Draft", "version_number": 0, "document_id": 50,
            })
        return httpx.Response(404, json={"message": "Not found."})

    return DocumentsApiClient(base_url="http://docs.test/api", token="", transport=httpx.MockTransport(handler))


class TestLoad:
    """Test loading and shape selection."""

    @pytest.mark.asyncio
    async def test_originator_led_by_default(self):
        """A plain Draft with no route is originator-led."""
        session = await open_session(make_client())
        assert session.is_loaded
        assert session.flow.shape.kind == ShapeKind.ORIGINATOR_LED
        assert session.position().step.id == "draft"

    @pytest.mark.asyncio
    async def test_office_led_from_workflow_type(self):
        """workflow_type "office" selects the office-led pipeline."""
        client = make_client(version=make_version("Office Draft", workflow_type="office"))
        session = await open_session(client)
        assert session.flow.shape.kind == ShapeKind.OFFICE_LED
        assert session.position().step.id == "office_draft"

    @pytest.mark.asyncio
    async def test_custom_route_wins(self):
        """Configured route steps take precedence over workflow_type."""
        client = make_client(
            version=make_version("Draft", workflow_type="office"),
            route_steps=route(NURSING_ID, IT_ID),
        )
        session = await open_session(client)
        assert session.flow.is_custom
        assert len(session.flow.steps) == 10

    @pytest.mark.asyncio
    async def test_shape_is_decided_once(self):
        """A later status change does not re-select the pipeline."""
        client = make_client(version=make_version("Draft"))
        session = await open_session(client)
        client.get_version.return_value = make_version("For Office Head Review")
        await session.refresh()
        assert session.version.status == "For Office Head Review"
        assert session.flow.shape.kind == ShapeKind.ORIGINATOR_LED

    @pytest.mark.asyncio
    async def test_missing_route_steps_degrade_to_static(self, caplog):
        """A failed route-step fetch falls back to the static pipeline."""
        client = make_client()
        client.list_route_steps.side_effect = DocumentsApiError("Server error", status_code=500)
        with caplog.at_level(logging.WARNING):
            session = await open_session(client)
        assert session.flow.shape.kind == ShapeKind.ORIGINATOR_LED
        assert "assuming no custom route" in caplog.text

    @pytest.mark.asyncio
    async def test_malformed_route_steps_degrade_to_static(self, caplog):
        """A route row with a non-numeric step_order is treated like a failed fetch."""
        client = api_with_route_steps([{"office_id": NURSING_ID, "step_order": "first"}])
        with caplog.at_level(logging.WARNING):
            session = await open_session(client)

        assert session.is_loaded
        assert session.route_steps == []
        assert session.flow.shape.kind == ShapeKind.ORIGINATOR_LED
        assert session.header_state().code == "QM-001"
        assert "assuming no custom route" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_offices_degrade(self):
        """Without the office directory the session still loads and authorizes."""
        client = make_client(tasks=[make_task(step="draft", office_id=QA_ID)])
        client.list_offices.side_effect = DocumentsApiError("Server error", status_code=500)
        session = await open_session(client)
        assert session.offices == []
        assert session.header_state().can_act is True

    @pytest.mark.asyncio
    async def test_version_failure_propagates(self):
        """Failing to fetch the version itself is an error for the caller."""
        client = make_client()
        client.get_version.side_effect = DocumentsApiError("Version not found.", status_code=404)
        with pytest.raises(DocumentsApiError):
            await open_session(client)

    @pytest.mark.asyncio
    async def test_unloaded_session_refuses_derivation(self):
        """Derived values need a loaded session."""
        session = DocumentFlowSession(make_client(), 100, QA_ID)
        with pytest.raises(WorkflowError):
            session.header_state()

    @pytest.mark.asyncio
    async def test_load_fetches_tasks_and_comments(self):
        """Load also fetches tasks and the default comments panel."""
        client = make_client(messages=[{"id": 1, "body": "hi"}])
        session = await open_session(client)
        client.list_tasks.assert_awaited_once_with(100)
        client.list_messages.assert_awaited_once_with(100)
        client.list_activity_logs.assert_not_awaited()
        assert session.messages == [{"id": 1, "body": "hi"}]


class TestRefresh:
    """Test the polling refresh."""

    @pytest.mark.asyncio
    async def test_refresh_refetches_visible_side_tab(self):
        """Polling also reloads whichever side panel is shown."""
        client = make_client(logs=[{"id": 1}])
        session = await open_session(client)
        await session.select_side_tab(SideTab.LOGS)
        client.list_messages.reset_mock()
        client.list_activity_logs.reset_mock()
        client.list_activity_logs.return_value = [{"id": 1}, {"id": 2}]

        await session.refresh()

        client.list_activity_logs.assert_awaited_once_with(100)
        client.list_messages.assert_not_awaited()
        assert session.activity_logs == [{"id": 1}, {"id": 2}]

    @pytest.mark.asyncio
    async def test_refresh_refetches_comments_by_default(self):
        """With the comments tab shown, polling reloads comments."""
        client = make_client()
        session = await open_session(client)
        client.list_messages.return_value = [{"id": 5, "body": "new"}]

        await session.refresh()
        assert session.messages == [{"id": 5, "body": "new"}]


class TestHeaderState:
    """Test the header view-model."""

    @pytest.mark.asyncio
    async def test_assigned_office_can_act(self):
        """The office holding the open task gets enabled actions."""
        client = make_client(tasks=[make_task(step="draft", office_id=QA_ID)])
        header = (await open_session(client, QA_ID)).header_state()

        assert header.title == "Quality Manual"
        assert header.code == "QM-001"
        assert header.status == "Draft"
        assert header.can_act is True
        assert [(a.to_status, a.disabled) for a in header.header_actions] == [("For Office Review", False)]

    @pytest.mark.asyncio
    async def test_missing_code_placeholder(self):
        """A document without a code shows the placeholder."""
        client = make_client(document=make_document(code=None))
        header = (await open_session(client)).header_state()
        assert header.code == CODE_NOT_AVAILABLE == "CODE-NOT-AVAILABLE"

    @pytest.mark.asyncio
    async def test_other_office_sees_disabled_actions(self):
        """Other offices see the same actions, all disabled."""
        client = make_client(tasks=[make_task(step="draft", office_id=QA_ID)])
        header = (await open_session(client, HR_ID)).header_state()
        assert header.can_act is False
        assert all(a.disabled for a in header.header_actions)

    @pytest.mark.asyncio
    async def test_actions_disabled_while_changing(self):
        """Actions are disabled while a transition is in flight."""
        client = make_client(tasks=[make_task(step="draft", office_id=QA_ID)])
        session = await open_session(client, QA_ID)
        session.is_changing = True
        assert session.header_state().header_actions[0].disabled is True

    @pytest.mark.asyncio
    async def test_return_action_sorted_last(self):
        """Return-to-edit comes after every forward action."""
        client = make_client(
            version=make_version("For Office Review"),
            tasks=[make_task(step="office_review", office_id=NURSING_ID)],
        )
        header = (await open_session(client, NURSING_ID)).header_state()
        assert [a.to_status for a in header.header_actions] == ["For VP Review", QA_EDIT]
        assert header.header_actions[-1].is_return is True

    def test_priority_order_independent_of_input_order(self):
        """Header order follows the priority table, not the input list."""
        actions = [
            TransitionAction(QA_EDIT, "Return to QA (edit)"),
            TransitionAction("For QA Registration", "Forward to QA for registration"),
            TransitionAction("For VP Approval", "Forward to VP for approval"),
        ]
        ordered = build_header_actions(actions, enabled=True)
        assert [a.to_status for a in ordered] == ["For VP Approval", "For QA Registration", QA_EDIT]

    def test_custom_return_sorted_last(self):
        """Custom route return actions also sort last."""
        actions = [
            TransitionAction(CustomAction.RETURN_TO_EDIT, "Return to edit"),
            TransitionAction(CustomAction.FORWARD_REVIEW, "Forward to next reviewer"),
        ]
        ordered = build_header_actions(actions, enabled=True)
        assert [a.to_status for a in ordered] == [CustomAction.FORWARD_REVIEW, CustomAction.RETURN_TO_EDIT]


class TestHeaderPush:
    """Test that header changes are pushed to the listener."""

    async def open_with_listener(self, client, acting_office_id=QA_ID):
        pushed = []
        session = DocumentFlowSession(client, 100, acting_office_id, on_header_state_change=pushed.append)
        await session.load()
        return session, pushed

    @pytest.mark.asyncio
    async def test_load_pushes_once(self):
        """Loading pushes the initial header exactly once."""
        client = make_client(tasks=[make_task(step="draft", office_id=QA_ID)])
        session, pushed = await self.open_with_listener(client)
        assert len(pushed) == 1
        assert pushed[0].to_dict() == session.header_state().to_dict()

    @pytest.mark.asyncio
    async def test_unchanged_refresh_pushes_nothing(self):
        """A poll that changes nothing does not push."""
        client = make_client(tasks=[make_task(step="draft", office_id=QA_ID)])
        session, pushed = await self.open_with_listener(client)
        await session.refresh()
        assert len(pushed) == 1

    @pytest.mark.asyncio
    async def test_server_status_change_pushes(self):
        """A new server status found by polling is pushed."""
        client = make_client(tasks=[make_task(step="draft", office_id=QA_ID)])
        session, pushed = await self.open_with_listener(client)
        client.get_version.return_value = make_version("For Office Review")
        client.list_tasks.return_value = [make_task(2, step="office_review", office_id=NURSING_ID)]

        await session.refresh()

        assert [h.status for h in pushed] == ["Draft", "For Office Review", "For Office Review"]
        assert pushed[-1].can_act is False
        assert pushed[-1].to_dict() == session.header_state().to_dict()

    @pytest.mark.asyncio
    async def test_is_changing_toggle_pushes(self):
        """Entering and leaving a transition pushes disabled, then enabled, actions."""
        client = make_client(tasks=[make_task(step="draft", office_id=QA_ID)])
        session, pushed = await self.open_with_listener(client)

        session.is_changing = True
        session.is_changing = True
        session.is_changing = False

        assert [h.header_actions[0].disabled for h in pushed] == [False, True, False]

    @pytest.mark.asyncio
    async def test_listener_failure_is_logged(self, caplog):
        """A broken listener does not break the session."""
        def broken(header):
            raise RuntimeError("header widget gone")

        client = make_client(tasks=[make_task(step="draft", office_id=QA_ID)])
        session = DocumentFlowSession(client, 100, QA_ID, on_header_state_change=broken)
        with caplog.at_level(logging.WARNING):
            await session.load()
        assert session.is_loaded
        assert "header widget gone" in caplog.text


class TestVersionActions:
    """Test actions on the version itself."""

    def test_first_draft_can_be_deleted(self):
        """A version-0 Draft can be deleted."""
        assert build_version_actions(make_version("Draft", version_number=0)) == [
            {"id": "delete_draft", "label": "Delete draft"}
        ]

    def test_revision_draft_can_be_cancelled(self):
        """A revision Draft can be cancelled."""
        ids = [a["id"] for a in build_version_actions(make_version("Draft", version_number=2))]
        assert ids == ["cancel_revision"]

    def test_office_draft_has_no_version_actions(self):
        """Delete and cancel apply to Draft only, not Office Draft."""
        assert build_version_actions(make_version("Office Draft", version_number=0)) == []
        assert build_version_actions(make_version("Office Draft", version_number=2)) == []

    def test_distributed_file_can_be_downloaded(self):
        """A distributed version with a file can be downloaded."""
        version = make_version("Distributed", version_number=1, file_path="docs/qm.pdf")
        assert [a["id"] for a in build_version_actions(version)] == ["download"]

    def test_nothing_mid_workflow(self):
        """No version actions mid-workflow or without a file."""
        assert build_version_actions(make_version("For VP Review", version_number=1)) == []
        assert build_version_actions(make_version("Distributed", version_number=1)) == []


class TestAwaitingOffice:
    """Test the "awaiting office" indicator."""

    @pytest.mark.asyncio
    async def test_open_task_office(self):
        """The open task's office is the awaiting office."""
        client = make_client(
            version=make_version("For VP Review"),
            tasks=[make_task(step="vp_review", office_id=VA_ID)],
        )
        session = await open_session(client)
        assert session.awaiting_office_id() == VA_ID

    @pytest.mark.asyncio
    async def test_expected_office_without_task(self):
        """Without a task the pipeline's expected office is shown."""
        client = make_client(version=make_version("For VP Review"), document=make_document(NURSING_ID, "CN"))
        session = await open_session(client)
        assert session.awaiting_office_id() == VA_ID

    @pytest.mark.asyncio
    async def test_owner_code_from_directory(self):
        """The owner code is looked up in the directory when the document lacks it."""
        client = make_client(
            version=make_version("For VP Review", owner_office_id=IT_ID),
            document=make_document(None, None),
        )
        session = await open_session(client)
        assert session.owner_office_code == "IT"

    @pytest.mark.asyncio
    async def test_unclassified_owner_in_strict_mode(self, caplog):
        """In strict mode an unclassified owner code blanks the indicator but not the view."""
        client = make_client(version=make_version("For VP Review"), document=make_document(HR_ID, "ZZ"))
        session = DocumentFlowSession(client, 100, QA_ID, cluster_map=OfficeClusterMap(strict=True))
        await session.load()

        with caplog.at_level(logging.WARNING):
            view = session.view()

        assert view["awaiting_office"] == {"id": None, "label": None}
        assert view["header"]["status"] == "For VP Review"
        assert "ZZ" in caplog.text

    @pytest.mark.asyncio
    async def test_view_contains_rail_and_label(self):
        """The view carries the step rail, phases, label and formatted times."""
        client = make_client(
            version=make_version("For VP Review"),
            tasks=[make_task(step="vp_review", office_id=VA_ID)],
            messages=[{"id": 1, "created_at": "2026-01-15T09:30:00Z"}],
        )
        view = (await open_session(client, VA_ID)).view()
        assert view["shape"] == "originator_led"
        assert view["position"]["step"]["id"] == "vp_review"
        assert view["awaiting_office"] == {"id": VA_ID, "label": "VP for Academic Affairs (VA)"}
        assert [p["state"] for p in view["phases"]][:2] == ["completed", "current"]
        assert view["header"]["can_act"] is True
        assert view["messages"][0]["when"] == "Jan 15, 2026 09:30 AM"


class TestLatestWins:
    """Test that stale responses are discarded."""

    def test_newer_token_supersedes(self):
        """Only the newest token for a resource is current."""
        guard = LatestRequestGuard()
        first = guard.issue("tasks", 1)
        second = guard.issue("tasks", 1)
        assert guard.is_current(first, 1) is False
        assert guard.is_current(second, 1) is True

    def test_context_change_invalidates(self):
        """A token issued for another tab is stale."""
        guard = LatestRequestGuard()
        token = guard.issue("side_tab", (1, "comments"))
        assert guard.is_current(token, (1, "logs")) is False

    def test_resources_are_independent(self):
        """Tokens for different resources do not supersede each other."""
        guard = LatestRequestGuard()
        tasks = guard.issue("tasks", 1)
        guard.issue("side_tab", 1)
        assert guard.is_current(tasks, 1) is True

    @pytest.mark.asyncio
    async def test_tab_switch_discards_comments_response(self):
        """Comments arriving after a switch to logs are dropped."""
        client = make_client()
        session = await open_session(client)

        async def comments_arrive_late(version_id):
            session.side_tab = SideTab.LOGS
            return [{"id": 9}]

        client.list_messages = AsyncMock(side_effect=comments_arrive_late)
        assert await session.refresh_side_tab() is False
        assert session.messages == []

    @pytest.mark.asyncio
    async def test_version_switch_discards_tasks(self):
        """Tasks arriving after a version switch are dropped."""
        client = make_client()
        session = await open_session(client)

        async def tasks_arrive_late(version_id):
            session.version_id = 200
            return [make_task(step="draft", office_id=QA_ID)]

        client.list_tasks = AsyncMock(side_effect=tasks_arrive_late)
        assert await session.refresh_tasks() is False
        assert session.tasks == []

    @pytest.mark.asyncio
    async def test_select_logs_tab(self):
        """Selecting the logs tab fetches the activity log."""
        client = make_client(logs=[{"id": 1, "action": "sent"}])
        session = await open_session(client)
        assert await session.select_side_tab(SideTab.LOGS) is True
        assert session.activity_logs == [{"id": 1, "action": "sent"}]
        client.list_activity_logs.assert_awaited_once_with(100)


class TestFormatWhen:

    def test_iso_timestamp(self):
        """ISO timestamps are shown as "Mon DD, YYYY HH:MM AM"."""
        assert format_when("2026-01-15T14:05:00+00:00") == "Jan 15, 2026 02:05 PM"

    def test_unparseable_is_shown_as_is(self):
        """Unparseable values are passed through."""
        assert format_when("yesterday-ish") == "yesterday-ish"

    def test_empty(self):
        """Missing timestamps render empty."""
        assert format_when(None) == ""
