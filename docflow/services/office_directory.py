"""
DocFlow - Office Directory Resolver

Maps office codes to office ids and owning offices to their supervising
cluster (VP tier). Pure lookups over reference data; nothing here talks to the
network.

Clusters:
- PO:  President's office
- VAd: VP for Administration
- VF:  VP for Finance
- VR:  VP for Research
- VA:  VP for Academic Affairs (also the catch-all cluster)
"""

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Any

from . import workflow_config
from .errors import UnknownOfficeCodeError
from .models import Office

logger = logging.getLogger(__name__)


# =============================================================================
# CLUSTER TABLE
# =============================================================================

DEFAULT_CLUSTER_CODE = "VA"

DEFAULT_OFFICE_CLUSTERS: Dict[str, List[str]] = {
    "PO": ["PO", "HR", "SA", "CH", "AA"],
    "VAd": ["VAd", "PC", "MD", "SO", "SP", "SC", "SH", "BG", "M", "WP", "IT"],
    "VF": ["VF", "AO", "BO", "BM", "CO", "PR", "UE"],
    "VR": ["VR", "RC", "CX", "QA", "IP"],
    "VA": [
        "VA", "CN", "CB", "CT", "HS", "ES", "PS", "GS", "AS",
        "TM", "CS", "JE", "CE", "AR", "GC", "UL", "NS",
    ],
}


class OfficeClusterMap:
    """
    Office code -> cluster code table.

    In non-strict mode an unlisted code falls into the default cluster and a
    warning is logged. In strict mode it raises UnknownOfficeCodeError.
    """

    def __init__(
        self,
        clusters: Dict[str, Iterable[str]] = None,
        default_cluster: str = DEFAULT_CLUSTER_CODE,
        strict: bool = False
    ):
        clusters = DEFAULT_OFFICE_CLUSTERS if clusters is None else clusters
        self._by_office: Dict[str, str] = {}
        for cluster_code, office_codes in clusters.items():
            for office_code in office_codes:
                previous = self._by_office.get(office_code)
                if previous and previous != cluster_code:
                    raise ValueError(
                        f"Office code '{office_code}' listed under both {previous} and {cluster_code}"
                    )
                self._by_office[office_code] = cluster_code
        self.cluster_codes = list(clusters.keys())
        self.default_cluster = default_cluster
        self.strict = strict

    @classmethod
    def from_file(cls, path: str, strict: bool = False) -> "OfficeClusterMap":
        """Load a {"<cluster>": ["<office code>", ...]} JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Office cluster file {path} must contain a JSON object")
        logger.info("Loaded office cluster map from %s (%d clusters)", path, len(data))
        return cls(data, strict=strict)

    def cluster_for(self, office_code: Optional[str]) -> Optional[str]:
        if not office_code:
            return None
        cluster = self._by_office.get(office_code)
        if cluster is not None:
            return cluster
        if self.strict:
            raise UnknownOfficeCodeError(office_code)
        logger.warning(
            "Office code '%s' is not assigned to a cluster; defaulting to %s",
            office_code, self.default_cluster
        )
        return self.default_cluster

    def unclassified_codes(self, offices: Iterable[Office]) -> List[str]:
        """Codes from the office directory that no cluster lists."""
        return sorted({o.code for o in offices if o.code and o.code not in self._by_office})

    def validate(self, offices: Iterable[Office]) -> List[str]:
        """
        Check the table against the office directory.
        Returns the unclassified codes; raises in strict mode if there are any.
        """
        missing = self.unclassified_codes(offices)
        if missing:
            if self.strict:
                raise UnknownOfficeCodeError(missing[0])
            logger.warning(
                "Office cluster map is incomplete, %d codes fall back to %s: %s",
                len(missing), self.default_cluster, ", ".join(missing)
            )
        return missing


_cluster_map: Optional[OfficeClusterMap] = None


def get_cluster_map() -> OfficeClusterMap:
    """Get the configured cluster map (loaded once)."""
    global _cluster_map
    if _cluster_map is None:
        if workflow_config.OFFICE_CLUSTER_MAP_FILE and Path(workflow_config.OFFICE_CLUSTER_MAP_FILE).exists():
            _cluster_map = OfficeClusterMap.from_file(
                workflow_config.OFFICE_CLUSTER_MAP_FILE,
                strict=workflow_config.OFFICE_CLUSTER_STRICT
            )
        else:
            _cluster_map = OfficeClusterMap(strict=workflow_config.OFFICE_CLUSTER_STRICT)
    return _cluster_map


def set_cluster_map(cluster_map: Optional[OfficeClusterMap]) -> None:
    """Replace the configured cluster map (None reloads from configuration)."""
    global _cluster_map
    _cluster_map = cluster_map


# =============================================================================
# LOOKUPS
# =============================================================================

def resolve_office_id(offices: Optional[Iterable[Office]], code: Optional[str]) -> Any:
    """Case-insensitive exact match on office code. Returns None when not found."""
    if not offices:
        return None
    target = str(code or "").upper()
    for office in offices:
        if str(office.code or "").upper() == target:
            return office.id
    return None


def resolve_cluster_code(owner_code: Optional[str], cluster_map: OfficeClusterMap = None) -> Optional[str]:
    """Cluster (VP tier) supervising the owning office."""
    return (cluster_map or get_cluster_map()).cluster_for(owner_code)


def find_office(offices: Optional[Iterable[Office]], office_id: Any) -> Optional[Office]:
    for office in offices or []:
        if office.id == office_id:
            return office
    return None


def office_label(offices: Optional[Iterable[Office]], office_id: Any) -> str:
    """Human label for an office, "Name (CODE)", or a placeholder when unknown."""
    office = find_office(offices, office_id)
    if office is None:
        return f"Office #{office_id}"
    return f"{office.name} ({office.code})"
