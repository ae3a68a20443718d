"""
inventory/models.py -- Domain dataclasses for the VulnTrack inventory.

These are pure data containers with zero logic. Validation lives in
inventory/store.py, link rules in inventory/links.py, scan merging in
inventory/scan.py.

The closed value sets (asset type, severity, link status) are defined once
here. The API layer builds its enums from these tuples so the two can never
drift apart.

Timestamps are UTC ISO 8601 strings, set by the store.
"""

from dataclasses import dataclass, field
from typing import Optional

ASSET_TYPES: tuple[str, ...] = ("server", "workstation", "network_device", "iot_device", "other")

# Ordered most to least severe. Index doubles as the sort rank.
SEVERITIES: tuple[str, ...] = ("critical", "high", "medium", "low", "informational")

LINK_STATUSES: tuple[str, ...] = ("open", "remediated", "ignored", "pending_verification", "archived")

DEFAULT_LINK_STATUS = "open"


@dataclass
class Asset:
    """A tracked piece of infrastructure.

    id is None before the record is written to the database.
    """

    name: str
    type: str  # one of ASSET_TYPES
    ip_address: str
    id: Optional[int] = None
    mac_address: Optional[str] = None
    operating_system: Optional[str] = None
    description: Optional[str] = None
    last_scanned_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Vulnerability:
    """A named weakness. name is unique across the inventory."""

    name: str
    description: str
    severity: str  # one of SEVERITIES
    id: Optional[int] = None
    cvss_score: Optional[float] = None  # 0.0 - 10.0
    source: Optional[str] = None
    references: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


@dataclass
class AssetVulnerability:
    """A vulnerability linked to an asset, with remediation state.

    At most one record exists per (asset_id, vulnerability_id). last_seen_at
    moves forward whenever the weakness is observed again on the asset;
    updated_at moves on any change.
    """

    asset_id: int
    vulnerability_id: int
    status: str = DEFAULT_LINK_STATUS  # one of LINK_STATUSES
    details: Optional[str] = None
    remediation_notes: Optional[str] = None
    last_seen_at: str = ""
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class LinkedVulnerability:
    """A link together with the vulnerability it points at."""

    link: AssetVulnerability
    vulnerability: Vulnerability


@dataclass
class ScanResult:
    """Outcome of one simulated scan.

    vulnerabilities_available is False only when the candidate source had
    nothing to offer; a scan that ran and found nothing new still reports True.
    failed counts candidates skipped because of a store error.
    """

    asset_id: int
    vulnerabilities_processed: int = 0
    newly_linked: int = 0
    updated_links: int = 0
    failed: int = 0
    vulnerabilities_available: bool = True


@dataclass
class DashboardStatistics:
    total_assets: int
    total_vulnerabilities: int
    total_open_instances: int
    open_by_severity: dict[str, int]


@dataclass
class RecentAsset:
    id: int
    name: str
    type: str
    ip_address: str
    created_at: str


@dataclass
class RecentVulnerabilityInstance:
    join_id: int
    vulnerability_name: str
    vulnerability_severity: str
    vulnerability_source: Optional[str]
    asset_name: str
    asset_ip_address: str
    last_seen_or_updated_at: str
