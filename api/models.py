"""
API request and response models for VulnTrack REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in inventory/models.py,
which own the internal domain representation. Route handlers map between the
two via the from_* factory classmethods below.

JSON field names are camelCase on the wire (ipAddress, lastSeenAt, ...).
populate_by_name=True also accepts the snake_case spelling on input, and lets
handlers construct responses with Python attribute names.

Separation of concerns: inventory/ models = domain truth; api/ models = API contract.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Optional

from fastapi import Path
from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from inventory.models import (
    ASSET_TYPES,
    LINK_STATUSES,
    SEVERITIES,
    Asset,
    AssetVulnerability,
    LinkedVulnerability,
    RecentAsset,
    RecentVulnerabilityInstance,
    Vulnerability,
)

# ---------------------------------------------------------------------------
# Enums -- built from the domain tuples so the two sets cannot drift apart
# ---------------------------------------------------------------------------

AssetTypeEnum = Enum("AssetTypeEnum", {t: t for t in ASSET_TYPES}, type=str)
SeverityEnum = Enum("SeverityEnum", {s: s for s in SEVERITIES}, type=str)
LinkStatusEnum = Enum("LinkStatusEnum", {s: s for s in LINK_STATUSES}, type=str)

# Ids are stored in signed 64-bit INTEGER columns. Anything outside that range
# can never name a row and would overflow the driver, so it is rejected as
# input instead.
MAX_ID = 2**63 - 1

ResourceId = Annotated[int, Path(ge=1, le=MAX_ID)]


# ---------------------------------------------------------------------------
# Base models
# ---------------------------------------------------------------------------


class _RequestModel(BaseModel):
    """camelCase request body. Enum fields arrive in handlers as plain strings."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=True,
    )


class _ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


class AssetCreate(_RequestModel):
    """Request body for POST /api/v1/assets."""

    name: str = Field(min_length=1, max_length=255)
    type: AssetTypeEnum
    ip_address: str = Field(min_length=1, max_length=45)
    mac_address: Optional[str] = Field(default=None, max_length=17)
    operating_system: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    last_scanned_at: Optional[datetime] = None


class AssetUpdate(_RequestModel):
    """Request body for PUT /api/v1/assets/{asset_id}.

    Every field is optional. Handlers read model_dump(exclude_unset=True) so
    only supplied fields reach the store; an explicit null clears an optional
    field and is rejected for a required one.
    """

    name: Optional[str] = Field(default=None, max_length=255)
    type: Optional[AssetTypeEnum] = None
    ip_address: Optional[str] = Field(default=None, max_length=45)
    mac_address: Optional[str] = Field(default=None, max_length=17)
    operating_system: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    last_scanned_at: Optional[datetime] = None


class AssetResponse(_ResponseModel):
    id: int
    name: str
    type: str
    ip_address: str
    mac_address: Optional[str]
    operating_system: Optional[str]
    description: Optional[str]
    last_scanned_at: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_asset(cls, asset: Asset) -> "AssetResponse":
        return cls(
            id=asset.id,
            name=asset.name,
            type=asset.type,
            ip_address=asset.ip_address,
            mac_address=asset.mac_address,
            operating_system=asset.operating_system,
            description=asset.description,
            last_scanned_at=asset.last_scanned_at,
            created_at=asset.created_at,
            updated_at=asset.updated_at,
        )


class AssetDeleteResponse(_ResponseModel):
    message: str
    asset_id: int


# ---------------------------------------------------------------------------
# Vulnerabilities
# ---------------------------------------------------------------------------


class VulnerabilityCreate(_RequestModel):
    """Request body for POST /api/v1/vulnerabilities."""

    name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    severity: SeverityEnum
    cvss_score: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    source: Optional[str] = Field(default=None, max_length=255)
    references: list[str] = Field(default_factory=list, max_length=50)


class VulnerabilityUpdate(_RequestModel):
    """Request body for PUT /api/v1/vulnerabilities/{vulnerability_id}."""

    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    severity: Optional[SeverityEnum] = None
    cvss_score: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    source: Optional[str] = Field(default=None, max_length=255)
    references: Optional[list[str]] = Field(default=None, max_length=50)


class VulnerabilityResponse(_ResponseModel):
    id: int
    name: str
    description: str
    severity: str
    cvss_score: Optional[float]
    source: Optional[str]
    references: list[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_vulnerability(cls, vuln: Vulnerability) -> "VulnerabilityResponse":
        return cls(
            id=vuln.id,
            name=vuln.name,
            description=vuln.description,
            severity=vuln.severity,
            cvss_score=vuln.cvss_score,
            source=vuln.source,
            references=vuln.references,
            created_at=vuln.created_at,
            updated_at=vuln.updated_at,
        )


class VulnerabilityDeleteResponse(_ResponseModel):
    message: str
    vulnerability_id: int


# ---------------------------------------------------------------------------
# Asset-vulnerability links
# ---------------------------------------------------------------------------


class LinkCreate(_RequestModel):
    """Request body for POST /api/v1/assets/{asset_id}/vulnerabilities."""

    vulnerability_id: int = Field(ge=1, le=MAX_ID)
    status: Optional[LinkStatusEnum] = None
    details: Optional[str] = None
    remediation_notes: Optional[str] = None
    last_seen_at: Optional[datetime] = None


class LinkUpdate(_RequestModel):
    """Request body for PUT /api/v1/assets/{asset_id}/vulnerabilities/{join_id}."""

    status: Optional[LinkStatusEnum] = None
    details: Optional[str] = None
    remediation_notes: Optional[str] = None
    last_seen_at: Optional[datetime] = None


class LinkResponse(_ResponseModel):
    id: int
    asset_id: int
    vulnerability_id: int
    status: str
    details: Optional[str]
    remediation_notes: Optional[str]
    last_seen_at: str
    created_at: str
    updated_at: str

    @classmethod
    def from_link(cls, link: AssetVulnerability) -> "LinkResponse":
        return cls(
            id=link.id,
            asset_id=link.asset_id,
            vulnerability_id=link.vulnerability_id,
            status=link.status,
            details=link.details,
            remediation_notes=link.remediation_notes,
            last_seen_at=link.last_seen_at,
            created_at=link.created_at,
            updated_at=link.updated_at,
        )


class LinkedVulnerabilityRow(_ResponseModel):
    """One row of GET /assets/{asset_id}/vulnerabilities: a link plus its vulnerability."""

    join_id: int
    asset_id: int
    status: str
    details: Optional[str]
    remediation_notes: Optional[str]
    last_seen_at: str
    updated_at: str
    vulnerability: VulnerabilityResponse

    @classmethod
    def from_linked(cls, row: LinkedVulnerability) -> "LinkedVulnerabilityRow":
        return cls(
            join_id=row.link.id,
            asset_id=row.link.asset_id,
            status=row.link.status,
            details=row.link.details,
            remediation_notes=row.link.remediation_notes,
            last_seen_at=row.link.last_seen_at,
            updated_at=row.link.updated_at,
            vulnerability=VulnerabilityResponse.from_vulnerability(row.vulnerability),
        )


class LinkDeleteResponse(_ResponseModel):
    message: str
    link_id: int


class ScanResponse(_ResponseModel):
    """Response for POST /api/v1/assets/{asset_id}/scan."""

    message: str
    asset_id: int
    newly_linked: int
    updated_links: int
    vulnerabilities_processed: int
    failed: int
    vulnerabilities_available: bool


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


class StatisticsResponse(_ResponseModel):
    """Response for GET /api/v1/dashboard/statistics.

    open_vulnerabilities_by_severity always carries all five severities.
    """

    total_assets: int
    total_vulnerabilities: int
    total_open_vulnerability_instances: int
    open_vulnerabilities_by_severity: dict[str, int]


class RecentAssetRow(_ResponseModel):
    id: int
    name: str
    type: str
    ip_address: str
    created_at: str

    @classmethod
    def from_recent(cls, asset: RecentAsset) -> "RecentAssetRow":
        return cls(
            id=asset.id,
            name=asset.name,
            type=asset.type,
            ip_address=asset.ip_address,
            created_at=asset.created_at,
        )


class RecentVulnerabilityRow(_ResponseModel):
    join_id: int
    vulnerability_name: str
    vulnerability_severity: str
    vulnerability_source: Optional[str]
    asset_name: str
    asset_ip_address: str
    last_seen_or_updated_at: str

    @classmethod
    def from_recent(cls, item: RecentVulnerabilityInstance) -> "RecentVulnerabilityRow":
        return cls(
            join_id=item.join_id,
            vulnerability_name=item.vulnerability_name,
            vulnerability_severity=item.vulnerability_severity,
            vulnerability_source=item.vulnerability_source,
            asset_name=item.asset_name,
            asset_ip_address=item.asset_ip_address,
            last_seen_or_updated_at=item.last_seen_or_updated_at,
        )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class _CredentialsModel(_RequestModel):
    # Passwords are compared byte for byte; never strip them.
    model_config = ConfigDict(str_strip_whitespace=False)


class RegisterRequest(_CredentialsModel):
    """Request body for POST /api/v1/auth/register."""

    username: str = Field(min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=8, max_length=72)


class LoginRequest(_CredentialsModel):
    """Request body for POST /api/v1/auth/login."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)


class UserResponse(_ResponseModel):
    id: int
    username: str
    email: str
    role: str
    created_at: str


class LoginResponse(_ResponseModel):
    access_token: str
    token_type: str
    expires_in: int
    user: UserResponse


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses.

    message repeats error.message at the top level for clients that only
    look for a human-readable message.
    """

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail

    @computed_field
    @property
    def message(self) -> str:
        return self.error.message


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
