"""
inventory/store.py -- SQLAlchemy-backed persistence layer for the VulnTrack inventory.

Uses SQLAlchemy Core (not ORM) so the dataclasses in inventory/models.py stay
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. InventoryStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Integrity rules enforced by the schema itself:
  - vulnerabilities.name is UNIQUE
  - asset_vulnerabilities has UNIQUE(asset_id, vulnerability_id)
  - asset_vulnerabilities foreign keys cascade on delete of either parent

The store translates IntegrityError into the domain taxonomy (ConflictError
for a unique violation, NotFoundError for a dangling foreign key) so raw
driver errors never reach callers.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = InventoryStore()                               # SQLite default
    store = InventoryStore("postgresql://user:pw@host/db") # PostgreSQL
    asset_id = store.create_asset(asset)
    store.insert_link(AssetVulnerability(asset_id=asset_id, vulnerability_id=vuln_id))
    store.close()
"""

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    case,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core.config import get_settings
from inventory.errors import ConflictError, NotFoundError, ValidationError
from inventory.models import (
    ASSET_TYPES,
    DEFAULT_LINK_STATUS,
    LINK_STATUSES,
    SEVERITIES,
    Asset,
    AssetVulnerability,
    LinkedVulnerability,
    Vulnerability,
)

logger = logging.getLogger("vulntrack.inventory")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

assets_table = Table(
    "assets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("type", String(30), nullable=False),
    Column("ip_address", String(45), nullable=False),
    Column("mac_address", String(17)),
    Column("operating_system", String(100)),
    Column("description", Text),
    Column("last_scanned_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

vulnerabilities_table = Table(
    "vulnerabilities",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=False),
    Column("severity", String(20), nullable=False),
    Column("cvss_score", Float),
    Column("source", String(255)),
    Column("references", Text),  # JSON array serialized as text
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("name", name="uq_vulnerability_name"),
)

links_table = Table(
    "asset_vulnerabilities",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("asset_id", Integer, ForeignKey("assets.id", ondelete="CASCADE"), nullable=False),
    Column("vulnerability_id", Integer, ForeignKey("vulnerabilities.id", ondelete="CASCADE"), nullable=False),
    Column("status", String(30), nullable=False, server_default=DEFAULT_LINK_STATUS),
    Column("details", Text),
    Column("remediation_notes", Text),
    Column("last_seen_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("asset_id", "vulnerability_id", name="uq_asset_vulnerability"),
)

# Vulnerability columns re-labelled for joins against links_table, whose
# id/created_at/updated_at column names would otherwise collide.
_VULN_PREFIX = "vuln_"
_joined_vuln_columns = [c.label(f"{_VULN_PREFIX}{c.name}") for c in vulnerabilities_table.c]

_severity_rank = case(
    {severity: rank for rank, severity in enumerate(SEVERITIES)},
    value=vulnerabilities_table.c.severity,
    else_=len(SEVERITIES),
)

_ASSET_FIELDS = {"name", "type", "ip_address", "mac_address", "operating_system", "description", "last_scanned_at"}
_VULN_FIELDS = {"name", "description", "severity", "cvss_score", "source", "references"}
_LINK_FIELDS = {"status", "details", "remediation_notes", "last_seen_at"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def to_utc_iso(value: Any, label: str = "timestamp") -> str:
    """Normalise a datetime or ISO 8601 string to a UTC ISO string.

    Every stored timestamp goes through this function so that all values share
    one offset and precision; lexical ORDER BY on the text column then matches
    chronological order. Naive values are treated as UTC. A trailing "Z" is
    accepted for clients that send JavaScript Date.toISOString() output.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            raise ValidationError(f"Invalid {label} date format.") from None
    else:
        raise ValidationError(f"Invalid {label} date format.")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _require_text(label: str, value: Any) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} is required.")
    return value.strip()


def _require_choice(label: str, value: Any, choices: tuple[str, ...]) -> str:
    if value not in choices:
        raise ValidationError(f"Invalid {label}. Must be one of: {', '.join(choices)}")
    return value


def _parse_cvss(value: Any) -> Optional[float]:
    """Return the CVSS score as a float in [0.0, 10.0], or None when absent.

    Accepts numeric strings ("7.5") the same way it accepts numbers.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("Invalid CVSS score. Must be a number between 0.0 and 10.0.")
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid CVSS score. Must be a number between 0.0 and 10.0.") from None
    if math.isnan(score) or score < 0.0 or score > 10.0:
        raise ValidationError("Invalid CVSS score. Must be a number between 0.0 and 10.0.")
    return score


def _clean_references(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValidationError("references must be a list of strings.")
    return list(value)


def _is_unique_violation(exc: IntegrityError) -> bool:
    """Distinguish a unique-constraint violation from other integrity failures.

    PostgreSQL drivers expose SQLSTATE 23505; SQLite only reports it in the
    message text.
    """
    orig = exc.orig
    if getattr(orig, "pgcode", None) == "23505" or getattr(orig, "sqlstate", None) == "23505":
        return True
    message = str(orig)
    return "UNIQUE constraint failed" in message or "duplicate key" in message.lower()


# ---------------------------------------------------------------------------
# Connection setup
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journaling and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys is off by default in SQLite, and
    ON DELETE CASCADE does nothing without it.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class InventoryStore:
    def __init__(self, db_url: str = "") -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a thread pool, so the same pooled
            # connection may be used from more than one thread.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def create_asset(self, asset: Asset) -> int:
        """Validate and insert a new asset. Returns its assigned ID."""
        now = now_iso()
        values = {
            "name": _require_text("Name", asset.name),
            "type": _require_choice("asset type", asset.type, ASSET_TYPES),
            "ip_address": _require_text("IP address", asset.ip_address),
            "mac_address": asset.mac_address,
            "operating_system": asset.operating_system,
            "description": asset.description,
            "last_scanned_at": (
                to_utc_iso(asset.last_scanned_at, "lastScannedAt") if asset.last_scanned_at else None
            ),
            "created_at": now,
            "updated_at": now,
        }
        with self.engine.connect() as conn:
            result = conn.execute(assets_table.insert().values(**values))
            conn.commit()
            return result.inserted_primary_key[0]

    def get_asset(self, asset_id: int) -> Asset:
        """Fetch a single asset by ID. Raises NotFoundError if absent."""
        with self.engine.connect() as conn:
            row = conn.execute(assets_table.select().where(assets_table.c.id == asset_id)).fetchone()
        if row is None:
            raise NotFoundError("Asset not found.", code="asset_not_found")
        return _row_to_asset(row)

    def list_assets(self) -> list[Asset]:
        """Return all assets, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                assets_table.select().order_by(assets_table.c.created_at.desc(), assets_table.c.id.desc())
            ).fetchall()
        return [_row_to_asset(r) for r in rows]

    def update_asset(self, asset_id: int, **fields) -> Asset:
        """Apply a partial update and return the refreshed asset.

        Accepts any subset of: name, type, ip_address, mac_address,
        operating_system, description, last_scanned_at. last_scanned_at may be
        None to clear it; name, type and ip_address may not.
        """
        unknown = set(fields) - _ASSET_FIELDS
        if unknown:
            raise ValidationError(f"Unknown asset fields: {', '.join(sorted(unknown))}")
        if not fields:
            raise ValidationError("No fields provided for update.")
        if "name" in fields:
            fields["name"] = _require_text("Name", fields["name"])
        if "type" in fields:
            _require_choice("asset type", fields["type"], ASSET_TYPES)
        if "ip_address" in fields:
            fields["ip_address"] = _require_text("IP address", fields["ip_address"])
        if fields.get("last_scanned_at") is not None:
            fields["last_scanned_at"] = to_utc_iso(fields["last_scanned_at"], "lastScannedAt")
        fields["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(assets_table.update().where(assets_table.c.id == asset_id).values(**fields))
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Asset not found.", code="asset_not_found")
        return self.get_asset(asset_id)

    def mark_scanned(self, asset_id: int, scanned_at: str) -> None:
        """Stamp last_scanned_at on an asset after a scan."""
        with self.engine.connect() as conn:
            conn.execute(
                assets_table.update()
                .where(assets_table.c.id == asset_id)
                .values(last_scanned_at=scanned_at, updated_at=now_iso())
            )
            conn.commit()

    def delete_asset(self, asset_id: int) -> int:
        """Delete an asset and, by cascade, all of its links. Returns the deleted ID."""
        with self.engine.connect() as conn:
            result = conn.execute(assets_table.delete().where(assets_table.c.id == asset_id))
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Asset not found.", code="asset_not_found")
        return asset_id

    # ------------------------------------------------------------------
    # Vulnerabilities
    # ------------------------------------------------------------------

    def create_vulnerability(self, vuln: Vulnerability) -> int:
        """Validate and insert a vulnerability. Returns its assigned ID.

        Raises ConflictError if the name is already taken.
        """
        now = now_iso()
        values = {
            "name": _require_text("Name", vuln.name),
            "description": _require_text("Description", vuln.description),
            "severity": _require_choice("severity", vuln.severity, SEVERITIES),
            "cvss_score": _parse_cvss(vuln.cvss_score),
            "source": vuln.source,
            "references": json.dumps(_clean_references(vuln.references)),
            "created_at": now,
            "updated_at": now,
        }
        with self.engine.connect() as conn:
            try:
                result = conn.execute(vulnerabilities_table.insert().values(**values))
            except IntegrityError as exc:
                raise ConflictError(
                    "Vulnerability with this name already exists.", code="duplicate_vulnerability"
                ) from exc
            conn.commit()
            return result.inserted_primary_key[0]

    def get_vulnerability(self, vulnerability_id: int) -> Vulnerability:
        """Fetch a single vulnerability by ID. Raises NotFoundError if absent."""
        with self.engine.connect() as conn:
            row = conn.execute(
                vulnerabilities_table.select().where(vulnerabilities_table.c.id == vulnerability_id)
            ).fetchone()
        if row is None:
            raise NotFoundError("Vulnerability not found.", code="vulnerability_not_found")
        return _row_to_vulnerability(row)

    def list_vulnerabilities(self) -> list[Vulnerability]:
        """Return all vulnerabilities, most severe first, newest first within a severity."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                vulnerabilities_table.select().order_by(
                    _severity_rank,
                    vulnerabilities_table.c.created_at.desc(),
                    vulnerabilities_table.c.id.desc(),
                )
            ).fetchall()
        return [_row_to_vulnerability(r) for r in rows]

    def list_recent_vulnerabilities(self, limit: int) -> list[Vulnerability]:
        """Return the `limit` most recently created vulnerabilities."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                vulnerabilities_table.select()
                .order_by(vulnerabilities_table.c.created_at.desc(), vulnerabilities_table.c.id.desc())
                .limit(limit)
            ).fetchall()
        return [_row_to_vulnerability(r) for r in rows]

    def update_vulnerability(self, vulnerability_id: int, **fields) -> Vulnerability:
        """Apply a partial update and return the refreshed vulnerability.

        Accepts any subset of: name, description, severity, cvss_score,
        source, references. Renaming onto an existing name raises ConflictError.
        """
        unknown = set(fields) - _VULN_FIELDS
        if unknown:
            raise ValidationError(f"Unknown vulnerability fields: {', '.join(sorted(unknown))}")
        if not fields:
            raise ValidationError("No fields provided for update.")
        if "name" in fields:
            fields["name"] = _require_text("Name", fields["name"])
        if "description" in fields:
            fields["description"] = _require_text("Description", fields["description"])
        if "severity" in fields:
            _require_choice("severity", fields["severity"], SEVERITIES)
        if "cvss_score" in fields:
            fields["cvss_score"] = _parse_cvss(fields["cvss_score"])
        if "references" in fields:
            fields["references"] = json.dumps(_clean_references(fields["references"]))
        fields["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            try:
                result = conn.execute(
                    vulnerabilities_table.update()
                    .where(vulnerabilities_table.c.id == vulnerability_id)
                    .values(**fields)
                )
            except IntegrityError as exc:
                raise ConflictError(
                    "Another vulnerability with this name already exists.", code="duplicate_vulnerability"
                ) from exc
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Vulnerability not found.", code="vulnerability_not_found")
        return self.get_vulnerability(vulnerability_id)

    def delete_vulnerability(self, vulnerability_id: int) -> int:
        """Delete a vulnerability and, by cascade, every link to it. Returns the deleted ID."""
        with self.engine.connect() as conn:
            result = conn.execute(vulnerabilities_table.delete().where(vulnerabilities_table.c.id == vulnerability_id))
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Vulnerability not found.", code="vulnerability_not_found")
        return vulnerability_id

    # ------------------------------------------------------------------
    # Asset-vulnerability links
    # ------------------------------------------------------------------

    def insert_link(self, link: AssetVulnerability) -> int:
        """Insert a link and return its ID.

        The UNIQUE(asset_id, vulnerability_id) constraint is the final word on
        duplicates: a violation raises ConflictError even when the caller's
        own existence check passed. A foreign key violation (a parent deleted
        concurrently) raises NotFoundError.
        """
        now = now_iso()
        values = {
            "asset_id": link.asset_id,
            "vulnerability_id": link.vulnerability_id,
            "status": _require_choice("status", link.status or DEFAULT_LINK_STATUS, LINK_STATUSES),
            "details": link.details,
            "remediation_notes": link.remediation_notes,
            "last_seen_at": to_utc_iso(link.last_seen_at, "lastSeenAt") if link.last_seen_at else now,
            "created_at": now,
            "updated_at": now,
        }
        with self.engine.connect() as conn:
            try:
                result = conn.execute(links_table.insert().values(**values))
            except IntegrityError as exc:
                if _is_unique_violation(exc):
                    raise ConflictError(
                        "This vulnerability is already linked to this asset.", code="duplicate_link"
                    ) from exc
                logger.warning(
                    "Link insert hit a missing parent: asset=%d vulnerability=%d",
                    link.asset_id,
                    link.vulnerability_id,
                )
                raise NotFoundError("Asset or vulnerability no longer exists.", code="parent_not_found") from exc
            conn.commit()
            return result.inserted_primary_key[0]

    def get_link(self, link_id: int, asset_id: int) -> AssetVulnerability:
        """Fetch a link by ID, scoped to its asset.

        A link that exists under a different asset is reported as not found.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                links_table.select().where((links_table.c.id == link_id) & (links_table.c.asset_id == asset_id))
            ).fetchone()
        if row is None:
            raise NotFoundError("Asset-vulnerability link not found.", code="link_not_found")
        return _row_to_link(row)

    def find_link(self, asset_id: int, vulnerability_id: int) -> Optional[AssetVulnerability]:
        """Look up the link for an (asset_id, vulnerability_id) pair. Returns None if absent."""
        with self.engine.connect() as conn:
            row = conn.execute(
                links_table.select().where(
                    (links_table.c.asset_id == asset_id) & (links_table.c.vulnerability_id == vulnerability_id)
                )
            ).fetchone()
        return _row_to_link(row) if row is not None else None

    def update_link(self, link_id: int, asset_id: int, **fields) -> AssetVulnerability:
        """Apply a partial update to a link scoped to its asset.

        Accepts any subset of: status, details, remediation_notes,
        last_seen_at. updated_at always advances.
        """
        unknown = set(fields) - _LINK_FIELDS
        if unknown:
            raise ValidationError(f"Unknown link fields: {', '.join(sorted(unknown))}")
        if not fields:
            raise ValidationError("No fields provided for update.")
        if "status" in fields:
            _require_choice("status", fields["status"], LINK_STATUSES)
        if "last_seen_at" in fields:
            fields["last_seen_at"] = to_utc_iso(fields["last_seen_at"], "lastSeenAt")
        fields["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                links_table.update()
                .where((links_table.c.id == link_id) & (links_table.c.asset_id == asset_id))
                .values(**fields)
            )
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Asset-vulnerability link not found.", code="link_not_found")
        return self.get_link(link_id, asset_id)

    def delete_link(self, link_id: int, asset_id: int) -> int:
        """Delete a link scoped to its asset. Returns the deleted ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                links_table.delete().where((links_table.c.id == link_id) & (links_table.c.asset_id == asset_id))
            )
            conn.commit()
        if result.rowcount == 0:
            raise NotFoundError("Asset-vulnerability link not found.", code="link_not_found")
        return link_id

    def list_links_with_vulnerabilities(self, asset_id: int) -> list[LinkedVulnerability]:
        """Return an asset's links joined with their vulnerability, most recently seen first."""
        stmt = (
            select(links_table, *_joined_vuln_columns)
            .select_from(
                links_table.join(vulnerabilities_table, links_table.c.vulnerability_id == vulnerabilities_table.c.id)
            )
            .where(links_table.c.asset_id == asset_id)
            .order_by(links_table.c.last_seen_at.desc(), links_table.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [
            LinkedVulnerability(link=_row_to_link(r), vulnerability=_row_to_vulnerability(r, prefix=_VULN_PREFIX))
            for r in rows
        ]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_asset(row) -> Asset:
    return Asset(
        id=row.id,
        name=row.name,
        type=row.type,
        ip_address=row.ip_address,
        mac_address=row.mac_address,
        operating_system=row.operating_system,
        description=row.description,
        last_scanned_at=row.last_scanned_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_vulnerability(row, prefix: str = "") -> Vulnerability:
    m = row._mapping
    raw_refs = m[f"{prefix}references"]
    return Vulnerability(
        id=m[f"{prefix}id"],
        name=m[f"{prefix}name"],
        description=m[f"{prefix}description"],
        severity=m[f"{prefix}severity"],
        cvss_score=m[f"{prefix}cvss_score"],
        source=m[f"{prefix}source"],
        references=json.loads(raw_refs) if raw_refs else [],
        created_at=m[f"{prefix}created_at"],
        updated_at=m[f"{prefix}updated_at"],
    )


def _row_to_link(row) -> AssetVulnerability:
    m = row._mapping
    return AssetVulnerability(
        id=m["id"],
        asset_id=m["asset_id"],
        vulnerability_id=m["vulnerability_id"],
        status=m["status"],
        details=m["details"],
        remediation_notes=m["remediation_notes"],
        last_seen_at=m["last_seen_at"],
        created_at=m["created_at"],
        updated_at=m["updated_at"],
    )
