"""
inventory/links.py -- Lifecycle rules for asset-vulnerability links.

LinkManager sits between the HTTP layer and InventoryStore and owns the rules
that span more than one table:

  create_link  -- both parents must exist; an explicit pair lookup rejects a
                  duplicate with ConflictError before inserting, and the
                  store's UNIQUE(asset_id, vulnerability_id) constraint
                  catches the race where two requests pass that lookup at once
  update_link  -- partial update scoped to the asset the link was requested
                  through; a join id belonging to another asset is NotFound
  delete_link  -- same scoping as update
  mark_seen    -- used by the scan merger: advance last_seen_at and reopen

Status transitions are unrestricted: any of the five states may move to any
other, but only when a caller asks for it. Nothing here changes status on its
own except mark_seen, which reopens a link that was observed again.

Every mutation takes the acting principal's name as actor= and logs it. The
manager holds no session state.
"""

import logging
from datetime import datetime
from typing import Any, Optional, Union

from inventory.errors import ConflictError, ValidationError
from inventory.models import DEFAULT_LINK_STATUS, AssetVulnerability, LinkedVulnerability
from inventory.store import InventoryStore

logger = logging.getLogger("vulntrack.inventory")

_UPDATABLE = ("status", "details", "remediation_notes", "last_seen_at")
_NOT_NULLABLE = ("status", "last_seen_at")

Timestamp = Union[str, datetime]


class LinkManager:
    def __init__(self, store: InventoryStore) -> None:
        self._store = store

    def create_link(
        self,
        asset_id: int,
        vulnerability_id: int,
        status: Optional[str] = None,
        details: Optional[str] = None,
        remediation_notes: Optional[str] = None,
        last_seen_at: Optional[Timestamp] = None,
        actor: Optional[str] = None,
    ) -> AssetVulnerability:
        """Link a vulnerability to an asset and return the stored link.

        Raises:
            NotFoundError: the asset or the vulnerability does not exist.
            ConflictError: the pair is already linked.
            ValidationError: status is outside the closed set, or last_seen_at
                is not a valid timestamp.
        """
        self._store.get_asset(asset_id)
        self._store.get_vulnerability(vulnerability_id)

        if self._store.find_link(asset_id, vulnerability_id) is not None:
            raise ConflictError("This vulnerability is already linked to this asset.", code="duplicate_link")

        link_id = self._store.insert_link(
            AssetVulnerability(
                asset_id=asset_id,
                vulnerability_id=vulnerability_id,
                status=status or DEFAULT_LINK_STATUS,
                details=details,
                remediation_notes=remediation_notes,
                last_seen_at=last_seen_at or "",
            )
        )
        link = self._store.get_link(link_id, asset_id)
        logger.info(
            "Link created: id=%d asset=%d vulnerability=%d status=%s actor=%s",
            link.id,
            asset_id,
            vulnerability_id,
            link.status,
            actor or "-",
        )
        return link

    def list_links_for_asset(self, asset_id: int) -> list[LinkedVulnerability]:
        """Return an asset's links with their vulnerabilities, most recently seen first.

        Raises NotFoundError if the asset does not exist, so an unknown asset
        is distinguishable from one with no links.
        """
        self._store.get_asset(asset_id)
        return self._store.list_links_with_vulnerabilities(asset_id)

    def update_link(
        self,
        asset_id: int,
        join_id: int,
        fields: dict[str, Any],
        actor: Optional[str] = None,
    ) -> AssetVulnerability:
        """Partially update a link reached through asset_id.

        fields holds only what the caller supplied. details and
        remediation_notes may be set to None to clear them; status and
        last_seen_at may not.
        """
        unknown = set(fields) - set(_UPDATABLE)
        if unknown:
            raise ValidationError(f"Unknown link fields: {', '.join(sorted(unknown))}")
        if not fields:
            raise ValidationError("No fields provided for update.")
        for name in _NOT_NULLABLE:
            if name in fields and fields[name] is None:
                raise ValidationError(f"{name} cannot be null.")

        link = self._store.update_link(join_id, asset_id, **fields)
        logger.info(
            "Link updated: id=%d asset=%d fields=%s status=%s actor=%s",
            join_id,
            asset_id,
            ",".join(sorted(fields)),
            link.status,
            actor or "-",
        )
        return link

    def delete_link(self, asset_id: int, join_id: int, actor: Optional[str] = None) -> int:
        """Remove a link reached through asset_id. Returns the deleted join id."""
        deleted = self._store.delete_link(join_id, asset_id)
        logger.info("Link deleted: id=%d asset=%d actor=%s", join_id, asset_id, actor or "-")
        return deleted

    def find_link(self, asset_id: int, vulnerability_id: int) -> Optional[AssetVulnerability]:
        return self._store.find_link(asset_id, vulnerability_id)

    def mark_seen(self, link: AssetVulnerability, seen_at: Timestamp) -> AssetVulnerability:
        """Record that a linked vulnerability was observed again.

        Advances last_seen_at and resets any non-open status back to open.
        """
        fields: dict[str, Any] = {"last_seen_at": seen_at}
        if link.status != DEFAULT_LINK_STATUS:
            fields["status"] = DEFAULT_LINK_STATUS
        return self._store.update_link(link.id, link.asset_id, **fields)
