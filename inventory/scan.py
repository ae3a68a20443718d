"""
inventory/scan.py -- Simulated scan: merge a batch of vulnerabilities onto an asset.

No network traffic is generated. A scan takes a batch of candidate
vulnerabilities from a candidate source and, for each one:

  not linked yet    -> insert a link (status=open, last_seen_at=now)   newly_linked
  already linked    -> last_seen_at=now, non-open status reset to open  updated_links
  insert lost race  -> another request linked it first; refresh that
                       link instead, exactly as in the second case     updated_links
  store error       -> log, count in failed, move on to the next one

Candidates are processed independently. A failure part-way leaves earlier
candidates merged; there is no batch rollback.

The default candidate source returns the most recently created
vulnerabilities (scan_batch_size of them). Any callable taking an Asset and
returning a list of Vulnerability can replace it, e.g. one backed by a real
scanner's findings.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from inventory.errors import ConflictError, NotFoundError
from inventory.links import LinkManager
from inventory.models import Asset, ScanResult, Vulnerability
from inventory.store import InventoryStore, now_iso

logger = logging.getLogger("vulntrack.inventory")

CandidateSource = Callable[[Asset], list[Vulnerability]]

DEFAULT_BATCH_SIZE = 5


class ScanMerger:
    def __init__(
        self,
        store: InventoryStore,
        links: LinkManager,
        candidate_source: Optional[CandidateSource] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._store = store
        self._links = links
        self._batch_size = batch_size
        self._candidate_source = candidate_source or self._latest_vulnerabilities

    def _latest_vulnerabilities(self, asset: Asset) -> list[Vulnerability]:
        return self._store.list_recent_vulnerabilities(self._batch_size)

    def scan_asset(self, asset_id: int, actor: Optional[str] = None) -> ScanResult:
        """Run one simulated scan against asset_id.

        Raises NotFoundError if the asset does not exist. An empty candidate
        batch returns a result with vulnerabilities_available=False and
        changes nothing, not even last_scanned_at.
        """
        asset = self._store.get_asset(asset_id)
        candidates = self._candidate_source(asset)
        result = ScanResult(asset_id=asset_id)

        if not candidates:
            result.vulnerabilities_available = False
            logger.info("Scan of asset %d: no vulnerabilities available (actor=%s)", asset_id, actor or "-")
            return result

        result.vulnerabilities_processed = len(candidates)
        for vuln in candidates:
            now = now_iso()
            try:
                if self._merge_one(asset_id, vuln, now):
                    result.newly_linked += 1
                else:
                    result.updated_links += 1
            except (NotFoundError, SQLAlchemyError) as exc:
                result.failed += 1
                logger.warning("Scan of asset %d: skipped vulnerability %s: %s", asset_id, vuln.id, exc)

        self._store.mark_scanned(asset_id, now_iso())
        logger.info(
            "Scan of asset %d: processed=%d new=%d updated=%d failed=%d actor=%s",
            asset_id,
            result.vulnerabilities_processed,
            result.newly_linked,
            result.updated_links,
            result.failed,
            actor or "-",
        )
        return result

    def _merge_one(self, asset_id: int, vuln: Vulnerability, now: str) -> bool:
        """Merge a single candidate. Returns True if a new link was inserted."""
        existing = self._links.find_link(asset_id, vuln.id)
        if existing is not None:
            self._links.mark_seen(existing, now)
            return False
        try:
            self._links.create_link(asset_id, vuln.id, last_seen_at=now)
            return True
        except ConflictError:
            existing = self._links.find_link(asset_id, vuln.id)
            if existing is None:
                raise NotFoundError("Link vanished during scan merge.", code="link_not_found") from None
            self._links.mark_seen(existing, now)
            return False
