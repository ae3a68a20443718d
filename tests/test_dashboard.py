"""
tests/test_dashboard.py -- Unit tests for DashboardAggregator.

Coverage:
  - statistics: totals, open-only counting, all five severities present
  - recent_assets: newest first, capped at five
  - recent_active_vulnerabilities: open links only, by link updated_at,
    orphaned links excluded
"""

from __future__ import annotations

import time

from sqlalchemy import create_engine

from inventory.dashboard import DashboardAggregator
from inventory.links import LinkManager
from inventory.models import SEVERITIES, Asset, AssetVulnerability, Vulnerability
from inventory.store import InventoryStore, assets_table


class TestStatistics:
    def test_empty_inventory_has_every_severity(self, dashboard: DashboardAggregator) -> None:
        stats = dashboard.statistics()
        assert stats.total_assets == 0
        assert stats.total_vulnerabilities == 0
        assert stats.total_open_instances == 0
        assert stats.open_by_severity == {severity: 0 for severity in SEVERITIES}

    def test_counts_only_open_links(
        self, dashboard: DashboardAggregator, links: LinkManager, make_asset, make_vuln
    ) -> None:
        a1, a2 = make_asset(name="a1"), make_asset(name="a2")
        crit, high, low = make_vuln(severity="critical"), make_vuln(severity="high"), make_vuln(severity="low")
        links.create_link(a1.id, crit.id)
        links.create_link(a2.id, crit.id)
        links.create_link(a1.id, high.id, status="remediated")
        links.create_link(a1.id, low.id)

        stats = dashboard.statistics()
        assert stats.total_assets == 2
        assert stats.total_vulnerabilities == 3
        assert stats.total_open_instances == 3
        assert stats.open_by_severity == {
            "critical": 2,
            "high": 0,
            "medium": 0,
            "low": 1,
            "informational": 0,
        }
        assert sum(stats.open_by_severity.values()) == stats.total_open_instances


class TestRecentAssets:
    def test_newest_first_capped(self, dashboard: DashboardAggregator, make_asset) -> None:
        created = [make_asset(name=f"host-{i}", ip_address=f"10.0.1.{i}") for i in range(7)]
        recent = dashboard.recent_assets()
        assert [r.id for r in recent] == [a.id for a in reversed(created)][:5]
        assert recent[0].ip_address == "10.0.1.6"


class TestRecentActiveVulnerabilities:
    def test_open_links_by_updated_at(
        self, dashboard: DashboardAggregator, links: LinkManager, make_asset, make_vuln
    ) -> None:
        asset = make_asset(name="edge-fw", ip_address="192.0.2.1")
        v1, v2, v3 = make_vuln(name="v1"), make_vuln(name="v2", source="Nessus"), make_vuln(name="v3")
        l1 = links.create_link(asset.id, v1.id)
        links.create_link(asset.id, v2.id)
        links.create_link(asset.id, v3.id, status="ignored")
        time.sleep(0.002)
        links.update_link(asset.id, l1.id, {"details": "re-checked"})

        recent = dashboard.recent_active_vulnerabilities()
        assert [r.vulnerability_name for r in recent] == ["v1", "v2"]
        assert recent[1].vulnerability_source == "Nessus"
        assert recent[0].asset_name == "edge-fw"
        assert recent[0].asset_ip_address == "192.0.2.1"
        assert recent[0].join_id == l1.id

    def test_orphaned_link_excluded(self, tmp_path) -> None:
        """A link whose asset vanished (foreign keys off) must not surface."""
        url = f"sqlite:///{tmp_path / 'orphans.db'}"
        store = InventoryStore(url)
        try:
            kept = store.create_asset(Asset(name="kept", type="server", ip_address="10.0.0.1"))
            gone = store.create_asset(Asset(name="gone", type="server", ip_address="10.0.0.2"))
            vuln = store.create_vulnerability(Vulnerability(name="orphan-test", description="d", severity="medium"))
            store.insert_link(AssetVulnerability(asset_id=kept, vulnerability_id=vuln))
            store.insert_link(AssetVulnerability(asset_id=gone, vulnerability_id=vuln))

            # A raw engine has no PRAGMA foreign_keys=ON listener, so no cascade.
            raw = create_engine(url)
            with raw.connect() as conn:
                conn.execute(assets_table.delete().where(assets_table.c.id == gone))
                conn.commit()
            raw.dispose()

            recent = DashboardAggregator(store).recent_active_vulnerabilities()
            assert [r.asset_name for r in recent] == ["kept"]
        finally:
            store.close()
