"""
inventory/dashboard.py -- Read-only aggregation queries for the dashboard.

DashboardAggregator never writes. It reads the same tables as InventoryStore
through the store's engine, so it sees every committed mutation immediately.

  statistics()                     -- totals plus open link counts per severity
  recent_assets(limit)             -- newest assets, projected to a summary row
  recent_active_vulnerabilities(n) -- open links by link updated_at, newest first

Per-severity counts use conditional aggregation (COUNT(CASE WHEN ... THEN 1
END)) so the whole breakdown comes from one SELECT. The result always carries
all five severities; a severity with no open links reports 0.
"""

from sqlalchemy import case, func, select

from inventory.models import (
    DEFAULT_LINK_STATUS,
    SEVERITIES,
    DashboardStatistics,
    RecentAsset,
    RecentVulnerabilityInstance,
)
from inventory.store import InventoryStore, assets_table, links_table, vulnerabilities_table

DEFAULT_LIMIT = 5


class DashboardAggregator:
    def __init__(self, store: InventoryStore) -> None:
        self._engine = store.engine

    def statistics(self) -> DashboardStatistics:
        """Return inventory totals and the open-link breakdown by severity."""
        is_open = links_table.c.status == DEFAULT_LINK_STATUS
        severity_counts = select(
            *(
                func.count(case((vulnerabilities_table.c.severity == severity, 1))).label(severity)
                for severity in SEVERITIES
            )
        ).select_from(
            links_table.join(vulnerabilities_table, links_table.c.vulnerability_id == vulnerabilities_table.c.id)
        ).where(is_open)

        with self._engine.connect() as conn:
            total_assets = conn.execute(select(func.count()).select_from(assets_table)).scalar_one()
            total_vulns = conn.execute(select(func.count()).select_from(vulnerabilities_table)).scalar_one()
            total_open = conn.execute(select(func.count()).select_from(links_table).where(is_open)).scalar_one()
            row = conn.execute(severity_counts).one()

        by_severity = {severity: row._mapping[severity] or 0 for severity in SEVERITIES}
        return DashboardStatistics(
            total_assets=total_assets,
            total_vulnerabilities=total_vulns,
            total_open_instances=total_open,
            open_by_severity=by_severity,
        )

    def recent_assets(self, limit: int = DEFAULT_LIMIT) -> list[RecentAsset]:
        """Return the `limit` most recently created assets."""
        stmt = (
            select(
                assets_table.c.id,
                assets_table.c.name,
                assets_table.c.type,
                assets_table.c.ip_address,
                assets_table.c.created_at,
            )
            .order_by(assets_table.c.created_at.desc(), assets_table.c.id.desc())
            .limit(limit)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [
            RecentAsset(id=r.id, name=r.name, type=r.type, ip_address=r.ip_address, created_at=r.created_at)
            for r in rows
        ]

    def recent_active_vulnerabilities(self, limit: int = DEFAULT_LIMIT) -> list[RecentVulnerabilityInstance]:
        """Return the `limit` most recently updated open links.

        Outer joins keep a link visible to this query even when a parent row
        is missing (possible if foreign keys were ever disabled); such rows
        are excluded here rather than surfaced with null names.
        """
        stmt = (
            select(
                links_table.c.id.label("join_id"),
                links_table.c.updated_at,
                vulnerabilities_table.c.name.label("vulnerability_name"),
                vulnerabilities_table.c.severity.label("vulnerability_severity"),
                vulnerabilities_table.c.source.label("vulnerability_source"),
                assets_table.c.name.label("asset_name"),
                assets_table.c.ip_address.label("asset_ip_address"),
            )
            .select_from(
                links_table.outerjoin(
                    vulnerabilities_table, links_table.c.vulnerability_id == vulnerabilities_table.c.id
                ).outerjoin(assets_table, links_table.c.asset_id == assets_table.c.id)
            )
            .where(links_table.c.status == DEFAULT_LINK_STATUS)
            .where(vulnerabilities_table.c.id.is_not(None))
            .where(assets_table.c.id.is_not(None))
            .order_by(links_table.c.updated_at.desc(), links_table.c.id.desc())
            .limit(limit)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [
            RecentVulnerabilityInstance(
                join_id=r.join_id,
                vulnerability_name=r.vulnerability_name,
                vulnerability_severity=r.vulnerability_severity,
                vulnerability_source=r.vulnerability_source,
                asset_name=r.asset_name,
                asset_ip_address=r.asset_ip_address,
                last_seen_or_updated_at=r.updated_at,
            )
            for r in rows
        ]
