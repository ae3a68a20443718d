"""
api/routes/v1/dashboard.py -- Aggregated metrics endpoints for the VulnTrack dashboard.

  GET /dashboard/statistics            -- totals and open links per severity
  GET /dashboard/recent-assets         -- five newest assets
  GET /dashboard/recent-vulnerabilities -- five most recently updated open links

This is a read-only aggregate router -- no mutations here.
"""

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import RecentAssetRow, RecentVulnerabilityRow, StatisticsResponse
from auth.dependencies import get_current_user
from inventory.dashboard import DashboardAggregator

# Auth policy: aggregated inventory metrics are internal data.
router = APIRouter(dependencies=[Depends(get_current_user)])


@limiter.limit("60/minute")
@router.get("/dashboard/statistics", response_model=StatisticsResponse)
def get_statistics(request: Request) -> StatisticsResponse:
    """Return inventory totals.

    Response:
      totalAssets                      -- number of assets
      totalVulnerabilities             -- number of catalogued vulnerabilities
      totalOpenVulnerabilityInstances  -- links with status "open"
      openVulnerabilitiesBySeverity    -- open links per severity, all five keys present
    """
    dashboard: DashboardAggregator = request.app.state.dashboard
    stats = dashboard.statistics()
    return StatisticsResponse(
        total_assets=stats.total_assets,
        total_vulnerabilities=stats.total_vulnerabilities,
        total_open_vulnerability_instances=stats.total_open_instances,
        open_vulnerabilities_by_severity=stats.open_by_severity,
    )


@limiter.limit("60/minute")
@router.get("/dashboard/recent-assets", response_model=list[RecentAssetRow])
def get_recent_assets(request: Request) -> list[RecentAssetRow]:
    dashboard: DashboardAggregator = request.app.state.dashboard
    return [RecentAssetRow.from_recent(a) for a in dashboard.recent_assets()]


@limiter.limit("60/minute")
@router.get("/dashboard/recent-vulnerabilities", response_model=list[RecentVulnerabilityRow])
def get_recent_vulnerabilities(request: Request) -> list[RecentVulnerabilityRow]:
    dashboard: DashboardAggregator = request.app.state.dashboard
    return [RecentVulnerabilityRow.from_recent(v) for v in dashboard.recent_active_vulnerabilities()]
