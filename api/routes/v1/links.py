"""
api/routes/v1/links.py -- Asset-vulnerability link routes.

Routes:
  POST   /assets/{asset_id}/vulnerabilities            -- link a vulnerability
  GET    /assets/{asset_id}/vulnerabilities            -- list links with vulnerability detail
  PUT    /assets/{asset_id}/vulnerabilities/{join_id}  -- update status / notes / lastSeenAt
  DELETE /assets/{asset_id}/vulnerabilities/{join_id}  -- unlink

join_id is the link's own id. Every join_id route is scoped by asset_id: a
join_id that belongs to a different asset answers 404, the same as one that
does not exist at all.

The authenticated username is passed to LinkManager as actor= so each
mutation is logged with who made it.
"""

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import (
    LinkCreate,
    LinkDeleteResponse,
    LinkedVulnerabilityRow,
    LinkResponse,
    LinkUpdate,
    ResourceId,
)
from auth.dependencies import get_current_user
from auth.models import User
from inventory.links import LinkManager

router = APIRouter(dependencies=[Depends(get_current_user)])


@limiter.limit("30/minute")
@router.post("/assets/{asset_id}/vulnerabilities", response_model=LinkResponse, status_code=201)
def create_link(
    request: Request,
    asset_id: ResourceId,
    body: LinkCreate,
    user: User = Depends(get_current_user),
) -> LinkResponse:
    """Link an existing vulnerability to an asset. 409 if the pair is already linked."""
    links: LinkManager = request.app.state.links
    link = links.create_link(
        asset_id,
        body.vulnerability_id,
        status=body.status,
        details=body.details,
        remediation_notes=body.remediation_notes,
        last_seen_at=body.last_seen_at,
        actor=user.username,
    )
    return LinkResponse.from_link(link)


@limiter.limit("60/minute")
@router.get("/assets/{asset_id}/vulnerabilities", response_model=list[LinkedVulnerabilityRow])
def list_links(request: Request, asset_id: ResourceId) -> list[LinkedVulnerabilityRow]:
    """Return the asset's links, most recently seen first."""
    links: LinkManager = request.app.state.links
    return [LinkedVulnerabilityRow.from_linked(row) for row in links.list_links_for_asset(asset_id)]


@limiter.limit("30/minute")
@router.put("/assets/{asset_id}/vulnerabilities/{join_id}", response_model=LinkResponse)
def update_link(
    request: Request,
    asset_id: ResourceId,
    join_id: ResourceId,
    body: LinkUpdate,
    user: User = Depends(get_current_user),
) -> LinkResponse:
    links: LinkManager = request.app.state.links
    link = links.update_link(asset_id, join_id, body.model_dump(exclude_unset=True), actor=user.username)
    return LinkResponse.from_link(link)


@limiter.limit("30/minute")
@router.delete("/assets/{asset_id}/vulnerabilities/{join_id}", response_model=LinkDeleteResponse)
def delete_link(
    request: Request,
    asset_id: ResourceId,
    join_id: ResourceId,
    user: User = Depends(get_current_user),
) -> LinkDeleteResponse:
    links: LinkManager = request.app.state.links
    deleted = links.delete_link(asset_id, join_id, actor=user.username)
    return LinkDeleteResponse(message="Vulnerability unlinked from asset successfully.", link_id=deleted)
