"""
api/routes/v1/assets.py -- Asset inventory routes for the VulnTrack REST API.

Routes:
  POST   /assets                     -- create asset
  GET    /assets                     -- list all assets, newest first
  GET    /assets/{asset_id}          -- asset detail
  PUT    /assets/{asset_id}          -- partial update
  DELETE /assets/{asset_id}          -- delete asset and all of its links
  POST   /assets/{asset_id}/scan     -- simulated scan (see inventory/scan.py)

Domain failures (ValidationError, NotFoundError) propagate out of the store
unchanged; the InventoryError handler in api/main.py turns them into 400/404
responses, so handlers here only deal with the success path.
"""

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import AssetCreate, AssetDeleteResponse, AssetResponse, AssetUpdate, ResourceId, ScanResponse
from auth.dependencies import get_current_user
from auth.models import User
from inventory.models import Asset
from inventory.scan import ScanMerger
from inventory.store import InventoryStore

# All asset routes require authentication.
router = APIRouter(dependencies=[Depends(get_current_user)])


@limiter.limit("30/minute")
@router.post("/assets", response_model=AssetResponse, status_code=201)
def create_asset(request: Request, body: AssetCreate) -> AssetResponse:
    """Register a new asset."""
    store: InventoryStore = request.app.state.store
    asset_id = store.create_asset(
        Asset(
            name=body.name,
            type=body.type,
            ip_address=body.ip_address,
            mac_address=body.mac_address,
            operating_system=body.operating_system,
            description=body.description,
            last_scanned_at=body.last_scanned_at,
        )
    )
    return AssetResponse.from_asset(store.get_asset(asset_id))


@limiter.limit("60/minute")
@router.get("/assets", response_model=list[AssetResponse])
def list_assets(request: Request) -> list[AssetResponse]:
    """Return all assets, most recently created first."""
    store: InventoryStore = request.app.state.store
    return [AssetResponse.from_asset(a) for a in store.list_assets()]


@limiter.limit("60/minute")
@router.get("/assets/{asset_id}", response_model=AssetResponse)
def get_asset(request: Request, asset_id: ResourceId) -> AssetResponse:
    store: InventoryStore = request.app.state.store
    return AssetResponse.from_asset(store.get_asset(asset_id))


@limiter.limit("30/minute")
@router.put("/assets/{asset_id}", response_model=AssetResponse)
def update_asset(request: Request, asset_id: ResourceId, body: AssetUpdate) -> AssetResponse:
    """Update only the fields present in the request body."""
    store: InventoryStore = request.app.state.store
    return AssetResponse.from_asset(store.update_asset(asset_id, **body.model_dump(exclude_unset=True)))


@limiter.limit("30/minute")
@router.delete("/assets/{asset_id}", response_model=AssetDeleteResponse)
def delete_asset(request: Request, asset_id: ResourceId) -> AssetDeleteResponse:
    """Delete an asset. Its vulnerability links are removed with it."""
    store: InventoryStore = request.app.state.store
    deleted = store.delete_asset(asset_id)
    return AssetDeleteResponse(message="Asset deleted successfully.", asset_id=deleted)


@limiter.limit("10/minute")
@router.post("/assets/{asset_id}/scan", response_model=ScanResponse)
def scan_asset(
    request: Request,
    asset_id: ResourceId,
    user: User = Depends(get_current_user),
) -> ScanResponse:
    """Run a simulated scan that links the latest vulnerabilities to this asset.

    Existing links are refreshed (lastSeenAt advanced, status reopened);
    missing ones are created. No real network scan takes place.
    """
    scanner: ScanMerger = request.app.state.scanner
    result = scanner.scan_asset(asset_id, actor=user.username)
    if result.vulnerabilities_available:
        message = f"Simulated scan complete for asset {asset_id}."
    else:
        message = "No vulnerabilities available to link. Scan simulated but no links were created."
    return ScanResponse(
        message=message,
        asset_id=result.asset_id,
        newly_linked=result.newly_linked,
        updated_links=result.updated_links,
        vulnerabilities_processed=result.vulnerabilities_processed,
        failed=result.failed,
        vulnerabilities_available=result.vulnerabilities_available,
    )
