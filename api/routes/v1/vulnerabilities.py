"""
api/routes/v1/vulnerabilities.py -- Vulnerability catalogue routes.

Routes:
  POST   /vulnerabilities                      -- create (409 on duplicate name)
  GET    /vulnerabilities                      -- list, critical first
  GET    /vulnerabilities/{vulnerability_id}   -- detail
  PUT    /vulnerabilities/{vulnerability_id}   -- partial update (409 on rename clash)
  DELETE /vulnerabilities/{vulnerability_id}   -- delete; links to it go too
"""

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import (
    ResourceId,
    VulnerabilityCreate,
    VulnerabilityDeleteResponse,
    VulnerabilityResponse,
    VulnerabilityUpdate,
)
from auth.dependencies import get_current_user
from inventory.models import Vulnerability
from inventory.store import InventoryStore

router = APIRouter(dependencies=[Depends(get_current_user)])


@limiter.limit("30/minute")
@router.post("/vulnerabilities", response_model=VulnerabilityResponse, status_code=201)
def create_vulnerability(request: Request, body: VulnerabilityCreate) -> VulnerabilityResponse:
    store: InventoryStore = request.app.state.store
    vuln_id = store.create_vulnerability(
        Vulnerability(
            name=body.name,
            description=body.description,
            severity=body.severity,
            cvss_score=body.cvss_score,
            source=body.source,
            references=body.references,
        )
    )
    return VulnerabilityResponse.from_vulnerability(store.get_vulnerability(vuln_id))


@limiter.limit("60/minute")
@router.get("/vulnerabilities", response_model=list[VulnerabilityResponse])
def list_vulnerabilities(request: Request) -> list[VulnerabilityResponse]:
    """Return all vulnerabilities ordered by severity, then newest first."""
    store: InventoryStore = request.app.state.store
    return [VulnerabilityResponse.from_vulnerability(v) for v in store.list_vulnerabilities()]


@limiter.limit("60/minute")
@router.get("/vulnerabilities/{vulnerability_id}", response_model=VulnerabilityResponse)
def get_vulnerability(request: Request, vulnerability_id: ResourceId) -> VulnerabilityResponse:
    store: InventoryStore = request.app.state.store
    return VulnerabilityResponse.from_vulnerability(store.get_vulnerability(vulnerability_id))


@limiter.limit("30/minute")
@router.put("/vulnerabilities/{vulnerability_id}", response_model=VulnerabilityResponse)
def update_vulnerability(
    request: Request, vulnerability_id: ResourceId, body: VulnerabilityUpdate
) -> VulnerabilityResponse:
    store: InventoryStore = request.app.state.store
    updated = store.update_vulnerability(vulnerability_id, **body.model_dump(exclude_unset=True))
    return VulnerabilityResponse.from_vulnerability(updated)


@limiter.limit("30/minute")
@router.delete("/vulnerabilities/{vulnerability_id}", response_model=VulnerabilityDeleteResponse)
def delete_vulnerability(request: Request, vulnerability_id: ResourceId) -> VulnerabilityDeleteResponse:
    """Delete a vulnerability. Every asset link to it is removed as well."""
    store: InventoryStore = request.app.state.store
    deleted = store.delete_vulnerability(vulnerability_id)
    return VulnerabilityDeleteResponse(message="Vulnerability deleted successfully.", vulnerability_id=deleted)
