"""Licenses router: admin issuance/revocation/listing and key validation."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from license_server.auth.dependencies import (
    get_license_service,
    require_admin_secret,
    require_validate_access,
)
from license_server.schemas.licenses import (
    LicenseCreateRequest, LicenseCreateResponse,
    LicenseRevokeRequest, LicenseRevokeResponse,
    LicenseResponse, LicenseValidateRequest, LicenseValidationResponse,
)
from license_server.services.license_service import LicenseService

router = APIRouter()


@router.post(
    "/api/create",
    response_model=LicenseCreateResponse,
    dependencies=[Depends(require_admin_secret)],
)
async def create_license(
    license_data: LicenseCreateRequest,
    service: LicenseService = Depends(get_license_service),
):
    """
    Issue a license for an owner.

    - Generates a fresh key (retrying on collision)
    - Persists the record
    - Notifies the owner best-effort
    - Returns the plaintext key (also shown to admins by list and lookup)
    """
    license_obj = await service.create(
        owner=license_data.owner,
        expires_at=license_data.expires_at,
        notes=license_data.notes,
    )
    return LicenseCreateResponse(
        key=license_obj.key,
        owner=license_obj.owner,
        expires_at=license_obj.expires_at,
    )


@router.post(
    "/api/revoke",
    response_model=LicenseRevokeResponse,
    dependencies=[Depends(require_admin_secret)],
)
async def revoke_license(
    revoke_data: LicenseRevokeRequest,
    service: LicenseService = Depends(get_license_service),
):
    """Revoke a key. Revoking an already revoked key reports it and changes nothing."""
    result = await service.revoke(revoke_data.key)
    return LicenseRevokeResponse(
        key=service.codec.normalize(revoke_data.key),
        status=result.value,
    )


@router.get(
    "/api/list",
    response_model=list[LicenseResponse],
    dependencies=[Depends(require_admin_secret)],
)
async def list_licenses(
    limit: Optional[int] = Query(None, ge=0),
    service: LicenseService = Depends(get_license_service),
):
    """List licenses, most recent first. ``limit=0`` returns everything."""
    return await service.list_licenses(limit)


@router.get(
    "/api/lookup",
    response_model=list[LicenseResponse],
    dependencies=[Depends(require_admin_secret)],
)
async def lookup_licenses(
    owner: str = Query(..., min_length=1),
    service: LicenseService = Depends(get_license_service),
):
    """Licenses belonging to one owner, most recent first."""
    return await service.lookup(owner)


@router.post(
    "/api/validate",
    response_model=LicenseValidationResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_validate_access)],
)
async def validate_license(
    validate_data: LicenseValidateRequest,
    request: Request,
    service: LicenseService = Depends(get_license_service),
):
    """
    Validate a license key.
    Called by downstream consumers holding only a key.
    Records the requesting address on the first successful validation.
    """
    address = validate_data.ip or (request.client.host if request.client else None)
    outcome = await service.validate(validate_data.key, address)
    return LicenseValidationResponse(
        valid=outcome.valid,
        reason=outcome.reason.value if outcome.reason else None,
        owner=outcome.owner,
    )
