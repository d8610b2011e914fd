"""API route handlers for plurules.

POST   /api/v1/resolve                             resolve the authoritative ruleset
GET    /api/v1/overrides/{document_id}/{zone_code} stored user corrections
PUT    /api/v1/overrides/{document_id}/{zone_code} replace them wholesale
DELETE /api/v1/overrides/{document_id}/{zone_code} reset to source values
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, HTTPException

from plurules.api.schemas import (
    ErrorResponse,
    OverrideEntryResponse,
    OverrideValuesModel,
    ResolveRequest,
    ResolveResponse,
)
from plurules.core.types import ResolutionInputs, UserOverrideEntry
from plurules.pipeline.arbitrator import arbitrate
from plurules.pipeline.coerce import normalize_zone_code
from plurules.pipeline.overrides import build_override_entry, override_key
from plurules.storage.overrides import (
    delete_override_entry,
    load_override_entry,
    save_override_entry,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["rulesets"])


def _entry_response(document_id: str, zone_code: str, entry: UserOverrideEntry) -> OverrideEntryResponse:
    return OverrideEntryResponse(
        key=override_key(document_id, zone_code),
        document_id=document_id,
        zone_code=normalize_zone_code(zone_code) or zone_code,
        updated_at=entry.updated_at,
        overrides=OverrideValuesModel.model_validate(entry.overrides.to_dict()),
    )


@router.post(
    "/resolve",
    response_model=ResolveResponse,
    responses={
        422: {"model": ErrorResponse, "description": "Invalid request body"},
        502: {"model": ErrorResponse, "description": "Override storage error"},
    },
)
async def resolve(request: ResolveRequest):
    """Resolve the ruleset for a (document, zone) from whatever sources are supplied."""
    key = override_key(request.document_id, request.zone_code)

    overrides: dict[str, UserOverrideEntry] = {}
    if request.override is not None:
        overrides[key] = build_override_entry(request.override.to_domain())
    elif request.use_stored_override:
        try:
            stored = await load_override_entry(request.document_id, request.zone_code)
        except Exception as e:
            logger.exception("Failed to load overrides for %s", key)
            raise HTTPException(status_code=502, detail=str(e))
        if stored is not None:
            overrides[key] = stored

    outcome = arbitrate(ResolutionInputs(
        document_id=request.document_id,
        commune_insee=request.commune_insee,
        zone_code=request.zone_code,
        structured_records=request.structured_records,
        extraction=request.extraction.to_domain() if request.extraction else None,
        canonical_summary=request.canonical_summary,
        active_ruleset=request.active_ruleset.to_domain() if request.active_ruleset else None,
        overrides=overrides,
    ))

    return ResolveResponse(
        origin=outcome.origin,
        overridden=outcome.overridden,
        ruleset=asdict(outcome.ruleset),
    )


@router.get(
    "/overrides/{document_id}/{zone_code}",
    response_model=OverrideEntryResponse,
    responses={
        404: {"model": ErrorResponse, "description": "No stored corrections"},
        502: {"model": ErrorResponse, "description": "Override storage error"},
    },
)
async def get_overrides(document_id: str, zone_code: str):
    """Get the stored corrections for a (document, zone)."""
    try:
        entry = await load_override_entry(document_id, zone_code)
    except Exception as e:
        logger.exception("Failed to load overrides for %s", override_key(document_id, zone_code))
        raise HTTPException(status_code=502, detail=str(e))
    if entry is None:
        raise HTTPException(status_code=404, detail="No overrides stored for this zone")
    return _entry_response(document_id, zone_code, entry)


@router.put(
    "/overrides/{document_id}/{zone_code}",
    response_model=OverrideEntryResponse,
    responses={502: {"model": ErrorResponse, "description": "Override storage error"}},
)
async def put_overrides(document_id: str, zone_code: str, body: OverrideValuesModel):
    """Replace the stored corrections for a (document, zone)."""
    entry = build_override_entry(body.to_domain())
    try:
        await save_override_entry(document_id, zone_code, entry)
    except Exception as e:
        logger.exception("Failed to save overrides for %s", override_key(document_id, zone_code))
        raise HTTPException(status_code=502, detail=str(e))
    return _entry_response(document_id, zone_code, entry)


@router.delete(
    "/overrides/{document_id}/{zone_code}",
    responses={
        404: {"model": ErrorResponse, "description": "No stored corrections"},
        502: {"model": ErrorResponse, "description": "Override storage error"},
    },
)
async def delete_overrides(document_id: str, zone_code: str):
    """Reset a (document, zone) to its source values."""
    key = override_key(document_id, zone_code)
    try:
        deleted = await delete_override_entry(document_id, zone_code)
    except Exception as e:
        logger.exception("Failed to reset overrides for %s", key)
        raise HTTPException(status_code=502, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail="No overrides stored for this zone")
    return {"status": "deleted", "key": key}
