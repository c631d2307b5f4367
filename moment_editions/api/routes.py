"""HTTP routes exposing the edition lifecycle"""
import datetime
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from moment_editions.api.dependencies import EditionServices, get_caller_id, get_services
from moment_editions.api.schemas import (
    CreateEditionRequest,
    MintRecordRequest,
    MintRequest,
    RecordCreationRequest,
)
from moment_editions.exceptions import LedgerWriteError, MomentNotFoundError, NotMomentOwnerError
from moment_editions.models.outcome import OperationOutcome, OutcomeKind
from moment_editions.services.reconciliation import outcome_for_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/moments", tags=["editions"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])
system_router = APIRouter(tags=["system"])
diagnostics_router = APIRouter(prefix="/debug", tags=["diagnostics"])

OUTCOME_STATUS_CODES = {
    OutcomeKind.CONFIRMED: 200,
    OutcomeKind.DUPLICATE: 200,
    OutcomeKind.INDETERMINATE: 202,
    OutcomeKind.DECLINED: 409,
    OutcomeKind.REJECTED: 409,
    OutcomeKind.CONSISTENCY_FAULT: 409,
    OutcomeKind.LEDGER_WRITE_FAILED: 503,
    OutcomeKind.UNAVAILABLE: 503,
}

def outcome_response(outcome: OperationOutcome, created: bool = False) -> JSONResponse:
    status_code = OUTCOME_STATUS_CODES[outcome.kind]
    if created and outcome.kind == OutcomeKind.CONFIRMED:
        status_code = 201
    return JSONResponse(status_code=status_code, content=outcome.model_dump(mode='json'))

def _raise_for_lookup(error: Exception) -> None:
    if isinstance(error, MomentNotFoundError):
        raise HTTPException(status_code=404, detail=str(error))
    if isinstance(error, NotMomentOwnerError):
        raise HTTPException(status_code=403, detail=str(error))
    raise error

@router.post("/{moment_id}/nft-edition")
async def record_edition(moment_id: str, body: RecordCreationRequest,
                         caller_id: str = Depends(get_caller_id),
                         services: EditionServices = Depends(get_services)):
    """Record an edition the owner created from their wallet, once its receipt confirms"""
    try:
        outcome = await services.lifecycle.record_client_creation(
            moment_id, caller_id, body.tx_hash,
            window_days=body.duration_days, max_supply=body.max_supply, price_wei=body.price
        )
    except (MomentNotFoundError, NotMomentOwnerError) as e:
        _raise_for_lookup(e)
    return outcome_response(outcome, created=True)

@router.post("/{moment_id}/nft-edition/create")
async def create_edition(moment_id: str, body: CreateEditionRequest,
                         caller_id: str = Depends(get_caller_id),
                         services: EditionServices = Depends(get_services)):
    """Create the edition through the server's chain gateway"""
    try:
        outcome = await services.lifecycle.create_edition(
            moment_id, caller_id, window_days=body.duration_days, max_supply=body.max_supply
        )
    except (MomentNotFoundError, NotMomentOwnerError) as e:
        _raise_for_lookup(e)
    return outcome_response(outcome, created=True)

@router.post("/{moment_id}/mint-record")
async def record_mint(moment_id: str, body: MintRecordRequest,
                      caller_id: str = Depends(get_caller_id),
                      services: EditionServices = Depends(get_services)):
    """Record a confirmed mint; repeating a transaction hash is harmless"""
    try:
        await services.lifecycle.load_moment(moment_id)
    except MomentNotFoundError as e:
        _raise_for_lookup(e)
    outcome = await services.recorder.record(moment_id, body.tx_hash, body.minter_address, body.quantity)
    return outcome_response(outcome, created=True)

@router.post("/{moment_id}/mint")
async def mint(moment_id: str, body: MintRequest,
               caller_id: str = Depends(get_caller_id),
               services: EditionServices = Depends(get_services)):
    try:
        outcome = await services.lifecycle.mint(
            moment_id, body.minter_address or caller_id, body.quantity, body.payment_value
        )
    except MomentNotFoundError as e:
        _raise_for_lookup(e)
    return outcome_response(outcome, created=True)

@router.get("/{moment_id}/nft-status")
async def nft_status(moment_id: str, services: EditionServices = Depends(get_services)) -> Dict[str, Any]:
    try:
        return await services.lifecycle.edition_status(moment_id)
    except MomentNotFoundError as e:
        _raise_for_lookup(e)
    except LedgerWriteError as e:
        raise HTTPException(status_code=503, detail=f"Ledger unavailable: {e}")

@router.get("/{moment_id}/rarity")
async def rarity(moment_id: str, services: EditionServices = Depends(get_services)) -> Dict[str, Any]:
    try:
        score = await services.lifecycle.rarity(moment_id)
    except MomentNotFoundError as e:
        _raise_for_lookup(e)
    return {'momentId': moment_id, **score.as_dict()}

@router.post("/{moment_id}/sync")
async def sync(moment_id: str, services: EditionServices = Depends(get_services)):
    """Reconcile the moment's edition with the chain"""
    try:
        await services.lifecycle.load_moment(moment_id)
    except MomentNotFoundError as e:
        _raise_for_lookup(e)
    report = await services.reconciler.reconcile(moment_id)
    return outcome_response(outcome_for_report(report))

@admin_router.get("/consistency-faults")
async def consistency_faults(include_resolved: bool = False,
                             services: EditionServices = Depends(get_services)) -> Dict[str, Any]:
    try:
        faults = await services.ledger.list_faults(include_resolved)
    except LedgerWriteError as e:
        raise HTTPException(status_code=503, detail=f"Ledger unavailable: {e}")
    for fault in faults:
        if fault['detected_at'] is not None:
            fault['detected_at'] = fault['detected_at'].isoformat()
    return {'faults': faults, 'count': len(faults)}

@system_router.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
        "service": "moment_editions"
    }

@diagnostics_router.get("/editions/{moment_id}")
async def inspect_edition(moment_id: str, services: EditionServices = Depends(get_services)) -> Dict[str, Any]:
    return await services.diagnostics.inspect(moment_id)
