"""Typed outcomes returned by every I/O-boundary operation"""
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

class OutcomeKind(str, Enum):
    CONFIRMED = 'confirmed'
    DUPLICATE = 'duplicate'
    DECLINED = 'declined'
    REJECTED = 'rejected'
    INDETERMINATE = 'indeterminate'
    LEDGER_WRITE_FAILED = 'ledger_write_failed'
    CONSISTENCY_FAULT = 'consistency_fault'
    UNAVAILABLE = 'unavailable'

class ReconcileAction(str, Enum):
    IN_SYNC = 'in_sync'
    REPAIRED = 'repaired'
    ABSENT = 'absent'
    PENDING = 'pending'
    CONSISTENCY_FAULT = 'consistency_fault'
    UNAVAILABLE = 'unavailable'

class ReconcileReport(BaseModel):
    """Result of reconciling one moment's edition against the chain"""
    moment_id: str
    action: ReconcileAction
    chain_has_edition: bool = False
    ledger_status: Optional[str] = None
    minted_count_before: Optional[int] = None
    minted_count_after: Optional[int] = None
    chain_total_minted: Optional[int] = None
    detail: Optional[str] = None

class OperationOutcome(BaseModel):
    """
    Outcome of a create, mint, record or reconcile operation.

    kind distinguishes user-declined, chain-rejected, indeterminate,
    off-chain write failure and consistency fault from success, so callers
    never have to interpret a generic failure.
    """
    kind: OutcomeKind
    moment_id: str
    tx_hash: Optional[str] = None
    reason: Optional[str] = Field(None, description="Chain rejection reason code")
    message: str = ''
    minted_count: Optional[int] = None
    edition: Optional[Dict[str, Any]] = None
    reconciliation: Optional[ReconcileReport] = None

    @property
    def ok(self) -> bool:
        return self.kind in (OutcomeKind.CONFIRMED, OutcomeKind.DUPLICATE)
