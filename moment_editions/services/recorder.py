"""Recording of confirmed mints into the edition ledger"""
import logging
from typing import Optional

from moment_editions.exceptions import (
    ChainUnavailableError,
    ChainRejectedError,
    EditionNotFoundError,
    LedgerWriteError,
)
from moment_editions.models.outcome import OperationOutcome, OutcomeKind, ReconcileAction
from moment_editions.services.chain import MINT_METHOD, ChainGateway
from moment_editions.services.ledger import EditionLedger
from moment_editions.services.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)

class MintRecorder:
    """Appends confirmed mints to the ledger, idempotently by transaction hash"""

    def __init__(self, gateway: ChainGateway, ledger: EditionLedger,
                 reconciler: Optional[ReconciliationService] = None):
        self.gateway = gateway
        self.ledger = ledger
        self.reconciler = reconciler

    async def record(self, moment_id: str, tx_hash: str, minter: Optional[str],
                     quantity: int, verify: bool = True) -> OperationOutcome:
        """
        Record a mint transaction.

        With verify, the transaction receipt decides: no receipt yet is
        indeterminate, a revert or a receipt for another moment is rejected,
        and the receipt's quantity and minter replace the caller's values.

        Args:
            moment_id: Moment the edition belongs to
            tx_hash: Mint transaction hash
            minter: Minter address reported by the caller
            quantity: Quantity reported by the caller
            verify: Check the receipt before writing

        Returns:
            OperationOutcome of kind confirmed, duplicate, indeterminate,
            rejected, unavailable, ledger_write_failed or consistency_fault
        """
        if verify:
            try:
                receipt = await self.gateway.get_receipt(tx_hash)
            except ChainUnavailableError as e:
                logger.warning(f"Could not verify mint {tx_hash}: {e}")
                return OperationOutcome(kind=OutcomeKind.UNAVAILABLE, moment_id=moment_id, tx_hash=tx_hash,
                                        message=f"Chain unavailable: {e}")
            if receipt is None:
                return OperationOutcome(kind=OutcomeKind.INDETERMINATE, moment_id=moment_id, tx_hash=tx_hash,
                                        message="Mint transaction is not confirmed yet")
            if not receipt.succeeded:
                logger.info(f"Mint {tx_hash} for moment {moment_id} reverted: {receipt.revert_reason}")
                rejection = ChainRejectedError.from_revert_message(receipt.revert_reason)
                return OperationOutcome(kind=OutcomeKind.REJECTED, moment_id=moment_id, tx_hash=tx_hash,
                                        reason=rejection.reason, message=str(rejection))
            if receipt.moment_id is not None and receipt.moment_id != moment_id:
                logger.warning(f"Mint {tx_hash} belongs to moment {receipt.moment_id}, not {moment_id}")
                return OperationOutcome(kind=OutcomeKind.REJECTED, moment_id=moment_id, tx_hash=tx_hash,
                                        reason=ChainRejectedError.INVALID_PARAMETERS,
                                        message="Transaction does not mint this moment")
            if receipt.method is not None and receipt.method != MINT_METHOD:
                logger.warning(f"Transaction {tx_hash} calls {receipt.method}, not a mint")
                return OperationOutcome(kind=OutcomeKind.REJECTED, moment_id=moment_id, tx_hash=tx_hash,
                                        reason=ChainRejectedError.INVALID_PARAMETERS,
                                        message="Transaction is not a mint")
            if receipt.quantity is not None:
                quantity = receipt.quantity
            minter = receipt.minter or minter

        if quantity is None or quantity <= 0:
            return OperationOutcome(kind=OutcomeKind.REJECTED, moment_id=moment_id, tx_hash=tx_hash,
                                    reason=ChainRejectedError.INVALID_PARAMETERS,
                                    message="Quantity must be positive")

        try:
            try:
                recorded, edition = await self.ledger.record_mint(moment_id, minter, quantity, tx_hash)
            except EditionNotFoundError as e:
                if not (verify and self.reconciler):
                    return OperationOutcome(kind=OutcomeKind.REJECTED, moment_id=moment_id, tx_hash=tx_hash,
                                            reason=ChainRejectedError.NO_EDITION, message=str(e))
                # The mint is confirmed, so the ledger is behind the chain
                report = await self.reconciler.reconcile(moment_id)
                if report.action == ReconcileAction.UNAVAILABLE:
                    return OperationOutcome(kind=OutcomeKind.UNAVAILABLE, moment_id=moment_id, tx_hash=tx_hash,
                                            reconciliation=report, message=report.detail or '')
                if not report.chain_has_edition:
                    await self.reconciler.flag_orphan_mint(moment_id, tx_hash)
                    return OperationOutcome(kind=OutcomeKind.CONSISTENCY_FAULT, moment_id=moment_id,
                                            tx_hash=tx_hash, reconciliation=report,
                                            message="Mint confirmed for an edition the chain does not show")
                recorded, edition = await self.ledger.record_mint(moment_id, minter, quantity, tx_hash)
        except LedgerWriteError as e:
            logger.error(f"Ledger write failed for confirmed mint {tx_hash}: {e}")
            return OperationOutcome(kind=OutcomeKind.LEDGER_WRITE_FAILED, moment_id=moment_id, tx_hash=tx_hash,
                                    message="Mint confirmed on-chain but not recorded; run sync to repair")

        return OperationOutcome(
            kind=OutcomeKind.CONFIRMED if recorded else OutcomeKind.DUPLICATE,
            moment_id=moment_id,
            tx_hash=tx_hash,
            minted_count=edition.minted_count if edition else None,
            message="Mint recorded" if recorded else "Mint already recorded"
        )
