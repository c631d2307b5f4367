"""Pull authoritative chain state into the edition ledger"""
import datetime
import logging
from typing import List, Optional

from moment_editions.exceptions import ChainUnavailableError, LedgerWriteError
from moment_editions.models.edition import Edition, EditionStatus, EditionView
from moment_editions.models.outcome import OperationOutcome, OutcomeKind, ReconcileAction, ReconcileReport
from moment_editions.scoring import RarityScorer
from moment_editions.services.chain import ChainGateway
from moment_editions.services.ledger import EditionLedger
from moment_editions.services.moments import MomentStore

logger = logging.getLogger(__name__)

FAULT_EDITION_MISSING_ON_CHAIN = 'edition_missing_on_chain'
FAULT_LEDGER_AHEAD_OF_CHAIN = 'ledger_ahead_of_chain'
FAULT_RECEIPT_WITHOUT_EDITION = 'receipt_without_edition'

def _diverges(edition: Edition, view: EditionView, total_minted: int, active: bool) -> bool:
    expected_status = (EditionStatus.ENDED
                       if edition.status == EditionStatus.ENDED or not active
                       else EditionStatus.ACTIVE)
    return any((
        edition.status != expected_status,
        edition.minted_count != total_minted,
        edition.chain_minted_count != total_minted,
        edition.price_wei != view.price_wei,
        edition.max_supply != view.max_supply,
        edition.onchain_rarity != view.rarity,
        edition.mint_end != view.mint_end,
        bool(view.metadata_uri) and edition.metadata_uri != view.metadata_uri,
        bool(view.creation_tx_hash) and edition.creation_tx_hash != view.creation_tx_hash,
    ))

def outcome_for_report(report: ReconcileReport) -> OperationOutcome:
    """Express a reconcile report as an operation outcome"""
    if report.action == ReconcileAction.CONSISTENCY_FAULT:
        kind = OutcomeKind.CONSISTENCY_FAULT
    elif report.action == ReconcileAction.UNAVAILABLE:
        kind = OutcomeKind.UNAVAILABLE
    else:
        kind = OutcomeKind.CONFIRMED
    return OperationOutcome(
        kind=kind,
        moment_id=report.moment_id,
        message=report.detail or report.action.value,
        minted_count=report.minted_count_after,
        reconciliation=report
    )

class ReconciliationService:
    """
    Repairs the ledger from chain reads.

    The chain always wins: missing or stale rows are overwritten with chain
    values. Ledger state the chain does not know is stored as a consistency
    fault and never deleted. Safe to run repeatedly and concurrently.
    """

    def __init__(self, gateway: ChainGateway, ledger: EditionLedger,
                 moments: Optional[MomentStore] = None, scorer: Optional[RarityScorer] = None):
        self.gateway = gateway
        self.ledger = ledger
        self.moments = moments
        self.scorer = scorer

    async def reconcile(self, moment_id: str, now: Optional[datetime.datetime] = None) -> ReconcileReport:
        try:
            return await self._reconcile(moment_id, now)
        except ChainUnavailableError as e:
            logger.warning(f"Reconcile of moment {moment_id} skipped, chain unavailable: {e}")
            return ReconcileReport(moment_id=moment_id, action=ReconcileAction.UNAVAILABLE,
                                   detail=f"Chain unavailable: {e}")
        except LedgerWriteError as e:
            logger.error(f"Reconcile of moment {moment_id} failed, ledger unavailable: {e}")
            return ReconcileReport(moment_id=moment_id, action=ReconcileAction.UNAVAILABLE,
                                   detail=f"Ledger unavailable: {e}")

    async def _reconcile(self, moment_id: str, now: Optional[datetime.datetime]) -> ReconcileReport:
        edition = await self.ledger.get_edition(moment_id, now)
        view = await self.gateway.get_edition(moment_id)

        if view is None:
            return await self._reconcile_without_chain_edition(moment_id, edition)

        total_minted = await self.gateway.total_minted(moment_id)
        active = await self.gateway.is_active(moment_id)
        report = ReconcileReport(
            moment_id=moment_id,
            action=ReconcileAction.IN_SYNC,
            chain_has_edition=True,
            ledger_status=edition.status.value if edition else None,
            minted_count_before=edition.minted_count if edition else None,
            chain_total_minted=total_minted
        )

        if edition is not None and edition.exists and not _diverges(edition, view, total_minted, active):
            await self.ledger.touch_reconciled(moment_id, now)
            report.minted_count_after = edition.minted_count
            after = edition
        else:
            tier = edition.rarity_tier if edition and edition.rarity_tier else await self._tier_for(moment_id)
            _, after = await self.ledger.apply_chain_state(moment_id, view, total_minted, active, tier, now)
            report.action = ReconcileAction.REPAIRED
            report.minted_count_after = after.minted_count
            report.detail = ("Restored edition from chain" if edition is None or not edition.exists
                             else "Updated edition from chain")
            logger.info(f"Reconciled moment {moment_id}: {report.detail}, "
                        f"minted {report.minted_count_before} -> {after.minted_count}")

        if after.recorded_quantity > total_minted:
            detail = f"Recorded mints total {after.recorded_quantity}, chain reports {total_minted}"
            await self.ledger.record_fault(moment_id, FAULT_LEDGER_AHEAD_OF_CHAIN, detail)
            report.action = ReconcileAction.CONSISTENCY_FAULT
            report.detail = detail
        report.ledger_status = after.status.value
        return report

    async def _reconcile_without_chain_edition(self, moment_id: str,
                                               edition: Optional[Edition]) -> ReconcileReport:
        if edition is None:
            return ReconcileReport(moment_id=moment_id, action=ReconcileAction.ABSENT,
                                   detail="No edition on chain or in ledger")

        report = ReconcileReport(
            moment_id=moment_id,
            action=ReconcileAction.PENDING,
            ledger_status=edition.status.value,
            minted_count_before=edition.minted_count,
            minted_count_after=edition.minted_count
        )

        if edition.status == EditionStatus.PENDING_CREATION:
            receipt = await self.gateway.get_receipt(edition.creation_tx_hash) if edition.creation_tx_hash else None
            if receipt is None:
                report.detail = "Creation transaction not confirmed yet"
                return report
            if not receipt.succeeded:
                await self.ledger.clear_pending(moment_id, edition.creation_tx_hash)
                report.action = ReconcileAction.ABSENT
                report.ledger_status = None
                report.minted_count_after = None
                report.detail = f"Creation transaction reverted: {receipt.revert_reason or 'no reason'}"
                logger.info(f"Cleared pending edition for moment {moment_id}: {report.detail}")
                return report
            detail = f"Creation {edition.creation_tx_hash} confirmed but chain has no edition"
            await self.ledger.record_fault(moment_id, FAULT_RECEIPT_WITHOUT_EDITION, detail)
            report.action = ReconcileAction.CONSISTENCY_FAULT
            report.detail = detail
            return report

        detail = f"Ledger shows a {edition.status.value} edition the chain does not know"
        await self.ledger.record_fault(moment_id, FAULT_EDITION_MISSING_ON_CHAIN, detail)
        report.action = ReconcileAction.CONSISTENCY_FAULT
        report.detail = detail
        return report

    async def flag_orphan_mint(self, moment_id: str, tx_hash: str) -> None:
        """A confirmed mint receipt exists for a moment whose edition the chain does not show"""
        await self.ledger.record_fault(moment_id, FAULT_RECEIPT_WITHOUT_EDITION,
                                       f"Mint {tx_hash} confirmed but no edition found")

    async def _tier_for(self, moment_id: str) -> Optional[str]:
        if self.moments is None or self.scorer is None:
            return None
        moment = await self.moments.get_moment(moment_id)
        if moment is None:
            return None
        return self.scorer.score(moment).tier.value

    async def reconcile_all(self) -> List[ReconcileReport]:
        """Reconcile every moment that has a ledger row"""
        moment_ids = await self.ledger.list_moment_ids()
        logger.info(f"Reconciling {len(moment_ids)} editions")
        reports = []
        for moment_id in moment_ids:
            reports.append(await self.reconcile(moment_id))
        return reports
