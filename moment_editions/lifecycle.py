"""Edition creation and mint flows, from rarity score to ledger write"""
import dataclasses
import logging
from typing import Any, Dict, Optional

from moment_editions.exceptions import (
    ChainRejectedError,
    ChainUnavailableError,
    EditionAlreadyRecordedError,
    LedgerWriteError,
    MetadataPublishError,
    MomentNotFoundError,
    NotMomentOwnerError,
    TransactionIndeterminateError,
    WalletDeclinedError,
)
from moment_editions.metadata import build_edition_metadata
from moment_editions.models.edition import Edition, EditionView, MintParameters
from moment_editions.models.moment import Moment
from moment_editions.models.outcome import OperationOutcome, OutcomeKind
from moment_editions.policy import SECONDS_PER_DAY, EditionPolicy
from moment_editions.scoring import RarityScore, RarityScorer
from moment_editions.services.chain import CREATE_EDITION_METHOD, ChainGateway
from moment_editions.services.confirmation import wait_for_receipt
from moment_editions.services.ledger import EditionLedger
from moment_editions.services.moments import MomentStore
from moment_editions.services.publisher import MetadataPublisher
from moment_editions.services.reconciliation import ReconciliationService
from moment_editions.services.recorder import MintRecorder

logger = logging.getLogger(__name__)

def edition_summary(edition: Optional[Edition]) -> Optional[Dict[str, Any]]:
    """Edition fields returned to API callers"""
    if edition is None:
        return None
    return {
        'status': edition.status.value,
        'metadataUri': edition.metadata_uri,
        'price': str(edition.price_wei) if edition.price_wei is not None else None,
        'mintStartTime': edition.mint_start.isoformat() if edition.mint_start else None,
        'mintEndTime': edition.mint_end.isoformat() if edition.mint_end else None,
        'maxSupply': edition.max_supply,
        'mintedCount': edition.minted_count,
        'rarity': edition.onchain_rarity,
        'rarityTier': edition.rarity_tier,
        'revenueSplitTarget': edition.revenue_split_target,
        'contractAddress': edition.contract_address,
        'creationTxHash': edition.creation_tx_hash,
    }

class EditionLifecycle:
    """
    Orchestrates create and mint flows.

    Every flow returns an OperationOutcome. The ledger is written only after
    the chain confirms; declines and rejections leave it untouched, and a
    receipt that does not arrive in time triggers a reconciliation check.
    """

    def __init__(self, gateway: ChainGateway, ledger: EditionLedger, moments: MomentStore,
                 scorer: RarityScorer, policy: EditionPolicy, publisher: MetadataPublisher,
                 recorder: MintRecorder, reconciler: ReconciliationService, site_url: str,
                 confirmation_timeout: float = 120.0, poll_interval: float = 2.0):
        self.gateway = gateway
        self.ledger = ledger
        self.moments = moments
        self.scorer = scorer
        self.policy = policy
        self.publisher = publisher
        self.recorder = recorder
        self.reconciler = reconciler
        self.site_url = site_url
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval

    async def load_moment(self, moment_id: str, owner_id: Optional[str] = None) -> Moment:
        """
        Raises:
            MomentNotFoundError: Unknown moment
            NotMomentOwnerError: owner_id given and not the uploader
        """
        moment = await self.moments.get_moment(moment_id)
        if moment is None:
            raise MomentNotFoundError(f"Moment {moment_id} not found")
        if owner_id is not None and moment.owner_id != owner_id:
            raise NotMomentOwnerError(f"Moment {moment_id} is not owned by {owner_id}")
        return moment

    async def rarity(self, moment_id: str) -> RarityScore:
        moment = await self.load_moment(moment_id)
        return self.scorer.score(moment)

    async def edition_status(self, moment_id: str) -> Dict[str, Any]:
        """Fast-read edition status from the ledger"""
        await self.load_moment(moment_id)
        edition = await self.ledger.get_edition(moment_id)
        has_edition = edition is not None and edition.exists
        return {
            'momentId': moment_id,
            'hasEdition': has_edition,
            'isActive': bool(edition and edition.is_active),
            'mintedCount': edition.minted_count if has_edition else 0,
            'price': str(edition.price_wei) if has_edition and edition.price_wei is not None else None,
            'rarityTier': edition.rarity_tier if has_edition else None,
            'status': edition.status.value if edition else 'absent',
            'mintEndTime': edition.mint_end.isoformat() if has_edition and edition.mint_end else None,
            'contractAddress': edition.contract_address if has_edition else None,
            'maxSupply': edition.max_supply if has_edition else None,
        }

    async def create_edition(self, moment_id: str, owner_id: str, window_days: Optional[int] = None,
                             max_supply: Optional[int] = 0) -> OperationOutcome:
        """
        Create an edition for the owner's moment through the chain gateway.

        Raises:
            MomentNotFoundError, NotMomentOwnerError
        """
        moment = await self.load_moment(moment_id, owner_id)
        rarity = self.scorer.score(moment)

        try:
            existing = await self.ledger.get_edition(moment_id)
            if existing is not None and not existing.exists:
                # A pending marker from an earlier attempt; let the chain settle it
                await self.reconciler.reconcile(moment_id)
                existing = await self.ledger.get_edition(moment_id)
        except LedgerWriteError as e:
            return self._outcome(OutcomeKind.UNAVAILABLE, moment_id, message=f"Ledger unavailable: {e}")

        if existing is not None and not existing.exists:
            return self._outcome(OutcomeKind.INDETERMINATE, moment_id, tx_hash=existing.creation_tx_hash,
                                 message="An earlier edition creation is still unconfirmed")

        decision = self.policy.derive(rarity, moment.content_type, window_days, max_supply,
                                      edition_exists=existing is not None)
        if not decision.ok:
            return self._outcome(OutcomeKind.REJECTED, moment_id, reason=decision.error.code,
                                 message=decision.error.message)
        params = decision.parameters

        document = build_edition_metadata(moment, rarity, params, self.site_url)
        try:
            metadata_uri = await self.publisher.publish(moment_id, document)
        except MetadataPublishError as e:
            return self._outcome(OutcomeKind.UNAVAILABLE, moment_id, message=f"Metadata publishing failed: {e}")

        try:
            tx_hash = await self.gateway.create_edition(
                moment_id, metadata_uri, params.price_wei, params.duration_seconds,
                params.max_supply, params.revenue_split_target, params.onchain_rarity
            )
        except (WalletDeclinedError, ChainRejectedError, ChainUnavailableError) as e:
            return self._dispatch_failure(moment_id, 'edition creation', e)
        except TransactionIndeterminateError as e:
            return await self._indeterminate(moment_id, e.tx_hash)

        try:
            await self.ledger.mark_pending(moment_id, tx_hash)
        except LedgerWriteError as e:
            logger.warning(f"Could not mark edition for moment {moment_id} pending: {e}")

        try:
            receipt = await wait_for_receipt(self.gateway, tx_hash, self.confirmation_timeout, self.poll_interval)
        except TransactionIndeterminateError:
            return await self._indeterminate(moment_id, tx_hash, creation=True)

        if not receipt.succeeded:
            rejection = ChainRejectedError.from_revert_message(receipt.revert_reason)
            logger.info(f"Edition creation {tx_hash} for moment {moment_id} reverted: {receipt.revert_reason}")
            try:
                await self.ledger.clear_pending(moment_id, tx_hash)
            except LedgerWriteError as e:
                logger.warning(f"Pending marker for moment {moment_id} left for reconciliation: {e}")
            return self._outcome(OutcomeKind.REJECTED, moment_id, tx_hash=tx_hash,
                                 reason=rejection.reason, message=str(rejection))

        view = await self._read_view(moment_id)
        # Reconciliation may have recorded our transaction first; it is still ours
        return await self._record_creation(moment_id, tx_hash, params, view, metadata_uri, repeat_is_duplicate=False)

    async def record_client_creation(self, moment_id: str, owner_id: str, tx_hash: str,
                                     window_days: Optional[int] = None, max_supply: Optional[int] = 0,
                                     price_wei: Optional[int] = None) -> OperationOutcome:
        """
        Record an edition the owner created from their own wallet.

        The creation receipt must confirm the transaction for this moment;
        values read from the chain win over the submitted ones.

        Raises:
            MomentNotFoundError, NotMomentOwnerError
        """
        moment = await self.load_moment(moment_id, owner_id)
        try:
            existing = await self.ledger.get_edition(moment_id)
        except LedgerWriteError as e:
            return self._outcome(OutcomeKind.UNAVAILABLE, moment_id, message=f"Ledger unavailable: {e}")
        if existing is not None and existing.exists:
            if existing.creation_tx_hash == tx_hash:
                return self._outcome(OutcomeKind.DUPLICATE, moment_id, tx_hash=tx_hash,
                                     message="Edition already recorded", edition=existing)
            return self._outcome(OutcomeKind.REJECTED, moment_id, tx_hash=tx_hash,
                                 reason=ChainRejectedError.EDITION_EXISTS,
                                 message="An edition already exists for this moment")

        try:
            receipt = await self.gateway.get_receipt(tx_hash)
        except ChainUnavailableError as e:
            return self._outcome(OutcomeKind.UNAVAILABLE, moment_id, tx_hash=tx_hash, message=f"Chain unavailable: {e}")
        if receipt is None:
            return await self._indeterminate(moment_id, tx_hash)
        if not receipt.succeeded:
            rejection = ChainRejectedError.from_revert_message(receipt.revert_reason)
            return self._outcome(OutcomeKind.REJECTED, moment_id, tx_hash=tx_hash,
                                 reason=rejection.reason, message=str(rejection))
        if receipt.moment_id is not None and receipt.moment_id != moment_id:
            return self._outcome(OutcomeKind.REJECTED, moment_id, tx_hash=tx_hash,
                                 reason=ChainRejectedError.INVALID_PARAMETERS,
                                 message="Transaction does not create this moment's edition")
        if receipt.method is not None and receipt.method != CREATE_EDITION_METHOD:
            return self._outcome(OutcomeKind.REJECTED, moment_id, tx_hash=tx_hash,
                                 reason=ChainRejectedError.INVALID_PARAMETERS,
                                 message="Transaction is not an edition creation")

        rarity = self.scorer.score(moment)
        view = await self._read_view(moment_id)
        if view is not None:
            params = self._parameters_from_view(view, rarity)
        else:
            decision = self.policy.derive(rarity, moment.content_type, window_days, max_supply)
            if not decision.ok:
                return self._outcome(OutcomeKind.REJECTED, moment_id, tx_hash=tx_hash,
                                     reason=decision.error.code, message=decision.error.message)
            params = decision.parameters
            if price_wei is not None:
                params = dataclasses.replace(params, price_wei=price_wei)
        return await self._record_creation(moment_id, tx_hash, params, view, None)

    async def mint(self, moment_id: str, minter: Optional[str], quantity: int,
                   payment_value: Optional[int] = None) -> OperationOutcome:
        """
        Mint tokens of the moment's edition through the chain gateway.

        The ledger's minted count is never consulted; the chain enforces the
        window, supply and payment.

        Raises:
            MomentNotFoundError
        """
        await self.load_moment(moment_id)
        if quantity is None or quantity <= 0:
            return self._outcome(OutcomeKind.REJECTED, moment_id, reason=ChainRejectedError.INVALID_PARAMETERS,
                                 message="Quantity must be positive")

        if payment_value is None:
            price = await self._unit_price(moment_id)
            if price is None:
                return self._outcome(OutcomeKind.REJECTED, moment_id, reason=ChainRejectedError.NO_EDITION,
                                     message="No edition exists for this moment")
            payment_value = price * quantity

        try:
            tx_hash = await self.gateway.mint(moment_id, quantity, payment_value, minter)
        except (WalletDeclinedError, ChainRejectedError, ChainUnavailableError) as e:
            return self._dispatch_failure(moment_id, 'mint', e)
        except TransactionIndeterminateError as e:
            return await self._indeterminate(moment_id, e.tx_hash)

        try:
            receipt = await wait_for_receipt(self.gateway, tx_hash, self.confirmation_timeout, self.poll_interval)
        except TransactionIndeterminateError:
            return await self._indeterminate(moment_id, tx_hash)

        if not receipt.succeeded:
            rejection = ChainRejectedError.from_revert_message(receipt.revert_reason)
            logger.info(f"Mint {tx_hash} for moment {moment_id} reverted: {receipt.revert_reason}")
            return self._outcome(OutcomeKind.REJECTED, moment_id, tx_hash=tx_hash,
                                 reason=rejection.reason, message=str(rejection))

        return await self.recorder.record(moment_id, tx_hash, minter, quantity)

    async def _unit_price(self, moment_id: str) -> Optional[int]:
        try:
            edition = await self.ledger.get_edition(moment_id)
        except LedgerWriteError as e:
            logger.warning(f"Ledger read failed, using chain price for moment {moment_id}: {e}")
            edition = None
        if edition is not None and edition.exists and edition.price_wei is not None:
            return edition.price_wei
        view = await self._read_view(moment_id)
        return view.price_wei if view else None

    async def _read_view(self, moment_id: str) -> Optional[EditionView]:
        try:
            return await self.gateway.get_edition(moment_id)
        except ChainUnavailableError as e:
            logger.warning(f"Could not read edition for moment {moment_id} from chain: {e}")
            return None

    def _parameters_from_view(self, view: EditionView, rarity: RarityScore) -> MintParameters:
        window_days = round(view.duration_seconds / SECONDS_PER_DAY)
        return MintParameters(
            price_wei=view.price_wei,
            window_days=window_days,
            duration_seconds=view.duration_seconds,
            max_supply=view.max_supply,
            onchain_rarity=view.rarity,
            rarity_tier=rarity.tier.value,
            revenue_split_target=view.revenue_split_target or self.policy.split_target_for(view.rarity)
        )

    async def _record_creation(self, moment_id: str, tx_hash: str, params: MintParameters,
                               view: Optional[EditionView], metadata_uri: Optional[str],
                               repeat_is_duplicate: bool = True) -> OperationOutcome:
        try:
            created, edition = await self.ledger.record_creation(
                moment_id, tx_hash, params, view,
                metadata_uri=metadata_uri, contract_address=self.gateway.contract_address
            )
        except EditionAlreadyRecordedError as e:
            logger.error(f"Confirmed creation {tx_hash} conflicts with the ledger: {e}")
            return self._outcome(OutcomeKind.CONSISTENCY_FAULT, moment_id, tx_hash=tx_hash, message=str(e))
        except LedgerWriteError as e:
            logger.error(f"Edition {tx_hash} confirmed on-chain but not recorded: {e}")
            return self._outcome(OutcomeKind.LEDGER_WRITE_FAILED, moment_id, tx_hash=tx_hash,
                                 message="Edition created on-chain but not recorded; run sync to repair")
        if not created and repeat_is_duplicate:
            return self._outcome(OutcomeKind.DUPLICATE, moment_id, tx_hash=tx_hash, edition=edition,
                                 message="Edition already recorded")
        return self._outcome(OutcomeKind.CONFIRMED, moment_id, tx_hash=tx_hash, edition=edition,
                             message="Edition created")

    async def _indeterminate(self, moment_id: str, tx_hash: Optional[str],
                             creation: bool = False) -> OperationOutcome:
        """
        Check the chain before reporting an unconfirmed transaction.

        A creation whose edition the chain already shows, with this
        transaction as its creator, is reported confirmed.
        """
        report = await self.reconciler.reconcile(moment_id)
        if creation and tx_hash and report.chain_has_edition:
            try:
                edition = await self.ledger.get_edition(moment_id)
            except LedgerWriteError:
                edition = None
            if edition is not None and edition.exists and edition.creation_tx_hash == tx_hash:
                logger.info(f"Edition creation {tx_hash} for moment {moment_id} confirmed by reconciliation")
                outcome = self._outcome(OutcomeKind.CONFIRMED, moment_id, tx_hash=tx_hash, edition=edition,
                                        message="Edition created")
                outcome.reconciliation = report
                return outcome
        logger.warning(f"Transaction {tx_hash or '<unknown>'} for moment {moment_id} is unconfirmed; "
                       f"reconcile reported {report.action.value}")
        return OperationOutcome(
            kind=OutcomeKind.INDETERMINATE,
            moment_id=moment_id,
            tx_hash=tx_hash,
            message="Transaction not confirmed yet; re-check the edition status later",
            minted_count=report.minted_count_after,
            reconciliation=report
        )

    def _dispatch_failure(self, moment_id: str, action: str, error: Exception) -> OperationOutcome:
        if isinstance(error, WalletDeclinedError):
            logger.info(f"Signer declined {action} for moment {moment_id}")
            return self._outcome(OutcomeKind.DECLINED, moment_id, message="Transaction was declined")
        if isinstance(error, ChainRejectedError):
            logger.info(f"Chain rejected {action} for moment {moment_id}: {error.reason}")
            return self._outcome(OutcomeKind.REJECTED, moment_id, reason=error.reason, message=str(error))
        logger.warning(f"Chain unavailable for {action} of moment {moment_id}: {error}")
        return self._outcome(OutcomeKind.UNAVAILABLE, moment_id, message=f"Chain unavailable: {error}")

    @staticmethod
    def _outcome(kind: OutcomeKind, moment_id: str, tx_hash: Optional[str] = None,
                 reason: Optional[str] = None, message: str = '',
                 edition: Optional[Edition] = None) -> OperationOutcome:
        return OperationOutcome(
            kind=kind,
            moment_id=moment_id,
            tx_hash=tx_hash,
            reason=reason,
            message=message,
            minted_count=edition.minted_count if edition else None,
            edition=edition_summary(edition)
        )
