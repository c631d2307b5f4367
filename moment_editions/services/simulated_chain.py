"""In-process edition contract used for local development and tests"""
import asyncio
import datetime
import logging
import secrets
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from moment_editions.exceptions import (
    ChainRejectedError,
    ChainUnavailableError,
    WalletDeclinedError,
)
from moment_editions.models.edition import EditionView, ReceiptStatus, TxReceipt
from moment_editions.services.chain import CREATE_EDITION_METHOD, MINT_METHOD, ChainGateway

logger = logging.getLogger(__name__)

SIMULATED_CONTRACT_ADDRESS = '0x' + '5e' * 20

def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)

@dataclass
class _ChainEdition:
    moment_id: str
    metadata_uri: str
    price_wei: int
    mint_start: datetime.datetime
    mint_end: datetime.datetime
    max_supply: int
    rarity: int
    revenue_split_target: str
    creation_tx_hash: str
    total_minted: int = 0

class SimulatedChainGateway(ChainGateway):
    """
    Contract semantics without a chain: one edition per moment, mint window,
    supply and payment checks, and a receipt for every broadcast.

    Faults can be queued for the next call:
        decline_next()       the signer declines
        fail_next_call()     the node is unreachable
        drop_next_receipt()  the transaction is mined but its receipt is withheld
        revert_next(reason)  the transaction is broadcast and then reverts
    """

    def __init__(self, contract_address: str = SIMULATED_CONTRACT_ADDRESS,
                 clock: Optional[Callable[[], datetime.datetime]] = None):
        self.contract_address = contract_address
        self.clock = clock or _utcnow
        self.editions: Dict[str, _ChainEdition] = {}
        self.receipts: Dict[str, TxReceipt] = {}
        self.withheld_receipts: Dict[str, TxReceipt] = {}
        self.block_number = 0
        self._lock = asyncio.Lock()
        self._decline_next = False
        self._fail_next = False
        self._drop_next_receipt = False
        self._revert_next: Optional[str] = None

    def decline_next(self) -> None:
        self._decline_next = True

    def fail_next_call(self) -> None:
        self._fail_next = True

    def drop_next_receipt(self) -> None:
        self._drop_next_receipt = True

    def revert_next(self, reason: str = 'execution reverted') -> None:
        self._revert_next = reason

    def release_receipts(self) -> None:
        """Make withheld receipts observable"""
        self.receipts.update(self.withheld_receipts)
        self.withheld_receipts.clear()

    def _check_available(self) -> None:
        if self._fail_next:
            self._fail_next = False
            raise ChainUnavailableError("Simulated node unreachable")

    def _check_signature(self) -> None:
        if self._decline_next:
            self._decline_next = False
            logger.info("Simulated signer declined the transaction")
            raise WalletDeclinedError("User rejected the request.")

    def _mine(self, method: str, moment_id: str, succeeded: bool, revert_reason: Optional[str] = None,
              quantity: Optional[int] = None, minter: Optional[str] = None) -> str:
        tx_hash = '0x' + secrets.token_hex(32)
        self.block_number += 1
        receipt = TxReceipt(
            tx_hash=tx_hash,
            status=ReceiptStatus.CONFIRMED if succeeded else ReceiptStatus.REVERTED,
            block_number=self.block_number,
            confirmed_at=self.clock(),
            revert_reason=revert_reason,
            moment_id=moment_id,
            method=method,
            quantity=quantity,
            minter=minter
        )
        if self._drop_next_receipt:
            self._drop_next_receipt = False
            self.withheld_receipts[tx_hash] = receipt
        else:
            self.receipts[tx_hash] = receipt
        return tx_hash

    def _take_revert(self) -> Optional[str]:
        reason, self._revert_next = self._revert_next, None
        return reason

    async def create_edition(self, moment_id: str, metadata_uri: str, price_wei: int,
                             duration_seconds: int, max_supply: int,
                             revenue_split_target: str, rarity: int) -> str:
        async with self._lock:
            self._check_available()
            if moment_id in self.editions:
                raise ChainRejectedError(ChainRejectedError.EDITION_EXISTS, "Edition already exists")
            if duration_seconds <= 0 or not 1 <= rarity <= 7 or max_supply < 0:
                raise ChainRejectedError(ChainRejectedError.INVALID_PARAMETERS, "Invalid edition parameters")
            self._check_signature()

            revert_reason = self._take_revert()
            if revert_reason:
                return self._mine(CREATE_EDITION_METHOD, moment_id, False, revert_reason)

            tx_hash = self._mine(CREATE_EDITION_METHOD, moment_id, True)
            start = self.clock()
            self.editions[moment_id] = _ChainEdition(
                moment_id=moment_id,
                metadata_uri=metadata_uri,
                price_wei=price_wei,
                mint_start=start,
                mint_end=start + datetime.timedelta(seconds=duration_seconds),
                max_supply=max_supply,
                rarity=rarity,
                revenue_split_target=revenue_split_target,
                creation_tx_hash=tx_hash
            )
            logger.debug(f"Simulated edition created for moment {moment_id} in {tx_hash}")
            return tx_hash

    async def mint(self, moment_id: str, quantity: int, payment_value: int,
                   minter: Optional[str] = None) -> str:
        async with self._lock:
            self._check_available()
            edition = self.editions.get(moment_id)
            if edition is None:
                raise ChainRejectedError(ChainRejectedError.NO_EDITION, "Edition does not exist")
            if quantity <= 0:
                raise ChainRejectedError(ChainRejectedError.INVALID_PARAMETERS, "Quantity must be positive")
            if not self._within_window(edition):
                raise ChainRejectedError(ChainRejectedError.MINT_INACTIVE, "Minting not active")
            if edition.max_supply and edition.total_minted + quantity > edition.max_supply:
                raise ChainRejectedError(ChainRejectedError.SUPPLY_EXHAUSTED, "Exceeds max supply")
            if payment_value < edition.price_wei * quantity:
                raise ChainRejectedError(ChainRejectedError.INSUFFICIENT_PAYMENT, "Insufficient payment")
            self._check_signature()

            revert_reason = self._take_revert()
            if revert_reason:
                return self._mine(MINT_METHOD, moment_id, False, revert_reason, quantity, minter)

            edition.total_minted += quantity
            return self._mine(MINT_METHOD, moment_id, True, quantity=quantity, minter=minter)

    def _within_window(self, edition: _ChainEdition) -> bool:
        return edition.mint_start <= self.clock() < edition.mint_end

    async def get_edition(self, moment_id: str) -> Optional[EditionView]:
        self._check_available()
        edition = self.editions.get(moment_id)
        if edition is None:
            return None
        return EditionView(
            moment_id=edition.moment_id,
            metadata_uri=edition.metadata_uri,
            price_wei=edition.price_wei,
            mint_start=edition.mint_start,
            mint_end=edition.mint_end,
            max_supply=edition.max_supply,
            total_minted=edition.total_minted,
            rarity=edition.rarity,
            revenue_split_target=edition.revenue_split_target,
            contract_address=self.contract_address,
            creation_tx_hash=edition.creation_tx_hash
        )

    async def is_active(self, moment_id: str) -> bool:
        self._check_available()
        edition = self.editions.get(moment_id)
        if edition is None:
            return False
        if edition.max_supply and edition.total_minted >= edition.max_supply:
            return False
        return self._within_window(edition)

    async def total_minted(self, moment_id: str) -> int:
        self._check_available()
        edition = self.editions.get(moment_id)
        return edition.total_minted if edition else 0

    async def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        self._check_available()
        return self.receipts.get(tx_hash)
