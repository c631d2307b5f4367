"""Domain models for editions, chain views and transaction receipts"""
import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Optional

class EditionStatus(str, Enum):
    """Lifecycle of an edition row: absent -> pending_creation -> active -> ended"""
    PENDING_CREATION = 'pending_creation'
    ACTIVE = 'active'
    ENDED = 'ended'

class ReceiptStatus(str, Enum):
    CONFIRMED = 'confirmed'
    REVERTED = 'reverted'

@dataclass(frozen=True)
class MintParameters:
    """Mint parameters derived by the edition policy"""
    price_wei: int
    window_days: int
    duration_seconds: int
    max_supply: int
    onchain_rarity: int
    rarity_tier: str
    revenue_split_target: str

@dataclass(frozen=True)
class EditionView:
    """Authoritative edition state as read from the ledger contract"""
    moment_id: str
    metadata_uri: str
    price_wei: int
    mint_start: datetime.datetime
    mint_end: datetime.datetime
    max_supply: int
    total_minted: int
    rarity: int
    revenue_split_target: Optional[str] = None
    contract_address: Optional[str] = None
    creation_tx_hash: Optional[str] = None

    @property
    def duration_seconds(self) -> int:
        return int((self.mint_end - self.mint_start).total_seconds())

@dataclass(frozen=True)
class TxReceipt:
    """Receipt of a mined transaction"""
    tx_hash: str
    status: ReceiptStatus
    block_number: Optional[int] = None
    confirmed_at: Optional[datetime.datetime] = None
    revert_reason: Optional[str] = None
    # Decoded call details, when the relay provides them
    moment_id: Optional[str] = None
    method: Optional[str] = None
    quantity: Optional[int] = None
    minter: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ReceiptStatus.CONFIRMED

@dataclass
class Edition:
    """Off-chain edition snapshot returned by the ledger"""
    moment_id: str
    status: EditionStatus
    metadata_uri: Optional[str]
    price_wei: Optional[int]
    window_days: Optional[int]
    mint_start: Optional[datetime.datetime]
    mint_end: Optional[datetime.datetime]
    max_supply: int
    onchain_rarity: Optional[int]
    rarity_tier: Optional[str]
    revenue_split_target: Optional[str]
    contract_address: Optional[str]
    creation_tx_hash: Optional[str]
    recorded_quantity: int
    chain_minted_count: int
    minted_count: int
    last_reconciled_at: Optional[datetime.datetime] = None

    @property
    def exists(self) -> bool:
        """An edition exists once creation has been confirmed"""
        return self.status in (EditionStatus.ACTIVE, EditionStatus.ENDED)

    @property
    def is_active(self) -> bool:
        return self.status == EditionStatus.ACTIVE

@dataclass(frozen=True)
class MintEntry:
    """A recorded mint, as listed by the ledger"""
    tx_hash: str
    minter_address: Optional[str]
    quantity: int
    confirmed_at: Optional[datetime.datetime]
