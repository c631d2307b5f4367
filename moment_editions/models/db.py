"""SQLAlchemy database models for moments, editions and mint records"""
import datetime

from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, ForeignKey, JSON
from sqlalchemy.orm import declarative_base

Base = declarative_base()

def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)

class MomentRecord(Base):
    """
    Read model of an uploaded moment.
    Only the attributes used for rarity scoring and metadata are kept here;
    the upload/moderation layer owns the rest.
    """
    __tablename__ = 'moments'

    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    content_type = Column(String, nullable=False, default='song')
    song_name = Column(String, nullable=True, index=True)
    performance_id = Column(String, nullable=True, index=True)
    performance_date = Column(String, nullable=True)
    venue_name = Column(String, nullable=True)
    venue_city = Column(String, nullable=True)
    media_url = Column(String, nullable=True)
    song_total_performances = Column(Integer, nullable=False, default=0)
    duration_seconds = Column(Float, nullable=True)
    audio_quality = Column(String, nullable=True)
    video_quality = Column(String, nullable=True)
    is_first_for_performance = Column(Boolean, nullable=False, default=False)
    is_first_of_type = Column(Boolean, nullable=False, default=False)
    # description, emotional_tags, special_occasion, ... keyed by field name
    metadata_fields = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

class EditionRecord(Base):
    """
    Off-chain projection of a moment's edition.
    One row per moment; minted counts mirror the chain and never gate a mint.
    """
    __tablename__ = 'editions'

    id = Column(Integer, primary_key=True)
    moment_id = Column(String, unique=True, nullable=False, index=True)
    status = Column(String, nullable=False, default='pending_creation')
    metadata_uri = Column(String, nullable=True)
    # Wei amounts exceed 64-bit integers, stored as decimal strings
    price_wei = Column(String, nullable=True)
    window_days = Column(Integer, nullable=True)
    mint_start = Column(DateTime(timezone=True), nullable=True)
    mint_end = Column(DateTime(timezone=True), nullable=True)
    max_supply = Column(Integer, nullable=False, default=0)
    onchain_rarity = Column(Integer, nullable=True)
    rarity_tier = Column(String, nullable=True)
    revenue_split_target = Column(String, nullable=True)
    contract_address = Column(String, nullable=True)
    creation_tx_hash = Column(String, nullable=True, index=True)
    # Sum of MintRecord quantities written by the recorder
    recorded_quantity = Column(Integer, nullable=False, default=0)
    # Last totalMinted read from the chain by reconciliation
    chain_minted_count = Column(Integer, nullable=False, default=0)
    # max(recorded_quantity, chain_minted_count)
    minted_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    last_reconciled_at = Column(DateTime(timezone=True), nullable=True)

class MintRecord(Base):
    """One confirmed mint transaction. The transaction hash is the idempotency key."""
    __tablename__ = 'mint_records'

    id = Column(Integer, primary_key=True)
    edition_id = Column(Integer, ForeignKey('editions.id'), nullable=False, index=True)
    moment_id = Column(String, nullable=False, index=True)
    minter_address = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    tx_hash = Column(String, unique=True, nullable=False, index=True)
    confirmed_at = Column(DateTime(timezone=True), default=_utcnow)

class ConsistencyFault(Base):
    """Ledger state the chain does not recognize, kept for manual review."""
    __tablename__ = 'consistency_faults'

    id = Column(Integer, primary_key=True)
    moment_id = Column(String, nullable=False, index=True)
    kind = Column(String, nullable=False)
    detail = Column(String, nullable=True)
    resolved = Column(Boolean, nullable=False, default=False)
    detected_at = Column(DateTime(timezone=True), default=_utcnow)
