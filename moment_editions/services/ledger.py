"""Off-chain projection of editions and mint records"""
import asyncio
import datetime
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from moment_editions.db import Database
from moment_editions.exceptions import (
    EditionAlreadyRecordedError,
    EditionNotFoundError,
    LedgerWriteError,
)
from moment_editions.models.db import ConsistencyFault, EditionRecord, MintRecord
from moment_editions.models.edition import (
    Edition,
    EditionStatus,
    EditionView,
    MintEntry,
    MintParameters,
)

logger = logging.getLogger(__name__)

def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)

def _as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """SQLite hands back naive datetimes; they were written as UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=datetime.UTC)

def _to_edition(row: EditionRecord) -> Edition:
    return Edition(
        moment_id=row.moment_id,
        status=EditionStatus(row.status),
        metadata_uri=row.metadata_uri,
        price_wei=int(row.price_wei) if row.price_wei is not None else None,
        window_days=row.window_days,
        mint_start=_as_utc(row.mint_start),
        mint_end=_as_utc(row.mint_end),
        max_supply=row.max_supply or 0,
        onchain_rarity=row.onchain_rarity,
        rarity_tier=row.rarity_tier,
        revenue_split_target=row.revenue_split_target,
        contract_address=row.contract_address,
        creation_tx_hash=row.creation_tx_hash,
        recorded_quantity=row.recorded_quantity or 0,
        chain_minted_count=row.chain_minted_count or 0,
        minted_count=row.minted_count or 0,
        last_reconciled_at=_as_utc(row.last_reconciled_at)
    )

def _has_ended(row: EditionRecord, now: datetime.datetime) -> bool:
    mint_end = _as_utc(row.mint_end)
    if mint_end is not None and now >= mint_end:
        return True
    return bool(row.max_supply) and (row.minted_count or 0) >= row.max_supply

class EditionLedger:
    """
    Read-optimised mirror of on-chain edition state.

    Only the write paths below change status or minted counts. Every public
    method is a coroutine running one short session on a worker thread.
    Database failures are rolled back and raised as LedgerWriteError.
    """

    def __init__(self, database: Database):
        self.database = database

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except SQLAlchemyError as e:
            logger.error(f"Ledger database error in {func.__name__}: {e}")
            raise LedgerWriteError(str(e)) from e

    @staticmethod
    def _row_for(session: Session, moment_id: str) -> Optional[EditionRecord]:
        return session.query(EditionRecord).filter_by(moment_id=moment_id).first()

    # Writes

    async def mark_pending(self, moment_id: str, tx_hash: str) -> bool:
        """
        Record that a createEdition transaction was dispatched.

        Returns:
            False when a row already exists; it is left untouched.
        """
        try:
            return await self._run(self._mark_pending, moment_id, tx_hash)
        except LedgerWriteError as e:
            if isinstance(e.__cause__, IntegrityError):
                logger.info(f"Edition row for moment {moment_id} appeared concurrently, not marking pending")
                return False
            raise

    def _mark_pending(self, moment_id: str, tx_hash: str) -> bool:
        with self.database.session() as session:
            if self._row_for(session, moment_id) is not None:
                return False
            session.add(EditionRecord(
                moment_id=moment_id,
                status=EditionStatus.PENDING_CREATION.value,
                creation_tx_hash=tx_hash
            ))
            logger.info(f"Marked edition for moment {moment_id} as pending ({tx_hash})")
            return True

    async def clear_pending(self, moment_id: str, tx_hash: Optional[str] = None) -> bool:
        """Remove a pending marker, only if it belongs to the given transaction"""
        return await self._run(self._clear_pending, moment_id, tx_hash)

    def _clear_pending(self, moment_id: str, tx_hash: Optional[str]) -> bool:
        with self.database.session() as session:
            row = self._row_for(session, moment_id)
            if row is None or row.status != EditionStatus.PENDING_CREATION.value:
                return False
            if tx_hash is not None and row.creation_tx_hash != tx_hash:
                return False
            session.delete(row)
            logger.info(f"Cleared pending edition marker for moment {moment_id}")
            return True

    async def record_creation(self, moment_id: str, tx_hash: str, params: MintParameters,
                              view: Optional[EditionView] = None, metadata_uri: Optional[str] = None,
                              contract_address: Optional[str] = None,
                              now: Optional[datetime.datetime] = None) -> Tuple[bool, Edition]:
        """
        Record a confirmed edition creation.

        Values read from the chain (view) take precedence over the requested
        parameters. Repeating the same creation is a no-op.

        Returns:
            (whether a row was written, the recorded edition)

        Raises:
            EditionAlreadyRecordedError: A different edition is already recorded
        """
        args = (moment_id, tx_hash, params, view, metadata_uri, contract_address, now)
        try:
            return await self._run(self._record_creation, *args)
        except LedgerWriteError as e:
            if not isinstance(e.__cause__, IntegrityError):
                raise
            # Lost an insert race; the row now exists and decides the outcome
            return await self._run(self._record_creation, *args)

    def _record_creation(self, moment_id: str, tx_hash: str, params: MintParameters,
                         view: Optional[EditionView], metadata_uri: Optional[str],
                         contract_address: Optional[str], now: Optional[datetime.datetime]) -> Tuple[bool, Edition]:
        now = now or _utcnow()
        with self.database.session() as session:
            row = self._row_for(session, moment_id)
            if row is not None and row.status != EditionStatus.PENDING_CREATION.value:
                if row.creation_tx_hash == tx_hash:
                    logger.info(f"Edition creation {tx_hash} for moment {moment_id} already recorded")
                    return False, _to_edition(row)
                logger.warning(
                    f"Refusing to record creation {tx_hash} for moment {moment_id}: "
                    f"edition from {row.creation_tx_hash} already recorded")
                raise EditionAlreadyRecordedError(moment_id)

            if row is None:
                row = EditionRecord(moment_id=moment_id)
                session.add(row)

            row.status = EditionStatus.ACTIVE.value
            row.creation_tx_hash = tx_hash
            row.window_days = params.window_days
            row.rarity_tier = params.rarity_tier
            if view is not None:
                row.metadata_uri = view.metadata_uri or metadata_uri
                row.price_wei = str(view.price_wei)
                row.mint_start = view.mint_start
                row.mint_end = view.mint_end
                row.max_supply = view.max_supply
                row.onchain_rarity = view.rarity
                row.revenue_split_target = view.revenue_split_target or params.revenue_split_target
                row.contract_address = view.contract_address or contract_address
                row.chain_minted_count = view.total_minted
            else:
                row.metadata_uri = metadata_uri
                row.contract_address = contract_address
                row.price_wei = str(params.price_wei)
                row.mint_start = now
                row.mint_end = now + datetime.timedelta(seconds=params.duration_seconds)
                row.max_supply = params.max_supply
                row.onchain_rarity = params.onchain_rarity
                row.revenue_split_target = params.revenue_split_target
                row.chain_minted_count = 0
            row.recorded_quantity = row.recorded_quantity or 0
            row.minted_count = max(row.recorded_quantity, row.chain_minted_count)
            session.flush()
            logger.info(f"Recorded edition for moment {moment_id} from {tx_hash}")
            return True, _to_edition(row)

    async def record_mint(self, moment_id: str, minter: Optional[str], quantity: int,
                          tx_hash: str, confirmed_at: Optional[datetime.datetime] = None) -> Tuple[bool, Edition]:
        """
        Append a confirmed mint. The transaction hash is the idempotency key.

        Returns:
            (whether the mint was new, the edition after the write)

        Raises:
            EditionNotFoundError: No confirmed edition is recorded for the moment
        """
        try:
            return await self._run(self._record_mint, moment_id, minter, quantity, tx_hash, confirmed_at)
        except LedgerWriteError as e:
            if not isinstance(e.__cause__, IntegrityError):
                raise
            logger.info(f"Mint {tx_hash} was recorded concurrently")
            edition = await self.get_edition(moment_id)
            return False, edition

    def _record_mint(self, moment_id: str, minter: Optional[str], quantity: int,
                     tx_hash: str, confirmed_at: Optional[datetime.datetime]) -> Tuple[bool, Edition]:
        with self.database.session() as session:
            row = self._row_for(session, moment_id)
            if row is None or row.status == EditionStatus.PENDING_CREATION.value:
                raise EditionNotFoundError(f"No edition recorded for moment {moment_id}")

            if session.query(MintRecord).filter_by(tx_hash=tx_hash).first() is not None:
                logger.info(f"Mint {tx_hash} for moment {moment_id} already recorded")
                return False, _to_edition(row)

            session.add(MintRecord(
                edition_id=row.id,
                moment_id=moment_id,
                minter_address=minter,
                quantity=quantity,
                tx_hash=tx_hash,
                confirmed_at=confirmed_at or _utcnow()
            ))
            recorded = EditionRecord.recorded_quantity + quantity
            session.query(EditionRecord).filter_by(id=row.id).update({
                EditionRecord.recorded_quantity: recorded,
                EditionRecord.minted_count: case(
                    (recorded > EditionRecord.chain_minted_count, recorded),
                    else_=EditionRecord.chain_minted_count
                ),
            }, synchronize_session=False)
            session.flush()
            session.refresh(row)
            logger.info(f"Recorded mint {tx_hash} of {quantity} for moment {moment_id}, "
                        f"minted count now {row.minted_count}")
            return True, _to_edition(row)

    async def apply_chain_state(self, moment_id: str, view: EditionView, total_minted: int,
                                active: bool, rarity_tier: Optional[str] = None,
                                now: Optional[datetime.datetime] = None) -> Tuple[Optional[Edition], Edition]:
        """
        Overwrite the ledger row with chain-authoritative values.

        Returns:
            (the edition before the write or None, the edition after it)
        """
        return await self._run(self._apply_chain_state, moment_id, view, total_minted, active, rarity_tier, now)

    def _apply_chain_state(self, moment_id: str, view: EditionView, total_minted: int, active: bool,
                           rarity_tier: Optional[str], now: Optional[datetime.datetime]) -> Tuple[Optional[Edition], Edition]:
        now = now or _utcnow()
        with self.database.session() as session:
            row = self._row_for(session, moment_id)
            before = _to_edition(row) if row is not None else None
            if row is None:
                row = EditionRecord(moment_id=moment_id, recorded_quantity=0)
                session.add(row)
                logger.info(f"Restoring missing edition row for moment {moment_id} from chain")

            row.metadata_uri = view.metadata_uri or row.metadata_uri
            row.price_wei = str(view.price_wei)
            row.mint_start = view.mint_start
            row.mint_end = view.mint_end
            row.max_supply = view.max_supply
            row.onchain_rarity = view.rarity
            row.revenue_split_target = view.revenue_split_target or row.revenue_split_target
            row.contract_address = view.contract_address or row.contract_address
            if view.creation_tx_hash:
                row.creation_tx_hash = view.creation_tx_hash
            if view.mint_start and view.mint_end and not row.window_days:
                row.window_days = round(view.duration_seconds / 86400) or None
            if rarity_tier and not row.rarity_tier:
                row.rarity_tier = rarity_tier

            recorded = row.recorded_quantity or 0
            if recorded > total_minted:
                logger.warning(f"Recorded mints ({recorded}) exceed chain total ({total_minted}) for moment {moment_id}")
            # The chain total wins; any excess is left to the caller to flag
            row.chain_minted_count = total_minted
            row.minted_count = total_minted

            # ended is terminal
            if row.status == EditionStatus.ENDED.value or not active:
                row.status = EditionStatus.ENDED.value
            else:
                row.status = EditionStatus.ACTIVE.value
            row.last_reconciled_at = now
            session.flush()
            return before, _to_edition(row)

    async def touch_reconciled(self, moment_id: str, now: Optional[datetime.datetime] = None) -> None:
        await self._run(self._touch_reconciled, moment_id, now)

    def _touch_reconciled(self, moment_id: str, now: Optional[datetime.datetime]) -> None:
        with self.database.session() as session:
            row = self._row_for(session, moment_id)
            if row is not None:
                row.last_reconciled_at = now or _utcnow()

    async def record_fault(self, moment_id: str, kind: str, detail: str) -> bool:
        """
        Store a consistency fault for manual review.

        Returns:
            False when the same unresolved fault is already stored
        """
        return await self._run(self._record_fault, moment_id, kind, detail)

    def _record_fault(self, moment_id: str, kind: str, detail: str) -> bool:
        with self.database.session() as session:
            existing = session.query(ConsistencyFault).filter_by(
                moment_id=moment_id, kind=kind, resolved=False
            ).first()
            if existing is not None:
                return False
            session.add(ConsistencyFault(moment_id=moment_id, kind=kind, detail=detail))
            logger.error(f"Consistency fault for moment {moment_id} ({kind}): {detail}")
            return True

    # Reads

    async def get_edition(self, moment_id: str, now: Optional[datetime.datetime] = None) -> Optional[Edition]:
        """
        Current edition row for the moment, or None.

        An active edition whose window has elapsed or whose supply is
        exhausted is moved to ended on read.
        """
        return await self._run(self._get_edition, moment_id, now)

    def _get_edition(self, moment_id: str, now: Optional[datetime.datetime]) -> Optional[Edition]:
        now = now or _utcnow()
        with self.database.session() as session:
            row = self._row_for(session, moment_id)
            if row is None:
                return None
            if row.status == EditionStatus.ACTIVE.value and _has_ended(row, now):
                row.status = EditionStatus.ENDED.value
                logger.info(f"Edition for moment {moment_id} has ended")
            return _to_edition(row)

    async def list_moment_ids(self) -> List[str]:
        return await self._run(self._list_moment_ids)

    def _list_moment_ids(self) -> List[str]:
        with self.database.session() as session:
            return [moment_id for (moment_id,) in session.query(EditionRecord.moment_id).order_by(EditionRecord.id)]

    async def list_mints(self, moment_id: str) -> List[MintEntry]:
        return await self._run(self._list_mints, moment_id)

    def _list_mints(self, moment_id: str) -> List[MintEntry]:
        with self.database.session() as session:
            records = (
                session.query(MintRecord)
                .filter_by(moment_id=moment_id)
                .order_by(MintRecord.id)
                .all()
            )
            return [
                MintEntry(
                    tx_hash=record.tx_hash,
                    minter_address=record.minter_address,
                    quantity=record.quantity,
                    confirmed_at=_as_utc(record.confirmed_at)
                )
                for record in records
            ]

    async def list_faults(self, include_resolved: bool = False) -> List[Dict[str, Any]]:
        return await self._run(self._list_faults, include_resolved)

    def _list_faults(self, include_resolved: bool) -> List[Dict[str, Any]]:
        with self.database.session() as session:
            query = session.query(ConsistencyFault)
            if not include_resolved:
                query = query.filter_by(resolved=False)
            return [
                {
                    'moment_id': fault.moment_id,
                    'kind': fault.kind,
                    'detail': fault.detail,
                    'resolved': fault.resolved,
                    'detected_at': _as_utc(fault.detected_at),
                }
                for fault in query.order_by(ConsistencyFault.id).all()
            ]
