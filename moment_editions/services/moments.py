"""Read model of uploaded moments"""
import asyncio
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from moment_editions.db import Database
from moment_editions.exceptions import LedgerWriteError
from moment_editions.models.db import MomentRecord
from moment_editions.models.moment import ContentType, Moment

logger = logging.getLogger(__name__)

def _to_moment(record: MomentRecord) -> Moment:
    return Moment(
        moment_id=record.id,
        owner_id=record.owner_id,
        content_type=ContentType.parse(record.content_type),
        song_total_performances=record.song_total_performances or 0,
        duration_seconds=record.duration_seconds,
        audio_quality=record.audio_quality,
        video_quality=record.video_quality,
        is_first_for_performance=bool(record.is_first_for_performance),
        is_first_of_type=bool(record.is_first_of_type),
        metadata=dict(record.metadata_fields or {}),
        song_name=record.song_name,
        performance_id=record.performance_id,
        performance_date=record.performance_date,
        venue_name=record.venue_name,
        venue_city=record.venue_city,
        media_url=record.media_url
    )

class MomentStore:
    """Loads and stores the moment attributes used for scoring and metadata"""

    def __init__(self, database: Database):
        self.database = database

    async def get_moment(self, moment_id: str) -> Optional[Moment]:
        return await asyncio.to_thread(self._get_moment, moment_id)

    def _get_moment(self, moment_id: str) -> Optional[Moment]:
        with self.database.session() as session:
            record = session.get(MomentRecord, moment_id)
            return _to_moment(record) if record is not None else None

    async def save_moment(self, moment: Moment, derive_flags: bool = True) -> Moment:
        """
        Insert or update a moment.

        With derive_flags, a newly inserted moment gets its "first" flags from
        the moments already stored: first for this song at this performance,
        and first of its content type.
        """
        try:
            return await asyncio.to_thread(self._save_moment, moment, derive_flags)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save moment {moment.moment_id}: {e}")
            raise LedgerWriteError(str(e)) from e

    def _save_moment(self, moment: Moment, derive_flags: bool) -> Moment:
        with self.database.session() as session:
            record = session.get(MomentRecord, moment.moment_id)
            is_new = record is None
            if is_new:
                if derive_flags:
                    moment.is_first_for_performance = self._is_first_for_performance(session, moment)
                    moment.is_first_of_type = self._is_first_of_type(session, moment)
                record = MomentRecord(id=moment.moment_id)
                session.add(record)

            record.owner_id = moment.owner_id
            record.content_type = ContentType.parse(moment.content_type).value
            record.song_name = moment.song_name
            record.performance_id = moment.performance_id
            record.performance_date = moment.performance_date
            record.venue_name = moment.venue_name
            record.venue_city = moment.venue_city
            record.media_url = moment.media_url
            record.song_total_performances = moment.song_total_performances or 0
            record.duration_seconds = moment.duration_seconds
            record.audio_quality = moment.audio_quality
            record.video_quality = moment.video_quality
            record.is_first_for_performance = moment.is_first_for_performance
            record.is_first_of_type = moment.is_first_of_type
            record.metadata_fields = dict(moment.metadata or {})
            session.flush()
            logger.debug(f"{'Inserted' if is_new else 'Updated'} moment {moment.moment_id}")
            return _to_moment(record)

    @staticmethod
    def _is_first_for_performance(session: Session, moment: Moment) -> bool:
        if not moment.song_name or not moment.performance_id:
            return False
        earlier = session.query(MomentRecord.id).filter(
            MomentRecord.id != moment.moment_id,
            MomentRecord.song_name == moment.song_name,
            MomentRecord.performance_id == moment.performance_id
        ).first()
        return earlier is None

    @staticmethod
    def _is_first_of_type(session: Session, moment: Moment) -> bool:
        content_type = ContentType.parse(moment.content_type)
        earlier = session.query(MomentRecord.id).filter(
            MomentRecord.id != moment.moment_id,
            MomentRecord.content_type == content_type.value
        ).first()
        return earlier is None
