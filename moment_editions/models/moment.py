"""Domain models for uploaded moments"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

class ContentType(str, Enum):
    """Content classification of a moment"""
    SONG = 'song'
    INTRO = 'intro'
    OUTRO = 'outro'
    JAM = 'jam'
    IMPROV = 'improv'
    CROWD = 'crowd'
    OTHER = 'other'

    @classmethod
    def parse(cls, value: Any) -> 'ContentType':
        """Map a stored value onto a content type; unknown values become OTHER."""
        if isinstance(value, ContentType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER

    @property
    def label(self) -> str:
        return CONTENT_TYPE_LABELS[self]

CONTENT_TYPE_LABELS = {
    ContentType.SONG: 'Song Performance',
    ContentType.INTRO: 'Intro',
    ContentType.OUTRO: 'Outro',
    ContentType.JAM: 'Jam',
    ContentType.IMPROV: 'Improv',
    ContentType.CROWD: 'Crowd Moment',
    ContentType.OTHER: 'Other Content',
}

class QualityRating(str, Enum):
    """Audio/video quality ratings chosen by the uploader"""
    POOR = 'poor'
    FAIR = 'fair'
    GOOD = 'good'
    EXCELLENT = 'excellent'

# The fixed metadata set used for completeness scoring
METADATA_FIELDS = (
    'description',
    'emotional_tags',
    'special_occasion',
    'instruments',
    'guest_appearances',
    'crowd_reaction',
    'unique_elements',
    'personal_note',
)

@dataclass
class Moment:
    """Snapshot of a moment as seen by the rarity scorer and edition policy"""
    moment_id: str
    owner_id: str
    content_type: ContentType = ContentType.SONG
    song_total_performances: int = 0
    duration_seconds: Optional[float] = None
    audio_quality: Optional[str] = None
    video_quality: Optional[str] = None
    is_first_for_performance: bool = False
    is_first_of_type: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    song_name: Optional[str] = None
    performance_id: Optional[str] = None
    performance_date: Optional[str] = None
    venue_name: Optional[str] = None
    venue_city: Optional[str] = None
    media_url: Optional[str] = None
