"""Moment rarity scoring and tier calculation"""
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, List, Optional

from moment_editions.config import MAX_RARITY_SCORE, RarityWeights
from moment_editions.models.moment import ContentType, METADATA_FIELDS, Moment, QualityRating

logger = logging.getLogger(__name__)

class RarityTier(str, Enum):
    COMMON = 'common'
    UNCOMMON = 'uncommon'
    RARE = 'rare'
    EPIC = 'epic'
    LEGENDARY = 'legendary'

TIER_ORDER = [RarityTier.COMMON, RarityTier.UNCOMMON, RarityTier.RARE, RarityTier.EPIC, RarityTier.LEGENDARY]

@dataclass
class RarityComponent:
    """One weighted signal contributing to the score"""
    name: str
    points: float
    reason: str

@dataclass
class RarityScore:
    """Score, tier and the breakdown that produced them"""
    score: float
    tier: RarityTier
    content_type: ContentType
    components: List[RarityComponent] = field(default_factory=list)
    tier_capped: bool = False

    def as_dict(self) -> dict:
        return {
            'score': self.score,
            'tier': self.tier.value,
            'content_type': self.content_type.value,
            'tier_capped': self.tier_capped,
            'components': [
                {'name': c.name, 'points': c.points, 'reason': c.reason}
                for c in self.components
            ],
        }

def _round_score(value: float) -> float:
    return float(Decimal(repr(value)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP))

def _is_filled(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return any(isinstance(item, str) and item.strip() for item in value)
    return False

def _as_positive_number(value: Any) -> Optional[float]:
    """Coerce to a finite positive float, or None when absent/malformed"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number

class RarityScorer:
    """Calculates rarity scores and tiers for uploaded moments"""

    def __init__(self, weights: Optional[RarityWeights] = None):
        self.weights = weights or RarityWeights()

    def score(self, moment: Moment) -> RarityScore:
        """Calculate the rarity score of a moment. Never raises."""
        try:
            content_type = ContentType.parse(getattr(moment, 'content_type', None))
            if content_type == ContentType.SONG:
                components = self._song_components(moment)
            else:
                components = self._non_song_components(moment, content_type)

            total = sum(c.points for c in components)
            cap = self.weights.score_caps.get(content_type.value, MAX_RARITY_SCORE)
            total = max(0.0, min(total, cap, MAX_RARITY_SCORE))
            score = _round_score(total)
            tier, capped = self.tier_for(score, content_type)
            return RarityScore(score=score, tier=tier, content_type=content_type,
                               components=components, tier_capped=capped)
        except Exception as e:
            logger.exception(f"Rarity scoring failed for moment {getattr(moment, 'moment_id', '?')}: {e}")
            return RarityScore(score=0.0, tier=RarityTier.COMMON, content_type=ContentType.OTHER)

    def tier_for(self, score: float, content_type: ContentType) -> tuple[RarityTier, bool]:
        """
        Map a score onto a tier, then clamp it to the content type's cap.

        Returns:
            (tier, whether the cap lowered the tier)
        """
        tier = RarityTier.COMMON
        for threshold, name in self.weights.tier_thresholds:
            if score >= threshold:
                tier = RarityTier(name)
                break

        cap = RarityTier(self.weights.tier_caps.get(content_type.value, RarityTier.COMMON.value))
        if TIER_ORDER.index(tier) > TIER_ORDER.index(cap):
            return cap, True
        return tier, False

    def _song_components(self, moment: Moment) -> List[RarityComponent]:
        return [
            RarityComponent('performance_frequency', *self.calculate_frequency_points(moment.song_total_performances)),
            RarityComponent('metadata_completeness', *self.calculate_metadata_points(moment.metadata)),
            RarityComponent('media_length', *self.calculate_length_points(moment.duration_seconds)),
            RarityComponent('performance_priority', *self.calculate_priority_points(moment.is_first_for_performance)),
        ]

    def _non_song_components(self, moment: Moment, content_type: ContentType) -> List[RarityComponent]:
        base = self.weights.non_song_base.get(content_type.value, 0.0)
        first = self.weights.first_of_type_bonus if moment.is_first_of_type is True else 0.0
        return [
            RarityComponent('content_type', base, f"{base} ({content_type.value})"),
            RarityComponent('first_of_type', first,
                            f"{first} (first {content_type.value} ever)" if first else "0 (not first of type)"),
            RarityComponent('metadata_completeness', *self.calculate_metadata_points(moment.metadata)),
            RarityComponent('quality', *self.calculate_quality_points(moment.audio_quality, moment.video_quality)),
        ]

    def calculate_frequency_points(self, total_performances: Any) -> tuple[float, str]:
        """
        Calculate points from how often the song has been performed live

        Points scale (fewer performances score higher):
        - 1-10 performances = 4 points
        - 11-50 = 3 points
        - 51-100 = 2.5 points
        - 101-150 = 2 points
        - 151-200 = 1.5 points
        - 201+ = 1 point
        """
        count = _as_positive_number(total_performances)
        if count is None:
            return 0.0, "0 (performance count unknown)"
        count = int(count)
        if count <= 0:
            return 0.0, "0 (performance count unknown)"
        for upper, points in self.weights.frequency_bands:
            if count <= upper:
                return points, f"{points} ({count} performances, <= {upper})"
        points = self.weights.frequency_floor_points
        return points, f"{points} ({count} performances)"

    def calculate_metadata_points(self, metadata: Any) -> tuple[float, str]:
        """Calculate points from the fraction of the metadata fields filled in"""
        if not isinstance(metadata, dict):
            metadata = {}
        filled = sum(1 for name in METADATA_FIELDS if _is_filled(metadata.get(name)))
        points = round(filled / len(METADATA_FIELDS) * self.weights.metadata_points, 4)
        return points, f"{points} ({filled}/{len(METADATA_FIELDS)} metadata fields)"

    def calculate_length_points(self, duration_seconds: Any) -> tuple[float, str]:
        """
        Calculate points from clip length

        Rises linearly to the full value at the ideal duration, then decays
        linearly to 0 over the decay window.
        """
        duration = _as_positive_number(duration_seconds)
        if duration is None:
            return 0.0, "0 (no duration)"
        ideal = self.weights.ideal_duration_seconds
        if duration <= ideal:
            ratio = duration / ideal
        else:
            ratio = max(0.0, 1.0 - (duration - ideal) / self.weights.length_decay_seconds)
        points = round(ratio * self.weights.length_points, 4)
        return points, f"{points} ({duration:.0f}s, ideal {ideal:.0f}s)"

    def calculate_priority_points(self, is_first_for_performance: Any) -> tuple[float, str]:
        """Full points for the first moment of this song at this performance"""
        if is_first_for_performance is True:
            return self.weights.priority_points, f"{self.weights.priority_points} (first at this performance)"
        return 0.0, "0 (not first at this performance)"

    def calculate_quality_points(self, audio_quality: Any, video_quality: Any) -> tuple[float, str]:
        """Calculate the capped quality bonus for non-song content"""
        total = 0.0
        for rating in (audio_quality, video_quality):
            try:
                total += self.weights.quality_points.get(QualityRating(str(rating).lower()).value, 0.0)
            except ValueError:
                continue
        points = round(min(total, self.weights.quality_cap), 4)
        return points, f"{points} (audio {audio_quality or 'n/a'}, video {video_quality or 'n/a'})"
