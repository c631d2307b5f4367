"""
Tests for rarity scoring and tier capping.
"""

import pytest

from moment_editions.config import RarityWeights
from moment_editions.models.moment import ContentType, Moment
from moment_editions.scoring import RarityScorer, RarityTier, TIER_ORDER

from conftest import full_metadata, make_moment


@pytest.fixture
def scorer():
    return RarityScorer()


class TestSongScoring:
    """Song moments: frequency, metadata, length and priority"""

    def test_rare_song_with_everything_is_legendary(self, scorer):
        result = scorer.score(make_moment())
        assert result.score == 7.0
        assert result.tier == RarityTier.LEGENDARY
        assert [c.name for c in result.components] == [
            'performance_frequency', 'metadata_completeness', 'media_length', 'performance_priority'
        ]

    @pytest.mark.parametrize("below,above", [(10, 11), (50, 51), (100, 101), (150, 151), (200, 201)])
    def test_score_never_increases_across_frequency_bands(self, scorer, below, above):
        low = scorer.score(make_moment(song_total_performances=below))
        high = scorer.score(make_moment(song_total_performances=above))
        assert high.score < low.score

    @pytest.mark.parametrize("count,points", [
        (1, 4.0), (10, 4.0), (11, 3.0), (50, 3.0), (51, 2.5), (100, 2.5),
        (101, 2.0), (150, 2.0), (151, 1.5), (200, 1.5), (201, 1.0), (1000, 1.0),
    ])
    def test_frequency_bands(self, scorer, count, points):
        assert scorer.calculate_frequency_points(count)[0] == points

    @pytest.mark.parametrize("count", [0, -3, None, 'many', float('nan')])
    def test_unknown_frequency_scores_zero(self, scorer, count):
        assert scorer.calculate_frequency_points(count)[0] == 0.0

    @pytest.mark.parametrize("duration,points", [
        (75, 0.5), (150, 1.0), (300, 0.5), (450, 0.0), (900, 0.0), (None, 0.0), (-5, 0.0),
    ])
    def test_length_peaks_at_ideal_duration(self, scorer, duration, points):
        assert scorer.calculate_length_points(duration)[0] == pytest.approx(points)

    def test_metadata_completeness_counts_filled_fields(self, scorer):
        metadata = full_metadata()
        metadata['description'] = '   '
        metadata['instruments'] = []
        metadata['emotional_tags'] = ['joy', '']
        points, reason = scorer.calculate_metadata_points(metadata)
        assert points == pytest.approx(6 / 8)
        assert '6/8' in reason

    def test_more_metadata_never_lowers_score(self, scorer):
        fields = list(full_metadata().items())
        previous = -1.0
        for filled in range(len(fields) + 1):
            score = scorer.score(make_moment(metadata=dict(fields[:filled]))).score
            assert score >= previous
            previous = score

    def test_malformed_fields_are_treated_as_absent(self, scorer):
        moment = make_moment(song_total_performances='lots', duration_seconds='long',
                             metadata=None, is_first_for_performance='yes')
        result = scorer.score(moment)
        assert result.score == 0.0
        assert result.tier == RarityTier.COMMON

    def test_score_is_rounded_to_one_decimal(self, scorer):
        # 3.0 + 3/8 + 0 + 0 = 3.375
        moment = make_moment(song_total_performances=20, duration_seconds=None,
                             is_first_for_performance=False,
                             metadata={'description': 'a', 'instruments': 'b', 'personal_note': 'c'})
        assert scorer.score(moment).score == 3.4


class TestNonSongScoring:
    """Non-song content: base, first-of-type bonus, metadata and quality"""

    def test_other_content_with_nothing_is_common_floor(self, scorer):
        moment = Moment(moment_id='m', owner_id='o', content_type=ContentType.OTHER)
        result = scorer.score(moment)
        assert result.score == 0.8
        assert result.tier == RarityTier.COMMON

    @pytest.mark.parametrize("content_type,expected_score,expected_tier", [
        (ContentType.JAM, 5.8, RarityTier.EPIC),
        (ContentType.IMPROV, 4.9, RarityTier.RARE),
        (ContentType.INTRO, 4.9, RarityTier.RARE),
        (ContentType.OUTRO, 4.9, RarityTier.RARE),
        (ContentType.CROWD, 4.9, RarityTier.RARE),
        (ContentType.OTHER, 3.9, RarityTier.UNCOMMON),
    ])
    def test_maximum_non_song_scores(self, scorer, content_type, expected_score, expected_tier):
        moment = Moment(moment_id='m', owner_id='o', content_type=content_type, is_first_of_type=True,
                        metadata=full_metadata(), audio_quality='excellent', video_quality='excellent')
        result = scorer.score(moment)
        assert result.score == expected_score
        assert result.tier == expected_tier

    def test_quality_bonus_is_summed_and_capped(self, scorer):
        assert scorer.calculate_quality_points('good', 'fair')[0] == pytest.approx(0.4)
        assert scorer.calculate_quality_points('excellent', 'excellent')[0] == 1.0
        assert scorer.calculate_quality_points('Excellent', 'blurry')[0] == 0.5
        assert scorer.calculate_quality_points(None, None)[0] == 0.0

    def test_first_of_type_bonus(self, scorer):
        plain = scorer.score(Moment(moment_id='m', owner_id='o', content_type=ContentType.CROWD))
        first = scorer.score(Moment(moment_id='m', owner_id='o', content_type=ContentType.CROWD,
                                    is_first_of_type=True))
        assert first.score == pytest.approx(plain.score + 2.0)

    def test_unknown_content_type_is_scored_as_other(self, scorer):
        moment = Moment(moment_id='m', owner_id='o', content_type='soundcheck')
        assert scorer.score(moment).content_type == ContentType.OTHER


class TestTierCaps:
    """A tier never exceeds its content type's cap"""

    @pytest.mark.parametrize("content_type,cap", [
        (ContentType.SONG, RarityTier.LEGENDARY),
        (ContentType.JAM, RarityTier.EPIC),
        (ContentType.IMPROV, RarityTier.RARE),
        (ContentType.CROWD, RarityTier.RARE),
        (ContentType.OTHER, RarityTier.UNCOMMON),
    ])
    def test_tier_is_clamped(self, scorer, content_type, cap):
        for score in (0.0, 2.5, 4.0, 5.0, 6.0, 7.0):
            tier, _ = scorer.tier_for(score, content_type)
            assert TIER_ORDER.index(tier) <= TIER_ORDER.index(cap)

    def test_capped_flag_is_reported(self, scorer):
        assert scorer.tier_for(6.5, ContentType.OTHER) == (RarityTier.UNCOMMON, True)
        assert scorer.tier_for(3.0, ContentType.OTHER) == (RarityTier.UNCOMMON, False)

    def test_custom_weights(self):
        weights = RarityWeights(first_of_type_bonus=0.0)
        moment = Moment(moment_id='m', owner_id='o', content_type=ContentType.JAM, is_first_of_type=True)
        assert RarityScorer(weights).score(moment).score == 1.8

    def test_breakdown_is_serializable(self, scorer):
        data = scorer.score(make_moment()).as_dict()
        assert data['tier'] == 'legendary'
        assert data['content_type'] == 'song'
        assert len(data['components']) == 4
