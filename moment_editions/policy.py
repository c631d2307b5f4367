"""Derivation of mint parameters from a rarity score"""
import math
from dataclasses import dataclass
from typing import Optional

from moment_editions.config import MAX_RARITY_SCORE, MINT_WINDOW_DAYS
from moment_editions.models.edition import MintParameters
from moment_editions.models.moment import ContentType
from moment_editions.scoring import RarityScore, RarityTier

SECONDS_PER_DAY = 24 * 60 * 60

TIER_PRICE_MULTIPLIERS = {
    RarityTier.COMMON: 1.0,
    RarityTier.UNCOMMON: 1.25,
    RarityTier.RARE: 1.5,
    RarityTier.EPIC: 2.0,
    RarityTier.LEGENDARY: 3.0,
}

@dataclass(frozen=True)
class PolicyError:
    """Why mint parameters could not be derived"""
    code: str
    message: str

@dataclass(frozen=True)
class PolicyDecision:
    parameters: Optional[MintParameters] = None
    error: Optional[PolicyError] = None

    @property
    def ok(self) -> bool:
        return self.parameters is not None

def onchain_rarity(score: float) -> int:
    """Rarity value stored on-chain: floor of the score, within 1..7"""
    return max(1, min(int(MAX_RARITY_SCORE), int(math.floor(score))))

class EditionPolicy:
    """Turns a rarity score into mint parameters. Pure; never raises."""

    def __init__(self, base_price_wei: int, pricing_mode: str = 'fixed',
                 default_window_days: int = 7,
                 split_target_standard: str = '', split_target_high_rarity: str = '',
                 high_rarity_threshold: int = 6):
        self.base_price_wei = base_price_wei
        self.pricing_mode = pricing_mode
        self.default_window_days = default_window_days
        self.split_target_standard = split_target_standard
        self.split_target_high_rarity = split_target_high_rarity
        self.high_rarity_threshold = high_rarity_threshold

    @classmethod
    def from_settings(cls, settings) -> 'EditionPolicy':
        return cls(
            base_price_wei=settings.DEFAULT_MINT_PRICE_WEI,
            pricing_mode=settings.PRICING_MODE,
            default_window_days=settings.DEFAULT_MINT_WINDOW_DAYS,
            split_target_standard=settings.SPLIT_TARGET_STANDARD,
            split_target_high_rarity=settings.SPLIT_TARGET_HIGH_RARITY,
            high_rarity_threshold=settings.HIGH_RARITY_THRESHOLD
        )

    def derive(self, rarity: RarityScore, content_type: ContentType,
               window_days: Optional[int] = None, max_supply: Optional[int] = 0,
               edition_exists: bool = False) -> PolicyDecision:
        """
        Derive mint parameters for a new edition.

        Args:
            rarity: Score of the moment
            content_type: Content classification of the moment
            window_days: Requested mint window, one of MINT_WINDOW_DAYS
            max_supply: Maximum number of tokens, 0 for unlimited
            edition_exists: Whether the ledger already holds an edition for the moment

        Returns:
            PolicyDecision carrying either parameters or an error
        """
        if edition_exists:
            return PolicyDecision(error=PolicyError('edition_exists', 'An edition already exists for this moment'))

        classification = ContentType.parse(content_type)
        if classification != rarity.content_type:
            return PolicyDecision(error=PolicyError(
                'classification_mismatch',
                f"Score was computed for {rarity.content_type.value}, not {classification.value}"))

        window = self.default_window_days if window_days is None else window_days
        if window not in MINT_WINDOW_DAYS:
            return PolicyDecision(error=PolicyError(
                'invalid_window', f"Mint window must be one of {', '.join(str(d) for d in MINT_WINDOW_DAYS)} days"))

        supply = 0 if max_supply is None else max_supply
        if supply < 0:
            return PolicyDecision(error=PolicyError('invalid_max_supply', 'Max supply cannot be negative'))

        rarity_value = onchain_rarity(rarity.score)
        return PolicyDecision(parameters=MintParameters(
            price_wei=self.price_for(rarity.tier),
            window_days=window,
            duration_seconds=window * SECONDS_PER_DAY,
            max_supply=supply,
            onchain_rarity=rarity_value,
            rarity_tier=rarity.tier.value,
            revenue_split_target=self.split_target_for(rarity_value)
        ))

    def price_for(self, tier: RarityTier) -> int:
        if self.pricing_mode == 'tier_scaled':
            return int(self.base_price_wei * TIER_PRICE_MULTIPLIERS.get(tier, 1.0))
        return self.base_price_wei

    def split_target_for(self, rarity_value: int) -> str:
        if rarity_value >= self.high_rarity_threshold:
            return self.split_target_high_rarity
        return self.split_target_standard
