"""Application configuration and environment settings"""
from typing import Dict, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class S3Settings(BaseModel):
    """S3 specific settings"""
    access_key_id: Optional[str] = Field(None, description="AWS access key ID")
    secret_access_key: Optional[str] = Field(None, description="AWS secret access key")
    region: str = Field(..., description="AWS region")
    bucket: Optional[str] = Field(None, description="Bucket receiving edition metadata")

class RarityWeights(BaseModel):
    """Weights, bands and caps used by the rarity scorer"""
    # (upper bound of performances, points); anything above the last bound gets FREQUENCY_FLOOR_POINTS
    frequency_bands: list[tuple[int, float]] = [(10, 4.0), (50, 3.0), (100, 2.5), (150, 2.0), (200, 1.5)]
    frequency_floor_points: float = 1.0
    metadata_points: float = 1.0
    length_points: float = 1.0
    ideal_duration_seconds: float = 150.0
    length_decay_seconds: float = 300.0
    priority_points: float = 1.0

    non_song_base: Dict[str, float] = {
        'jam': 1.8, 'improv': 1.5, 'intro': 1.2, 'outro': 1.2, 'crowd': 1.0, 'other': 0.8,
    }
    first_of_type_bonus: float = 2.0
    quality_points: Dict[str, float] = {'excellent': 0.5, 'good': 0.3, 'fair': 0.1, 'poor': 0.0}
    quality_cap: float = 1.0
    score_caps: Dict[str, float] = {
        'song': 7.0, 'jam': 5.9, 'improv': 4.9, 'intro': 4.9, 'outro': 4.9, 'crowd': 4.9, 'other': 3.9,
    }

    # (minimum score, tier), checked top-down
    tier_thresholds: list[tuple[float, str]] = [
        (6.0, 'legendary'), (5.0, 'epic'), (4.0, 'rare'), (2.5, 'uncommon'), (0.0, 'common'),
    ]
    tier_caps: Dict[str, str] = {
        'song': 'legendary', 'jam': 'epic', 'improv': 'rare', 'intro': 'rare',
        'outro': 'rare', 'crowd': 'rare', 'other': 'uncommon',
    }

class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    # Network / database selection
    CHAIN_ID: int = Field(0, description="Chain ID selecting the database profile") # 8453 - Base, 84532 - Base Sepolia, 0 - local
    DB_PASSWORD: Optional[str] = Field(None, description="Database password")
    DATABASE_URL: Optional[str] = Field(None, description="Full connection string, overrides the network profile")

    # Ledger contract access through the transaction relay
    CHAIN_RELAY_URL: Optional[str] = Field(None, description="Base URL of the transaction relay")
    CHAIN_RELAY_API_KEY: Optional[str] = Field(None, description="API key sent to the relay")
    CONTRACT_ADDRESS: str = Field("0x0000000000000000000000000000000000000000", description="Edition contract address")
    CONFIRMATION_TIMEOUT_SECONDS: float = Field(120.0, description="How long to wait for a receipt before reporting indeterminate")
    CONFIRMATION_POLL_SECONDS: float = Field(2.0, description="Receipt polling interval")

    # Mint policy
    DEFAULT_MINT_PRICE_WEI: int = Field(50_000_000_000_000, description="Unit mint price in wei (0.00005 ETH)")
    PRICING_MODE: str = Field("fixed", description="'fixed' or 'tier_scaled'")
    DEFAULT_MINT_WINDOW_DAYS: int = Field(7, description="Mint window used when the caller does not pick one")
    SPLIT_TARGET_STANDARD: str = Field("0x0000000000000000000000000000000000000001", description="Revenue split for regular editions")
    SPLIT_TARGET_HIGH_RARITY: str = Field("0x0000000000000000000000000000000000000002", description="Revenue split for rarity >= HIGH_RARITY_THRESHOLD")
    HIGH_RARITY_THRESHOLD: int = Field(6, description="On-chain rarity from which the high-rarity split applies")

    # Rarity tuning
    RARITY_IDEAL_DURATION_SECONDS: float = Field(150.0, description="Clip length earning the full length component")
    RARITY_LENGTH_DECAY_SECONDS: float = Field(300.0, description="Seconds past the ideal length until the component reaches 0")
    RARITY_FIRST_OF_TYPE_BONUS: float = Field(2.0, description="Bonus for the first upload of a non-song content type")

    # Metadata publishing
    AWS_ACCESS_KEY_ID: Optional[str] = Field(None, description="AWS access key ID")
    AWS_SECRET_ACCESS_KEY: Optional[str] = Field(None, description="AWS secret access key")
    AWS_REGION: str = Field(default="us-east-1", description="AWS region")
    METADATA_BUCKET: Optional[str] = Field(None, description="S3 bucket for edition metadata")
    METADATA_BASE_URL: str = Field("https://metadata.moment-editions.local", description="Public base URL of published metadata")
    PUBLIC_SITE_URL: str = Field("https://moment-editions.local", description="Public site used for external_url")

    # Service
    API_HOST: str = Field("0.0.0.0", description="API bind address")
    API_PORT: int = Field(8000, description="API port")
    LOG_LEVEL: str = Field("INFO", description="Root log level")
    ENABLE_DIAGNOSTICS: bool = Field(False, description="Mount the read-only diagnostics routes")

    @property
    def s3_settings(self) -> S3Settings:
        """Get S3 settings as a separate model"""
        return S3Settings(
            access_key_id=self.AWS_ACCESS_KEY_ID,
            secret_access_key=self.AWS_SECRET_ACCESS_KEY,
            region=self.AWS_REGION,
            bucket=self.METADATA_BUCKET
        )

    @property
    def rarity_weights(self) -> RarityWeights:
        """Get the rarity weights with environment overrides applied"""
        return RarityWeights(
            ideal_duration_seconds=self.RARITY_IDEAL_DURATION_SECONDS,
            length_decay_seconds=self.RARITY_LENGTH_DECAY_SECONDS,
            first_of_type_bonus=self.RARITY_FIRST_OF_TYPE_BONUS
        )

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True
    )

settings = Settings()

# Constants
MAX_RARITY_SCORE = 7.0
MINT_WINDOW_DAYS = (1, 3, 7, 14, 30)
