"""Per-network database profiles for the edition ledger"""
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import quote_plus

from moment_editions.config import settings

BASE_MAINNET = 8453
BASE_SEPOLIA = 84532
LOCAL_CHAIN = 0

# Local runs without a password keep the ledger in a SQLite file
LOCAL_SQLITE_URL = 'sqlite:///moment_editions.db'

@dataclass(frozen=True)
class LedgerDatabaseProfile:
    """Where the ledger of one network lives"""
    host: str
    name: str
    user: str = 'moment_editions'
    port: int = 5432
    ssl_mode: str = 'require'

    def url(self, password: str) -> str:
        return (
            f"postgresql://{self.user}:{quote_plus(password)}@{self.host}:{self.port}/"
            f"{self.name}?sslmode={self.ssl_mode}"
        )

NETWORK_PROFILES: Dict[int, LedgerDatabaseProfile] = {
    BASE_MAINNET: LedgerDatabaseProfile(host='editions-db.base-mainnet.internal', name='moment_editions'),
    BASE_SEPOLIA: LedgerDatabaseProfile(host='editions-db.base-sepolia.internal', name='moment_editions_sepolia'),
    LOCAL_CHAIN: LedgerDatabaseProfile(host='localhost', name='moment_editions', ssl_mode='disable'),
}

def profile_for_chain(chain_id: Optional[int] = None) -> LedgerDatabaseProfile:
    """Database profile of the edition contract's network"""
    chain_id = settings.CHAIN_ID if chain_id is None else chain_id
    try:
        return NETWORK_PROFILES[chain_id]
    except KeyError:
        raise ValueError(
            f"Invalid CHAIN_ID {chain_id}. Must be {BASE_MAINNET} (Base), "
            f"{BASE_SEPOLIA} (Base Sepolia) or {LOCAL_CHAIN} (local)"
        ) from None

def ledger_database_url(chain_id: Optional[int] = None) -> str:
    """
    Resolve the ledger connection string.

    DATABASE_URL wins. Otherwise the network profile is combined with
    DB_PASSWORD; the local network falls back to SQLite without one.

    Raises:
        ValueError: Unknown CHAIN_ID, or no password for a hosted network
    """
    if settings.DATABASE_URL:
        return settings.DATABASE_URL

    chain_id = settings.CHAIN_ID if chain_id is None else chain_id
    profile = profile_for_chain(chain_id)
    if settings.DB_PASSWORD:
        return profile.url(settings.DB_PASSWORD)
    if chain_id == LOCAL_CHAIN:
        return LOCAL_SQLITE_URL
    raise ValueError(f"DB_PASSWORD setting is required for chain {chain_id} when DATABASE_URL is not set")
