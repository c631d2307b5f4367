"""
Shared fixtures: a SQLite ledger per test and the simulated chain.
"""

import pytest
import pytest_asyncio

from moment_editions.config import S3Settings
from moment_editions.db import Database
from moment_editions.lifecycle import EditionLifecycle
from moment_editions.models.moment import ContentType, METADATA_FIELDS, Moment
from moment_editions.policy import EditionPolicy
from moment_editions.scoring import RarityScorer
from moment_editions.services.ledger import EditionLedger
from moment_editions.services.moments import MomentStore
from moment_editions.services.publisher import MetadataPublisher
from moment_editions.services.reconciliation import ReconciliationService
from moment_editions.services.recorder import MintRecorder
from moment_editions.services.simulated_chain import SimulatedChainGateway

PRICE_WEI = 1_000
STANDARD_SPLIT = '0x' + '11' * 20
HIGH_RARITY_SPLIT = '0x' + '22' * 20
OWNER_ID = 'uploader-1'
MINTER = '0x' + 'ab' * 20


def full_metadata() -> dict:
    return {name: f"{name} value" for name in METADATA_FIELDS}


def make_moment(moment_id: str = 'moment-1', **overrides) -> Moment:
    """A song moment scoring 7.0 unless overridden."""
    values = dict(
        moment_id=moment_id,
        owner_id=OWNER_ID,
        content_type=ContentType.SONG,
        song_total_performances=5,
        duration_seconds=150,
        is_first_for_performance=True,
        metadata=full_metadata(),
        song_name='Harpua',
        performance_id='perf-1',
        performance_date='1995-12-31',
        venue_name='Madison Square Garden',
        venue_city='New York',
        media_url='https://media.test/moment-1.mp4',
    )
    values.update(overrides)
    return Moment(**values)


@pytest.fixture
def database(tmp_path):
    """Provide an initialized SQLite database in a temporary directory."""
    database = Database()
    database.init(f"sqlite:///{tmp_path / 'editions.db'}")
    try:
        yield database
    finally:
        database.dispose()


@pytest.fixture
def gateway():
    return SimulatedChainGateway()


@pytest.fixture
def ledger(database):
    return EditionLedger(database)


@pytest.fixture
def moments(database):
    return MomentStore(database)


@pytest.fixture
def scorer():
    return RarityScorer()


@pytest.fixture
def policy():
    return EditionPolicy(
        base_price_wei=PRICE_WEI,
        split_target_standard=STANDARD_SPLIT,
        split_target_high_rarity=HIGH_RARITY_SPLIT
    )


@pytest.fixture
def publisher():
    return MetadataPublisher(S3Settings(region='us-east-1'), 'https://metadata.test')


@pytest.fixture
def reconciler(gateway, ledger, moments, scorer):
    return ReconciliationService(gateway, ledger, moments, scorer)


@pytest.fixture
def recorder(gateway, ledger, reconciler):
    return MintRecorder(gateway, ledger, reconciler)


@pytest.fixture
def lifecycle(gateway, ledger, moments, scorer, policy, publisher, recorder, reconciler):
    return EditionLifecycle(
        gateway=gateway,
        ledger=ledger,
        moments=moments,
        scorer=scorer,
        policy=policy,
        publisher=publisher,
        recorder=recorder,
        reconciler=reconciler,
        site_url='https://site.test',
        confirmation_timeout=0.2,
        poll_interval=0.01
    )


@pytest_asyncio.fixture
async def stored_moment(moments):
    """A legendary song moment saved with its flags as given."""
    return await moments.save_moment(make_moment(), derive_flags=False)
