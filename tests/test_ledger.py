"""
Tests for the edition ledger write paths and lazy status transitions.
"""

import asyncio
import dataclasses
import datetime
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from moment_editions.exceptions import EditionAlreadyRecordedError, EditionNotFoundError, LedgerWriteError
from moment_editions.models.edition import EditionStatus, EditionView, MintParameters

NOW = datetime.datetime(2026, 1, 1, tzinfo=datetime.UTC)

PARAMS = MintParameters(
    price_wei=1_000,
    window_days=7,
    duration_seconds=7 * 86400,
    max_supply=0,
    onchain_rarity=5,
    rarity_tier='epic',
    revenue_split_target='0xsplit'
)


def view(total_minted=0, max_supply=0, tx_hash='0xcreate', **overrides) -> EditionView:
    values = dict(
        moment_id='moment-1',
        metadata_uri='https://metadata.test/moment-1.json',
        price_wei=1_000,
        mint_start=NOW,
        mint_end=NOW + datetime.timedelta(days=7),
        max_supply=max_supply,
        total_minted=total_minted,
        rarity=5,
        revenue_split_target='0xsplit',
        contract_address='0xcontract',
        creation_tx_hash=tx_hash
    )
    values.update(overrides)
    return EditionView(**values)


class TestCreation:

    @pytest.mark.asyncio
    async def test_pending_marker_is_not_an_edition(self, ledger):
        assert await ledger.mark_pending('moment-1', '0xcreate')
        edition = await ledger.get_edition('moment-1')
        assert edition.status == EditionStatus.PENDING_CREATION
        assert not edition.exists

    @pytest.mark.asyncio
    async def test_mark_pending_never_overwrites(self, ledger):
        await ledger.record_creation('moment-1', '0xcreate', PARAMS, view(), now=NOW)
        assert not await ledger.mark_pending('moment-1', '0xother')
        assert (await ledger.get_edition('moment-1', NOW)).status == EditionStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_clear_pending_only_for_same_transaction(self, ledger):
        await ledger.mark_pending('moment-1', '0xcreate')
        assert not await ledger.clear_pending('moment-1', '0xother')
        assert await ledger.clear_pending('moment-1', '0xcreate')
        assert await ledger.get_edition('moment-1') is None

    @pytest.mark.asyncio
    async def test_clear_pending_never_removes_active_edition(self, ledger):
        await ledger.record_creation('moment-1', '0xcreate', PARAMS, view(), now=NOW)
        assert not await ledger.clear_pending('moment-1', '0xcreate')
        assert await ledger.get_edition('moment-1', NOW) is not None

    @pytest.mark.asyncio
    async def test_record_creation_promotes_pending_row(self, ledger):
        await ledger.mark_pending('moment-1', '0xcreate')
        created, edition = await ledger.record_creation('moment-1', '0xcreate', PARAMS, view(), now=NOW)
        assert created
        assert edition.status == EditionStatus.ACTIVE
        assert edition.price_wei == 1_000
        assert edition.contract_address == '0xcontract'
        assert edition.rarity_tier == 'epic'

    @pytest.mark.asyncio
    async def test_repeated_creation_is_a_noop(self, ledger):
        await ledger.record_creation('moment-1', '0xcreate', PARAMS, view(), now=NOW)
        created, edition = await ledger.record_creation('moment-1', '0xcreate', PARAMS, view(), now=NOW)
        assert not created
        assert edition.creation_tx_hash == '0xcreate'

    @pytest.mark.asyncio
    async def test_conflicting_creation_never_overwrites(self, ledger):
        await ledger.record_creation('moment-1', '0xcreate', PARAMS, view(), now=NOW)
        other = dataclasses.replace(PARAMS, price_wei=99, window_days=30)

        with pytest.raises(EditionAlreadyRecordedError):
            await ledger.record_creation('moment-1', '0xsecond', other, view(price_wei=99), now=NOW)

        edition = await ledger.get_edition('moment-1', NOW)
        assert edition.price_wei == 1_000
        assert edition.window_days == 7
        assert edition.creation_tx_hash == '0xcreate'

    @pytest.mark.asyncio
    async def test_creation_without_chain_view_uses_parameters(self, ledger):
        _, edition = await ledger.record_creation('moment-1', '0xcreate', PARAMS, None,
                                                  metadata_uri='https://m.test/1.json', now=NOW)
        assert edition.mint_start == NOW
        assert edition.mint_end == NOW + datetime.timedelta(days=7)
        assert edition.metadata_uri == 'https://m.test/1.json'
        assert edition.onchain_rarity == 5


class TestMints:

    @pytest.mark.asyncio
    async def test_duplicate_mint_does_not_increment(self, ledger):
        await ledger.record_creation('moment-1', '0xcreate', PARAMS, view(), now=NOW)

        recorded, edition = await ledger.record_mint('moment-1', '0xminter', 2, '0xmint1')
        assert recorded
        assert edition.minted_count == 2

        recorded, edition = await ledger.record_mint('moment-1', '0xminter', 2, '0xmint1')
        assert not recorded
        assert edition.minted_count == 2
        assert len(await ledger.list_mints('moment-1')) == 1

    @pytest.mark.asyncio
    async def test_concurrent_distinct_mints_all_count(self, ledger):
        await ledger.record_creation('moment-1', '0xcreate', PARAMS, view(), now=NOW)
        await asyncio.gather(*(
            ledger.record_mint('moment-1', '0xminter', 1, f'0xmint{i}') for i in range(5)
        ))
        edition = await ledger.get_edition('moment-1', NOW)
        assert edition.recorded_quantity == 5
        assert edition.minted_count == 5

    @pytest.mark.asyncio
    async def test_mint_requires_confirmed_edition(self, ledger):
        await ledger.mark_pending('moment-1', '0xcreate')
        with pytest.raises(EditionNotFoundError):
            await ledger.record_mint('moment-1', '0xminter', 1, '0xmint1')

    @pytest.mark.asyncio
    async def test_late_record_after_reconcile_is_not_double_counted(self, ledger):
        await ledger.record_creation('moment-1', '0xcreate', PARAMS, view(), now=NOW)
        await ledger.apply_chain_state('moment-1', view(total_minted=3), 3, True, now=NOW)

        _, edition = await ledger.record_mint('moment-1', '0xminter', 3, '0xmint1')
        assert edition.minted_count == 3


class TestLifecycleTransitions:

    @pytest.mark.asyncio
    async def test_window_expiry_ends_edition_on_read(self, ledger):
        await ledger.record_creation('moment-1', '0xcreate', PARAMS, view(), now=NOW)
        later = NOW + datetime.timedelta(days=8)
        assert (await ledger.get_edition('moment-1', later)).status == EditionStatus.ENDED
        # ended is terminal
        assert (await ledger.get_edition('moment-1', NOW)).status == EditionStatus.ENDED

    @pytest.mark.asyncio
    async def test_supply_exhaustion_ends_edition(self, ledger):
        await ledger.record_creation('moment-1', '0xcreate', PARAMS, view(max_supply=2), now=NOW)
        await ledger.record_mint('moment-1', '0xminter', 2, '0xmint1')
        assert (await ledger.get_edition('moment-1', NOW)).status == EditionStatus.ENDED

    @pytest.mark.asyncio
    async def test_chain_state_never_reactivates_ended_edition(self, ledger):
        await ledger.record_creation('moment-1', '0xcreate', PARAMS, view(), now=NOW)
        await ledger.get_edition('moment-1', NOW + datetime.timedelta(days=8))
        _, after = await ledger.apply_chain_state('moment-1', view(), 0, True, now=NOW)
        assert after.status == EditionStatus.ENDED


class TestFaultsAndErrors:

    @pytest.mark.asyncio
    async def test_faults_are_deduplicated_while_unresolved(self, ledger):
        assert await ledger.record_fault('moment-1', 'edition_missing_on_chain', 'gone')
        assert not await ledger.record_fault('moment-1', 'edition_missing_on_chain', 'gone again')
        faults = await ledger.list_faults()
        assert [f['kind'] for f in faults] == ['edition_missing_on_chain']

    @pytest.mark.asyncio
    async def test_database_errors_become_ledger_write_errors(self, ledger, database):
        with patch.object(database, 'session', side_effect=OperationalError('stmt', {}, Exception('disk I/O'))):
            with pytest.raises(LedgerWriteError):
                await ledger.record_mint('moment-1', '0xminter', 1, '0xmint1')
