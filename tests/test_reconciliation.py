"""
Tests for pulling chain state into the ledger.
"""

import asyncio

import pytest

from moment_editions.models.edition import EditionStatus, MintParameters
from moment_editions.models.outcome import OutcomeKind, ReconcileAction
from moment_editions.services.reconciliation import (
    FAULT_EDITION_MISSING_ON_CHAIN,
    FAULT_LEDGER_AHEAD_OF_CHAIN,
    outcome_for_report,
)

WEEK = 7 * 86400

PARAMS = MintParameters(
    price_wei=1_000,
    window_days=7,
    duration_seconds=WEEK,
    max_supply=0,
    onchain_rarity=7,
    rarity_tier='legendary',
    revenue_split_target='0xsplit'
)


async def create_on_chain(gateway, moment_id='moment-1', max_supply=0):
    return await gateway.create_edition(moment_id, f'https://metadata.test/{moment_id}.json',
                                        1_000, WEEK, max_supply, '0xsplit', 7)


@pytest.mark.asyncio
async def test_nothing_anywhere_is_absent(reconciler):
    report = await reconciler.reconcile('moment-1')
    assert report.action == ReconcileAction.ABSENT
    assert not report.chain_has_edition


@pytest.mark.asyncio
async def test_restores_edition_missing_from_ledger(reconciler, gateway, ledger, stored_moment):
    tx_hash = await create_on_chain(gateway)
    await gateway.mint('moment-1', 2, 2_000, '0xminter')

    report = await reconciler.reconcile('moment-1')

    assert report.action == ReconcileAction.REPAIRED
    assert report.minted_count_before is None
    assert report.minted_count_after == 2
    edition = await ledger.get_edition('moment-1')
    assert edition.status == EditionStatus.ACTIVE
    assert edition.creation_tx_hash == tx_hash
    assert edition.minted_count == 2
    assert edition.window_days == 7
    assert edition.rarity_tier == 'legendary'


@pytest.mark.asyncio
async def test_reconcile_is_idempotent_and_converges(reconciler, gateway, ledger):
    tx_hash = await create_on_chain(gateway)
    view = await gateway.get_edition('moment-1')
    await ledger.record_creation('moment-1', tx_hash, PARAMS, view)
    mint_tx = await gateway.mint('moment-1', 1, 1_000, '0xminter')
    await ledger.record_mint('moment-1', '0xminter', 1, mint_tx)
    await gateway.mint('moment-1', 3, 3_000, '0xother')

    first = await reconciler.reconcile('moment-1')
    state_after_first = await ledger.get_edition('moment-1')
    second = await reconciler.reconcile('moment-1')
    state_after_second = await ledger.get_edition('moment-1')

    assert first.action == ReconcileAction.REPAIRED
    assert first.minted_count_before == 1
    assert first.minted_count_after == 4
    assert second.action == ReconcileAction.IN_SYNC
    assert state_after_first.minted_count == state_after_second.minted_count == 4
    assert state_after_first.status == state_after_second.status


@pytest.mark.asyncio
async def test_concurrent_reconciles_agree(reconciler, gateway, ledger):
    tx_hash = await create_on_chain(gateway)
    await ledger.record_creation('moment-1', tx_hash, PARAMS, await gateway.get_edition('moment-1'))
    await gateway.mint('moment-1', 5, 5_000, '0xminter')

    reports = await asyncio.gather(*(reconciler.reconcile('moment-1') for _ in range(4)))

    assert {r.action for r in reports} <= {ReconcileAction.REPAIRED, ReconcileAction.IN_SYNC}
    assert all(r.chain_total_minted == 5 for r in reports)
    assert (await ledger.get_edition('moment-1')).minted_count == 5
    assert await ledger.list_moment_ids() == ['moment-1']


@pytest.mark.asyncio
async def test_ledger_edition_unknown_to_chain_is_flagged_not_deleted(reconciler, ledger):
    await ledger.record_creation('moment-1', '0xghost', PARAMS, None)

    first = await reconciler.reconcile('moment-1')
    second = await reconciler.reconcile('moment-1')

    assert first.action == second.action == ReconcileAction.CONSISTENCY_FAULT
    assert await ledger.get_edition('moment-1') is not None
    faults = await ledger.list_faults()
    assert [f['kind'] for f in faults] == [FAULT_EDITION_MISSING_ON_CHAIN]
    assert outcome_for_report(first).kind == OutcomeKind.CONSISTENCY_FAULT


@pytest.mark.asyncio
async def test_recorded_mints_beyond_chain_total_are_flagged(reconciler, gateway, ledger):
    tx_hash = await create_on_chain(gateway)
    await ledger.record_creation('moment-1', tx_hash, PARAMS, await gateway.get_edition('moment-1'))
    await ledger.record_mint('moment-1', '0xminter', 2, '0xunverified')

    report = await reconciler.reconcile('moment-1')

    assert report.action == ReconcileAction.CONSISTENCY_FAULT
    assert (await ledger.get_edition('moment-1')).minted_count == 0
    assert [f['kind'] for f in await ledger.list_faults()] == [FAULT_LEDGER_AHEAD_OF_CHAIN]


@pytest.mark.asyncio
async def test_reverted_creation_clears_pending_marker(reconciler, gateway, ledger):
    gateway.revert_next('execution reverted: Edition already exists')
    tx_hash = await create_on_chain(gateway)
    await ledger.mark_pending('moment-1', tx_hash)

    report = await reconciler.reconcile('moment-1')

    assert report.action == ReconcileAction.ABSENT
    assert await ledger.get_edition('moment-1') is None


@pytest.mark.asyncio
async def test_unconfirmed_creation_stays_pending(reconciler, gateway, ledger):
    gateway.revert_next()
    gateway.drop_next_receipt()
    tx_hash = await create_on_chain(gateway)
    await ledger.mark_pending('moment-1', tx_hash)

    report = await reconciler.reconcile('moment-1')

    assert report.action == ReconcileAction.PENDING
    assert (await ledger.get_edition('moment-1')).status == EditionStatus.PENDING_CREATION


@pytest.mark.asyncio
async def test_pending_marker_promoted_when_chain_shows_edition(reconciler, gateway, ledger):
    gateway.drop_next_receipt()
    tx_hash = await create_on_chain(gateway)
    await ledger.mark_pending('moment-1', tx_hash)

    report = await reconciler.reconcile('moment-1')

    assert report.action == ReconcileAction.REPAIRED
    edition = await ledger.get_edition('moment-1')
    assert edition.status == EditionStatus.ACTIVE
    assert edition.creation_tx_hash == tx_hash


@pytest.mark.asyncio
async def test_chain_outage_leaves_ledger_untouched(reconciler, gateway, ledger):
    await ledger.record_creation('moment-1', '0xcreate', PARAMS, None)
    gateway.fail_next_call()

    report = await reconciler.reconcile('moment-1')

    assert report.action == ReconcileAction.UNAVAILABLE
    assert outcome_for_report(report).kind == OutcomeKind.UNAVAILABLE
    assert await ledger.list_faults() == []


@pytest.mark.asyncio
async def test_reconcile_all_sweeps_every_row(reconciler, gateway, ledger):
    for moment_id in ('moment-1', 'moment-2'):
        tx_hash = await create_on_chain(gateway, moment_id)
        await ledger.mark_pending(moment_id, tx_hash)

    reports = await reconciler.reconcile_all()

    assert {r.moment_id for r in reports} == {'moment-1', 'moment-2'}
    assert all(r.action == ReconcileAction.REPAIRED for r in reports)
