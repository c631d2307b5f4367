"""
Tests for the edition HTTP API.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from moment_editions.api.server import create_app
from moment_editions.config import Settings
from moment_editions.services.simulated_chain import SimulatedChainGateway

from conftest import HIGH_RARITY_SPLIT, MINTER, OWNER_ID, PRICE_WEI, STANDARD_SPLIT, make_moment

OWNER = {'X-User-Id': OWNER_ID}


@pytest.fixture
def api_settings():
    return Settings(
        DEFAULT_MINT_PRICE_WEI=PRICE_WEI,
        SPLIT_TARGET_STANDARD=STANDARD_SPLIT,
        SPLIT_TARGET_HIGH_RARITY=HIGH_RARITY_SPLIT,
        CONFIRMATION_TIMEOUT_SECONDS=0.2,
        CONFIRMATION_POLL_SECONDS=0.01,
        ENABLE_DIAGNOSTICS=True
    )


@pytest.fixture
def chain():
    return SimulatedChainGateway()


@pytest.fixture
def app(api_settings, database, chain, publisher):
    return create_app(api_settings, database, gateway=chain, publisher=publisher)


@pytest.fixture
def client(app):
    asyncio.run(app.state.services.moments.save_moment(make_moment(), derive_flags=False))
    return TestClient(app)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()['status'] == 'healthy'


def test_unknown_moment_is_404(client):
    assert client.get("/moments/missing/nft-status").status_code == 404
    assert client.post("/moments/missing/nft-edition/create", json={}, headers=OWNER).status_code == 404


def test_writes_require_caller_identity(client):
    response = client.post("/moments/moment-1/nft-edition/create", json={})
    assert response.status_code == 401


def test_non_owner_cannot_create(client):
    response = client.post("/moments/moment-1/nft-edition/create", json={}, headers={'X-User-Id': 'intruder'})
    assert response.status_code == 403


def test_rarity(client):
    response = client.get("/moments/moment-1/rarity")
    assert response.status_code == 200
    data = response.json()
    assert data['momentId'] == 'moment-1'
    assert data['score'] == 7.0
    assert data['tier'] == 'legendary'


def test_create_then_status(client):
    response = client.post("/moments/moment-1/nft-edition/create", json={'durationDays': 3}, headers=OWNER)
    assert response.status_code == 201
    body = response.json()
    assert body['kind'] == 'confirmed'
    assert body['edition']['rarity'] == 7

    status = client.get("/moments/moment-1/nft-status").json()
    assert status['hasEdition'] is True
    assert status['isActive'] is True
    assert status['price'] == str(PRICE_WEI)

    again = client.post("/moments/moment-1/nft-edition/create", json={}, headers=OWNER)
    assert again.status_code == 409
    assert again.json()['reason'] == 'edition_exists'


def test_invalid_window_is_409(client):
    response = client.post("/moments/moment-1/nft-edition/create", json={'durationDays': 5}, headers=OWNER)
    assert response.status_code == 409
    assert response.json()['reason'] == 'invalid_window'


def test_declined_creation_is_409(client, chain):
    chain.decline_next()
    response = client.post("/moments/moment-1/nft-edition/create", json={}, headers=OWNER)
    assert response.status_code == 409
    assert response.json()['kind'] == 'declined'


def test_wallet_created_edition_is_recorded(client, chain):
    tx_hash = asyncio.run(chain.create_edition('moment-1', 'ipfs://doc', 2_000, 86400, 0, STANDARD_SPLIT, 7))

    response = client.post("/moments/moment-1/nft-edition", json={'txHash': tx_hash}, headers=OWNER)
    assert response.status_code == 201
    assert response.json()['edition']['price'] == '2000'

    repeat = client.post("/moments/moment-1/nft-edition", json={'txHash': tx_hash}, headers=OWNER)
    assert repeat.status_code == 200
    assert repeat.json()['kind'] == 'duplicate'


def test_mint_and_record(client, chain):
    client.post("/moments/moment-1/nft-edition/create", json={}, headers=OWNER)

    minted = client.post("/moments/moment-1/mint", json={'quantity': 2, 'minterAddress': MINTER}, headers=OWNER)
    assert minted.status_code == 201
    assert minted.json()['minted_count'] == 2

    tx_hash = minted.json()['tx_hash']
    repeat = client.post("/moments/moment-1/mint-record",
                         json={'txHash': tx_hash, 'quantity': 2, 'minterAddress': MINTER}, headers=OWNER)
    assert repeat.status_code == 200
    assert repeat.json()['kind'] == 'duplicate'
    assert client.get("/moments/moment-1/nft-status").json()['mintedCount'] == 2


def test_mint_record_validates_quantity(client):
    response = client.post("/moments/moment-1/mint-record", json={'txHash': '0xabc', 'quantity': 0}, headers=OWNER)
    assert response.status_code == 422


def test_unconfirmed_mint_record_is_202(client):
    response = client.post("/moments/moment-1/mint-record", json={'txHash': '0xunknown'}, headers=OWNER)
    assert response.status_code == 202
    assert response.json()['kind'] == 'indeterminate'


def test_sync_and_consistency_faults(client, app):
    services = app.state.services
    rarity = asyncio.run(services.lifecycle.rarity('moment-1'))
    params = services.lifecycle.policy.derive(rarity, 'song').parameters
    asyncio.run(services.ledger.record_creation('moment-1', '0xghost', params, None))

    response = client.post("/moments/moment-1/sync")
    assert response.status_code == 409
    assert response.json()['kind'] == 'consistency_fault'

    faults = client.get("/admin/consistency-faults").json()
    assert faults['count'] == 1
    assert faults['faults'][0]['kind'] == 'edition_missing_on_chain'


def test_sync_unavailable_is_503(client, chain):
    chain.fail_next_call()
    assert client.post("/moments/moment-1/sync").status_code == 503


def test_diagnostics(client):
    client.post("/moments/moment-1/nft-edition/create", json={}, headers=OWNER)
    data = client.get("/debug/editions/moment-1").json()
    assert data['inSync'] is True
    assert data['chain']['reachable'] is True
    assert data['ledger']['status'] == 'active'
