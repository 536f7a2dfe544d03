import pytest

from pairfactory import ZERO_ADDRESS
from pairfactory.server import create_app

from conftest import THIRTY_DAYS

ROUTER = "0x1000000000000000000000000000000000000001"


@pytest.fixture
def client(factory):
    app = create_app(factory)
    app.config['TESTING'] = True
    return app.test_client()


def create(client, alice, nft, **extra):
    payload = {
        "sender": alice,
        "variant": "native",
        "nft": nft,
        "asset_recipient": alice,
        "duration": THIRTY_DAYS,
        "initial_nft_id": 7,
    }
    payload.update(extra)
    return client.post('/api/pairs/create', json=payload)


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()['ok'] is True


def test_status(client, factory, owner):
    data = client.get('/api/status').get_json()
    assert data['address'] == factory.address
    assert data['owner'] == owner
    assert data['pair_count'] == 0


def test_create_and_check_pair(client, alice, nft):
    response = create(client, alice, nft)
    assert response.status_code == 200
    data = response.get_json()
    assert data['success'] is True
    assert data['variant'] == 'native'

    pair = data['pair']
    check = client.get(f'/api/pairs/{pair}?variant=native').get_json()
    assert check['is_pair'] is True
    check = client.get(f'/api/pairs/{pair}?variant=token').get_json()
    assert check['is_pair'] is False
    any_variant = client.get(f'/api/pairs/{pair}').get_json()
    assert any_variant == {'address': pair, 'variant': 'native', 'is_pair': True}


def test_is_pair_never_errors(client):
    data = client.get('/api/pairs/not-an-address?variant=bogus').get_json()
    assert data['is_pair'] is False
    data = client.get('/api/pairs/not-an-address').get_json()
    assert data['variant'] is None


def test_create_errors(client, alice, bob, nft):
    missing = client.post('/api/pairs/create', json={"sender": alice})
    assert missing.status_code == 400
    assert 'Missing required field' in missing.get_json()['error']

    no_body = client.post('/api/pairs/create', data="nope")
    assert no_body.status_code == 400

    bad_variant = create(client, alice, nft, variant="bogus")
    assert bad_variant.status_code == 400
    assert bad_variant.get_json()['kind'] == 'ConfigurationError'

    not_owner = create(client, bob, nft)
    assert not_owner.status_code == 422
    assert not_owner.get_json()['kind'] == 'InitializationFailed'


def test_deposits(client, alice, bob, nft, token):
    pair = create(client, alice, nft, variant="token", token=token).get_json()['pair']

    nfts = client.post('/api/deposit/nft', json={
        "sender": alice, "nft": nft, "recipient": pair, "nft_ids": [1, 2]
    }).get_json()
    assert nfts == {'success': True, 'events': 2}

    silent = client.post('/api/deposit/nft', json={
        "sender": alice, "nft": nft, "recipient": bob, "nft_id": 3
    }).get_json()
    assert silent['events'] == 0

    tokens = client.post('/api/deposit/token', json={
        "sender": alice, "token": token, "recipient": pair, "amount": 50
    }).get_json()
    assert tokens == {'success': True, 'event_emitted': True}


def test_fee_multiplier_routes(client, owner, alice):
    ok = client.post('/api/admin/fee_multiplier',
                     json={"sender": owner, "multiplier": 5 * 10 ** 16})
    assert ok.get_json()['fee_multiplier'] == 5 * 10 ** 16

    too_big = client.post('/api/admin/fee_multiplier',
                          json={"sender": owner, "multiplier": 15 * 10 ** 16})
    assert too_big.status_code == 400
    assert too_big.get_json()['kind'] == 'FeeTooLarge'

    denied = client.post('/api/admin/fee_multiplier', json={"sender": alice, "multiplier": 1})
    assert denied.status_code == 403
    assert denied.get_json()['kind'] == 'PermissionDenied'


def test_fee_recipient_route(client, owner, alice):
    data = client.post('/api/admin/fee_recipient',
                       json={"sender": owner, "recipient": alice}).get_json()
    assert data['fee_recipient'] == alice

    zero = client.post('/api/admin/fee_recipient',
                       json={"sender": owner, "recipient": ZERO_ADDRESS})
    assert zero.status_code == 400
    assert zero.get_json()['kind'] == 'ZeroAddress'


def test_whitelist_routes(client, owner):
    router = client.post('/api/admin/router',
                         json={"sender": owner, "router": ROUTER, "allowed": True}).get_json()
    assert router['allowed'] is True
    assert router['was_ever_allowed'] is True

    revoked = client.post('/api/admin/router',
                          json={"sender": owner, "router": ROUTER, "allowed": "false"}).get_json()
    assert revoked['allowed'] is False
    assert revoked['was_ever_allowed'] is True

    conflict = client.post('/api/admin/call_target',
                           json={"sender": owner, "target": ROUTER, "allowed": True})
    assert conflict.status_code == 409
    assert conflict.get_json()['kind'] == 'InvariantViolation'

    access = client.get(f'/api/access/{ROUTER}').get_json()
    assert access['call_allowed'] is False
    assert access['router'] == {'allowed': False, 'was_ever_allowed': True}

    bad = client.get('/api/access/garbage')
    assert bad.status_code == 400


def test_receive_and_withdraw(client, owner):
    received = client.post('/api/receive', json={"sender": owner, "value": 1234}).get_json()
    assert received['balance'] == 1234

    withdrawn = client.post('/api/admin/withdraw', json={"sender": owner}).get_json()
    assert withdrawn['amount'] == 1234
    assert withdrawn['recipient'] == owner


def test_transfer_owner_route(client, factory, owner, alice):
    data = client.post('/api/admin/owner', json={"sender": owner, "new_owner": alice}).get_json()
    assert data['owner'] == alice
    assert factory.owner == alice


def test_events_route(client, alice, nft):
    create(client, alice, nft)
    data = client.get('/api/events?name=NewPair').get_json()
    assert data['count'] == 1
    assert data['events'][0]['args']['variant'] == 'native'

    everything = client.get('/api/events').get_json()
    assert everything['count'] >= 1


def test_predict_route(client, factory, alice, nft):
    predicted = client.get(f'/api/pairs/predict?variant=native&nft={nft}&duration={THIRTY_DAYS}')
    assert predicted.status_code == 200
    data = predicted.get_json()
    assert data['nonce'] == 0

    assert create(client, alice, nft).get_json()['pair'] == data['pair']

    missing = client.get('/api/pairs/predict?variant=native')
    assert missing.status_code == 400
