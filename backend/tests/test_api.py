from coinhost.models import ROLE_ADMIN


def _signup(client, username, referral_code=None):
    payload = {'username': username, 'email': f'{username}@example.com', 'password': 'password'}
    if referral_code:
        payload['referralCode'] = referral_code
    return client.post('/api/auth/signup', json=payload)


def _login(client, username):
    return client.post('/api/auth/login', json={'email': f'{username}@example.com', 'password': 'password'})


def test_health(client):
    res = client.get('/health')
    assert res.status_code == 200
    assert res.get_json()['status'] == 'healthy'


def test_requires_login(client):
    assert client.get('/api/auth/me').status_code == 401
    assert client.post('/api/servers/create', json={'serverName': 'abc', 'planIndex': 0}).status_code == 401


def test_signup_with_referral_and_me(client):
    res = _signup(client, 'alice')
    assert res.status_code == 201
    alice = res.get_json()['user']
    assert alice['coins'] == 10
    client.post('/api/auth/logout')

    res = _signup(client, 'bob', referral_code=alice['referral_code'])
    assert res.status_code == 201
    assert res.get_json()['user']['referred_by'] == alice['id']
    client.post('/api/auth/logout')

    _login(client, 'alice')
    me = client.get('/api/auth/me').get_json()['user']
    assert me['coins'] == 15
    assert me['referral_count'] == 1
    history = client.get('/api/auth/transactions').get_json()
    assert [t['type'] for t in history['transactions']] == ['referral_bonus', 'signup_bonus']
    assert history['balance'] == 15


def test_duplicate_signup_conflicts(client):
    assert _signup(client, 'alice').status_code == 201
    client.post('/api/auth/logout')
    res = _signup(client, 'alice')
    assert res.status_code == 409
    assert res.get_json()['error'] == 'User already exists'


def test_signup_validation_reports_field(client):
    res = client.post('/api/auth/signup', json={'username': 'al', 'email': 'al@example.com', 'password': 'password'})
    assert res.status_code == 400
    assert res.get_json()['field'] == 'username'


def test_bad_login(client):
    _signup(client, 'alice')
    client.post('/api/auth/logout')
    res = client.post('/api/auth/login', json={'email': 'alice@example.com', 'password': 'nope'})
    assert res.status_code == 401


def test_server_flow(client, control):
    _signup(client, 'alice')
    plans = client.get('/api/servers/plans/list').get_json()['plans']
    assert [p['coins'] for p in plans] == [10, 50, 100, 300]
    assert plans[3]['duration'] is None

    res = client.post('/api/servers/create', json={'serverName': 'first box', 'planIndex': 0})
    assert res.status_code == 201
    body = res.get_json()
    server_id = body['server']['id']
    assert body['remainingCoins'] == 0
    assert body['server']['status'] == 'active'

    res = client.post('/api/servers/create', json={'serverName': 'second box', 'planIndex': 0})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'Insufficient coins'

    res = client.post(f'/api/servers/{server_id}/pair', json={'phoneNumber': '12ab'})
    assert res.status_code == 400
    res = client.post(f'/api/servers/{server_id}/pair', json={'phoneNumber': '15551234567'})
    assert res.status_code == 200
    assert res.get_json()['pairingCode'] == 'ABCD-1234'

    listed = client.get('/api/servers/my-servers').get_json()['servers']
    assert [s['id'] for s in listed] == [server_id]
    assert listed[0]['session_id'] == 'sess-1'

    res = client.post(f'/api/servers/{server_id}/stop')
    assert res.status_code == 200
    assert res.get_json()['server']['status'] == 'stopped'
    assert control.stopped == ['sess-1']
    assert client.post(f'/api/servers/{server_id}/stop').status_code == 409


def test_pairing_expired_server(client, clock):
    _signup(client, 'alice')
    server_id = client.post('/api/servers/create', json={'serverName': 'box', 'planIndex': 0}).get_json()['server']['id']
    clock.advance(hours=30)
    res = client.post(f'/api/servers/{server_id}/pair', json={'phoneNumber': '15551234567'})
    assert res.status_code == 400
    assert res.get_json()['error'] == 'Server has expired'
    server = client.get(f'/api/servers/{server_id}').get_json()['server']
    assert server['status'] == 'expired'


def test_other_users_server_is_hidden(client):
    _signup(client, 'alice')
    server_id = client.post('/api/servers/create', json={'serverName': 'box', 'planIndex': 0}).get_json()['server']['id']
    client.post('/api/auth/logout')
    _signup(client, 'mallory')
    assert client.get(f'/api/servers/{server_id}').status_code == 404
    assert client.post(f'/api/servers/{server_id}/stop').status_code == 404


def test_admin_endpoints(client, services):
    services.accounts.create_account('root', 'root@example.com', 'password', role=ROLE_ADMIN)
    alice = _signup(client, 'alice').get_json()['user']
    server_id = client.post('/api/servers/create', json={'serverName': 'box', 'planIndex': 0}).get_json()['server']['id']

    # Standard accounts are refused
    assert client.get('/api/admin/users').status_code == 403
    client.post('/api/auth/logout')
    _login(client, 'root')

    users = client.get('/api/admin/users').get_json()
    assert users['pagination']['total'] == 2

    res = client.post(f"/api/admin/users/{alice['id']}/coins", json={'action': 'subtract', 'amount': 100})
    assert res.status_code == 200
    assert res.get_json() == {
        'message': 'Coins updated successfully',
        'previousCoins': 0,
        'newCoins': 0,
        'difference': 0,
    }
    res = client.post(f"/api/admin/users/{alice['id']}/coins", json={'action': 'add', 'amount': '25'})
    assert res.get_json()['newCoins'] == 25
    assert client.post(f"/api/admin/users/{alice['id']}/coins", json={'action': 'double', 'amount': 1}).status_code == 400
    assert client.post('/api/admin/users/999/coins', json={'action': 'add', 'amount': 1}).status_code == 404

    servers = client.get('/api/admin/servers').get_json()
    assert servers['servers'][0]['username'] == 'alice'

    res = client.post(f'/api/admin/servers/{server_id}/expire')
    assert res.status_code == 200
    assert res.get_json()['server']['previousStatus'] == 'active'
    assert res.get_json()['server']['newStatus'] == 'expired'

    stats = client.get('/api/admin/stats').get_json()['stats']
    assert stats['total_users'] == 2
    assert stats['admin_count'] == 1
    assert stats['expired_servers'] == 1
    assert stats['total_coins'] == 35

    res = client.delete(f'/api/admin/servers/{server_id}?refund=1')
    assert res.status_code == 200
    assert services.ledger.balance(alice['id']) == 35
    assert client.delete(f'/api/admin/servers/{server_id}').status_code == 404
