def _create(client, player_id='host', **settings):
    payload = {'player_id': player_id, 'display_name': 'Host', 'total_rounds': 1, 'song_source': 'liked_songs'}
    payload.update(settings)
    return client.post('/api/rooms/create', json=payload)


def _started(client):
    code = _create(client).get_json()['room_code']
    client.post('/api/rooms/join', json={'room_code': code, 'player_id': 'alice', 'display_name': 'Alice'})
    res = client.post(f'/api/rooms/{code}/start', json={'player_id': 'host'})
    assert res.status_code == 200
    return code


def test_index_and_health(client):
    assert 'message' in client.get('/').get_json()
    res = client.get('/health')
    assert res.status_code == 200
    assert res.get_json() == {'status': 'ok'}


def test_create_room(client):
    res = _create(client)
    assert res.status_code == 201
    data = res.get_json()
    assert data['status'] == 'waiting'
    assert data['players'][0]['player_id'] == 'host'


def test_create_room_validation_and_prerequisite(client):
    res = _create(client, total_rounds=99)
    assert res.status_code == 400
    assert res.get_json()['error'] == 'invalid_request'

    res = _create(client, player_id='stranger')
    assert res.status_code == 400
    assert res.get_json()['error'] == 'prerequisite_not_met'

    res = client.post('/api/rooms/create', json={'total_rounds': 1, 'song_source': 'liked_songs'})
    assert res.status_code == 400


def test_join_and_state(client):
    code = _create(client).get_json()['room_code']
    res = client.post('/api/rooms/join', json={'room_code': code.upper(), 'player_id': 'alice', 'display_name': 'Alice'})
    assert res.status_code == 200
    res = client.get(f'/api/rooms/{code}?player_id=alice')
    assert res.status_code == 200
    state = res.get_json()
    assert state['room_code'] == code
    assert any(p['display_name'] == 'Alice' for p in state['players'])
    assert state['me']['player_id'] == 'alice'
    assert state['is_host'] is False


def test_join_errors(client):
    res = client.post('/api/rooms/join', json={'player_id': 'alice'})
    assert res.status_code == 400
    res = client.post('/api/rooms/join', json={'room_code': 'deadbeef0000', 'player_id': 'alice'})
    assert res.status_code == 404
    assert res.get_json()['error'] == 'room_not_found'


def test_state_hides_answer_while_playing(client):
    code = _started(client)
    state = client.get(f'/api/rooms/{code}').get_json()
    assert state['status'] == 'playing'
    assert state['current_round'] == 1
    assert 'title' not in state['track']
    assert 'artist' not in state['track']


def test_guess_flow(client):
    code = _started(client)
    res = client.post(f'/api/rooms/{code}/guess', json={'player_id': 'alice', 'guess': 'Beyonce'})
    assert res.status_code == 200
    assert res.get_json() == {'correct': True, 'fields': ['artist'], 'points': 2, 'round_number': 1, 'score': 2}

    res = client.post(f'/api/rooms/{code}/guess', json={'player_id': 'host', 'guess': 'beyoncé'})
    assert res.get_json()['correct'] is False

    board = client.get(f'/api/rooms/{code}/leaderboard').get_json()['leaderboard']
    assert [(e['player_id'], e['score']) for e in board] == [('alice', 2), ('host', 0)]


def test_guess_errors(client):
    code = _create(client).get_json()['room_code']
    res = client.post(f'/api/rooms/{code}/guess', json={'player_id': 'host', 'guess': 'halo'})
    assert res.status_code == 409
    assert res.get_json()['error'] == 'inactive_round'

    res = client.post(f'/api/rooms/{code}/guess', json={'player_id': 'host', 'guess': 42})
    assert res.status_code == 400


def test_host_only_actions(client):
    code = _started(client)
    assert client.post(f'/api/rooms/{code}/next', json={'player_id': 'alice'}).status_code == 403
    assert client.post(f'/api/rooms/{code}/next', json={'player_id': 'host'}).status_code == 409
    assert client.post(f'/api/rooms/{code}/close', json={'player_id': 'alice'}).status_code == 403
    assert client.post(f'/api/rooms/{code}/start', json={'player_id': 'host'}).status_code == 409


def test_next_after_round_end(client, orchestrator):
    code = _started(client)
    orchestrator.end_round(code)
    res = client.post(f'/api/rooms/{code}/next', json={'player_id': 'host'})
    assert res.status_code == 200
    assert res.get_json()['status'] == 'game_end'


def test_leave_and_close(client):
    code = _create(client).get_json()['room_code']
    client.post('/api/rooms/join', json={'room_code': code, 'player_id': 'alice'})
    res = client.post(f'/api/rooms/{code}/leave', json={'player_id': 'alice'})
    assert res.status_code == 200
    assert [p['player_id'] for p in res.get_json()['players']] == ['host']

    res = client.post(f'/api/rooms/{code}/close', json={'player_id': 'host'})
    assert res.status_code == 200
    assert res.get_json()['status'] == 'closed'


def test_unknown_room_is_404(client):
    assert client.get('/api/rooms/nope').status_code == 404
    assert client.get('/api/rooms/nope/leaderboard').status_code == 404


def test_unexpected_error_is_generic_500(client, orchestrator, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError('database on fire')

    monkeypatch.setattr(orchestrator, 'room_state', explode)
    res = client.get('/api/rooms/whatever')
    assert res.status_code == 500
    assert res.get_json()['error'] == 'internal_error'
    assert 'fire' not in res.get_data(as_text=True)
