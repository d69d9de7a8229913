import copy

import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import DEFINITION


def _create(client, uid, **extra):
    body = copy.deepcopy(DEFINITION)
    body.update({'creator_id': uid, 'shuffle_letter_questions': False})
    body.update(extra)
    res = client.post('/api/games', json=body)
    assert res.status_code == 201
    return res.json()['game_id']


def _sign_in(client):
    res = client.post('/api/auth/anonymous')
    assert res.status_code == 201
    return res.json()['uid']


def test_health(client):
    res = client.get('/health')
    assert res.status_code == 200
    assert res.json()['status'] == 'ok'


def test_create_and_fetch_hides_answers(client):
    uid = _sign_in(client)
    code = _create(client, uid)
    assert len(code) == 4

    public = client.get(f'/api/games/{code}').json()
    assert public['status'] == 'lobby'
    assert public['rounds']['0']['main_answer'] is None
    assert public['rounds']['0']['letter_questions']['R_0']['answer'] is None
    assert public['rounds']['0']['letter_questions']['R_0']['question'] == 'Capital of Italy'

    admin = client.get(f'/api/games/{code}', params={'uid': uid}).json()
    assert admin['rounds']['0']['main_answer'] == 'PARIS'

    listed = client.get('/api/games').json()['games']
    assert [g['game_id'] for g in listed] == [code]


def test_invalid_definition_is_rejected(client):
    body = copy.deepcopy(DEFINITION)
    body['rounds'][0]['mainAnswer'] = 'Route 66'
    body['creator_id'] = 'someone'
    assert client.post('/api/games', json=body).status_code == 422


def test_short_letter_pool_is_rejected(client):
    body = copy.deepcopy(DEFINITION)
    body['rounds'][1]['letterQuestions'] = body['rounds'][1]['letterQuestions'][:2]
    body['creator_id'] = 'someone'
    res = client.post('/api/games', json=body)
    assert res.status_code == 422
    assert 'needs 4 letter questions' in res.json()['detail']


def test_unknown_game(client):
    res = client.get('/api/games/ZZZZ')
    assert res.status_code == 404
    assert res.json()['detail'] == 'Game ZZZZ not found'


def test_join_flow(client):
    code = _create(client, _sign_in(client))
    first = client.post(f'/api/games/{code.lower()}/join', json={'team_name': 'Owls'}).json()
    assert first == {'game_id': code, 'team': 'team1', 'started': False}
    second = client.post(f'/api/games/{code}/join', json={'team_name': 'Foxes'}).json()
    assert second['team'] == 'team2'
    assert second['started'] is True

    again = client.post(f'/api/games/{code}/join', json={'team_name': 'OWLS'}).json()
    assert again['team'] == 'team1'

    res = client.post(f'/api/games/{code}/join', json={'team_name': 'Bears'})
    assert res.status_code == 409
    assert client.get(f'/api/games/{code}').json()['status'] == 'in_progress'


def test_play_a_round(client):
    uid = _sign_in(client)
    code = _create(client, uid)
    client.post(f'/api/games/{code}/join', json={'team_name': 'Owls'})
    client.post(f'/api/games/{code}/join', json={'team_name': 'Foxes'})

    res = client.post(f'/api/games/{code}/reveal', json={
        'team': 'team1', 'round_index': 0, 'letter_key': 'R_0', 'answer': 'rome',
    })
    assert res.json() == {'correct': True, 'score': 10}

    res = client.post(f'/api/games/{code}/answer', json={
        'team': 'team1', 'round_index': 0, 'answer': 'Lyon',
    })
    assert res.json() == {'correct': False, 'score': -10}

    res = client.post(f'/api/games/{code}/answer', json={
        'team': 'team1', 'round_index': 0, 'answer': 'Paris', 'points': 700,
    })
    assert res.json() == {'correct': True, 'score': 690}

    res = client.post(f'/api/games/{code}/answer', json={
        'team': 'team1', 'round_index': 0, 'answer': 'Paris',
    })
    assert res.status_code == 409

    game = client.get(f'/api/games/{code}').json()
    assert game['team1']['current_round_index'] == 1
    assert game['team1']['revealed_letters'] == {'0': ['R_0']}
    assert game['rounds']['0']['winner'] == 'team1'


def test_admin_controls(client):
    uid = _sign_in(client)
    code = _create(client, uid)
    client.post(f'/api/games/{code}/join', json={'team_name': 'Owls'})

    assert client.post(f'/api/games/{code}/start', params={'uid': 'intruder'}).status_code == 403
    assert client.post(f'/api/games/{code}/start', params={'uid': uid}).json()['status'] == 'in_progress'

    assert client.post(f'/api/games/{code}/pause', params={'uid': uid}).json()['status'] == 'paused'
    res = client.post(f'/api/games/{code}/reveal', json={
        'team': 'team1', 'round_index': 0, 'letter_key': 'R_0', 'answer': 'Rome',
    })
    assert res.status_code == 409
    assert client.post(f'/api/games/{code}/pause', params={'uid': uid}).json()['status'] == 'in_progress'

    res = client.post(f'/api/games/{code}/adjust-score', params={'uid': uid},
                      json={'team': 'team1', 'amount': 50, 'reason': 'bonus'})
    assert res.json() == {'team': 'team1', 'score': 50}

    skipped = client.post(f'/api/games/{code}/skip', params={'uid': uid}).json()
    assert skipped['current_round_index'] == 1
    assert skipped['status'] == 'in_progress'

    res = client.post(f'/api/games/{code}/disqualify', params={'uid': uid}, json={'team': 'team1'})
    assert res.json() == {'status': 'finished', 'winner': None}

    finished = client.get(f'/api/games/{code}').json()
    assert finished['rounds']['0']['main_answer'] == 'PARIS'

    assert client.post(f'/api/games/{code}/reset', params={'uid': uid}).json()['status'] == 'lobby'
    reset = client.get(f'/api/games/{code}').json()
    assert reset['team1'] is None
    assert reset['forfeited_by'] is None

    edited = copy.deepcopy(DEFINITION)
    edited['rounds'] = edited['rounds'][:1]
    res = client.put(f'/api/games/{code}/rounds', params={'uid': uid, 'shuffle': False}, json=edited)
    assert res.json()['rounds'] == 1

    assert client.delete(f'/api/games/{code}', params={'uid': uid}).status_code == 200
    assert client.get(f'/api/games/{code}').status_code == 404


def test_forfeit(client):
    code = _create(client, _sign_in(client))
    client.post(f'/api/games/{code}/join', json={'team_name': 'Owls'})
    client.post(f'/api/games/{code}/join', json={'team_name': 'Foxes'})
    res = client.post(f'/api/games/{code}/forfeit', json={'team': 'team2'})
    assert res.json() == {'status': 'finished', 'winner': 'team1'}
    assert client.post(f'/api/games/{code}/forfeit', json={'team': 'team1'}).status_code == 409


def test_websocket_relays_game_document(client):
    code = _create(client, _sign_in(client))
    with client.websocket_connect(f'/ws/{code}') as ws:
        first = ws.receive_json()
        assert first['type'] == 'game_state'
        assert first['game']['id'] == code
        assert first['game']['rounds']['0']['main_answer'] is None

        ws.send_json({'type': 'ping'})
        assert ws.receive_json() == {'type': 'pong'}

        client.post(f'/api/games/{code}/join', json={'team_name': 'Owls'})
        pushed = ws.receive_json()
        assert pushed['game']['team1']['name'] == 'Owls'


def test_websocket_unknown_game(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect('/ws/ZZZZ') as ws:
            ws.receive_json()


def test_lower_case_code_reaches_the_game(client):
    uid = _sign_in(client)
    code = _create(client, uid)
    lower = code.lower()

    assert client.get(f'/api/games/{lower}').json()['id'] == code
    res = client.post(f'/api/games/{lower}/start', params={'uid': uid})
    assert res.json() == {'status': 'in_progress', 'game_id': code}
    assert client.post(f'/api/games/{lower}/pause', params={'uid': uid}).json()['status'] == 'paused'

    with client.websocket_connect(f'/ws/{lower}') as ws:
        state = ws.receive_json()
        assert state['type'] == 'game_state'
        assert state['game']['id'] == code

    assert client.delete(f'/api/games/{lower}', params={'uid': uid}).status_code == 200
    assert client.get(f'/api/games/{code}').status_code == 404


def test_blank_team_name_is_rejected(client):
    code = _create(client, _sign_in(client))
    res = client.post(f'/api/games/{code}/join', json={'team_name': '   '})
    assert res.status_code == 422
    assert client.post(f'/api/games/{code}/join', json={'team_name': ' O '}).status_code == 422
    assert client.get(f'/api/games/{code}').json()['team1'] is None


def test_team_name_is_stored_trimmed(client):
    code = _create(client, _sign_in(client))
    client.post(f'/api/games/{code}/join', json={'team_name': '  Owls  '})
    assert client.get(f'/api/games/{code}').json()['team1']['name'] == 'Owls'
    # rejoining with different padding finds the same slot
    again = client.post(f'/api/games/{code}/join', json={'team_name': 'Owls '}).json()
    assert again['team'] == 'team1'
