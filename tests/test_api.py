def test_register_creates_profile(user_client):
    alice = user_client('alice')
    res = alice.get('/api/profile')
    assert res.status_code == 200
    data = res.get_json()
    assert data['profile']['username'] == 'alice'
    assert data['profile']['experience'] == 0
    assert data['rank']['name'] == 'Bronze'
    assert data['next_rank']['name'] == 'Silver'


def test_register_duplicate_and_login(client, user_client):
    user_client('alice')
    res = client.post('/register', json={'username': 'alice', 'password': 'x'})
    assert res.status_code == 400
    res = client.post('/login', json={'username': 'alice', 'password': 'wrong'})
    assert res.status_code == 401
    res = client.post('/login', json={'username': 'alice', 'password': 'password'})
    assert res.status_code == 200


def test_rooms_require_login(client):
    res = client.post('/api/rooms/create', json={'name': 'Nope'})
    assert res.status_code == 401


def test_create_join_and_state(user_client):
    alice = user_client('alice')
    bob = user_client('bob')
    res = alice.post('/api/rooms/create', json={'name': 'Trivia night', 'max_players': 2})
    assert res.status_code == 201
    created = res.get_json()
    room_id, code = created['room_id'], created['code']
    assert len(code) == 6

    res = bob.post('/api/rooms/join', json={'code': code})
    assert res.status_code == 200
    assert res.get_json()['room_id'] == room_id

    state = bob.get(f'/api/rooms/{room_id}/state').get_json()
    assert state['room']['name'] == 'Trivia night'
    assert [p['username'] for p in state['players']] == ['alice', 'bob']
    assert state['is_creator'] is False
    assert state['is_ready'] is False
    assert state['game_started'] is False
    assert state['session_id'] is None


def test_error_status_codes(user_client):
    alice = user_client('alice')
    bob = user_client('bob')
    cara = user_client('cara')

    assert alice.post('/api/rooms/create', json={'name': ''}).status_code == 400
    assert alice.post('/api/rooms/create', json={'name': 'x', 'max_players': 'lots'}).status_code == 400
    res = bob.post('/api/rooms/join', json={'code': '000000'})
    assert res.status_code == 404
    assert res.get_json()['code'] == 'not_found'

    created = alice.post('/api/rooms/create', json={'name': 'Pair', 'max_players': 2}).get_json()
    room_id, code = created['room_id'], created['code']
    bob.post('/api/rooms/join', json={'code': code})

    res = cara.post('/api/rooms/join', json={'code': code})
    assert res.status_code == 409
    assert res.get_json()['code'] == 'room_full'

    res = bob.post(f'/api/rooms/{room_id}/start')
    assert res.status_code == 403
    res = alice.post(f'/api/rooms/{room_id}/start')
    assert res.status_code == 400
    assert res.get_json()['code'] == 'not_ready'


def test_multiplayer_flow_over_http(user_client, questions):
    alice = user_client('alice')
    bob = user_client('bob')
    created = alice.post('/api/rooms/create', json={
        'name': 'Duel', 'max_players': 2, 'num_questions': 5,
        'category': 'science', 'difficulty': 'medium',
    }).get_json()
    room_id = created['room_id']
    bob.post('/api/rooms/join', json={'code': created['code']})
    assert bob.post(f'/api/rooms/{room_id}/ready').get_json()['is_ready'] is True

    res = alice.post(f'/api/rooms/{room_id}/start')
    assert res.status_code == 200
    session_id = res.get_json()['session_id']
    state = alice.get(f'/api/rooms/{room_id}/state').get_json()
    assert state['game_started'] is True
    assert state['session_id'] == session_id

    for player in (alice, bob):
        res = player.post(f'/api/play/room/{room_id}')
        assert res.status_code == 201
        snap = res.get_json()
        assert snap['session_id'] == session_id
        assert snap['phase'] == 'playing'
        assert snap['is_multiplayer'] is True
        assert 'correct_answer' not in snap['question']

    # Reveal delay runs inline under TESTING, so each answer advances
    for i in range(5):
        for player in (alice, bob):
            res = player.post(f'/api/play/{session_id}/answer', json={'answer': 'A'})
            assert res.status_code == 200
            assert res.get_json()['accepted'] is True

    final = alice.get(f'/api/play/{session_id}/state').get_json()
    assert final['phase'] == 'finished'
    assert final['summary']['score'] == 50
    assert [e['score'] for e in final['leaderboard']] == [50, 50]

    state = alice.get(f'/api/rooms/{room_id}/state').get_json()
    assert state['room']['status'] == 'completed'
    assert alice.get('/api/profile').get_json()['profile']['experience'] == 50
    assert bob.get('/api/profile').get_json()['profile']['experience'] == 50

    assert alice.post(f'/api/play/{session_id}/leave').status_code == 200
    assert alice.get(f'/api/play/{session_id}/state').status_code == 404


def test_solo_flow_over_http(user_client, questions):
    alice = user_client('alice')
    res = alice.post('/api/play/solo', json={
        'num_questions': 5, 'time_limit': 20, 'category': 'science', 'difficulty': 'medium',
    })
    assert res.status_code == 201
    snap = res.get_json()
    session_id = snap['session_id']
    assert snap['total'] == 5
    assert snap['time_left'] == 20

    answers = ['A', 'A', 'A', 'C', 'D']
    for answer in answers:
        alice.post(f'/api/play/{session_id}/answer', json={'answer': answer})

    final = alice.get(f'/api/play/{session_id}/state').get_json()
    assert final['phase'] == 'finished'
    assert final['summary']['score'] == 30
    assert final['summary']['exp_gained'] == 30
    profile = alice.get('/api/profile').get_json()['profile']
    assert profile['experience'] == 30
    assert profile['level'] == 1


def test_solo_without_questions(user_client, questions):
    alice = user_client('alice')
    res = alice.post('/api/play/solo', json={'category': 'sports', 'difficulty': 'hard'})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'no_questions'


def test_leave_room_closes_for_creator(user_client):
    alice = user_client('alice')
    bob = user_client('bob')
    created = alice.post('/api/rooms/create', json={'name': 'Short lived'}).get_json()
    room_id = created['room_id']
    bob.post('/api/rooms/join', json={'code': created['code']})
    assert alice.post(f'/api/rooms/{room_id}/leave').status_code == 200
    state = bob.get(f'/api/rooms/{room_id}/state').get_json()
    assert state['closed'] is True
    assert state['players'] == []


def test_each_client_keeps_its_own_login(user_client):
    alice = user_client('alice')
    bob = user_client('bob')
    assert alice.get('/api/profile').get_json()['profile']['username'] == 'alice'
    assert bob.get('/api/profile').get_json()['profile']['username'] == 'bob'

    room_id = alice.post('/api/rooms/create', json={'name': 'Mine'}).get_json()['room_id']
    state = alice.get(f'/api/rooms/{room_id}/state').get_json()
    assert state['room']['creator_id'] == alice.user['id']
    assert state['is_creator'] is True
    assert state['players'][0]['username'] == 'alice'


def test_numeric_code_and_name_are_handled(user_client):
    alice = user_client('alice')
    bob = user_client('bob')
    res = alice.post('/api/rooms/create', json={'name': 42})
    assert res.status_code == 400
    assert res.get_json()['code'] == 'validation'

    created = alice.post('/api/rooms/create', json={'name': 'Numbers'}).get_json()
    res = bob.post('/api/rooms/join', json={'code': int(created['code'])})
    assert res.status_code == 200
    assert res.get_json()['room_id'] == created['room_id']


def test_register_and_login_reject_non_text(client):
    res = client.post('/register', json={'username': 123, 'password': 'pw'})
    assert res.status_code == 400
    res = client.post('/register', json={'username': 'dora', 'password': 1234})
    assert res.status_code == 400
    res = client.post('/login', json={'username': 'dora', 'password': 1234})
    assert res.status_code == 401


def test_finished_games_are_evicted_on_next_load(flask_app, user_client, questions):
    alice = user_client('alice')
    session_ids = []
    for _ in range(3):
        snap = alice.post('/api/play/solo', json={'category': 'science'}).get_json()
        session_ids.append(snap['session_id'])
        for _ in range(5):
            res = alice.post(f"/api/play/{snap['session_id']}/answer", json={'answer': 'A'})
        assert res.get_json()['state']['phase'] == 'finished'
        assert res.get_json()['state']['summary']['score'] == 50

    registry = flask_app.extensions['quiz_games']
    assert list(registry) == [(session_ids[-1], alice.user['id'])]
    assert alice.get(f'/api/play/{session_ids[0]}/state').status_code == 404
    assert alice.get(f'/api/play/{session_ids[-1]}/state').get_json()['phase'] == 'finished'
