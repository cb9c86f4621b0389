def _events(sio_client, name):
    return [pkt for pkt in sio_client.get_received('/ws') if pkt['name'] == name]


def test_socket_connect_and_join(sio_client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    sio_client.get_received('/ws')

    sio_client.emit('join_user', {'user_id': 'alice'}, namespace='/ws')
    joined = _events(sio_client, 'joined')
    assert joined and joined[0]['args'][0]['room'] == 'user:alice'


def test_join_requires_user_id(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_user', {}, namespace='/ws')
    assert _events(sio_client, 'error')


def test_participants_receive_challenge_events(sio_client, client, make_player):
    make_player('alice', weekly=100)
    make_player('bob', weekly=100)
    sio_client.emit('join_user', {'user_id': 'bob'}, namespace='/ws')
    sio_client.get_received('/ws')

    res = client.post('/api/challenges', json={
        'challenger_id': 'alice',
        'opponent_id': 'bob',
        'cohort_id': 'cohort-1',
        'subject_id': 'algebra',
        'stake': 10,
    })
    challenge_id = res.get_json()['challenge_id']

    events = _events(sio_client, 'challenge_event')
    assert len(events) == 1
    body = events[0]['args'][0]
    assert body['event_type'] == 'challenge_created'
    assert body['payload']['challenge_id'] == challenge_id

    for user_id, score in (('alice', 3), ('bob', 1)):
        client.post(f'/api/challenges/{challenge_id}/attempts', json={
            'user_id': user_id, 'score': score, 'questions_answered': 4, 'seconds_used': 12.0,
        })
    events = _events(sio_client, 'challenge_event')
    assert [e['args'][0]['event_type'] for e in events] == ['challenge_completed']
    assert events[0]['args'][0]['payload']['winner_user_id'] == 'alice'


def test_outsiders_do_not_receive_events(sio_client, client, make_player):
    make_player('alice', weekly=100)
    make_player('bob', weekly=100)
    sio_client.emit('join_user', {'user_id': 'eve'}, namespace='/ws')
    sio_client.get_received('/ws')
    client.post('/api/challenges', json={
        'challenger_id': 'alice', 'opponent_id': 'bob', 'cohort_id': 'cohort-1',
        'subject_id': 'algebra', 'stake': 10,
    })
    assert _events(sio_client, 'challenge_event') == []


def test_leave_stops_events(sio_client, client, make_player):
    make_player('alice', weekly=100)
    make_player('bob', weekly=100)
    sio_client.emit('join_user', {'user_id': 'alice'}, namespace='/ws')
    sio_client.emit('leave_user', {'user_id': 'alice'}, namespace='/ws')
    assert _events(sio_client, 'left')
    client.post('/api/challenges', json={
        'challenger_id': 'alice', 'opponent_id': 'bob', 'cohort_id': 'cohort-1',
        'subject_id': 'algebra', 'stake': 10,
    })
    assert _events(sio_client, 'challenge_event') == []


def test_leave_requires_the_joined_user(sio_client):
    sio_client.emit('join_user', {'user_id': 'alice'}, namespace='/ws')
    sio_client.get_received('/ws')
    sio_client.emit('leave_user', {'user_id': 'bob'}, namespace='/ws')
    assert _events(sio_client, 'error')
    sio_client.emit('leave_user', {'user_id': 'alice'}, namespace='/ws')
    assert _events(sio_client, 'left')


def test_joining_another_user_leaves_the_first_room(sio_client, client, make_player):
    make_player('alice', weekly=100)
    make_player('bob', weekly=100)
    make_player('cara', weekly=100)
    sio_client.emit('join_user', {'user_id': 'alice'}, namespace='/ws')
    sio_client.emit('join_user', {'user_id': 'cara'}, namespace='/ws')
    sio_client.get_received('/ws')
    client.post('/api/challenges', json={
        'challenger_id': 'alice', 'opponent_id': 'bob', 'cohort_id': 'cohort-1',
        'subject_id': 'algebra', 'stake': 10,
    })
    assert _events(sio_client, 'challenge_event') == []
