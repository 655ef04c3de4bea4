import re

import pytest

from app import app, registry, socketio

FACTION_NAMES = ['Nobles', 'Merchants', 'Commoners']


@pytest.fixture
def client():
    """Create a test client for the Flask app."""
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def room_id(client):
    response = client.post('/api/rooms')
    assert response.status_code == 200
    return response.json['roomId']


def _socket(client):
    return socketio.test_client(app, flask_test_client=client)


def _messages(sock, message_type=None):
    """Drain received 'message' events, optionally filtered by type."""
    # flask-socketio's test client delivers a 'message' event's payload directly in 'args'
    payloads = [packet['args'] for packet in sock.get_received() if packet['name'] == 'message']
    if message_type is None:
        return payloads
    return [p for p in payloads if p['type'] == message_type]


def test_create_room(client):
    response = client.post('/api/rooms')
    assert response.status_code == 200
    assert re.match(r'^PSKOV-[A-Z2-9]{4}$', response.json['roomId'])


def test_room_info(client, room_id):
    response = client.get(f'/api/rooms/{room_id}')
    assert response.status_code == 200
    assert response.json == {'room': room_id, 'gameStarted': False, 'playerCount': 0}


def test_unknown_room(client):
    response = client.get('/api/rooms/PSKOV-ZZZZ')
    assert response.status_code == 404
    assert 'error' in response.json


def test_room_log(client, room_id):
    response = client.get(f'/api/rooms/{room_id}/log')
    assert response.status_code == 200
    assert response.json['log'] == []
    assert response.json['status'] == 'empty'
    assert client.get('/api/rooms/PSKOV-ZZZZ/log').status_code == 404


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json['status'] == 'ok'


def test_join_over_socket(client, room_id):
    sock = _socket(client)
    sock.emit('message', {'type': 'join', 'roomId': room_id, 'playerName': 'Ivan', 'faction': 'Nobles'})
    joined = _messages(sock, 'joined')
    assert joined and joined[0]['playerId'] == 0
    assert client.get(f'/api/rooms/{room_id}').json['playerCount'] == 1
    sock.disconnect()
    # Seat freed before the game starts
    assert client.get(f'/api/rooms/{room_id}').json['playerCount'] == 0


def test_message_for_unknown_room(client):
    sock = _socket(client)
    sock.emit('message', {'type': 'join', 'roomId': 'PSKOV-ZZZZ', 'faction': 'Nobles'})
    errors = _messages(sock, 'error')
    assert errors and 'Room not found' in errors[0]['error']


def test_message_without_room(client):
    sock = _socket(client)
    sock.emit('message', {'type': 'ready'})
    assert _messages(sock, 'error')[0]['error'] == 'Message is missing roomId'


def test_full_game_start_and_action(client, room_id):
    socks = [_socket(client) for _ in range(3)]
    for sock, faction in zip(socks, FACTION_NAMES):
        sock.emit('message', {'type': 'join', 'roomId': room_id, 'playerName': faction, 'faction': faction})
    for sock in socks:
        sock.emit('message', {'type': 'ready', 'roomId': room_id})

    starts = _messages(socks[0], 'game_start')
    assert len(starts) == 1
    assert starts[0]['gameState']['phase'] == 'construction'
    assert client.get(f'/api/rooms/{room_id}').json['gameStarted']
    for sock in socks[1:]:
        sock.get_received()

    socks[0].emit('message', {'type': 'action', 'roomId': room_id,
                              'action': {'type': 'BUILD_BUILDING', 'buildingType': 'noble_manor'}})
    received = _messages(socks[0])
    result = [m for m in received if m['type'] == 'action_result'][0]['result']
    assert result['success']
    assert result['type'] == 'BUILD_BUILDING'
    state = [m for m in received if m['type'] == 'game_state'][-1]['gameState']
    assert state['regions']['pskov']['buildings']['noble_manor'] == 1

    others = _messages(socks[1])
    assert [m['type'] for m in others] == ['game_state']

    log = client.get(f'/api/rooms/{room_id}/log').json['log']
    assert log[-1]['event'] == 'action'

    for sock in socks:
        sock.disconnect()
    assert registry.get(room_id).status.value == 'in_progress'
