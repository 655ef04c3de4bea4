import random
import threading

import pytest

from agents import CautiousDecider, RandomDecider
from session import (
    ROOM_CODE_ALPHABET, GameRoom, LocalSession, RoomError, RoomRegistry, RoomStatus,
)

FACTION_NAMES = ['Nobles', 'Merchants', 'Commoners']


class Client:
    """In-process connection that records everything the room sends it."""

    def __init__(self, room, connection_id):
        self.room = room
        self.id = connection_id
        self.messages = []
        room.connect(connection_id, self.messages.append)

    def send(self, message_type, **payload):
        self.room.handle(self.id, {'type': message_type, **payload})

    def last(self, message_type):
        for message in reversed(self.messages):
            if message['type'] == message_type:
                return message
        return None

    def all(self, message_type):
        return [m for m in self.messages if m['type'] == message_type]


@pytest.fixture
def room():
    return GameRoom('PSKOV-TEST', random.Random(7))


@pytest.fixture
def seated(room):
    """Three clients joined, not yet ready."""
    clients = [Client(room, f'c{i}') for i in range(3)]
    for client, faction in zip(clients, FACTION_NAMES):
        client.send('join', playerName=f'{faction} player', faction=faction)
    return clients


@pytest.fixture
def playing(room, seated):
    for client in seated:
        client.send('ready')
    return seated


class TestLobby:
    def test_empty_room(self, room):
        assert room.status == RoomStatus.EMPTY
        assert room.info() == {'room': 'PSKOV-TEST', 'gameStarted': False, 'playerCount': 0}

    def test_join(self, room):
        client = Client(room, 'c0')
        client.send('join', playerName='Ivan', faction='Merchants')
        joined = client.last('joined')
        assert joined['playerId'] == 1
        assert joined['token']
        assert joined['room']['players'][1]['name'] == 'Ivan'
        assert room.status == RoomStatus.FILLING

    def test_join_by_slot_index(self, room):
        client = Client(room, 'c0')
        client.send('join', playerName='Ivan', faction=0)
        assert client.last('joined')['playerId'] == 0
        assert room.to_dict()['players'][0]['faction'] == 'Nobles'

    @pytest.mark.parametrize("faction", [3, -1, True])
    def test_join_bad_slot_index(self, room, faction):
        client = Client(room, 'c0')
        client.send('join', faction=faction)
        assert 'Unknown faction' in client.last('error')['error']
        assert room.player_count == 0

    def test_faction_taken(self, room, seated):
        late = Client(room, 'late')
        late.send('join', playerName='Late', faction='Nobles')
        assert 'already taken' in late.last('error')['error']

    def test_unknown_faction(self, room):
        client = Client(room, 'c0')
        client.send('join', playerName='Ivan', faction='Clergy')
        assert 'Unknown faction' in client.last('error')['error']

    def test_join_twice(self, room):
        client = Client(room, 'c0')
        client.send('join', faction='Nobles')
        client.send('join', faction='Merchants')
        assert 'already joined' in client.last('error')['error']
        assert room.player_count == 1

    def test_ready_check(self, room, seated):
        assert room.status == RoomStatus.READY_CHECK
        seated[0].send('ready')
        assert room.to_dict()['players'][0]['ready']
        seated[0].send('ready')
        assert not room.to_dict()['players'][0]['ready']
        assert not room.started

    def test_ready_without_seat(self, room):
        client = Client(room, 'c0')
        client.send('ready')
        assert client.last('error')['error'] == 'You are not in this room'

    def test_all_ready_starts_game(self, room, playing):
        assert room.status == RoomStatus.IN_PROGRESS
        start = playing[2].last('game_start')
        assert start['gameState']['phase'] == 'construction'
        assert start['gameState']['turn'] == 1
        assert [p['money'] for p in start['gameState']['players']] == [2.0, 2.0, 2.0]

    def test_disconnect_before_start_frees_seat(self, room, seated):
        room.disconnect('c1')
        assert room.seats[1] is None
        assert seated[0].last('player_left')['playerId'] == 1
        replacement = Client(room, 'new')
        replacement.send('join', faction='Merchants')
        assert replacement.last('joined')['playerId'] == 1

    def test_join_after_start_rejected(self, room, playing):
        late = Client(room, 'late')
        late.send('join', faction='Nobles')
        assert late.last('error')['error'] == 'Game already started'

    def test_unknown_message(self, room):
        client = Client(room, 'c0')
        client.send('dance')
        assert 'Unknown message type' in client.last('error')['error']

    def test_message_type_not_a_string(self, room):
        client = Client(room, 'c0')
        room.handle('c0', {'type': ['join']})
        assert 'Unknown message type' in client.last('error')['error']


class TestActions:
    def test_action_broadcasts_state(self, room, playing):
        playing[0].send('action', action={'type': 'BUY_EQUIPMENT', 'item': 'weapons'})
        result = playing[0].last('action_result')['result']
        assert result['success']
        assert result['type'] == 'BUY_EQUIPMENT'
        for client in playing:
            assert client.last('game_state')['gameState']['players'][0]['weapons'] == 1
        # Only the actor hears about the outcome
        assert playing[1].last('action_result') is None

    def test_rejected_action_goes_to_actor_only(self, room, playing):
        before = len(playing[1].all('game_state'))
        playing[1].send('action', action={'type': 'BUILD_BUILDING', 'buildingType': 'merchant_mansion'})
        result = playing[1].last('action_result')['result']
        assert not result['success']
        assert 'turn' in result['error']
        assert len(playing[1].all('game_state')) == before
        assert playing[0].last('action_result') is None

    def test_unknown_action_type(self, room, playing):
        playing[0].send('action', action={'type': 'TELEPORT'})
        assert not playing[0].last('action_result')['result']['success']

    @pytest.mark.parametrize("action", [
        {'type': 'INITIATE_ATTACK', 'targetRegion': ['bearhill']},
        {'type': 'SELECT_REGION', 'regionName': {'a': 1}},
    ])
    def test_malformed_field_rejected(self, room, playing, action):
        before = room.game_state
        playing[0].send('action', action=action)
        result = playing[0].last('action_result')['result']
        assert not result['success']
        assert 'must be a string' in result['error']
        assert room.game_state is before

    def test_malformed_field_in_hot_seat(self):
        session = LocalSession(seed=1)
        reply = session.act(0, {'type': 'SELECT_REGION', 'regionName': {'a': 1}})
        assert not reply['success']

    def test_action_before_start(self, room, seated):
        seated[0].send('action', action={'type': 'NEXT_PHASE'})
        assert seated[0].last('error')['error'] == 'Game has not started'

    def test_actions_are_logged(self, room, playing):
        playing[0].send('action', action={'type': 'NEXT_PLAYER'})
        entry = room.log[-1]
        assert entry['event'] == 'action'
        assert entry['playerId'] == 0
        assert entry['action'] == {'type': 'NEXT_PLAYER'}
        assert entry['phase'] == 'construction'

    def test_snapshots_are_totally_ordered(self, room, playing):
        playing[0].send('action', action={'type': 'NEXT_PLAYER'})
        playing[1].send('action', action={'type': 'NEXT_PLAYER'})
        seats = [m['gameState']['currentPlayer'] for m in playing[2].all('game_state')]
        assert seats == [1, 2]

    def test_concurrent_messages_serialized(self, room, playing):
        threads = [
            threading.Thread(target=c.send, args=('action',), kwargs={'action': {'type': 'NEXT_PHASE'}})
            for c in playing
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        # Leaving construction works once; the event must be resolved before the next move
        assert room.game_state.phase == 'events'
        assert sum(1 for c in playing if c.last('action_result')['result']['success']) == 1


class TestLeaveAndRejoin:
    def test_disconnect_mid_game_keeps_seat(self, room, playing):
        room.disconnect('c2')
        assert room.seats[2] is not None
        assert not room.seats[2].connected
        assert room.status == RoomStatus.IN_PROGRESS

    def test_rejoin_with_token(self, room, playing):
        token = playing[2].last('joined')['token']
        room.disconnect('c2')
        back = Client(room, 'c2-again')
        back.send('rejoin', token=token)
        assert back.last('joined')['playerId'] == 2
        assert back.last('game_state')['gameState']['phase'] == 'construction'
        assert room.seats[2].connected

    def test_rejoin_bad_token(self, room, playing):
        stranger = Client(room, 'x')
        stranger.send('rejoin', token='nope')
        assert 'token' in stranger.last('error')['error']

    def test_rejoin_cannot_take_second_seat(self, room, playing):
        token = playing[2].last('joined')['token']
        room.disconnect('c2')
        playing[0].send('rejoin', token=token)
        assert 'already holds seat 0' in playing[0].last('error')['error']
        assert not room.seats[2].connected

    def test_rejoin_own_seat_again(self, room, playing):
        token = playing[0].last('joined')['token']
        playing[0].send('rejoin', token=token)
        assert playing[0].last('joined')['playerId'] == 0

    def test_leave_mid_game_forfeits(self, room, playing):
        playing[0].send('leave')
        assert room.game_state.forfeited == (True, False, False)
        # Construction passes to the next seat
        assert room.game_state.current_player == 1
        assert playing[1].last('player_left')['playerId'] == 0
        assert playing[1].last('game_state')['gameState']['forfeited'] == [True, False, False]

    def test_all_leave_ends_room(self, room, playing):
        for client in playing:
            client.send('leave')
        assert room.status == RoomStatus.ENDED


class TestRegistry:
    def test_room_codes(self):
        registry = RoomRegistry(seed=1)
        room = registry.create()
        assert room.room_id.startswith('PSKOV-')
        code = room.room_id[len('PSKOV-'):]
        assert len(code) == 4
        assert all(c in ROOM_CODE_ALPHABET for c in code)
        assert registry.get(room.room_id) is room

    def test_codes_unique(self):
        registry = RoomRegistry(seed=1)
        codes = {registry.create().room_id for _ in range(50)}
        assert len(codes) == 50

    def test_unknown_room(self):
        with pytest.raises(RoomError):
            RoomRegistry().get('PSKOV-NONE')

    def test_info(self):
        registry = RoomRegistry()
        room = registry.create()
        assert registry.info(room.room_id) == {'room': room.room_id, 'gameStarted': False, 'playerCount': 0}


class TestLocalSession:
    def test_hot_seat_starts_in_construction(self):
        session = LocalSession(seed=3)
        assert session.game_state.phase == 'construction'
        reply = session.act(0, {'type': 'BUY_EQUIPMENT', 'item': 'armor'})
        assert reply['success']
        assert session.game_state.players[0].armor == 1

    def test_deciders_take_their_turns(self):
        session = LocalSession(seed=3, deciders={1: CautiousDecider(), 2: CautiousDecider()})
        session.act(0, {'type': 'NEXT_PLAYER'})
        session.step_deciders()
        state = session.game_state
        assert state.players[1].improvements == 1
        assert state.players[2].improvements == 1
        # Last seat waits for someone to advance the phase
        assert state.current_player == 2

    def test_autoplay_finishes_game(self):
        deciders = {0: CautiousDecider(), 1: RandomDecider(), 2: CautiousDecider()}
        session = LocalSession(seed=11, deciders=deciders, autoplay=True)
        result = session.run()
        assert session.game_state.game_ended
        assert result is not None
        assert len(result['rankings']) == 3
        assert session.room.status == RoomStatus.ENDED
