"""
Authoritative game sessions for "Veche: Republic vs. Order"

A GameRoom owns the only writable GameState of one game. Clients send
messages (join, ready, action, leave, rejoin); the room validates each one,
applies it with randomness drawn from its own generator, and broadcasts the
resulting snapshot to every connection. Messages for one room are handled one
at a time under the room's lock.

Transport is abstract: a connection is an id plus a send callable, so the
same room serves Socket.IO clients (app.py) and in-process hot-seat play
(LocalSession).
"""

import logging
import random
import string
import threading
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from actions import Action, ActionType, ActionValidationError, apply_action
from agents import Decider
from events import EVENT_DECK
from models import FACTIONS, Faction
from phases import advance, game_result, next_player
from rolls import RandomValues
from state import PLAYER_COUNT, GameState, get_game_summary, initialize_game, load_config

logger = logging.getLogger(__name__)

_config = load_config()
ROOM_CODE_PREFIX = _config['room_code_prefix']
ROOM_CODE_LENGTH = _config['room_code_length']
# No 0/O or 1/I so codes survive being read aloud
ROOM_CODE_ALPHABET = ''.join(c for c in string.ascii_uppercase + string.digits if c not in '01IO')

Send = Callable[[Dict[str, Any]], None]


class RoomStatus(Enum):
    EMPTY = "empty"
    FILLING = "filling"
    READY_CHECK = "ready_check"
    IN_PROGRESS = "in_progress"
    ENDED = "ended"


class RoomError(Exception):
    """Exception raised for room-level problems: unknown room, taken seat, not joined."""
    pass


class ProtocolError(Exception):
    """Exception raised for unknown or malformed client messages."""
    pass


@dataclass
class Seat:
    """A claimed player slot. The token lets the same player reclaim it later."""
    name: str
    token: str
    connection: Optional[str] = None
    ready: bool = False

    @property
    def connected(self) -> bool:
        return self.connection is not None


class GameRoom:
    def __init__(self, room_id: str, rng: Optional[random.Random] = None):
        self.room_id = room_id
        self.seats: List[Optional[Seat]] = [None] * PLAYER_COUNT
        self.game_state: Optional[GameState] = None
        self.log: List[Dict[str, Any]] = []
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._senders: Dict[str, Send] = {}

    # -- status ---------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self.game_state is not None

    @property
    def status(self) -> RoomStatus:
        if self.started:
            if self.game_state.game_ended or all(self.game_state.forfeited):
                return RoomStatus.ENDED
            return RoomStatus.IN_PROGRESS
        seated = self.player_count
        if seated == 0:
            return RoomStatus.EMPTY
        if seated < PLAYER_COUNT:
            return RoomStatus.FILLING
        return RoomStatus.READY_CHECK

    @property
    def player_count(self) -> int:
        return sum(1 for seat in self.seats if seat is not None)

    def info(self) -> Dict[str, Any]:
        return {'room': self.room_id, 'gameStarted': self.started, 'playerCount': self.player_count}

    def to_dict(self) -> Dict[str, Any]:
        players = []
        for index, seat in enumerate(self.seats):
            if seat is None:
                players.append(None)
                continue
            players.append({
                'playerId': index,
                'name': seat.name,
                'faction': FACTIONS[index].value,
                'ready': seat.ready,
                'connected': seat.connected,
            })
        return {
            'roomId': self.room_id,
            'status': self.status.value,
            'gameStarted': self.started,
            'playerCount': self.player_count,
            'players': players,
        }

    def log_event(self, event: str, **kwargs) -> None:
        """Append an entry to the room's event log."""
        entry = {
            'turn': self.game_state.turn if self.game_state else 0,
            'phase': self.game_state.phase if self.game_state else 'lobby',
            'event': event,
            **kwargs
        }
        self.log.append(entry)

    # -- transport ------------------------------------------------------------

    def connect(self, connection_id: str, send: Send) -> None:
        with self._lock:
            self._senders[connection_id] = send

    def disconnect(self, connection_id: str) -> None:
        """
        Drop a connection.

        Before the game starts the seat is freed. Once it has started the seat
        is kept but marked disconnected, so the player can rejoin with their
        token; nothing is voted on their behalf meanwhile.
        """
        with self._lock:
            self._senders.pop(connection_id, None)
            index = self._seat_of(connection_id)
            if index is None:
                return
            if not self.started:
                self.seats[index] = None
                self.log_event('player disconnected', playerId=index)
                self._broadcast({'type': 'player_left', 'playerId': index, 'room': self.to_dict()})
                self._broadcast({'type': 'room_update', 'room': self.to_dict()})
                return
            self.seats[index].connection = None
            self.log_event('player disconnected', playerId=index)
            logger.info(f"Room {self.room_id}: player {index} disconnected mid-game")
            self._broadcast({'type': 'room_update', 'room': self.to_dict()})

    def handle(self, connection_id: str, message: Dict[str, Any]) -> None:
        """Process one inbound message; failures go back to the sender only."""
        with self._lock:
            try:
                if not isinstance(message, dict):
                    raise ProtocolError("Message must be an object")
                message_type = message.get('type')
                handler = self._handlers().get(message_type) if isinstance(message_type, str) else None
                if handler is None:
                    raise ProtocolError(f"Unknown message type: {message_type}")
                handler(connection_id, message)
            except RoomError as e:
                self._send(connection_id, {'type': 'error', 'error': str(e)})
            except ProtocolError as e:
                logger.warning(f"Room {self.room_id}: bad message from {connection_id}: {e}")
                self._send(connection_id, {'type': 'error', 'error': str(e)})

    def _handlers(self) -> Dict[str, Callable[[str, Dict[str, Any]], None]]:
        return {
            'join': self._on_join,
            'ready': self._on_ready,
            'action': self._on_action,
            'leave': self._on_leave,
            'rejoin': self._on_rejoin,
        }

    def _send(self, connection_id: str, message: Dict[str, Any]) -> None:
        send = self._senders.get(connection_id)
        if send is not None:
            send(message)

    def _broadcast(self, message: Dict[str, Any]) -> None:
        for send in list(self._senders.values()):
            send(message)

    def _seat_of(self, connection_id: str) -> Optional[int]:
        for index, seat in enumerate(self.seats):
            if seat is not None and seat.connection == connection_id:
                return index
        return None

    def _require_seat(self, connection_id: str) -> int:
        index = self._seat_of(connection_id)
        if index is None:
            raise RoomError("You are not in this room")
        return index

    @staticmethod
    def _faction_slot(faction: Any) -> int:
        """A join names its faction either by slot index (0..2) or by name ('Nobles')."""
        if isinstance(faction, int) and not isinstance(faction, bool):
            if 0 <= faction < PLAYER_COUNT:
                return faction
            raise ProtocolError(f"Unknown faction: {faction}")
        try:
            return FACTIONS.index(Faction(faction))
        except (ValueError, TypeError):
            raise ProtocolError(f"Unknown faction: {faction}")

    def _draw(self) -> RandomValues:
        return RandomValues.draw(self._rng, len(EVENT_DECK))

    # -- message handlers -----------------------------------------------------

    def _on_join(self, connection_id: str, message: Dict[str, Any]) -> None:
        if self.started:
            raise RoomError("Game already started")
        if self._seat_of(connection_id) is not None:
            raise RoomError("You have already joined this room")
        index = self._faction_slot(message.get('faction'))
        if self.seats[index] is not None:
            raise RoomError(f"{FACTIONS[index].value} is already taken")

        name = str(message.get('playerName') or FACTIONS[index].value)
        seat = Seat(name=name, token=uuid.uuid4().hex, connection=connection_id)
        self.seats[index] = seat
        self.log_event('player joined', playerId=index, name=name)
        logger.info(f"Room {self.room_id}: {name} joined as {FACTIONS[index].value}")
        self._send(connection_id, {
            'type': 'joined', 'playerId': index, 'room': self.to_dict(), 'token': seat.token,
        })
        self._broadcast({'type': 'room_update', 'room': self.to_dict()})

    def _on_ready(self, connection_id: str, message: Dict[str, Any]) -> None:
        index = self._require_seat(connection_id)
        if self.started:
            raise RoomError("Game already started")
        seat = self.seats[index]
        seat.ready = not seat.ready
        self._broadcast({'type': 'room_update', 'room': self.to_dict()})

        if all(s is not None and s.ready for s in self.seats):
            self.game_state = advance(initialize_game(), self._draw())
            self.log_event('game started')
            logger.info(f"Room {self.room_id}: game started")
            self._broadcast({
                'type': 'game_start',
                'room': self.to_dict(),
                'gameState': get_game_summary(self.game_state),
            })

    def _on_action(self, connection_id: str, message: Dict[str, Any]) -> None:
        index = self._require_seat(connection_id)
        if not self.started:
            raise RoomError("Game has not started")
        payload = message.get('action')
        action_type = payload.get('type') if isinstance(payload, dict) else None
        try:
            action = Action.from_dict(payload)
            result = apply_action(self.game_state, action, index, self._draw())
        except ActionValidationError as e:
            self.log_event('action rejected', playerId=index, action=action_type, reason=str(e))
            self._send(connection_id, {
                'type': 'action_result',
                'result': {'type': action_type, 'success': False, 'error': str(e)},
            })
            return

        new_state = result.state
        if action.action_type == ActionType.RESET_GAME and any(self.game_state.forfeited):
            # Forfeits outlive a reset
            new_state = advance(replace(initialize_game(), forfeited=self.game_state.forfeited), self._draw())
        self.game_state = new_state
        self.log_event('action', playerId=index, action=action.to_dict(), result=result.result)
        if new_state.game_ended:
            self.log_event('game ended', result=game_result(new_state))
        self._broadcast({'type': 'game_state', 'gameState': get_game_summary(new_state)})
        self._send(connection_id, {
            'type': 'action_result',
            'result': {'type': action_type, 'success': True, 'message': result.result},
        })

    def _on_leave(self, connection_id: str, message: Dict[str, Any]) -> None:
        """
        Explicit leave. Before the game starts the seat is freed; afterwards
        the player forfeits and abstains from every remaining vote.
        """
        index = self._require_seat(connection_id)
        self.seats[index] = None
        self.log_event('player left', playerId=index)

        if self.started:
            forfeited = list(self.game_state.forfeited)
            forfeited[index] = True
            state = replace(self.game_state, forfeited=tuple(forfeited))
            if state.phase == 'construction' and state.current_player == index and not all(forfeited):
                state = next_player(state)
            self.game_state = state
            logger.info(f"Room {self.room_id}: player {index} forfeited")

        self._broadcast({'type': 'player_left', 'playerId': index, 'room': self.to_dict()})
        if self.started:
            self._broadcast({'type': 'game_state', 'gameState': get_game_summary(self.game_state)})

    def _on_rejoin(self, connection_id: str, message: Dict[str, Any]) -> None:
        token = message.get('token')
        for index, seat in enumerate(self.seats):
            if seat is not None and token and seat.token == token:
                break
        else:
            raise RoomError("No seat matches this token")
        current = self._seat_of(connection_id)
        if current is not None and current != index:
            raise RoomError(f"This connection already holds seat {current}")

        seat.connection = connection_id
        self.log_event('player rejoined', playerId=index)
        self._send(connection_id, {
            'type': 'joined', 'playerId': index, 'room': self.to_dict(), 'token': seat.token,
        })
        if self.started:
            self._send(connection_id, {'type': 'game_state', 'gameState': get_game_summary(self.game_state)})
        self._broadcast({'type': 'room_update', 'room': self.to_dict()})


class RoomRegistry:
    """All live rooms, addressed by short codes like PSKOV-A3X7."""

    def __init__(self, seed: Optional[int] = None):
        self._rooms: Dict[str, GameRoom] = {}
        self._rng = random.Random(seed)
        self._lock = threading.Lock()

    def _new_code(self) -> str:
        while True:
            code = ROOM_CODE_PREFIX + ''.join(
                self._rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))
            if code not in self._rooms:
                return code

    def create(self) -> GameRoom:
        with self._lock:
            code = self._new_code()
            room = GameRoom(code, random.Random(self._rng.getrandbits(64)))
            self._rooms[code] = room
        logger.info(f"Created room {code}")
        return room

    def get(self, room_id: str) -> GameRoom:
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomError(f"Room not found: {room_id}")
        return room

    def info(self, room_id: str) -> Dict[str, Any]:
        return self.get(room_id).info()

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)


class LocalSession:
    """
    Hot-seat play on one machine.

    Runs a GameRoom with one in-process connection per seat. Seats listed in
    `deciders` are played by an AI; with autoplay the session also advances
    phases and closes votes by itself, so an all-AI table plays to the end.
    """

    def __init__(self, names=None, deciders: Optional[Dict[int, Decider]] = None,
                 seed: Optional[int] = None, autoplay: bool = False):
        self.room = GameRoom('LOCAL', random.Random(seed))
        self.deciders = deciders or {}
        self.autoplay = autoplay
        self.inbox: Dict[int, List[Dict[str, Any]]] = {i: [] for i in range(PLAYER_COUNT)}
        self._rng = random.Random(seed)
        names = names or [faction.value for faction in FACTIONS]

        for index, faction in enumerate(FACTIONS):
            self.room.connect(self._connection(index), self.inbox[index].append)
            self.room.handle(self._connection(index),
                             {'type': 'join', 'playerName': names[index], 'faction': faction.value})
        for index in range(PLAYER_COUNT):
            self.room.handle(self._connection(index), {'type': 'ready'})

    @staticmethod
    def _connection(index: int) -> str:
        return f'local-{index}'

    @property
    def game_state(self) -> GameState:
        return self.room.game_state

    def act(self, player_index: int, action: Dict[str, Any]) -> Dict[str, Any]:
        """Send an action as a seat and return the result: {type, success, error or message}."""
        self.room.handle(self._connection(player_index), {'type': 'action', 'action': action})
        for message in reversed(self.inbox[player_index]):
            if message['type'] == 'action_result':
                return message['result']
            if message['type'] == 'error':
                return {'type': None, 'success': False, 'error': message['error']}
        raise ProtocolError("No reply to action")

    def step_deciders(self, max_actions: int = 200) -> int:
        """Let AI seats act until none of them has anything to do."""
        taken = 0
        stuck = set()
        while taken < max_actions:
            progressed = False
            for index, decider in self.deciders.items():
                if index in stuck or self.game_state.forfeited[index]:
                    continue
                action = decider.decide(self.game_state, index, self._rng)
                if action is None:
                    continue
                reply = self.act(index, action.to_dict())
                if not reply.get('success'):
                    logger.warning(f"{decider.name} decider at seat {index} sent an illegal action: "
                                   f"{reply.get('error')}")
                    stuck.add(index)
                    continue
                taken += 1
                progressed = True
            if not progressed:
                break
        return taken

    def housekeeping_action(self) -> Optional[Action]:
        """The table-level step nobody in particular owns: resolve, execute or move on."""
        state = self.game_state
        if state.game_ended:
            return None
        if state.phase == 'events' and not state.event_resolved:
            return Action(ActionType.RESOLVE_EVENT)
        if state.phase == 'veche' and state.attack_planning:
            return Action(ActionType.EXECUTE_ATTACK)
        if state.phase == 'veche' and state.fortress_planning:
            return Action(ActionType.EXECUTE_FORTRESS)
        return Action(ActionType.NEXT_PHASE)

    def run(self, max_steps: int = 5000) -> Optional[Dict[str, Any]]:
        """Play until the game ends; returns the final standings."""
        for _ in range(max_steps):
            self.step_deciders()
            action = self.housekeeping_action() if self.autoplay else None
            if action is None:
                break
            active = self.game_state.active_slots()
            if not active:
                break
            reply = self.act(active[0], action.to_dict())
            if not reply.get('success'):
                logger.warning(f"Autoplay stalled: {reply.get('error')}")
                break
        return game_result(self.game_state)
