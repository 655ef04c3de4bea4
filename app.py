import logging
import os
from typing import Any, Dict

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_socketio import SocketIO

from session import GameRoom, ProtocolError, RoomError, RoomRegistry

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)  # Enable CORS for all routes
socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

registry = RoomRegistry()
connection_rooms: Dict[str, str] = {}  # Socket.IO session id -> room id


@app.route('/api/rooms', methods=['POST'])
def create_room():
    """Create a new room and return its code."""
    try:
        room = registry.create()
        return jsonify({'roomId': room.room_id})
    except Exception as e:
        logger.exception("Failed to create room")
        return jsonify({'error': f'Failed to create room: {str(e)}'}), 500


@app.route('/api/rooms/<room_id>', methods=['GET'])
def get_room(room_id: str):
    """Public room info: whether the game started and how many seats are taken."""
    try:
        return jsonify(registry.info(room_id))
    except RoomError:
        return jsonify({'error': 'Room not found'}), 404


@app.route('/api/rooms/<room_id>/log', methods=['GET'])
def get_room_log(room_id: str):
    """Retrieve the full room log for analysis."""
    try:
        room = registry.get(room_id)
    except RoomError:
        return jsonify({'error': 'Room not found'}), 404
    return jsonify({'roomId': room_id, 'status': room.status.value, 'log': room.log})


@app.route('/health')
def health():
    return jsonify({'status': 'ok', 'rooms': len(registry)})


def _sender(sid: str):
    def send(message: Dict[str, Any]) -> None:
        socketio.emit('message', message, to=sid)
    return send


def _room_for(sid: str, data: Dict[str, Any]) -> GameRoom:
    """Room named in the message, attaching this connection to it on first use."""
    room_id = data.get('roomId') or connection_rooms.get(sid)
    if not room_id:
        raise ProtocolError("Message is missing roomId")
    room = registry.get(room_id)
    if connection_rooms.get(sid) != room_id:
        previous = connection_rooms.get(sid)
        if previous in registry:
            registry.get(previous).disconnect(sid)
        room.connect(sid, _sender(sid))
        connection_rooms[sid] = room_id
    return room


@socketio.on('message')
def handle_message(data):
    """Route a client message to its room."""
    sid = request.sid
    send = _sender(sid)
    try:
        if not isinstance(data, dict):
            raise ProtocolError("Message must be an object")
        room = _room_for(sid, data)
        room.handle(sid, data)
    except (RoomError, ProtocolError) as e:
        send({'type': 'error', 'error': str(e)})
    except Exception:
        logger.exception(f"Unexpected error handling message from {sid}")
        send({'type': 'error', 'error': 'Internal server error'})


@socketio.on('disconnect')
def handle_disconnect(*args):
    sid = request.sid
    room_id = connection_rooms.pop(sid, None)
    if room_id is not None and room_id in registry:
        registry.get(room_id).disconnect(sid)
    logger.info(f"Client {sid} disconnected")


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('DEBUG', '').lower() in ('1', 'true', 'yes')
    logger.info(f"Veche server starting on {host}:{port}")
    socketio.run(app, host=host, port=port, debug=debug, allow_unsafe_werkzeug=True)
