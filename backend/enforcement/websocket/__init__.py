"""
WebSocket Package

Real-time notifications for connected dashboards using Socket.IO.

Components:
- events: Event names and payload models
- emitter: Server->Client event emission
- handlers: Connection tracking

Usage:
    from enforcement.websocket import WebSocketEmitter, WebSocketHandlers

    emitter = WebSocketEmitter(sio)
    handlers = WebSocketHandlers(sio, emitter)
"""

from .events import ServerEvent
from .emitter import WebSocketEmitter, get_emitter, set_emitter
from .handlers import WebSocketHandlers, get_handlers, set_handlers

__all__ = [
    "ServerEvent",
    "WebSocketEmitter",
    "WebSocketHandlers",
    "get_emitter",
    "set_emitter",
    "get_handlers",
    "set_handlers",
]
