"""
WebSocket Connection Handlers

Dashboards only listen. On connect a client is greeted and remembered so
/health can report how many review screens are attached.
"""

import logging
import time
from typing import Dict, List, Optional

from .emitter import WebSocketEmitter

logger = logging.getLogger(__name__)


class WebSocketHandlers:
    """Tracks connected dashboard clients"""

    def __init__(self, sio, emitter: WebSocketEmitter):
        self.sio = sio
        self.emitter = emitter

        # sid -> (remote address, connect time)
        self._dashboards: Dict[str, tuple] = {}

        sio.on("connect", self.handle_connect)
        sio.on("disconnect", self.handle_disconnect)

    async def handle_connect(self, sid: str, environ: Dict):
        address = environ.get("REMOTE_ADDR") or "unknown"
        self._dashboards[sid] = (address, time.time())
        logger.info("Dashboard %s attached from %s (%d open)", sid, address, len(self._dashboards))

        await self.emitter.emit_connection_success(sid)

    async def handle_disconnect(self, sid: str, *args):
        entry = self._dashboards.pop(sid, None)
        if entry is None:
            return
        logger.info("Dashboard %s detached after %.1fs", sid, time.time() - entry[1])

    def get_client_count(self) -> int:
        return len(self._dashboards)

    def get_addresses(self) -> List[str]:
        """Remote addresses of attached dashboards"""
        return [address for address, _ in self._dashboards.values()]


_handlers: Optional[WebSocketHandlers] = None


def get_handlers() -> Optional[WebSocketHandlers]:
    return _handlers


def set_handlers(h: Optional[WebSocketHandlers]):
    global _handlers
    _handlers = h
