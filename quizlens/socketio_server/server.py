#!/usr/bin/env python3
"""QuizLens Socket.IO overlay server

Bridges the scan pipeline to overlay renderers. Every published OverlayState is
pushed to the overlay room; overlays ask for a scan with `trigger_scan` and shut
the service down with `stop_service`.
"""
import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

import socketio
from aiohttp import web

from ..core.overlay_service import OverlayService
from ..core.overlay_state import OverlayState
from ..utils.config_loader import config as config_manager
from ..utils.log_config import get_component_logger
from ..utils.message_utils import MessageType, create_overlay_state_message, create_socket_message


class OverlayServer:
    """Socket.IO server publishing overlay state for one OverlayService."""

    def __init__(self, service: OverlayService, room: Optional[str] = None):
        self.service = service
        self.room = room or config_manager.get('server', 'room', default='quizlens_room')
        self.logger = get_component_logger("Server")

        self.sio = socketio.AsyncServer(async_mode='aiohttp', cors_allowed_origins='*')
        self.app = web.Application()
        self.sio.attach(self.app)

        # Client tracking
        self.connected_clients: Dict[str, Dict[str, Any]] = {}

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._unsubscribe = None
        self._runner: Optional[web.AppRunner] = None
        self._shutdown = asyncio.Event()
        self.register_handlers()

    def register_handlers(self):
        """Register Socket.IO event handlers."""
        self.sio.on('connect', self.on_connect)
        self.sio.on('disconnect', self.on_disconnect)
        self.sio.on(MessageType.TRIGGER_SCAN.value, self.on_trigger_scan)
        self.sio.on(MessageType.STOP_SERVICE.value, self.on_stop_service)

    # --- Socket.IO Event Handlers ---

    async def on_connect(self, sid: str, environ: Dict, auth: Optional[Dict] = None):
        """Handle new overlay connections."""
        client_ip = environ.get('REMOTE_ADDR', 'Unknown IP')
        self.connected_clients[sid] = {
            "address": client_ip,
            "connect_time": datetime.now().isoformat()
        }
        await self.sio.enter_room(sid, self.room)
        self.logger.info(f"Overlay connected: {sid} ({client_ip})")

        # Render the current state straight away
        await self.sio.emit(
            MessageType.OVERLAY_STATE.value,
            create_overlay_state_message(self.service.state.value),
            room=sid
        )

    async def on_disconnect(self, sid: str, *args):
        """Handle overlay disconnections."""
        client_info = self.connected_clients.pop(sid, None)
        if client_info is None:
            self.logger.warning(f"Disconnect event received for unknown SID: {sid}")
            return
        self.logger.info(f"Overlay disconnected: {sid} ({client_info.get('address')})")

    async def on_trigger_scan(self, sid: str, data: Any = None):
        """Scan button pressed on an overlay."""
        self.logger.info(f"Received '{MessageType.TRIGGER_SCAN.value}' from {sid}")
        if self.service.stopped:
            message = create_socket_message(MessageType.WARNING, "Service has stopped", target_sid=sid)
            await self.sio.emit('message', message, room=sid)
            return False
        task = self.service.scan_once()
        if task is None:
            message = create_socket_message(MessageType.INFO, "Scan already in progress", target_sid=sid)
            await self.sio.emit('message', message, room=sid)
            return False
        return True

    async def on_stop_service(self, sid: str, data: Any = None):
        """Stop button pressed on an overlay."""
        self.logger.info(f"Received '{MessageType.STOP_SERVICE.value}' from {sid}, stopping service")
        await self.service.stop()
        self._shutdown.set()

    # --- State publishing ---

    def on_state_changed(self, state: OverlayState) -> None:
        """Listener for OverlayStateStore; may be called from any thread."""
        if self._loop is None or self._loop.is_closed():
            return
        message = create_overlay_state_message(state)
        future = asyncio.run_coroutine_threadsafe(
            self.sio.emit(MessageType.OVERLAY_STATE.value, message, room=self.room),
            self._loop
        )
        future.add_done_callback(self._log_emit_failure)

    def _log_emit_failure(self, future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self.logger.error(f"Failed to emit overlay state: {error}")

    # --- Server Lifecycle ---

    async def start(self, host: str, port: int) -> None:
        """Start the HTTP server, subscribe to state changes and start the service."""
        self._loop = asyncio.get_running_loop()
        self._unsubscribe = self.service.state.subscribe(self.on_state_changed)

        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        self.logger.info(f"Starting overlay server on {host}:{port}")
        await site.start()

        self.service.start()
        self.logger.info(f"Overlay server running. Room: {self.room}")

    async def wait_closed(self) -> None:
        """Block until an overlay asks the service to stop."""
        await self._shutdown.wait()

    async def stop(self) -> None:
        """Stop the service and the HTTP server."""
        self.logger.info("Stopping overlay server...")
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.service.stop()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        self._shutdown.set()
