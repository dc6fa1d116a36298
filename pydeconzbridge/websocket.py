# pyDeconzBridge - Websocket Connection
# -*- coding: utf-8 -*-
"""
 Websocket transport for the deCONZ event stream

 WebSocketConnection runs the websockets sync client on its own thread and
 reports to a single registered WebSocketConnectionListener:

    connection_established()  - handshake completed
    connection_lost(reason)   - an open connection was closed by the peer
    connection_error(error)   - the connection could not be opened

 Incoming text frames are JSON decoded and handed to an optional message
 handler; their content is not interpreted here.
"""
import json
import logging
import threading
from typing import Any, Callable, Dict, Optional

from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import connect

log = logging.getLogger(__name__)

OPEN_TIMEOUT = 10


class WebSocketConnectionListener:
    """Receives websocket state changes"""

    def connection_established(self):
        raise NotImplementedError

    def connection_lost(self, reason: str):
        raise NotImplementedError

    def connection_error(self, error: Optional[BaseException]):
        raise NotImplementedError


def websocket_id(bridge_id: str) -> str:
    """Client id for a bridge: 4 to 20 characters, no colons"""
    ws_id = bridge_id.replace(':', '-')
    if len(ws_id) < 4:
        ws_id = "pydeconzbridge-" + ws_id
    elif len(ws_id) > 20:
        ws_id = ws_id[-20:]
    return ws_id


class WebSocketConnection:
    def __init__(self, client_id: str, message_handler: Optional[Callable[[Dict[str, Any]], None]] = None,
                 open_timeout: float = OPEN_TIMEOUT):
        self.client_id = client_id
        self.message_handler = message_handler
        self.open_timeout = open_timeout
        self.listener: Optional[WebSocketConnectionListener] = None
        self._lock = threading.Lock()
        self._ws = None
        self._connected = False
        self._generation = 0  # stale connection threads compare against this

    def register_listener(self, listener: WebSocketConnectionListener):
        self.listener = listener

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def start(self, address: str):
        """Open ws://address in the background, dropping any previous attempt"""
        with self._lock:
            self._generation += 1
            generation = self._generation
            old, self._ws, self._connected = self._ws, None, False
        if old is not None:
            old.close()
        uri = "ws://" + address
        log.debug(f"{self.client_id}: connecting to {uri}")
        thread = threading.Thread(target=self._run, args=(uri, generation), name=self.client_id, daemon=True)
        thread.start()

    def close(self):
        with self._lock:
            self._generation += 1
            ws, self._ws, self._connected = self._ws, None, False
        if ws is not None:
            log.debug(f"{self.client_id}: closing websocket")
            ws.close()

    def _current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _run(self, uri: str, generation: int):
        try:
            ws = connect(uri, open_timeout=self.open_timeout)
        except (OSError, TimeoutError, InvalidHandshake, InvalidURI) as exc:
            log.debug(f"{self.client_id}: unable to connect to {uri}: {exc}")
            if self._current(generation) and self.listener:
                self.listener.connection_error(exc)
            return

        with self._lock:
            if generation != self._generation:
                stale = True
            else:
                stale = False
                self._ws = ws
                self._connected = True
        if stale:
            ws.close()
            return

        log.debug(f"{self.client_id}: connected to {uri}")
        if self.listener:
            self.listener.connection_established()

        reason = "Connection closed"
        try:
            while True:
                try:
                    message = ws.recv()
                except ConnectionClosed as exc:
                    if exc.rcvd is not None and exc.rcvd.reason:
                        reason = exc.rcvd.reason
                    else:
                        reason = str(exc)
                    break
                self._dispatch(message)
        except Exception as exc:
            log.exception(f"{self.client_id}: receive loop failed")
            reason = str(exc) or exc.__class__.__name__
            ws.close()
        finally:
            with self._lock:
                current = generation == self._generation
                if current:
                    self._ws = None
                    self._connected = False
            if current and self.listener:
                log.debug(f"{self.client_id}: connection lost: {reason}")
                self.listener.connection_lost(reason)

    def _dispatch(self, message):
        if self.message_handler is None:
            return
        try:
            event = json.loads(message)
        except (TypeError, ValueError):
            log.debug(f"{self.client_id}: ignoring non-JSON message {message!r}")
            return
        if not isinstance(event, dict):
            return
        try:
            self.message_handler(event)
        except Exception:
            log.exception(f"{self.client_id}: message handler failed")
