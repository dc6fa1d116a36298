# pyDeconzBridge - Websocket Supervisor
# -*- coding: utf-8 -*-
"""
 Keeps the gateway websocket open

 start_websocket() always arms a watchdog that retries after
 POLL_FREQUENCY_SEC in case the transport never calls back. A lost
 connection is retried at once (the watchdog spaces out repeated
 failures), a connection error waits a full poll interval first.

 Transport callbacks arrive on the websocket thread and are moved onto the
 bridge scheduler before any state is touched.
"""
import logging
import threading
from typing import Optional

from pydeconzbridge.config import BridgeConfig
from pydeconzbridge.models import ConnectionState, ThingStatus, ThingStatusDetail
from pydeconzbridge.scheduler import POLL_FREQUENCY_SEC, DeferredTask, Scheduler
from pydeconzbridge.status import StatusSink
from pydeconzbridge.websocket import WebSocketConnection, WebSocketConnectionListener

log = logging.getLogger(__name__)


class ConnectionSupervisor(WebSocketConnectionListener):
    def __init__(self, websocket: WebSocketConnection, config: BridgeConfig, status: StatusSink,
                 scheduler: Scheduler, deferred: DeferredTask, poll_interval: float = POLL_FREQUENCY_SEC):
        self.websocket = websocket
        self.config = config
        self.status = status
        self.scheduler = scheduler
        self.deferred = deferred
        self.poll_interval = poll_interval
        self.websocket_port = 0
        self.reconnect = False
        self.state = ConnectionState.DISCONNECTED
        self.last_error: Optional[str] = None
        self._lock = threading.RLock()  # start and stop never interleave
        websocket.register_listener(self)

    def start(self, port: int):
        """Enable reconnects and open the websocket on port, unless disposed"""
        with self._lock:
            if self.deferred.closed:
                log.debug("Supervisor closed - not starting websocket")
                return
            self.websocket_port = port
            self.reconnect = True
            self.start_websocket()

    def start_websocket(self):
        with self._lock:
            if self.websocket.is_connected() or self.websocket_port == 0 or not self.reconnect:
                return
            if self.deferred.closed:
                log.debug("Supervisor closed - not reconnecting")
                return
            # Watchdog: retry if the transport never reports back
            self.deferred.schedule(self.start_websocket, self.poll_interval)
            self.state = ConnectionState.CONNECTING
            address = "%s:%d" % (self.config.host_without_port(), self.websocket_port)
            log.debug(f"Starting websocket to {address}")
            self.websocket.start(address)

    def stop(self):
        with self._lock:
            self.reconnect = False
            self.deferred.cancel()
            self.websocket.close()
            self.state = ConnectionState.DISCONNECTED

    # WebSocketConnectionListener - called on the websocket thread

    def connection_established(self):
        self.scheduler.execute(self._connection_established)

    def connection_lost(self, reason: str):
        self.scheduler.execute(self._connection_lost, reason)

    def connection_error(self, error: Optional[BaseException]):
        self.scheduler.execute(self._connection_error, error)

    def _connection_established(self):
        if not self.reconnect:
            log.debug("Websocket connected after stop - ignoring")
            return
        self.deferred.cancel()
        self.state = ConnectionState.CONNECTED
        self.last_error = None
        self.status.update_status(ThingStatus.ONLINE)

    def _connection_lost(self, reason: str):
        self.state = ConnectionState.DISCONNECTED
        self.status.update_status(ThingStatus.OFFLINE, ThingStatusDetail.COMMUNICATION_ERROR, reason)
        self.start_websocket()

    def _connection_error(self, error: Optional[BaseException]):
        message = str(error) if error is not None and str(error) else "Unknown reason"
        self.state = ConnectionState.ERROR
        self.last_error = message
        self.status.update_status(ThingStatus.OFFLINE, ThingStatusDetail.COMMUNICATION_ERROR, message)
        if not self.reconnect:
            return
        # Wait a full poll interval after an error before trying again
        self.deferred.schedule(self.start_websocket, self.poll_interval)
