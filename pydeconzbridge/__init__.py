# pyDeconzBridge Module
# -*- coding: utf-8 -*-
"""
 Python module to manage the connection to a deCONZ Zigbee gateway

 For more information see README.md

 Features
    * Pairs with the gateway and persists the issued API key
    * Caches the gateway full state for 1s so bursts of callers share one request
    * Keeps the websocket event stream open and reconnects after failures
    * Reports every state change through a status sink instead of raising

 Classes
    DeconzBridge(host, http_port, port, apikey, timeout, bridge_id, cachefile,
        poll_interval, devicetype, status_callback, message_handler)

 Parameters
    host                      # Hostname or IP of the gateway (may include :port)
    http_port = 80            # REST API port of the gateway
    port = 0                  # Websocket port override (0 = use the port the gateway reports)
    apikey = None             # API key; paired automatically when missing
    timeout = 2               # Timeout for HTTP calls in seconds
    bridge_id = "deconz:bridge"  # Identifier used for logging and the websocket client id
    cachefile = ".deconz"     # Path to the persisted configuration
    poll_interval = 10        # Seconds between retries
    devicetype = "pydeconzbridge"  # Application name shown in the gateway when pairing
    status_callback = None    # Called with every StatusReport
    message_handler = None    # Called with every decoded websocket event

 Functions
    initialize()              # Pair if needed, fetch the full state and open the websocket
    dispose()                 # Stop retries and close the websocket (idempotent)
    close()                   # dispose() and release threads and http connections
    get_bridge_full_state()   # Future of the (cached) gateway full state or None
    initialize_bridge_state() # Fetch the full state and start the websocket
    handle_configuration_update(values)  # Apply a configuration edit and restart
    status()                  # Latest StatusReport

 Requirements
    This module requires the following modules: requests, websockets, python-dotenv
    pip install requests websockets python-dotenv
"""
import logging
import sys
from concurrent.futures import Future
from typing import Any, Callable, Dict, Optional

version_tuple = (0, 1, 0)
version = __version__ = '%d.%d.%d' % version_tuple
__author__ = 'pydeconzbridge'

from pydeconzbridge.auth import AuthenticationFlow
from pydeconzbridge.cache import ExpiringCacheAsync
from pydeconzbridge.config import CACHEFILE, BridgeConfig, ConfigStore, PropertyStore
from pydeconzbridge.exceptions import (BridgeInvalidConfigurationParameter, DeviceMismatch, ProtocolError,
                                       TransportTimeout, UnsupportedFirmware)
from pydeconzbridge.httpclient import AsyncHttpClient
from pydeconzbridge.models import ConnectionState, FullState, ThingStatus, ThingStatusDetail
from pydeconzbridge.scheduler import POLL_FREQUENCY_SEC, DeferredTask, Scheduler, completed
from pydeconzbridge.status import StatusReport, StatusSink
from pydeconzbridge.supervisor import ConnectionSupervisor
from pydeconzbridge.websocket import WebSocketConnection, websocket_id

log = logging.getLogger(__name__)
log.debug('%s version %s', __name__, __version__)
log.debug('Python %s on %s', sys.version, sys.platform)

# Seconds a fetched full state is served from cache
FULL_STATE_CACHE_EXPIRE = 1.0


def set_debug(toggle=True, color=True):
    """Enable verbose logging"""
    if toggle:
        if color:
            logging.basicConfig(format='\x1b[31;1m%(levelname)s:%(message)s\x1b[0m', level=logging.DEBUG)
        else:
            logging.basicConfig(format='%(levelname)s:%(message)s', level=logging.DEBUG)
        log.setLevel(logging.DEBUG)
        log.debug("%s [%s]\n" % (__name__, __version__))
    else:
        log.setLevel(logging.NOTSET)


class DeconzBridge(object):
    def __init__(self, host="", http_port=80, port=0, apikey=None, timeout=2.0,
                 bridge_id="deconz:bridge", cachefile=CACHEFILE, poll_interval=POLL_FREQUENCY_SEC,
                 devicetype="pydeconzbridge",
                 status_callback: Optional[Callable[[StatusReport], None]] = None,
                 message_handler: Optional[Callable[[Dict[str, Any]], None]] = None,
                 http: Optional[AsyncHttpClient] = None,
                 websocket: Optional[WebSocketConnection] = None,
                 scheduler: Optional[Scheduler] = None):
        """
        Represents the bridge to one deCONZ gateway.

        Args:
            host          = Hostname or IP address of the gateway (e.g. 10.0.1.20 or 10.0.1.20:8080)
            http_port     = Port of the REST API
            port          = Websocket port, 0 to use the port reported by the gateway
            apikey        = API key, None to pair with the gateway
            timeout       = Seconds for the timeout on http requests
            bridge_id     = Identifier of this bridge
            cachefile     = Path to the persisted configuration
            poll_interval = Seconds to wait between retries
            devicetype    = Application name registered with the gateway
            status_callback = Called with each StatusReport
            message_handler = Called with each decoded websocket event
            http, websocket, scheduler = Collaborators, created when not given
        """
        self.bridge_id = bridge_id
        self.poll_interval = poll_interval
        self.devicetype = devicetype
        defaults = BridgeConfig(host=host, http_port=http_port, port=port, apikey=apikey, timeout=timeout)
        self._validate_init_configuration(defaults)

        self.store = ConfigStore(cachefile, defaults)
        self.store.load()
        if not self.store.config.host or not isinstance(self.store.config.host, str):
            raise BridgeInvalidConfigurationParameter("Missing gateway host")
        self.store.add_listener(self._configuration_updated)
        self.properties = PropertyStore()
        self.status_sink = StatusSink(bridge_id, status_callback)
        self.scheduler = scheduler or Scheduler(websocket_id(bridge_id))
        self.deferred = DeferredTask(self.scheduler)
        self.http = http or AsyncHttpClient()
        self.websocket = websocket or WebSocketConnection(websocket_id(bridge_id), message_handler)
        self.supervisor = ConnectionSupervisor(self.websocket, self.store.config, self.status_sink,
                                               self.scheduler, self.deferred, poll_interval)
        self.auth = AuthenticationFlow(self.http, self.store, self.status_sink, self.scheduler, self.deferred,
                                       self.initialize_bridge_state, poll_interval, devicetype)
        self._full_state_cache: ExpiringCacheAsync[Optional[FullState]] = \
            ExpiringCacheAsync(FULL_STATE_CACHE_EXPIRE)
        self._disposed = True

    def _validate_init_configuration(self, config: BridgeConfig):
        for name in ("http_port", "port"):
            value = getattr(config, name)
            if not isinstance(value, int) or not 0 <= value <= 65535:
                raise BridgeInvalidConfigurationParameter(f"Invalid value for parameter '{name}': {value}")
        if config.http_port == 0:
            raise BridgeInvalidConfigurationParameter("Invalid value for parameter 'http_port': 0")
        if not isinstance(config.timeout, (int, float)) or config.timeout <= 0:
            raise BridgeInvalidConfigurationParameter(f"Invalid value for parameter 'timeout': {config.timeout}")
        if not isinstance(self.poll_interval, (int, float)) or self.poll_interval <= 0:
            raise BridgeInvalidConfigurationParameter(
                f"Invalid value for parameter 'poll_interval': {self.poll_interval}")

    @property
    def config(self) -> BridgeConfig:
        return self.store.config

    @property
    def connection_state(self) -> ConnectionState:
        return self.supervisor.state

    def status(self) -> StatusReport:
        return self.status_sink.current

    def initialize(self):
        """Load the configuration and either pair or fetch the gateway state"""
        log.debug(f"{self.bridge_id}: start initializing")
        self.store.load()
        self._disposed = False
        self.deferred.reopen()
        if self.config.apikey is None:
            self.auth.request_api_key()
        else:
            self.initialize_bridge_state()

    def dispose(self):
        """Stop all retries and close the websocket. Safe to call repeatedly."""
        log.debug(f"{self.bridge_id}: dispose")
        self._disposed = True
        self.deferred.close()
        self.supervisor.stop()

    def close(self):
        self.dispose()
        self.store.remove_listener(self._configuration_updated)
        self.scheduler.shutdown()
        self.http.close()

    def handle_configuration_update(self, values: Dict[str, Any]):
        """Apply a configuration edit; the bridge re-initializes afterwards"""
        self.store.update_configuration(**values)

    def _configuration_updated(self, values: Dict[str, Any]):
        log.debug(f"{self.bridge_id}: configuration updated {list(values)} - restarting")
        self.dispose()
        self._full_state_cache.invalidate_value()
        self.initialize()

    def get_bridge_full_state(self) -> "Future[Optional[FullState]]":
        """
        Get the full state of the gateway from the cache

        Returns a future of the FullState, or of None when the state is not
        available. The future never fails.
        """
        return self._full_state_cache.get_value(self._refresh_full_state_cache)

    def _refresh_full_state_cache(self) -> "Future[Optional[FullState]]":
        log.debug(f"{self.bridge_id} starts refreshing the full state cache")
        config = self.config
        if config.apikey is None:
            return completed(None)
        result = Future()
        response = self.http.get(config.build_url(config.apikey), config.timeout)
        response.add_done_callback(lambda done: self._resolve_full_state(done, result))
        return result

    def _resolve_full_state(self, done: Future, result: Future):
        value = None
        try:
            r = done.result()
            if r.status == 403:
                log.debug(f"{self.bridge_id}: api key rejected by gateway")
            elif r.status == 200:
                value = FullState.from_json(r.body)
            else:
                raise ProtocolError("unexpected status for full state")
        except TransportTimeout as exc:
            log.debug(f"Get full state failed: {exc}")
        except Exception as exc:
            self.status_sink.update_status(ThingStatus.OFFLINE, ThingStatusDetail.COMMUNICATION_ERROR, str(exc))
        finally:
            result.set_result(value)

    def initialize_bridge_state(self) -> Future:
        """
        Request the full state, check the gateway and start the websocket.
        Retries every poll_interval seconds while no state is available.
        """
        return self.scheduler.then(self.get_bridge_full_state(), self._process_full_state)

    def _process_full_state(self, done: Future):
        if self._disposed:
            log.debug(f"{self.bridge_id}: disposed - ignoring full state")
            return
        try:
            state: Optional[FullState] = done.result()
            if state is None:
                # initial response was empty, re-trying in poll_interval seconds
                self.deferred.schedule(self.initialize_bridge_state, self.poll_interval)
                return
            if not state.config.name:
                raise DeviceMismatch()
            if state.config.websocketport == 0:
                raise UnsupportedFirmware()

            self.properties.apply_properties(state.config.properties())

            # Use the discovered websocket port unless one is configured
            port = self.config.port if self.config.port else state.config.websocketport
            if self._disposed:
                log.debug(f"{self.bridge_id}: disposed - not starting websocket")
                return
            self.supervisor.start(port)
        except (DeviceMismatch, UnsupportedFirmware) as exc:
            self.status_sink.update_status(ThingStatus.OFFLINE, ThingStatusDetail.NONE, str(exc))
        except Exception as exc:
            self.status_sink.update_status(ThingStatus.OFFLINE, ThingStatusDetail.NONE, str(exc) or None)
            log.warning(f"Initial full state parsing failed: {exc}")
