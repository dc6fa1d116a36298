# pyDeconzBridge - Configuration
# -*- coding: utf-8 -*-
"""
 Bridge configuration, its persistent store and the property store

 Environment Variables (read by BridgeConfig.from_env, .env files supported):
    DECONZ_HOST          - Gateway host name or IP, may carry a port (default: none)
    DECONZ_HTTP_PORT     - REST API port (default: 80)
    DECONZ_PORT          - Websocket port override, 0 uses the discovered port (default: 0)
    DECONZ_APIKEY        - API key, leave empty to pair (default: none)
    DECONZ_TIMEOUT       - HTTP timeout in seconds (default: 2)
    DECONZ_CACHE_FILE    - Path to the persisted configuration (default: ".deconz")

 The ConfigStore keeps the configuration in a small JSON file, the same way
 the auth session is cached between runs. Writing the API key or publishing
 properties never notifies configuration listeners; only
 update_configuration() does.
"""
import dataclasses
import json
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import dotenv

from pydeconzbridge.api_lock import acquire_lock_with_backoff

log = logging.getLogger(__name__)

CACHEFILE = ".deconz"
LOCK_TIMEOUT = 5

# Values that count as "not configured" when merging with the cache file
_UNSET = (None, "", 0)


@dataclass
class BridgeConfig:
    host: str = ""
    http_port: int = 80
    port: int = 0
    apikey: Optional[str] = None
    timeout: float = 2.0

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "BridgeConfig":
        dotenv.load_dotenv(dotenv_path)
        return cls(
            host=os.getenv("DECONZ_HOST", ""),
            http_port=int(os.getenv("DECONZ_HTTP_PORT", "80")),
            port=int(os.getenv("DECONZ_PORT", "0")),
            apikey=os.getenv("DECONZ_APIKEY") or None,
            timeout=float(os.getenv("DECONZ_TIMEOUT", "2")),
        )

    @staticmethod
    def cachefile_from_env() -> str:
        return os.getenv("DECONZ_CACHE_FILE") or CACHEFILE

    def host_without_port(self) -> str:
        host = self.host.strip()
        if host.startswith("["):
            # [ipv6]:port
            return host[:host.index("]") + 1] if "]" in host else host
        if host.count(":") == 1:
            return host.split(":")[0]
        return host

    def build_url(self, *path: str) -> str:
        url = "http://%s:%d/api" % (self.host_without_port(), self.http_port)
        for part in path:
            url += "/" + str(part).strip("/")
        return url

    def as_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


class ConfigStore:
    """Persists a BridgeConfig as JSON and notifies listeners of user edits"""

    def __init__(self, cachefile: str = CACHEFILE, defaults: Optional[BridgeConfig] = None):
        self.cachefile = cachefile
        self.defaults = defaults or BridgeConfig()
        self.config = dataclasses.replace(self.defaults)
        self._lock = threading.Lock()
        self._listeners: List[Callable[[Dict[str, Any]], None]] = []

    def add_listener(self, listener: Callable[[Dict[str, Any]], None]):
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[Dict[str, Any]], None]):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def load(self) -> BridgeConfig:
        """
        Load the configuration: explicit defaults win, the cache file fills
        in whatever the caller left unset (typically the API key).
        """
        stored = {}
        try:
            with open(self.cachefile, "r") as f:
                stored = json.load(f)
            log.debug('loaded configuration from cache file %s' % self.cachefile)
        except FileNotFoundError:
            log.debug(f'no configuration cache file {self.cachefile}')
        except (OSError, ValueError) as exc:
            log.debug(f'unable to read configuration cache file {self.cachefile}: {exc}')
        if not isinstance(stored, dict):
            stored = {}
        values = self.defaults.as_dict()
        for name in values:
            if values[name] in _UNSET and stored.get(name) not in _UNSET:
                values[name] = stored[name]
        # Keep the same object so every component sees the reload
        for name, value in values.items():
            setattr(self.config, name, value)
        return self.config

    def save(self):
        with acquire_lock_with_backoff(self._lock, LOCK_TIMEOUT):
            try:
                with open(self.cachefile, "w") as f:
                    json.dump(self.config.as_dict(), f)
            except OSError as exc:
                log.debug(f'unable to cache configuration - continuing: {exc}')

    def persist_api_key(self, apikey: str):
        """Store a newly issued API key without triggering reconfiguration"""
        self.config.apikey = apikey
        self.defaults.apikey = self.defaults.apikey or apikey
        self.save()

    def update_configuration(self, **values):
        """Apply a user edit, persist it and notify listeners"""
        applied = {}
        for name, value in values.items():
            if not hasattr(self.config, name):
                raise KeyError(f"Unknown configuration parameter: {name}")
            if name == "apikey" and not value:
                # an issued key is only ever replaced, never cleared
                log.debug("ignoring empty apikey in configuration update")
                continue
            applied[name] = value
        if not applied:
            return
        for name, value in applied.items():
            setattr(self.config, name, value)
            setattr(self.defaults, name, value)
        self.save()
        for listener in list(self._listeners):
            listener(dict(applied))


class PropertyStore:
    """Descriptive gateway metadata published by the bridge"""

    def __init__(self):
        self._lock = threading.Lock()
        self._properties: Dict[str, str] = {}

    def apply_properties(self, properties: Dict[str, str]):
        """Merge properties; never causes a dispose/initialize cycle"""
        with self._lock:
            self._properties.update(properties)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._lock:
            return self._properties.get(key, default)

    def as_dict(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._properties)
