# pyDeconzBridge - Data Models
# -*- coding: utf-8 -*-
"""
 Data models for the deCONZ gateway REST responses and bridge state

 Only the fields needed for pairing and capability checks are modelled.
 Device inventories (sensors, lights, groups) are kept as the raw
 dictionaries the gateway returns.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydeconzbridge.exceptions import ProtocolError

log = logging.getLogger(__name__)


class ThingStatus(Enum):
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"


class ThingStatusDetail(Enum):
    NONE = "NONE"
    CONFIGURATION_PENDING = "CONFIGURATION_PENDING"
    COMMUNICATION_ERROR = "COMMUNICATION_ERROR"


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class HttpResult:
    status: int
    body: str = ""


@dataclass(frozen=True)
class GatewayConfig:
    """The `config` section of the gateway full state"""
    name: str = ""
    apiversion: str = ""
    swversion: str = ""
    fwversion: str = ""
    uuid: str = ""
    zigbeechannel: int = 0
    ipaddress: str = ""
    websocketport: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "GatewayConfig":
        if not data:
            return cls()
        return cls(
            name=data.get("name") or "",
            apiversion=data.get("apiversion") or "",
            swversion=data.get("swversion") or "",
            fwversion=data.get("fwversion") or "",
            uuid=data.get("uuid") or "",
            zigbeechannel=int(data.get("zigbeechannel") or 0),
            ipaddress=data.get("ipaddress") or "",
            websocketport=int(data.get("websocketport") or 0),
        )

    def properties(self) -> Dict[str, str]:
        """Descriptive gateway fields, keyed the way they are published as bridge properties"""
        return {
            "apiversion": self.apiversion,
            "swversion": self.swversion,
            "fwversion": self.fwversion,
            "uuid": self.uuid,
            "zigbeechannel": str(self.zigbeechannel),
            "ipaddress": self.ipaddress,
        }


@dataclass(frozen=True)
class FullState:
    config: GatewayConfig = field(default_factory=GatewayConfig)
    sensors: Dict[str, Any] = field(default_factory=dict)
    lights: Dict[str, Any] = field(default_factory=dict)
    groups: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["FullState"]:
        if not data:
            return None
        if not isinstance(data, dict):
            raise ProtocolError("full state is not a JSON object")
        return cls(
            config=GatewayConfig.from_dict(data.get("config")),
            sensors=dict(data.get("sensors") or {}),
            lights=dict(data.get("lights") or {}),
            groups=dict(data.get("groups") or {}),
        )

    @classmethod
    def from_json(cls, body: str) -> Optional["FullState"]:
        if not body or not body.strip():
            return None
        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise ProtocolError(f"unable to parse full state: {exc}") from exc
        return cls.from_dict(data)


def parse_api_key_response(body: str) -> str:
    """
    Return the API key issued by the gateway

    The gateway answers a successful pairing request with a list like
    [{"success": {"username": "<api key>"}}].
    """
    try:
        response: List[Dict[str, Any]] = json.loads(body) if body else []
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"unable to parse authorization response: {exc}") from exc
    if not response:
        raise ProtocolError("empty authorization response")
    try:
        return response[0]["success"]["username"]
    except (KeyError, TypeError, IndexError):
        log.error(f"Authorization response without api key: {body}")
        raise ProtocolError("authorization response carries no api key")
