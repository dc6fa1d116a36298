# pyDeconzBridge - Exceptions
# -*- coding: utf-8 -*-
"""
 Exception classes raised by pyDeconzBridge

 Transport errors are raised by the HTTP client, protocol and
 classification errors by the bridge while it reads gateway responses.
 The bridge converts all of them into status reports; none of them
 escape its public methods.
"""


class BridgeException(Exception):
    """Base class for all pyDeconzBridge errors"""


class BridgeInvalidConfigurationParameter(BridgeException):
    pass


class TransportTimeout(BridgeException):
    """The gateway did not answer within the request timeout (transient)"""


class TransportFailure(BridgeException):
    """The request could not be delivered (connection refused, DNS, reset)"""


class ProtocolError(BridgeException):
    """Unexpected HTTP status or an empty/malformed payload"""


class DeviceMismatch(BridgeException):
    """The host answered, but it is not a deCONZ gateway"""

    def __init__(self, message="You are connected to a HUE bridge, not a deCONZ software!"):
        super().__init__(message)


class UnsupportedFirmware(BridgeException):
    """The gateway software does not provide a websocket event stream"""

    def __init__(self, message="deCONZ software too old. No websocket support!"):
        super().__init__(message)
