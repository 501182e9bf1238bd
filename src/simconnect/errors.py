"""Error types raised by the connection registry, the connectors and the command channel."""
from enum import Enum


class SimConnectError(Exception):
    """Base class for all simconnect errors."""


class NotConnectedError(SimConnectError):
    """The client id does not refer to a usable session.

    This is the single failure callers see for a session that can no longer be used,
    whatever the cause: never allocated, released, or found dead by a liveness probe.
    """

    def __init__(self, client_id=None, message=None):
        self.client_id = client_id
        super().__init__(message or "not connected to a physics server (client id %s)" % client_id)


class CapacityExceededError(SimConnectError):
    """Every slot of the registry holds a live session."""


class ExclusiveConnectionError(SimConnectError):
    """A second local GUI connection was requested while one is live."""


class HandshakeFailedError(SimConnectError):
    """The transport connected but the server did not complete the synchronization handshake."""


class ProtocolMismatchError(SimConnectError):
    """A status did not carry the kind expected for the submitted command."""

    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        super().__init__("expected status %s but received %s" % (getattr(expected, 'name', expected),
                                                                  getattr(actual, 'name', actual)))


class CommandTimeoutError(SimConnectError):
    """No status arrived within the session timeout."""


class CommandInProgressError(SimConnectError):
    """A command was submitted while the session was still waiting on the previous one."""


class TransportDiedError(SimConnectError):
    """The transport failed while a command was in flight.

    Raised by transport handles; the channel and registry convert it to NotConnectedError.
    """


class ConnectErrorKind(Enum):
    UNSUPPORTED_AT_BUILD_TIME = 1
    REFUSED = 2
    TIMEOUT = 3
    INVALID_PARAMS = 4


class ConnectError(SimConnectError):
    """A connector could not open its transport."""
    kind = None

    def __init__(self, message=None, method=None):
        self.method = method
        super().__init__(message or self.__class__.__doc__)


class UnsupportedAtBuildTimeError(ConnectError):
    """The transport is not available in this installation."""
    kind = ConnectErrorKind.UNSUPPORTED_AT_BUILD_TIME


class TransportRefusedError(ConnectError):
    """The server refused the connection or could not be reached."""
    kind = ConnectErrorKind.REFUSED


class ConnectTimeoutError(ConnectError):
    """The server did not answer the connection attempt in time."""
    kind = ConnectErrorKind.TIMEOUT


class InvalidParamsError(ConnectError):
    """The connection parameters are not valid for the transport."""
    kind = ConnectErrorKind.INVALID_PARAMS


class CodecError(ValueError):
    """A frame could not be encoded or decoded."""
