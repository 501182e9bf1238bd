import logging
import socket
from abc import abstractmethod
from enum import Enum

from simconnect import settings
from simconnect.errors import ConnectError, ConnectTimeoutError, TransportRefusedError, InvalidParamsError, \
    UnsupportedAtBuildTimeError
from simconnect.protocol.commands import Command, Status

logger = logging.getLogger(__name__)


class ConnectionMethod(Enum):
    """ The transports a session can be opened with. """
    IN_PROCESS_DEFAULT = 1
    DIRECT_LOCAL = 2
    NETWORK_UDP = 4
    NETWORK_TCP = 5
    IN_PROCESS_SHARED_MEMORY_SERVER = 7
    IN_PROCESS_MAIN_THREAD = 8
    EXISTING_SHARED_MEMORY_SERVER = 9
    EXTERNAL_BACKEND = 10
    NETWORK_GRPC = 12


# methods that always open a local rendered window
gui_methods = frozenset((ConnectionMethod.IN_PROCESS_DEFAULT,
                         ConnectionMethod.IN_PROCESS_MAIN_THREAD,
                         ConnectionMethod.IN_PROCESS_SHARED_MEMORY_SERVER))


def is_gui_exclusive(method: ConnectionMethod, params=None) -> bool:
    """
    Determines if a connection opens a local rendered window, of which only one may exist per process.
    An existing shared memory server only opens a window when the params ask for one.
    """
    if method in gui_methods:
        return True
    return method is ConnectionMethod.EXISTING_SHARED_MEMORY_SERVER and params is not None and bool(params.gui)


class ConnectParams:
    """
    The parameters for opening a connection. Unset values fall back to simconnect.settings
    when the connector reads them.

    :param hostname: host of a network server
    :param port: port of a network server
    :param key: shared memory key to serve or attach to
    :param options: free-form option string passed to the server side processor
    :param backend: name of an external backend
    :param processor: an existing CommandProcessor to serve
    :param processor_factory: callable creating the CommandProcessor for in-process servers
    :param gui: True when the connection opens a local rendered window
    :param timeout: seconds allowed for connecting and for each command
    """

    def __init__(self, hostname=None, port=None, key=None, options='', backend=None, processor=None,
                 processor_factory=None, gui=False, timeout=None):
        self.hostname = hostname
        self.port = port
        self.key = key
        self.options = options
        self.backend = backend
        self.processor = processor
        self.processor_factory = processor_factory
        self.gui = gui
        self.timeout = timeout

    def host_or_default(self):
        return self.hostname or settings.hostname

    def port_or(self, default):
        return self.port if self.port is not None else default

    def key_or_default(self):
        return self.key if self.key is not None else settings.shared_memory_key

    def timeout_or_default(self):
        return self.timeout if self.timeout is not None else settings.timeout

    def __repr__(self):
        values = ', '.join('%s=%r' % (k, v) for k, v in sorted(self.__dict__.items())
                           if v is not None and v != '' and v is not False)
        return 'ConnectParams(%s)' % values


class TransportHandle:
    """
    An open connection to a server. The registry owns every handle it stores.
    """

    @property
    def shared_memory_key(self):
        """ the key other processes can attach to, when this handle serves shared memory """
        return None

    @abstractmethod
    def can_submit_command(self) -> bool:
        """ the liveness oracle: True when the handle can still accept commands. """
        raise NotImplementedError

    @abstractmethod
    def submit_command_and_wait_status(self, command: Command, timeout) -> Status:
        """
        Sends the command and blocks until the status is received.
        :raises CommandTimeoutError: when no status arrives within timeout seconds
        :raises TransportDiedError: when the underlying transport fails
        """
        raise NotImplementedError

    @abstractmethod
    def disconnect(self):
        """ closes the transport. Calling this more than once has no further effect. """
        raise NotImplementedError


class Connector:
    """ Opens transport handles for one connection method. """
    method = None

    @abstractmethod
    def connect(self, params: ConnectParams) -> TransportHandle:
        """
        :raises ConnectError: with the kind describing why the connection was not made
        """
        raise NotImplementedError


class AbstractConnector(Connector):
    """ Validates the parameters, opens the transport and reports failures as ConnectError. """

    def connect(self, params: ConnectParams = None) -> TransportHandle:
        if params is None:
            params = ConnectParams()
        self._validate(params)
        try:
            handle = self._connect(params)
        except ConnectError as e:
            e.method = self.method
            logger.warning("%s connection failed: %s" % (self._method_name(), e))
            raise
        except socket.timeout as e:
            logger.warning("%s connection timed out: %s" % (self._method_name(), e))
            raise ConnectTimeoutError(str(e), self.method) from e
        except OSError as e:
            logger.warning("%s connection refused: %s" % (self._method_name(), e))
            raise TransportRefusedError(str(e), self.method) from e
        logger.info("connected %s %r" % (self._method_name(), params))
        return handle

    def _method_name(self):
        return self.method.name if self.method is not None else type(self).__name__

    def _validate(self, params: ConnectParams):
        """ template method; raise InvalidParamsError when the params cannot be used. """
        if params.timeout is not None and params.timeout < 0:
            raise InvalidParamsError("timeout must not be negative", self.method)
        if params.port is not None and not 0 < params.port < 65536:
            raise InvalidParamsError("port %s out of range" % params.port, self.method)

    @abstractmethod
    def _connect(self, params: ConnectParams) -> TransportHandle:
        """ Template method for subclasses to open the transport.
            Raises ConnectError or OSError when the connection cannot be made.
        """
        raise NotImplementedError


class UnsupportedConnector(Connector):
    """ Stands in for a transport this installation cannot provide. """

    def __init__(self, method: ConnectionMethod, reason=None):
        self.method = method
        self.reason = reason or "%s is not available in this build" % method.name

    def connect(self, params: ConnectParams = None) -> TransportHandle:
        raise UnsupportedAtBuildTimeError(self.reason, self.method)
