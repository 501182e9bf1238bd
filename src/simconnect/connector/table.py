import importlib.util
import logging

from simconnect.backend import BackendTable
from simconnect.connector.base import ConnectionMethod, Connector, UnsupportedConnector
from simconnect.connector.local import DirectConnector, InProcessConnector, InProcessMainThreadConnector, \
    SharedMemoryServerConnector, ExistingSharedMemoryServerConnector, ExternalBackendConnector
from simconnect.connector.network import TcpConnector, UdpConnector

logger = logging.getLogger(__name__)


def grpc_connector() -> Connector:
    if importlib.util.find_spec('grpc') is None:
        logger.debug("grpcio is not installed, NETWORK_GRPC is unavailable")
        return UnsupportedConnector(ConnectionMethod.NETWORK_GRPC, "NETWORK_GRPC requires the grpcio package")
    from simconnect.connector.grpcconn import GrpcConnector
    return GrpcConnector()


class ConnectorTable:
    """ The connector used for each connection method. """

    def __init__(self, connectors=None):
        self._connectors = {}
        for method, connector in (connectors or {}).items():
            self[method] = connector

    @classmethod
    def default(cls, backends: BackendTable = None):
        """ the connectors for every method this installation supports. """
        return cls({
            ConnectionMethod.IN_PROCESS_DEFAULT: InProcessConnector(),
            ConnectionMethod.IN_PROCESS_MAIN_THREAD: InProcessMainThreadConnector(),
            ConnectionMethod.IN_PROCESS_SHARED_MEMORY_SERVER: SharedMemoryServerConnector(),
            ConnectionMethod.EXISTING_SHARED_MEMORY_SERVER: ExistingSharedMemoryServerConnector(),
            ConnectionMethod.DIRECT_LOCAL: DirectConnector(),
            ConnectionMethod.NETWORK_UDP: UdpConnector(),
            ConnectionMethod.NETWORK_TCP: TcpConnector(),
            ConnectionMethod.NETWORK_GRPC: grpc_connector(),
            ConnectionMethod.EXTERNAL_BACKEND: ExternalBackendConnector(backends),
        })

    def __setitem__(self, method: ConnectionMethod, connector: Connector):
        if not isinstance(method, ConnectionMethod):
            raise TypeError("not a connection method: %r" % (method,))
        self._connectors[method] = connector

    def __getitem__(self, method: ConnectionMethod) -> Connector:
        """ the connector for the method; methods without one get an UnsupportedConnector. """
        connector = self._connectors.get(method)
        return connector if connector is not None else UnsupportedConnector(method)

    def supported(self):
        return [m for m in ConnectionMethod if not isinstance(self[m], UnsupportedConnector)]
