import importlib.util
import socket
import unittest

from hamcrest import assert_that, is_, calling, raises
import timeout_decorator

from simconnect.backend import LoopbackProcessor
from simconnect.connector.base import ConnectParams
from simconnect.errors import ConnectTimeoutError, TransportDiedError
from simconnect.protocol.commands import StatusType, step_simulation_command

grpc_available = importlib.util.find_spec('grpc') is not None

if grpc_available:
    from simconnect.connector.grpcconn import GrpcCommandServer, GrpcConnector

host = '127.0.0.1'


@unittest.skipUnless(grpc_available, "grpcio is not installed")
class GrpcTest(unittest.TestCase):

    def setUp(self):
        self.server = GrpcCommandServer(LoopbackProcessor(), host).start()
        self.handle = GrpcConnector().connect(ConnectParams(hostname=host, port=self.server.port, timeout=5))

    def tearDown(self):
        self.handle.disconnect()
        self.server.stop()

    @timeout_decorator.timeout(10)
    def test_round_trip(self):
        assert_that(self.handle.can_submit_command(), is_(True))
        status = self.handle.submit_command_and_wait_status(step_simulation_command(), 2)
        assert_that(status.kind, is_(StatusType.STEP_COMPLETED))
        assert_that(status.payload['step'], is_(1))

    @timeout_decorator.timeout(10)
    def test_server_gone(self):
        self.server.stop()
        assert_that(calling(self.handle.submit_command_and_wait_status).with_args(step_simulation_command(), 2),
                    raises(TransportDiedError))

    def test_disconnect(self):
        self.handle.disconnect()
        assert_that(self.handle.can_submit_command(), is_(False))


@unittest.skipUnless(grpc_available, "grpcio is not installed")
class GrpcConnectTimeoutTest(unittest.TestCase):

    @timeout_decorator.timeout(10)
    def test_no_server(self):
        with socket.socket() as s:
            s.bind((host, 0))
            port = s.getsockname()[1]
        params = ConnectParams(hostname=host, port=port, timeout=0.2)
        assert_that(calling(GrpcConnector().connect).with_args(params), raises(ConnectTimeoutError))
