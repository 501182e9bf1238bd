import socket
import unittest
from unittest.mock import Mock

from hamcrest import assert_that, is_, calling, raises, instance_of

from simconnect import settings
from simconnect.connector.base import AbstractConnector, ConnectionMethod, ConnectParams, UnsupportedConnector, \
    is_gui_exclusive
from simconnect.errors import ConnectError, ConnectErrorKind, ConnectTimeoutError, InvalidParamsError, \
    TransportRefusedError, UnsupportedAtBuildTimeError


class GuiExclusivityTest(unittest.TestCase):

    def test_gui_methods(self):
        for method in (ConnectionMethod.IN_PROCESS_DEFAULT, ConnectionMethod.IN_PROCESS_MAIN_THREAD,
                       ConnectionMethod.IN_PROCESS_SHARED_MEMORY_SERVER):
            assert_that(is_gui_exclusive(method), is_(True))

    def test_remote_methods(self):
        for method in (ConnectionMethod.DIRECT_LOCAL, ConnectionMethod.NETWORK_UDP, ConnectionMethod.NETWORK_TCP,
                       ConnectionMethod.NETWORK_GRPC, ConnectionMethod.EXTERNAL_BACKEND):
            assert_that(is_gui_exclusive(method, ConnectParams(gui=True)), is_(False))

    def test_existing_server_depends_on_params(self):
        method = ConnectionMethod.EXISTING_SHARED_MEMORY_SERVER
        assert_that(is_gui_exclusive(method, ConnectParams()), is_(False))
        assert_that(is_gui_exclusive(method, ConnectParams(gui=True)), is_(True))


class ConnectParamsTest(unittest.TestCase):

    def test_defaults(self):
        sut = ConnectParams()
        assert_that(sut.host_or_default(), is_(settings.hostname))
        assert_that(sut.port_or(1234), is_(1234))
        assert_that(sut.key_or_default(), is_(settings.shared_memory_key))
        assert_that(sut.timeout_or_default(), is_(settings.timeout))

    def test_given_values(self):
        sut = ConnectParams(hostname='sim', port=99, key=5, timeout=0)
        assert_that(sut.host_or_default(), is_('sim'))
        assert_that(sut.port_or(1234), is_(99))
        assert_that(sut.key_or_default(), is_(5))
        assert_that(sut.timeout_or_default(), is_(0))

    def test_repr_lists_set_values(self):
        assert_that(repr(ConnectParams(hostname='sim', port=99)), is_("ConnectParams(hostname='sim', port=99)"))


class ConnectorStub(AbstractConnector):
    method = ConnectionMethod.NETWORK_TCP

    def __init__(self, action):
        self.action = action

    def _connect(self, params):
        return self.action(params)


class AbstractConnectorTest(unittest.TestCase):

    def test_connect(self):
        handle = Mock()
        action = Mock(return_value=handle)
        assert_that(ConnectorStub(action).connect(), is_(handle))
        assert_that(action.call_args[0][0], instance_of(ConnectParams))

    def test_negative_timeout(self):
        sut = ConnectorStub(Mock())
        assert_that(calling(sut.connect).with_args(ConnectParams(timeout=-1)), raises(InvalidParamsError))
        sut.action.assert_not_called()

    def test_port_out_of_range(self):
        sut = ConnectorStub(Mock())
        assert_that(calling(sut.connect).with_args(ConnectParams(port=70000)), raises(InvalidParamsError))

    def test_refused(self):
        sut = ConnectorStub(Mock(side_effect=ConnectionRefusedError("refused")))
        try:
            sut.connect(ConnectParams())
            self.fail("expected TransportRefusedError")
        except TransportRefusedError as e:
            assert_that(e.kind, is_(ConnectErrorKind.REFUSED))
            assert_that(e.method, is_(ConnectionMethod.NETWORK_TCP))

    def test_timeout(self):
        sut = ConnectorStub(Mock(side_effect=socket.timeout("timed out")))
        assert_that(calling(sut.connect).with_args(ConnectParams()), raises(ConnectTimeoutError))

    def test_connect_error_gets_method(self):
        sut = ConnectorStub(Mock(side_effect=ConnectError("nope")))
        try:
            sut.connect(ConnectParams())
            self.fail("expected ConnectError")
        except ConnectError as e:
            assert_that(e.method, is_(ConnectionMethod.NETWORK_TCP))


class UnsupportedConnectorTest(unittest.TestCase):

    def test_connect_raises(self):
        sut = UnsupportedConnector(ConnectionMethod.NETWORK_GRPC)
        assert_that(calling(sut.connect).with_args(ConnectParams()),
                    raises(UnsupportedAtBuildTimeError, "NETWORK_GRPC is not available"))
