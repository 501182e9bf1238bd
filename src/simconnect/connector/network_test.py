import socket
import threading
import time
import unittest

from hamcrest import assert_that, is_, calling, raises, instance_of, less_than
import timeout_decorator

from simconnect.backend import CommandProcessor, LoopbackProcessor
from simconnect.connector.base import ConnectParams
from simconnect.connector.network import TcpCommandServer, TcpConnector, TcpHandle, UdpCommandServer, \
    UdpConnector, UdpHandle, datagram_header
from simconnect.errors import CommandTimeoutError, TransportDiedError, TransportRefusedError
from simconnect.protocol import codec
from simconnect.protocol.commands import Status, StatusType, step_simulation_command

host = '127.0.0.1'


def unused_port():
    with socket.socket() as s:
        s.bind((host, 0))
        return s.getsockname()[1]


class SlowProcessor(CommandProcessor):

    def process(self, command):
        time.sleep(0.5)
        return Status(StatusType.STEP_COMPLETED)


class TcpTest(unittest.TestCase):

    def setUp(self):
        self.processor = LoopbackProcessor()
        self.server = TcpCommandServer(self.processor, host).start()
        self.params = ConnectParams(hostname=host, port=self.server.address[1], timeout=2)

    def tearDown(self):
        self.server.stop()

    @timeout_decorator.timeout(5)
    def test_round_trip(self):
        handle = TcpConnector().connect(self.params)
        try:
            assert_that(handle, instance_of(TcpHandle))
            for expected in (1, 2):
                status = handle.submit_command_and_wait_status(step_simulation_command(), 2)
                assert_that(status.payload['step'], is_(expected))
        finally:
            handle.disconnect()

    @timeout_decorator.timeout(5)
    def test_two_clients_share_the_processor(self):
        first = TcpConnector().connect(self.params)
        second = TcpConnector().connect(self.params)
        try:
            first.submit_command_and_wait_status(step_simulation_command(), 2)
            status = second.submit_command_and_wait_status(step_simulation_command(), 2)
            assert_that(status.payload['step'], is_(2))
        finally:
            first.disconnect()
            second.disconnect()

    @timeout_decorator.timeout(5)
    def test_disconnected_handle(self):
        handle = TcpConnector().connect(self.params)
        handle.disconnect()
        handle.disconnect()
        assert_that(handle.can_submit_command(), is_(False))
        assert_that(calling(handle.submit_command_and_wait_status).with_args(step_simulation_command(), 1),
                    raises(TransportDiedError))

    def test_refused(self):
        params = ConnectParams(hostname=host, port=unused_port(), timeout=1)
        assert_that(calling(TcpConnector().connect).with_args(params), raises(TransportRefusedError))


class TcpTimeoutTest(unittest.TestCase):

    @timeout_decorator.timeout(5)
    def test_timeout_desynchronizes(self):
        with TcpCommandServer(SlowProcessor(), host) as server:
            handle = TcpConnector().connect(ConnectParams(hostname=host, port=server.address[1]))
            try:
                assert_that(calling(handle.submit_command_and_wait_status).with_args(step_simulation_command(), 0.1),
                            raises(CommandTimeoutError))
                assert_that(handle.can_submit_command(), is_(False))
            finally:
                handle.disconnect()


class UdpTest(unittest.TestCase):

    @timeout_decorator.timeout(5)
    def test_round_trip(self):
        with UdpCommandServer(LoopbackProcessor(), host) as server:
            handle = UdpConnector().connect(ConnectParams(hostname=host, port=server.address[1]))
            try:
                assert_that(handle, instance_of(UdpHandle))
                status = handle.submit_command_and_wait_status(step_simulation_command(), 2)
                assert_that(status.kind, is_(StatusType.STEP_COMPLETED))
            finally:
                handle.disconnect()

    def _silent_peer(self):
        peer = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        peer.bind((host, 0))
        self.addCleanup(peer.close)
        client = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        client.connect(peer.getsockname())
        handle = UdpHandle(client)
        self.addCleanup(handle.disconnect)
        return peer, handle

    @timeout_decorator.timeout(5)
    def test_timeout(self):
        peer, handle = self._silent_peer()
        assert_that(calling(handle.submit_command_and_wait_status).with_args(step_simulation_command(), 0.1),
                    raises(CommandTimeoutError))

    @timeout_decorator.timeout(5)
    def test_stale_datagrams_do_not_extend_the_timeout(self):
        peer, handle = self._silent_peer()
        done = threading.Event()
        self.addCleanup(done.set)

        def flood():
            data, address = peer.recvfrom(65536)
            sequence, = datagram_header.unpack_from(data)
            while not done.is_set():
                try:
                    peer.sendto(datagram_header.pack(sequence + 1) + b'late', address)
                except OSError:
                    return
                done.wait(0.02)

        threading.Thread(target=flood, daemon=True).start()
        started = time.monotonic()
        assert_that(calling(handle.submit_command_and_wait_status).with_args(step_simulation_command(), 0.3),
                    raises(CommandTimeoutError))
        assert_that(time.monotonic() - started, is_(less_than(1.0)))

    @timeout_decorator.timeout(5)
    def test_stale_datagrams_are_discarded(self):
        peer, handle = self._silent_peer()

        def reply():
            data, address = peer.recvfrom(65536)
            sequence, = datagram_header.unpack_from(data)
            peer.sendto(datagram_header.pack(sequence + 7) + b'late', address)
            peer.sendto(datagram_header.pack(sequence) + codec.encode_status(Status(StatusType.RESET_COMPLETED)),
                        address)

        thread = threading.Thread(target=reply, daemon=True)
        thread.start()
        status = handle.submit_command_and_wait_status(step_simulation_command(), 2)
        assert_that(status.kind, is_(StatusType.RESET_COMPLETED))
        thread.join(1)
