"""
UDP and TCP transports, with the servers that expose a CommandProcessor over them.

TCP carries length-prefixed frames (see simconnect.protocol.codec) over one socket per
session. UDP sends one datagram per command and per status; each datagram starts with a
little-endian unsigned 32 bit sequence number so late replies can be told apart.
"""
import logging
import socket
import socketserver
import struct
import threading
import time

from simconnect import settings
from simconnect.backend import CommandProcessor, SerializedProcessor
from simconnect.connector.base import AbstractConnector, ConnectionMethod, TransportHandle
from simconnect.errors import CodecError, CommandTimeoutError, TransportDiedError
from simconnect.protocol import codec
from simconnect.protocol.commands import Status, StatusType, family_of

logger = logging.getLogger(__name__)

datagram_header = struct.Struct('<I')
max_datagram_size = 65507


class TcpHandle(TransportHandle):
    """
    A session over a connected TCP socket.
    A timed out command leaves the stream out of step with the server, so the handle
    reports itself unusable afterwards.
    """

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self.read = sock.makefile('rb')
        self.write = sock.makefile('wb')
        self._closed = False
        self._desynchronized = False

    def can_submit_command(self):
        return not self._closed and not self._desynchronized and self.sock.fileno() >= 0

    def submit_command_and_wait_status(self, command, timeout):
        if not self.can_submit_command():
            raise TransportDiedError("socket to %s is closed" % (self._peer(),))
        try:
            self.sock.settimeout(timeout)
            codec.write_frame(self.write, codec.encode_command(command))
            data = codec.read_frame(self.read)
        except socket.timeout as e:
            self._desynchronized = True
            raise CommandTimeoutError("no status for %r within %ss" % (command, timeout)) from e
        except (OSError, CodecError) as e:
            raise TransportDiedError("socket error: %s" % e) from e
        if data is None:
            raise TransportDiedError("server closed the connection")
        try:
            return codec.decode_status(data)
        except CodecError as e:
            raise TransportDiedError(str(e)) from e

    def _peer(self):
        try:
            return self.sock.getpeername()
        except OSError:
            return None

    def disconnect(self):
        if self._closed:
            return
        self._closed = True
        for stream in (self.read, self.write):
            try:
                stream.close()
            except OSError:
                pass
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # the peer may have closed the socket already
        finally:
            self.sock.close()


class UdpHandle(TransportHandle):
    """ A session exchanging datagrams with a UDP server. """

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self._sequence = 0
        self._closed = False

    def can_submit_command(self):
        return not self._closed and self.sock.fileno() >= 0

    def submit_command_and_wait_status(self, command, timeout):
        if not self.can_submit_command():
            raise TransportDiedError("udp socket is closed")
        self._sequence = (self._sequence + 1) & 0xffffffff
        sequence = self._sequence
        try:
            datagram = datagram_header.pack(sequence) + codec.encode_command(command)
            if len(datagram) > max_datagram_size:
                raise CodecError("command of %d bytes does not fit a datagram" % len(datagram))
            deadline = time.monotonic() + timeout
            self.sock.settimeout(timeout)
            self.sock.send(datagram)
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise CommandTimeoutError("no status for %r within %ss" % (command, timeout))
                self.sock.settimeout(remaining)
                reply = self.sock.recv(max_datagram_size)
                if len(reply) < datagram_header.size:
                    continue
                received, = datagram_header.unpack_from(reply)
                if received == sequence:
                    return codec.decode_status(reply[datagram_header.size:])
                logger.debug("discarding stale datagram %s" % received)
        except socket.timeout as e:
            raise CommandTimeoutError("no status for %r within %ss" % (command, timeout)) from e
        except (OSError, CodecError) as e:
            raise TransportDiedError("udp error: %s" % e) from e

    def disconnect(self):
        if self._closed:
            return
        self._closed = True
        self.sock.close()


class TcpConnector(AbstractConnector):
    method = ConnectionMethod.NETWORK_TCP

    def _connect(self, params):
        address = (params.host_or_default(), params.port_or(settings.tcp_port))
        sock = socket.create_connection(address, timeout=params.timeout_or_default())
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        logger.info("opened tcp socket to %s:%s" % address)
        return TcpHandle(sock)


class UdpConnector(AbstractConnector):
    method = ConnectionMethod.NETWORK_UDP

    def _connect(self, params):
        address = (params.host_or_default(), params.port_or(settings.udp_port))
        family, kind, proto, _, resolved = socket.getaddrinfo(*address, type=socket.SOCK_DGRAM)[0]
        sock = socket.socket(family, kind, proto)
        try:
            sock.connect(resolved)
        except OSError:
            sock.close()
            raise
        logger.info("opened udp socket to %s:%s" % address)
        return UdpHandle(sock)


def _process(processor: CommandProcessor, data) -> bytes:
    """ runs one encoded command and returns the encoded status, reporting failures as statuses. """
    try:
        command = codec.decode_command(data)
    except CodecError as e:
        return codec.encode_status(Status(StatusType.UNKNOWN_COMMAND, {'error': str(e)}))
    try:
        status = processor.process(command)
    except Exception as e:
        logger.exception("processor failed on %r" % command)
        status = Status(family_of(command.type).failed, {'error': str(e)})
    return codec.encode_status(status)


class _TcpRequestHandler(socketserver.StreamRequestHandler):

    def handle(self):
        processor = self.server.processor
        while processor.running:
            try:
                data = codec.read_frame(self.rfile)
                if data is None:
                    return
                codec.write_frame(self.wfile, _process(processor, data))
            except (OSError, CodecError) as e:
                logger.debug("closing tcp client %s: %s" % (self.client_address, e))
                return


class _UdpRequestHandler(socketserver.BaseRequestHandler):

    def handle(self):
        data, sock = self.request
        if len(data) < datagram_header.size:
            return
        reply = data[:datagram_header.size] + _process(self.server.processor, data[datagram_header.size:])
        sock.sendto(reply, self.client_address)


class _ThreadingTcpServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    block_on_close = False
    allow_reuse_address = True


class CommandServer:
    """
    Serves a processor on a network address from a background thread.
    Port 0 picks a free port; the bound address is available from address once started.
    """
    server_type = None
    handler_type = None

    def __init__(self, processor: CommandProcessor, hostname=None, port=0):
        self.processor = SerializedProcessor(processor)
        self.requested = (hostname or settings.hostname, port)
        self.server = None
        self.thread = None

    @property
    def address(self):
        return self.server.server_address if self.server else None

    def start(self):
        if self.server is not None:
            return self
        self.server = self.server_type(self.requested, self.handler_type)
        self.server.processor = self.processor
        self.thread = threading.Thread(target=self.server.serve_forever, name=type(self).__name__, daemon=True)
        self.thread.start()
        logger.info("%s listening on %s:%s" % ((type(self).__name__,) + tuple(self.address[:2])))
        return self

    def stop(self):
        server = self.server
        self.server = None
        if server is not None:
            server.shutdown()
            server.server_close()
            self.thread.join()

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.stop()


class TcpCommandServer(CommandServer):
    server_type = _ThreadingTcpServer
    handler_type = _TcpRequestHandler


class UdpCommandServer(CommandServer):
    server_type = socketserver.UDPServer
    handler_type = _UdpRequestHandler
