"""
gRPC transport.

Commands travel as a unary call to /simconnect.PhysicsServer/SubmitCommand with the JSON
encoding from simconnect.protocol.codec as message bytes, so neither side needs compiled
protobuf stubs. Requires the grpcio package.
"""
import logging
from concurrent import futures

import grpc

from simconnect import settings
from simconnect.backend import CommandProcessor, SerializedProcessor
from simconnect.connector.base import AbstractConnector, ConnectionMethod, TransportHandle
from simconnect.errors import CodecError, CommandTimeoutError, ConnectTimeoutError, TransportDiedError
from simconnect.protocol import codec
from simconnect.protocol.commands import Status, family_of

logger = logging.getLogger(__name__)

SERVICE_NAME = 'simconnect.PhysicsServer'
SUBMIT_METHOD = 'SubmitCommand'
SUBMIT_PATH = '/%s/%s' % (SERVICE_NAME, SUBMIT_METHOD)

_dead_states = (grpc.ChannelConnectivity.SHUTDOWN, grpc.ChannelConnectivity.TRANSIENT_FAILURE)


class GrpcHandle(TransportHandle):
    """ A session over a gRPC channel. """

    def __init__(self, channel: grpc.Channel):
        self.channel = channel
        self.connectivity = grpc.ChannelConnectivity.READY
        self._closed = False
        self._submit = channel.unary_unary(SUBMIT_PATH,
                                           request_serializer=codec.encode_command,
                                           response_deserializer=codec.decode_status)
        channel.subscribe(self._on_connectivity)

    def _on_connectivity(self, connectivity):
        if connectivity is not self.connectivity:
            logger.debug("grpc channel %s" % connectivity.name)
        self.connectivity = connectivity

    def can_submit_command(self):
        return not self._closed and self.connectivity not in _dead_states

    def submit_command_and_wait_status(self, command, timeout):
        if not self.can_submit_command():
            raise TransportDiedError("grpc channel is %s" % self.connectivity.name)
        try:
            return self._submit(command, timeout=timeout)
        except grpc.RpcError as e:
            if e.code() == grpc.StatusCode.DEADLINE_EXCEEDED:
                raise CommandTimeoutError("no status for %r within %ss" % (command, timeout)) from e
            raise TransportDiedError("grpc call failed: %s %s" % (e.code(), e.details())) from e
        except CodecError as e:
            raise TransportDiedError(str(e)) from e

    def disconnect(self):
        if self._closed:
            return
        self._closed = True
        self.channel.unsubscribe(self._on_connectivity)
        self.channel.close()


class GrpcConnector(AbstractConnector):
    method = ConnectionMethod.NETWORK_GRPC

    def _connect(self, params):
        target = '%s:%s' % (params.host_or_default(), params.port_or(settings.grpc_port))
        channel = grpc.insecure_channel(target)
        try:
            grpc.channel_ready_future(channel).result(timeout=params.timeout_or_default())
        except grpc.FutureTimeoutError as e:
            channel.close()
            raise ConnectTimeoutError("grpc server %s did not become ready" % target, self.method) from e
        logger.info("opened grpc channel to %s" % target)
        return GrpcHandle(channel)


class GrpcCommandServer:
    """ Serves a processor over gRPC. Port 0 picks a free port, reported by port once started. """

    def __init__(self, processor: CommandProcessor, hostname=None, port=0, max_workers=4):
        self.processor = SerializedProcessor(processor)
        self.target = '%s:%s' % (hostname or settings.hostname, port)
        self.max_workers = max_workers
        self.server = None
        self.port = None

    def _submit(self, command, context):
        try:
            return self.processor.process(command)
        except Exception as e:
            logger.exception("processor failed on %r" % command)
            return Status(family_of(command.type).failed, {'error': str(e)})

    def start(self):
        if self.server is not None:
            return self
        handler = grpc.method_handlers_generic_handler(SERVICE_NAME, {
            SUBMIT_METHOD: grpc.unary_unary_rpc_method_handler(self._submit,
                                                               request_deserializer=codec.decode_command,
                                                               response_serializer=codec.encode_status),
        })
        self.server = grpc.server(futures.ThreadPoolExecutor(max_workers=self.max_workers))
        self.server.add_generic_rpc_handlers((handler,))
        self.port = self.server.add_insecure_port(self.target)
        self.server.start()
        logger.info("grpc server listening on port %s" % self.port)
        return self

    def stop(self, grace=None):
        server = self.server
        self.server = None
        if server is not None:
            server.stop(grace).wait()

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.stop()
