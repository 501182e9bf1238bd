"""
Connectors whose server runs inside this process.

DIRECT_LOCAL and IN_PROCESS_MAIN_THREAD call the processor on the thread submitting the
command. IN_PROCESS_DEFAULT runs the processor on a background server thread and passes
commands and statuses across queues, so the caller waits the same way it would on a
remote server.
"""
import logging
import queue
import threading
import time

from simconnect.backend import CommandProcessor, LoopbackProcessor, BackendTable, SerializedProcessor, backends
from simconnect.connector.base import AbstractConnector, ConnectParams, ConnectionMethod, TransportHandle
from simconnect.connector import shmem
from simconnect.errors import CommandTimeoutError, TransportDiedError, InvalidParamsError, \
    UnsupportedAtBuildTimeError
from simconnect.support.loop import AsyncLoop

logger = logging.getLogger(__name__)


def create_processor(params: ConnectParams) -> CommandProcessor:
    """ the processor named by the params: the factory if given, otherwise a LoopbackProcessor. """
    factory = params.processor_factory or LoopbackProcessor
    return factory(params.options)


class DirectHandle(TransportHandle):
    """ Calls the processor on the submitting thread. """

    def __init__(self, processor: CommandProcessor, owns_processor=True):
        self.processor = processor
        self.owns_processor = owns_processor
        self._closed = False

    def can_submit_command(self):
        return not self._closed and self.processor.running

    def submit_command_and_wait_status(self, command, timeout):
        if not self.can_submit_command():
            raise TransportDiedError("the in-process server is not running")
        try:
            return self.processor.process(command)
        except Exception as e:
            raise TransportDiedError("the in-process server failed on %r: %s" % (command, e)) from e

    def disconnect(self):
        if self._closed:
            return
        self._closed = True
        if self.owns_processor:
            self.processor.shutdown()


class ServerThread(AsyncLoop):
    """ Takes commands from a queue, runs them through the processor and posts the statuses. """

    def __init__(self, processor: CommandProcessor, name=None):
        super().__init__(name=name)
        self.processor = processor
        self.commands = queue.Queue()
        self.statuses = queue.Queue()
        self.poll = 0.05

    def loop(self):
        try:
            sequence, command = self.commands.get(timeout=self.poll)
        except queue.Empty:
            return
        try:
            result = self.processor.process(command)
        except Exception as e:
            logger.exception("in-process server failed on %r" % command)
            result = e
        self.statuses.put((sequence, result))

    def shutdown(self):
        self.processor.shutdown()


class ThreadedHandle(TransportHandle):
    """ Talks to a processor running on its own server thread. """

    def __init__(self, processor: CommandProcessor, name=None):
        self.server = ServerThread(processor, name)
        self._sequence = 0
        self._closed = False
        self.server.start()

    @property
    def processor(self):
        return self.server.processor

    def can_submit_command(self):
        return not self._closed and self.server.alive and self.processor.running

    def submit_command_and_wait_status(self, command, timeout):
        if not self.can_submit_command():
            raise TransportDiedError("the server thread is not running")
        self._sequence += 1
        sequence = self._sequence
        deadline = time.monotonic() + timeout
        self.server.commands.put((sequence, command))
        while True:
            remaining = deadline - time.monotonic()
            try:
                if remaining <= 0:
                    raise queue.Empty
                received, result = self.server.statuses.get(timeout=remaining)
            except queue.Empty:
                raise CommandTimeoutError("no status for %r within %ss" % (command, timeout))
            if received == sequence:
                break
            # a late reply to a command that already timed out
            logger.debug("discarding stale status %s" % received)
        if isinstance(result, Exception):
            raise TransportDiedError("the server failed on %r: %s" % (command, result)) from result
        return result

    def disconnect(self):
        if self._closed:
            return
        self._closed = True
        self.server.stop(timeout=1.0)


class ServingHandle(TransportHandle):
    """
    A local handle to a processor that is also served on shared memory for other processes.
    Disconnecting stops the shared memory server too.
    """

    def __init__(self, local: TransportHandle, server: shmem.SharedMemoryServer):
        self.local = local
        self.server = server

    @property
    def shared_memory_key(self):
        return self.server.key

    def can_submit_command(self):
        return self.local.can_submit_command() and self.server.alive

    def submit_command_and_wait_status(self, command, timeout):
        return self.local.submit_command_and_wait_status(command, timeout)

    def disconnect(self):
        try:
            self.server.stop()
        finally:
            self.local.disconnect()


class DirectConnector(AbstractConnector):
    """
    DIRECT_LOCAL: runs a processor in this process, called directly. When the params carry a
    shared memory key, attaches to the server serving that key instead.
    """
    method = ConnectionMethod.DIRECT_LOCAL

    def _connect(self, params):
        if params.key is not None:
            return shmem.SharedMemoryClientHandle.attach(params.key)
        return DirectHandle(create_processor(params))


class InProcessConnector(AbstractConnector):
    """ IN_PROCESS_DEFAULT: the processor runs on a background server thread. """
    method = ConnectionMethod.IN_PROCESS_DEFAULT

    def _connect(self, params):
        return ThreadedHandle(create_processor(params), name='simconnect-server')


class InProcessMainThreadConnector(AbstractConnector):
    """ IN_PROCESS_MAIN_THREAD: the processor runs on the main thread, which must be the caller. """
    method = ConnectionMethod.IN_PROCESS_MAIN_THREAD

    def _validate(self, params):
        super()._validate(params)
        if threading.current_thread() is not threading.main_thread():
            raise InvalidParamsError("%s must be connected from the main thread" % self.method.name, self.method)

    def _connect(self, params):
        return DirectHandle(create_processor(params))


class SharedMemoryServerConnector(AbstractConnector):
    """
    IN_PROCESS_SHARED_MEMORY_SERVER: a new processor on a server thread, also served on the
    shared memory key so other processes can attach with DIRECT_LOCAL.
    """
    method = ConnectionMethod.IN_PROCESS_SHARED_MEMORY_SERVER

    def _connect(self, params):
        shared = SerializedProcessor(create_processor(params))
        server = shmem.SharedMemoryServer(shared, params.key_or_default())
        local = ThreadedHandle(shared, name='simconnect-server')
        try:
            server.start()
        except BaseException:
            local.disconnect()
            raise
        return ServingHandle(local, server)


class ExistingSharedMemoryServerConnector(AbstractConnector):
    """
    EXISTING_SHARED_MEMORY_SERVER: serves a processor the caller already owns on the shared
    memory key. The caller's processor is not shut down when the session ends.
    """
    method = ConnectionMethod.EXISTING_SHARED_MEMORY_SERVER

    def _validate(self, params):
        super()._validate(params)
        if not isinstance(params.processor, CommandProcessor):
            raise InvalidParamsError("an existing processor is required", self.method)

    def _connect(self, params):
        shared = SerializedProcessor(params.processor)
        server = shmem.SharedMemoryServer(shared, params.key_or_default())
        server.start()
        return ServingHandle(DirectHandle(shared, owns_processor=False), server)


class ExternalBackendConnector(AbstractConnector):
    """ EXTERNAL_BACKEND: a processor created by a backend registered under params.backend. """
    method = ConnectionMethod.EXTERNAL_BACKEND

    def __init__(self, table: BackendTable = None):
        self.table = backends if table is None else table

    def _validate(self, params):
        super()._validate(params)
        if not params.backend:
            raise InvalidParamsError("no backend name given", self.method)

    def _connect(self, params):
        if params.backend not in self.table:
            raise UnsupportedAtBuildTimeError("backend %r is not available (registered: %s)" %
                                              (params.backend, ', '.join(self.table.names()) or 'none'),
                                              self.method)
        return DirectHandle(self.table.create(params.backend, params.options))
