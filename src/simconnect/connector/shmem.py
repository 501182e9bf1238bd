"""
Shared memory transport.

A server publishes a mailbox in a named shared memory block so that clients in other
processes can attach by key. The block holds a header of little-endian unsigned 32 bit
fields followed by a command buffer and a status buffer of equal size:

    magic, alive, buffer_size, command_seq, status_seq, command_len, status_len, claimed

A client writes the encoded command and its length, then increments command_seq. The
server polls command_seq, runs the command, writes the encoded status and its length,
then sets status_seq to the command's sequence number. One client may use a key at a time:
attaching sets claimed, and attaching to a claimed key is refused until that client detaches.
"""
import logging
import struct
import sys
import time
from multiprocessing import shared_memory

from simconnect import settings
from simconnect.backend import CommandProcessor
from simconnect.connector.base import TransportHandle
from simconnect.errors import CodecError, CommandTimeoutError, TransportDiedError, TransportRefusedError
from simconnect.protocol import codec
from simconnect.protocol.commands import Status, StatusType, family_of
from simconnect.support.loop import AsyncLoop

logger = logging.getLogger(__name__)

MAGIC = 0x434d4953
MAGIC_OFFSET = 0
ALIVE_OFFSET = 4
BUFFER_SIZE_OFFSET = 8
COMMAND_SEQ_OFFSET = 12
STATUS_SEQ_OFFSET = 16
COMMAND_LEN_OFFSET = 20
STATUS_LEN_OFFSET = 24
CLAIMED_OFFSET = 28
HEADER_SIZE = 32

_u32 = struct.Struct('<I')


def block_name(key):
    """
    >>> block_name(12347)
    'simconnect_12347'
    """
    return 'simconnect_%d' % int(key)


def _attach_kwargs():
    # since 3.13 an attaching process can opt out of the resource tracker unlinking the block at exit
    return {'track': False} if sys.version_info >= (3, 13) else {}


class Mailbox:
    """ The command and status exchange area inside a shared memory block. """

    def __init__(self, memory: shared_memory.SharedMemory, owner=False):
        self.memory = memory
        self.owner = owner
        self.claimed = False

    @classmethod
    def create(cls, key, buffer_size=None):
        """
        :raises TransportRefusedError: when a block already exists for the key
        """
        buffer_size = buffer_size or settings.shared_memory_size
        try:
            memory = shared_memory.SharedMemory(block_name(key), create=True, size=HEADER_SIZE + 2 * buffer_size)
        except FileExistsError as e:
            raise TransportRefusedError("shared memory key %s is already in use" % key) from e
        mailbox = cls(memory, owner=True)
        for offset in (COMMAND_SEQ_OFFSET, STATUS_SEQ_OFFSET, COMMAND_LEN_OFFSET, STATUS_LEN_OFFSET, CLAIMED_OFFSET):
            mailbox._set(offset, 0)
        mailbox._set(BUFFER_SIZE_OFFSET, buffer_size)
        mailbox._set(ALIVE_OFFSET, 1)
        mailbox._set(MAGIC_OFFSET, MAGIC)
        return mailbox

    @classmethod
    def attach(cls, key):
        """
        :raises TransportRefusedError: when no server publishes the key, or another client holds it
        """
        try:
            memory = shared_memory.SharedMemory(block_name(key), **_attach_kwargs())
        except FileNotFoundError as e:
            raise TransportRefusedError("no shared memory server for key %s" % key) from e
        mailbox = cls(memory)
        if not mailbox.valid:
            mailbox.close()
            raise TransportRefusedError("shared memory key %s does not hold a simconnect mailbox" % key)
        if mailbox._get(CLAIMED_OFFSET):
            mailbox.close()
            raise TransportRefusedError("shared memory key %s already has a client" % key)
        mailbox._set(CLAIMED_OFFSET, 1)
        mailbox.claimed = True
        return mailbox

    def _get(self, offset):
        return _u32.unpack_from(self.memory.buf, offset)[0]

    def _set(self, offset, value):
        _u32.pack_into(self.memory.buf, offset, value & 0xffffffff)

    @property
    def valid(self):
        return self.memory.size >= HEADER_SIZE and self._get(MAGIC_OFFSET) == MAGIC

    @property
    def alive(self):
        return self.memory.buf is not None and self.valid and self._get(ALIVE_OFFSET) == 1

    @alive.setter
    def alive(self, value):
        self._set(ALIVE_OFFSET, 1 if value else 0)

    @property
    def buffer_size(self):
        return self._get(BUFFER_SIZE_OFFSET)

    @property
    def command_seq(self):
        return self._get(COMMAND_SEQ_OFFSET)

    @property
    def status_seq(self):
        return self._get(STATUS_SEQ_OFFSET)

    def _write(self, region, length_offset, data):
        if len(data) > self.buffer_size:
            raise CodecError("message of %d bytes exceeds the %d byte buffer" % (len(data), self.buffer_size))
        self.memory.buf[region:region + len(data)] = data
        self._set(length_offset, len(data))

    def _read(self, region, length_offset):
        length = self._get(length_offset)
        return bytes(self.memory.buf[region:region + length])

    def post_command(self, data) -> int:
        """ writes the command and publishes it. :return: the command's sequence number """
        self._write(HEADER_SIZE, COMMAND_LEN_OFFSET, data)
        sequence = (self.command_seq + 1) & 0xffffffff
        self._set(COMMAND_SEQ_OFFSET, sequence)
        return sequence

    def read_command(self):
        return self._read(HEADER_SIZE, COMMAND_LEN_OFFSET)

    def post_status(self, sequence, data):
        self._write(HEADER_SIZE + self.buffer_size, STATUS_LEN_OFFSET, data)
        self._set(STATUS_SEQ_OFFSET, sequence)

    def read_status(self):
        return self._read(HEADER_SIZE + self.buffer_size, STATUS_LEN_OFFSET)

    def close(self):
        memory = self.memory
        if memory.buf is None:
            return
        if self.claimed:
            self._set(CLAIMED_OFFSET, 0)
            self.claimed = False
        if self.owner:
            self.alive = False
        memory.close()
        if self.owner:
            try:
                memory.unlink()
            except FileNotFoundError:
                pass


class SharedMemoryServer(AsyncLoop):
    """
    Serves a processor on a shared memory key, polling for commands on a background thread.
    The processor is shared with the caller and is not shut down when the server stops.
    """

    def __init__(self, processor: CommandProcessor, key, buffer_size=None, poll_interval=None):
        super().__init__(name='simconnect-shmem-%s' % key)
        self.processor = processor
        self.key = key
        self.buffer_size = buffer_size
        self.poll_interval = settings.poll_interval if poll_interval is None else poll_interval
        self.mailbox = None
        self._last_seq = 0

    def start(self):
        """
        :raises TransportRefusedError: when the key is already served
        """
        if self.mailbox is None:
            self.mailbox = Mailbox.create(self.key, self.buffer_size)
            self._last_seq = self.mailbox.command_seq
            logger.info("serving shared memory key %s" % self.key)
        super().start()

    @property
    def alive(self):
        return super().alive and self.mailbox is not None and self.mailbox.alive

    def loop(self):
        if not self.processor.running:
            logger.info("processor stopped, closing shared memory key %s" % self.key)
            self.mailbox.alive = False
            self.stop_event.set()
            return
        sequence = self.mailbox.command_seq
        if sequence == self._last_seq:
            self.stop_event.wait(self.poll_interval)
            return
        self._last_seq = sequence
        self.mailbox.post_status(sequence, self._status_bytes(self.mailbox.read_command()))

    def _status_bytes(self, data):
        try:
            command = codec.decode_command(data)
        except CodecError as e:
            logger.warning("undecodable command on key %s: %s" % (self.key, e))
            return codec.encode_status(Status(StatusType.UNKNOWN_COMMAND, {'error': str(e)}))
        try:
            status = self.processor.process(command)
        except Exception as e:
            logger.exception("processor failed on %r" % command)
            status = Status(family_of(command.type).failed, {'error': str(e)})
        encoded = codec.encode_status(status)
        if len(encoded) > self.mailbox.buffer_size:
            encoded = codec.encode_status(Status(family_of(command.type).failed,
                                                 {'error': 'status exceeds the shared memory buffer'}))
        return encoded

    def stop(self, timeout=None):
        super().stop(timeout)
        mailbox = self.mailbox
        self.mailbox = None
        if mailbox is not None:
            mailbox.close()
            logger.info("stopped serving shared memory key %s" % self.key)


class SharedMemoryClientHandle(TransportHandle):
    """ A client attached to a SharedMemoryServer in this or another process. """

    def __init__(self, mailbox: Mailbox, key, poll_interval=None):
        self.mailbox = mailbox
        self.key = key
        self.poll_interval = settings.poll_interval if poll_interval is None else poll_interval
        self._closed = False

    @classmethod
    def attach(cls, key, poll_interval=None):
        return cls(Mailbox.attach(key), key, poll_interval)

    def can_submit_command(self):
        return not self._closed and self.mailbox.alive

    def submit_command_and_wait_status(self, command, timeout):
        if not self.can_submit_command():
            raise TransportDiedError("shared memory server %s is gone" % self.key)
        try:
            sequence = self.mailbox.post_command(codec.encode_command(command))
        except CodecError as e:
            raise TransportDiedError(str(e)) from e
        deadline = time.monotonic() + timeout
        while self.mailbox.status_seq != sequence:
            if not self.mailbox.alive:
                raise TransportDiedError("shared memory server %s stopped" % self.key)
            if time.monotonic() >= deadline:
                raise CommandTimeoutError("no status for %r within %ss" % (command, timeout))
            time.sleep(self.poll_interval)
        try:
            return codec.decode_status(self.mailbox.read_status())
        except CodecError as e:
            raise TransportDiedError(str(e)) from e

    def disconnect(self):
        if self._closed:
            return
        self._closed = True
        self.mailbox.close()
