"""
Wire encoding shared by the transports that leave the process.

Commands and statuses are encoded as UTF-8 JSON objects. Stream transports send each
encoded message as a frame: a little-endian unsigned 32 bit length followed by the bytes.

>>> decode_command(encode_command(Command(CommandType.STEP_SIMULATION)))
Command(STEP_SIMULATION, {})
"""
import json
import struct
from io import IOBase

from simconnect.errors import CodecError
from simconnect.protocol.commands import Command, CommandType, Status, StatusType

frame_header = struct.Struct('<I')

# frames larger than this are rejected as corrupt
max_frame_size = 16 * 1024 * 1024


def _encode(message):
    try:
        return json.dumps(message, separators=(',', ':')).encode('utf-8')
    except (TypeError, ValueError) as e:
        raise CodecError("cannot encode %r: %s" % (message, e)) from e


def _decode(data):
    try:
        message = json.loads(bytes(data).decode('utf-8'))
    except (UnicodeDecodeError, ValueError) as e:
        raise CodecError("undecodable message: %s" % e) from e
    if not isinstance(message, dict):
        raise CodecError("expected a JSON object, got %r" % (message,))
    return message


def _enum_member(enum_type, name):
    try:
        return enum_type[name]
    except (KeyError, TypeError) as e:
        raise CodecError("unknown %s %r" % (enum_type.__name__, name)) from e


def encode_command(command: Command) -> bytes:
    return _encode({'type': command.type.name, 'arguments': command.arguments})


def decode_command(data) -> Command:
    message = _decode(data)
    return Command(_enum_member(CommandType, message.get('type')), message.get('arguments'))


def encode_status(status: Status) -> bytes:
    return _encode({'kind': status.kind.name, 'payload': status.payload})


def decode_status(data) -> Status:
    message = _decode(data)
    return Status(_enum_member(StatusType, message.get('kind')), message.get('payload'))


def write_frame(file: IOBase, data: bytes):
    if len(data) > max_frame_size:
        raise CodecError("frame of %d bytes exceeds the %d byte limit" % (len(data), max_frame_size))
    file.write(frame_header.pack(len(data)) + data)
    file.flush()


def _read_exactly(file: IOBase, count):
    chunks = []
    remaining = count
    while remaining:
        chunk = file.read(remaining)
        if not chunk:
            return None
        chunks.append(chunk)
        remaining -= len(chunk)
    return b''.join(chunks)


def read_frame(file: IOBase):
    """
    Reads the next frame from the stream.
    :return: the frame bytes, or None when the stream ended before a complete frame.
    """
    header = _read_exactly(file, frame_header.size)
    if header is None:
        return None
    length, = frame_header.unpack(header)
    if length > max_frame_size:
        raise CodecError("frame of %d bytes exceeds the %d byte limit" % (length, max_frame_size))
    return _read_exactly(file, length) if length else b''
