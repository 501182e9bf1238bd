"""
Client-side sessions to simulation servers.

- ConnectionRegistry - a fixed-size table of sessions addressed by small integer client ids.
  allocate() opens a session, lookup() hands out a live session, release() closes it.
- Connector - opens a transport handle for one ConnectionMethod: in-process (direct, on a
  server thread, on the main thread), shared memory (serving or attaching), UDP, TCP, gRPC,
  or an external backend registered by name.
- Session - a connected handle together with its method, state and command timeout.
- CommandChannel - submits one command at a time to a session, blocking until the status
  arrives, and extracts payloads from statuses of the expected kind.
- ProcessLifecycle - releases every session of a registry when the process exits.

A typical client:

    registry = managed_registry()
    client_id = registry.allocate(ConnectionMethod.DIRECT_LOCAL)
    channel = CommandChannel()
    payload = channel.request(registry.lookup(client_id), step_simulation_command())
    registry.release(client_id)

Every session completes a handshake (synchronize body info, then user data) before
allocate() returns. A session whose transport dies is released by the next lookup(),
which then raises NotConnectedError, the one error callers see for an unusable session.

## Threading

The registry starts no threads. Commands are synchronous: submit() blocks the calling
thread until the status arrives or the session timeout expires. Table changes are
serialized by the registry's lock, but sessions are not: one thread at a time per session.

Transports that host a server in this process (IN_PROCESS_DEFAULT and the shared memory
servers) run it on a daemon thread that stops when the session is released.
"""
from simconnect.connector.base import ConnectionMethod, ConnectParams
from simconnect.errors import SimConnectError, NotConnectedError, CapacityExceededError, \
    ExclusiveConnectionError, HandshakeFailedError, ProtocolMismatchError, CommandTimeoutError, \
    CommandInProgressError, ConnectError, ConnectErrorKind
from simconnect.lifecycle import ProcessLifecycle, managed_registry
from simconnect.protocol.channel import CommandChannel
from simconnect.protocol.commands import Command, CommandType, Status, StatusType, step_simulation_command
from simconnect.registry import ConnectionRegistry
from simconnect.session import Session, SessionState
