import logging
import threading

from simconnect import settings
from simconnect.connector.base import ConnectionMethod, ConnectParams, is_gui_exclusive
from simconnect.connector.table import ConnectorTable
from simconnect.errors import CapacityExceededError, ExclusiveConnectionError, HandshakeFailedError, \
    NotConnectedError, SimConnectError
from simconnect.protocol.channel import CommandChannel
from simconnect.protocol.commands import sync_body_info_command, sync_user_data_command
from simconnect.session import Session, SessionState
from simconnect.support.events import EventSource

logger = logging.getLogger(__name__)


class SessionEvent:
    """ base class for session lifecycle events. """

    def __init__(self, client_id, method):
        self.client_id = client_id
        self.method = method

    def __eq__(self, other):
        return type(other) is type(self) and other.client_id == self.client_id and other.method == self.method

    def __repr__(self):
        return '%s(%s, %s)' % (type(self).__name__, self.client_id, getattr(self.method, 'name', self.method))


class SessionOpenedEvent(SessionEvent):
    """ A session completed its handshake and was stored in a slot. """


class SessionClosedEvent(SessionEvent):
    """ A session was released, found dead, or drained at shutdown. """


class ConnectionInfo:
    """ whether a client id is connected, and with which method. """

    def __init__(self, connected, method=None):
        self.connected = connected
        self.method = method

    def __eq__(self, other):
        return isinstance(other, ConnectionInfo) and (self.connected, self.method) == (other.connected, other.method)

    def __repr__(self):
        return 'ConnectionInfo(connected=%s, method=%s)' % (self.connected, getattr(self.method, 'name', None))


class Slot:
    """ One entry of the registry table. Free when it holds no session. """
    __slots__ = ('index', 'session', 'exclusive')

    def __init__(self, index):
        self.index = index
        self.session = None
        self.exclusive = False

    @property
    def free(self):
        return self.session is None

    @property
    def handle(self):
        return self.session.handle if self.session is not None else None

    @property
    def method(self):
        return self.session.method if self.session is not None else None

    def store(self, session: Session, exclusive):
        self.session = session
        self.exclusive = exclusive

    def clear(self):
        session = self.session
        self.session = None
        self.exclusive = False
        return session


class ConnectionRegistry:
    """
    A fixed-size table of sessions, addressed by small integer client ids.

    allocate() opens a transport through the connector for the requested method, runs the
    synchronization handshake and stores the session in the first free slot; its index is
    the client id. lookup() hands out the live session for an id, releasing it first if its
    transport has died. release() and release_all() disconnect and free slots.

    All access to the table is serialized by one lock. Table invariants (GUI exclusivity,
    capacity) are checked before any transport I/O so a refused allocation leaves nothing
    behind.

    Fires SessionOpenedEvent and SessionClosedEvent on the events source, from the thread
    that caused the change.

    :param connectors: the ConnectorTable; defaults to ConnectorTable.default()
    :param capacity: the number of slots
    :param channel: the CommandChannel used for the handshake
    """

    def __init__(self, connectors: ConnectorTable = None, capacity=None, channel: CommandChannel = None):
        self.connectors = connectors if connectors is not None else ConnectorTable.default()
        self.capacity = int(settings.capacity if capacity is None else capacity)
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.channel = channel or CommandChannel()
        self.events = EventSource()
        self._slots = [Slot(i) for i in range(self.capacity)]
        self._lock = threading.Lock()

    @property
    def active_count(self):
        with self._lock:
            return sum(1 for slot in self._slots if not slot.free)

    def client_ids(self):
        """ the ids of the occupied slots, without probing liveness. """
        with self._lock:
            return [slot.index for slot in self._slots if not slot.free]

    def allocate(self, method: ConnectionMethod, params: ConnectParams = None) -> int:
        """
        Opens a session and returns its client id.
        :raises ExclusiveConnectionError: a GUI connection is requested while another is live
        :raises CapacityExceededError: every slot is occupied
        :raises ConnectError: the transport could not be opened
        :raises HandshakeFailedError: the server did not complete the handshake
        """
        if not isinstance(method, ConnectionMethod):
            raise TypeError("not a connection method: %r" % (method,))
        params = params if params is not None else ConnectParams()
        exclusive = is_gui_exclusive(method, params)
        with self._lock:
            if exclusive and any(slot.exclusive for slot in self._slots if not slot.free):
                raise ExclusiveConnectionError(
                    "Only one local in-process GUI connection allowed. Use DIRECT_LOCAL or connect to a "
                    "separate GUI server over shared memory, UDP, TCP or gRPC instead.")
            slot = self._first_free()
            if slot is None:
                raise CapacityExceededError("all %d client slots are in use" % self.capacity)

            handle = self.connectors[method].connect(params)
            try:
                session = Session(slot.index, method, handle, params.timeout)
            except BaseException:
                handle.disconnect()
                raise
            self._handshake(session)
            session.transition(SessionState.READY)
            slot.store(session, exclusive)
        logger.info("client %s connected with %s" % (slot.index, method.name))
        self.events.fire(SessionOpenedEvent(slot.index, method))
        return slot.index

    def _first_free(self):
        for slot in self._slots:
            if slot.free:
                return slot
        return None

    def _handshake(self, session: Session):
        """ synchronizes body and user data; any failure disconnects the transport. """
        session.transition(SessionState.HANDSHAKING)
        try:
            for command in (sync_body_info_command(), sync_user_data_command()):
                self.channel.request(session, command)
        except SimConnectError as e:
            logger.warning("handshake with %s server failed: %s" % (session.method.name, e))
            session.close()
            raise HandshakeFailedError("%s server did not complete the handshake: %s" %
                                       (session.method.name, e)) from e
        except BaseException:
            session.close()
            raise

    def lookup(self, client_id) -> Session:
        """
        Retrieves the live session for a client id. A session whose transport can no longer
        accept commands is disconnected and its slot freed.
        :raises NotConnectedError: the id is out of range, free, or its session died
        """
        closed = None
        with self._lock:
            slot = self._slot(client_id)
            if slot is None or slot.free:
                raise NotConnectedError(client_id)
            session = slot.session
            if not session.alive:
                logger.warning("client %s (%s) is no longer connected, releasing" % (client_id, session.method.name))
                closed = self._free(slot)
        if closed is not None:
            self._fire_closed(closed)
            raise NotConnectedError(client_id)
        return session

    def is_connected(self, client_id) -> bool:
        try:
            self.lookup(client_id)
            return True
        except NotConnectedError:
            return False

    def connection_info(self, client_id) -> ConnectionInfo:
        try:
            return ConnectionInfo(True, self.lookup(client_id).method)
        except NotConnectedError:
            return ConnectionInfo(False)

    def release(self, client_id):
        """ disconnects and frees the slot. Releasing a free or unknown id does nothing. """
        with self._lock:
            slot = self._slot(client_id)
            closed = self._free(slot) if slot is not None and not slot.free else None
        if closed is not None:
            logger.info("client %s released" % client_id)
            self._fire_closed(closed)

    def release_all(self):
        """ releases every live session. """
        with self._lock:
            closed = [self._free(slot) for slot in self._slots if not slot.free]
        if closed:
            logger.info("released %d sessions" % len(closed))
        for session in closed:
            self._fire_closed(session)

    def _slot(self, client_id):
        if isinstance(client_id, bool) or not isinstance(client_id, int):
            return None
        return self._slots[client_id] if 0 <= client_id < self.capacity else None

    def _free(self, slot: Slot) -> Session:
        """ clears the slot and disconnects its session. Called with the lock held. """
        session = slot.clear()
        try:
            session.close()
        except Exception as e:
            logger.exception("error disconnecting client %s: %s" % (slot.index, e))
        return session

    def _fire_closed(self, session: Session):
        self.events.fire(SessionClosedEvent(session.client_id, session.method))
