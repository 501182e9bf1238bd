import logging
from enum import Enum

from simconnect import settings

logger = logging.getLogger(__name__)


class SessionState(Enum):
    DISCONNECTED = 0
    CONNECTING = 1
    HANDSHAKING = 2
    READY = 3
    BUSY = 4


# states from which a command may be submitted
submittable_states = (SessionState.HANDSHAKING, SessionState.READY)


class Session:
    """
    One connected transport handle, the method used to open it and its state.

    Sessions are created and owned by a ConnectionRegistry. Callers obtain one with
    ConnectionRegistry.lookup() and use it for the duration of an operation; they should
    not keep it beyond that since the registry may release it.

    :param client_id: the registry slot index
    :param method: the ConnectionMethod used to connect
    :param handle: the TransportHandle returned by the connector
    :param timeout: seconds a submitted command may block before timing out
    """

    def __init__(self, client_id, method, handle, timeout=None):
        self.client_id = client_id
        self.method = method
        self.handle = handle
        self.timeout = settings.timeout if timeout is None else timeout
        self.state = SessionState.CONNECTING

    @property
    def timeout(self):
        return self._timeout

    @timeout.setter
    def timeout(self, value):
        value = float(value)
        if value < 0:
            raise ValueError("timeout must not be negative: %s" % value)
        self._timeout = value

    @property
    def alive(self) -> bool:
        """ True while the session is not disconnected and its transport can accept commands. """
        if self.state is SessionState.DISCONNECTED:
            return False
        return bool(self.handle.can_submit_command())

    @property
    def shared_memory_key(self):
        return self.handle.shared_memory_key

    def transition(self, state: SessionState):
        if self.state is not state:
            logger.debug("session %s: %s -> %s" % (self.client_id, self.state.name, state.name))
            self.state = state

    def mark_disconnected(self):
        self.transition(SessionState.DISCONNECTED)

    def close(self):
        """ disconnects the transport. Safe to call more than once. """
        self.mark_disconnected()
        self.handle.disconnect()

    def __repr__(self):
        return 'Session(%s, %s, %s)' % (self.client_id, getattr(self.method, 'name', self.method), self.state.name)
