import logging

from simconnect.errors import NotConnectedError, ProtocolMismatchError, CommandInProgressError, \
    TransportDiedError, CommandTimeoutError
from simconnect.protocol.commands import Command, Status, StatusType
from simconnect.session import Session, SessionState, submittable_states

logger = logging.getLogger(__name__)


class CommandChannel:
    """
    Submits commands to a session and interprets the statuses that come back.

    Submission is synchronous: the calling thread blocks until the transport delivers
    the status or the session timeout expires. A session carries at most one command at
    a time. The channel does not serialize access to a session; callers must not submit
    to the same session from several threads.
    """

    def submit(self, session: Session, command: Command) -> Status:
        """
        Sends the command and waits for the server's status.
        :raises CommandInProgressError: the session is still waiting on another command
        :raises NotConnectedError: the session is disconnected or its transport died
        :raises CommandTimeoutError: no status arrived within session.timeout
        """
        if session.state is SessionState.BUSY:
            raise CommandInProgressError("session %s already has a command in flight" % session.client_id)
        if session.state not in submittable_states or not session.handle.can_submit_command():
            session.mark_disconnected()
            raise NotConnectedError(session.client_id)

        previous = session.state
        session.transition(SessionState.BUSY)
        logger.debug("session %s: submit %r" % (session.client_id, command))
        try:
            status = session.handle.submit_command_and_wait_status(command, session.timeout)
        except TransportDiedError as e:
            logger.warning("session %s: transport died: %s" % (session.client_id, e))
            session.mark_disconnected()
            raise NotConnectedError(session.client_id) from e
        except CommandTimeoutError:
            logger.warning("session %s: %s timed out after %ss" %
                           (session.client_id, command.type.name, session.timeout))
            raise
        finally:
            if session.state is SessionState.BUSY:
                session.transition(previous)
        logger.debug("session %s: status %r" % (session.client_id, status))
        return status

    @staticmethod
    def extract(status: Status, expected_kind: StatusType) -> dict:
        """
        Retrieves the status payload, provided the status is of the expected kind.
        :raises ProtocolMismatchError: when the status kind differs
        """
        if status.kind is not expected_kind:
            raise ProtocolMismatchError(expected_kind, status.kind)
        return status.payload

    def request(self, session: Session, command: Command) -> dict:
        """ submits the command and extracts the payload of its family's completion status. """
        return self.extract(self.submit(session, command), command.expected_status)
