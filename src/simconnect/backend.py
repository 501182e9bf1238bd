"""
The server side of the command protocol.

A CommandProcessor turns each Command into a Status. Simulation engines plug in by
implementing one; the transports and servers in simconnect.connector only
move commands and statuses between a client and a processor.
"""
import logging
import threading
from abc import abstractmethod

from simconnect.protocol.commands import Command, CommandType, Status, StatusType, family_of

logger = logging.getLogger(__name__)


class CommandProcessor:
    """ Executes commands on behalf of a server. """

    def __init__(self, options=''):
        self.options = options
        self._running = True

    @property
    def running(self) -> bool:
        """ False once the processor has been shut down and accepts no more commands. """
        return self._running

    def shutdown(self):
        self._running = False

    @abstractmethod
    def process(self, command: Command) -> Status:
        raise NotImplementedError


class SerializedProcessor(CommandProcessor):
    """ Lets several server loops share one processor by running one command at a time. """

    def __init__(self, delegate: CommandProcessor):
        super().__init__(delegate.options)
        self.delegate = delegate
        self._lock = threading.Lock()

    @property
    def running(self):
        return self.delegate.running

    def shutdown(self):
        self.delegate.shutdown()

    def process(self, command):
        with self._lock:
            return self.delegate.process(command)


class LoopbackProcessor(CommandProcessor):
    """
    A processor that answers every command with bookkeeping only: it records loaded model
    files as bodies, counts steps and advances simulated time, without simulating anything.
    It stands in for an engine when exercising connections.
    """
    default_parameters = {
        'fixed_time_step': 1. / 240,
        'gravity': [0., 0., 0.],
        'num_solver_iterations': 50,
    }

    def __init__(self, options=''):
        super().__init__(options)
        self.parameters = dict(self.default_parameters)
        self.user_data = {}
        self.bodies = {}
        self.steps = 0
        self.time = 0.
        self._next_body_id = 0
        self._handlers = {
            CommandType.SYNC_BODY_INFO: self._sync_body_info,
            CommandType.SYNC_USER_DATA: self._sync_user_data,
            CommandType.STEP_SIMULATION: self._step,
            CommandType.LOAD_URDF: self._load,
            CommandType.LOAD_SDF: self._load,
            CommandType.LOAD_MJCF: self._load,
            CommandType.RESET_SIMULATION: self._reset,
            CommandType.SEND_PHYSICS_PARAMETERS: self._send_parameters,
            CommandType.REQUEST_PHYSICS_PARAMETERS: self._request_parameters,
        }

    def process(self, command):
        handler = self._handlers.get(command.type)
        if handler is None:
            return Status(StatusType.UNKNOWN_COMMAND, {'type': command.type.name})
        return handler(command)

    def _sync_body_info(self, command):
        return Status(StatusType.SYNC_BODY_INFO_COMPLETED, {'body_ids': sorted(self.bodies)})

    def _sync_user_data(self, command):
        return Status(StatusType.SYNC_USER_DATA_COMPLETED, {'user_data_ids': sorted(self.user_data)})

    def _step(self, command):
        self.steps += 1
        self.time += self.parameters['fixed_time_step']
        return Status(StatusType.STEP_COMPLETED, {'step': self.steps, 'time': self.time})

    def _load(self, command):
        file_name = command.arguments.get('file_name')
        if not file_name:
            return Status(StatusType.LOAD_FAILED, {'error': 'no file name given'})
        body_id = self._next_body_id
        self._next_body_id += 1
        self.bodies[body_id] = {'file_name': file_name, 'type': command.type.name}
        return Status(StatusType.LOAD_COMPLETED, {'body_id': body_id, 'file_name': file_name})

    def _reset(self, command):
        self.bodies.clear()
        self.user_data.clear()
        self.steps = 0
        self.time = 0.
        self._next_body_id = 0
        return Status(StatusType.RESET_COMPLETED)

    def _send_parameters(self, command):
        family = family_of(command.type)
        unknown = set(command.arguments) - set(self.parameters)
        if unknown:
            return Status(family.failed, {'error': 'unknown parameters: %s' % ', '.join(sorted(unknown))})
        step = command.arguments.get('fixed_time_step', self.parameters['fixed_time_step'])
        if step <= 0:
            return Status(family.failed, {'error': 'fixed_time_step must be positive'})
        self.parameters.update(command.arguments)
        return Status(family.completed, {'updated': sorted(command.arguments)})

    def _request_parameters(self, command):
        return Status(StatusType.PHYSICS_PARAMETERS_REPORTED, dict(self.parameters))


class BackendTable:
    """
    Names the processor factories that can be reached with ConnectionMethod.EXTERNAL_BACKEND.
    A factory is called with the options string from the connection params.
    """

    def __init__(self):
        self._factories = {}
        self._lock = threading.Lock()

    def register(self, name, factory):
        with self._lock:
            self._factories[name] = factory
        logger.debug("registered backend %s" % name)

    def unregister(self, name):
        with self._lock:
            self._factories.pop(name, None)

    def names(self):
        with self._lock:
            return sorted(self._factories)

    def __contains__(self, name):
        with self._lock:
            return name in self._factories

    def create(self, name, options='') -> CommandProcessor:
        """
        :raises KeyError: when no backend is registered under the name
        """
        with self._lock:
            factory = self._factories[name]
        return factory(options)


# backends registered for this process
backends = BackendTable()
