"""
Commands sent to a simulation server and the statuses it replies with.

Each command type belongs to a family that names the status kind reported on success
and on failure. A status payload is only meaningful when its kind is the one expected
for the command that was submitted; see CommandChannel.extract.
"""
from enum import Enum


class CommandType(Enum):
    SYNC_BODY_INFO = 1
    SYNC_USER_DATA = 2
    STEP_SIMULATION = 3
    LOAD_URDF = 4
    LOAD_SDF = 5
    LOAD_MJCF = 6
    RESET_SIMULATION = 7
    SEND_PHYSICS_PARAMETERS = 8
    REQUEST_PHYSICS_PARAMETERS = 9


class StatusType(Enum):
    SYNC_BODY_INFO_COMPLETED = 1
    SYNC_BODY_INFO_FAILED = 2
    SYNC_USER_DATA_COMPLETED = 3
    SYNC_USER_DATA_FAILED = 4
    STEP_COMPLETED = 5
    STEP_FAILED = 6
    LOAD_COMPLETED = 7
    LOAD_FAILED = 8
    RESET_COMPLETED = 9
    RESET_FAILED = 10
    PHYSICS_PARAMETERS_UPDATED = 11
    PHYSICS_PARAMETERS_REPORTED = 12
    PHYSICS_PARAMETERS_FAILED = 13
    UNKNOWN_COMMAND = 14


class CommandFamily:
    """ the status kinds a server reports for one kind of command. """

    def __init__(self, completed: StatusType, failed: StatusType):
        self.completed = completed
        self.failed = failed

    def __repr__(self):
        return 'CommandFamily(%s, %s)' % (self.completed.name, self.failed.name)


_load_family = CommandFamily(StatusType.LOAD_COMPLETED, StatusType.LOAD_FAILED)

command_families = {
    CommandType.SYNC_BODY_INFO: CommandFamily(StatusType.SYNC_BODY_INFO_COMPLETED, StatusType.SYNC_BODY_INFO_FAILED),
    CommandType.SYNC_USER_DATA: CommandFamily(StatusType.SYNC_USER_DATA_COMPLETED, StatusType.SYNC_USER_DATA_FAILED),
    CommandType.STEP_SIMULATION: CommandFamily(StatusType.STEP_COMPLETED, StatusType.STEP_FAILED),
    CommandType.LOAD_URDF: _load_family,
    CommandType.LOAD_SDF: _load_family,
    CommandType.LOAD_MJCF: _load_family,
    CommandType.RESET_SIMULATION: CommandFamily(StatusType.RESET_COMPLETED, StatusType.RESET_FAILED),
    CommandType.SEND_PHYSICS_PARAMETERS: CommandFamily(StatusType.PHYSICS_PARAMETERS_UPDATED,
                                                       StatusType.PHYSICS_PARAMETERS_FAILED),
    CommandType.REQUEST_PHYSICS_PARAMETERS: CommandFamily(StatusType.PHYSICS_PARAMETERS_REPORTED,
                                                          StatusType.PHYSICS_PARAMETERS_FAILED),
}


def family_of(command_type: CommandType) -> CommandFamily:
    return command_families[command_type]


class Command:
    """ A request for the server. The arguments are plain values: numbers, strings, lists and dicts. """

    def __init__(self, command_type: CommandType, arguments=None):
        self.type = command_type
        self.arguments = dict(arguments) if arguments else {}

    @property
    def family(self) -> CommandFamily:
        return family_of(self.type)

    @property
    def expected_status(self) -> StatusType:
        return self.family.completed

    def __eq__(self, other):
        return isinstance(other, Command) and self.type == other.type and self.arguments == other.arguments

    def __ne__(self, other):
        return not self.__eq__(other)

    def __repr__(self):
        return 'Command(%s, %r)' % (self.type.name, self.arguments)


class Status:
    """ The reply to a command. The payload is a dict whose layout depends on the kind. """

    def __init__(self, kind: StatusType, payload=None):
        self.kind = kind
        self.payload = dict(payload) if payload else {}

    def __eq__(self, other):
        return isinstance(other, Status) and self.kind == other.kind and self.payload == other.payload

    def __ne__(self, other):
        return not self.__eq__(other)

    def __repr__(self):
        return 'Status(%s, %r)' % (self.kind.name, self.payload)


def sync_body_info_command():
    return Command(CommandType.SYNC_BODY_INFO)


def sync_user_data_command():
    return Command(CommandType.SYNC_USER_DATA)


def step_simulation_command():
    return Command(CommandType.STEP_SIMULATION)


def reset_simulation_command():
    return Command(CommandType.RESET_SIMULATION)


def load_command(command_type: CommandType, file_name, base_position=None, use_fixed_base=False):
    """ builds a LOAD_URDF, LOAD_SDF or LOAD_MJCF command for a model file the server can read. """
    if family_of(command_type) is not _load_family:
        raise ValueError("%s is not a load command" % command_type.name)
    arguments = {'file_name': file_name, 'use_fixed_base': bool(use_fixed_base)}
    if base_position is not None:
        arguments['base_position'] = list(base_position)
    return Command(command_type, arguments)


def physics_parameters_command(**parameters):
    """ SEND_PHYSICS_PARAMETERS with the given values, e.g. fixed_time_step=1/240., gravity=[0, 0, -10] """
    return Command(CommandType.SEND_PHYSICS_PARAMETERS, parameters)


def request_physics_parameters_command():
    return Command(CommandType.REQUEST_PHYSICS_PARAMETERS)
