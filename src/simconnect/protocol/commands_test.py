import unittest

from hamcrest import assert_that, is_, calling, raises, has_entries, not_

from simconnect.protocol.commands import Command, CommandType, Status, StatusType, command_families, family_of, \
    load_command, physics_parameters_command, step_simulation_command, sync_body_info_command, \
    sync_user_data_command


class CommandFamilyTest(unittest.TestCase):

    def test_every_command_has_a_family(self):
        for command_type in CommandType:
            family = family_of(command_type)
            assert_that(family.completed, is_(not_(family.failed)))
        assert_that(len(command_families), is_(len(CommandType)))

    def test_load_commands_share_a_family(self):
        assert_that(family_of(CommandType.LOAD_URDF).completed, is_(StatusType.LOAD_COMPLETED))
        assert_that(family_of(CommandType.LOAD_SDF), is_(family_of(CommandType.LOAD_MJCF)))

    def test_handshake_commands(self):
        assert_that(sync_body_info_command().expected_status, is_(StatusType.SYNC_BODY_INFO_COMPLETED))
        assert_that(sync_user_data_command().expected_status, is_(StatusType.SYNC_USER_DATA_COMPLETED))

    def test_step_expects_step_completed(self):
        assert_that(step_simulation_command().expected_status, is_(StatusType.STEP_COMPLETED))


class CommandTest(unittest.TestCase):

    def test_equality(self):
        assert_that(Command(CommandType.LOAD_URDF, {'file_name': 'a'}),
                    is_(Command(CommandType.LOAD_URDF, {'file_name': 'a'})))
        assert_that(Command(CommandType.LOAD_URDF) != Command(CommandType.LOAD_SDF), is_(True))

    def test_arguments_are_copied(self):
        arguments = {'a': 1}
        command = Command(CommandType.STEP_SIMULATION, arguments)
        arguments['a'] = 2
        assert_that(command.arguments, is_({'a': 1}))

    def test_load_command(self):
        command = load_command(CommandType.LOAD_URDF, 'plane.urdf', base_position=(0, 0, 1))
        assert_that(command.arguments, has_entries(file_name='plane.urdf', base_position=[0, 0, 1],
                                                   use_fixed_base=False))

    def test_load_command_rejects_other_types(self):
        assert_that(calling(load_command).with_args(CommandType.STEP_SIMULATION, 'x'), raises(ValueError))

    def test_physics_parameters_command(self):
        command = physics_parameters_command(fixed_time_step=0.01)
        assert_that(command.type, is_(CommandType.SEND_PHYSICS_PARAMETERS))
        assert_that(command.arguments, is_({'fixed_time_step': 0.01}))


class StatusTest(unittest.TestCase):

    def test_equality_and_repr(self):
        status = Status(StatusType.STEP_COMPLETED, {'step': 1})
        assert_that(status, is_(Status(StatusType.STEP_COMPLETED, {'step': 1})))
        assert_that(repr(status), is_("Status(STEP_COMPLETED, {'step': 1})"))

    def test_default_payload(self):
        assert_that(Status(StatusType.RESET_COMPLETED).payload, is_({}))
