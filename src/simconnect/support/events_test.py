import unittest
from unittest.mock import Mock

from hamcrest import assert_that, is_

from simconnect.support.events import EventSource


class EventsTest(unittest.TestCase):

    def test_no_listeners(self):
        sut = EventSource()
        sut.fire(1)

    def test_manage_handlers(self):
        sut = EventSource()
        m1 = Mock()
        sut.add(m1)
        assert_that(sut.handlers(), is_((m1,)))

        sut.remove(m1)
        assert_that(sut.handlers(), is_(()))

        sut.remove(m1)
        assert_that(sut.handlers(), is_(()))

        sut += m1
        assert_that(sut.handlers(), is_((m1,)))

        sut -= m1
        assert_that(sut.handlers(), is_(()))

    def test_listeners(self):
        sut = EventSource()
        l1 = Mock()
        l2 = Mock()
        sut += l1
        sut += l2
        sut.fire(1, v="hey")
        l1.assert_called_once_with(1, v="hey")
        l2.assert_called_once_with(1, v="hey")

    def test_failing_listener_does_not_stop_delivery(self):
        sut = EventSource()
        l1 = Mock(side_effect=ValueError("boom"))
        l2 = Mock()
        sut += l1
        sut += l2
        sut.fire("event")
        l1.assert_called_once_with("event")
        l2.assert_called_once_with("event")

    def test_handler_removed_while_firing(self):
        sut = EventSource()
        l2 = Mock()

        def l1(event):
            sut.remove(l2)

        sut += l1
        sut += l2
        sut.fire("event")
        l2.assert_called_once_with("event")
        assert_that(sut.handlers(), is_((l1,)))
