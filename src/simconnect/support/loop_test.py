import threading
import unittest
from unittest.mock import Mock

import timeout_decorator
from hamcrest import assert_that, is_, none, not_none

from simconnect.support.loop import AsyncLoop


class AsyncLoopTest(unittest.TestCase):

    @timeout_decorator.timeout(5)
    def test_runs_until_stopped(self):
        called = threading.Event()
        sut = AsyncLoop(called.set, name='looper')
        sut.start()
        called.wait()
        assert_that(sut.alive, is_(True))
        assert_that(sut.background_thread.daemon, is_(True))
        assert_that(sut.background_thread.name, is_('looper'))
        sut.stop()
        assert_that(sut.alive, is_(False))
        assert_that(sut.background_thread, is_(none()))

    @timeout_decorator.timeout(5)
    def test_exceptions_are_handled_and_loop_continues(self):
        calls = []
        done = threading.Event()

        def fn():
            calls.append(1)
            if len(calls) >= 3:
                done.set()
            raise ValueError("fail")

        sut = AsyncLoop(fn)
        sut.exception_handler = Mock()
        sut.start()
        done.wait()
        sut.stop()
        assert_that(len(calls) >= 3, is_(True))
        assert_that(sut.exception_handler.call_count >= 3, is_(True))

    @timeout_decorator.timeout(5)
    def test_startup_and_shutdown(self):
        sut = AsyncLoop(lambda: sut.stop_event.wait(0.01))
        sut.startup = Mock()
        sut.shutdown = Mock()
        sut.start()
        sut.stop()
        sut.startup.assert_called_once_with()
        sut.shutdown.assert_called_once_with()

    def test_start_twice_keeps_thread(self):
        sut = AsyncLoop(lambda: sut.stop_event.wait(0.01))
        sut.start()
        thread = sut.background_thread
        sut.start()
        assert_that(sut.background_thread, is_(thread))
        assert_that(thread, is_(not_none()))
        sut.stop()

    def test_stop_before_start(self):
        sut = AsyncLoop()
        sut.stop()
        assert_that(sut.running(), is_(False))
