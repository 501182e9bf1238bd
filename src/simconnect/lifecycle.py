import atexit
import logging
import threading

from simconnect.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class ProcessLifecycle:
    """
    Drains a registry when the process exits so that no transport is left open.

    install() registers shutdown() with atexit. shutdown() releases every session the
    first time it runs; later calls, whether from atexit or made explicitly, do nothing.
    """

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry
        self._lock = threading.Lock()
        self._installed = False
        self._shut_down = False

    @property
    def shut_down(self):
        return self._shut_down

    def install(self):
        with self._lock:
            if not self._installed:
                atexit.register(self.shutdown)
                self._installed = True
        return self

    def uninstall(self):
        with self._lock:
            if self._installed:
                atexit.unregister(self.shutdown)
                self._installed = False

    def shutdown(self):
        with self._lock:
            if self._shut_down:
                return False
            self._shut_down = True
        logger.debug("process exit: releasing %d sessions" % self.registry.active_count)
        self.registry.release_all()
        return True


def managed_registry(*args, **kwargs) -> ConnectionRegistry:
    """
    Creates a registry that is drained when the process exits.
    The arguments are those of ConnectionRegistry; the lifecycle is available as registry.lifecycle.
    """
    registry = ConnectionRegistry(*args, **kwargs)
    registry.lifecycle = ProcessLifecycle(registry).install()
    return registry
