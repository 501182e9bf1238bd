import logging
import threading

logger = logging.getLogger(__name__)


class EventSource(object):
    """
    Dispatches events to registered handlers on the firing thread.

    Handlers may be added or removed from any thread; each fire() sees a snapshot
    of the handlers registered when it started.
    """

    def __init__(self):
        self._handlers = []
        self._lock = threading.Lock()

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def add(self, handler):
        with self._lock:
            self._handlers.append(handler)
        return self

    def remove(self, handler):
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)
        return self

    def handlers(self):
        with self._lock:
            return tuple(self._handlers)

    def fire(self, *args, **kwargs):
        """
        Invokes every handler. A failing handler is logged and does not stop
        delivery to the remaining handlers.
        """
        for handler in self.handlers():
            try:
                handler(*args, **kwargs)
            except Exception as e:
                logger.exception("event handler %s failed: %s" % (handler, e))
