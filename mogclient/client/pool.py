"""A pool of reusable objects, e.g. tracker connections."""

import contextlib
import queue
import threading


class Pool(object):
    """Keeps idle objects created by ``factory(*args)`` for reuse.

       The pool creates as many objects as it is asked for; when they are
       returned, at most a few are kept around.
    """

    class BadObjectError(Exception):
        """Raised when an object not created by the pool is returned."""

    # Once this many objects are idle, the pool is trimmed ...
    PURGE_THRESHOLD = 5
    # ... to this many.
    PURGE_KEEP = 2

    def __init__(self, factory, *args):
        self.factory = factory
        self.args = args
        self._queue = queue.Queue()
        self._objects = []
        self._lock = threading.Lock()

    def get(self):
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            pass
        obj = self.factory(*self.args)
        with self._lock:
            self._objects.append(obj)
        return obj

    def put(self, obj):
        with self._lock:
            if not any(o is obj for o in self._objects):
                raise self.BadObjectError()
        self._queue.put(obj)
        self.purge()

    @contextlib.contextmanager
    def use(self):
        """Lends an object for the duration of a ``with`` block."""
        obj = self.get()
        try:
            yield obj
        finally:
            self.put(obj)

    def purge(self):
        if self._queue.qsize() < self.PURGE_THRESHOLD:
            return
        while self._queue.qsize() > self.PURGE_KEEP:
            try:
                obj = self._queue.get_nowait()
            except queue.Empty:
                break
            with self._lock:
                self._objects = [o for o in self._objects if o is not obj]

    def __len__(self):
        """Number of idle objects."""
        return self._queue.qsize()
