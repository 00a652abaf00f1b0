"""A wrapper for progressbar with some useful utilities."""

import contextlib

from progressbar import *


class ShortTimer(Timer):
    def __init__(self):
        super(ShortTimer, self).__init__(format='Time: %(elapsed)s')


@contextlib.contextmanager
def conditional(show, **kwargs):
    """A wrapper for ProgressBar context manager that accepts condition.

    Returns:
        if bar should be shown, an actual bar instance.
        Otherwise, an object has a no-op update() method
    """
    if show:
        with ProgressBar(**kwargs) as bar:
            yield bar
    else:
        yield _BarStub()


class ProgressWriter(object):
    """Wraps a writable file, reporting the number of bytes written so far
       to ``bar``.
    """

    def __init__(self, f, bar, max_value=None):
        self.f = f
        self.bar = bar
        self.max_value = max_value
        self.written = 0

    def write(self, data):
        n = self.f.write(data)
        if n is None:
            n = len(data)
        self.written += n
        done = self.written
        if self.max_value is not None:
            done = min(done, self.max_value)
        self.bar.update(done)
        return n


class _BarStub(object):
    def update(*args, **kwargs):
        pass
