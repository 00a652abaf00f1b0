"""The actual implementation of a MogileFS client."""

import logging
import os

from mogclient.client.bigfile import Bigfile
from mogclient.client.errors import (EmptyPathError, InvalidResponseError,
                                     ReadOnlyError, Timeout,
                                     UnsupportedPathError)
from mogclient.client.http_file import HTTPFile
from mogclient.client.network import http_read_sock
from mogclient.client.tracker import TrackerConnection
from mogclient.client.tracker_backend import TrackerBackend
from mogclient.client.utils import copy_stream, read_full, stream_position

logger = logging.getLogger('mogclient')


def _hosts_from_env():
    trackers = os.environ.get('MOGILEFS_TRACKERS')
    if not trackers:
        return None
    return [host.strip() for host in trackers.split(',') if host.strip()]


def _timeout_from_env():
    timeout = os.environ.get('MOGILEFS_TIMEOUT')
    if not timeout:
        return None
    return float(timeout)


def _rewind(stream, position):
    """Moves ``stream`` back to ``position``, dropping what follows.

       Returns whether that was possible.
    """
    if position is None:
        return False
    try:
        stream.seek(position)
        stream.truncate()
    except (AttributeError, OSError, ValueError):
        return False
    return True


def _seekable(stream):
    try:
        return stream.seekable()
    except (AttributeError, OSError, ValueError):
        return False


class BaseClient(object):
    """Holds the tracker connection shared by :class:`Client` and
       :class:`mogclient.client.admin.Admin`.

       ``hosts`` and ``timeout`` default to the ``MOGILEFS_TRACKERS``
       (comma separated ``host:port`` list) and ``MOGILEFS_TIMEOUT``
       environment variables. Instead of ``hosts`` an already created
       ``tracker`` (for example a
       :class:`mogclient.client.dummy.DummyTracker`) may be passed.

       A ``readonly`` client refuses every operation which would modify
       the filesystem, raising :class:`ReadOnlyError` before sending
       anything.
    """

    def __init__(self, hosts=None, timeout=None, readonly=False,
                 tracker=None):
        if hosts is None:
            hosts = _hosts_from_env()
        if timeout is None:
            timeout = _timeout_from_env()

        self.hosts = hosts
        self.timeout = timeout
        self._readonly = bool(readonly)
        self.tracker = tracker
        self._own_tracker = tracker is None
        self.reload()

    def reload(self):
        """Replaces the tracker connection with a new one."""
        if not self._own_tracker:
            return
        if not self.hosts:
            raise ValueError("No MogileFS trackers have been configured")
        old, self.tracker = self.tracker, TrackerConnection(self.hosts,
                                                            self.timeout)
        if old is not None:
            old.shutdown()

    @property
    def readonly(self):
        return self._readonly

    def _check_writable(self):
        if self._readonly:
            raise ReadOnlyError()

    def err(self):
        """The tag of the last error reported by the tracker."""
        return getattr(self.tracker, 'lasterr', None)

    def errstr(self):
        """The message of the last error reported by the tracker."""
        return getattr(self.tracker, 'lasterrstr', None)


class Client(BaseClient):
    """The main MogileFS client class, working on the keys of one domain.

       The easiest way to build a client is to pass only the ``domain`` and
       let the trackers come from the environment. The variables read are:

         ``MOGILEFS_DOMAIN``
           the domain, if ``domain`` is not given;

         ``MOGILEFS_TRACKERS``
           comma separated ``host:port`` addresses of the trackers;

         ``MOGILEFS_TIMEOUT``
           the tracker timeout in seconds (3 by default).

       Reads may bypass the trackers altogether: pass a
       :class:`mogclient.client.db_backend.DbBackend` as ``db_backend`` and
       the metadata will be read from the tracker database. Such a client
       is always read-only.

       ``get_file_data_timeout`` bounds reads from the storage nodes.
    """

    def __init__(self, domain=None, hosts=None, timeout=None, readonly=False,
                 db_backend=None, tracker=None, get_file_data_timeout=5):
        if domain is None:
            domain = os.environ.get('MOGILEFS_DOMAIN')
        if not domain:
            raise ValueError("you must specify a domain")

        self.domain = domain
        self.get_file_data_timeout = get_file_data_timeout
        self.db_backend = db_backend
        self.backend = None
        BaseClient.__init__(self, hosts, timeout,
                            readonly or db_backend is not None, tracker)

    def reload(self):
        if self.db_backend is not None:
            self.backend = self.db_backend
            return
        BaseClient.reload(self)
        self.backend = TrackerBackend(self.tracker,
                                      self.get_file_data_timeout)

    def get_paths(self, key, noverify=True, zone=None):
        """Returns the list of URLs of the replicas of ``key``."""
        return self.backend.get_paths(self.domain, key, noverify, zone)

    def get_file_data(self, key, dest=None):
        """Retrieves the contents of ``key``.

           Without ``dest`` the contents are returned as bytes. Otherwise
           they are written to the file-like object (or socket) ``dest`` and
           the number of bytes written is returned.

           Replicas which cannot be read are skipped. Returns ``None`` if
           none of them could be read. If a replica fails after part of it
           was written to ``dest``, ``dest`` is rewound and truncated before
           the next replica is tried; when that is impossible (sockets,
           pipes) the error is raised instead.
        """
        timeout = self.get_file_data_timeout
        start = None if dest is None else stream_position(dest)
        for path in self.get_paths(key):
            try:
                stream = http_read_sock(path, timeout=timeout)
            except (Timeout, InvalidResponseError, OSError, EOFError,
                    ValueError) as e:
                logger.warning("Error reading '%s' from %s: %s",
                               key, path, e)
                continue

            with stream:
                try:
                    if dest is None:
                        return read_full(stream, stream.size, timeout,
                                         total_timeout=True)
                    return copy_stream(stream, dest, timeout=timeout,
                                       size=stream.size)
                except (Timeout, OSError, EOFError) as e:
                    if dest is not None and not _rewind(dest, start):
                        raise
                    logger.warning("Error reading '%s' from %s: %s",
                                   key, path, e)
        return None

    def new_file(self, key, klass=None, bytes=0):
        """Creates a new file ``key`` in class ``klass``.

           Returns an :class:`mogclient.client.http_file.HTTPFile`; the data
           is stored when it is closed (or when its ``with`` block ends)::

             with client.new_file('greeting') as f:
                 f.write(b'hello')
        """
        self._check_writable()
        params = {'domain': self.domain, 'key': key, 'multi_dest': 1}
        if klass:
            params['class'] = klass
        res = self.tracker.send('create_open', params)

        if 'dev_count' in res:
            dests = [(res.get('devid_%d' % i), res.get('path_%d' % i))
                     for i in range(1, int(res['dev_count']) + 1)]
        else:
            # Trackers without multi_dest support return a single one.
            dests = [(res.get('devid'), res.get('path'))]

        path = dests[0][1] if dests else None
        if not path:
            raise EmptyPathError()
        if not path.startswith('http://'):
            raise UnsupportedPathError(
                    "paths %r returned by backend are not supported"
                    % (dests,))

        return HTTPFile(self, res.get('fid'), key, dests, klass, bytes)

    def store_file(self, key, klass, file):
        """Stores the contents of ``file`` as ``key`` in class ``klass``.

           ``file`` may be a file name or a readable stream. Returns the
           number of bytes stored.
        """
        self._check_writable()
        f = self.new_file(key, klass)
        if hasattr(file, 'read'):
            if _seekable(file):
                f.set_source(file)
            else:
                copy_stream(file, f)
            return f.close()
        with open(file, 'rb') as fp:
            f.set_source(fp)
            return f.close()

    def store_content(self, key, klass, content):
        """Stores ``content`` (bytes or text) as ``key`` in class ``klass``.

           Returns the number of bytes stored.
        """
        self._check_writable()
        if not isinstance(content, bytes):
            content = content.encode('utf-8')
        f = self.new_file(key, klass)
        f.write(content)
        return f.close()

    def delete(self, key):
        self._check_writable()
        return self.tracker.send('delete', {'domain': self.domain,
                                            'key': key})

    def rename(self, from_key, to_key):
        self._check_writable()
        self.tracker.send('rename', {'domain': self.domain,
                                     'from_key': from_key,
                                     'to_key': to_key})

    def sleep(self, duration):
        return self.backend.sleep(duration)

    def size(self, key):
        """Returns the size of ``key`` in bytes, or ``None`` if unknown."""
        return self.backend.size(self.domain, key)

    def list_keys(self, prefix, after=None, limit=1000, callback=None):
        """Lists up to ``limit`` keys starting with ``prefix`` following
           ``after``.

           Returns ``(keys, next_after)`` or ``None`` if nothing matches. If
           ``callback`` is given it is called with ``(key, length,
           devcount)`` for each key.
        """
        return self.backend.list_keys(self.domain, prefix, after, limit,
                                      callback)

    def each_key(self, prefix):
        """Yields all keys starting with ``prefix``."""
        after = None
        while True:
            res = self.list_keys(prefix, after)
            if not res:
                return
            keys, after = res
            if not keys:
                return
            for key in keys:
                yield key

    def bigfile_stat(self, key):
        """Returns the manifest of the bigfile ``key``."""
        return Bigfile(self).stat(key)

    def bigfile_write(self, key, sink, verify=False, manifest=None):
        """Reconstructs the bigfile ``key`` into ``sink``.

           ``manifest`` may be the result of an earlier :meth:`bigfile_stat`.
           Returns ``(bytes_written, manifest)``.
        """
        return Bigfile(self).write(key, sink, verify, manifest)
