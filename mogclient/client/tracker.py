"""Connection to the MogileFS trackers.

   The tracker speaks a line protocol: a request is
   ``<command> <urlencoded params>\\r\\n`` and the answer is a single line,
   either ``OK <count> <urlencoded params>`` or
   ``ERR <tag> <urlencoded message>``.
"""

import logging
import random
import re
import select
import socket
import threading
import time

from mogclient.client.errors import (BackendError, InvalidResponseError,
                                     RequestTruncatedError, Timeout,
                                     UnreachableBackendError,
                                     UnreadableSocketError)
from mogclient.client.utils import (split_host, url_decode, url_encode,
                                    url_unescape)

logger = logging.getLogger('mogclient')


DEFAULT_TIMEOUT = 3

# A host which failed to accept a connection is not retried for this long.
DEAD_HOST_TIMEOUT = 5

# Commands known to be understood by the tracker. Other commands may still
# be sent with :meth:`TrackerConnection.send`.
COMMANDS = (
    # file commands
    'create_open',
    'create_close',
    'get_paths',
    'delete',
    'sleep',
    'rename',
    'list_keys',

    # administrative commands
    'get_hosts',
    'get_devices',
    'list_fids',
    'stats',
    'get_domains',
    'create_domain',
    'delete_domain',
    'create_class',
    'update_class',
    'delete_class',
    'create_host',
    'update_host',
    'delete_host',
    'set_state',
)

_OK_RE = re.compile(r'^OK\s+\d*\s*(\S*)')
_ERR_RE = re.compile(r'^ERR\s+(\w+)\s*(.*)')


class TrackerConnection(object):
    """Holds at most one connection to one of the configured trackers.

       ``hosts`` is a non-empty list of ``'hostname:port'`` strings. A new
       connection goes to a randomly chosen host; hosts which refused a
       connection during the last ``dead_timeout`` seconds are skipped.
       ``timeout`` bounds connecting and waiting for an answer.

       Requests are serialized: only one may be in flight at a time, other
       threads block until it completes.
    """

    def __init__(self, hosts, timeout=None, dead_timeout=DEAD_HOST_TIMEOUT):
        if isinstance(hosts, str):
            hosts = [hosts]
        if not hosts:
            raise ValueError("must specify at least one host")
        for host in hosts:
            split_host(host)

        self.hosts = list(hosts)
        self.timeout = DEFAULT_TIMEOUT if timeout is None else timeout
        self.dead_timeout = dead_timeout

        # The last error tag and message reported by the tracker.
        self.lasterr = None
        self.lasterrstr = None

        self.dead = {}

        self._lock = threading.Lock()
        self._socket = None
        self._reader = None
        self._host = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.shutdown()

    def shutdown(self):
        """Closes the tracker socket. Safe to call more than once."""
        reader, sock = self._reader, self._socket
        self._reader = self._socket = self._host = None
        for f in (reader, sock):
            if f is not None:
                try:
                    f.close()
                except OSError:
                    pass

    close = shutdown

    def send(self, command, params=None):
        """Sends ``command`` with the ``params`` dict and returns the
           decoded answer.

           Raises :class:`BackendError` if the tracker answered with an
           error.
        """
        return self.do_request(command, params or {})

    def make_request(self, cmd, args):
        return '%s %s\r\n' % (cmd, url_encode(args))

    def do_request(self, cmd, args):
        request = self.make_request(cmd, args).encode('utf-8')
        with self._lock:
            sock = self.get_socket()
            logger.debug('    tracker %s <- %s', self._host, cmd)

            try:
                bytes_sent = sock.send(request)
            except OSError:
                self.shutdown()
                raise UnreachableBackendError()

            if bytes_sent != len(request):
                self.shutdown()
                raise RequestTruncatedError(
                        'request truncated (sent %d expected %d)'
                        % (bytes_sent, len(request)))

            self.readable()

            host = self._host
            try:
                line = self._reader.readline()
            except socket.timeout:
                self.shutdown()
                raise Timeout('timed out reading answer from %s' % host)
            except OSError as e:
                self.shutdown()
                raise UnreachableBackendError(
                        'error reading from tracker %s: %s' % (host, e))

            if not line:
                self.shutdown()
                raise InvalidResponseError(
                        'tracker %s closed the connection' % host)

            return self.parse_response(
                    line.decode('utf-8', 'surrogateescape'))

    def parse_response(self, line):
        """Turns an answer line into a dict, or raises the reported error."""
        line = line.rstrip('\r\n')

        m = _ERR_RE.match(line)
        if m:
            self.lasterr = m.group(1)
            self.lasterrstr = url_unescape(m.group(2)) if m.group(2) else None
            raise BackendError(self.lasterr, self.lasterrstr)

        m = _OK_RE.match(line)
        if m:
            return url_decode(m.group(1))

        raise InvalidResponseError(
                'Invalid response from server: %r' % (line,))

    def readable(self):
        """Waits up to ``timeout`` seconds for the socket to become readable.

           On expiry the socket is closed, so that the late answer cannot be
           taken for the answer to a later request, and
           :class:`UnreadableSocketError` is raised.
        """
        sock = self.get_socket()
        timeleft = self.timeout
        while timeleft > 0:
            t0 = time.time()
            found = select.select([sock], [], [], timeleft)[0]
            if found:
                return True
            timeleft -= time.time() - t0

        peer = self._host
        self.shutdown()
        raise UnreadableSocketError('%s never became readable' % peer)

    def connect_to(self, host, port):
        return socket.create_connection((host, port), self.timeout or None)

    def get_socket(self):
        """Returns a socket connected to one of the trackers."""
        if self._socket is not None:
            return self._socket

        now = time.time()
        hosts = list(self.hosts)
        random.shuffle(hosts)

        for host in hosts:
            if host in self.dead and self.dead[host] > now - self.dead_timeout:
                continue

            try:
                sock = self.connect_to(*split_host(host))
            except OSError as e:
                logger.warning('Tracker %s unreachable (%s), marking dead',
                               host, e)
                self.dead[host] = now
                continue

            self._socket = sock
            self._reader = sock.makefile('rb')
            self._host = host
            logger.debug('    connected to tracker %s', host)
            return sock

        raise UnreachableBackendError()


def _command(name):
    def command(self, params=None):
        return self.do_request(name, params or {})
    command.__name__ = name
    command.__doc__ = 'Sends the ``%s`` command to the tracker.' % name
    return command


for _name in COMMANDS:
    setattr(TrackerConnection, _name, _command(_name))
