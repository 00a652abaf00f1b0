"""HTTP access to storage nodes: liveness checks and file reads.

   Storage nodes are talked to with a tiny subset of HTTP/1.0: a single
   request per connection, and only the status line and ``Content-Length``
   of the response are looked at.
"""

import errno
import logging
import os
import re
import select
import socket
import time

from urllib.parse import urlsplit

from mogclient.client.errors import InvalidResponseError, Timeout
from mogclient.client.utils import read_full, write_full

logger = logging.getLogger('mogclient')


DEFAULT_VERIFY_TIMEOUT = 2.0

_STATUS_READ_SIZE = 128
_HEADER_PEEK_SIZE = 4096

_CONNECT_IN_PROGRESS = (0, errno.EINPROGRESS, errno.EWOULDBLOCK,
                        errno.EALREADY, errno.EISCONN)

_STATUS_200_RE = re.compile(rb'\AHTTP/\d+\.\d+\s+200\b')
_CONTENT_LENGTH_RE = re.compile(rb'^Content-Length:\s*(\d+)', re.I | re.M)


def parse_uri(uri):
    """Returns ``(host, port, request_uri)`` for an ``http://`` URL."""
    parts = urlsplit(uri)
    if parts.scheme != 'http' or not parts.hostname:
        raise ValueError('Unsupported storage URL: %r' % (uri,))
    request_uri = parts.path or '/'
    if parts.query:
        request_uri += '?' + parts.query
    return parts.hostname, parts.port or 80, request_uri


def _connect_nonblock(host, port):
    family, socktype, proto, _, addr = socket.getaddrinfo(
            host, port, 0, socket.SOCK_STREAM)[0]
    sock = socket.socket(family, socktype, proto)
    sock.setblocking(False)
    err = sock.connect_ex(addr)
    if err not in _CONNECT_IN_PROGRESS:
        sock.close()
        raise OSError(err, os.strerror(err))
    return sock


def verify_uris(uris, expect='200', timeout=DEFAULT_VERIFY_TIMEOUT):
    """Returns those of ``uris`` which answer a ``HEAD`` request with the
       ``expect`` status within ``timeout`` seconds.

       All candidates are tried at once over non-blocking sockets. This is
       a race: the first candidates to answer win, and whoever has not
       answered when the winners are known (or when the time runs out) is
       abandoned. The result is in order of arrival.
    """
    expect_re = re.compile(
            rb'\AHTTP/[\d.]+ ' + re.escape(str(expect).encode()) + rb' ')
    uri_socks = {}
    sent = []
    answers = {}
    ok_uris = []

    def drop(sock):
        del uri_socks[sock]
        if sock in sent:
            sent.remove(sock)
        sock.close()

    try:
        for uri in uris:
            try:
                host, port, request_uri = parse_uri(uri)
                sock = _connect_nonblock(host, port)
            except (OSError, ValueError) as e:
                logger.debug('    cannot start connecting to %s: %s', uri, e)
                continue
            uri_socks[sock] = (uri, request_uri)

        # Send requests over whichever sockets finish connecting first.
        while uri_socks:
            t0 = time.time()
            writable = select.select([], list(uri_socks), [],
                                     max(timeout, 0))[1]
            timeout -= time.time() - t0
            if not writable:
                break
            for sock in writable:
                uri, request_uri = uri_socks[sock]
                try:
                    err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
                    if err:
                        raise OSError(err, os.strerror(err))
                    sock.send(('HEAD %s HTTP/1.0\r\n\r\n'
                               % request_uri).encode('latin-1'))
                except OSError as e:
                    logger.debug('    %s is unreachable: %s', uri, e)
                    drop(sock)
                    continue
                sent.append(sock)
            if sent or timeout < 0:
                break

        # One good answer is enough, but take all that arrive together.
        while sent:
            t0 = time.time()
            readable = select.select(list(sent), [], [], max(timeout, 0))[0]
            timeout -= time.time() - t0
            if not readable:
                break
            for sock in readable:
                # The answer is consumed rather than peeked at, so that a
                # partial status line leaves the socket unreadable until
                # more of it arrives.
                buf = answers.get(sock, b'')
                try:
                    data = sock.recv(_STATUS_READ_SIZE - len(buf))
                except (BlockingIOError, InterruptedError):
                    continue
                except OSError:
                    drop(sock)
                    continue
                answers[sock] = buf = buf + data
                if expect_re.match(buf):
                    ok_uris.append(uri_socks[sock][0])
                    drop(sock)
                elif not data or b'\n' in buf or len(buf) >= _STATUS_READ_SIZE:
                    drop(sock)
            if ok_uris or timeout < 0:
                break
    finally:
        for sock in uri_socks:
            sock.close()

    logger.debug('    verified %d of %d storage URLs', len(ok_uris), len(uris))
    return ok_uris


class StorageStream(object):
    """A connection to a storage node positioned at the response body.

       Reading stops after ``size`` bytes (the response ``Content-Length``).
       Closing the stream closes the socket.
    """

    def __init__(self, sock, size, uri=None):
        self.sock = sock
        self.size = size
        self.uri = uri
        self._remaining = size

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def fileno(self):
        return self.sock.fileno()

    def recv_into(self, buf, nbytes=0):
        if nbytes <= 0 or nbytes > len(buf):
            nbytes = len(buf)
        nbytes = min(nbytes, self._remaining)
        if nbytes == 0:
            return 0
        n = self.sock.recv_into(buf, nbytes)
        self._remaining -= n
        return n

    def read(self, size=-1):
        if size is None or size < 0:
            size = self._remaining
        chunks = []
        while size > 0:
            data = self.sock.recv(min(size, self._remaining))
            if not data:
                break
            self._remaining -= len(data)
            size -= len(data)
            chunks.append(data)
        return b''.join(chunks)

    def close(self):
        self.sock.close()


def _open_response(uri, method, timeout):
    """Sends ``method`` for ``uri`` and validates the response header.

       Returns ``(socket, content_length, header_length)``; the header is
       only peeked at, not consumed.
    """
    host, port, request_uri = parse_uri(uri)
    try:
        sock = socket.create_connection((host, port), timeout)
    except socket.timeout:
        raise Timeout('connecting to %s timed out' % uri)

    try:
        write_full(sock, ('%s %s HTTP/1.0\r\n\r\n'
                          % (method, request_uri)).encode('latin-1'))
        buf = sock.recv(_HEADER_PEEK_SIZE, socket.MSG_PEEK)
    except socket.timeout:
        sock.close()
        raise Timeout('%s on %s timed out' % (method, uri))
    except Exception:
        sock.close()
        raise

    # A server which cannot send the whole header in one segment is
    # treated as broken.
    head, sep, _ = buf.partition(b'\r\n\r\n')
    m = _CONTENT_LENGTH_RE.search(head)
    if sep and _STATUS_200_RE.match(head) and m:
        return sock, int(m.group(1)), len(head) + len(sep)

    sock.close()
    raise InvalidResponseError('%s on %s returned: %r' % (method, uri, head))


def http_read_sock(uri, method='GET', timeout=5):
    """Sends ``method`` (``GET`` or ``HEAD``) for ``uri``.

       For ``GET`` returns a :class:`StorageStream` positioned at the start
       of the body, for ``HEAD`` just the ``Content-Length``. Raises
       :class:`InvalidResponseError` unless the node answers 200 with a
       ``Content-Length``.
    """
    sock, size, header_size = _open_response(uri, method, timeout)
    if method == 'HEAD':
        sock.close()
        return size
    try:
        read_full(sock, header_size, timeout)
    except Exception:
        sock.close()
        raise
    return StorageStream(sock, size, uri)


def http_head_size(uri, timeout=5):
    """Returns the ``Content-Length`` reported for ``HEAD uri``."""
    return http_read_sock(uri, 'HEAD', timeout)
