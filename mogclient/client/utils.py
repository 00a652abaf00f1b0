"""Common routines for client."""

import functools
import io
import logging
import re
import select
import socket
import time

from mogclient.client.errors import Timeout

logger = logging.getLogger('mogclient')


_BUFFER_SIZE = 64 * 1024

_ESCAPE_RE = re.compile(rb'[^A-Za-z0-9_,\-./\\: ]')
_UNESCAPE_RE = re.compile(rb'%([0-9A-Fa-f]{2})')
_HOST_RE = re.compile(r'^(.+):(\d+)$')


def url_escape(value):
    """Escapes a single tracker parameter key or value.

       Every byte outside ``[A-Za-z0-9_,-./\\: ]`` becomes ``%xx`` and spaces
       become ``+``. Text is encoded as UTF-8, with ``surrogateescape`` so
       that strings produced by :func:`url_unescape` from arbitrary bytes
       survive the round trip.
    """
    if value is None:
        value = b''
    elif not isinstance(value, bytes):
        value = str(value).encode('utf-8', 'surrogateescape')
    escaped = _ESCAPE_RE.sub(lambda m: b'%%%02x' % m.group(0)[0], value)
    return escaped.replace(b' ', b'+').decode('ascii')


def url_unescape(value):
    if not isinstance(value, bytes):
        value = value.encode('utf-8', 'surrogateescape')
    value = value.replace(b'+', b' ')
    value = _UNESCAPE_RE.sub(lambda m: bytes([int(m.group(1), 16)]), value)
    return value.decode('utf-8', 'surrogateescape')


def url_encode(params):
    """Turns a dict (or a sequence of pairs) into a tracker params string."""
    if hasattr(params, 'items'):
        params = params.items()
    return '&'.join('%s=%s' % (url_escape(k), url_escape(v))
                    for k, v in params)


def url_decode(text):
    """Turns a tracker params string into a dict."""
    result = {}
    if not text:
        return result
    for pair in text.split('&'):
        if not pair:
            continue
        key, _, value = pair.partition('=')
        result[url_unescape(key)] = url_unescape(value)
    return result


def split_host(host):
    """Splits a ``host:port`` string into ``(host, port)``.

       Raises ``ValueError`` if ``host`` is not in that form.
    """
    m = _HOST_RE.match(host or '')
    if m is None:
        raise ValueError("Tracker host must be in 'host:port' form, not %r"
                         % (host,))
    return m.group(1), int(m.group(2))


def _deadline(timeout, total_timeout):
    if timeout is not None and total_timeout:
        return time.time() + timeout
    return None


def _selectable(stream):
    try:
        stream.fileno()
    except (AttributeError, OSError, ValueError):
        return False
    return True


def _wait(stream, for_write, timeout, deadline):
    """Blocks until ``stream`` is ready, bounded by the remaining budget."""
    if deadline is not None:
        timeout = deadline - time.time()
    if timeout is not None and timeout <= 0:
        raise Timeout('timed out waiting to %s'
                      % ('write' if for_write else 'read'))
    if for_write:
        ready = select.select([], [stream], [], timeout)[1]
    else:
        ready = select.select([stream], [], [], timeout)[0]
    if not ready:
        raise Timeout('timed out waiting to %s'
                      % ('write' if for_write else 'read'))


def _read_into(src, view):
    if hasattr(src, 'recv_into'):
        return src.recv_into(view)
    if hasattr(src, 'readinto'):
        return src.readinto(view)
    data = src.read(len(view))
    if data is None:
        return None
    view[:len(data)] = data
    return len(data)


def _read_some(src, view, timeout, deadline, selectable):
    while True:
        if timeout is not None and selectable:
            _wait(src, False, timeout, deadline)
        try:
            n = _read_into(src, view)
        except (BlockingIOError, InterruptedError):
            _wait(src, False, timeout, deadline)
            continue
        except socket.timeout:
            raise Timeout('timed out reading')
        if n is None:
            _wait(src, False, timeout, deadline)
            continue
        return n


def _write_full(dst, data, timeout, deadline):
    view = memoryview(data).cast('B')
    selectable = timeout is not None and _selectable(dst)
    written = 0
    while len(view):
        if selectable:
            _wait(dst, True, timeout, deadline)
        try:
            if hasattr(dst, 'send'):
                n = dst.send(view)
            else:
                n = dst.write(view)
        except (BlockingIOError, InterruptedError) as e:
            n = getattr(e, 'characters_written', 0)
            if not n:
                _wait(dst, True, timeout, deadline)
                continue
        except socket.timeout:
            raise Timeout('timed out writing')
        if n is None:
            if isinstance(dst, io.RawIOBase):
                _wait(dst, True, timeout, deadline)
                continue
            n = len(view)
        written += n
        view = view[n:]
    return written


def write_full(dst, data, timeout=None, total_timeout=False):
    """Writes the whole of ``data`` to ``dst``, looping over short writes.

       ``dst`` may be a socket or any file-like object. Returns the number
       of bytes written.
    """
    return _write_full(dst, data, timeout, _deadline(timeout, total_timeout))


def read_full(src, size, timeout=None, total_timeout=False):
    """Reads exactly ``size`` bytes from ``src``.

       Raises ``EOFError`` if the stream ends early and :class:`Timeout` if
       a wait exceeds ``timeout``.
    """
    deadline = _deadline(timeout, total_timeout)
    selectable = _selectable(src)
    buf = bytearray(size)
    view = memoryview(buf)
    got = 0
    while got < size:
        n = _read_some(src, view[got:], timeout, deadline, selectable)
        if not n:
            raise EOFError('expected %d bytes, got %d' % (size, got))
        got += n
    return bytes(buf)


def copy_stream(src, dst, transform=None, timeout=None, total_timeout=False,
                size=None):
    """Copies everything readable from ``src`` into ``dst``.

       A single 64 KiB buffer is reused for the whole copy. If ``transform``
       is given, it is called with every chunk read (a memoryview which is
       only valid during the call) and its return value is written instead.
       After the end of ``src`` it is called once more with ``None``, so
       that stateful transforms (decompressors, digests) can flush.

       If ``size`` is given, exactly that many bytes are read: the copy
       stops as soon as they have arrived, without waiting for the end of
       ``src``, and ``EOFError`` is raised if ``src`` ends earlier.

       Would-block and interrupted reads and writes are retried once the
       stream becomes ready again. ``timeout`` bounds every single wait, or,
       with ``total_timeout``, all waits of the call together; exceeding it
       raises :class:`Timeout`. Neither stream is closed here.

       Returns the number of bytes written to ``dst``.
    """
    deadline = _deadline(timeout, total_timeout)
    selectable = _selectable(src)
    buf = memoryview(bytearray(_BUFFER_SIZE))
    remaining = size
    copied = 0
    while remaining is None or remaining > 0:
        view = buf if remaining is None else buf[:min(remaining, len(buf))]
        n = _read_some(src, view, timeout, deadline, selectable)
        if not n:
            if remaining:
                raise EOFError('stream ended %d bytes early' % remaining)
            break
        if remaining is not None:
            remaining -= n
        chunk = view[:n]
        if transform is not None:
            chunk = transform(chunk)
        if chunk:
            copied += _write_full(dst, chunk, timeout, deadline)

    if transform is not None:
        chunk = transform(None)
        if chunk:
            copied += _write_full(dst, chunk, timeout, deadline)
    return copied


def stream_position(stream):
    """Returns the current position of ``stream``, or ``None`` if it has
       none (sockets, pipes).
    """
    try:
        if stream.seekable():
            return stream.tell()
    except (AttributeError, OSError, ValueError):
        pass
    return None


def report_timing(name):
    def decorator(fn):
        @functools.wraps(fn)
        def wrapped(*args, **kwargs):
            t = time.time()
            logger.debug('    %s starting', name)
            ret = fn(*args, **kwargs)
            elapsed = time.time() - t
            logger.debug('    %s took %.2fs', name, elapsed)
            return ret
        return wrapped
    return decorator
