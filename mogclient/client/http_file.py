"""Uploading new files to the storage nodes."""

import io
import logging
import os
import re
import socket
import stat

from mogclient.client.errors import (BadResponseError, EmptyResponseError,
                                     NoStorageNodesError,
                                     StorageResponseError, Timeout,
                                     UnparseableResponseError)
from mogclient.client.network import parse_uri
from mogclient.client.utils import (copy_stream, report_timing,
                                    stream_position, write_full)

logger = logging.getLogger('mogclient')


# Used for storage node sockets when the client has no timeout of its own.
DEFAULT_UPLOAD_TIMEOUT = 3

_STATUS_LINE_RE = re.compile(rb'^HTTP/\d+\.\d+\s+(\d+)')


def _stream_length(stream):
    """Returns the number of bytes left in ``stream``."""
    try:
        st = os.fstat(stream.fileno())
    except (AttributeError, OSError, ValueError):
        st = None
    if st is not None and stat.S_ISREG(st.st_mode):
        return st.st_size - stream.tell()
    pos = stream.tell()
    end = stream.seek(0, io.SEEK_END)
    stream.seek(pos)
    return end - pos


class HTTPFile(object):
    """A new file being uploaded to one of ``dests``.

       Use :meth:`mogclient.client.Client.new_file` rather than creating
       instances by hand. Data is either written with :meth:`write` and kept
       in memory, or taken from a stream given to :meth:`set_source`.
       Nothing is sent before :meth:`close`, which uploads the data to the
       first destination accepting it and reports the new replica to the
       tracker.

       ``dests`` is a list of ``(devid, url)`` pairs, most preferred first.
    """

    def __init__(self, client, fid, key, dests, klass=None,
                 content_length=0):
        self.client = client
        self.fid = fid
        self.key = key
        self.dests = list(dests)
        self.klass = klass
        self.content_length = content_length

        self.devid = None
        self.path = None
        self.size = None
        self.closed = False

        self._buffer = io.BytesIO()
        self._source = None
        self._source_length = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_type is None:
            self.close()

    def write(self, data):
        if self._source is not None:
            raise ValueError('write() cannot be mixed with set_source()')
        return self._buffer.write(data)

    def set_source(self, stream, length=None):
        """Makes :meth:`close` upload ``length`` bytes read from ``stream``.

           If ``length`` is not given it is computed from the size of the
           underlying file or by seeking to the end of the stream.
        """
        if length is None:
            length = _stream_length(stream)
        self._source = stream
        self._source_length = length

    def _body(self):
        if self._source is not None:
            return self._source, self._source_length
        data = self._buffer.getvalue()
        return io.BytesIO(data), len(data)

    def _put(self, url, stream, length):
        """Sends the body to ``url`` and checks the status of the answer."""
        host, port, request_uri = parse_uri(url)
        timeout = getattr(self.client, 'timeout', None)
        if timeout is None:
            timeout = DEFAULT_UPLOAD_TIMEOUT
        sock = socket.create_connection((host, port), timeout)
        try:
            cork = hasattr(socket, 'TCP_CORK')
            if cork:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_CORK, 1)
            write_full(sock, ('PUT %s HTTP/1.0\r\nContent-Length: %d\r\n\r\n'
                              % (request_uri, length)).encode('latin-1'))
            copy_stream(stream, sock, size=length)
            if cork:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_CORK, 0)

            with sock.makefile('rb') as reader:
                try:
                    line = reader.readline()
                except socket.timeout:
                    raise Timeout('timed out waiting for %s' % url)
            if not line:
                raise EmptyResponseError(
                        'Unable to read response line from server')
            m = _STATUS_LINE_RE.match(line)
            if m is None:
                raise UnparseableResponseError(
                        'Response line not understood: %r' % (line,))
            status = int(m.group(1))
            if not 200 <= status < 300:
                raise BadResponseError(status)
        finally:
            sock.close()

    @report_timing('HTTPFile.close')
    def close(self):
        """Uploads the file and returns its size.

           Destinations are tried in order; one which cannot be connected to
           or which does not accept the upload is skipped. When all of them
           fail, the last error raised by a storage node is re-raised, or
           :class:`NoStorageNodesError` if none could even be connected to.
        """
        if self.closed:
            return self.size

        stream, length = self._body()
        start = stream_position(stream)
        last_error = None

        for devid, url in self.dests:
            if start is not None:
                stream.seek(start)
            try:
                self._put(url, stream, length)
            except ConnectionRefusedError as e:
                logger.warning('Storage node %s unreachable: %s', url, e)
                continue
            except (StorageResponseError, Timeout, OSError, EOFError) as e:
                logger.warning('Upload of %s to %s failed: %s',
                               self.key, url, e)
                last_error = e
                continue

            self.devid = devid
            self.path = url
            break
        else:
            if last_error is not None:
                raise last_error
            raise NoStorageNodesError()

        self.client.tracker.send('create_close', {
            'fid': self.fid,
            'devid': self.devid,
            'domain': self.client.domain,
            'key': self.key,
            'path': self.path,
            'size': length,
        })
        self.size = length
        self.closed = True
        return length
