"""Short-lived local servers used by the tests.

   Every server listens on an ephemeral port of 127.0.0.1 and handles each
   connection in its own thread.
"""

import socket
import threading

from mogclient.client.utils import url_encode


def unused_port():
    """Returns a port on which nothing is listening (connections to it are
       refused).
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(('127.0.0.1', 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


def ok_line(params):
    """Formats a tracker ``OK`` answer carrying ``params``."""
    return ('OK %d %s\r\n' % (len(params), url_encode(params))).encode()


class TempServer(object):
    def __init__(self, handler=None):
        if handler is not None:
            self.handle = handler
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind(('127.0.0.1', 0))
        self.sock.listen(16)
        self.port = self.sock.getsockname()[1]
        self.host = '127.0.0.1:%d' % self.port
        self.connections = 0
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._serve)
        self._thread.daemon = True
        self._thread.start()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.shutdown()

    def url(self, path='/'):
        return 'http://%s%s' % (self.host, path)

    def _serve(self):
        while not self._stopped.is_set():
            try:
                conn, _ = self.sock.accept()
            except OSError:
                break
            self.connections += 1
            t = threading.Thread(target=self._handle_conn, args=(conn,))
            t.daemon = True
            t.start()

    def _handle_conn(self, conn):
        try:
            self.handle(conn)
        except OSError:
            pass
        finally:
            conn.close()

    def handle(self, conn):
        raise NotImplementedError

    def shutdown(self):
        self._stopped.set()
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()


class FakeTracker(TempServer):
    """Answers every request line with the next of ``responses``.

       A ``None`` response leaves the request unanswered, an empty one
       closes the connection.
    """

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.requests = []
        super(FakeTracker, self).__init__()

    def handle(self, conn):
        with conn.makefile('rb') as reader:
            for line in reader:
                self.requests.append(line.decode('utf-8'))
                if not self.responses:
                    return
                response = self.responses.pop(0)
                if response is None:
                    continue
                if not response:
                    return
                conn.sendall(response)


class StorageServer(TempServer):
    """A storage node serving ``files`` (a dict of path to bytes).

       ``PUT`` requests are answered with ``put_response``; the body is
       stored only if it arrived whole and that is a 2xx answer. Responses
       are sent with a single ``sendall``, so that the header arrives in
       one piece.
    """

    def __init__(self, files=None, put_response=b'HTTP/1.0 200 OK\r\n\r\n'):
        self.files = dict(files or {})
        self.put_response = put_response
        self.requests = []
        super(StorageServer, self).__init__()

    def handle(self, conn):
        with conn.makefile('rb') as reader:
            request_line = reader.readline().decode('latin-1')
            if not request_line:
                return
            headers = {}
            while True:
                line = reader.readline()
                if line in (b'\r\n', b'\n', b''):
                    break
                name, _, value = line.decode('latin-1').partition(':')
                headers[name.strip().lower()] = value.strip()

            method, path = request_line.split()[:2]
            self.requests.append((method, path))

            if method == 'PUT':
                length = int(headers.get('content-length', 0))
                body = reader.read(length)
                if (len(body) == length
                        and self.put_response.startswith(b'HTTP/1.0 2')):
                    self.files[path] = body
                if self.put_response:
                    conn.sendall(self.put_response)
                return

            data = self.files.get(path)
            if data is None or method not in ('GET', 'HEAD'):
                conn.sendall(b'HTTP/1.0 404 Not Found\r\n'
                             b'Content-Length: 0\r\n\r\n')
                return
            header = (b'HTTP/1.0 200 OK\r\nContent-Length: %d\r\n\r\n'
                      % len(data))
            if method == 'GET':
                conn.sendall(header + data)
            else:
                conn.sendall(header)


class SilentServer(TempServer):
    """Accepts connections and reads, but never answers."""

    def handle(self, conn):
        while conn.recv(4096):
            pass


class LingeringStorageServer(StorageServer):
    """A :class:`StorageServer` which keeps every connection open for
       ``linger`` seconds after answering, as keep-alive servers do.
    """

    def __init__(self, files=None, linger=5):
        self.linger = linger
        super(LingeringStorageServer, self).__init__(files)

    def handle(self, conn):
        super(LingeringStorageServer, self).handle(conn)
        self._stopped.wait(self.linger)
