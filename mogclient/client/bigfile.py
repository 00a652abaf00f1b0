"""Reading "bigfiles": large files stored as a manifest plus numbered parts.

   A bigfile ``foo`` is described by a manifest stored under the key
   ``_big_info:foo``, a text file such as::

     des backup of the main database
     type file
     compressed 0
     filename db.tar
     chunks 2
     size 18
     part 1 bytes=12 md5=4f1e... paths: http://sn1:7500/dev1/..., http://...
     part 2 bytes=6 md5=a90b... paths: http://sn2:7500/dev3/...

   The parts themselves are regular files stored under ``foo,1``, ``foo,2``
   and so on; the manifest caches where they were when it was written.
"""

import hashlib
import logging
import re
import zlib

from mogclient.client.errors import (ChecksumMismatchError, MogileFSError,
                                     NoDevicesError)
from mogclient.client.network import http_read_sock, verify_uris
from mogclient.client.utils import copy_stream, report_timing, write_full

logger = logging.getLogger('mogclient')


GZIP_MAGIC = b'\x1f\x8b'

_TEXT_RE = re.compile(r'^(des|type|filename)\s+(.+)$')
_COMPRESSED_RE = re.compile(r'^compressed\s+([01])$')
_NUMBER_RE = re.compile(r'^(chunks|size)\s+(\d+)$')
_PART_RE = re.compile(
        r'^part\s+(\d+)\s+bytes=(\d+)\s+md5=(\S+)\s+paths:\s+(.+)$')
_PATHS_SEP_RE = re.compile(r'\s*,\s*')
_BIG_INFO_RE = re.compile(r'^big_info:')


class Part(object):
    def __init__(self, bytes, md5, paths):
        self.bytes = bytes
        self.md5 = md5
        self.paths = paths

    def __repr__(self):
        return 'Part(bytes=%d, md5=%r, paths=%r)' % (
                self.bytes, self.md5, self.paths)


class Manifest(object):
    """A parsed bigfile manifest.

       ``parts`` is indexed by the part number; ``parts[0]`` is always
       ``None``, as are the entries of parts missing from the manifest.
    """

    def __init__(self):
        self.des = None
        self.type = None
        self.filename = None
        self.compressed = False
        self.chunks = None
        self.size = None
        self.parts = [None]


def parse_info(text):
    """Parses the manifest ``text`` (str or bytes) into a :class:`Manifest`.

       Unrecognized lines are ignored.
    """
    if isinstance(text, bytes):
        text = text.decode('utf-8', 'replace')
    manifest = Manifest()
    for line in text.splitlines():
        line = line.rstrip('\r\n')
        m = _TEXT_RE.match(line)
        if m:
            setattr(manifest, m.group(1), m.group(2))
            continue
        m = _COMPRESSED_RE.match(line)
        if m:
            manifest.compressed = m.group(1) == '1'
            continue
        m = _NUMBER_RE.match(line)
        if m:
            setattr(manifest, m.group(1), int(m.group(2)))
            continue
        m = _PART_RE.match(line)
        if m:
            number = int(m.group(1))
            if number == 0:
                continue
            while len(manifest.parts) <= number:
                manifest.parts.append(None)
            manifest.parts[number] = Part(
                    int(m.group(2)), m.group(3).lower(),
                    _PATHS_SEP_RE.split(m.group(4).strip()))
    return manifest


class _PartFilter(object):
    """Transform for :func:`copy_stream` applied to every part.

       Whether the data is inflated is decided once, on the first chunk of
       the first part. Inflating turns off checksum verification for the
       rest of the transfer, since the tool writing deflated bigfiles stores
       bogus MD5s for them.
    """

    def __init__(self, manifest, verify):
        self.manifest = manifest
        self.inflater = None
        self.md5 = hashlib.md5() if verify else None
        self._decided = False

    def reset(self):
        if self.md5 is not None:
            self.md5 = hashlib.md5()

    def __call__(self, chunk):
        # Parts are one stream, so the end of a part flushes nothing.
        if chunk is None:
            return None

        if not self._decided:
            self._decided = True
            if (self.manifest.compressed and self.manifest.type == 'file'
                    and len(chunk) >= 2 and bytes(chunk[:2]) != GZIP_MAGIC):
                logger.debug('    inflating bigfile, md5 checks disabled')
                self.inflater = zlib.decompressobj()
                self.md5 = None

        if self.inflater is not None:
            return self.inflater.decompress(chunk)
        if self.md5 is not None:
            self.md5.update(chunk)
        return chunk

    def check(self, number, part):
        if self.md5 is None:
            return
        digest = self.md5.hexdigest()
        if digest != part.md5.lower():
            raise ChecksumMismatchError('part %d: %s != %s'
                                        % (number, digest, part.md5))

    def finish(self):
        if self.inflater is None:
            return b''
        return self.inflater.flush()


class Bigfile(object):
    """Reads bigfiles through ``client`` (a :class:`Client`)."""

    def __init__(self, client, verify_timeout=None):
        self.client = client
        self.verify_timeout = verify_timeout

    def _verify(self, paths):
        if self.verify_timeout is None:
            return verify_uris(paths)
        return verify_uris(paths, timeout=self.verify_timeout)

    def stat(self, key):
        """Returns the :class:`Manifest` stored under ``key``."""
        data = self.client.get_file_data(key)
        if data is None:
            raise MogileFSError('Bigfile manifest %s is not readable' % key)
        return parse_info(data)

    def _part_uris(self, key, number, part):
        uris = self._verify(part.paths)
        if uris:
            return uris

        # The parts may have been moved since the manifest was written.
        logger.info('No path of part %d of %s is reachable, asking tracker',
                    number, key)
        part.paths = self.client.get_paths(
                '%s,%d' % (_BIG_INFO_RE.sub('', key), number))
        uris = self._verify(part.paths)
        if not uris:
            raise NoDevicesError('no reachable path for part %d of %s'
                                 % (number, key))
        return uris

    @report_timing('Bigfile.write')
    def write(self, key, sink, verify=False, manifest=None):
        """Writes the contents of the bigfile described by manifest ``key``
           to ``sink``.

           If ``verify`` is true, the MD5 of every part is checked against
           the manifest (unless the parts are inflated).

           A ``manifest`` already read with :meth:`stat` may be passed to
           save fetching it again.

           Returns a tuple ``(bytes_written, manifest)``.
        """
        if manifest is None:
            manifest = self.stat(key)
        transform = _PartFilter(manifest, verify)
        timeout = getattr(self.client, 'get_file_data_timeout', 5)
        total = 0

        for number, part in enumerate(manifest.parts):
            if number == 0:
                continue
            if part is None:
                raise MogileFSError('Bigfile %s has no part %d'
                                    % (key, number))

            uris = self._part_uris(key, number, part)
            transform.reset()
            with http_read_sock(uris[0], timeout=timeout) as stream:
                total += copy_stream(stream, sink, transform,
                                     timeout=timeout, size=stream.size)
            transform.check(number, part)

        tail = transform.finish()
        if tail:
            total += write_full(sink, tail)

        return total, manifest
