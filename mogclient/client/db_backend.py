"""Read-only backend that queries the tracker database directly."""

import logging
import re
import time

from mogclient.client.backend import Backend
from mogclient.client.errors import BackendError, NoDevicesError

logger = logging.getLogger('mogclient')


GET_DOMAINS = 'SELECT dmid, namespace FROM domain'

GET_DEVICES = """
    SELECT d.devid, h.hostip, h.altip, h.http_port, h.http_get_port
    FROM device d
      LEFT JOIN host h ON d.hostid = h.hostid
    WHERE d.status IN ('alive', 'readonly', 'drain')
"""

GET_FID = 'SELECT fid FROM file WHERE dmid = %s AND dkey = %s LIMIT 1'

GET_FILE_ON = 'SELECT devid FROM file_on WHERE fid = %s'

GET_LENGTH = 'SELECT length FROM file WHERE dmid = %s AND dkey = %s LIMIT 1'

LIST_KEYS = """
    SELECT dkey, length, devcount FROM file
    WHERE dmid = %s
      AND dkey LIKE %s ESCAPE '!'
      AND dkey > %s
    ORDER BY dkey LIMIT %s
"""

# How long (in seconds) the cached tables are trusted.
DEVICE_CACHE_TIME = 60
DOMAIN_CACHE_TIME = 5

MAX_LIST_KEYS = 1000

_FID_RE = re.compile(r'(\d)(\d{3})(\d{3})(?:\d{3})')
_LIKE_SPECIAL_RE = re.compile(r'([!%_])')


def fid_path(devid, fid):
    """Returns the path of ``fid`` on device ``devid``, as served by the
       storage nodes, e.g. ``/dev7/0/000/001/0000001234.fid``.
    """
    nfid = '%010u' % fid
    b, mmm, ttt = _FID_RE.match(nfid).groups()
    return '/dev%d/%s/%s/%s/%s.fid' % (devid, b, mmm, ttt, nfid)


class DbBackend(Backend):
    """Backend reading the metadata tables of the tracker database.

       ``connection`` is a DB-API 2.0 connection to the database (typically
       a read-only replica), and ``paramstyle`` the parameter style of its
       driver: ``'format'`` (MySQLdb, PyMySQL) or ``'qmark'`` (sqlite3).

       This backend never writes, so a client using it is always read-only.
       Domains and devices are cached for a few seconds; an unknown device
       or domain forces a refresh.
    """

    def __init__(self, connection, paramstyle='format'):
        if paramstyle not in ('format', 'qmark'):
            raise ValueError('Unsupported paramstyle: %r' % (paramstyle,))
        self.connection = connection
        self.paramstyle = paramstyle
        self._devices = None
        self._domains = None
        self._devices_updated = 0
        self._domains_updated = 0

    def _query(self, sql, args=()):
        if self.paramstyle == 'qmark':
            sql = sql.replace('%s', '?')
        cursor = self.connection.cursor()
        try:
            cursor.execute(sql, args)
            return cursor.fetchall()
        finally:
            cursor.close()

    def _refresh_devices(self, force=False):
        if (not force and self._devices is not None
                and time.time() - self._devices_updated < DEVICE_CACHE_TIME):
            return self._devices
        devices = {}
        for devid, hostip, altip, http_port, http_get_port in \
                self._query(GET_DEVICES):
            http_port = int(http_port) if http_port else 80
            devices[int(devid)] = {
                'hostip': hostip,
                'altip': altip or hostip,
                'http_port': http_port,
                'http_get_port':
                    int(http_get_port) if http_get_port else http_port,
            }
        logger.debug('    loaded %d devices', len(devices))
        self._devices_updated = time.time()
        self._devices = devices
        return devices

    def _refresh_domains(self, force=False):
        if (not force and self._domains is not None
                and time.time() - self._domains_updated < DOMAIN_CACHE_TIME):
            return self._domains
        domains = dict((namespace, int(dmid))
                       for dmid, namespace in self._query(GET_DOMAINS))
        self._domains_updated = time.time()
        self._domains = domains
        return domains

    def _get_dmid(self, domain):
        dmid = self._refresh_domains().get(domain)
        if dmid is None:
            dmid = self._refresh_domains(force=True).get(domain)
        if dmid is None:
            raise BackendError('domain_not_found', domain)
        return dmid

    def get_paths(self, domain, key, noverify=True, zone=None):
        dmid = self._get_dmid(domain)
        devices = self._refresh_devices()
        if not devices:
            raise NoDevicesError()

        rows = self._query(GET_FID, (dmid, key))
        if not rows or rows[0][0] is None:
            raise BackendError('unknown_key', key)
        fid = int(rows[0][0])

        urls = []
        for (devid,) in self._query(GET_FILE_ON, (fid,)):
            devid = int(devid)
            devinfo = devices.get(devid)
            if devinfo is None:
                devices = self._refresh_devices(force=True)
                devinfo = devices.get(devid)
                if devinfo is None:
                    continue
            host = devinfo['altip'] if zone == 'alt' else devinfo['hostip']
            urls.append('http://%s:%d%s' % (host, devinfo['http_get_port'],
                                            fid_path(devid, fid)))
        return urls

    def list_keys(self, domain, prefix, after=None, limit=1000,
                  callback=None):
        dmid = self._get_dmid(domain)

        prefix = prefix or ''
        after = after or ''
        limit = int(limit or MAX_LIST_KEYS)
        if limit > MAX_LIST_KEYS or limit <= 0:
            limit = MAX_LIST_KEYS

        if after and not after.startswith(prefix):
            raise BackendError('after_mismatch')
        if '%' in prefix or '\\' in prefix:
            raise BackendError('invalid_chars')

        pattern = _LIKE_SPECIAL_RE.sub(r'!\1', prefix) + '%'
        keys = []
        for dkey, length, devcount in self._query(
                LIST_KEYS, (dmid, pattern, after, limit)):
            if callback is not None:
                callback(dkey, length, devcount)
            keys.append(dkey)

        if not keys:
            return None
        return keys, keys[-1]

    def size(self, domain, key):
        dmid = self._get_dmid(domain)
        rows = self._query(GET_LENGTH, (dmid, key))
        if not rows or rows[0][0] is None:
            raise BackendError('unknown_key', key)
        return int(rows[0][0])

    def sleep(self, duration):
        time.sleep(duration)
        return {}
