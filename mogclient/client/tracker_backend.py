"""Backend implementation that interacts with the MogileFS trackers."""

import logging

from mogclient.client.backend import Backend
from mogclient.client.errors import (BackendError, InvalidResponseError,
                                     Timeout)
from mogclient.client.network import http_head_size

logger = logging.getLogger('mogclient')


def _params(**kwargs):
    return dict((k, v) for k, v in kwargs.items() if v is not None)


class TrackerBackend(Backend):
    """Backend which asks a :class:`TrackerConnection`.

       Sizes are not known to the tracker, so they are read from the storage
       nodes with ``HEAD`` requests bounded by ``timeout``.
    """

    def __init__(self, tracker, timeout=5):
        self.tracker = tracker
        self.timeout = timeout

    def get_paths(self, domain, key, noverify=True, zone=None):
        res = self.tracker.send('get_paths', _params(
                domain=domain, key=key, noverify=1 if noverify else 0,
                zone=zone))
        paths = []
        for i in range(1, int(res.get('paths', 0)) + 1):
            path = res.get('path%d' % i)
            if path:
                paths.append(path)
        return paths

    def list_keys(self, domain, prefix, after=None, limit=1000,
                  callback=None):
        try:
            res = self.tracker.send('list_keys', _params(
                    domain=domain, prefix=prefix, after=after, limit=limit))
        except BackendError as e:
            if e.tag == 'none_match':
                return None
            raise

        keys = [res['key_%d' % i]
                for i in range(1, int(res.get('key_count', 0)) + 1)]

        if callback is not None:
            # The tracker does not report lengths, emulate it slowly.
            for key in keys:
                paths = self.get_paths(domain, key)
                if not paths:
                    continue
                length = self.paths_size(paths)
                if length is None:
                    continue
                callback(key, length, len(paths))

        return keys, res.get('next_after')

    def paths_size(self, paths):
        """Returns the size reported by the first path that answers."""
        for path in paths:
            try:
                return http_head_size(path, self.timeout)
            except (InvalidResponseError, Timeout, OSError, ValueError) as e:
                logger.debug('    HEAD %s failed: %s', path, e)
        return None

    def size(self, domain, key):
        paths = self.get_paths(domain, key)
        if not paths:
            return None
        return self.paths_size(paths)

    def sleep(self, duration):
        return self.tracker.send('sleep', {'duration': duration})
