"""Exceptions raised by the client and the registry of tracker error tags."""

import collections
import re
import threading


class MogileFSError(Exception):
    pass


class UnreachableBackendError(MogileFSError):
    def __init__(self, message="couldn't connect to mogilefsd backend"):
        super(UnreachableBackendError, self).__init__(message)


class UnreadableSocketError(MogileFSError):
    """Raised when a tracker socket remains unreadable for too long."""


class RequestTruncatedError(MogileFSError):
    pass


class InvalidResponseError(MogileFSError):
    pass


class Timeout(MogileFSError):
    pass


class ReadOnlyError(MogileFSError):
    def __init__(self, message='readonly mogilefs'):
        super(ReadOnlyError, self).__init__(message)


class EmptyPathError(MogileFSError):
    def __init__(self, message='Empty path for mogile upload'):
        super(EmptyPathError, self).__init__(message)


class UnsupportedPathError(MogileFSError):
    pass


class ChecksumMismatchError(MogileFSError):
    pass


class NoStorageNodesError(MogileFSError):
    def __init__(self, message='Unable to open socket to storage node'):
        super(NoStorageNodesError, self).__init__(message)


class StorageResponseError(MogileFSError):
    """A storage node answered an upload with something unusable."""


class EmptyResponseError(StorageResponseError):
    pass


class UnparseableResponseError(StorageResponseError):
    pass


class BadResponseError(StorageResponseError):
    def __init__(self, status):
        self.status = status
        super(BadResponseError, self).__init__(
                'HTTP response status from upload: %d' % status)


ErrorKind = collections.namedtuple('ErrorKind', ['tag', 'name'])
"""Identity of a tracker error.

    Fields:

    * ``tag`` the snake_case tag as sent on the wire
    * ``name`` display name derived from the tag, e.g. ``UnknownKeyError``
"""


def _display_name(tag):
    return re.sub(r'(?:^|_)([a-z])', lambda m: m.group(1).upper(),
                  tag) + 'Error'


class ErrorRegistry(object):
    """Maps tracker error tags to :class:`ErrorKind` values.

       The tracker may start sending tags this client has never seen, so the
       set of kinds is open: :meth:`error` registers unknown tags on first
       use. Lookups for the same tag always return the same kind, even when
       several threads register it at once.
    """

    def __init__(self, tags=()):
        self._lock = threading.Lock()
        self._kinds = {}
        for tag in tags:
            self.error(tag)

    def error(self, tag):
        kind = self._kinds.get(tag)
        if kind is None:
            with self._lock:
                kind = self._kinds.setdefault(
                        tag, ErrorKind(tag, _display_name(tag)))
        return kind

    def __contains__(self, tag):
        return tag in self._kinds

    def __len__(self):
        return len(self._kinds)


# Errors known to be sent by the tracker's query worker.
KNOWN_ERROR_TAGS = (
    'dup',
    'after_mismatch',
    'bad_params',
    'class_exists',
    'class_has_files',
    'class_not_found',
    'db',
    'domain_has_files',
    'domain_exists',
    'domain_not_empty',
    'domain_not_found',
    'failure',
    'host_exists',
    'host_mismatch',
    'host_not_empty',
    'host_not_found',
    'invalid_chars',
    'invalid_checker_level',
    'invalid_mindevcount',
    'key_exists',
    'no_class',
    'no_devices',
    'no_domain',
    'no_host',
    'no_ip',
    'no_key',
    'no_port',
    'none_match',
    'plugin_aborted',
    'state_too_high',
    'unknown_command',
    'unknown_host',
    'unknown_key',
    'unknown_state',
    'unreg_domain',
)

BACKEND_ERRORS = ErrorRegistry(KNOWN_ERROR_TAGS)


def error(tag):
    """Returns the :class:`ErrorKind` for ``tag``, registering it if needed."""
    return BACKEND_ERRORS.error(tag)


class BackendError(MogileFSError):
    """An error reported by the tracker (or a backend acting as one).

       ``tag`` is the wire tag, ``kind`` the registered :class:`ErrorKind`
       and ``message`` the (already unescaped) text sent along, if any.
    """

    def __init__(self, tag, message=None, registry=None):
        self.tag = tag
        self.kind = (registry or BACKEND_ERRORS).error(tag)
        self.message = message
        if message:
            text = '%s: %s' % (tag, message)
        else:
            text = tag
        super(BackendError, self).__init__(text)


class NoDevicesError(BackendError):
    def __init__(self, message=None):
        super(NoDevicesError, self).__init__('no_devices', message)
