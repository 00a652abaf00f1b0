"""MogileFS client implementation."""

from mogclient.client.errors import (
    BACKEND_ERRORS, BackendError, BadResponseError, ChecksumMismatchError,
    EmptyPathError, EmptyResponseError, ErrorKind, ErrorRegistry,
    InvalidResponseError, MogileFSError, NoDevicesError, NoStorageNodesError,
    ReadOnlyError, RequestTruncatedError, StorageResponseError, Timeout,
    UnparseableResponseError, UnreachableBackendError, UnreadableSocketError,
    UnsupportedPathError)

# Reexport under shorter path.
from mogclient.client.client import Client
