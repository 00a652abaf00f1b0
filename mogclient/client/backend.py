"""An abstract definition of a metadata backend."""


class Backend(object):
    """An abstract base class giving read access to the file metadata of
       a MogileFS installation: where the replicas of a key live, which keys
       exist and how big they are.

       The high-level :class:`mogclient.client.Client` talks to exactly one
       backend, chosen when it is constructed.
    """

    def get_paths(self, domain, key, noverify=True, zone=None):
        """Returns a list of URLs of the replicas of ``key``.

           ``noverify`` asks the tracker not to check the replicas before
           answering. ``zone`` selects an alternative network zone (``'alt'``)
           where supported.
        """
        raise NotImplementedError

    def list_keys(self, domain, prefix, after=None, limit=1000,
                  callback=None):
        """Lists up to ``limit`` keys starting with ``prefix`` which sort
           after ``after``.

           Returns a tuple ``(keys, next_after)``, or ``None`` if nothing
           matches. If ``callback`` is given, it is called as
           ``callback(key, length, devcount)`` for every listed key.
        """
        raise NotImplementedError

    def size(self, domain, key):
        """Returns the size of ``key`` in bytes, or ``None`` if it cannot
           be determined.
        """
        raise NotImplementedError

    def sleep(self, duration):
        """Makes the backend sleep ``duration`` seconds (a tracker no-op
           used for testing).
        """
        raise NotImplementedError
