"""mogclient is a client for MogileFS, a distributed filesystem where
   trackers keep the metadata and plain HTTP storage nodes keep the bytes.

   -------------------------
   Domains, keys and classes
   -------------------------

   Files are identified by a *key*, unique within a *domain*. Each file
   belongs to a *class*, which tells the trackers on how many devices its
   replicas should be kept. A client works on the keys of a single domain.

   Large files may be stored as *bigfiles*: a number of regular files (the
   parts) together with a text manifest listing them.

   -----------------------
   Configuration and usage
   -----------------------

   Probably the only class you'd like to know and use is
   :class:`mogclient.client.Client`.

   .. autoclass:: mogclient.client.Client
       :members:

   If you write tests, you may be also interested in
   :class:`mogclient.client.dummy.DummyClient`.

   --------------------------------
   Using mogclient from the shell
   --------------------------------

   No programmer can live without a way to fiddle with MogileFS from the
   shell::

     $ mogclient --help

   Bigfiles can be fetched with::

     $ mogclient-bigfile --help

   .. _mogclient_api:

   ----------------------
   API Reference
   ----------------------

   .. autoclass:: mogclient.client.tracker.TrackerConnection
       :members:

   .. autofunction:: mogclient.client.network.verify_uris

   .. autofunction:: mogclient.client.network.http_read_sock

   .. autofunction:: mogclient.client.utils.copy_stream

   .. autoclass:: mogclient.client.http_file.HTTPFile
       :members:

   .. autoclass:: mogclient.client.bigfile.Bigfile
       :members:

   .. autoclass:: mogclient.client.backend.Backend
       :members:

   .. autoclass:: mogclient.client.tracker_backend.TrackerBackend

   .. autoclass:: mogclient.client.db_backend.DbBackend

   .. autoclass:: mogclient.client.admin.Admin
       :members:

   .. autoclass:: mogclient.client.pool.Pool
       :members:

   .. autoclass:: mogclient.client.errors.ErrorRegistry
       :members:

   .. autoclass:: mogclient.client.dummy.DummyTracker

   .. autoclass:: mogclient.client.dummy.DummyClient
"""
