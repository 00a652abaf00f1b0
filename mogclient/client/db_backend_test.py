import sqlite3
import unittest

from mogclient.client import Client
from mogclient.client.db_backend import DbBackend, fid_path
from mogclient.client.errors import (BackendError, NoDevicesError,
                                     ReadOnlyError)


_SCHEMA = """
CREATE TABLE domain (dmid INTEGER, namespace TEXT);
CREATE TABLE host (hostid INTEGER, hostip TEXT, altip TEXT,
                   http_port INTEGER, http_get_port INTEGER);
CREATE TABLE device (devid INTEGER, hostid INTEGER, status TEXT);
CREATE TABLE file (fid INTEGER, dmid INTEGER, dkey TEXT, length INTEGER,
                   devcount INTEGER);
CREATE TABLE file_on (fid INTEGER, devid INTEGER);

INSERT INTO domain VALUES (1, 'test');
INSERT INTO domain VALUES (2, 'other');
INSERT INTO host VALUES (1, '10.0.0.1', '192.168.0.1', 7500, NULL);
INSERT INTO host VALUES (2, '10.0.0.2', NULL, NULL, 7600);
INSERT INTO device VALUES (1, 1, 'alive');
INSERT INTO device VALUES (2, 2, 'readonly');
INSERT INTO device VALUES (3, 2, 'dead');
"""


class DbBackendTest(unittest.TestCase):
    def setUp(self):
        self.db = sqlite3.connect(':memory:')
        self.db.executescript(_SCHEMA)
        self.backend = DbBackend(self.db, paramstyle='qmark')

    def tearDown(self):
        self.db.close()

    def _add_file(self, fid, key, length=3, devids=(1,), dmid=1):
        self.db.execute('INSERT INTO file VALUES (?, ?, ?, ?, ?)',
                        (fid, dmid, key, length, len(devids)))
        for devid in devids:
            self.db.execute('INSERT INTO file_on VALUES (?, ?)',
                            (fid, devid))

    def test_fid_path(self):
        self.assertEqual(fid_path(1, 1234), '/dev1/0/000/001/0000001234.fid')
        self.assertEqual(fid_path(12, 9876543210),
                         '/dev12/9/876/543/9876543210.fid')

    def test_get_paths_should_build_storage_urls(self):
        self._add_file(1234, 'foo', devids=(1, 2))
        self.assertEqual(self.backend.get_paths('test', 'foo'), [
            'http://10.0.0.1:7500/dev1/0/000/001/0000001234.fid',
            'http://10.0.0.2:7600/dev2/0/000/001/0000001234.fid',
        ])

    def test_get_paths_should_use_alternative_zone(self):
        self._add_file(1234, 'foo', devids=(1, 2))
        self.assertEqual(self.backend.get_paths('test', 'foo', zone='alt'), [
            'http://192.168.0.1:7500/dev1/0/000/001/0000001234.fid',
            'http://10.0.0.2:7600/dev2/0/000/001/0000001234.fid',
        ])

    def test_get_paths_should_skip_dead_devices(self):
        self._add_file(5, 'foo', devids=(3, 1))
        self.assertEqual(self.backend.get_paths('test', 'foo'),
                         ['http://10.0.0.1:7500/dev1/0/000/000/0000000005.fid'])

    def test_get_paths_should_refresh_devices_on_miss(self):
        self._add_file(1, 'first')
        self.backend.get_paths('test', 'first')

        self.db.execute("INSERT INTO device VALUES (4, 1, 'alive')")
        self._add_file(2, 'second', devids=(4,))
        self.assertEqual(self.backend.get_paths('test', 'second'),
                         ['http://10.0.0.1:7500/dev4/0/000/000/0000000002.fid'])

    def test_get_paths_errors(self):
        self._add_file(1, 'foo')
        with self.assertRaises(BackendError) as cm:
            self.backend.get_paths('test', 'missing')
        self.assertEqual(cm.exception.tag, 'unknown_key')

        with self.assertRaises(BackendError) as cm:
            self.backend.get_paths('nope', 'foo')
        self.assertEqual(cm.exception.tag, 'domain_not_found')

        self.db.execute("UPDATE device SET status = 'dead'")
        with self.assertRaises(NoDevicesError):
            DbBackend(self.db, 'qmark').get_paths('test', 'foo')

    def test_domain_should_be_per_key(self):
        self._add_file(1, 'foo', dmid=2)
        with self.assertRaises(BackendError):
            self.backend.get_paths('test', 'foo')
        self.assertEqual(len(self.backend.get_paths('other', 'foo')), 1)

    def test_list_keys_should_escape_wildcards(self):
        for fid, key in enumerate(['a_1', 'a_2', 'ab', 'b'], 1):
            self._add_file(fid, key, length=fid, devids=(1, 2))

        self.assertEqual(self.backend.list_keys('test', 'a_'),
                         (['a_1', 'a_2'], 'a_2'))
        self.assertEqual(self.backend.list_keys('test', 'a'),
                         (['a_1', 'a_2', 'ab'], 'ab'))

    def test_list_keys_should_page(self):
        for fid, key in enumerate(['k1', 'k2', 'k3'], 1):
            self._add_file(fid, key)

        self.assertEqual(self.backend.list_keys('test', 'k', limit=2),
                         (['k1', 'k2'], 'k2'))
        self.assertEqual(self.backend.list_keys('test', 'k', after='k2'),
                         (['k3'], 'k3'))
        self.assertIsNone(self.backend.list_keys('test', 'k', after='k3'))
        self.assertEqual(self.backend.list_keys('test', 'k', limit=0),
                         (['k1', 'k2', 'k3'], 'k3'))

    def test_list_keys_should_call_callback(self):
        self._add_file(1, 'foo', length=10, devids=(1, 2))
        seen = []
        self.backend.list_keys('test', 'f',
                               callback=lambda *args: seen.append(args))
        self.assertEqual(seen, [('foo', 10, 2)])

    def test_list_keys_errors(self):
        with self.assertRaises(BackendError) as cm:
            self.backend.list_keys('test', 'a', after='b')
        self.assertEqual(cm.exception.tag, 'after_mismatch')

        for prefix in ('a%', 'a\\'):
            with self.assertRaises(BackendError) as cm:
                self.backend.list_keys('test', prefix)
            self.assertEqual(cm.exception.tag, 'invalid_chars')

        self.assertIsNone(self.backend.list_keys('test', 'nothing'))

    def test_size(self):
        self._add_file(1, 'foo', length=1234)
        self.assertEqual(self.backend.size('test', 'foo'), 1234)
        with self.assertRaises(BackendError) as cm:
            self.backend.size('test', 'bar')
        self.assertEqual(cm.exception.tag, 'unknown_key')

    def test_sleep_should_return_empty_dict(self):
        self.assertEqual(self.backend.sleep(0), {})

    def test_unknown_paramstyle_should_be_rejected(self):
        with self.assertRaises(ValueError):
            DbBackend(self.db, 'named')

    def test_client_with_db_backend_should_be_readonly(self):
        self._add_file(1234, 'foo', length=7)
        client = Client(domain='test', db_backend=self.backend)

        self.assertTrue(client.readonly)
        self.assertEqual(client.size('foo'), 7)
        self.assertEqual(client.get_paths('foo'),
                         ['http://10.0.0.1:7500/dev1/0/000/001/0000001234.fid'])
        self.assertEqual(list(client.each_key('f')), ['foo'])
        with self.assertRaises(ReadOnlyError):
            client.delete('foo')
