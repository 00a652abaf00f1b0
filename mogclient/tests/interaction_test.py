"""Tests of the client talking to a tracker and storage nodes over TCP."""

import hashlib
from io import BytesIO
import os
import shutil
import tempfile
import unittest
from unittest import mock

from mogclient.client import BackendError, Client
from mogclient.client.admin import Admin
from mogclient.scripts import bigfile as bigfile_script
from mogclient.tests.servers import (FakeTracker, StorageServer, ok_line,
                                     unused_port)


class InteractionTest(unittest.TestCase):
    def setUp(self):
        self.storage = StorageServer()
        self.temp_dir = tempfile.mkdtemp()
        self.tracker = None

    def tearDown(self):
        if self.tracker is not None:
            self.tracker.shutdown()
        self.storage.shutdown()
        shutil.rmtree(self.temp_dir)

    def _client(self, responses, **kwargs):
        self.tracker = FakeTracker(responses)
        dead = '127.0.0.1:%d' % unused_port()
        return Client(domain='test', hosts=[dead, self.tracker.host],
                      timeout=2, **kwargs)

    def test_store_read_and_delete(self):
        url = self.storage.url('/dev2/0/000/000/0000000007.fid')
        client = self._client([
            ok_line({'fid': '7', 'dev_count': '2',
                     'devid_1': '1',
                     'path_1': 'http://127.0.0.1:%d/dev1/7.fid'
                               % unused_port(),
                     'devid_2': '2', 'path_2': url}),
            ok_line({}),
            ok_line({'paths': '1', 'path1': url}),
            ok_line({}),
        ])

        self.assertEqual(client.store_content('greeting', 'normal',
                                              'hello world'), 11)
        self.assertEqual(client.get_file_data('greeting'), b'hello world')
        client.delete('greeting')

        requests = self.tracker.requests
        self.assertEqual([r.split(' ', 1)[0] for r in requests],
                         ['create_open', 'create_close', 'get_paths',
                          'delete'])
        self.assertIn('multi_dest=1', requests[0])
        self.assertIn('class=normal', requests[0])
        self.assertIn('devid=2', requests[1])
        self.assertIn('size=11', requests[1])
        self.assertTrue(requests[3].endswith('\r\n'))

    def test_keys_should_be_escaped(self):
        client = self._client([ok_line({'paths': '0'})])
        self.assertEqual(client.get_paths('a key/with+odd&chars'), [])
        self.assertIn('key=a+key/with%2bodd%26chars',
                      self.tracker.requests[0])

    def test_tracker_errors_should_be_raised(self):
        client = self._client([b'ERR unknown_key unknown+key\r\n'])
        with self.assertRaises(BackendError) as cm:
            client.get_paths('missing')
        self.assertEqual(cm.exception.tag, 'unknown_key')
        self.assertEqual(client.err(), 'unknown_key')
        self.assertEqual(client.errstr(), 'unknown key')

    def test_admin_over_tracker(self):
        self.tracker = FakeTracker([
            ok_line({'domains': '1', 'domain1': 'test',
                     'domain1classes': '1',
                     'domain1class1name': 'default',
                     'domain1class1mindevcount': '2'}),
        ])
        admin = Admin(hosts=[self.tracker.host], timeout=2)
        self.assertEqual(admin.get_domains(), {'test': {'default': 2}})
        self.assertEqual(self.tracker.requests, ['get_domains \r\n'])

    def test_bigfile_script_should_fetch_parts(self):
        parts = [b'first part, ', b'second part']
        manifest = ['type file\n', 'compressed 0\n',
                    'size %d\n' % sum(len(p) for p in parts)]
        for i, data in enumerate(parts, 1):
            path = '/dev1/part%d.fid' % i
            self.storage.files[path] = data
            manifest.append('part %d bytes=%d md5=%s paths: %s\n' % (
                    i, len(data), hashlib.md5(data).hexdigest(),
                    self.storage.url(path)))
        self.storage.files['/dev1/info.fid'] = ''.join(manifest).encode()
        paths = ok_line({'paths': '1',
                         'path1': self.storage.url('/dev1/info.fid')})
        self.tracker = FakeTracker([paths])

        dest = os.path.join(self.temp_dir, 'out')
        status = bigfile_script.main([
                '_big_info:backup', dest, '-s', '--verify',
                '-t', self.tracker.host, '-d', 'test'])

        self.assertEqual(status, 0)
        with open(dest, 'rb') as f:
            self.assertEqual(f.read(), b'first part, second part')
        self.assertEqual([r.split(' ', 1)[0] for r in self.tracker.requests],
                         ['get_paths'])

    def test_bigfile_script_should_report_missing_manifest(self):
        self.tracker = FakeTracker([ok_line({'paths': '0'})])
        dest = os.path.join(self.temp_dir, 'out')
        with mock.patch('sys.stderr') as stderr:
            status = bigfile_script.main([
                    '_big_info:gone', dest, '-s',
                    '-t', self.tracker.host, '-d', 'test'])
        self.assertEqual(status, 1)
        self.assertTrue(stderr.write.called)
        self.assertFalse(os.path.exists(dest))
