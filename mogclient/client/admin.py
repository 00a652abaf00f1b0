"""Administrative access to the trackers."""

import re

from mogclient.client.client import BaseClient


class Admin(BaseClient):
    """Client for the administrative commands of the trackers.

       Accepts the same arguments as :class:`BaseClient`. The answers of
       the tracker, which are flat ``name<N>_field`` dictionaries, are
       turned into lists of records::

         >>> admin.get_hosts(1)
         [{'hostid': '1', 'hostname': 'sn-1', 'status': 'alive', ...}]

       Tracker errors are raised as
       :class:`mogclient.client.errors.BackendError`.
    """

    def _clean(self, count, prefix, res, underscore=True):
        """Turns the ``prefix<i>_<field>`` entries of ``res`` into a list
           of ``res[count]`` dicts keyed by ``field``.
        """
        records = []
        for i in range(1, int(res.get(count) or 0) + 1):
            if underscore:
                key_re = re.compile(r'^%s%d_' % (re.escape(prefix), i))
            else:
                key_re = re.compile(r'^%s%d(?!\d)' % (re.escape(prefix), i))
            record = {}
            for k, v in res.items():
                m = key_re.match(k)
                if m:
                    record[k[m.end():]] = v
            records.append(record)
        return records

    def get_hosts(self, hostid=None):
        """Returns the list of hosts, or only host ``hostid``."""
        args = {'hostid': hostid} if hostid else {}
        return self._clean('hosts', 'host', self.tracker.send('get_hosts',
                                                              args))

    def get_devices(self, devid=None):
        """Returns the list of devices, or only device ``devid``."""
        args = {'devid': devid} if devid else {}
        return self._clean('devices', 'dev', self.tracker.send('get_devices',
                                                               args))

    def list_fids(self, from_fid, to_fid):
        """Returns the records of the files with fids in the given range."""
        res = self.tracker.send('list_fids', {'from': from_fid, 'to': to_fid})
        return self._clean('fid_count', 'fid_', res)

    def each_fid(self):
        """Yields the records of all files, in batches of 100 fids."""
        fids = self.get_stats('fids').get('fids')
        if not fids:
            return
        low = 0
        while low <= fids['max']:
            high = low + 99
            for fid in self.list_fids(low, high):
                yield fid
            low = high + 1

    def get_stats(self, type='all'):
        """Returns the statistics of the installation.

           The result has the keys ``device``, ``file`` and ``replication``
           (lists of records) and ``fids`` (a dict with ``max`` and
           ``count``); empty sections are left out.
        """
        res = self.tracker.send('stats', {type: 1})
        stats = {}

        stats['device'] = self._clean('devicescount', 'devices', res, False)
        stats['file'] = self._clean('filescount', 'files', res, False)
        stats['replication'] = self._clean('replicationcount', 'replication',
                                           res, False)

        if res.get('fidmax') or res.get('fidcount'):
            stats['fids'] = {
                'max': int(res.get('fidmax') or 0),
                'count': int(res.get('fidcount') or 0),
            }

        for section in ('device', 'file', 'replication'):
            if not stats[section]:
                del stats[section]

        return stats

    def get_domains(self):
        """Returns ``{domain: {class: mindevcount}}``."""
        res = self.tracker.send('get_domains')
        domains = {}
        for i in range(1, int(res.get('domains') or 0) + 1):
            classes = self._clean('domain%dclasses' % i, 'domain%dclass' % i,
                                  res, False)
            domains[res.get('domain%d' % i)] = dict(
                    (c.get('name'), int(c.get('mindevcount') or 0))
                    for c in classes)
        return domains

    def create_domain(self, domain):
        self._check_writable()
        res = self.tracker.send('create_domain', {'domain': domain})
        return res.get('domain')

    def delete_domain(self, domain):
        self._check_writable()
        self.tracker.send('delete_domain', {'domain': domain})
        return True

    def _modify_class(self, domain, klass, mindevcount, action):
        self._check_writable()
        res = self.tracker.send('%s_class' % action, {
            'domain': domain,
            'class': klass,
            'mindevcount': mindevcount,
        })
        return res.get('class')

    def create_class(self, domain, klass, mindevcount):
        """Creates class ``klass`` in ``domain`` with files replicated to
           ``mindevcount`` devices. Returns the name of the class.
        """
        return self._modify_class(domain, klass, mindevcount, 'create')

    def update_class(self, domain, klass, mindevcount):
        return self._modify_class(domain, klass, mindevcount, 'update')

    def delete_class(self, domain, klass):
        self._check_writable()
        self.tracker.send('delete_class', {'domain': domain, 'class': klass})
        return True

    def _modify_host(self, host, args, action):
        self._check_writable()
        params = dict(args)
        params['host'] = host
        self.tracker.send('%s_host' % action, params)
        return True

    def create_host(self, host, **args):
        """Creates host ``host``; ``ip`` and ``port`` must be given."""
        if 'ip' not in args or 'port' not in args:
            raise ValueError("Must specify ip and port")
        return self._modify_host(host, args, 'create')

    def update_host(self, host, **args):
        return self._modify_host(host, args, 'update')

    def delete_host(self, host):
        self._check_writable()
        self.tracker.send('delete_host', {'host': host})
        return True

    def change_device_state(self, host, device, state):
        """Sets the state of ``device`` on ``host`` to ``state``
           (``'alive'``, ``'down'`` or ``'dead'``).
        """
        self._check_writable()
        self.tracker.send('set_state', {'host': host, 'device': device,
                                        'state': state})
        return True
