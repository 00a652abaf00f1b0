"""In-memory tracker implementation for tests."""

import collections

from mogclient.client.client import Client
from mogclient.client.errors import BackendError
from mogclient.client.tracker import COMMANDS


class DummyTracker(object):
    """A stand-in for :class:`mogclient.client.tracker.TrackerConnection`
       which answers from a script instead of a socket.

       Answers are queued per command with :meth:`expect`. An answer is
       either a dict (returned as the decoded ``OK`` line), a
       ``(tag, message)`` tuple (raised as :class:`BackendError`, like an
       ``ERR`` line), or a callable taking the request params and returning
       one of those. All requests are recorded in ``calls``.

       Not thread-safe.
    """

    def __init__(self):
        self.responses = collections.defaultdict(list)
        self.calls = []
        self.lasterr = None
        self.lasterrstr = None

    def expect(self, command, response):
        self.responses[command].append(response)

    def send(self, command, params=None):
        params = dict(params or {})
        self.calls.append((command, params))

        answers = self.responses.get(command)
        if not answers:
            self.lasterr = 'unknown_command'
            self.lasterrstr = 'no answer scripted for %s' % command
            raise BackendError(self.lasterr, self.lasterrstr)
        response = answers.pop(0)

        if callable(response):
            response = response(params)
        if isinstance(response, tuple):
            self.lasterr, self.lasterrstr = response
            raise BackendError(self.lasterr, self.lasterrstr)
        return dict((str(k), str(v)) for k, v in response.items())

    def do_request(self, cmd, args):
        return self.send(cmd, args)

    def calls_of(self, command):
        """Returns the params of every ``command`` request sent so far."""
        return [params for cmd, params in self.calls if cmd == command]

    def shutdown(self):
        pass

    close = shutdown


def _command(name):
    def command(self, params=None):
        return self.send(name, params)
    command.__name__ = name
    return command


for _name in COMMANDS:
    setattr(DummyTracker, _name, _command(_name))


class DummyClient(Client):
    """MogileFS client talking to a :class:`DummyTracker`."""

    def __init__(self, domain='test', tracker=None, **kwargs):
        if tracker is None:
            tracker = DummyTracker()
        Client.__init__(self, domain=domain, tracker=tracker, **kwargs)
