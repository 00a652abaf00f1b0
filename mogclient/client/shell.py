from optparse import OptionParser
import logging
import os
import sys

from mogclient.client import Client, MogileFSError


def _make_command_parser(cmd, extra_usage=''):
    usage = "usage: %prog [options] command [command-specific options] " \
            + extra_usage
    description = "Help for command '%s'" % cmd
    return OptionParser(usage=usage, description=description)


def _parse_args(parser, args, names):
    options, args = parser.parse_args(list(args))
    if len(args) < len(names):
        parser.error("Missing %s" % names[len(args)])
    if len(args) > len(names):
        parser.error("Too many arguments")
    return options, args


def cmd_get(client, *args):
    parser = _make_command_parser('get', "key local_filename")
    options, (key, filename) = _parse_args(
            parser, args, ["MogileFS key", "local filename"])
    with open(filename, 'wb') as f:
        if client.get_file_data(key, f) is None:
            parser.error("No readable replica of %s" % key)


def cmd_cat(client, *args):
    parser = _make_command_parser('cat', "key")
    options, (key,) = _parse_args(parser, args, ["MogileFS key"])
    sys.stdout.flush()
    with os.fdopen(os.dup(sys.stdout.fileno()), 'wb') as out:
        if client.get_file_data(key, out) is None:
            parser.error("No readable replica of %s" % key)


def cmd_put(client, *args):
    parser = _make_command_parser('put', "local_filename key")
    parser.add_option('-c', '--class', dest='klass', default=None,
            help="Store the file in this class")
    options, (filename, key) = _parse_args(
            parser, args, ["local filename", "MogileFS key"])
    print(client.store_file(key, options.klass, filename))


def cmd_rm(client, *args):
    parser = _make_command_parser('rm', "key")
    options, (key,) = _parse_args(parser, args, ["MogileFS key"])
    client.delete(key)


def cmd_mv(client, *args):
    parser = _make_command_parser('mv', "from_key to_key")
    options, (from_key, to_key) = _parse_args(
            parser, args, ["source key", "destination key"])
    client.rename(from_key, to_key)


def cmd_ls(client, *args):
    parser = _make_command_parser('ls', "[prefix]")
    parser.add_option('-l', '--long', dest='long', action='store_true',
            default=False, help="Print sizes and replica counts too")
    options, args = parser.parse_args(list(args))
    if len(args) > 1:
        parser.error("Too many arguments")
    prefix = args[0] if args else ''

    if not options.long:
        for key in client.each_key(prefix):
            print(key)
        return

    def show(key, length, devcount):
        print('%s\t%s\t%s' % (length, devcount, key))

    after = None
    while True:
        res = client.list_keys(prefix, after, callback=show)
        if not res or not res[0]:
            break
        after = res[1]


def cmd_paths(client, *args):
    parser = _make_command_parser('paths', "key")
    options, (key,) = _parse_args(parser, args, ["MogileFS key"])
    for path in client.get_paths(key):
        print(path)


def cmd_size(client, *args):
    parser = _make_command_parser('size', "key")
    options, (key,) = _parse_args(parser, args, ["MogileFS key"])
    print(client.size(key))


def main():
    usage = "usage: %prog [options] command [command-specific options]"
    commands = [s for s in globals() if s.startswith('cmd_')]
    commands = sorted([s[4:] for s in commands])
    epilog = """
Options specified above are filled from environment
(MOGILEFS_TRACKERS, MOGILEFS_DOMAIN, MOGILEFS_TIMEOUT)
if not specified on the command line.

Each command has its own --help text.

Supported commands: %s.""" % ', '.join(commands)
    parser = OptionParser(usage=usage, epilog=epilog)
    parser.disable_interspersed_args()

    parser.add_option('-t', '--trackers', dest='trackers', default=None,
            help="Comma separated host:port addresses of the trackers")
    parser.add_option('-d', '--domain', dest='domain', default=None,
            help="MogileFS domain of the keys")
    parser.add_option('-v', '--verbose', dest='verbose', default=0,
            action='count', help="Be verbose")

    options, args = parser.parse_args()
    if not args:
        parser.error("Missing command. Try --help for list of available "
                "commands.")
    cmd = globals().get('cmd_' + args[0],
            lambda *a: parser.error("Unknown command: " + args[0]))

    level = logging.WARNING
    if options.verbose:
        level = logging.DEBUG
    logging.basicConfig(
            format="%(asctime)-15s %(name)s %(levelname)s: %(message)s",
            level=level)

    hosts = None
    if options.trackers:
        hosts = [h.strip() for h in options.trackers.split(',') if h.strip()]

    try:
        client = Client(domain=options.domain, hosts=hosts)
        cmd(client, *args[1:])
    except (MogileFSError, ValueError) as e:
        parser.exit(1, "%s: error: %s\n" % (parser.get_prog_name(), e))


if __name__ == '__main__':
    main()
