"""Script to fetch a bigfile from MogileFS into a local file."""

import argparse
import logging
import sys

from mogclient.client import Client, MogileFSError
from mogclient.scripts import progress_bar


_DESCRIPTION = """
Reassembles a bigfile (a large file stored as numbered parts, described by
a manifest such as "_big_info:backup") into a local file.

Deflated bigfiles are inflated on the fly. Trackers and the domain are taken
from MOGILEFS_TRACKERS and MOGILEFS_DOMAIN unless given as options.
"""


def main(args=None):
    parser = argparse.ArgumentParser(description=_DESCRIPTION)
    parser.add_argument('key', help='key of the bigfile manifest')
    parser.add_argument('file', help='local file to write')
    parser.add_argument('-t', '--trackers',
            help='comma separated host:port addresses of the trackers')
    parser.add_argument('-d', '--domain', help='MogileFS domain')
    parser.add_argument('--verify', action='store_true',
            help='check MD5 checksums of the parts')
    parser.add_argument('-s', '--silent', action='store_true',
            help='if set, progress bar is not printed')
    parser.add_argument('-v', '--verbose', action='store_true',
            help='print debugging messages')

    args = parser.parse_args(args)

    logging.basicConfig(
            format="%(asctime)-15s %(name)s %(levelname)s: %(message)s",
            level=logging.DEBUG if args.verbose else logging.WARNING)

    hosts = None
    if args.trackers:
        hosts = [h.strip() for h in args.trackers.split(',') if h.strip()]

    try:
        client = Client(domain=args.domain, hosts=hosts)
        manifest = client.bigfile_stat(args.key)
    except (MogileFSError, ValueError) as e:
        print('ERROR reading manifest {}:\n{}'.format(args.key, e),
              file=sys.stderr)
        return 1

    if manifest.size:
        max_value = manifest.size
        widgets = [
                ' [', progress_bar.ShortTimer(), '] ',
                ' ', progress_bar.DataSize(), ' ',
                progress_bar.Bar(),
                ' ', progress_bar.Percentage(), ' ',
                ' (', progress_bar.AdaptiveETA(), ') ',
        ]
    else:
        # Old manifests do not record the size.
        max_value = progress_bar.UnknownLength
        widgets = [
                ' [', progress_bar.ShortTimer(), '] ',
                ' ', progress_bar.DataSize(), ' ',
                progress_bar.BouncingBar(),
        ]

    with open(args.file, 'wb') as f:
        with progress_bar.conditional(show=not args.silent,
                                      max_value=max_value,
                                      widgets=widgets) as bar:
            writer = progress_bar.ProgressWriter(
                    f, bar, manifest.size or None)
            try:
                total, _ = client.bigfile_write(args.key, writer,
                                                verify=args.verify,
                                                manifest=manifest)
            except MogileFSError as e:
                print('ERROR when fetching {}:\n{}'.format(args.key, e),
                      file=sys.stderr)
                return 1

    if not args.silent:
        print('Wrote {} bytes of {} to {}'.format(
                total, manifest.filename or args.key, args.file))
    return 0


if __name__ == '__main__':
    sys.exit(main())
