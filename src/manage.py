import argparse
import asyncio
import sys

from sizeguard.accounting.archive import ArchiveError
from sizeguard.accounting.service import SizeAccounting
from sizeguard.accounting.upload import UploadStatError


def verify(accounting, path, declared_size):
    result = asyncio.run(accounting.verify_file_size(path, declared_size))
    if result.is_valid:
        print('{}: {} bytes, matches'.format(path, result.actual_size))
        return 0
    print('{}: {} bytes, declared {}'.format(path, result.actual_size, result.declared_size))
    return 1


def archive_size(accounting, path, archive_format=None):
    size = asyncio.run(accounting.get_archive_uncompressed_size(path, archive_format))
    print(size)
    return 0


def input_size(accounting, paths):
    size = asyncio.run(accounting.calculate_input_size(paths))
    print(size)
    return 0


def parse_args(arguments):
    parser = argparse.ArgumentParser(description='Measure files, archives and directories like sizeguard does')
    actions = parser.add_subparsers(dest='action', required=True)

    verify_parser = actions.add_parser('verify', help='Compare a merged upload with its declared size')
    verify_parser.add_argument('path')
    verify_parser.add_argument('declared_size')

    archive_parser = actions.add_parser('archive-size', help='Sum the uncompressed sizes of an archive')
    archive_parser.add_argument('path')
    archive_parser.add_argument('--format', dest='archive_format', metavar='FORMAT',
                                help='zip, 7z, tar or rar; derived from PATH if omitted')

    input_parser = actions.add_parser('input-size', help='Sum the sizes of files and directories')
    input_parser.add_argument('paths', nargs='+', metavar='PATH')
    return parser.parse_args(arguments)


def main(arguments=None, accounting=None):
    args = parse_args(arguments)
    owned = accounting is None
    if owned:
        accounting = SizeAccounting()
    try:
        if args.action == 'verify':
            return verify(accounting, args.path, args.declared_size)
        elif args.action == 'archive-size':
            return archive_size(accounting, args.path, args.archive_format)
        elif args.action == 'input-size':
            return input_size(accounting, args.paths)
    except (ArchiveError, UploadStatError, ValueError) as error:
        print('error: {}'.format(error), file=sys.stderr)
        return 2
    finally:
        if owned:
            accounting.shutdown()

if __name__ == '__main__':
    sys.exit(main())
