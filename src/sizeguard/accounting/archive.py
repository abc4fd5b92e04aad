"""
Uncompressed size of archives, measured before they are extracted.

ZIP archives are listed in-process from their central directory. Every other
supported format is listed by an external tool (7-Zip in technical listing mode),
whose output is scraped for ``Size = <digits>`` lines. Listing failures are never
turned into a size of 0: the caller has to block the extraction.
"""
import asyncio
import enum
import logging
import os
import re
import signal
import zipfile
from abc import ABC, abstractmethod
from typing import List, NamedTuple, Mapping

from tornado import concurrent
from tornado.options import define, options

from sizeguard import monitoring as mon
from sizeguard.accounting.util import AccountingError, SizeUnit, DIGITS

define('archive_tool', help="Command used to list non-ZIP archives (7-Zip compatible)", default='7z')
define('archive_tool_timeout', help="Seconds until the archive listing tool is killed", default=60.0)
define('archive_tool_max_output', help="Maximum bytes read from the archive listing tool",
       default=64 * 1024 * 1024)

logger = logging.getLogger(__name__)

SIZE_LINE = re.compile(r'^Size = (.*?)\r?$', re.MULTILINE)
READ_CHUNK = 64 * 1024


class ArchiveError(AccountingError):
    pass


class UnsupportedFormat(ArchiveError):

    def __init__(self, token):
        super().__init__('Unsupported archive format: {!r}'.format(token))
        self.token = token


class ListingError(ArchiveError):
    """The archive could not be measured, extraction must not go ahead."""
    reason = 'failed'


class ListingToolUnavailable(ListingError):
    reason = 'unavailable'


class ListingTimeout(ListingError):
    reason = 'timeout'


class ListingFailed(ListingError):
    reason = 'failed'


class ArchiveFormat(enum.Enum):
    ZIP = '.zip'
    SEVEN_ZIP = '.7z'
    TAR = '.tar'
    RAR = '.rar'

    @classmethod
    def from_token(cls, token) -> 'ArchiveFormat':
        """Resolve "zip", ".ZIP", "7z", ... to a format; case-insensitive, leading dot optional."""
        if isinstance(token, cls):
            return token
        if not isinstance(token, str) or not token:
            raise UnsupportedFormat(token)
        extension = token.lower()
        if not extension.startswith('.'):
            extension = '.' + extension
        try:
            return cls(extension)
        except ValueError:
            raise UnsupportedFormat(extension) from None

    @classmethod
    def from_path(cls, path) -> 'ArchiveFormat':
        _, extension = os.path.splitext(os.fspath(path))
        return cls.from_token(extension)


ArchiveEntry = NamedTuple('ArchiveEntry', [('size', SizeUnit)])


class AbstractListing(ABC):

    @abstractmethod
    async def entries(self, archive_path) -> List[ArchiveEntry]:
        pass

    async def total_size(self, archive_path) -> SizeUnit:
        return SizeUnit.total(entry.size for entry in await self.entries(archive_path))

    def shutdown(self):
        pass


class ZipListing(AbstractListing):
    """Reads the central directory only, no member is decompressed."""

    def __init__(self, threads=1):
        self._thread_pool = concurrent.futures.ThreadPoolExecutor(threads)

    async def entries(self, archive_path):
        try:
            return await self._read_index(archive_path)
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as error:
            raise ListingFailed('Could not read ZIP index of {}: {}'.format(archive_path, error)) from error

    @concurrent.run_on_executor(executor='_thread_pool')
    def _read_index(self, archive_path):
        with zipfile.ZipFile(archive_path) as archive:
            return [ArchiveEntry(SizeUnit(info.file_size)) for info in archive.infolist()]

    def shutdown(self):
        self._thread_pool.shutdown(wait=False)


class ToolListing(AbstractListing):
    """
    Lists an archive with a 7-Zip compatible command line tool.

    The tool runs as ``<tool> l -slt -- <archive>`` without a shell. Only stdout is read,
    and only up to *max_output* bytes. The tool gets its own process group, which is killed
    once the listing ends or *timeout* seconds have passed.
    """

    def __init__(self, tool=None, timeout=None, max_output=None):
        self.tool = tool or options.archive_tool
        self.timeout = timeout if timeout is not None else options.archive_tool_timeout
        self.max_output = max_output or options.archive_tool_max_output

    def command(self, archive_path):
        return [self.tool, 'l', '-slt', '--', os.fspath(archive_path)]

    async def entries(self, archive_path):
        output = await self.run(archive_path)
        entries = parse_listing(output)
        if not entries:
            mon.ARCHIVE_EMPTY_LISTINGS.inc()
            logger.warning('No file sizes found in listing of %s, treating the archive as empty '
                           '(check the output format of %s if this archive is not empty)',
                           archive_path, self.tool)
        return entries

    async def run(self, archive_path) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command(archive_path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                start_new_session=True)
        except OSError as error:
            raise ListingToolUnavailable('Could not start {}: {}'.format(self.tool, error)) from error

        try:
            output = await asyncio.wait_for(self._communicate(process), self.timeout)
        except asyncio.TimeoutError:
            raise ListingTimeout('{} did not list {} within {} seconds'.format(
                self.tool, archive_path, self.timeout)) from None
        finally:
            # helpers of the tool may hold the pipe open after it exits
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass  # the whole group is gone
            await process.wait()

        if process.returncode != 0:
            raise ListingFailed('{} exited with status {} listing {}'.format(
                self.tool, process.returncode, archive_path))
        return output.decode('utf-8', errors='replace')

    async def _communicate(self, process):
        output = bytearray()
        while True:
            chunk = await process.stdout.read(READ_CHUNK)
            if not chunk:
                break
            output += chunk
            if len(output) > self.max_output:
                raise ListingFailed('Listing output exceeds {} bytes'.format(self.max_output))
        await process.wait()
        return bytes(output)


def parse_listing(output: str) -> List[ArchiveEntry]:
    """
    Collect one entry per ``Size = <token>`` line.

    Tokens that are not plain digits (directories, damaged lines) count as 0.
    """
    entries = []
    for match in SIZE_LINE.finditer(output):
        token = match.group(1).strip()
        if DIGITS.fullmatch(token):
            entries.append(ArchiveEntry(SizeUnit(int(token))))
        else:
            logger.debug('Ignoring non-numeric size token %r', token)
            entries.append(ArchiveEntry(SizeUnit(0)))
    return entries


class ArchiveInspector:
    """Dispatches every ArchiveFormat to exactly one listing."""

    def __init__(self, listings: Mapping[ArchiveFormat, AbstractListing]):
        missing = set(ArchiveFormat) - set(listings)
        if missing:
            raise ValueError('No listing for {}'.format(', '.join(sorted(f.name for f in missing))))
        self.listings = dict(listings)

    @classmethod
    def default(cls, tool=None, timeout=None, max_output=None):
        tool_listing = ToolListing(tool, timeout, max_output)
        return cls({
            ArchiveFormat.ZIP: ZipListing(),
            ArchiveFormat.SEVEN_ZIP: tool_listing,
            ArchiveFormat.TAR: tool_listing,
            ArchiveFormat.RAR: tool_listing,
        })

    async def inspect(self, archive_path, archive_format=None) -> SizeUnit:
        """
        Return the sum of the uncompressed sizes of all entries in *archive_path*.

        *archive_format* is a format token ("zip", ".7z", ...) or an ArchiveFormat;
        if omitted it is derived from the file name.
        """
        if archive_format is None:
            archive_format = ArchiveFormat.from_path(archive_path)
        else:
            archive_format = ArchiveFormat.from_token(archive_format)
        listing = self.listings[archive_format]
        try:
            with mon.TIME_IN_ARCHIVE_LISTING.labels(archive_format.name).time():
                return await listing.total_size(archive_path)
        except ListingError as error:
            mon.ARCHIVE_LISTING_ERRORS.labels(error.reason).inc()
            logger.error('Failed to read archive contents of %s: %s', archive_path, error)
            raise

    def shutdown(self):
        for listing in set(self.listings.values()):
            listing.shutdown()
