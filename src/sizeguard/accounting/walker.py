import logging
import os
import stat
from typing import Iterable

from sizeguard import monitoring as mon
from sizeguard.accounting.probe import FilesystemProbe
from sizeguard.accounting.util import SizeUnit

logger = logging.getLogger(__name__)


class DirectorySizeWalker:
    """
    Pre-flight estimate of the bytes a compression will read.

    Paths that can not be stat'd and directories that can not be listed are logged and
    skipped, so the result may under-estimate. Do not use this as an enforcement boundary.
    """

    def __init__(self, probe: FilesystemProbe):
        self.probe = probe

    @mon.time(mon.TIME_IN_DIRECTORY_WALK)
    async def sum(self, paths: Iterable) -> SizeUnit:
        if isinstance(paths, (str, bytes, os.PathLike)):
            raise TypeError('Expected a list of paths, got a single path {!r}'.format(paths))
        total = SizeUnit(0)
        for path in paths:
            try:
                st = await self.probe.stat(path)
            except (OSError, ValueError) as error:
                self._skip(path, 'stat', error)
                continue
            if stat.S_ISDIR(st.st_mode):
                total += await self._directory_size(path)
            else:
                total += SizeUnit(st.st_size)
        return total

    async def _directory_size(self, directory) -> SizeUnit:
        try:
            entries = await self.probe.scandir(directory)
        except (OSError, ValueError) as error:
            self._skip(directory, 'listdir', error)
            return SizeUnit(0)
        size = SizeUnit(0)
        for path, is_directory in entries:
            if is_directory:
                size += await self._directory_size(path)
                continue
            try:
                size += await self.probe.size(path)
            except (OSError, ValueError) as error:
                self._skip(path, 'stat', error)
        return size

    def _skip(self, path, reason, error):
        mon.WALK_SKIPPED_PATHS.labels(reason).inc()
        logger.warning('Failed to get size for path %s, skipping it: %s', path, error)
