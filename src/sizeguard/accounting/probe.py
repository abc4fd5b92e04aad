import errno
import os
import stat
from typing import List, Tuple

from tornado import concurrent
from tornado.options import define, options

from sizeguard.accounting.util import SizeUnit

define('probe_threads', help="Thread pool size for filesystem stat and directory listing", default=4)


class FilesystemProbe:
    """
    Thin wrapper around stat(2) and directory listing.

    The calls block, so they run on a small thread pool and return futures.
    """

    def __init__(self, threads=None):
        self._thread_pool = concurrent.futures.ThreadPoolExecutor(threads or options.probe_threads)

    @concurrent.run_on_executor(executor='_thread_pool')
    def stat(self, path) -> os.stat_result:
        return os.stat(path)

    async def size(self, path) -> SizeUnit:
        return SizeUnit((await self.stat(path)).st_size)

    async def regular_file_size(self, path) -> SizeUnit:
        """Like size(), but raises OSError for anything that is not a regular file."""
        st = await self.stat(path)
        if not stat.S_ISREG(st.st_mode):
            code = errno.EISDIR if stat.S_ISDIR(st.st_mode) else errno.EINVAL
            raise OSError(code, 'Not a regular file', str(path))
        return SizeUnit(st.st_size)

    @concurrent.run_on_executor(executor='_thread_pool')
    def scandir(self, path) -> List[Tuple[str, bool]]:
        """
        List *path* as (path, is_directory) pairs.

        Symlinks are never reported as directories, a walk following them could loop.
        """
        with os.scandir(path) as entries:
            return [(entry.path, entry.is_dir(follow_symlinks=False)) for entry in entries]

    def shutdown(self):
        self._thread_pool.shutdown(wait=False)
