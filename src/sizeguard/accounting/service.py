from sizeguard.accounting.archive import ArchiveInspector
from sizeguard.accounting.probe import FilesystemProbe
from sizeguard.accounting.upload import UploadSizeVerifier
from sizeguard.accounting.util import SizeUnit, UploadVerificationResult
from sizeguard.accounting.walker import DirectorySizeWalker


class SizeAccounting:
    """
    The measurements the upload-merge and compression/extraction services ask for.

    :param probe: FilesystemProbe shared by the verifier and the walker
    :param inspector: ArchiveInspector, defaults to ZIP in-process and 7-Zip for the rest
    """

    def __init__(self, probe=None, inspector=None):
        self.probe = probe or FilesystemProbe()
        self.inspector = inspector or ArchiveInspector.default()
        self.verifier = UploadSizeVerifier(self.probe)
        self.walker = DirectorySizeWalker(self.probe)

    async def verify_file_size(self, file_path, declared_size) -> UploadVerificationResult:
        return await self.verifier.verify(file_path, declared_size)

    async def get_archive_uncompressed_size(self, archive_path, archive_format=None) -> SizeUnit:
        return await self.inspector.inspect(archive_path, archive_format)

    async def calculate_input_size(self, paths) -> SizeUnit:
        return await self.walker.sum(paths)

    def shutdown(self):
        self.probe.shutdown()
        self.inspector.shutdown()


_default = None


def default_accounting() -> SizeAccounting:
    global _default
    if _default is None:
        _default = SizeAccounting()
    return _default


async def verify_file_size(file_path, declared_size) -> UploadVerificationResult:
    return await default_accounting().verify_file_size(file_path, declared_size)


async def get_archive_uncompressed_size(archive_path, archive_format=None) -> SizeUnit:
    return await default_accounting().get_archive_uncompressed_size(archive_path, archive_format)


async def calculate_input_size(paths) -> SizeUnit:
    return await default_accounting().calculate_input_size(paths)
