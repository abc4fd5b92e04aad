import logging

from sizeguard import monitoring as mon
from sizeguard.accounting.probe import FilesystemProbe
from sizeguard.accounting.util import AccountingError, SizeUnit, UploadVerificationResult

logger = logging.getLogger(__name__)


class UploadStatError(AccountingError):
    """The merged upload could not be stat'd; the upload-merge state is inconsistent."""

    def __init__(self, file_path, error):
        super().__init__('Could not stat merged upload {}: {}'.format(file_path, error))
        self.file_path = file_path
        self.error = error

    @property
    def not_found(self):
        return isinstance(self.error, FileNotFoundError)


class UploadSizeVerifier:

    def __init__(self, probe: FilesystemProbe):
        self.probe = probe

    @mon.time(mon.TIME_IN_UPLOAD_VERIFY)
    async def verify(self, file_path, declared_size) -> UploadVerificationResult:
        """
        Compare the size of the merged file at *file_path* with *declared_size*.

        Only an exact match is valid. A failed stat raises UploadStatError and is never
        reported as a mismatch; neither is retried.
        """
        declared_size = SizeUnit.parse(declared_size)
        try:
            actual_size = await self.probe.regular_file_size(file_path)
        except (OSError, ValueError) as error:
            mon.UPLOAD_VERIFICATIONS.labels('error').inc()
            raise UploadStatError(file_path, error) from error

        result = UploadVerificationResult(actual_size == declared_size, actual_size, declared_size)
        if result.is_valid:
            mon.UPLOAD_VERIFICATIONS.labels('valid').inc()
        else:
            mon.UPLOAD_VERIFICATIONS.labels('mismatch').inc()
            logger.warning('Size mismatch for upload %s: declared %d bytes, found %d bytes',
                           file_path, declared_size, actual_size)
        return result
