from sizeguard.accounting.util import SizeUnit, UploadVerificationResult


class QuotaPolicy:
    """
    Decisions a quota gate makes from the sizes measured here.

    *used* and *quota* are the account's current usage and limit in bytes.
    """

    @staticmethod
    def fits(used, quota, incoming) -> bool:
        return SizeUnit.parse(used) + SizeUnit.parse(incoming) <= SizeUnit.parse(quota)

    @staticmethod
    def upload(result: UploadVerificationResult, used, quota, max_file_size=None) -> bool:
        if not result.is_valid:
            return False
        if max_file_size is not None and result.actual_size > SizeUnit.parse(max_file_size):
            return False
        return QuotaPolicy.fits(used, quota, result.actual_size)

    @staticmethod
    def extract(used, quota, uncompressed) -> bool:
        return QuotaPolicy.fits(used, quota, uncompressed)

    @staticmethod
    def compress(used, quota, estimate) -> bool:
        """Advisory only: the estimate may be incomplete, callers warn instead of rejecting."""
        return QuotaPolicy.fits(used, quota, estimate)
