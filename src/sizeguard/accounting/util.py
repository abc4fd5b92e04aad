import re
from typing import Iterable, NamedTuple


DIGITS = re.compile(r'[0-9]+')


class AccountingError(Exception):
    pass


class SizeUnit(int):
    """
    Non-negative byte count of arbitrary precision.

    Only integral values are accepted. Floats are refused outright, a byte count
    must never round-trip through an IEEE double.
    """
    __slots__ = ()

    def __new__(cls, value=0):
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError('Byte count must be an integer, got {!r}'.format(value))
        if value < 0:
            raise ValueError('Byte count must not be negative, got {}'.format(value))
        return super().__new__(cls, value)

    @classmethod
    def parse(cls, token) -> 'SizeUnit':
        """Parse an int or a string of ASCII digits, e.g. a size from a JSON document."""
        if isinstance(token, str):
            token = token.strip()
            if not DIGITS.fullmatch(token):
                raise ValueError('Not a byte count: {!r}'.format(token))
            return cls(int(token))
        return cls(token)

    @classmethod
    def total(cls, sizes: Iterable[int]) -> 'SizeUnit':
        return sum(sizes, cls(0))

    def __add__(self, other):
        if isinstance(other, bool) or not isinstance(other, int):
            raise TypeError('Only byte counts can be added to a SizeUnit, got {!r}'.format(other))
        return SizeUnit(int(self) + int(other))

    __radd__ = __add__

    def __repr__(self):
        return 'SizeUnit({})'.format(int.__repr__(self))

    __str__ = int.__repr__


class SizeMismatch(AccountingError):

    def __init__(self, declared_size, actual_size):
        super().__init__('Declared size {} does not match actual size {}'.format(declared_size, actual_size))
        self.declared_size = declared_size
        self.actual_size = actual_size


class UploadVerificationResult(NamedTuple):
    is_valid: bool
    actual_size: SizeUnit
    declared_size: SizeUnit = None

    def raise_for_mismatch(self):
        if not self.is_valid:
            raise SizeMismatch(self.declared_size, self.actual_size)
        return self
