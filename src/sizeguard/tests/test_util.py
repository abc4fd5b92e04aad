import json

import pytest

from sizeguard.accounting.util import SizeUnit, SizeMismatch, UploadVerificationResult


def test_size_unit_is_exact_beyond_double_precision():
    big = SizeUnit(2**53)
    assert big + 1 == 2**53 + 1
    assert float(big) == float(big + 1)
    assert big + 1 != big


def test_size_unit_addition_stays_size_unit():
    total = SizeUnit(10) + SizeUnit(20)
    assert isinstance(total, SizeUnit)
    assert total == 30
    assert isinstance(5 + SizeUnit(1), SizeUnit)


def test_size_unit_total():
    sizes = [2**64, 2**64, 1]
    assert SizeUnit.total(sizes) == 2**65 + 1
    assert SizeUnit.total([]) == 0
    assert isinstance(SizeUnit.total([]), SizeUnit)


@pytest.mark.parametrize('value', [-1, -2**70])
def test_size_unit_rejects_negative(value):
    with pytest.raises(ValueError):
        SizeUnit(value)


@pytest.mark.parametrize('value', [1.0, 2.5, True, None, '12'])
def test_size_unit_rejects_non_integers(value):
    with pytest.raises(TypeError):
        SizeUnit(value)


def test_size_unit_refuses_float_operands():
    with pytest.raises(TypeError):
        SizeUnit(1) + 1.5


def test_size_unit_negative_sum():
    with pytest.raises(ValueError):
        SizeUnit(1) + (-2)


def test_parse():
    assert SizeUnit.parse('18446744073709551617') == 2**64 + 1
    assert SizeUnit.parse(' 42 ') == 42
    assert SizeUnit.parse(0) == 0
    for token in ('', '-1', '1.0', '1e3', 'abc', '١٢'):
        with pytest.raises(ValueError):
            SizeUnit.parse(token)
    with pytest.raises(TypeError):
        SizeUnit.parse(3.0)


def test_text_representation():
    size = SizeUnit(2**64)
    assert str(size) == '18446744073709551616'
    assert '{}'.format(size) == '18446744073709551616'
    assert repr(size) == 'SizeUnit(18446744073709551616)'
    assert json.dumps({'size': size}) == '{"size": 18446744073709551616}'


def test_verification_result_raises_for_mismatch():
    ok = UploadVerificationResult(True, SizeUnit(3), SizeUnit(3))
    assert ok.raise_for_mismatch() is ok
    bad = UploadVerificationResult(False, SizeUnit(4), SizeUnit(3))
    with pytest.raises(SizeMismatch) as exc_info:
        bad.raise_for_mismatch()
    assert exc_info.value.declared_size == 3
    assert exc_info.value.actual_size == 4
