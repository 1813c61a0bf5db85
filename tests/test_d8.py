"""Tests for the back-link direction code table."""

import math

import numpy as np
import pytest

from costpath.base import (
    DIR_CODES, DIR_DROW, DIR_DCOL, DECODE_DR, DECODE_DC, DECODE_VALID, decode,
)
from costpath.errors import CorruptPointerError


class TestDirectionTable:
    """The eight codes map onto NE, E, SE, S, SW, W, NW, N."""

    def test_canonical_order(self):
        assert DIR_CODES.tolist() == [1, 2, 4, 8, 16, 32, 64, 128]
        assert DIR_DROW.tolist() == [-1, 0, 1, 1, 1, 0, -1, -1]
        assert DIR_DCOL.tolist() == [1, 1, 1, 0, -1, -1, -1, 0]

    def test_decode_luts_match_iteration_arrays(self):
        for code, dr, dc in zip(DIR_CODES, DIR_DROW, DIR_DCOL):
            assert DECODE_VALID[code]
            assert DECODE_DR[code] == dr
            assert DECODE_DC[code] == dc
        assert DECODE_VALID.sum() == 8

    def test_tables_are_read_only(self):
        with pytest.raises(ValueError):
            DECODE_DR[1] = 0
        with pytest.raises(ValueError):
            DIR_CODES[0] = 3


class TestDecode:

    @pytest.mark.parametrize("code, offset", [
        (1, (-1, 1)), (2, (0, 1)), (4, (1, 1)), (8, (1, 0)),
        (16, (1, -1)), (32, (0, -1)), (64, (-1, -1)), (128, (-1, 0)),
    ])
    def test_valid_codes(self, code, offset):
        assert decode(code) == offset

    def test_accepts_float_and_numpy_codes(self):
        assert decode(16.0) == (1, -1)
        assert decode(np.float32(64)) == (-1, -1)

    @pytest.mark.parametrize("code", [0, -1, 3, 5, 127, 129, 256, 2.5, math.nan, math.inf, "E", None])
    def test_invalid_codes_rejected(self, code):
        with pytest.raises(CorruptPointerError):
            decode(code)
