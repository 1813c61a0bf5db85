"""Back-link (D8 pointer) encoding constants.

Whitebox-style power-of-two convention used by cost-distance back-link
rasters: 1=NE, 2=E, 4=SE, 8=S, 16=SW, 32=W, 64=NW, 128=N.

Provides iteration arrays and the decode LUTs (code -> offset) used by the
tracing kernels, plus ``decode()``, the public validated lookup for a
single code.
"""

import numpy as np

from costpath.errors import CorruptPointerError

_D8 = (
    (1,   -1,  1),   # NE
    (2,    0,  1),   # E
    (4,    1,  1),   # SE
    (8,    1,  0),   # S
    (16,   1, -1),   # SW
    (32,   0, -1),   # W
    (64,  -1, -1),   # NW
    (128, -1,  0),   # N
)

# 8-element arrays for iterating over all neighbours
DIR_CODES = np.array([c for c, _, _ in _D8], dtype=np.uint8)
DIR_DROW  = np.array([r for _, r, _ in _D8], dtype=np.int8)
DIR_DCOL  = np.array([c for _, _, c in _D8], dtype=np.int8)

MAX_CODE = 128

# Decode LUTs indexed by pointer code (0..128)
DECODE_DR    = np.zeros(MAX_CODE + 1, dtype=np.int8)
DECODE_DC    = np.zeros(MAX_CODE + 1, dtype=np.int8)
DECODE_VALID = np.zeros(MAX_CODE + 1, dtype=np.bool_)

for _code, _dr, _dc in _D8:
    DECODE_DR[_code]    = _dr
    DECODE_DC[_code]    = _dc
    DECODE_VALID[_code] = True

del _code, _dr, _dc

for _arr in (DIR_CODES, DIR_DROW, DIR_DCOL, DECODE_DR, DECODE_DC, DECODE_VALID):
    _arr.flags.writeable = False

del _arr


def decode(code):
    """Return the ``(drow, dcol)`` offset for a back-link *code*.

    Raises ``CorruptPointerError`` for anything that is not one of the
    eight direction codes.
    """
    try:
        value = float(code)
    except (TypeError, ValueError):
        raise CorruptPointerError(f"Invalid back-link code {code!r}") from None
    if not (1 <= value <= MAX_CODE) or value != int(value) or not DECODE_VALID[int(value)]:
        raise CorruptPointerError(f"Invalid back-link code {code!r}")
    idx = int(value)
    return int(DECODE_DR[idx]), int(DECODE_DC[idx])
