from .base import BaseTool, DEFAULT_NODATA, format_elapsed
from .d8 import (
    DIR_CODES, DIR_DROW, DIR_DCOL,
    DECODE_DR, DECODE_DC, DECODE_VALID,
    MAX_CODE, decode,
)

__all__ = [
    "BaseTool", "DEFAULT_NODATA", "format_elapsed",
    "DIR_CODES", "DIR_DROW", "DIR_DCOL",
    "DECODE_DR", "DECODE_DC", "DECODE_VALID",
    "MAX_CODE", "decode",
]
