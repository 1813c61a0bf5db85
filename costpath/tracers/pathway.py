"""
Least-cost pathway tracing over a cost-distance back-link raster.

Every destination cell (strictly positive value in the destination raster)
is traced along its back-link chain until a source cell is reached
(back-link NoData or <= 0).  The output counts, per cell, how many
destination pathways pass through it.

Scan rule: cells are scanned in row-major order and a cell whose back-link
is NoData is forced to NoData *when the scan reaches it*.  Visits deposited
by destinations scanned earlier are discarded; visits from destinations
scanned later are kept.
"""

import logging
import operator
import time
from typing import List, NamedTuple

import numba
import numpy as np
from numba import njit, prange
from tqdm.auto import tqdm

from costpath.base import (
    BaseTool, DEFAULT_NODATA, format_elapsed,
    DECODE_DR, DECODE_DC, DECODE_VALID, MAX_CODE,
)
from costpath.errors import (
    CorruptPointerError, InvalidInputError, LoopDetectedError,
    OutOfBoundsError, TraceCancelled,
)

logger = logging.getLogger(__name__)

# Trace status codes returned by the kernels
_NOT_TRACED = -1
_TERMINAL = 0
_CORRUPT_POINTER = 1
_OUT_OF_BOUNDS = 2
_LOOP_DETECTED = 3

_ERRORS = {
    _CORRUPT_POINTER: CorruptPointerError,
    _OUT_OF_BOUNDS: OutOfBoundsError,
    _LOOP_DETECTED: LoopDetectedError,
}


class TraceFailure(NamedTuple):
    """A destination whose pathway could not be traced."""

    row: int
    col: int
    reason: str
    at_row: int
    at_col: int


class TraceResult(NamedTuple):
    accumulation: np.ndarray
    nodata: float
    background: float
    failures: List[TraceFailure]
    elapsed: float


# =========================================================================
# JIT kernels
# =========================================================================

@njit(cache=True)
def _walk(pointer, nodata_mask, row, col, max_cells,
          decode_dr, decode_dc, decode_valid):
    """Follow the back-link chain from (row, col) without writing anything.

    Returns (status, ncells, at_r, at_c) where *ncells* is the number of
    cells visited (start and source included) and (at_r, at_c) is the last
    cell reached.  A chain longer than *max_cells* must revisit a cell.
    """
    nrows, ncols = pointer.shape
    r = np.intp(row)
    c = np.intp(col)
    ncells = 1
    while True:
        if nodata_mask[r, c]:
            return _TERMINAL, ncells, r, c
        p = np.float64(pointer[r, c])
        if p <= 0.0:
            return _TERMINAL, ncells, r, c
        if not (p <= MAX_CODE) or p != np.floor(p):
            return _CORRUPT_POINTER, ncells, r, c
        code = np.intp(p)
        if not decode_valid[code]:
            return _CORRUPT_POINTER, ncells, r, c
        nr = r + np.intp(decode_dr[code])
        nc = c + np.intp(decode_dc[code])
        if nr < 0 or nr >= nrows or nc < 0 or nc >= ncols:
            return _OUT_OF_BOUNDS, ncells, r, c
        if ncells >= max_cells:
            return _LOOP_DETECTED, ncells, r, c
        r = nr
        c = nc
        ncells += 1


@njit(cache=True)
def _deposit(counts, pointer, nodata_mask, row, col, ncells, origin,
             decode_dr, decode_dc):
    """Add one visit to each of the first *ncells* cells of a validated chain.

    A cell holding background (0) or forced NoData (-1) becomes 1.  When
    *origin* >= 0 it is the row-major index of the destination, and NoData
    back-link cells scanned after it are left untouched.
    """
    ncols = pointer.shape[1]
    r = np.intp(row)
    c = np.intp(col)
    for i in range(ncells):
        skip = origin >= 0 and nodata_mask[r, c] and r * ncols + c > origin
        if not skip:
            if counts[r, c] <= 0:
                counts[r, c] = 1
            else:
                counts[r, c] += 1
        if i + 1 < ncells:
            code = np.intp(pointer[r, c])
            r = r + np.intp(decode_dr[code])
            c = c + np.intp(decode_dc[code])


@njit(cache=True)
def _collect(pointer, row, col, ncells, decode_dr, decode_dc):
    """Return the (ncells, 2) array of cells on a validated chain."""
    path = np.empty((ncells, 2), dtype=np.int64)
    r = np.intp(row)
    c = np.intp(col)
    for i in range(ncells):
        path[i, 0] = r
        path[i, 1] = c
        if i + 1 < ncells:
            code = np.intp(pointer[r, c])
            r = r + np.intp(decode_dr[code])
            c = c + np.intp(decode_dc[code])
    return path


@njit(cache=True)
def _scan_row(counts, dest_mask, pointer, nodata_mask, row, max_cells,
              decode_dr, decode_dc, decode_valid, failures):
    """Scan one row in column order.

    Traces every destination and forces NoData (-1) where the back-link is
    NoData.  Failed traces are written to *failures* as
    (col, status, at_row, at_col); returns how many there were.
    """
    nfail = 0
    for col in range(pointer.shape[1]):
        if dest_mask[row, col] and not nodata_mask[row, col]:
            status, ncells, at_r, at_c = _walk(
                pointer, nodata_mask, row, col, max_cells,
                decode_dr, decode_dc, decode_valid)
            if status == _TERMINAL:
                _deposit(counts, pointer, nodata_mask, row, col, ncells, -1,
                         decode_dr, decode_dc)
            else:
                failures[nfail, 0] = col
                failures[nfail, 1] = status
                failures[nfail, 2] = at_r
                failures[nfail, 3] = at_c
                nfail += 1
        elif nodata_mask[row, col]:
            counts[row, col] = -1
    return nfail


@njit(cache=True, parallel=True)
def _walk_rows(dest_mask, pointer, nodata_mask, row_start, row_stop, max_cells,
               decode_dr, decode_dc, decode_valid, status, ncells):
    """Validate the chains of all destinations in rows [row_start, row_stop)."""
    ncols = pointer.shape[1]
    for row in prange(row_start, row_stop):
        for col in range(ncols):
            if dest_mask[row, col] and not nodata_mask[row, col]:
                s, n, at_r, at_c = _walk(pointer, nodata_mask, row, col, max_cells,
                                         decode_dr, decode_dc, decode_valid)
                status[row, col] = s
                ncells[row, col] = n


@njit(cache=True, parallel=True)
def _deposit_chunks(partial, pointer, nodata_mask, rows, cols, ncells, bounds,
                    decode_dr, decode_dc):
    """Deposit validated chains, chunk *k* of the origins into ``partial[k]``.

    Origins must be in row-major order; a NoData back-link cell only keeps
    visits from origins that follow it in that order.
    """
    ncols = pointer.shape[1]
    for k in prange(bounds.shape[0] - 1):
        plane = partial[k]
        for i in range(bounds[k], bounds[k + 1]):
            _deposit(plane, pointer, nodata_mask, rows[i], cols[i], ncells[i],
                     rows[i] * ncols + cols[i], decode_dr, decode_dc)


# =========================================================================
# JIT warm-up
# =========================================================================

def _warmup():
    """Pre-compile all numba kernels for float64 back-links."""
    pointer = np.array([[0.0, 128.0],
                        [-1.0, 2.0]], dtype=np.float64)
    nodata_mask = np.zeros((2, 2), dtype=np.bool_)
    nodata_mask[1, 0] = True
    dest_mask = np.ones((2, 2), dtype=np.bool_)
    counts = np.zeros((2, 2), dtype=np.int64)
    failures = np.zeros((2, 4), dtype=np.int64)

    for row in range(2):
        _scan_row(counts, dest_mask, pointer, nodata_mask, row, 4,
                  DECODE_DR, DECODE_DC, DECODE_VALID, failures)
    _collect(pointer, 1, 1, 1, DECODE_DR, DECODE_DC)

    status = np.full((2, 2), _NOT_TRACED, dtype=np.int8)
    ncells = np.zeros((2, 2), dtype=np.int64)
    _walk_rows(dest_mask, pointer, nodata_mask, 0, 2, 4,
               DECODE_DR, DECODE_DC, DECODE_VALID, status, ncells)
    partial = np.zeros((1, 2, 2), dtype=np.int32)
    origins = np.zeros(1, dtype=np.int64)
    bounds = np.array([0, 1], dtype=np.int64)
    _deposit_chunks(partial, pointer, nodata_mask, origins, origins,
                    origins + 1, bounds, DECODE_DR, DECODE_DC)


_warmup()


# =========================================================================
# Array API
# =========================================================================

def _prepare_pointer(backlink, nodata):
    pointer = np.ascontiguousarray(backlink, dtype=np.float64)
    if pointer.ndim != 2:
        raise InvalidInputError("Back-link grid must be two-dimensional")
    return pointer, BaseTool._build_nodata_mask(pointer, nodata)


def _is_cancelled(cancel):
    return cancel is not None and cancel.is_set()


def _failure(row, col, status, at_row, at_col):
    failure = TraceFailure(int(row), int(col), _ERRORS[int(status)].reason,
                           int(at_row), int(at_col))
    logger.warning(
        "Pathway from destination (%d, %d) failed at (%d, %d): %s",
        failure.row, failure.col, failure.at_row, failure.at_col, failure.reason,
    )
    return failure


class _Progress:
    """Row-granularity percentage reporting to a callback and a tqdm bar."""

    def __init__(self, nrows, callback, verbose):
        self._nrows = nrows
        self._callback = callback
        self._old = None
        self._bar = tqdm(total=nrows, desc="Tracing pathways", disable=not verbose)

    def update(self, rows_done, step):
        self._bar.update(step)
        if self._callback is None:
            return
        percent = int(100 * rows_done / self._nrows)
        if percent != self._old:
            self._callback(percent)
            self._old = percent

    def close(self):
        self._bar.close()


def _scan_sequential(counts, dest_mask, pointer, nodata_mask, max_cells,
                     progress, cancel):
    nrows, ncols = pointer.shape
    failures = []
    buf = np.zeros((ncols, 4), dtype=np.int64)
    for row in range(nrows):
        if _is_cancelled(cancel):
            raise TraceCancelled(f"Tracing cancelled at row {row}")
        nfail = _scan_row(counts, dest_mask, pointer, nodata_mask, row, max_cells,
                          DECODE_DR, DECODE_DC, DECODE_VALID, buf)
        for col, status, at_r, at_c in buf[:nfail]:
            failures.append(_failure(row, col, status, at_r, at_c))
        progress.update(row + 1, 1)
    return failures


def _scan_parallel(counts, dest_mask, pointer, nodata_mask, max_cells,
                   progress, cancel, workers):
    nrows, ncols = pointer.shape
    status = np.full((nrows, ncols), _NOT_TRACED, dtype=np.int8)
    ncells = np.zeros((nrows, ncols), dtype=np.int64)

    block = max(1, nrows // 100)
    for start in range(0, nrows, block):
        if _is_cancelled(cancel):
            raise TraceCancelled(f"Tracing cancelled at row {start}")
        stop = min(start + block, nrows)
        _walk_rows(dest_mask, pointer, nodata_mask, start, stop, max_cells,
                   DECODE_DR, DECODE_DC, DECODE_VALID, status, ncells)
        progress.update(stop, stop - start)

    failures = []
    for row, col in np.argwhere(status > _TERMINAL):
        # Re-walk failed chains to locate where they broke
        s, _, at_r, at_c = _walk(pointer, nodata_mask, row, col, max_cells,
                                 DECODE_DR, DECODE_DC, DECODE_VALID)
        failures.append(_failure(row, col, s, at_r, at_c))

    # argwhere yields row-major order
    origins = np.argwhere(status == _TERMINAL)
    rows = np.ascontiguousarray(origins[:, 0], dtype=np.int64)
    cols = np.ascontiguousarray(origins[:, 1], dtype=np.int64)
    lengths = ncells[rows, cols]
    # One private plane per numba thread, not per requested worker
    nchunks = max(1, min(workers, numba.get_num_threads(), len(rows)))
    bounds = np.linspace(0, len(rows), nchunks + 1).astype(np.int64)

    partial = np.zeros((nchunks, nrows, ncols), dtype=np.int32)
    _deposit_chunks(partial, pointer, nodata_mask, rows, cols, lengths, bounds,
                    DECODE_DR, DECODE_DC)
    counts += partial.sum(axis=0)
    return failures


def trace_pathways(destination, backlink, nodata=None, zero_background=False,
                   destination_nodata=None, workers=1, progress=None,
                   cancel=None, verbose=False):
    """Trace every destination along its back-link chain and count visits.

    Parameters
    ----------
    destination : ndarray
        2-D grid; cells with a strictly positive value are destinations.
    backlink : ndarray
        2-D back-link grid of the same shape holding D8 codes
        (1, 2, 4, ..., 128), NoData, or values <= 0 for source cells.
    nodata : float, optional
        Back-link NoData value.  Also the output NoData; defaults to
        ``DEFAULT_NODATA`` when None.
    zero_background : bool
        Encode cells no pathway visits as 0 instead of NoData.
    destination_nodata : float, optional
        Destination NoData value; such cells are never destinations.
    workers : int
        1 scans sequentially; more validates and deposits chains in parallel
        with numba.  Results are identical.
    progress : callable, optional
        Called with an integer percentage as rows complete.
    cancel : threading.Event, optional
        Checked between rows (blocks of rows when parallel); raises
        ``TraceCancelled`` once set.
    verbose : bool
        Show a tqdm progress bar.

    Returns a ``TraceResult``.  Destinations whose chain is corrupt, leaves
    the grid or loops are listed in ``failures`` and contribute no visits.
    """
    dest = np.asarray(destination)
    pointer, nodata_mask = _prepare_pointer(backlink, nodata)
    if dest.ndim != 2:
        raise InvalidInputError("Destination grid must be two-dimensional")
    if dest.shape != pointer.shape:
        raise InvalidInputError(
            "The input files must have the same number of rows and columns "
            f"(destination {dest.shape}, back-link {pointer.shape})"
        )
    try:
        if isinstance(workers, bool):
            raise TypeError(workers)
        workers = operator.index(workers)
    except TypeError:
        raise InvalidInputError("workers must be a positive integer") from None
    if workers < 1:
        raise InvalidInputError("workers must be a positive integer")

    out_nodata = DEFAULT_NODATA if nodata is None else float(nodata)
    background = 0.0 if zero_background else out_nodata

    with np.errstate(invalid="ignore"):
        dest_mask = dest > 0
    dest_mask &= ~BaseTool._build_nodata_mask(dest, destination_nodata)

    nrows, ncols = pointer.shape
    max_cells = nrows * ncols
    counts = np.zeros((nrows, ncols), dtype=np.int64)

    start = time.perf_counter()
    bar = _Progress(nrows, progress, verbose)
    try:
        if workers == 1:
            failures = _scan_sequential(counts, dest_mask, pointer, nodata_mask,
                                        max_cells, bar, cancel)
        else:
            previous = numba.get_num_threads()
            numba.set_num_threads(min(workers, numba.config.NUMBA_NUM_THREADS))
            try:
                failures = _scan_parallel(counts, dest_mask, pointer, nodata_mask,
                                          max_cells, bar, cancel, workers)
            finally:
                numba.set_num_threads(previous)
    finally:
        bar.close()
    elapsed = time.perf_counter() - start

    accumulation = counts.astype(np.float64)
    unvisited = counts <= 0
    accumulation[unvisited] = background
    accumulation[unvisited & nodata_mask] = out_nodata

    if failures:
        logger.warning("%d of %d pathways could not be traced",
                       len(failures), int(dest_mask.sum()))
    logger.info("Elapsed Time (excluding I/O): %s", format_elapsed(elapsed))
    return TraceResult(accumulation, out_nodata, background, failures, elapsed)


def trace_path(backlink, row, col, nodata=None):
    """Return the ordered (n, 2) array of (row, col) cells from (row, col)
    to its source cell.

    Raises ``CorruptPointerError``, ``OutOfBoundsError`` or
    ``LoopDetectedError`` when the chain cannot be followed.
    """
    pointer, nodata_mask = _prepare_pointer(backlink, nodata)
    nrows, ncols = pointer.shape
    if not (0 <= row < nrows and 0 <= col < ncols):
        raise InvalidInputError(f"Start cell ({row}, {col}) is outside the grid")

    status, ncells, at_r, at_c = _walk(pointer, nodata_mask, row, col, nrows * ncols,
                                       DECODE_DR, DECODE_DC, DECODE_VALID)
    if status != _TERMINAL:
        error = _ERRORS[status]
        raise error(
            f"Pathway from ({row}, {col}) failed at ({at_r}, {at_c}): {error.reason}",
            row=row, col=col, at_row=int(at_r), at_col=int(at_c),
        )
    return _collect(pointer, row, col, ncells, DECODE_DR, DECODE_DC)


# =========================================================================
# PathTracer tool class
# =========================================================================

class PathTracer(BaseTool):
    """Cost-distance pathway tracer.

    Requires a destination raster and the back-link raster produced by a
    cost-distance tool.  The output takes its size, CRS and transform from
    the destination raster and its NoData value from the back-link raster.
    """

    TOOL_NAME = "CostPathway"

    def __init__(self):
        super().__init__()
        self._destination_raw = None
        self._destination_nodata = None
        self._destination_path = None
        self._backlink_raw = None
        self._backlink_nodata = None
        self._backlink_path = None
        self.result_ = None

    def load_destination(self, path):
        """Load the destination raster (single band).

        The rasterio profile from this raster is used as the reference
        profile for ``save()``.
        """
        array, profile, nodata = self._read_raster(path)
        self._destination_raw = array
        self._destination_nodata = nodata
        self._destination_path = str(path)
        self._profile = profile

    def load_backlink(self, path):
        """Load the back-link raster without overwriting the profile."""
        array, profile, nodata = self._read_raster(path)
        self._backlink_raw = array
        self._backlink_nodata = nodata
        self._backlink_path = str(path)
        if self._profile is None:
            self._profile = profile

    def run(self, zero_background=False, workers=1, progress=None, cancel=None,
            verbose=False):
        """Trace all destination pathways.

        See ``trace_pathways`` for the parameters.  Returns a copy of the
        accumulation array; the full ``TraceResult`` is kept in
        ``self.result_``.
        """
        if self._destination_raw is None:
            raise RuntimeError("No destination data. Call load_destination() first.")
        if self._backlink_raw is None:
            raise RuntimeError("No back-link data. Call load_backlink() first.")

        result = trace_pathways(
            self._destination_raw, self._backlink_raw,
            nodata=self._backlink_nodata,
            zero_background=zero_background,
            destination_nodata=self._destination_nodata,
            workers=workers, progress=progress, cancel=cancel, verbose=verbose,
        )

        self._metadata = {}
        self.add_metadata_entry("destination", self._destination_path)
        self.add_metadata_entry("backlink", self._backlink_path)
        self.add_metadata_entry("elapsed_time", format_elapsed(result.elapsed))
        self.add_metadata_entry("trace_failures", len(result.failures))

        self.result_ = result
        self.output_ = result.accumulation
        self.output_nodata_ = result.nodata
        return self.output_.copy()

    trace = run
