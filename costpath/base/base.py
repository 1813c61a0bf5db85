"""Base class for raster tools: single-band raster I/O and NoData handling."""

import logging

import numpy as np
import rasterio

logger = logging.getLogger(__name__)

DEFAULT_NODATA = -32768.0


def format_elapsed(seconds):
    """Format a duration in seconds as ``"<h>h <m>m <s>s"``."""
    h = int(seconds // 3600)
    m = int((seconds % 3600) // 60)
    s = seconds % 60
    return f"{h}h {m}m {s:.2f}s"


class BaseTool:
    """Common infrastructure for raster tools.

    Subclasses must override ``run(...)``.  The result is stored in
    ``self.output_`` (float ndarray) together with ``self.output_nodata_``
    and written by ``save()`` using the reference raster profile.
    """

    TOOL_NAME = None

    def __init__(self):
        self._profile = None
        self._metadata = {}
        self.output_ = None
        self.output_nodata_ = None

    # ------------------------------------------------------------------
    # Raster I/O
    # ------------------------------------------------------------------

    @staticmethod
    def _read_raster(path):
        """Read a single-band raster via rasterio.

        Returns (array, profile, nodata).
        """
        logger.info("Reading %s", path)
        with rasterio.open(path) as src:
            array = src.read(1)
            profile = src.profile.copy()
            nodata = src.nodata
        return array, profile, nodata

    # ------------------------------------------------------------------
    # Nodata helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _build_nodata_mask(array, nodata):
        """Boolean mask where *True* means nodata."""
        if nodata is None:
            return np.zeros(array.shape, dtype=bool)
        if np.isnan(nodata):
            return np.isnan(array)
        return array == nodata

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def add_metadata_entry(self, key, value):
        """Record a provenance tag written alongside the output raster."""
        self._metadata[key.upper()] = str(value)

    def save(self, path):
        """Write ``self.output_`` to a float32 GeoTIFF.

        Size, CRS and transform come from the reference profile; the
        NoData value is ``self.output_nodata_``.  Provenance entries added
        with ``add_metadata_entry()`` are stored as dataset tags.
        """
        if self.output_ is None:
            raise RuntimeError("No result to save. Call run() first.")
        if self._profile is None:
            raise RuntimeError("No raster profile available. Load an input raster first.")

        out_profile = {
            "driver": "GTiff",
            "dtype": "float32",
            "width": self.output_.shape[1],
            "height": self.output_.shape[0],
            "count": 1,
            "crs": self._profile.get("crs"),
            "transform": self._profile.get("transform"),
            "nodata": self.output_nodata_,
        }

        logger.info("Saving %s", path)
        with rasterio.open(path, "w", **out_profile) as dst:
            dst.write(self.output_.astype(np.float32), 1)
            if self.TOOL_NAME:
                dst.update_tags(TOOL=f"Created by costpath's {self.TOOL_NAME} tool")
            if self._metadata:
                dst.update_tags(**self._metadata)

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    def run(self, **kwargs):
        """Run the tool.

        Must store results in ``self.output_`` and ``self.output_nodata_``,
        then return ``self.output_.copy()``.

        Subclasses must override this method.
        """
        raise NotImplementedError
