import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin


@pytest.fixture
def write_raster(tmp_path):
    """Write a single-band GeoTIFF into tmp_path and return its path."""

    def _write(name, array, nodata=None, dtype="float32"):
        array = np.asarray(array)
        path = tmp_path / name
        profile = {
            "driver": "GTiff",
            "dtype": dtype,
            "width": array.shape[1],
            "height": array.shape[0],
            "count": 1,
            "crs": "EPSG:32617",
            "transform": from_origin(500000.0, 4000000.0, 10.0, 10.0),
            "nodata": nodata,
        }
        with rasterio.open(path, "w", **profile) as dst:
            dst.write(array.astype(dtype), 1)
        return path

    return _write


@pytest.fixture
def example_grids():
    """3x3 chain (2,0) -> (1,0) -> (0,0) with NoData = -1."""
    destination = np.array([[0, 0, 0],
                            [0, 0, 0],
                            [5, 0, 0]], dtype=np.float64)
    backlink = np.full((3, 3), -1.0)
    backlink[2, 0] = 128  # N
    backlink[1, 0] = 128  # N
    return destination, backlink
