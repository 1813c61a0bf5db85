"""Tests for the costpath command-line interface."""

import numpy as np
import pytest
import rasterio

from costpath.cli import main


@pytest.fixture
def inputs(write_raster, example_grids):
    destination, backlink = example_grids
    write_raster("destination.tif", destination)
    write_raster("backlink.tif", backlink, nodata=-1.0)


def _read(path):
    with rasterio.open(path) as src:
        return src.read(1)


class TestPathwayCommand:

    def test_writes_output(self, tmp_path, inputs):
        out = tmp_path / "cost_path.tif"
        code = main([
            "pathway",
            "--destination", str(tmp_path / "destination.tif"),
            "--backlink", str(tmp_path / "backlink.tif"),
            "-o", str(out),
        ])
        assert code == 0
        data = _read(out)
        assert data[2, 0] == 1
        assert data[2, 2] == -1

    def test_working_directory(self, tmp_path, inputs):
        code = main([
            "pathway", "--wd", str(tmp_path),
            "--destination", "destination.tif",
            "--backlink", "backlink.tif",
            "--output", "cost_path.tif",
        ])
        assert code == 0
        assert (tmp_path / "cost_path.tif").exists()

    @pytest.mark.parametrize("flag", ["--zero_background", "--esri_style"])
    def test_zero_background_flags(self, tmp_path, write_raster, flag):
        write_raster("d.tif", [[0, 0, 1]])
        write_raster("b.tif", [[0, 0, 32]], nodata=-1.0)
        code = main(["pathway", "--wd", str(tmp_path), "--destination", "d.tif",
                     "--backlink", "b.tif", "-o", "out.tif", flag, "--workers", "2"])
        assert code == 0
        np.testing.assert_array_equal(_read(tmp_path / "out.tif"), [[0, 1, 1]])

    def test_size_mismatch(self, tmp_path, write_raster, caplog):
        write_raster("d.tif", np.zeros((2, 2)))
        write_raster("b.tif", np.zeros((3, 2)), nodata=-1.0)
        code = main(["pathway", "--wd", str(tmp_path), "--destination", "d.tif",
                     "--backlink", "b.tif", "-o", "out.tif"])
        assert code == 1
        assert not (tmp_path / "out.tif").exists()
        assert "same number of rows and columns" in caplog.text

    def test_unreadable_input(self, tmp_path):
        code = main(["pathway", "--wd", str(tmp_path), "--destination", "nope.tif",
                     "--backlink", "nope.tif", "-o", "out.tif"])
        assert code == 1
        assert not (tmp_path / "out.tif").exists()

    def test_unwritable_output(self, tmp_path, inputs, caplog):
        out = tmp_path / "missing_dir" / "out.tif"
        code = main([
            "pathway",
            "--destination", str(tmp_path / "destination.tif"),
            "--backlink", str(tmp_path / "backlink.tif"),
            "-o", str(out),
        ])
        assert code == 1
        assert not out.exists()
        assert "missing_dir" in caplog.text

    def test_missing_required_path(self, tmp_path):
        with pytest.raises(SystemExit) as excinfo:
            main(["pathway", "--destination", "d.tif", "-o", "out.tif"])
        assert excinfo.value.code == 2

    def test_no_arguments(self):
        with pytest.raises(SystemExit) as excinfo:
            main([])
        assert excinfo.value.code == 2

    def test_bad_workers(self):
        with pytest.raises(SystemExit):
            main(["pathway", "--destination", "d", "--backlink", "b", "-o", "o",
                  "--workers", "0"])
