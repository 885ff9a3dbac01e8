"""Integration test: CLI argument parsing and SEG inspection."""

from __future__ import annotations

import numpy as np
from typer.testing import CliRunner

from seg2vol.cli import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_missing_input():
    result = runner.invoke(app, [])
    assert result.exit_code != 0


def test_nonexistent_input():
    result = runner.invoke(app, ["/nonexistent/seg.dcm"])
    assert result.exit_code != 0


def test_inspect_seg(seg_file):
    result = runner.invoke(app, [str(seg_file)])
    assert result.exit_code == 0, f"CLI failed: {result.output}"
    assert "Segments in" in result.output
    assert "Segment" in result.output
    assert "Wrote" not in result.output


def test_export_npz(seg_file, tmp_path):
    output = tmp_path / "labels.npz"
    result = runner.invoke(app, [str(seg_file), "-o", str(output)])
    assert result.exit_code == 0, f"CLI failed: {result.output}"
    assert output.exists()
    with np.load(output) as archive:
        assert archive["segment_1_labelmap"].shape == (2, 8, 8)


def test_no_sort_flag(make_seg, to_bytes, tmp_path):
    path = tmp_path / "reversed.dcm"
    path.write_bytes(to_bytes(make_seg(segment_frames={1: [(0.0, 0.0, 4.0), (0.0, 0.0, 0.0)]})))
    output = tmp_path / "reversed.npz"

    result = runner.invoke(app, [str(path), "--no-sort", "-o", str(output)])

    assert result.exit_code == 0, f"CLI failed: {result.output}"
    with np.load(output) as archive:
        assert archive["segment_1_origin"].tolist() == [0.0, 0.0, 4.0]


def test_invalid_file(tmp_path):
    path = tmp_path / "broken.dcm"
    path.write_bytes(b"definitely not DICOM")
    result = runner.invoke(app, [str(path)])
    assert result.exit_code == 1
