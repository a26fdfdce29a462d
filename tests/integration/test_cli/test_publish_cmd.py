"""Integration tests for the `data-publisher publish` CLI commands.

Commands run against a local store configured through environment
variables, so the full settings, service, and publisher stack is exercised.
"""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING

import pytest
from tree_helpers import DEST_ROOT, expected_paths

if TYPE_CHECKING:
    from pathlib import Path

from typer.testing import CliRunner

from data_publisher.cli.app import app

runner = CliRunner()


@pytest.fixture
def store_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI at a local store beneath tmp_path."""
    root = tmp_path / "store"
    monkeypatch.setenv("STORE_BACKEND", "local")
    monkeypatch.setenv("STORE_ROOT", str(root))
    monkeypatch.delenv("RESTART_FILE", raising=False)
    monkeypatch.delenv("MAX_ERRORS", raising=False)
    return root


class TestPublishTree:
    """Tests for `publish tree`."""

    def test_publishes_tree(self, store_root: Path, source_dir: Path) -> None:
        result = runner.invoke(app, ["publish", "tree", str(source_dir), DEST_ROOT])

        assert result.exit_code == 0, result.output
        assert "Found: 18" in result.output
        assert "Published: 18" in result.output
        assert "Errors: 0" in result.output
        published = sorted("/" + p.relative_to(store_root).as_posix() for p in store_root.rglob("*.txt"))
        assert published == expected_paths()

    def test_pattern_restricts_files(self, store_root: Path, source_dir: Path) -> None:
        result = runner.invoke(app, ["publish", "tree", str(source_dir), DEST_ROOT, "--pattern", r"^1\.txt$"])
        assert result.exit_code == 0, result.output
        assert "Published: 3" in result.output

    def test_rerun_with_restart_file(self, store_root: Path, source_dir: Path, tmp_path: Path) -> None:
        restart = tmp_path / "restart.json"
        args = ["publish", "tree", str(source_dir), DEST_ROOT, "--restart-file", str(restart)]
        runner.invoke(app, args)
        result = runner.invoke(app, args)

        assert result.exit_code == 0, result.output
        assert "Published: 0" in result.output

    def test_manifest_written(self, store_root: Path, source_dir: Path, tmp_path: Path) -> None:
        manifest = tmp_path / "manifest.json"
        result = runner.invoke(
            app, ["publish", "tree", str(source_dir), DEST_ROOT, "--manifest", str(manifest), "--workers", "4"]
        )
        assert result.exit_code == 0, result.output
        assert len(json.loads(manifest.read_text())["products"]) == 18

    def test_both_manifest_modes_rejected(self, store_root: Path, source_dir: Path, tmp_path: Path) -> None:
        result = runner.invoke(
            app,
            [
                "publish",
                "tree",
                str(source_dir),
                DEST_ROOT,
                "--manifest",
                str(tmp_path / "m.json"),
                "--collection-record",
                str(tmp_path / "c.json"),
            ],
        )
        assert result.exit_code == 1
        assert "cannot be used together" in result.output
        assert not store_root.exists() or not any(store_root.rglob("*.txt"))

    def test_errors_exit_non_zero(self, store_root: Path, source_dir: Path) -> None:
        """A missing required checksum cache fails the file and the command."""
        (source_dir / "a" / "x" / "reads.bam").write_bytes(b"BAM")
        result = runner.invoke(app, ["publish", "tree", str(source_dir), DEST_ROOT])

        assert result.exit_code == 1
        assert "Errors: 1" in result.output
        assert "Published: 18" in result.output

    def test_corrupt_restart_file_is_fatal(self, store_root: Path, source_dir: Path, tmp_path: Path) -> None:
        restart = tmp_path / "restart.json"
        restart.write_text("{")
        result = runner.invoke(app, ["publish", "tree", str(source_dir), DEST_ROOT, "--restart-file", str(restart)])

        assert result.exit_code == 1
        assert "Invalid restart file" in result.output


class TestPublishStatus:
    """Tests for `publish status`."""

    def test_summarizes_restart_file(self, store_root: Path, source_dir: Path, tmp_path: Path) -> None:
        restart = tmp_path / "restart.json"
        runner.invoke(app, ["publish", "tree", str(source_dir), DEST_ROOT, "--restart-file", str(restart)])

        result = runner.invoke(app, ["publish", "status", str(restart)])

        assert result.exit_code == 0, result.output
        assert "Published: 18" in result.output
        assert "Failed: 0" in result.output
        assert "Last updated:" in result.output

    def test_missing_restart_file(self, store_root: Path, tmp_path: Path) -> None:
        result = runner.invoke(app, ["publish", "status", str(tmp_path / "missing.json")])
        assert result.exit_code == 1
        assert "does not exist" in result.output


class TestPublishAnalysis:
    """Tests for `publish analysis`."""

    def _warehouse(self, tmp_path: Path, qc_passed: bool) -> Path:
        path = tmp_path / "warehouse.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "run_name": "run1",
                        "well": "B01",
                        "cell_index": 2,
                        "instrument_name": "84098",
                        "qc_passed": qc_passed,
                        "samples": [{"barcode": None, "sample_name": "sample1", "study_id": "1000"}],
                    }
                ]
            )
        )
        return path

    def test_publishes_cell(self, store_root: Path, tmp_path: Path) -> None:
        runfolder = tmp_path / "2_B01"
        runfolder.mkdir()
        (runfolder / "movie.hifi_reads.bam").write_bytes(b"BAM")
        (runfolder / "movie.hifi_reads.bam.md5").write_text(hashlib.md5(b"BAM").hexdigest() + "\n")  # noqa: S324
        warehouse = self._warehouse(tmp_path, qc_passed=True)

        result = runner.invoke(
            app,
            ["publish", "analysis", str(runfolder), "/archive/run1", "--warehouse", str(warehouse)]
            + ["--run", "run1", "--well", "B01"],
        )

        assert result.exit_code == 0, result.output
        assert "Published: 1" in result.output
        assert (store_root / "archive" / "run1" / "2_B01" / "movie.hifi_reads.bam").is_file()

    def test_qc_failure_exits_non_zero(self, store_root: Path, tmp_path: Path) -> None:
        runfolder = tmp_path / "2_B01"
        runfolder.mkdir()
        (runfolder / "movie.ccs_report.json").write_text("{}")
        warehouse = self._warehouse(tmp_path, qc_passed=False)

        result = runner.invoke(
            app,
            ["publish", "analysis", str(runfolder), "/archive/run1", "--warehouse", str(warehouse)]
            + ["--run", "run1", "--well", "B01"],
        )

        assert result.exit_code == 1
        assert "QC check failed" in result.output
