# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""Tests for the command-line interface."""

import json

import pytest
from click.testing import CliRunner

from meshfix import __version__
from meshfix.cli.main import main
from meshfix.core.mesh_ops import load_vertices_faces


@pytest.fixture
def runner():
    return CliRunner()


def json_payload(output: str) -> dict:
    """Parse the JSON document at the end of the command output."""
    return json.loads(output[output.index("{"):])


class TestRepairCommand:
    """Tests for 'meshfix repair'."""

    def test_repair_writes_output(self, runner, open_box, write_obj, tmp_path):
        """Repair closes the hole and writes the output file."""
        source = write_obj(*open_box)
        target = tmp_path / "fixed.obj"

        result = runner.invoke(main, ["repair", "-i", str(source), "-o", str(target)])

        assert result.exit_code == 0, result.output
        assert "Holes filled: 1 of 1" in result.output
        _, faces = load_vertices_faces(target)
        assert len(faces) == 12

    def test_all_flags(self, runner, pierced_box, write_obj, tmp_path):
        """The short flags combine."""
        source = write_obj(*pierced_box)
        target = tmp_path / "fixed.stl"

        result = runner.invoke(main, [
            "repair", "-i", str(source), "-o", str(target),
            "-k", "-s", "-r", "-f", "10", "5.0", "--workers", "2",
        ])

        assert result.exit_code == 0, result.output
        assert "Self-intersecting facets erased: 2" in result.output
        assert target.exists()

    def test_report(self, runner, open_box, write_obj, tmp_path):
        """--report writes a JSON summary."""
        source = write_obj(*open_box)
        report = tmp_path / "report.json"

        result = runner.invoke(main, [
            "repair", "-i", str(source), "-o", str(tmp_path / "fixed.ply"), "--report", str(report),
        ])

        assert result.exit_code == 0, result.output
        data = json.loads(report.read_text())
        assert data["repair"]["holes_filled"] == 1
        assert data["validation"]["is_watertight"] is True
        assert data["config"]["workers"] == 1

    def test_config_file(self, runner, open_box, write_obj, tmp_path):
        """A config file supplies options the flags leave unset."""
        source = write_obj(*open_box)
        config = tmp_path / "repair.json"
        config.write_text(json.dumps({"hole_filter": {"max_edges": 3, "max_diam": 10.0}}))

        result = runner.invoke(main, [
            "repair", "-i", str(source), "-o", str(tmp_path / "out.obj"), "-c", str(config),
        ])

        assert result.exit_code == 0, result.output
        assert "Holes filled: 0 of 1" in result.output

    def test_flag_overrides_config(self, runner, open_box, write_obj, tmp_path):
        """-f replaces the config file's hole filter."""
        source = write_obj(*open_box)
        config = tmp_path / "repair.json"
        config.write_text(json.dumps({"hole_filter": [3, 10.0]}))

        result = runner.invoke(main, [
            "repair", "-i", str(source), "-o", str(tmp_path / "out.obj"),
            "-c", str(config), "-f", "4", "10.0",
        ])

        assert result.exit_code == 0, result.output
        assert "Holes filled: 1 of 1" in result.output

    def test_bad_config(self, runner, open_box, write_obj, tmp_path):
        """An invalid config file exits with an error."""
        source = write_obj(*open_box)
        config = tmp_path / "repair.json"
        config.write_text(json.dumps({"workers": 0}))
        target = tmp_path / "out.obj"

        result = runner.invoke(main, ["repair", "-i", str(source), "-o", str(target), "-c", str(config)])

        assert result.exit_code == 1
        assert not target.exists()

    def test_malformed_hole_filter_config(self, runner, open_box, write_obj, tmp_path):
        """A hole filter given as a bare number exits with an error, not a traceback."""
        source = write_obj(*open_box)
        config = tmp_path / "repair.json"
        config.write_text(json.dumps({"hole_filter": 5}))
        target = tmp_path / "out.obj"

        result = runner.invoke(main, ["repair", "-i", str(source), "-o", str(target), "-c", str(config)])

        assert result.exit_code == 1
        assert "Invalid hole_filter" in result.output
        assert not target.exists()

    def test_unsupported_output(self, runner, open_box, write_obj, tmp_path):
        """An unknown output extension exits non-zero without writing."""
        source = write_obj(*open_box)
        target = tmp_path / "fixed.xyz"

        result = runner.invoke(main, ["repair", "-i", str(source), "-o", str(target)])

        assert result.exit_code == 1
        assert "Unsupported output format" in result.output
        assert not target.exists()

    def test_missing_output(self, runner, open_box, write_obj):
        """-o is required."""
        result = runner.invoke(main, ["repair", "-i", str(write_obj(*open_box))])

        assert result.exit_code != 0

    def test_missing_input(self, runner, tmp_path):
        """A missing input file is rejected."""
        result = runner.invoke(main, [
            "repair", "-i", str(tmp_path / "nope.obj"), "-o", str(tmp_path / "out.obj"),
        ])

        assert result.exit_code != 0
        assert not (tmp_path / "out.obj").exists()

    def test_zero_workers(self, runner, open_box, write_obj, tmp_path):
        """--workers must be positive."""
        result = runner.invoke(main, [
            "repair", "-i", str(write_obj(*open_box)), "-o", str(tmp_path / "out.obj"), "--workers", "0",
        ])

        assert result.exit_code == 1


class TestBenchmarkCommand:
    """Tests for 'meshfix benchmark'."""

    def test_benchmark(self, runner, triangle_soup, write_obj):
        """The detectors agree on a random soup."""
        result = runner.invoke(main, ["benchmark", "-i", str(write_obj(*triangle_soup))])

        assert result.exit_code == 0, result.output
        assert "Detectors agree" in result.output

    def test_benchmark_json(self, runner, box, write_obj):
        """--json prints the counts and timings."""
        result = runner.invoke(main, [
            "benchmark", "-i", str(write_obj(*box)), "--policy", "exclude-adjacent", "--json",
        ])

        assert result.exit_code == 0, result.output
        data = json_payload(result.output)
        assert data["grid_faces_out"] == 12
        assert data["agree"] is True


class TestDiagnoseCommand:
    """Tests for 'meshfix diagnose'."""

    def test_diagnose(self, runner, open_box, write_obj):
        """Diagnose reports the hole."""
        result = runner.invoke(main, ["diagnose", "-i", str(write_obj(*open_box))])

        assert result.exit_code == 0, result.output
        assert "Holes: 1" in result.output
        assert "Not watertight" in result.output

    def test_diagnose_json(self, runner, box, write_obj):
        """--json prints the diagnostics dictionary."""
        result = runner.invoke(main, ["diagnose", "-i", str(write_obj(*box)), "--json"])

        assert result.exit_code == 0, result.output
        data = json_payload(result.output)
        assert data["face_count"] == 12
        assert data["is_watertight"] is True


def test_version(runner):
    """--version prints the package version."""
    result = runner.invoke(main, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output
