"""Tests for cli.py - CLI entry point."""

import json
from unittest.mock import MagicMock, patch

import click
import pytest
from click.testing import CliRunner

from classifier import QualityClassifier
from cli import clean_generated, cli_progress, format_slot, main, resolve_color
from conftest import QC_RUBRIC, SAFETY_RUBRIC, STRUCTURE_RUBRIC, StubGateway, make_png, safety_json, qc_json
from job_builder import AngleJob, ColorMatchJob, CustomReferenceJob, LocationJob, PresetJob, RegionEditJob
from models import ErrorType, ResultSlot, SlotState, SourceKind
from orchestrator import BatchOrchestrator, FallbackPolicy
from pipeline import StudioPipeline


def _stub_pipeline(gateway):
    """Factory standing in for StudioPipeline inside the CLI."""
    def factory(on_progress=None):
        classifier = QualityClassifier(gateway, qc_rubric=QC_RUBRIC, safety_rubric=SAFETY_RUBRIC,
                                       structure_rubric=STRUCTURE_RUBRIC)
        orchestrator = BatchOrchestrator(gateway, classifier, fallback_policy=FallbackPolicy(), job_timeout=0)
        return StudioPipeline(gateway=gateway, classifier=classifier, orchestrator=orchestrator,
                              on_progress=on_progress)
    return factory


@pytest.fixture
def base_image(temp_dir):
    path = temp_dir / "shirt.png"
    path.write_bytes(make_png())
    return path


class TestCleanGenerated:
    """Tests for the clean_generated function."""

    def test_clean_removes_batches(self, temp_dir):
        """Test that clean removes batch directories and stray files."""
        batches = temp_dir / "batches"
        (batches / "20250101_120000_preset").mkdir(parents=True)
        (batches / "20250101_120000_preset" / "batch.json").write_text("{}")
        (batches / "stray.txt").write_text("x")

        with patch("cli.paths") as mock_paths:
            mock_paths.batches_dir = batches
            count = clean_generated()

        assert count == 2
        assert list(batches.iterdir()) == []

    def test_clean_nonexistent_dir(self, temp_dir):
        """Test clean when the directory doesn't exist."""
        with patch("cli.paths") as mock_paths:
            mock_paths.batches_dir = temp_dir / "nonexistent"
            count = clean_generated()

        assert count == 0


class TestCliProgress:
    """Tests for the cli_progress callback."""

    def test_progress_with_message(self, capsys):
        """Test progress with a message."""
        cli_progress("generating", 1, 10, "Front: succeeded")
        captured = capsys.readouterr()
        assert "[1/10] Front: succeeded" in captured.out

    def test_progress_without_counts(self, capsys):
        """Test progress with just a message."""
        cli_progress("building_jobs", 0, 0, "Starting...")
        captured = capsys.readouterr()
        assert "Starting..." in captured.out

    def test_progress_empty_message(self, capsys):
        """Test progress with empty message is silent."""
        cli_progress("stage", 1, 10, "")
        captured = capsys.readouterr()
        assert captured.out == ""


class TestHelpers:
    """Tests for color resolution and slot formatting."""

    def test_resolve_palette_name(self):
        """Test palette names are case-insensitive."""
        assert resolve_color("navy") == "#000080"
        assert resolve_color("White") == "#FFFFFF"

    def test_resolve_hex(self):
        """Test hex codes are normalized."""
        assert resolve_color("abcdef") == "#ABCDEF"
        assert resolve_color("#123abc") == "#123ABC"

    def test_resolve_invalid(self):
        """Test that unknown colors are rejected."""
        with pytest.raises(click.BadParameter):
            resolve_color("sparkly")

    def test_format_failed_slot(self):
        """Test that failures show their type and message."""
        from gateway import failure_for
        slot = ResultSlot(id="1", source_kind=SourceKind.PRESET, source_label="Front",
                          state=SlotState.FAILED, failure=failure_for(ErrorType.QUOTA))
        line = format_slot(slot)
        assert line.startswith("Front: failed")
        assert "quota" in line


class TestCliCommands:
    """Tests for catalog and housekeeping commands."""

    def test_no_command_shows_usage(self):
        """Test that the group without a command prints usage."""
        result = CliRunner().invoke(main, [])
        assert "Usage" in result.output

    def test_presets(self):
        """Test listing presets."""
        result = CliRunner().invoke(main, ["presets"])
        assert result.exit_code == 0
        assert "POSE_COM_SAFE_001" in result.output
        assert "POSE_RECOVERY_002" in result.output

    def test_presets_family_json(self):
        """Test JSON output filtered by family."""
        result = CliRunner().invoke(main, ["presets", "--family", "RECOVERY", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [p["id"] for p in data] == ["POSE_RECOVERY_001", "POSE_RECOVERY_002"]

    def test_locations(self):
        """Test listing the location catalog."""
        result = CliRunner().invoke(main, ["locations"])
        assert result.exit_code == 0
        assert "korean_subway_station" in result.output
        assert "hanok_alley" in result.output

    def test_sample_color(self, temp_dir):
        """Test pigment sampling."""
        path = temp_dir / "navy.png"
        path.write_bytes(make_png(color=(0, 0, 128)))
        result = CliRunner().invoke(main, ["sample-color", str(path)])
        assert result.exit_code == 0
        assert result.output.strip() == "#000080"

    def test_sample_color_bad_image(self, temp_dir):
        """Test that an unreadable image exits non-zero."""
        path = temp_dir / "bad.png"
        path.write_bytes(b"nope")
        result = CliRunner().invoke(main, ["sample-color", str(path)])
        assert result.exit_code == 1

    def test_clean(self):
        """Test the clean command."""
        with patch("cli.clean_generated", return_value=5) as mock_clean:
            result = CliRunner().invoke(main, ["clean"])
        assert result.exit_code == 0
        assert "Cleaned 5 items" in result.output
        mock_clean.assert_called_once()

    def test_show(self, temp_dir):
        """Test printing a batch manifest."""
        (temp_dir / "batch.json").write_text(json.dumps({
            "batch_id": "abc",
            "label": "angle_variant",
            "counts": {"total": 1, "valid": 1, "discarded": 0},
            "slots": [{"source_label": "Front", "state": "succeeded", "qc": None, "file": "01_front.png"}],
        }))
        result = CliRunner().invoke(main, ["show", str(temp_dir)])
        assert result.exit_code == 0
        assert "Batch abc (angle_variant)" in result.output
        assert "Front: succeeded" in result.output

    def test_show_missing_manifest(self, temp_dir):
        """Test that a directory without batch.json fails."""
        result = CliRunner().invoke(main, ["show", str(temp_dir)])
        assert result.exit_code == 1

    def test_serve_starts_server(self):
        """Test that serve starts the web server."""
        mock_uvicorn = MagicMock()
        mock_app = MagicMock()

        with patch.dict("sys.modules", {
            "uvicorn": mock_uvicorn,
            "server.app": MagicMock(app=mock_app),
        }):
            result = CliRunner().invoke(main, ["serve", "--port", "9999"])

        assert "Starting web API server" in result.output
        mock_uvicorn.run.assert_called_once_with(mock_app, host="127.0.0.1", port=9999)


class TestGenerationCommands:
    """Tests for commands that build and run a batch."""

    @patch("cli.run_batch")
    def test_angles_default(self, mock_run, base_image):
        """Test that angles defaults to front, left35 and right35."""
        result = CliRunner().invoke(main, ["angles", "-i", str(base_image)])
        assert result.exit_code == 0
        config = mock_run.call_args.args[0]
        assert isinstance(config, AngleJob)
        assert config.angles == ["front", "left35", "right35"]
        assert config.constraints.aspect_ratio.value == "9:16"

    @patch("cli.run_batch")
    def test_presets_run_family(self, mock_run, base_image):
        """Test that a family expands into its preset ids."""
        result = CliRunner().invoke(main, [
            "presets-run", "-i", str(base_image),
            "--preset", "POSE_CROP_001", "--family", "RECOVERY", "--with-head",
        ])
        assert result.exit_code == 0
        config = mock_run.call_args.args[0]
        assert isinstance(config, PresetJob)
        assert config.preset_ids == ["POSE_CROP_001", "POSE_RECOVERY_001", "POSE_RECOVERY_002"]
        assert config.headless is False

    @patch("cli.run_batch")
    def test_smart_pose_policy(self, mock_run, base_image, temp_dir):
        """Test that fallback flags become a policy."""
        ref = temp_dir / "ref.png"
        ref.write_bytes(make_png())
        result = CliRunner().invoke(main, [
            "smart-pose", "-i", str(base_image), "-r", str(ref), "--strict",
        ])
        assert result.exit_code == 0
        config = mock_run.call_args.args[0]
        assert isinstance(config, CustomReferenceJob)
        assert mock_run.call_args.kwargs["fallback_policy"] == FallbackPolicy(allow_fallback=True, strict_mode=True)

    @patch("cli.run_batch")
    def test_region_edit(self, mock_run, base_image):
        """Test region locks from the command line."""
        result = CliRunner().invoke(main, [
            "region-edit", "-i", str(base_image), "--lock", "top", "--lock", "face", "--shoes", "remove",
        ])
        assert result.exit_code == 0
        config = mock_run.call_args.args[0]
        assert isinstance(config, RegionEditJob)
        assert config.locked_regions == {"top", "face"}
        assert config.shoes_option == "remove"

    @patch("cli.run_batch")
    def test_recolor(self, mock_run, base_image, temp_dir):
        """Test picker and reference colors together."""
        ref = temp_dir / "ref.png"
        ref.write_bytes(make_png())
        result = CliRunner().invoke(main, [
            "recolor", "-i", str(base_image),
            "--upper", "Navy", "--outer-ref", str(ref), "--outer-from", "lower_garment",
        ])
        assert result.exit_code == 0
        config = mock_run.call_args.args[0]
        assert isinstance(config, ColorMatchJob)
        assert config.regions["upper_garment"].target_color == "#000080"
        assert config.regions["outerwear"].mode == "reference"
        assert config.regions["outerwear"].source_region == "lower_garment"
        assert "lower_garment" not in config.regions

    @patch("cli.run_batch")
    def test_ugc_locations(self, mock_run, base_image):
        """Test that repeated --location options become the location list."""
        result = CliRunner().invoke(main, [
            "ugc", "-i", str(base_image), "-l", "cafe_window", "-l", "rooftop", "--gender", "Male",
        ])
        assert result.exit_code == 0
        config = mock_run.call_args.args[0]
        assert isinstance(config, LocationJob)
        assert config.location_ids == ["cafe_window", "rooftop"]
        assert config.gender == "Male"

    def test_ugc_unknown_location(self, base_image):
        """Test that an unknown location is a usage error."""
        result = CliRunner().invoke(main, ["ugc", "-i", str(base_image), "-l", "moon"])
        assert result.exit_code != 0
        assert "moon" in result.output

    def test_recolor_bad_color(self, base_image):
        """Test that an unknown color is a usage error."""
        result = CliRunner().invoke(main, ["recolor", "-i", str(base_image), "--upper", "sparkly"])
        assert result.exit_code != 0
        assert "sparkly" in result.output

    def test_missing_image(self):
        """Test that the base image is required."""
        result = CliRunner().invoke(main, ["commercial"])
        assert result.exit_code != 0
        assert "--image" in result.output


class TestRunBatch:
    """Tests for full batch execution via the CLI."""

    def test_commercial_end_to_end(self, base_image, temp_dir):
        """Test that a batch runs and saves its images."""
        gateway = StubGateway()
        output = temp_dir / "out"
        with patch("cli.StudioPipeline", side_effect=_stub_pipeline(gateway)):
            result = CliRunner().invoke(main, ["commercial", "-i", str(base_image), "-n", "2", "-o", str(output)])

        assert result.exit_code == 0, result.output
        assert "Valid: 2" in result.output
        assert (output / "batch.json").exists()
        assert (output / "01_variation_1.png").exists()
        assert len(gateway.generate_calls) == 2

    def test_all_failed_exits_nonzero(self, base_image, temp_dir):
        """Test that a batch with nothing kept exits with 1."""
        gateway = StubGateway()
        gateway.errors["Commercial"] = RuntimeError("429 quota exceeded")
        with patch("cli.StudioPipeline", side_effect=_stub_pipeline(gateway)):
            result = CliRunner().invoke(main, [
                "commercial", "-i", str(base_image), "-n", "1", "-o", str(temp_dir / "out"),
            ])

        assert result.exit_code == 1
        assert "FAIL" in result.output
        assert "quota" in result.output

    def test_qc_rejected_exits_nonzero(self, base_image, temp_dir):
        """Test that an image rated NOT_RECOMMENDED is listed as rejected and not saved."""
        gateway = StubGateway(responses={QC_RUBRIC: qc_json(score=35)})
        output = temp_dir / "out"
        with patch("cli.StudioPipeline", side_effect=_stub_pipeline(gateway)):
            result = CliRunner().invoke(main, ["commercial", "-i", str(base_image), "-n", "1", "-o", str(output)])

        assert result.exit_code == 1
        assert "REJ" in result.output
        assert "Valid: 0  Discarded: 1" in result.output
        assert not (output / "01_variation_1.png").exists()

    def test_ugc_end_to_end(self, base_image, temp_dir):
        """Test one shot per location, unscored."""
        gateway = StubGateway()
        output = temp_dir / "out"
        with patch("cli.StudioPipeline", side_effect=_stub_pipeline(gateway)):
            result = CliRunner().invoke(main, [
                "ugc", "-i", str(base_image), "-l", "rooftop", "-l", "park_path", "-o", str(output),
            ])

        assert result.exit_code == 0, result.output
        assert (output / "01_rooftop.png").exists()
        assert (output / "02_park_path.png").exists()
        assert gateway.analyze_calls == []

    def test_invalid_config_exits_nonzero(self, base_image, temp_dir):
        """Test that a build error is printed and exits with 1."""
        gateway = StubGateway()
        with patch("cli.StudioPipeline", side_effect=_stub_pipeline(gateway)):
            result = CliRunner().invoke(main, ["recolor", "-i", str(base_image)])

        assert result.exit_code == 1
        assert "Enable at least one garment region" in result.output

    def test_smart_pose_fallback(self, base_image, temp_dir):
        """Test that a dangerous reference is reported as a fallback."""
        gateway = StubGateway(responses={SAFETY_RUBRIC: safety_json("DANGER"), QC_RUBRIC: qc_json()})
        ref = temp_dir / "ref.png"
        ref.write_bytes(make_png())
        with patch("cli.StudioPipeline", side_effect=_stub_pipeline(gateway)):
            result = CliRunner().invoke(main, [
                "smart-pose", "-i", str(base_image), "-r", str(ref), "-o", str(temp_dir / "out"),
            ])

        assert result.exit_code == 0, result.output
        assert "(fallback pose)" in result.output
