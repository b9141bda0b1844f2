"""Tests for the command line interface."""
from unittest.mock import AsyncMock, patch

import pytest
import yaml
from typer.testing import CliRunner

from storyintake import __version__
from storyintake.api import TransportError
from storyintake.cli.main import app, load_state, save_state
from storyintake.config import get_settings
from storyintake.models import ExtractionResult

runner = CliRunner()


@pytest.fixture(autouse=True)
def in_temp_dir(temp_dir, monkeypatch):
    """Keep session logs and config files out of the working tree."""
    monkeypatch.chdir(temp_dir)
    return temp_dir


class TestStateFile:
    def test_round_trip(self, state_file):
        data = {"title": "Moon Cat", "characters": [{"name": "Mia"}]}
        save_state(state_file, data)
        assert load_state(state_file) == data

    def test_missing_file(self, state_file):
        assert load_state(state_file) == {}

    def test_not_a_mapping(self, state_file):
        state_file.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_state(state_file)


class TestExtractCommand:
    """Test the extract command with the model call stubbed."""

    def test_saves_merged_record(self, state_file):
        result = ExtractionResult(data={"title": "Moon Cat"}, missing_fields=["story_arc", "setting"])

        with patch("storyintake.cli.main._run_extract", new_callable=AsyncMock, return_value=result) as run:
            outcome = runner.invoke(app, ["extract", "A cat on the moon", "--state", str(state_file)])

        assert outcome.exit_code == 0, outcome.output
        assert yaml.safe_load(state_file.read_text()) == {"title": "Moon Cat"}
        assert "story_arc" in outcome.output
        assert run.await_args.args[0] == "A cat on the moon"
        assert run.await_args.args[1] == {}

    def test_passes_current_state(self, state_file):
        save_state(state_file, {"title": "Moon Cat"})
        result = ExtractionResult(data={"title": "Moon Cat", "setting": "the moon"})

        with patch("storyintake.cli.main._run_extract", new_callable=AsyncMock, return_value=result) as run:
            outcome = runner.invoke(app, ["extract", "It is set on the moon", "-s", str(state_file), "-q", "Where?"])

        assert outcome.exit_code == 0, outcome.output
        assert run.await_args.args[1] == {"title": "Moon Cat"}
        assert run.await_args.args[3] == "Where?"

    def test_complete_story(self, state_file, complete_story):
        result = ExtractionResult(data=complete_story)

        with patch("storyintake.cli.main._run_extract", new_callable=AsyncMock, return_value=result):
            outcome = runner.invoke(app, ["extract", "done", "-s", str(state_file)])

        assert "All required story fields are filled" in outcome.output
        assert "age_range" in outcome.output

    def test_generation_error(self, state_file):
        save_state(state_file, {"title": "Moon Cat"})

        with patch("storyintake.cli.main._run_extract", new_callable=AsyncMock,
                   side_effect=TransportError("HTTP 400")):
            outcome = runner.invoke(app, ["extract", "hello", "-s", str(state_file)])

        assert outcome.exit_code == 1
        assert "HTTP 400" in outcome.output
        assert load_state(state_file) == {"title": "Moon Cat"}


class TestStatusCommand:
    def test_reports_missing(self, state_file):
        save_state(state_file, {"characters": [{"name": "Mia"}, {"description": "a dog"}]})

        outcome = runner.invoke(app, ["status", "-s", str(state_file)])

        assert outcome.exit_code == 0, outcome.output
        assert "characters[1].name" in outcome.output
        assert "title" in outcome.output

    def test_complete(self, state_file, complete_story):
        save_state(state_file, complete_story)
        outcome = runner.invoke(app, ["status", "-s", str(state_file)])
        assert "All required story fields are filled" in outcome.output


class TestConfigCommand:
    def test_show_key(self):
        outcome = runner.invoke(app, ["config", "summary_model"])
        assert outcome.exit_code == 0
        assert get_settings().summary_model in outcome.output

    def test_unknown_key(self):
        outcome = runner.invoke(app, ["config", "nope"])
        assert outcome.exit_code == 1


def test_version():
    outcome = runner.invoke(app, ["--version"])
    assert __version__ in outcome.output
