"""Test CLI wiring."""
import pytest
from click.testing import CliRunner

import main
from ingestion.models import ChapterSource
from monitoring.progress_log import ChapterProgressLog


def test_commands_registered():
    """Test that every pipeline command is available."""
    expected = {
        "fetch", "segment", "generate", "generate-hard", "stage", "review-export",
        "review-import", "import", "render-sql", "cleanup", "check-quality",
        "probe-quota", "run", "status",
    }

    assert expected <= set(main.cli.commands)


def test_segment_prints_passes(monkeypatch, sample_source):
    """Test the segment command against a stored chapter."""
    monkeypatch.setattr(main, "load_chapter_for", lambda kanda, sarga: sample_source)

    result = CliRunner().invoke(main.cli, ["segment", "--sarga", "1"])

    assert result.exit_code == 0
    assert "(3 verses)" in result.output
    assert "1-1" in result.output
    assert "3-3" in result.output


def test_generate_requires_api_key(monkeypatch):
    """Test that generation stops early without credentials."""
    monkeypatch.setattr(main.config, "ANTHROPIC_API_KEY", None)

    result = CliRunner().invoke(main.cli, ["generate", "--sarga", "1"])

    assert result.exit_code == 0
    assert "ANTHROPIC_API_KEY" in result.output


def test_generate_hard_refuses_empty_chapter(monkeypatch, tmp_path):
    """Test that a chapter with no verses gets an error line instead of a traceback."""
    empty = ChapterSource(kanda="bala_kanda", sarga=9, source_url="https://example.test/9")
    monkeypatch.setattr(main.config, "ANTHROPIC_API_KEY", "test-key")
    monkeypatch.setattr(main, "load_chapter_for", lambda kanda, sarga: empty)
    monkeypatch.setattr(main, "ChapterProgressLog", lambda: ChapterProgressLog(tmp_path / "progress.json"))

    result = CliRunner().invoke(main.cli, ["generate-hard", "--sarga", "9"])

    assert result.exit_code == 0
    assert result.exception is None
    assert "no usable verses" in result.output
    assert ChapterProgressLog(tmp_path / "progress.json").step_status("bala_kanda_sarga_9", "hard") == "failed"


def test_generator_client_does_not_retry_on_its_own(monkeypatch):
    """Test that the SDK client leaves retries to the retry handler."""
    monkeypatch.setattr(main.config, "ANTHROPIC_API_KEY", "test-key")

    generator = main.build_generator()

    assert generator.llm.client.max_retries == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
