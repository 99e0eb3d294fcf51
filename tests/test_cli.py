from pathlib import Path

import pytest
from typer.testing import CliRunner

from platebot import __version__
from platebot.cli import app
from platebot.config import ENV_BOT_TOKEN

runner = CliRunner()


def test_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_run_reports_config_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv(ENV_BOT_TOKEN, raising=False)
    config_file = tmp_path / "platebot.toml"
    config_file.write_text('recognizer_url = "http://a"\nstorage_url = "http://b"')

    result = runner.invoke(app, ["run", "--config", str(config_file)])

    assert result.exit_code == 1
    assert "Missing `bot_token`" in result.output


def test_run_serves_bot(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_file = tmp_path / "platebot.toml"
    config_file.write_text(
        'bot_token = "1:x"\nrecognizer_url = "http://a"\nstorage_url = "http://b"\n'
        'log_level = "INFO"'
    )
    served: list[object] = []

    async def fake_serve(bot) -> None:
        served.append(bot)

    monkeypatch.setattr("platebot.cli._serve", fake_serve)

    result = runner.invoke(app, ["run", "--config", str(config_file)])

    assert result.exit_code == 0, result.output
    assert len(served) == 1
