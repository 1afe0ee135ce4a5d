# tests/unit/test_cli.py
import json

from typer.testing import CliRunner

from apps.recorder_cli import app

runner = CliRunner()


def _write_config(tmp_path, doc):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


def test_check_lists_windows(tmp_path):
    path = _write_config(tmp_path, {
        "sources": [{
            "name": "Radio",
            "captureURL": "https://stream.example.com/radio.m3u8",
            "windows": [{"dayOfWeek": "Monday", "startTime": "20:00", "endTime": "21:00"}],
        }],
        "outputDirectory": str(tmp_path / "rec"),
    })

    result = runner.invoke(app, ["check", "--config", str(path)])

    assert result.exit_code == 0, result.output
    assert "1 source(s)" in result.output
    assert "Radio" in result.output
    assert "Monday" in result.output
    assert "20:00-21:00" in result.output
    assert "next:" in result.output


def test_check_rejects_invalid_config(tmp_path):
    path = _write_config(tmp_path, {
        "sources": [{
            "name": "Radio",
            "captureURL": "x",
            "windows": [{"dayOfWeek": "Monday", "startTime": "21:00", "endTime": "20:00"}],
        }],
    })

    result = runner.invoke(app, ["check", "--config", str(path)])

    assert result.exit_code == 2


def test_run_with_missing_config_exits(tmp_path):
    result = runner.invoke(app, ["run", "--config", str(tmp_path / "missing.json")])
    assert result.exit_code == 2
