"""Tests for the Typer CLI commands."""

import json
import os
import subprocess
import sys
from pathlib import Path

from typer.testing import CliRunner

from market_agent.cli.main import app

runner = CliRunner()

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class TestInfoCommands:
    """Test status, tools and version."""

    def test_status(self):
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "Market Agent Status" in result.output
        assert "Gemini API" in result.output

    def test_tools(self):
        result = runner.invoke(app, ["tools"])

        assert result.exit_code == 0
        assert "getMarketData" in result.output
        assert "assessMarketRegime" in result.output

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestPredictCommand:
    """Test the predict command."""

    def test_predict_json(self):
        result = runner.invoke(app, ["predict", "AAPL", "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["success"] is True
        assert payload["subject"] == "AAPL"
        assert payload["runMetadata"]["strategy"] == "multi_timeframe_technical_sentiment"
        assert payload["prediction"]["macroTrend"]["direction"] == "bullish"

    def test_predict_with_preferences(self):
        result = runner.invoke(
            app,
            ["predict", "XAUUSD", "--strategy", "technical", "--macro", "1_month", "--json"],
        )

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["runMetadata"]["strategy"] == "technical_focused"
        assert payload["prediction"]["macroTrend"]["timeframe"] == "1_month"

    def test_predict_rich_output(self):
        result = runner.invoke(app, ["predict", "AAPL"])

        assert result.exit_code == 0
        assert "AAPL prediction" in result.output
        assert "Key Levels" in result.output

    def test_predict_rejects_long_symbol(self):
        result = runner.invoke(app, ["predict", "WAYTOOLONGSYMBOL"])

        assert result.exit_code == 2
        assert "Invalid request" in result.output

    def test_predict_rejects_unknown_strategy(self):
        result = runner.invoke(app, ["predict", "AAPL", "--strategy", "yolo"])

        assert result.exit_code == 2
        assert "strategy" in result.output


def run_cli(*args: str) -> subprocess.CompletedProcess:
    """Run the CLI in a fresh interpreter with production logging defaults."""
    env = {**os.environ, "LOG_FORMAT": "json", "LOG_LEVEL": "INFO"}
    return subprocess.run(
        [sys.executable, "-m", "market_agent.cli.main", *args],
        capture_output=True,
        text=True,
        env=env,
        cwd=PROJECT_ROOT,
        timeout=120,
        check=False,
    )


class TestProcessOutput:
    """Test stream separation when the CLI runs as a real process."""

    def test_predict_json_stdout_is_parseable(self):
        result = run_cli("predict", "AAPL", "--json")

        assert result.returncode == 0, result.stderr
        payload = json.loads(result.stdout)
        assert payload["subject"] == "AAPL"
        assert payload["prediction"]["keyLevels"]["breakoutLevel"] == 190.2

        # Logs still happen, as JSON lines on stderr
        records = [json.loads(line) for line in result.stderr.splitlines() if line.strip()]
        messages = [record["record"]["message"] for record in records if "record" in record]
        assert "Predict command invoked" in messages

    def test_log_level_override(self):
        result = run_cli("--log-level", "error", "predict", "AAPL", "--json")

        assert result.returncode == 0, result.stderr
        assert json.loads(result.stdout)["success"] is True
        assert result.stderr.strip() == ""

    def test_unknown_log_level_rejected(self):
        result = run_cli("--log-level", "chatty", "version")

        assert result.returncode == 2
        assert "Unknown log level" in result.stderr
