"""
Tests for the CLI.
==================

Tests for:
- ask --url error reporting
"""

from unittest.mock import MagicMock, patch

import httpx
from typer.testing import CliRunner

runner = CliRunner()


class TestAskRemote:
    """Tests for asking a running server."""

    def _ask(self, stream_mock):
        from unipreply.cli.main import app

        with patch("httpx.stream", stream_mock):
            return runner.invoke(
                app, ["ask", "Is Yale need-blind?", "--url", "http://127.0.0.1:9"]
            )

    def test_connection_refused(self):
        stream = MagicMock(side_effect=httpx.ConnectError("Connection refused"))

        result = self._ask(stream)

        assert result.exit_code == 1
        assert "Error" in result.output
        assert "Connection refused" in result.output
        assert not isinstance(result.exception, httpx.HTTPError)

    def test_read_timeout(self):
        stream = MagicMock(side_effect=httpx.ReadTimeout("timed out"))

        result = self._ask(stream)

        assert result.exit_code == 1
        assert "timed out" in result.output

    def test_error_status(self):
        response = MagicMock(status_code=429)
        response.json.return_value = {"error": "Rate limit exceeded"}
        stream = MagicMock()
        stream.return_value.__enter__.return_value = response

        result = self._ask(stream)

        assert result.exit_code == 1
        assert "HTTP 429: Rate limit exceeded" in result.output
        assert stream.call_args.args[1] == "http://127.0.0.1:9/api/gemini/chat"
