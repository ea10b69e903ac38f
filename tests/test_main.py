"""
Tests for the command line entry point.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from opentelemetry.metrics import NoOpMeter

from sentiflow import main
from sentiflow.config.settings import Settings


class TestMain:
    def test_version(self, capsys):
        assert main.main(["--version"]) == 0
        assert "sentiflow v0.1.0" in capsys.readouterr().out

    @patch("sentiflow.main.uvicorn")
    @patch("sentiflow.main.setup_metrics")
    @patch("sentiflow.main.setup_tracing")
    @patch("sentiflow.main.setup_logging")
    def test_serves_with_settings(self, mock_logging, mock_tracing, mock_metrics, mock_uvicorn):
        assert main.main(["--port", "9001"]) == 0

        mock_logging.assert_called_once()
        mock_tracing.assert_called_once()
        mock_metrics.assert_called_once()
        assert not isinstance(mock_metrics.call_args.args[0], NoOpMeter)
        mock_uvicorn.run.assert_called_once()
        kwargs = mock_uvicorn.run.call_args.kwargs
        assert kwargs["port"] == 9001
        assert kwargs["host"] == "0.0.0.0"
        assert mock_uvicorn.run.call_args.args[0] == "sentiflow.api.server:app"

    @patch("sentiflow.main.uvicorn")
    @patch("sentiflow.main.setup_metrics")
    @patch("sentiflow.main.setup_tracing")
    @patch("sentiflow.main.setup_logging")
    @patch("sentiflow.main.get_settings")
    def test_metrics_disabled(self, mock_settings, mock_logging, mock_tracing, mock_metrics, mock_uvicorn):
        mock_settings.return_value = Settings(observability={"enable_metrics": False})

        assert main.main([]) == 0

        mock_metrics.assert_not_called()

    @patch("sentiflow.main.setup_tracing")
    @patch("sentiflow.main.setup_logging")
    @patch("sentiflow.main.run_once", new_callable=AsyncMock)
    def test_execute_prints_result(self, mock_run_once, mock_logging, mock_tracing, capsys):
        mock_run_once.return_value = {"status": "SUCCEEDED", "output": {"age": "34"}}

        assert main.main(["--execute", '{"age": "34"}']) == 0

        mock_run_once.assert_awaited_once_with({"age": "34"})
        assert json.loads(capsys.readouterr().out)["status"] == "SUCCEEDED"

    @patch("sentiflow.main.setup_tracing")
    @patch("sentiflow.main.setup_logging")
    @patch("sentiflow.main.run_once", new_callable=AsyncMock)
    def test_execute_failure_exit_code(self, mock_run_once, mock_logging, mock_tracing):
        mock_run_once.return_value = {"status": "TIMED_OUT", "output": None}

        assert main.main(["--execute", '{"age": "34"}']) == 1

    @pytest.mark.parametrize("payload", ["{not json", "[1, 2]"])
    @patch("sentiflow.main.setup_tracing")
    @patch("sentiflow.main.setup_logging")
    def test_execute_rejects_bad_payload(self, mock_logging, mock_tracing, payload):
        with pytest.raises(SystemExit) as exc_info:
            main.main(["--execute", payload])

        assert exc_info.value.code == 2

    @patch("sentiflow.main.main", side_effect=RuntimeError("port in use"))
    def test_cli_main_reports_startup_failure(self, mock_main, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main.cli_main()

        assert exc_info.value.code == 1
        assert "port in use" in capsys.readouterr().err
