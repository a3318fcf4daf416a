"""
Unit tests for the command-line interface.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from ruuvi_rest.ble.scanner import ScannerInitError
from ruuvi_rest.cli.commands import EXIT_CONFIGURATION_ERROR, EXIT_RUNTIME_ERROR, cli
from ruuvi_rest.publisher.options import PublishMode
from ruuvi_rest.publisher.sink import ConsolePublishSink, RestPublishSink
from tests.fixtures.sensor_data import KNOWN_MAC, UNKNOWN_MAC


ENDPOINT = "https://collector.example.com/api/ruuvi"
FINAL_STATS = {"records_published": 7, "records_dropped": 2}


@pytest.fixture
def runner(clean_environment):
    return CliRunner()


@pytest.fixture
def agent_runner():
    with patch("ruuvi_rest.cli.commands.setup_logging"), \
            patch("ruuvi_rest.cli.commands.AgentRunner") as runner_cls:
        runner_cls.return_value.run = AsyncMock(return_value=FINAL_STATS)
        yield runner_cls


class TestPublishRest:
    """Test suite for the publish-rest command."""

    def test_missing_endpoint_is_configuration_error(self, runner, agent_runner):
        result = runner.invoke(cli, ["publish-rest"])

        assert result.exit_code == EXIT_CONFIGURATION_ERROR
        assert "Configuration Error" in result.output
        agent_runner.assert_not_called()

    def test_runs_agent_with_options(self, runner, agent_runner):
        result = runner.invoke(cli, [
            "publish-rest", ENDPOINT, "--mode", "SIZE", "--batch-size", "10",
            "--max-batch-age", "30", "--known-devices", "--retries", "2", "--sample-rate", "15",
        ])

        assert result.exit_code == 0, result.output
        _, options, sink = agent_runner.call_args.args
        assert options.endpoint_url == ENDPOINT
        assert options.publish_mode is PublishMode.SIZE
        assert options.batch_size == 10
        assert options.max_batch_age == 30
        assert options.known_devices_only is True
        assert options.trust_ssl is False
        assert options.retry_attempts == 2
        assert options.sample_rate == 15
        assert isinstance(sink, RestPublishSink)
        assert "7 records published" in result.output

    def test_endpoint_from_environment(self, runner, agent_runner, monkeypatch):
        monkeypatch.setenv("RUUVI_REST_ENDPOINT_URL", ENDPOINT)
        monkeypatch.setenv("RUUVI_REST_PUBLISH_MODE", "time")
        monkeypatch.setenv("RUUVI_REST_AVERAGE_INTERVAL", "30")
        monkeypatch.setenv("RUUVI_REST_SAMPLE_RATE", "60")

        result = runner.invoke(cli, ["publish-rest"])

        assert result.exit_code == 0, result.output
        options = agent_runner.call_args.args[1]
        assert options.endpoint_url == ENDPOINT
        assert options.publish_mode is PublishMode.TIME
        assert options.average_interval == 30
        assert options.sample_rate == 60

    def test_batch_age_in_time_mode_is_rejected(self, runner, agent_runner):
        result = runner.invoke(cli, ["publish-rest", ENDPOINT, "--mode", "time", "--max-batch-age", "30"])

        assert result.exit_code == EXIT_CONFIGURATION_ERROR
        agent_runner.assert_not_called()

    def test_invalid_endpoint(self, runner, agent_runner):
        result = runner.invoke(cli, ["publish-rest", "collector.local"])

        assert result.exit_code == EXIT_CONFIGURATION_ERROR

    def test_unknown_mode_is_usage_error(self, runner, agent_runner):
        result = runner.invoke(cli, ["publish-rest", ENDPOINT, "--mode", "sometimes"])

        assert result.exit_code == 2
        assert "sometimes" in result.output

    def test_scanner_failure_exits_with_runtime_error(self, runner, agent_runner):
        agent_runner.return_value.run = AsyncMock(side_effect=ScannerInitError("no adapter"))

        result = runner.invoke(cli, ["publish-rest", ENDPOINT])

        assert result.exit_code == EXIT_RUNTIME_ERROR
        assert "no adapter" in result.output

    def test_devices_file_option(self, runner, agent_runner, devices_file):
        result = runner.invoke(cli, ["publish-rest", ENDPOINT, "--devices-file", str(devices_file)])

        assert result.exit_code == 0, result.output
        assert agent_runner.call_args.kwargs["registry"].devices_file == devices_file


class TestPublishConsole:
    """Test suite for the publish-console command."""

    def test_runs_without_endpoint(self, runner, agent_runner):
        result = runner.invoke(cli, [
            "publish-console", "--mode", "time", "--average-interval", "5", "--sample-rate", "2",
        ])

        assert result.exit_code == 0, result.output
        _, options, sink = agent_runner.call_args.args
        assert options.publish_mode is PublishMode.TIME
        assert options.average_interval == 5
        assert options.sample_rate == 2
        assert isinstance(sink, ConsolePublishSink)


class TestDevicesCommands:
    """Test suite for the devices command group."""

    def test_list(self, runner, devices_file):
        result = runner.invoke(cli, ["devices", "--devices-file", str(devices_file), "list"])

        assert result.exit_code == 0, result.output
        assert KNOWN_MAC in result.output
        assert "living-room" in result.output

    def test_list_empty(self, runner, tmp_path):
        result = runner.invoke(cli, ["devices", "--devices-file", str(tmp_path / "none.json"), "list"])

        assert result.exit_code == 0
        assert "No devices registered" in result.output

    def test_add_and_remove(self, runner, devices_file):
        added = runner.invoke(cli, [
            "devices", "--devices-file", str(devices_file), "add", UNKNOWN_MAC.lower(),
            "--id", "garage", "--name", "Garage",
        ])

        assert added.exit_code == 0, added.output
        saved = json.loads(devices_file.read_text())
        assert UNKNOWN_MAC in {d["mac_address"] for d in saved["devices"]}

        removed = runner.invoke(cli, ["devices", "--devices-file", str(devices_file), "remove", UNKNOWN_MAC])

        assert removed.exit_code == 0, removed.output
        saved = json.loads(devices_file.read_text())
        assert UNKNOWN_MAC not in {d["mac_address"] for d in saved["devices"]}

    def test_add_duplicate_fails(self, runner, devices_file):
        result = runner.invoke(cli, ["devices", "--devices-file", str(devices_file), "add", KNOWN_MAC, "--id", "again"])

        assert result.exit_code == EXIT_RUNTIME_ERROR
        assert "already exists" in result.output

    def test_remove_unknown_fails(self, runner, devices_file):
        result = runner.invoke(cli, ["devices", "--devices-file", str(devices_file), "remove", UNKNOWN_MAC])

        assert result.exit_code == EXIT_RUNTIME_ERROR

    def test_invalid_devices_file(self, runner, tmp_path):
        path = tmp_path / "devices.json"
        path.write_text("{broken")

        result = runner.invoke(cli, ["devices", "--devices-file", str(path), "list"])

        assert result.exit_code == EXIT_CONFIGURATION_ERROR
