"""
Unit tests for the command line interface.

This module drives gguf_launcher.cli through click's CliRunner with the
launcher, download and system helpers mocked out.
"""

from unittest.mock import Mock, patch

import psutil
import pytest

from gguf_launcher.cli import SMOKE_TEST_PROMPT, cli
from gguf_launcher.errors import InsufficientDiskSpaceError, PortInUseError
from gguf_launcher.model_manager import DownloadResult


def _invoke(cli_runner, config_file, args, **kwargs):
    return cli_runner.invoke(cli, ["--config", str(config_file)] + args, **kwargs)


class TestQueryCommand:
    """Test the query command."""

    @pytest.mark.unit
    @patch("gguf_launcher.cli.run_query")
    def test_prompt_argument(self, mock_run_query, cli_runner, config_file):
        """Test the prompt argument and overrides reach run_query."""
        mock_run_query.return_value = 0

        result = _invoke(
            cli_runner, config_file, ["query", "--max-tokens", "100", "--temp", "0.2", "--json", "Write a haiku"]
        )

        assert result.exit_code == 0
        settings, prompt = mock_run_query.call_args.args
        assert prompt == "Write a haiku"
        assert settings.max_tokens == 100
        assert settings.temperature == 0.2
        assert mock_run_query.call_args.kwargs["json_mode"] is True

    @pytest.mark.unit
    @patch("gguf_launcher.cli.run_query")
    def test_prompt_from_stdin(self, mock_run_query, cli_runner, config_file):
        """Test the prompt can be piped on stdin."""
        mock_run_query.return_value = 0

        result = _invoke(cli_runner, config_file, ["query"], input="What is 2+2?\n")

        assert result.exit_code == 0
        assert mock_run_query.call_args.args[1] == "What is 2+2?"

    @pytest.mark.unit
    @patch("gguf_launcher.cli.run_query")
    @patch("gguf_launcher.cli.sys")
    def test_prompt_argument_ignores_open_stdin(self, mock_sys, mock_run_query, cli_runner, config_file):
        """Test an explicit prompt never reads stdin, even when it is a pipe."""
        mock_run_query.return_value = 0
        mock_sys.stdin.isatty.return_value = False
        mock_sys.stdin.read.side_effect = AssertionError("stdin must not be read")

        result = _invoke(cli_runner, config_file, ["query", "What is 2+2?"])

        assert result.exit_code == 0
        mock_sys.stdin.read.assert_not_called()
        assert mock_run_query.call_args.args[1] == "What is 2+2?"

    @pytest.mark.unit
    @patch("gguf_launcher.cli.run_query")
    def test_no_prompt(self, mock_run_query, cli_runner, config_file):
        """Test a missing prompt is a usage error with non-zero exit."""
        result = _invoke(cli_runner, config_file, ["query"], input="")

        assert result.exit_code == 1
        assert "No prompt provided" in result.output
        mock_run_query.assert_not_called()

    @pytest.mark.unit
    @patch("gguf_launcher.cli.run_query")
    def test_exit_code_propagates(self, mock_run_query, cli_runner, config_file):
        """Test the engine's exit code becomes the CLI's exit code."""
        mock_run_query.return_value = 7

        result = _invoke(cli_runner, config_file, ["query", "hi"])

        assert result.exit_code == 7

    @pytest.mark.unit
    @patch("gguf_launcher.cli.run_query")
    def test_cpu_only(self, mock_run_query, cli_runner, temp_dir):
        """Test --cpu-only forces zero GPU layers."""
        mock_run_query.return_value = 0

        _invoke(cli_runner, temp_dir / "missing.env", ["query", "--cpu-only", "hi"])

        assert mock_run_query.call_args.args[0].gpu_layers == 0


class TestServeCommand:
    """Test the serve command."""

    @pytest.mark.unit
    @patch("gguf_launcher.cli.serve")
    def test_overrides(self, mock_serve, cli_runner, config_file):
        """Test host/port/verbose overrides reach the launcher."""
        mock_serve.return_value = 0

        result = _invoke(cli_runner, config_file, ["serve", "--port", "9001", "--host", "0.0.0.0", "--verbose"])

        assert result.exit_code == 0
        settings = mock_serve.call_args.args[0]
        assert settings.server_port == 9001
        assert settings.server_host == "0.0.0.0"
        assert settings.server_verbose is True
        assert "http://0.0.0.0:9001/v1/chat/completions" in result.output

    @pytest.mark.unit
    @patch("gguf_launcher.cli.serve")
    def test_port_in_use(self, mock_serve, cli_runner, config_file):
        """Test a bound port is reported with a non-zero exit."""
        mock_serve.side_effect = PortInUseError("Port 8080 is already in use", "Stop the existing server")

        result = _invoke(cli_runner, config_file, ["serve"])

        assert result.exit_code == 1
        assert "Port 8080 is already in use" in result.output
        assert "Stop the existing server" in result.output


class TestChatCommand:
    """Test the chat command."""

    @pytest.mark.unit
    @patch("gguf_launcher.cli.run_chat")
    def test_chat(self, mock_run_chat, cli_runner, config_file):
        """Test chat prints the banner and runs the session."""
        mock_run_chat.return_value = 0

        result = _invoke(cli_runner, config_file, ["chat"])

        assert result.exit_code == 0
        assert "Larger-than-RAM LLM Chat" in result.output
        assert "Context:     2048 tokens" in result.output
        mock_run_chat.assert_called_once()


class TestDownloadCommand:
    """Test the download command."""

    @pytest.mark.unit
    @patch("gguf_launcher.cli.download_model")
    @patch("gguf_launcher.cli.hf_logged_in_user")
    @patch("gguf_launcher.cli.check_disk_space")
    @patch("gguf_launcher.cli.require_download_client")
    def test_download_success(
        self, mock_client, mock_disk, mock_user, mock_download, cli_runner, config_file, temp_dir
    ):
        """Test a successful download reports the path and shard count."""
        mock_disk.return_value = 200.0
        mock_user.return_value = "alice"
        first_shard = temp_dir / "models" / "Q4_K_M" / "x-00001-of-00002.gguf"
        mock_download.return_value = DownloadResult(path=first_shard, shard_count=2)

        result = _invoke(cli_runner, config_file, ["download"])

        assert result.exit_code == 0
        assert "Logged in as: alice" in result.output
        assert "Shards: 2" in result.output
        assert mock_download.call_args.args[1] == config_file

    @pytest.mark.unit
    @patch("gguf_launcher.cli.download_model")
    @patch("gguf_launcher.cli.check_disk_space")
    @patch("gguf_launcher.cli.require_download_client")
    def test_insufficient_disk_declined(self, mock_client, mock_disk, mock_download, cli_runner, config_file):
        """Test declining the disk-space confirmation aborts."""
        mock_disk.side_effect = InsufficientDiskSpaceError("Insufficient disk space", 10, 75)

        result = _invoke(cli_runner, config_file, ["download"], input="n\n")

        assert result.exit_code == 1
        assert "Continue anyway?" in result.output
        mock_download.assert_not_called()

    @pytest.mark.unit
    @patch("gguf_launcher.cli.download_model")
    @patch("gguf_launcher.cli.hf_login")
    @patch("gguf_launcher.cli.hf_logged_in_user")
    @patch("gguf_launcher.cli.check_disk_space")
    @patch("gguf_launcher.cli.require_download_client")
    def test_not_logged_in_skips_login(
        self, mock_client, mock_disk, mock_user, mock_login, mock_download, cli_runner, config_file, temp_dir
    ):
        """Test declining login continues anonymously."""
        mock_disk.return_value = 200.0
        mock_user.return_value = None
        mock_download.return_value = DownloadResult(path=temp_dir / "m.gguf", skipped=True)

        result = _invoke(cli_runner, config_file, ["download"], input="n\n")

        assert result.exit_code == 0
        mock_login.assert_not_called()
        assert "Using existing model" in result.output


class TestOtherCommands:
    """Test stop, test, clean, config and error handling."""

    @pytest.mark.unit
    @patch("gguf_launcher.cli.stop_servers")
    def test_stop(self, mock_stop, cli_runner, config_file):
        """Test stop reports the number of stopped servers."""
        mock_stop.return_value = 1
        result = _invoke(cli_runner, config_file, ["stop"])
        assert "Stopped 1 server process(es)" in result.output

        mock_stop.return_value = 0
        result = _invoke(cli_runner, config_file, ["stop"])
        assert "No server running" in result.output

    @pytest.mark.unit
    @patch("gguf_launcher.launcher.find_server_processes")
    def test_stop_permission_denied(self, mock_find, mock_psutil, cli_runner, config_file):
        """Test a server owned by another user is skipped without crashing."""
        mock_find.return_value = [Mock(pid=4242)]
        mock_psutil.side_effect = psutil.AccessDenied(4242)

        result = _invoke(cli_runner, config_file, ["stop"])

        assert result.exit_code == 0
        assert result.exception is None
        assert "Permission denied" in result.output
        assert "No server running" in result.output

    @pytest.mark.unit
    @patch("gguf_launcher.cli.run_query")
    def test_smoke_test(self, mock_run_query, cli_runner, config_file):
        """Test 'test' runs the fixed smoke prompt."""
        mock_run_query.return_value = 0

        result = _invoke(cli_runner, config_file, ["test"])

        assert result.exit_code == 0
        assert mock_run_query.call_args.args[1] == SMOKE_TEST_PROMPT

    @pytest.mark.unit
    def test_clean(self, cli_runner, config_file, sample_shards):
        """Test clean removes downloaded files after confirmation."""
        result = _invoke(cli_runner, config_file, ["clean"], input="y\n")

        assert result.exit_code == 0
        assert not sample_shards.exists()
        assert not sample_shards.parent.exists()

    @pytest.mark.unit
    def test_clean_declined(self, cli_runner, config_file, sample_shards):
        """Test declining keeps the files."""
        result = _invoke(cli_runner, config_file, ["clean"], input="n\n")

        assert result.exit_code == 1
        assert sample_shards.exists()

    @pytest.mark.unit
    @patch("gguf_launcher.cli.click.edit")
    def test_config_creates_file(self, mock_edit, cli_runner, temp_dir):
        """Test config creates the file and opens the editor."""
        target = temp_dir / "new.env"

        result = _invoke(cli_runner, target, ["config"])

        assert result.exit_code == 0
        assert target.exists()
        mock_edit.assert_called_once_with(filename=str(target))

    @pytest.mark.unit
    def test_invalid_config_reported(self, cli_runner, temp_dir):
        """Test configuration errors are aggregated and exit non-zero."""
        bad = temp_dir / "bad.env"
        bad.write_text("MODEL_QUANT=nope\nGPU_LAYERS=-1\n")

        result = _invoke(cli_runner, bad, ["chat"])

        assert result.exit_code == 1
        assert "MODEL_QUANT" in result.output
        assert "GPU_LAYERS" in result.output

    @pytest.mark.unit
    @patch("gguf_launcher.cli.server_health")
    @patch("gguf_launcher.cli.engine_version")
    def test_info(self, mock_version, mock_health, cli_runner, config_file, sample_shards):
        """Test info prints system, model and configuration sections."""
        mock_version.return_value = None
        mock_health.return_value = "ok"

        result = _invoke(cli_runner, config_file, ["info"])

        assert result.exit_code == 0
        assert "System Information" in result.output
        assert "Not installed" in result.output
        assert sample_shards.name in result.output
        assert "RAM_LIMIT: 8G" in result.output
        assert "Health: ok" in result.output
