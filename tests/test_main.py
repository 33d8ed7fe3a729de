"""Tests for main.py."""

import logging
from pathlib import Path
from unittest.mock import patch

from conftest import add_repository_responses
from errors import TransportFailure
from main import main, parse_args
from models import BackendKind, FailedServer, ServerRole


class TestParseArgs:
    """Tests for parse_args()."""

    def test_default_values(self):
        """Uses default values when no args provided."""
        args = parse_args([])

        assert args.config is None
        assert args.server is None
        assert args.type == "stratum1"
        assert args.backend == "autodetect"
        assert args.repository == []
        assert args.timeout is None
        assert args.concurrency is None

    def test_all_args_provided(self):
        """Parses all provided arguments."""
        args = parse_args([
            "-c", "/path/to/config.toml",
            "-s", "cvmfs.example.org",
            "--type", "stratum0",
            "--backend", "s3",
            "-r", "a.example.org",
            "-r", "b.example.org",
            "-t", "2.5",
            "-j", "10",
        ])

        assert args.config == Path("/path/to/config.toml")
        assert args.server == "cvmfs.example.org"
        assert args.type == "stratum0"
        assert args.backend == "s3"
        assert args.repository == ["a.example.org", "b.example.org"]
        assert args.timeout == 2.5
        assert args.concurrency == 10

    def test_verbose_flag(self):
        """Parses verbose flag."""
        args = parse_args(["-v"])

        assert args.verbose is True
        assert args.quiet is False

    def test_quiet_flag(self):
        """Parses quiet flag."""
        args = parse_args(["-q"])

        assert args.quiet is True
        assert args.verbose is False

    def test_log_file_arg(self):
        """Parses log file argument."""
        args = parse_args(["--log-file", "/tmp/test.log"])

        assert args.log_file == Path("/tmp/test.log")


class TestMain:
    """Tests for main()."""

    def test_returns_zero_on_success(self, httpx_mock, capsys):
        """Returns 0 and prints the report when every server is populated."""
        hostname = "s3.example.org"
        httpx_mock.add_response(
            url=f"http://{hostname}/cvmfs/info/v1/repositories.json", status_code=404
        )
        add_repository_responses(httpx_mock, "data.example.org", hostname=hostname)
        httpx_mock.add_response(
            url=f"http://{hostname}/cvmfs/info/v1/meta.json", status_code=404
        )

        exit_code = main(["-q", "-s", hostname, "-r", "data.example.org"])

        assert exit_code == 0
        out = capsys.readouterr().out
        assert f"Server: {hostname}" in out
        assert "Detected Backend: s3" in out
        assert "data.example.org" in out

    def test_returns_one_when_a_server_fails(self, tmp_path, caplog):
        """Returns 1 and logs the failure when a scrape fails."""
        failed = FailedServer(
            hostname="cvmfs.example.org",
            role=ServerRole.MIRROR,
            backend=BackendKind.REPO_PROTOCOL,
            error=TransportFailure("http://cvmfs.example.org/cvmfs/info/v1/repositories.json", "HTTP 503"),
        )

        with patch("main.scrape_server", return_value=failed) as mock_scrape, \
             caplog.at_level(logging.WARNING):
            exit_code = main(["-q", "-s", "cvmfs.example.org", "--backend", "cvmfs"])

        assert exit_code == 1
        mock_scrape.assert_called_once()
        assert "Failed to scrape cvmfs.example.org" in caplog.text
        assert "HTTP 503" in caplog.text

    def test_returns_two_without_servers(self, tmp_path, caplog):
        """Returns 2 when no servers are configured."""
        with caplog.at_level(logging.ERROR):
            exit_code = main(["-q", "-c", str(tmp_path / "missing.toml")])

        assert exit_code == 2
        assert "No servers to scrape" in caplog.text

    def test_returns_two_on_config_error(self, tmp_path, caplog):
        """Returns 2 when the config file is invalid."""
        config_file = tmp_path / "config.toml"
        config_file.write_text('[[servers]]\nhostname = "bad host"\ntype = "stratum1"\n')

        with caplog.at_level(logging.ERROR):
            exit_code = main(["-q", "-c", str(config_file)])

        assert exit_code == 2
        assert "Configuration error" in caplog.text

    def test_scrapes_every_configured_server(self, tmp_path):
        """Each [[servers]] entry is scraped with its repositories."""
        config_file = tmp_path / "config.toml"
        config_file.write_text(
            '[[servers]]\nhostname = "a.example.org"\ntype = "stratum0"\n'
            'backend = "s3"\nrepositories = ["x.example.org"]\n'
            '[[servers]]\nhostname = "b.example.org"\ntype = "stratum1"\n'
        )

        with patch("main.scrape_server") as mock_scrape:
            mock_scrape.return_value.is_failed.return_value = False
            mock_scrape.return_value.hostname = "host"
            mock_scrape.return_value.render.return_value = "report"
            exit_code = main(["-q", "-c", str(config_file)])

        assert exit_code == 0
        scraped = {call.args[0].hostname: call.args[1] for call in mock_scrape.call_args_list}
        assert scraped == {"a.example.org": ["x.example.org"], "b.example.org": []}
