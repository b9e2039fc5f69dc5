"""Tests for the ProxyFetch command-line interface."""

from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from proxyfetch import __version__
from proxyfetch.cli import EXIT_CONFIG_ERROR, EXIT_FETCH_ERROR, main
from proxyfetch.core.errors import DialError, ProxyAuthError
from proxyfetch.core.response import Response


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PROXYFETCH_PROXY", "PROXYFETCH_USER", "PROXYFETCH_PASSWORD",
                 "PROXYFETCH_INSECURE", "PROXYFETCH_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cfg_path(tmp_path):
    return str(tmp_path / "config.yaml")


def _invoke(runner, cfg_path, *args):
    return runner.invoke(main, ["--config", cfg_path, *args], obj={})


def _flat(output: str) -> str:
    """Undo rich line wrapping."""
    return " ".join(output.split())


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


# ── fetch ────────────────────────────────────────────────────────────────────


class TestFetch:
    def test_missing_scheme_is_config_error(self, runner, cfg_path):
        result = _invoke(runner, cfg_path, "fetch", "--proxy", "127.0.0.1:9050", "https://example.test/")
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "no scheme" in _flat(result.output)

    def test_missing_destination(self, runner, cfg_path):
        result = _invoke(runner, cfg_path, "fetch", "--proxy", "http://127.0.0.1:9050")
        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "No destination" in _flat(result.output)

    def test_url_and_dest_conflict(self, runner, cfg_path):
        result = _invoke(
            runner, cfg_path, "fetch", "--proxy", "http://127.0.0.1:9050",
            "--dest", "https://a.test/", "https://b.test/",
        )
        assert result.exit_code == EXIT_CONFIG_ERROR

    @patch("proxyfetch.cli.ProxyClient.fetch")
    def test_success_writes_body(self, mock_fetch, runner, cfg_path):
        mock_fetch.return_value = Response(200, b"<html>hi</html>", reason="OK")
        result = _invoke(
            runner, cfg_path, "fetch", "--proxy", "http://127.0.0.1:9050",
            "--user", "alice", "--password", "s3cret", "--dest", "https://example.test/",
        )
        assert result.exit_code == 0
        assert "<html>hi</html>" in result.output
        target = mock_fetch.call_args.args[0]
        assert target.proxy.port == 9050
        assert target.credentials.username == "alice"
        assert target.destination.host == "example.test"

    @patch("proxyfetch.cli.ProxyClient.fetch")
    def test_positional_url(self, mock_fetch, runner, cfg_path):
        mock_fetch.return_value = Response(404, b"missing", reason="Not Found")
        result = _invoke(runner, cfg_path, "fetch", "-x", "http://127.0.0.1:9050", "http://example.test/x")
        assert result.exit_code == 0
        assert "404" in result.output
        assert mock_fetch.call_args.args[0].credentials is None

    @patch("proxyfetch.cli.ProxyClient.fetch")
    def test_output_file(self, mock_fetch, runner, cfg_path, tmp_path):
        mock_fetch.return_value = Response(200, b"\x00\x01binary", reason="OK")
        out = tmp_path / "body.bin"
        result = _invoke(
            runner, cfg_path, "fetch", "-x", "http://127.0.0.1:9050",
            "-o", str(out), "https://example.test/",
        )
        assert result.exit_code == 0
        assert out.read_bytes() == b"\x00\x01binary"

    @patch("proxyfetch.cli.ProxyClient.fetch")
    def test_proxy_auth_error(self, mock_fetch, runner, cfg_path):
        mock_fetch.side_effect = ProxyAuthError(
            "Proxy refused CONNECT example.test:443: HTTP/1.1 407 Proxy Authentication Required",
            status_code=407,
            status_line="HTTP/1.1 407 Proxy Authentication Required",
            challenge='Basic realm="corp"',
        )
        result = _invoke(runner, cfg_path, "fetch", "-x", "http://127.0.0.1:9050", "https://example.test/")
        assert result.exit_code == EXIT_FETCH_ERROR
        assert "[connect]" in result.output
        assert "407" in result.output

    @patch("proxyfetch.cli.ProxyClient.fetch")
    def test_dial_error(self, mock_fetch, runner, cfg_path):
        mock_fetch.side_effect = DialError("Cannot reach proxy http://127.0.0.1:9050: refused")
        result = _invoke(runner, cfg_path, "fetch", "-x", "http://127.0.0.1:9050", "https://example.test/")
        assert result.exit_code == EXIT_FETCH_ERROR
        assert "[dial]" in result.output

    @patch("proxyfetch.cli.TunnelingTransport")
    @patch("proxyfetch.cli.ProxyClient.fetch")
    def test_insecure_and_timeout_reach_transport(self, mock_fetch, mock_transport, runner, cfg_path):
        mock_fetch.return_value = Response(200, b"", reason="OK")
        _invoke(
            runner, cfg_path, "fetch", "-x", "http://127.0.0.1:9050",
            "--insecure", "--timeout", "7", "https://example.test/",
        )
        mock_transport.assert_called_once_with(insecure=True, timeout=7.0)

    @patch("proxyfetch.cli.TunnelingTransport")
    @patch("proxyfetch.cli.ProxyClient.fetch")
    def test_secure_by_default(self, mock_fetch, mock_transport, runner, cfg_path):
        mock_fetch.return_value = Response(200, b"", reason="OK")
        _invoke(runner, cfg_path, "fetch", "-x", "http://127.0.0.1:9050", "https://example.test/")
        assert mock_transport.call_args.kwargs["insecure"] is False

    @patch("proxyfetch.cli.ProxyClient.fetch")
    def test_uses_saved_config(self, mock_fetch, runner, cfg_path):
        with open(cfg_path, "w") as f:
            yaml.safe_dump({"proxy": {"url": "http://10.0.0.1:3128", "username": "bob", "password": "pw"}}, f)
        mock_fetch.return_value = Response(200, b"ok", reason="OK")
        result = _invoke(runner, cfg_path, "fetch", "https://example.test/")
        assert result.exit_code == 0
        target = mock_fetch.call_args.args[0]
        assert target.proxy.host == "10.0.0.1"
        assert target.credentials.username == "bob"

    def test_end_to_end_through_proxy(self, runner, cfg_path, stub_factory):
        def handler(stub, conn):
            stub.received.append(stub.read_head(conn))
            conn.sendall(b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nhello")

        stub = stub_factory(handler)
        with open(cfg_path, "w") as f:
            yaml.safe_dump({"transport": {"user_agent": "cli-agent/3"}}, f)
        result = _invoke(
            runner, cfg_path, "fetch", "-x", f"http://127.0.0.1:{stub.port}",
            "-u", "alice", "-p", "s3cret", "-t", "5", "http://example.test/",
        )
        assert result.exit_code == 0
        assert "hello" in result.output
        head = stub.received[0]
        assert head.startswith(b"GET http://example.test/ HTTP/1.1\r\n")
        assert b"User-Agent: cli-agent/3\r\n" in head
        assert b"Proxy-Authorization: Basic YWxpY2U6czNjcmV0\r\n" in head


# ── config / setup ───────────────────────────────────────────────────────────


class TestSetupAndConfig:
    def test_setup_saves(self, runner, cfg_path):
        result = _invoke(
            runner, cfg_path, "setup", "--proxy", "http://127.0.0.1:9050",
            "--user", "alice", "--password", "s3cret", "--timeout", "15",
        )
        assert result.exit_code == 0
        with open(cfg_path) as f:
            saved = yaml.safe_load(f)
        assert saved["proxy"]["url"] == "http://127.0.0.1:9050"
        assert saved["proxy"]["username"] == "alice"
        assert saved["transport"]["timeout"] == 15.0

    def test_setup_warns_when_insecure(self, runner, cfg_path):
        result = _invoke(runner, cfg_path, "setup", "--proxy", "http://127.0.0.1:9050", "--insecure")
        assert result.exit_code == 0
        assert "disable TLS certificate verification" in _flat(result.output)
        with open(cfg_path) as f:
            assert yaml.safe_load(f)["transport"]["insecure"] is True

    def test_setup_secure_has_no_warning(self, runner, cfg_path):
        result = _invoke(runner, cfg_path, "setup", "--proxy", "http://127.0.0.1:9050")
        assert "certificate verification" not in _flat(result.output)

    def test_setup_rejects_bad_proxy(self, runner, cfg_path):
        result = _invoke(runner, cfg_path, "setup", "--proxy", "127.0.0.1:9050")
        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_config_masks_password(self, runner, cfg_path):
        _invoke(runner, cfg_path, "setup", "--proxy", "http://127.0.0.1:9050",
                "--user", "alice", "--password", "s3cret")
        result = _invoke(runner, cfg_path, "config")
        assert result.exit_code == 0
        assert "http://127.0.0.1:9050" in _flat(result.output)
        assert "s3cret" not in result.output

    def test_broken_config_file(self, runner, cfg_path):
        with open(cfg_path, "w") as f:
            f.write("proxy: [unclosed\n")
        result = _invoke(runner, cfg_path, "config")
        assert result.exit_code == EXIT_CONFIG_ERROR
