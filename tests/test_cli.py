import json

import pytest
from click.testing import CliRunner

from smartthings_exporter import __version__, cli as cli_module
from smartthings_exporter.cli import cli
from smartthings_exporter.config import CONFIG_ENV
from smartthings_exporter.smartthings import Device, UpstreamUnavailable


class FakeClient:
    devices = [Device("1", "Front Door", {"contact": "closed", "color": "red", "battery": "bogus", "weird": 1})]
    fail = False
    listings = 0

    def __init__(self, token, timeout_seconds, endpoints_url):
        self.token = token

    def endpoint_uri(self):
        if self.fail:
            raise UpstreamUnavailable("unreachable")
        return "https://example.test/e"

    def list_devices(self):
        FakeClient.listings += 1
        return list(self.devices)


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(CONFIG_ENV, raising=False)
    monkeypatch.setattr(cli_module, "SmartThingsClient", FakeClient)
    return CliRunner()


@pytest.fixture
def token_file(tmp_path):
    p = tmp_path / "token.json"
    p.write_text(json.dumps({"access_token": "abc"}), encoding="utf-8")
    return str(p)


def test_version(runner):
    result = runner.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_metrics_command(runner):
    result = runner.invoke(cli, ["metrics"])

    assert result.exit_code == 0
    assert "smartthings_battery_percentage\tPercentage of battery remaining." in result.output
    assert result.output.count("smartthings_contact_closed\t") == 1


def test_devices_command(runner, token_file):
    result = runner.invoke(cli, ["--smartthings.oauth-token.file", token_file, "devices"])

    assert result.exit_code == 0, result.output
    assert "Front Door (id=1)" in result.output
    assert "smartthings_contact_closed=1" in result.output
    assert "color='red'  dropped" in result.output
    assert "weird=1  unknown" in result.output
    assert "invalid" in result.output


def test_start_without_token(runner):
    result = runner.invoke(cli, ["start"])

    assert result.exit_code != 0
    assert "missing token file" in result.output


def test_start_fails_when_upstream_unreachable(runner, token_file, monkeypatch):
    monkeypatch.setattr(FakeClient, "fail", True)

    result = runner.invoke(cli, ["--smartthings.oauth-token.file", token_file])

    assert result.exit_code != 0
    assert "unreachable" in result.output


def test_start_serves(runner, token_file, monkeypatch):
    served = {}

    def fake_serve(host, port, telemetry_path, collector):
        served.update(host=host, port=port, path=telemetry_path, samples=collector.run_cycle())

    monkeypatch.setattr(cli_module, "serve", fake_serve)

    result = runner.invoke(
        cli,
        ["--smartthings.oauth-token.file", token_file, "start", "--web.listen-address", "127.0.0.1:9100"],
    )

    assert result.exit_code == 0, result.output
    assert served["host"] == "127.0.0.1"
    assert served["port"] == 9100
    assert served["path"] == "/metrics"
    assert [(s.metric.name, s.value) for s in served["samples"]] == [("contact_closed", 1.0)]


def test_devices_command_lists_once(runner, token_file, monkeypatch):
    monkeypatch.setattr(FakeClient, "listings", 0)

    result = runner.invoke(cli, ["--smartthings.oauth-token.file", token_file, "devices"])

    assert result.exit_code == 0, result.output
    assert FakeClient.listings == 1
