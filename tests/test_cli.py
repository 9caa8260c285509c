from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import FAST_CONFIG, FakeTransport, locations_message, state_event, status_message
from typer.testing import CliRunner

import expresso.cli
from expresso.xvpn.client import ExpressVPNClient


def _combined_output(result) -> str:
    try:
        return result.stdout + result.stderr
    except Exception:
        return result.stdout


class HelperTransport(FakeTransport):
    """Fake transport that greets like the helper and keeps a VPN state."""

    def __init__(self, state: str = "ready", connect_to: str = "connected") -> None:
        super().__init__(responder=self._respond)
        self.state = state
        self.connect_to = connect_to
        self.current_name = ""

    def start(self) -> None:
        super().start()
        self.feed({"connected": True, "app_version": "9.1.2"})

    def _respond(self, method, params):
        if method == "XVPN.GetStatus":
            return [status_message(self.state, selected_name="Germany", current_name=self.current_name)]
        if method == "XVPN.GetLocations":
            return [locations_message()]
        if method == "XVPN.SelectLocation":
            selected = params["selected_location"]
            return [
                {
                    "name": "SelectedLocationChanged",
                    "data": {"SelectedLocationChangedData": selected},
                }
            ]
        if method == "XVPN.Connect":
            self.state = self.connect_to
            self.current_name = params.get("name") or params.get("country")
            return [state_event("connecting"), state_event(self.connect_to)]
        if method == "XVPN.Disconnect":
            self.state = "ready"
            return [state_event("disconnecting"), state_event("ready")]
        return []


@pytest.fixture
def helper(monkeypatch, tmp_path: Path):
    transport = HelperTransport()
    built = []

    def fake_build_client(settings, event_sink):
        built.append(settings)
        return ExpressVPNClient(transport, config=FAST_CONFIG, event_sink=event_sink)

    monkeypatch.setattr(expresso.cli, "_build_client", fake_build_client)
    monkeypatch.setenv("EXPRESSO_CONFIG", str(tmp_path / "config.toml"))
    transport.built = built
    return transport


def test_version_and_help():
    runner = CliRunner()

    version = runner.invoke(expresso.cli.app, ["--version"])
    assert version.exit_code == 0
    assert "expresso v" in version.stdout

    help_result = runner.invoke(expresso.cli.app, ["--help"])
    assert help_result.exit_code == 0
    assert "connect" in help_result.stdout


def test_status_prints_snapshot(helper):
    result = CliRunner().invoke(expresso.cli.app, ["status"])

    assert result.exit_code == 0
    assert "state: ready" in result.stdout
    assert "app version: 9.1.2" in result.stdout
    assert helper.closed is True


def test_locations_lists_catalog(helper):
    result = CliRunner().invoke(expresso.cli.app, ["locations"])

    assert result.exit_code == 0
    assert "--- Europe ---" in result.stdout
    assert "- USA - New York (loc3)" in result.stdout


def test_connect_by_name(helper):
    result = CliRunner().invoke(expresso.cli.app, ["connect", "frankfurt"])

    assert result.exit_code == 0
    assert "Connected to 'Germany - Frankfurt - 1'" in result.stdout
    assert helper.methods() == [
        "XVPN.GetStatus",
        "XVPN.GetLocations",
        "XVPN.SelectLocation",
        "XVPN.Connect",
        "XVPN.GetStatus",
    ]


def test_connect_to_unknown_location_exits_2(helper):
    result = CliRunner().invoke(expresso.cli.app, ["connect", "atlantis"])

    assert result.exit_code == 2
    assert "atlantis" in _combined_output(result)
    assert "XVPN.Connect" not in helper.methods()


def test_connect_failure_exits_1(helper):
    helper.connect_to = "connection_error"

    result = CliRunner().invoke(expresso.cli.app, ["connect", "Germany"])

    assert result.exit_code == 1
    assert "connection_error" in _combined_output(result)


def test_timeout_option_overrides_settings(helper):
    helper.connect_to = "connecting"

    result = CliRunner().invoke(expresso.cli.app, ["-t", "100", "connect", "Germany"])

    assert result.exit_code == 1
    assert helper.built[0].connect_timeout_ms == 100
    assert helper.built[0].disconnect_timeout_ms == 100


def test_disconnect_when_not_connected(helper):
    result = CliRunner().invoke(expresso.cli.app, ["disconnect"])

    assert result.exit_code == 1
    assert "not connected" in _combined_output(result)
    assert "XVPN.Disconnect" not in helper.methods()


def test_disconnect(helper):
    helper.state = "connected"

    result = CliRunner().invoke(expresso.cli.app, ["disconnect"])

    assert result.exit_code == 0
    assert "Disconnected" in result.stdout


def test_alfred_outputs_items(helper):
    result = CliRunner().invoke(expresso.cli.app, ["alfred", "--locations"])

    assert result.exit_code == 0
    parsed = json.loads(result.stdout)
    assert len(parsed["items"]) == 4


def test_repl_forwards_valid_lines(helper):
    result = CliRunner().invoke(
        expresso.cli.app,
        ["repl"],
        input='{"jsonrpc": "2.0", "method": "Echo", "params": {}, "id": 1}\nnot json\n',
    )

    assert result.exit_code == 0
    assert helper.methods() == ["Echo"]
    assert "not valid JSON" in _combined_output(result)


def test_missing_manifest_exits_2(monkeypatch, tmp_path: Path):
    config = tmp_path / "config.toml"
    config.write_text(
        '[helper]\nmanifest_name = "com.example.absent"\nmanifest_dirs = ["{0}"]\n'.format(tmp_path),
        encoding="utf-8",
    )

    result = CliRunner().invoke(expresso.cli.app, ["--config", str(config), "status"])

    assert result.exit_code == 2
    assert "com.example.absent" in _combined_output(result)


def test_init_writes_config_once(tmp_path: Path):
    config = tmp_path / "config.toml"
    runner = CliRunner()

    first = runner.invoke(expresso.cli.app, ["--config", str(config), "init"])
    assert first.exit_code == 0
    assert config.is_file()

    second = runner.invoke(expresso.cli.app, ["--config", str(config), "init"])
    assert second.exit_code == 2


def test_broken_config_exits_2(tmp_path: Path):
    config = tmp_path / "config.toml"
    config.write_text("[timeouts\n", encoding="utf-8")

    result = CliRunner().invoke(expresso.cli.app, ["--config", str(config), "status"])

    assert result.exit_code == 2
