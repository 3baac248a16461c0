"""
Tests for the apiavailability CLI.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from apiavailability.cli import main
from apiavailability.contracts.types import EventType, ObjectKind
from apiavailability.events import Notification

from conftest import new_local_api, new_remote_api


def fake_watcher(*objects):
    """KubernetesWatcher stand-in that delivers ``objects`` on construction."""
    def factory(controller, kubeconfig=None):
        for obj in objects:
            controller.handle(Notification(ObjectKind.AGGREGATED_API, EventType.ADDED, new=obj))
        watcher = MagicMock()
        watcher.sources = []
        return watcher
    return factory


@pytest.fixture
def runner():
    return CliRunner()


class TestCheck:
    """Tests for ``apiavailability check``."""

    def test_local_api(self, runner):
        with patch("apiavailability.cli.KubernetesWatcher", side_effect=fake_watcher(new_local_api("v1."))):
            result = runner.invoke(main, ["check", "v1."])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["type"] == "Available"
        assert payload["status"] == "True"
        assert payload["reason"] == "Local"

    def test_remote_api_without_service(self, runner):
        api = new_remote_api("v1.remote.group")
        with patch("apiavailability.cli.KubernetesWatcher", side_effect=fake_watcher(api)):
            result = runner.invoke(main, ["check", "v1.remote.group", "--no-probe"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["status"] == "False"
        assert payload["reason"] == "ServiceNotFound"

    def test_unknown_api(self, runner):
        with patch("apiavailability.cli.KubernetesWatcher", side_effect=fake_watcher()):
            result = runner.invoke(main, ["check", "v1.missing"])

        assert result.exit_code == 1
        assert "not found" in result.output


class TestGroup:
    """Tests for the command group."""

    def test_help_lists_commands(self, runner):
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "run" in result.output
        assert "check" in result.output
