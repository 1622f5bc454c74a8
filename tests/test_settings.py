"""Tests for loading dashboard settings."""
import tempfile
import unittest
from pathlib import Path

import pytest

from ckb_dashboard.services.errors import SettingsError
from ckb_dashboard.services.settings import DashboardSettings


class TestDashboardSettings(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.conf = Path(self.tmp.name) / "dashboard.conf"

    def tearDown(self):
        self.tmp.cleanup()

    def test_defaults_without_conf(self):
        settings = DashboardSettings.load(self.conf, environ={})
        assert settings == DashboardSettings()
        assert settings.rpc_url == "http://127.0.0.1:8114"
        assert settings.epochs_per_halving == 8760
        assert settings.hours_per_epoch == 4
        assert settings.history_size == 100
        assert settings.halving_message_hide_delay == 600_000
        assert settings.rpc_timeout is None
        assert settings.is_ready

    def test_conf_file(self):
        self.conf.write_text(
            "# node\n"
            "RPC_URL = http://10.0.0.5:8114\n"
            "public_mode=yes\n"
            "\n"
            "history_size=50\n"
            "refresh_delay=2.5\n"
            "unknown_key=ignored\n"
        )
        settings = DashboardSettings.load(self.conf, environ={})
        assert settings.rpc_url == "http://10.0.0.5:8114"
        assert settings.public_mode is True
        assert settings.history_size == 50
        assert settings.refresh_delay == 2.5

    def test_environment_overrides_conf(self):
        self.conf.write_text("rpc_url=http://conf:8114\nrpc_timeout=10\n")
        settings = DashboardSettings.load(
            self.conf,
            environ={
                "CKB_DASHBOARD_RPC_URL": "http://env:8114",
                "CKB_DASHBOARD_DISCARD_STALE_SNAPSHOTS": "1",
                "CKB_DASHBOARD_LOG_LEVEL": "debug",
            },
        )
        assert settings.rpc_url == "http://env:8114"
        assert settings.rpc_timeout == 10.0
        assert settings.discard_stale_snapshots is True
        assert settings.log_level == "DEBUG"

    def test_conf_path_from_environment(self):
        self.conf.write_text("epochs_per_halving=100\n")
        settings = DashboardSettings.load(environ={"CKB_DASHBOARD_CONF": str(self.conf)})
        assert settings.epochs_per_halving == 100

    def test_empty_endpoint_is_not_ready(self):
        settings = DashboardSettings.load(self.conf, environ={"CKB_DASHBOARD_RPC_URL": "  "})
        assert not settings.is_ready

    def test_invalid_values(self):
        with pytest.raises(SettingsError):
            DashboardSettings.load(self.conf, environ={"CKB_DASHBOARD_HISTORY_SIZE": "many"})
        with pytest.raises(SettingsError):
            DashboardSettings.load(self.conf, environ={"CKB_DASHBOARD_PUBLIC_MODE": "maybe"})
        with pytest.raises(SettingsError):
            DashboardSettings(hours_per_epoch=0)

