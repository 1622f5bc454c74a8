"""Tests for the three refresh loops."""
import asyncio
from dataclasses import replace
import unittest
from unittest.mock import MagicMock, Mock

from ckb_dashboard.services.epoch import encode_epoch
from ckb_dashboard.services.errors import NetworkError, ProtocolError
from ckb_dashboard.services.halving import HALVING_MESSAGE, HalvingTarget
from ckb_dashboard.services.scheduler import RefreshScheduler
from ckb_dashboard.services.settings import DashboardSettings
from ckb_dashboard.services.state import AppStateController
from ckb_dashboard.services.telemetry import TelemetrySnapshotBuilder
from fakes import FakeRpcClient, tip_header

NOW = 1_700_000_000_000


class FakeHost:
    def __init__(self):
        self.intervals = []
        self.timers = []

    def set_interval(self, interval, callback):
        timer = MagicMock()
        self.intervals.append((interval, callback))
        self.timers.append(timer)
        return timer


class TestRefreshScheduler(unittest.TestCase):
    def setUp(self):
        self.settings = DashboardSettings()
        self.client = FakeRpcClient()
        self.state = AppStateController(history_size=self.settings.history_size)
        self.errors = Mock()
        self.now = NOW
        self.scheduler = self._scheduler(self.client, self.settings)

    def _scheduler(self, client, settings):
        return RefreshScheduler(
            self.state,
            TelemetrySnapshotBuilder(client, settings),
            settings,
            on_error=self.errors,
            clock=lambda: self.now,
        )

    def test_full_refresh_projects_target(self):
        asyncio.run(self.scheduler.refresh_full())

        assert self.state.snapshot.block_number == 0x1000
        assert self.state.target == HalvingTarget(epoch=8760, time=NOW + 14_400_000)
        # only the fast loop records history
        assert len(self.state.history) == 0

    def test_fast_refresh_keeps_target_and_records_history(self):
        asyncio.run(self.scheduler.refresh_full())
        target = self.state.target

        self.now += 60_000
        self.client.responses["get_tip_header"] = tip_header(number=0x1001, epoch=encode_epoch(8759, 1, 1800))
        asyncio.run(self.scheduler.refresh_fast())

        assert self.state.snapshot.block_number == 0x1001
        assert self.state.target is target
        assert self.state.history.block_numbers == [0x1001]

    def test_repeated_fast_refresh_does_not_duplicate_history(self):
        asyncio.run(self.scheduler.refresh_fast())
        asyncio.run(self.scheduler.refresh_fast())
        assert self.state.history.block_numbers == [0x1000]

    def test_network_error_leaves_state_untouched(self):
        asyncio.run(self.scheduler.refresh_full())
        snapshot = self.state.snapshot

        self.client.error = NetworkError("refused")
        asyncio.run(self.scheduler.refresh_fast())

        assert self.state.snapshot is snapshot
        assert len(self.state.history) == 0
        message, severity = self.errors.call_args.args
        assert "Check your endpoint configuration" in message
        assert severity == "warning"

    def test_protocol_error_is_reported(self):
        self.client.error = ProtocolError("missing field")
        assert asyncio.run(self.scheduler.refresh(True)) is None
        message, _ = self.errors.call_args.args
        assert message.startswith("Polling the CKB node failed")
        assert self.state.snapshot is None

    def test_invalid_epoch_is_reported_as_error(self):
        self.client.responses["get_tip_header"] = tip_header(epoch=encode_epoch(1, 0, 0))
        assert asyncio.run(self.scheduler.refresh(True)) is None
        _, severity = self.errors.call_args.args
        assert severity == "error"
        assert self.state.target is None

    def test_no_endpoint_skips_polling(self):
        scheduler = self._scheduler(self.client, DashboardSettings(rpc_url=""))
        assert asyncio.run(scheduler.refresh(True)) is None
        assert self.client.batches == []
        self.errors.assert_not_called()

    def test_tick_formats_countdown(self):
        self.state.publish(self._snapshot_with_target(NOW + 90_061_000))
        assert self.scheduler.tick() == "0m, 1d, 1h, 1m, 1s"
        assert self.state.countdown == "0m, 1d, 1h, 1m, 1s"
        assert self.state.target_date != ""

    def test_tick_after_halving(self):
        self.state.publish(self._snapshot_with_target(NOW - 1))
        assert self.scheduler.tick() == HALVING_MESSAGE

    def test_tick_without_target(self):
        assert self.scheduler.tick() == ""
        assert self.client.batches == []

    def test_start_polls_before_registering_loops(self):
        host = FakeHost()
        asyncio.run(self.scheduler.start(host))

        assert len(self.client.batches) == 1
        assert self.state.target is not None
        assert self.state.countdown != ""
        assert host.intervals == [
            (self.settings.refresh_delay, self.scheduler.refresh_fast),
            (self.settings.full_refresh_delay, self.scheduler.refresh_full),
            (self.settings.tick_delay, self.scheduler.tick),
        ]
        assert self.scheduler.running

    def test_start_twice_registers_once(self):
        host = FakeHost()
        asyncio.run(self.scheduler.start(host))
        asyncio.run(self.scheduler.start(host))
        assert len(host.intervals) == 3

    def test_stop_releases_all_timers(self):
        host = FakeHost()
        asyncio.run(self.scheduler.start(host))
        self.scheduler.stop()
        for timer in host.timers:
            timer.stop.assert_called_once_with()
        assert not self.scheduler.running

    def _snapshot_with_target(self, time):
        builder = TelemetrySnapshotBuilder(FakeRpcClient(), self.settings)
        snapshot = builder.poll(False, None, None, NOW)
        return replace(snapshot, target=HalvingTarget(epoch=8760, time=time))
