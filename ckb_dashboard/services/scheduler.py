import asyncio
import functools
import logging
import time
from typing import Any, Callable, Protocol

from ckb_dashboard.services.errors import InvalidEpochError, NetworkError, ProtocolError
from ckb_dashboard.services.halving import format_countdown, format_target_date
from ckb_dashboard.services.settings import DashboardSettings
from ckb_dashboard.services.state import AppStateController
from ckb_dashboard.services.telemetry import PollOptions, TelemetrySnapshot, TelemetrySnapshotBuilder

logger = logging.getLogger(__name__)

ErrorReporter = Callable[[str, str], None]


class TimerHost(Protocol):
    """Anything with Textual's ``set_interval`` (an App or a Widget)."""

    def set_interval(self, interval: float, callback: Callable[..., Any]) -> Any: ...


def _now_ms() -> int:
    return int(time.time() * 1000)


def _log_error(message: str, severity: str) -> None:
    logger.log(logging.ERROR if severity == "error" else logging.WARNING, message)


class RefreshScheduler:
    """Runs the three refresh loops against an AppStateController.

    fast  - poll without re-projecting the halving, then record the block in history
    slow  - poll and re-project the halving target
    tick  - re-render the countdown from the held target, no network access
    """

    def __init__(
        self,
        controller: AppStateController,
        builder: TelemetrySnapshotBuilder,
        settings: DashboardSettings,
        on_error: ErrorReporter | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.controller = controller
        self.builder = builder
        self.settings = settings
        self.on_error = on_error or _log_error
        self.clock = clock
        self._timers: list[Any] = []

    @property
    def running(self) -> bool:
        return bool(self._timers)

    async def refresh(self, update_targets: bool = True) -> TelemetrySnapshot | None:
        """Poll once and publish the result. Returns None when the poll was skipped or failed."""
        if not self.settings.is_ready:
            logger.debug("No RPC endpoint configured, skipping poll")
            return None
        poll = functools.partial(
            self.builder.poll,
            self.settings.public_mode,
            PollOptions(update_targets=update_targets),
            self.controller.target,
            self.clock(),
        )
        try:
            snapshot = await asyncio.get_event_loop().run_in_executor(None, poll)
        except NetworkError as exc:
            logger.warning("Poll failed: %s", exc)
            self.on_error(
                f"Unable to reach the CKB node at {self.settings.rpc_url}. "
                "Check your endpoint configuration.",
                "warning",
            )
            return None
        except InvalidEpochError:
            logger.exception("Node reported an invalid epoch")
            self.on_error("The node reported an epoch with zero length.", "error")
            return None
        except ProtocolError as exc:
            logger.warning("Poll failed: %s", exc)
            self.on_error(f"Polling the CKB node failed: {exc}", "warning")
            return None
        self.controller.publish(snapshot)
        return snapshot

    async def refresh_fast(self) -> None:
        snapshot = await self.refresh(update_targets=False)
        if snapshot is not None:
            self.controller.append_history(snapshot.history_sample)

    async def refresh_full(self) -> None:
        await self.refresh(update_targets=True)

    def tick(self) -> str:
        target = self.controller.target
        countdown = format_countdown(
            target.time if target else None,
            self.clock(),
            self.settings.epochs_per_halving,
            self.settings.hours_per_epoch,
            self.settings.halving_message_hide_delay,
        )
        self.controller.set_display(countdown, format_target_date(target))
        return countdown

    async def start(self, host: TimerHost) -> None:
        """Run the initial full poll, then register the three loops on ``host``."""
        if self._timers:
            return
        await self.refresh_full()
        self.tick()
        self._timers = [
            host.set_interval(self.settings.refresh_delay, self.refresh_fast),
            host.set_interval(self.settings.full_refresh_delay, self.refresh_full),
            host.set_interval(self.settings.tick_delay, self.tick),
        ]

    def stop(self) -> None:
        for timer in self._timers:
            timer.stop()
        self._timers = []
