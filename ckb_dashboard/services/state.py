import logging
import threading
from typing import Callable

from ckb_dashboard.services.halving import HalvingTarget
from ckb_dashboard.services.history import DEFAULT_HISTORY_SIZE, HistoryBuffer, HistorySample
from ckb_dashboard.services.telemetry import TelemetrySnapshot

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class AppStateController:
    """Owns the displayed snapshot, halving target, history and countdown text.

    Every update swaps whole values under a lock, so readers never see a
    half-applied poll.
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE, discard_stale: bool = False) -> None:
        self._lock = threading.Lock()
        self._snapshot: TelemetrySnapshot | None = None
        self._target: HalvingTarget | None = None
        self._history = HistoryBuffer(capacity=history_size)
        self._countdown = ""
        self._target_date = ""
        self._listeners: list[Listener] = []
        self.discard_stale = discard_stale

    @property
    def snapshot(self) -> TelemetrySnapshot | None:
        with self._lock:
            return self._snapshot

    @property
    def target(self) -> HalvingTarget | None:
        with self._lock:
            return self._target

    @property
    def history(self) -> HistoryBuffer:
        with self._lock:
            return self._history

    @property
    def countdown(self) -> str:
        with self._lock:
            return self._countdown

    @property
    def target_date(self) -> str:
        with self._lock:
            return self._target_date

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    def publish(self, snapshot: TelemetrySnapshot) -> bool:
        """Replace the snapshot and target. Returns False if the snapshot was discarded.

        Polls resolve in whatever order the network delivers them, so by
        default the last one to arrive wins. With ``discard_stale`` set, a
        snapshot for a lower block than the one on display is dropped.
        """
        with self._lock:
            current = self._snapshot
            if (
                self.discard_stale
                and current is not None
                and snapshot.block_number < current.block_number
            ):
                logger.debug(
                    "Discarding snapshot for block %d, already showing %d",
                    snapshot.block_number,
                    current.block_number,
                )
                return False
            self._snapshot = snapshot
            self._target = snapshot.target
        logger.debug("Published snapshot for block %d", snapshot.block_number)
        self._notify()
        return True

    def append_history(self, sample: HistorySample | None) -> bool:
        with self._lock:
            history = self._history.append(sample)
            changed = history is not self._history
            self._history = history
        if changed:
            self._notify()
        return changed

    def set_display(self, countdown: str, target_date: str) -> bool:
        with self._lock:
            if countdown == self._countdown and target_date == self._target_date:
                return False
            self._countdown = countdown
            self._target_date = target_date
        self._notify()
        return True
