import logging
from datetime import datetime

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.logging import TextualHandler
from textual.widgets import Footer, Sparkline, Static

from ckb_dashboard import __version__ as DASHBOARD_VERSION
from ckb_dashboard.services.history import HistoryBuffer
from ckb_dashboard.services.rpc import CkbRpcClient
from ckb_dashboard.services.scheduler import RefreshScheduler
from ckb_dashboard.services.settings import DashboardSettings
from ckb_dashboard.services.state import AppStateController
from ckb_dashboard.services.telemetry import TelemetrySnapshot, TelemetrySnapshotBuilder

UNAVAILABLE = "N/A"


class CustomHeader(Static):
    """Title on the left, local time on the right."""

    DEFAULT_CSS = """
    CustomHeader {
        dock: top;
        width: 100%;
        background: $boost;
        color: $text;
        height: 1;
    }
    """

    def on_mount(self) -> None:
        self.update_clock()
        self.set_interval(1.0, self.update_clock)

    def update_clock(self) -> None:
        time_str = datetime.now().strftime("%A, %B %d, %Y  %I:%M:%S %p")
        title = self.app.title if hasattr(self.app, "title") else "CKB Node Dashboard"
        width = self.size.width
        gap = width - len(title) - len(time_str) - 2
        if gap > 0:
            self.update(f" {title}{' ' * gap}{time_str} ")
        else:
            self.update(f" {title}  {time_str}")


class StatPanel(Static):
    """A bordered card showing one value, with an optional smaller second value."""

    def __init__(self, title: str, accent_class: str, **kwargs: object) -> None:
        super().__init__("... loading", **kwargs)
        self.border_title = title
        self.border_title_align = ("left", "top")
        self.add_class("card")
        self.add_class(accent_class)

    def set_value(self, value: str, small_value: str | None = None) -> None:
        text = Text(value or " ", style="bold")
        if small_value:
            text.append(f" {small_value}", style="dim")
        self.update(text)


class HistoryChartPanel(Container):
    """Card with a Sparkline over the last N blocks of one history series."""

    def __init__(self, title: str, sparkline_id: str, capacity: int, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.border_title = title
        self.border_subtitle = f"0 of {capacity} latest blocks"
        self.border_title_align = ("left", "top")
        self.border_subtitle_align = ("right", "bottom")
        self.add_class("card")
        self.add_class("activity")
        self._capacity = capacity
        self._sparkline = Sparkline([], summary_function=max, id=sparkline_id)

    def compose(self) -> ComposeResult:
        yield self._sparkline

    def update_series(self, values: list[int]) -> None:
        # Sparkline works in floats; cycle counts can exceed float precision, which only affects bar height.
        self._sparkline.data = [float(v) for v in values]
        self.border_subtitle = f"{len(values)} of {self._capacity} latest blocks"


class CkbDashboardApp(App):
    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh_all", "Refresh"),
    ]

    CSS = """
    Screen {
        layout: vertical;
    }
    #body {
        layout: vertical;
        width: 1fr;
        height: 1fr;
    }
    #stats-grid {
        layout: grid;
        grid-size: 6;
        grid-gutter: 0 1;
        grid-rows: 4 4 3 3 3;
        height: auto;
        width: 1fr;
    }
    #stats-grid > .large {
        column-span: 3;
    }
    #stats-grid > .small {
        column-span: 2;
    }
    .card {
        border: round $primary;
        padding: 0 1;
    }
    .card.halving {
        border: round $accent;
    }
    #charts {
        height: 1fr;
    }
    HistoryChartPanel {
        height: 1fr;
    }
    HistoryChartPanel > Sparkline {
        width: 1fr;
        height: 1fr;
    }
    #status-line {
        height: 1;
        text-style: dim;
        content-align: center middle;
        width: 1fr;
    }
    """

    def __init__(self, settings: DashboardSettings | None = None) -> None:
        super().__init__()
        self.settings = settings or DashboardSettings.load()
        self.title = f"CKB Node Dashboard v{DASHBOARD_VERSION}"
        self.state = AppStateController(
            history_size=self.settings.history_size,
            discard_stale=self.settings.discard_stale_snapshots,
        )
        self.rpc = CkbRpcClient(self.settings.rpc_url, timeout=self.settings.rpc_timeout)
        self.scheduler = RefreshScheduler(
            self.state,
            TelemetrySnapshotBuilder(self.rpc, self.settings),
            self.settings,
            on_error=self._report_error,
        )
        self.header = CustomHeader()

        self.block_panel = StatPanel("Block Number", "chain", classes="large")
        self.epoch_panel = StatPanel("Epoch", "chain", classes="large")
        self.countdown_panel = StatPanel("Time to Halving", "halving", classes="large")
        self.target_panel = StatPanel("Next Halving Target", "halving", classes="large")
        self.pending_panel = StatPanel("Pending TXs", "pool", classes="small")
        self.proposed_panel = StatPanel("Proposed TXs", "pool", classes="small")
        self.orphan_panel = StatPanel("Orphan TXs", "pool", classes="small")
        self.cycles_panel = StatPanel("Total TX Cycles", "pool", classes="small")
        self.size_panel = StatPanel("Total TX Size", "pool", classes="small")
        self.fee_panel = StatPanel("Minimum Fee Rate", "pool", classes="small")
        self.connections_panel = StatPanel("Connections", "node", classes="small")
        self.chain_panel = StatPanel("Chain Type", "node", classes="small")
        self.version_panel = StatPanel("Node Version", "node", classes="small")

        self.tx_chart = HistoryChartPanel("TX Count", "tx-sparkline", self.settings.history_size)
        self.cycles_chart = HistoryChartPanel("Cycles Consumed", "cycles-sparkline", self.settings.history_size)
        self.status_line = Static("", id="status-line")

    @staticmethod
    def _format_number(value: int | None) -> str:
        if value is None:
            return UNAVAILABLE
        return f"{value:,}"

    @staticmethod
    def _format_optional(value: object, empty: str = UNAVAILABLE) -> str:
        if value is None:
            return empty
        if isinstance(value, str) and not value.strip():
            return empty
        return str(value)

    def compose(self) -> ComposeResult:
        yield self.header
        with Container(id="body"):
            with Container(id="stats-grid"):
                yield self.block_panel
                yield self.epoch_panel
                yield self.countdown_panel
                yield self.target_panel
                yield self.pending_panel
                yield self.proposed_panel
                yield self.orphan_panel
                yield self.cycles_panel
                yield self.size_panel
                yield self.fee_panel
                yield self.connections_panel
                yield self.chain_panel
                yield self.version_panel
            with Container(id="charts"):
                yield self.tx_chart
                yield self.cycles_chart
        yield self.status_line
        yield Footer()

    async def on_mount(self) -> None:
        self.state.subscribe(self._render_state)
        if not self.settings.is_ready:
            self.status_line.update("No RPC endpoint configured. Set CKB_DASHBOARD_RPC_URL.")
        else:
            self.status_line.update(f"Endpoint: {self.settings.rpc_url}")
        self.set_timer(0.1, self._start_scheduler)

    async def _start_scheduler(self) -> None:
        await self.scheduler.start(self)

    def on_unmount(self) -> None:
        self.scheduler.stop()

    def _report_error(self, message: str, severity: str) -> None:
        self.notify(message, title="Polling", severity=severity, timeout=5)

    def _render_state(self) -> None:
        snapshot = self.state.snapshot
        if snapshot is not None:
            self._render_snapshot(snapshot)
        self._render_history(self.state.history)
        self.countdown_panel.set_value(self.state.countdown)
        self.target_panel.set_value(self.state.target_date)

    def _render_snapshot(self, snapshot: TelemetrySnapshot) -> None:
        position = snapshot.position
        self.block_panel.set_value(self._format_number(snapshot.block_number))
        self.epoch_panel.set_value(
            self._format_number(position.number),
            f"{position.index:,}/{position.length:,}",
        )
        self.pending_panel.set_value(self._format_number(snapshot.pending))
        self.proposed_panel.set_value(self._format_number(snapshot.proposed))
        self.orphan_panel.set_value(self._format_number(snapshot.orphan))
        self.cycles_panel.set_value(self._format_number(snapshot.total_tx_cycles))
        self.size_panel.set_value(self._format_number(snapshot.total_tx_size))
        self.fee_panel.set_value(self._format_number(snapshot.min_fee_rate))
        self.connections_panel.set_value(self._format_number(snapshot.connections))
        self.chain_panel.set_value(snapshot.chain_type)
        self.version_panel.set_value(self._format_optional(snapshot.node_version))

    def _render_history(self, history: HistoryBuffer) -> None:
        self.tx_chart.update_series(history.tx_counts())
        self.cycles_chart.update_series(history.cycles())

    async def action_refresh_all(self) -> None:
        self.notify("Refreshing...", timeout=2)
        await self.scheduler.refresh_full()
        self.scheduler.tick()


def configure_logging(settings: DashboardSettings) -> None:
    """Route log records to a file if configured, otherwise to the Textual devtools console."""
    if settings.log_file:
        handler: logging.Handler = logging.FileHandler(settings.log_file)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    else:
        handler = TextualHandler()
    logging.basicConfig(level=settings.log_level, handlers=[handler], force=True)


def run() -> None:
    settings = DashboardSettings.load()
    configure_logging(settings)
    CkbDashboardApp(settings).run()
