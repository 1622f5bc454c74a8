import logging
import time
from dataclasses import dataclass
from typing import Any

from ckb_dashboard.services.epoch import ChainPosition, decode_epoch_hex
from ckb_dashboard.services.errors import ProtocolError
from ckb_dashboard.services.halving import HalvingTarget, project_halving
from ckb_dashboard.services.history import HistorySample
from ckb_dashboard.services.rpc import CkbRpcClient
from ckb_dashboard.services.settings import DashboardSettings

logger = logging.getLogger(__name__)

MAINNET_CHAIN = "ckb"


@dataclass(frozen=True)
class PollOptions:
    # False keeps the caller's target so the countdown does not jump on every block.
    update_targets: bool = True


@dataclass(frozen=True)
class TelemetrySnapshot:
    block_number: int
    position: ChainPosition
    chain_type: str
    connections: int | None  # None when polled in public mode
    node_version: str | None  # None when polled in public mode
    pending: int
    proposed: int
    orphan: int
    total_tx_cycles: int
    total_tx_size: int
    min_fee_rate: int
    tx_size_limit: int | None
    history_sample: HistorySample
    target: HalvingTarget | None = None


def _now_ms() -> int:
    return int(time.time() * 1000)


def _field(data: Any, key: str, method: str) -> Any:
    if not isinstance(data, dict):
        raise ProtocolError(f"{method} returned {type(data).__name__}, expected an object")
    if data.get(key) is None:
        raise ProtocolError(f"{method} response is missing '{key}'")
    return data[key]


def _hex_int(value: Any, what: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if not isinstance(value, str):
        raise ProtocolError(f"{what} is not a hex string: {value!r}")
    try:
        return int(value, 16)
    except ValueError as exc:
        raise ProtocolError(f"{what} is not a hex string: {value!r}") from exc


def chain_label(chain: str) -> str:
    return "Mainnet" if chain == MAINNET_CHAIN else "Testnet"


def short_version(version: str) -> str:
    """'0.113.0 (a1b2c3d 2023-12-01)' -> 'v0.113.0'"""
    return "v" + version.split(" ")[0]


class TelemetrySnapshotBuilder:
    def __init__(self, client: CkbRpcClient, settings: DashboardSettings) -> None:
        self.client = client
        self.settings = settings

    def poll(
        self,
        public_mode: bool | None = None,
        options: PollOptions | None = None,
        current_target: HalvingTarget | None = None,
        now_ms: int | None = None,
    ) -> TelemetrySnapshot:
        """Query the node once and assemble a snapshot.

        Raises NetworkError or ProtocolError; nothing is returned on failure.
        """
        if public_mode is None:
            public_mode = self.settings.public_mode
        options = options or PollOptions()

        calls: list[tuple[str, list | None]] = [
            ("get_tip_header", None),
            ("get_blockchain_info", None),
            ("tx_pool_info", None),
        ]
        if not public_mode:
            calls.append(("local_node_info", None))
        results = self.client.batch_call(calls)
        tip_header, blockchain_info, pool_info = results[:3]

        block_number = _hex_int(_field(tip_header, "number", "get_tip_header"), "Block number")
        position = decode_epoch_hex(_field(tip_header, "epoch", "get_tip_header"))
        chain_type = chain_label(_field(blockchain_info, "chain", "get_blockchain_info"))

        connections: int | None = None
        node_version: str | None = None
        if not public_mode:
            node_info = results[3]
            connections = _hex_int(_field(node_info, "connections", "local_node_info"), "Connections")
            node_version = short_version(str(_field(node_info, "version", "local_node_info")))

        pool = {
            key: _hex_int(_field(pool_info, key, "tx_pool_info"), key)
            for key in ("pending", "proposed", "orphan", "total_tx_cycles", "total_tx_size", "min_fee_rate")
        }
        tx_size_limit = pool_info.get("tx_size_limit")
        if tx_size_limit is not None:
            tx_size_limit = _hex_int(tx_size_limit, "tx_size_limit")

        # Needs the height from the first batch, so it cannot be batched with it.
        sample = self._fetch_history_sample(block_number)

        if options.update_targets:
            target = project_halving(
                position,
                self.settings.epochs_per_halving,
                self.settings.hours_per_epoch,
                _now_ms() if now_ms is None else now_ms,
            )
        else:
            target = current_target

        return TelemetrySnapshot(
            block_number=block_number,
            position=position,
            chain_type=chain_type,
            connections=connections,
            node_version=node_version,
            history_sample=sample,
            target=target,
            tx_size_limit=tx_size_limit,
            **pool,
        )

    def _fetch_history_sample(self, block_number: int) -> HistorySample:
        result = self.client.get_block_by_number(block_number, "0x2", True)
        block = _field(result, "block", "get_block_by_number")
        transactions = _field(block, "transactions", "get_block_by_number")
        if not isinstance(transactions, list):
            raise ProtocolError("get_block_by_number returned a non-list transactions field")
        cycles = result.get("cycles") or []
        if not isinstance(cycles, list):
            raise ProtocolError("get_block_by_number returned a non-list cycles field")
        return HistorySample(
            block_number=block_number,
            tx_count=len(transactions),
            cycles_consumed=sum(_hex_int(c, "Cycles") for c in cycles),
        )
