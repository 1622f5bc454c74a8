import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from ckb_dashboard.services.errors import SettingsError

DEFAULT_CONF_PATH = Path.home() / ".config" / "ckb-dashboard" / "dashboard.conf"
ENV_PREFIX = "CKB_DASHBOARD_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {value!r}")


@dataclass(frozen=True)
class DashboardSettings:
    rpc_url: str = "http://127.0.0.1:8114"
    public_mode: bool = False
    epochs_per_halving: int = 8760
    hours_per_epoch: int = 4
    refresh_delay: float = 1.7
    full_refresh_delay: float = 5 * 60
    tick_delay: float = 0.5
    history_size: int = 100
    halving_message_hide_delay: int = 10 * 60 * 1000  # ms
    rpc_timeout: float | None = None
    discard_stale_snapshots: bool = False
    log_file: str | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.epochs_per_halving <= 0:
            raise SettingsError("epochs_per_halving must be positive")
        if self.hours_per_epoch <= 0:
            raise SettingsError("hours_per_epoch must be positive")
        if self.history_size <= 0:
            raise SettingsError("history_size must be positive")
        if self.halving_message_hide_delay < 0:
            raise SettingsError("halving_message_hide_delay must not be negative")
        for name in ("refresh_delay", "full_refresh_delay", "tick_delay"):
            if getattr(self, name) <= 0:
                raise SettingsError(f"{name} must be positive")

    @property
    def is_ready(self) -> bool:
        """An unset endpoint means polling must be skipped entirely."""
        return bool(self.rpc_url and self.rpc_url.strip())

    @classmethod
    def load(
        cls,
        conf_path: str | os.PathLike | None = None,
        environ: dict[str, str] | None = None,
    ) -> "DashboardSettings":
        """Build settings from defaults, then the conf file, then CKB_DASHBOARD_* env vars."""
        env = os.environ if environ is None else environ
        if conf_path is None:
            conf_path = env.get(f"{ENV_PREFIX}CONF", DEFAULT_CONF_PATH)
        raw: dict[str, str] = {}
        raw.update(cls._read_conf(Path(conf_path)))
        for name in _PARSERS:
            key = f"{ENV_PREFIX}{name.upper()}"
            if key in env:
                raw[name] = env[key]
        return cls(**cls._coerce(raw))

    @staticmethod
    def _read_conf(path: Path) -> dict[str, str]:
        if not path.exists():
            return {}
        values: dict[str, str] = {}
        for line in path.read_text().splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            values[key.strip().lower()] = value.strip()
        return values

    @staticmethod
    def _coerce(raw: dict[str, str]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for key, value in raw.items():
            parser = _PARSERS.get(key)
            if parser is None:
                continue
            try:
                values[key] = parser(value)
            except ValueError as exc:
                raise SettingsError(f"Invalid value for {key}: {value!r}") from exc
        return values


def _optional_float(value: str) -> float | None:
    return float(value) if value.strip() else None


def _optional_str(value: str) -> str | None:
    return value.strip() or None


_PARSERS: dict[str, Callable[[str], Any]] = {
    "rpc_url": str.strip,
    "public_mode": _parse_bool,
    "epochs_per_halving": int,
    "hours_per_epoch": int,
    "refresh_delay": float,
    "full_refresh_delay": float,
    "tick_delay": float,
    "history_size": int,
    "halving_message_hide_delay": int,
    "rpc_timeout": _optional_float,
    "discard_stale_snapshots": _parse_bool,
    "log_file": _optional_str,
    "log_level": lambda v: v.strip().upper(),
}
