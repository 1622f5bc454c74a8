import math
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo

from ckb_dashboard.services.epoch import ChainPosition

HALVING_MESSAGE = "🎉🎈Happy Halving!🎈🎉"

# Time constants (in milliseconds). Months are a flat 30 days.
SECOND_MS = 1000
MINUTE_MS = SECOND_MS * 60
HOUR_MS = MINUTE_MS * 60
DAY_MS = HOUR_MS * 24
MONTH_MS = DAY_MS * 30


@dataclass(frozen=True)
class HalvingTarget:
    epoch: int
    time: int  # epoch milliseconds


@dataclass(frozen=True)
class TimeValue:
    months: int = 0
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0


def project_halving(
    position: ChainPosition,
    epochs_per_halving: int,
    hours_per_epoch: int,
    now_ms: int,
) -> HalvingTarget:
    """Estimate the epoch and wall-clock time of the next halving.

    The estimate is anchored to ``now_ms``, so calling this repeatedly within
    the same epoch moves the target time forward with the clock.
    """
    target_epoch = (position.number // epochs_per_halving) * epochs_per_halving + epochs_per_halving
    # progress raises InvalidEpochError for a zero-length epoch
    remaining_epochs = target_epoch - (position.number + position.progress)
    duration = math.floor(remaining_epochs * hours_per_epoch * HOUR_MS)
    return HalvingTarget(epoch=target_epoch, time=now_ms + duration)


def calculate_time_value(time_from_now: int) -> TimeValue:
    months, rest = divmod(int(time_from_now), MONTH_MS)
    days, rest = divmod(rest, DAY_MS)
    hours, rest = divmod(rest, HOUR_MS)
    minutes, rest = divmod(rest, MINUTE_MS)
    seconds = rest // SECOND_MS
    return TimeValue(months=months, days=days, hours=hours, minutes=minutes, seconds=seconds)


def format_countdown(
    target_time: int | None,
    now_ms: int,
    epochs_per_halving: int,
    hours_per_epoch: int,
    celebration_window_ms: int,
) -> str:
    """Return the countdown to ``target_time``, or the halving message right after one."""
    if not target_time:
        return ""
    remaining = target_time - now_ms
    # A target almost a full cycle away means a halving just happened.
    threshold = epochs_per_halving * hours_per_epoch * HOUR_MS - celebration_window_ms
    if 0 < remaining < threshold:
        value = calculate_time_value(remaining)
        return f"{value.months}m, {value.days}d, {value.hours}h, {value.minutes}m, {value.seconds}s"
    return HALVING_MESSAGE


def format_target_date(target: HalvingTarget | None, tz: tzinfo | None = None) -> str:
    """Format the target as e.g. ``Tuesday, Nov 19, 2024`` in local time."""
    if target is None or not target.epoch:
        return ""
    moment = datetime.fromtimestamp(target.time / 1000, tz=timezone.utc).astimezone(tz)
    return f"{moment:%A}, {moment:%b} {moment.day}, {moment.year}"
