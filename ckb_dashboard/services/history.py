from dataclasses import dataclass, field
from typing import Iterator

DEFAULT_HISTORY_SIZE = 100


@dataclass(frozen=True)
class HistorySample:
    block_number: int
    tx_count: int = 0
    cycles_consumed: int = 0


@dataclass(frozen=True)
class HistoryBuffer:
    """The most recent ``capacity`` distinct blocks, oldest first."""

    capacity: int = DEFAULT_HISTORY_SIZE
    samples: tuple[HistorySample, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ValueError("History capacity must be positive")
        if len(self.samples) > self.capacity:
            raise ValueError("History holds more samples than its capacity")

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self) -> Iterator[HistorySample]:
        return iter(self.samples)

    def __contains__(self, block_number: object) -> bool:
        return any(s.block_number == block_number for s in self.samples)

    @property
    def block_numbers(self) -> list[int]:
        return [s.block_number for s in self.samples]

    @property
    def latest(self) -> HistorySample | None:
        return self.samples[-1] if self.samples else None

    def append(self, sample: HistorySample | None) -> "HistoryBuffer":
        """Return the buffer with ``sample`` added.

        Blocks already present (or a missing block number) leave the buffer
        unchanged, and the same instance is returned.
        """
        if sample is None or not sample.block_number or sample.block_number in self:
            return self
        samples = self.samples
        if len(samples) >= self.capacity:
            samples = samples[len(samples) - self.capacity + 1:]
        return HistoryBuffer(capacity=self.capacity, samples=samples + (sample,))

    def tx_counts(self) -> list[int]:
        return [s.tx_count for s in self.samples]

    def cycles(self) -> list[int]:
        return [s.cycles_consumed for s in self.samples]
