"""Decoding of CKB's packed EpochNumberWithFraction value.

The node reports the chain position as a single 64-bit integer (hex encoded):

    bits  0-23  epoch number
    bits 24-39  index of the block within the epoch
    bits 40-55  epoch length in blocks

See https://github.com/nervosnetwork/ckb/blob/master/rpc/README.md#type-epochnumberwithfraction
"""

from dataclasses import dataclass

from ckb_dashboard.services.errors import InvalidEpochError, ProtocolError

EPOCH_NUMBER_MASK = 0xFFFFFF
EPOCH_INDEX_MASK = 0xFFFF000000
EPOCH_INDEX_SHIFT = 24
EPOCH_LENGTH_MASK = 0xFFFF0000000000
EPOCH_LENGTH_SHIFT = 40
UINT64_MASK = 0xFFFFFFFFFFFFFFFF


@dataclass(frozen=True)
class ChainPosition:
    number: int
    index: int
    length: int

    @property
    def progress(self) -> float:
        """Fraction of the current epoch already elapsed."""
        if self.length <= 0:
            raise InvalidEpochError(
                f"Epoch {self.number} reported with length {self.length}"
            )
        return self.index / self.length

    def __str__(self) -> str:
        return f"{self.number:,} ({self.index:,}/{self.length:,})"


def decode_epoch(packed: int) -> ChainPosition:
    packed &= UINT64_MASK
    return ChainPosition(
        number=packed & EPOCH_NUMBER_MASK,
        index=(packed & EPOCH_INDEX_MASK) >> EPOCH_INDEX_SHIFT,
        length=(packed & EPOCH_LENGTH_MASK) >> EPOCH_LENGTH_SHIFT,
    )


def decode_epoch_hex(value: object) -> ChainPosition:
    """Decode the 0x-prefixed string returned by get_tip_header."""
    if not isinstance(value, str):
        raise ProtocolError(f"Epoch must be a hex string, got {value!r}")
    try:
        packed = int(value, 16)
    except ValueError as exc:
        raise ProtocolError(f"Epoch is not a hex value: {value!r}") from exc
    return decode_epoch(packed)


def encode_epoch(number: int, index: int, length: int) -> int:
    return (
        (number & EPOCH_NUMBER_MASK)
        | ((index & 0xFFFF) << EPOCH_INDEX_SHIFT)
        | ((length & 0xFFFF) << EPOCH_LENGTH_SHIFT)
    )
