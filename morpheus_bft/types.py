"""Protocol data types: block keys, votes, blocks and messages.

Transactions may be any hashable, orderable value that ``canonical_bytes``
can encode (integers, strings, bytes or objects with ``encode_canonical``).
"""

from __future__ import annotations

import enum
import functools
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, Tuple

from .crypto import Identity, Signed, ThreshSigned, canonical_bytes


def _optional(value) -> bytes:
    return b"\x00" if value is None else b"\x01" + canonical_bytes(value)


def _option_order(value) -> tuple:
    return (0,) if value is None else (1, value)


class BlockType(enum.IntEnum):
    """Kinds of block; leader blocks order before transaction blocks."""

    GENESIS = 0
    LEAD = 1
    TR = 2

    @classmethod
    def from_byte(cls, value: int) -> "BlockType":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"invalid block type byte {value}") from None

    def encode_canonical(self) -> bytes:
        return bytes([int(self)])


@dataclass(frozen=True, order=True)
class ViewNum:
    value: int

    def incr(self) -> "ViewNum":
        return ViewNum(self.value + 1)

    def encode_canonical(self) -> bytes:
        return self.value.to_bytes(8, "little", signed=True)


@dataclass(frozen=True, order=True)
class SlotNum:
    value: int

    def is_pred(self, other: "SlotNum") -> bool:
        return self.value + 1 == other.value

    def is_zero(self) -> bool:
        return self.value == 0

    def encode_canonical(self) -> bytes:
        return self.value.to_bytes(8, "little")


@dataclass(frozen=True, order=True)
class BlockHash:
    value: int

    def encode_canonical(self) -> bytes:
        return self.value.to_bytes(8, "little")


@functools.total_ordering
@dataclass(frozen=True)
class BlockKey:
    """Identifies a block; a missing author or hash sorts first."""

    type_: BlockType
    view: ViewNum
    height: int
    author: Optional[Identity]
    slot: SlotNum
    hash: Optional[BlockHash]

    def _order_key(self) -> tuple:
        return (
            self.type_,
            self.view,
            self.height,
            _option_order(self.author),
            self.slot,
            _option_order(self.hash),
        )

    def __lt__(self, other):
        if not isinstance(other, BlockKey):
            return NotImplemented
        return self._order_key() < other._order_key()

    def encode_canonical(self) -> bytes:
        return (
            self.type_.encode_canonical()
            + self.view.encode_canonical()
            + self.height.to_bytes(8, "little")
            + _optional(self.author)
            + self.slot.encode_canonical()
            + _optional(self.hash)
        )


GEN_BLOCK_KEY = BlockKey(
    type_=BlockType.GENESIS,
    view=ViewNum(-1),
    height=0,
    author=None,
    slot=SlotNum(0),
    hash=None,
)


@dataclass(frozen=True, order=True)
class VoteData:
    """A z-vote (z in 0, 1, 2) for a block."""

    z: int
    for_which: BlockKey

    def compare_qc(self, other: "VoteData") -> int:
        """Order QCs by view, then block type, then height: -1, 0 or 1."""
        mine = (self.for_which.view, self.for_which.type_, self.for_which.height)
        theirs = (other.for_which.view, other.for_which.type_, other.for_which.height)
        return (mine > theirs) - (mine < theirs)

    def encode_canonical(self) -> bytes:
        return bytes([self.z]) + self.for_which.encode_canonical()


FinishedQC = ThreshSigned[VoteData]


@dataclass(frozen=True, order=True)
class StartView:
    """Sent to the new leader on entering a view, with the maximal 1-QC seen."""

    view: ViewNum
    qc: ThreshSigned

    def encode_canonical(self) -> bytes:
        return self.view.encode_canonical() + self.qc.encode_canonical()


class _BlockDataOrder:
    tag: ClassVar[int]
    block_type: ClassVar[BlockType]

    def _fields(self) -> tuple:
        return ()

    def _order_key(self) -> tuple:
        return (self.tag, self._fields())

    def __lt__(self, other):
        if not isinstance(other, _BlockDataOrder):
            return NotImplemented
        return self._order_key() < other._order_key()

    def __le__(self, other):
        if not isinstance(other, _BlockDataOrder):
            return NotImplemented
        return self._order_key() <= other._order_key()

    def __gt__(self, other):
        if not isinstance(other, _BlockDataOrder):
            return NotImplemented
        return self._order_key() > other._order_key()

    def __ge__(self, other):
        if not isinstance(other, _BlockDataOrder):
            return NotImplemented
        return self._order_key() >= other._order_key()


@dataclass(frozen=True)
class GenesisData(_BlockDataOrder):
    tag: ClassVar[int] = 0
    block_type: ClassVar[BlockType] = BlockType.GENESIS

    def encode_canonical(self) -> bytes:
        return b"\x00"


@dataclass(frozen=True)
class TrData(_BlockDataOrder):
    transactions: Tuple[Any, ...]

    tag: ClassVar[int] = 1
    block_type: ClassVar[BlockType] = BlockType.TR

    def __post_init__(self):
        object.__setattr__(self, "transactions", tuple(self.transactions))

    def _fields(self) -> tuple:
        return self.transactions

    def encode_canonical(self) -> bytes:
        return b"\x01" + canonical_bytes(self.transactions)


@dataclass(frozen=True)
class LeadData(_BlockDataOrder):
    justification: Tuple[Signed, ...]

    tag: ClassVar[int] = 2
    block_type: ClassVar[BlockType] = BlockType.LEAD

    def __post_init__(self):
        object.__setattr__(self, "justification", tuple(self.justification))

    def _fields(self) -> tuple:
        return self.justification

    def encode_canonical(self) -> bytes:
        return b"\x02" + canonical_bytes(self.justification)


@dataclass(frozen=True, order=True)
class Block:
    key: BlockKey
    prev: Tuple[ThreshSigned, ...]
    one: ThreshSigned
    data: Any

    def __post_init__(self):
        object.__setattr__(self, "prev", tuple(self.prev))

    def encode_canonical(self) -> bytes:
        return (
            self.key.encode_canonical()
            + canonical_bytes(self.prev)
            + self.one.encode_canonical()
            + self.data.encode_canonical()
        )


class MessageKind(enum.IntEnum):
    BLOCK = 0
    NEW_VOTE = 1
    QC = 2
    END_VIEW = 3
    END_VIEW_CERT = 4
    START_VIEW = 5


@dataclass(frozen=True, order=True)
class Message:
    """A protocol message: its kind and the signed payload it carries."""

    kind: MessageKind
    payload: Any


class Phase(enum.IntEnum):
    HIGH = 0
    LOW = 1