"""Validation of received blocks against the Morpheus protocol rules."""

from __future__ import annotations

import enum
from typing import Any, Callable, Dict

from .crypto import Signed
from .format import format_block_key
from .types import (
    GEN_BLOCK_KEY,
    BlockType,
    GenesisData,
    LeadData,
    TrData,
)

_BLOCK_TYPE_DEBUG = {
    BlockType.GENESIS: "Genesis",
    BlockType.LEAD: "Lead",
    BlockType.TR: "Tr",
}


class ValidationErrorKind(enum.Enum):
    """The ways in which a block can fail validation."""

    INVALID_SIGNATURE = "invalid_signature"
    INVALID_GENESIS_BLOCK = "invalid_genesis_block"
    MISSING_AUTHOR = "missing_author"
    EMPTY_PREV_POINTERS = "empty_prev_pointers"
    PREV_QC_VIEW_GREATER_THAN_BLOCK_VIEW = "prev_qc_view_greater_than_block_view"
    PREV_QC_HEIGHT_GREATER_OR_EQUAL_BLOCK_HEIGHT = "prev_qc_height_greater_or_equal_block_height"
    ONE_QC_NOT_Z1 = "one_qc_not_z1"
    ONE_QC_HEIGHT_GREATER_OR_EQUAL_BLOCK_HEIGHT = "one_qc_height_greater_or_equal_block_height"
    INVALID_HEIGHT = "invalid_height"
    BLOCK_DATA_TYPE_MISMATCH = "block_data_type_mismatch"
    MISSING_PREDECESSOR_TR_BLOCK = "missing_predecessor_tr_block"
    EMPTY_TRANSACTIONS = "empty_transactions"
    NOT_LEADER = "not_leader"
    MISSING_PREDECESSOR_LEAD_BLOCK = "missing_predecessor_lead_block"
    INCORRECT_ONE_QC_FOR_LEAD_BLOCK = "incorrect_one_qc_for_lead_block"
    INVALID_JUSTIFICATION_SIZE = "invalid_justification_size"
    INVALID_JUSTIFICATION_SIGNATURE = "invalid_justification_signature"
    JUSTIFICATION_QC_LESS_THAN_ONE_QC = "justification_qc_less_than_one_qc"
    INVALID_PREV_QC_SIGNATURE = "invalid_prev_qc_signature"
    INVALID_ONE_QC_SIGNATURE = "invalid_one_qc_signature"
    INVALID_GENESIS_ONE_QC = "invalid_genesis_one_qc"


K = ValidationErrorKind

_MESSAGES: Dict[ValidationErrorKind, Callable[[Dict[str, Any]], str]] = {
    K.INVALID_SIGNATURE: lambda d: "Block has invalid signature",
    K.INVALID_GENESIS_BLOCK: lambda d: (
        f"Invalid genesis block with key {format_block_key(d['key'])}"
    ),
    K.MISSING_AUTHOR: lambda d: f"Block key {format_block_key(d['key'])} is missing author",
    K.EMPTY_PREV_POINTERS: lambda d: "Block has empty prev pointers",
    K.PREV_QC_VIEW_GREATER_THAN_BLOCK_VIEW: lambda d: (
        f"Prev QC view {d['prev_view'].value} > block view {d['block_view'].value}"
    ),
    K.PREV_QC_HEIGHT_GREATER_OR_EQUAL_BLOCK_HEIGHT: lambda d: (
        f"Prev QC height {d['prev_height']} >= block height {d['block_height']}"
    ),
    K.ONE_QC_NOT_Z1: lambda d: f"Block's one-QC has z = {d['z']} instead of 1",
    K.ONE_QC_HEIGHT_GREATER_OR_EQUAL_BLOCK_HEIGHT: lambda d: (
        f"Block's one-QC height {d['qc_height']} >= block height {d['block_height']}"
    ),
    K.INVALID_HEIGHT: lambda d: (
        f"Block height {d['block_height']} is not exactly 1 more than "
        f"max prev height {d['max_prev_height']}"
    ),
    K.BLOCK_DATA_TYPE_MISMATCH: lambda d: (
        f"Block key type {_BLOCK_TYPE_DEBUG[d['key_type']]} does not match "
        f"block data type {_BLOCK_TYPE_DEBUG[d['data_type']]}"
    ),
    K.MISSING_PREDECESSOR_TR_BLOCK: lambda d: (
        f"Transaction block at slot {d['slot'].value} is missing predecessor"
    ),
    K.EMPTY_TRANSACTIONS: lambda d: "Transaction block has no transactions",
    K.NOT_LEADER: lambda d: (
        f"Block author {d['leader'].value} is not the leader for view {d['view'].value}"
    ),
    K.MISSING_PREDECESSOR_LEAD_BLOCK: lambda d: (
        f"Leader block at slot {d['slot'].value} is missing predecessor"
    ),
    K.INCORRECT_ONE_QC_FOR_LEAD_BLOCK: lambda d: (
        f"Leader block's one-QC points to {format_block_key(d['one_qc_for'])} "
        f"instead of {format_block_key(d['expected_for'])}"
    ),
    K.INVALID_JUSTIFICATION_SIZE: lambda d: (
        f"Leader block justification has size {d['size']} instead of expected {d['expected']}"
    ),
    K.INVALID_JUSTIFICATION_SIGNATURE: lambda d: (
        "Leader block justification contains invalid signatures"
    ),
    K.JUSTIFICATION_QC_LESS_THAN_ONE_QC: lambda d: (
        "Leader block justification contains QC less than one-QC"
    ),
    K.INVALID_PREV_QC_SIGNATURE: lambda d: "Prev QC has invalid signature",
    K.INVALID_ONE_QC_SIGNATURE: lambda d: "One-QC has invalid signature",
    K.INVALID_GENESIS_ONE_QC: lambda d: "One-QC referring to genesis block is invalid",
}


class BlockValidationError(Exception):
    """A block broke one of the protocol rules; ``details`` names the values involved."""

    def __init__(self, kind: ValidationErrorKind, **details: Any):
        self.kind = kind
        self.details = details
        super().__init__(_MESSAGES[kind](details))


class BlockValidationMixin:
    """Block validation of a Morpheus process."""

    def block_valid(self, signed_block: Signed) -> None:
        """Check a signed block, raising BlockValidationError on the first rule broken."""
        block = signed_block.data
        key = block.key

        if key.type_ == BlockType.GENESIS:
            if (
                key == GEN_BLOCK_KEY
                and not block.prev
                and block.one == self.genesis_qc
                and block.data == GenesisData()
            ):
                return
            raise BlockValidationError(K.INVALID_GENESIS_BLOCK, key=key)

        author = key.author
        if author is None:
            raise BlockValidationError(K.MISSING_AUTHOR, key=key)

        if not signed_block.valid_signature(self.kb):
            raise BlockValidationError(K.INVALID_SIGNATURE)

        if not block.prev:
            raise BlockValidationError(K.EMPTY_PREV_POINTERS)

        quorum = self.n - self.f
        for prev in block.prev:
            prev_key = prev.data.for_which
            if prev_key.view > key.view:
                raise BlockValidationError(
                    K.PREV_QC_VIEW_GREATER_THAN_BLOCK_VIEW,
                    prev_view=prev_key.view,
                    block_view=key.view,
                )
            if prev_key.height >= key.height:
                raise BlockValidationError(
                    K.PREV_QC_HEIGHT_GREATER_OR_EQUAL_BLOCK_HEIGHT,
                    prev_height=prev_key.height,
                    block_height=key.height,
                )
            if prev != self.genesis_qc and not prev.valid_signature(self.kb, quorum):
                raise BlockValidationError(K.INVALID_PREV_QC_SIGNATURE)

        one = block.one
        if one.data.z != 1:
            raise BlockValidationError(K.ONE_QC_NOT_Z1, z=one.data.z)
        if one.data.for_which.height >= key.height:
            raise BlockValidationError(
                K.ONE_QC_HEIGHT_GREATER_OR_EQUAL_BLOCK_HEIGHT,
                qc_height=one.data.for_which.height,
                block_height=key.height,
            )
        if one.data.for_which.type_ != BlockType.GENESIS:
            if not one.valid_signature(self.kb, quorum):
                raise BlockValidationError(K.INVALID_ONE_QC_SIGNATURE)
        elif one != self.genesis_qc:
            raise BlockValidationError(K.INVALID_GENESIS_ONE_QC)

        max_prev_height = max(prev.data.for_which.height for prev in block.prev)
        if key.height != max_prev_height + 1:
            raise BlockValidationError(
                K.INVALID_HEIGHT, block_height=key.height, max_prev_height=max_prev_height
            )

        data = block.data
        if isinstance(data, TrData):
            self._validate_tr_block(block, author, data)
        elif isinstance(data, LeadData):
            self._validate_lead_block(block, author, data)
        else:
            raise BlockValidationError(
                K.BLOCK_DATA_TYPE_MISMATCH, key_type=key.type_, data_type=BlockType.GENESIS
            )

    def _validate_tr_block(self, block, author, data: TrData) -> None:
        key = block.key
        if key.type_ != BlockType.TR:
            raise BlockValidationError(
                K.BLOCK_DATA_TYPE_MISMATCH, key_type=key.type_, data_type=BlockType.TR
            )
        if not key.slot.is_zero() and not any(
            qc.data.for_which.type_ == BlockType.TR
            and qc.data.for_which.author == author
            and qc.data.for_which.slot.is_pred(key.slot)
            for qc in block.prev
        ):
            raise BlockValidationError(K.MISSING_PREDECESSOR_TR_BLOCK, slot=key.slot)
        if not data.transactions:
            raise BlockValidationError(K.EMPTY_TRANSACTIONS)

    def _validate_lead_block(self, block, author, data: LeadData) -> None:
        key = block.key
        if key.type_ != BlockType.LEAD:
            raise BlockValidationError(
                K.BLOCK_DATA_TYPE_MISMATCH, key_type=key.type_, data_type=BlockType.LEAD
            )
        if not self.verify_leader(author, key.view):
            raise BlockValidationError(K.NOT_LEADER, leader=author, view=key.view)

        prev_leader_for = [
            qc
            for qc in block.prev
            if qc.data.for_which.type_ == BlockType.LEAD
            and qc.data.for_which.author == author
            and qc.data.for_which.slot.is_pred(key.slot)
        ]

        if not key.slot.is_zero():
            if len(prev_leader_for) != 1:
                raise BlockValidationError(K.MISSING_PREDECESSOR_LEAD_BLOCK, slot=key.slot)
            expected = prev_leader_for[0].data.for_which
            if expected.view == key.view and block.one.data.for_which != expected:
                raise BlockValidationError(
                    K.INCORRECT_ONE_QC_FOR_LEAD_BLOCK,
                    one_qc_for=block.one.data.for_which,
                    expected_for=expected,
                )

        if key.slot.is_zero() or prev_leader_for[0].data.for_which.view < key.view:
            justification = sorted(data.justification, key=lambda message: message.author)
            expected_size = self.n - self.f
            if len(justification) < expected_size:
                raise BlockValidationError(
                    K.INVALID_JUSTIFICATION_SIZE,
                    size=len(justification),
                    expected=expected_size,
                )
            if not all(message.valid_signature(self.kb) for message in justification):
                raise BlockValidationError(K.INVALID_JUSTIFICATION_SIGNATURE)
            if not all(
                block.one.data.compare_qc(message.data.qc.data) != -1
                for message in justification
            ):
                raise BlockValidationError(K.JUSTIFICATION_QC_LESS_THAN_ONE_QC)