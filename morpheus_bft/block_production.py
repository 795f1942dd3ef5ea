"""Production of transaction blocks and leader blocks."""

from __future__ import annotations

from functools import reduce

from . import tracing_setup
from .crypto import Signed
from .types import (
    Block,
    BlockHash,
    BlockKey,
    BlockType,
    LeadData,
    Message,
    MessageKind,
    Phase,
    SlotNum,
    TrData,
)


def _next_height(qcs) -> int:
    return max((qc.data.for_which.height for qc in qcs), default=0) + 1


class BlockProductionMixin:
    """Block production of a Morpheus process."""

    def try_produce_blocks(self) -> None:
        """Produce a transaction block and, as leader, a leader block when ready."""
        if self._payload_ready():
            self._make_tr_block()

        if (
            self.id == self.lead(self.view_i)
            and self._leader_ready()
            and self.phase_i.get(self.view_i, Phase.HIGH) == Phase.HIGH
            and len(self.index.tips) > 1
        ):
            self._make_leader_block()

    def _payload_ready(self) -> bool:
        has_transactions = bool(self.ready_transactions)
        if not self.slot_i_tr.is_zero():
            latest = self.index.latest_tr_qc
            has_prev_qc = latest is not None and latest.data.for_which.slot.is_pred(
                self.slot_i_tr
            )
            return has_transactions and has_prev_qc
        return has_transactions

    def _make_tr_block(self) -> None:
        slot = self.slot_i_tr
        prev_qcs = []

        if not slot.is_zero():
            latest = self.index.latest_tr_qc
            if latest is None:
                raise RuntimeError("transaction block produced without a previous QC")
            if latest.data.for_which.slot.is_pred(slot):
                prev_qcs.append(latest)
        else:
            prev_qcs.append(self.genesis_qc)

        # A single tip is pointed to as well, unless already present.
        if len(self.index.tips) == 1:
            tip = self.index.tips[0]
            if not any(qc.data.for_which == tip.data.for_which for qc in prev_qcs):
                prev_qcs.append(tip)

        key = BlockKey(
            type_=BlockType.TR,
            view=self.view_i,
            height=_next_height(prev_qcs),
            author=self.id,
            slot=slot,
            hash=BlockHash(self.id.value * 0x100 + slot.value),
        )
        block = Block(key, tuple(prev_qcs), self.index.max_1qc, TrData(self.ready_transactions))
        self.ready_transactions = []

        tracing_setup.block_created(self.id, "transaction", block.key)
        signed_block = Signed.from_data(block, self.kb)

        self.slot_i_tr = SlotNum(slot.value + 1)
        self.index.latest_tr_qc = None

        self.send_msg(Message(MessageKind.BLOCK, signed_block), None)

    def _leader_ready(self) -> bool:
        view = self.view_i
        slot = self.slot_i_lead

        def made_for_previous_slot(qc) -> bool:
            return qc is not None and qc.data.for_which.slot.is_pred(slot)

        if self.produced_lead_in_view.get(view, False):
            return made_for_previous_slot(self.index.latest_leader_1qc)

        messages = self.start_views.get(view)
        has_enough_view_messages = messages is not None and len(messages) >= self.n - self.f
        return has_enough_view_messages and (
            slot.is_zero() or made_for_previous_slot(self.index.latest_leader_qc)
        )

    def _make_leader_block(self) -> None:
        slot = self.slot_i_lead
        view = self.view_i
        prev_qcs = list(self.index.tips)

        if not slot.is_zero():
            prev_qc = self.index.latest_leader_qc
            if prev_qc is None or not prev_qc.data.for_which.slot.is_pred(slot):
                raise RuntimeError("leader block produced without the previous leader QC")
            if not any(qc.data.for_which == prev_qc.data.for_which for qc in prev_qcs):
                prev_qcs.append(prev_qc)

        if not self.produced_lead_in_view.get(view, False):
            view_messages = list(self.start_views.get(view, []))
            qcs = [message.data.qc for message in view_messages]
            one_qc = (
                reduce(lambda acc, qc: acc if acc.data.compare_qc(qc.data) > 0 else qc, qcs)
                if qcs
                else self.index.max_1qc
            )
            justification = view_messages
        else:
            one_qc = self.index.latest_leader_1qc or self.index.max_1qc
            justification = []

        key = BlockKey(
            type_=BlockType.LEAD,
            view=view,
            height=_next_height(prev_qcs),
            author=self.id,
            slot=slot,
            hash=BlockHash(slot.value),
        )
        block = Block(key, tuple(prev_qcs), one_qc, LeadData(justification))

        tracing_setup.block_created(self.id, "leader", block.key)
        signed_block = Signed.from_data(block, self.kb)

        self.send_msg(Message(MessageKind.BLOCK, signed_block), None)

        self.slot_i_lead = SlotNum(self.slot_i_lead.value + 1)