"""Structural protocol state: blocks, QCs, DAG tips and finalization."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from functools import reduce
from typing import Dict, List, Optional, Set, Tuple

from . import tracing_setup
from .crypto import Signed, ThreshSigned
from .types import GEN_BLOCK_KEY, BlockKey, BlockType, ViewNum, VoteData

logger = logging.getLogger(__name__)


@dataclass
class PendingVotes:
    """Blocks of one view that may still receive a 1-vote or a 2-vote."""

    tr_1: Dict[BlockKey, bool] = field(default_factory=dict)
    tr_2: Dict[BlockKey, bool] = field(default_factory=dict)
    lead_1: Dict[BlockKey, bool] = field(default_factory=dict)
    lead_2: Dict[BlockKey, bool] = field(default_factory=dict)
    dirty: bool = False


class StateIndex:
    """Indexes over the blocks and QCs a process has seen."""

    def __init__(self, genesis_qc: ThreshSigned, genesis_block: Signed):
        self.all_1qc: Set[ThreshSigned] = set()
        self.tips: List[ThreshSigned] = [genesis_qc]
        self.blocks: Dict[BlockKey, Signed] = {GEN_BLOCK_KEY: genesis_block}
        self.block_pointed_by: Dict[BlockKey, Set[BlockKey]] = {}
        self.max_view: Tuple[ViewNum, ThreshSigned] = (ViewNum(-1), genesis_qc)
        self.max_height: Tuple[int, BlockKey] = (0, GEN_BLOCK_KEY)
        self.max_1qc: ThreshSigned = genesis_qc
        self.latest_leader_1qc: Optional[ThreshSigned] = None
        self.latest_leader_qc: Optional[ThreshSigned] = None
        self.latest_tr_qc: Optional[ThreshSigned] = None
        self.unfinalized_2qc: Set[ThreshSigned] = set()
        self.finalized: Dict[BlockKey, bool] = {GEN_BLOCK_KEY: True}
        self.unfinalized: Dict[BlockKey, Set[ThreshSigned]] = {}
        self.contains_lead_by_view: Dict[ViewNum, bool] = {}
        self.unfinalized_lead_by_view: Dict[ViewNum, Set[BlockKey]] = {}


class StateTrackingMixin:
    """Maintains M_i and Q_i of a Morpheus process."""

    def record_qc(self, qc: ThreshSigned) -> None:
        """Enumerate a new QC into Q_i and update tips and finalization."""
        if qc in self.qcs:
            return
        self.qcs.add(qc)

        key = qc.data.for_which
        if key.type_ == BlockType.GENESIS:
            return

        index = self.index
        if key.author is not None and key.author == self.id:
            if key.type_ == BlockType.LEAD and key.slot.is_pred(self.slot_i_lead):
                index.latest_leader_qc = qc
                if qc.data.z == 1:
                    index.latest_leader_1qc = qc
            if key.type_ == BlockType.TR and key.slot.is_pred(self.slot_i_tr):
                index.latest_tr_qc = qc

        index.unfinalized.setdefault(key, set()).add(qc)

        if qc.data.z == 1:
            index.all_1qc.add(qc)
            if index.max_1qc.data.compare_qc(qc.data) != 1:
                tracing_setup.protocol_transition(
                    self.id,
                    "updating max 1-QC",
                    index.max_1qc.data,
                    qc.data,
                    "new qc is greater than current max 1-QC",
                )
                index.max_1qc = qc

        if key.view > index.max_view[0]:
            index.max_view = (key.view, qc)

        superseded = [tip for tip in index.tips if self.observes(qc.data, tip.data)]
        if superseded:
            for tip in superseded:
                logger.info("yeet_tip new_tip=%r old_tip=%r", qc.data, tip.data)
            index.tips[:] = [tip for tip in index.tips if tip not in superseded]
            index.tips.append(qc)
            logger.info("new_tip qc=%r", qc.data)
        elif not any(self.observes(tip.data, qc.data) for tip in index.tips):
            index.tips.append(qc)
            logger.info("new_tip qc=%r", qc.data)

        finalized_here = {
            waiting
            for waiting in index.unfinalized_2qc
            if self.observes(qc.data, waiting.data)
        }
        # A QC observes itself, so it joins the waiting set only after the scan.
        if qc.data.z == 2:
            index.unfinalized_2qc.add(qc)
        index.unfinalized_2qc -= finalized_here

        for finalized in sorted(finalized_here):
            block_key = finalized.data.for_which
            logger.debug("finalized qc=%r", finalized.data)
            index.unfinalized_lead_by_view.setdefault(block_key.view, set()).discard(block_key)
            index.unfinalized.pop(block_key, None)
            index.finalized[block_key] = True
            self.pending_votes.setdefault(block_key.view, PendingVotes()).dirty = True

        if qc.data.z == 1:
            pending = self.pending_votes.setdefault(key.view, PendingVotes())
            pending.dirty = True
            if key.type_ == BlockType.LEAD:
                pending.lead_2[key] = True
            elif key.type_ == BlockType.TR:
                pending.tr_2[key] = True

    def record_block(self, block: Signed) -> None:
        """Add a block to M_i, along with every QC it carries."""
        key = block.data.key
        if key in self.index.blocks:
            logger.warning("duplicate_block key=%r", key)
            return
        if key.type_ == BlockType.GENESIS:
            raise ValueError("the genesis block is never recorded")
        if key in self.index.finalized:
            raise RuntimeError(f"block {key!r} already has a finalization entry")

        index = self.index
        if key.height > index.max_height[0]:
            logger.debug("new_max_height height=%s key=%r", key.height, key)
            index.max_height = (key.height, key)

        if key.author is not None and key.type_ == BlockType.LEAD and key.author == self.id:
            self.produced_lead_in_view[key.view] = True

        index.finalized[key] = False
        index.blocks[key] = block

        pending = self.pending_votes.setdefault(key.view, PendingVotes())
        if key.type_ == BlockType.LEAD:
            index.contains_lead_by_view[key.view] = True
            index.unfinalized_lead_by_view.setdefault(key.view, set()).add(key)
            pending.lead_1[key] = True
        else:
            pending.tr_1[key] = True
        pending.dirty = True

        for qc in block.data.prev:
            index.block_pointed_by.setdefault(qc.data.for_which, set()).add(key)

        for qc in block.data.prev:
            self.record_qc(qc)
        self.record_qc(block.data.one)

    def observes(self, root: VoteData, needle: VoteData) -> bool:
        """Whether ``root`` observes ``needle``: a search over the points-to graph."""
        to_visit = deque([root])
        seen = {root}
        while to_visit:
            node = to_visit.popleft()
            if self.directly_observes(node, needle):
                return True
            block = self.index.blocks.get(node.for_which)
            if block is None:
                logger.warning("Block not found for %r", node.for_which)
                continue
            for prev in block.data.prev:
                if prev.data not in seen:
                    seen.add(prev.data)
                    to_visit.append(prev.data)
        return False

    def directly_observes(self, looks: VoteData, seen: VoteData) -> bool:
        """The observes relation without transitivity."""
        a, b = looks.for_which, seen.for_which
        if a.type_ == b.type_ and a.author == b.author:
            if a.slot > b.slot:
                return True
            if a.slot == b.slot and looks.z >= seen.z:
                return True
        block = self.index.blocks.get(a)
        if block is not None:
            return any(prev.data.for_which == b for prev in block.data.prev)
        return False

    def _block_is_single_tip(self, block_key: BlockKey) -> bool:
        if len(self.index.tips) != 1:
            return False
        parents = self.index.block_pointed_by.get(self.index.tips[0].data.for_which)
        return parents is not None and parents == {block_key}

    def is_eligible_for_tr_1_vote(self, block_key: BlockKey) -> bool:
        if not self._block_is_single_tip(block_key):
            return False
        block = self.index.blocks.get(block_key)
        if block is None:
            return False
        one = block.data.one.data
        return all(one.compare_qc(qc.data) != -1 for qc in self.index.all_1qc)

    def is_eligible_for_tr_2_vote(self, block_key: BlockKey) -> bool:
        tips = self.index.tips
        has_single_tip = (
            len(tips) == 1 and tips[0].data.z == 1 and tips[0].data.for_which == block_key
        )
        return has_single_tip and self.index.max_height[0] <= block_key.height


def _max_by(items, compare):
    """Maximum under ``compare``, keeping the later item unless strictly less."""
    return reduce(lambda acc, item: acc if compare(acc, item) > 0 else item, items)