"""Vote collection, quorum formation and pending-vote evaluation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Optional, TypeVar

from . import tracing_setup
from .crypto import Identity, ThreshPartial, ThreshSigned, canonical_bytes, sign_aggregate
from .types import BlockKey, BlockType, Message, MessageKind, Phase, VoteData

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DuplicateVote(Exception):
    """Raised when a process votes twice for the same data."""


@dataclass
class QuorumTrack(Generic[T]):
    """Collects votes per data item, at most one per voter."""

    votes: Dict[T, Dict[Identity, ThreshPartial]] = field(default_factory=dict)

    def record_vote(self, vote: ThreshPartial) -> int:
        """Record ``vote`` and return how many votes its data now has."""
        votes_now = self.votes.setdefault(vote.data, {})
        if vote.author in votes_now:
            raise DuplicateVote(f"{vote.author} already voted for {vote.data!r}")
        votes_now[vote.author] = vote
        return len(votes_now)


class VotingMixin:
    """Voting behaviour of a Morpheus process."""

    def try_vote(self, z: int, block: BlockKey, target: Optional[Identity] = None) -> bool:
        """Vote ``z`` for ``block`` unless already done; return whether a vote was sent."""
        logger.debug("try_vote z=%s block=%r target=%r", z, block, target)
        if block.author is None:
            raise ValueError("not voting for genesis block")
        marker = (z, block.type_, block.slot, block.author)
        if marker in self.voted_i:
            return False
        self.voted_i.add(marker)
        voted = ThreshPartial.from_data(VoteData(z, block), self.kb)
        self.send_msg(Message(MessageKind.NEW_VOTE, voted), target)
        return True

    def record_vote(self, vote: ThreshPartial) -> bool:
        """Track a vote, forming a QC at quorum; False if the voter already voted."""
        logger.debug("record_vote vote_data=%r", vote.data)
        try:
            num_votes = self.vote_tracker.record_vote(vote)
        except DuplicateVote:
            logger.error("duplicate_vote vote_data=%r author=%r", vote.data, vote.author)
            return False

        quorum = self.n - self.f
        if num_votes >= quorum:
            parts = [
                (v.author.value - 1, v.signature)
                for v in self.vote_tracker.votes[vote.data].values()
            ]
            signature = sign_aggregate(quorum, parts, canonical_bytes(vote.data))
            quorum_formed = ThreshSigned(vote.data, signature)

            key = vote.data.for_which
            if vote.data.z == 0 and key.author == self.id and key not in self.zero_qcs_sent:
                self.zero_qcs_sent.add(key)
                tracing_setup.qc_formed(self.id, vote.data.z, vote.data)
                self.send_msg(Message(MessageKind.QC, quorum_formed), None)
            self.record_qc(quorum_formed)
        return True

    def reevaluate_pending_votes(self) -> None:
        """Cast any pending votes that have become eligible in the current view."""
        current_view = self.view_i
        all_pending = self.pending_votes
        self.pending_votes = {}

        pending = all_pending.get(current_view)
        if pending is None or not pending.dirty:
            self.pending_votes = all_pending
            return

        contains_lead = self.index.contains_lead_by_view.get(current_view, False)
        unfinalized_lead_empty = not self.index.unfinalized_lead_by_view.get(current_view)

        if contains_lead and unfinalized_lead_empty:
            self._process_block_votes(
                1,
                pending.tr_1,
                lambda key: self.is_eligible_for_tr_1_vote(key),
                "1-voted for a transaction block",
            )
            self._process_block_votes(
                2,
                pending.tr_2,
                lambda key: self.is_eligible_for_tr_2_vote(key),
                "2-voted for a transaction block",
            )

        if self.phase_i.get(current_view, Phase.HIGH) == Phase.HIGH:
            self._process_block_votes(
                1, pending.lead_1, lambda key: key.view == current_view, None
            )
            self._process_block_votes(
                2, pending.lead_2, lambda key: key.view == current_view, None
            )

        pending.dirty = False
        self.pending_votes = all_pending

    def _process_block_votes(
        self,
        vote_level: int,
        pending: Dict[BlockKey, bool],
        eligible: Callable[[BlockKey], bool],
        phase_transition_reason: Optional[str],
    ) -> None:
        processed = []
        for block_key in sorted(pending):
            if not eligible(block_key):
                continue
            if not self.try_vote(vote_level, block_key, None):
                raise RuntimeError(
                    f"already {vote_level}-voted {block_key!r}, pending votes desync bug"
                )
            if block_key.type_ == BlockType.TR and phase_transition_reason is not None:
                tracing_setup.protocol_transition(
                    self.id, "throughput phase", Phase.HIGH, Phase.LOW, phase_transition_reason
                )
                self.set_phase(Phase.LOW)
            processed.append(block_key)
        for block_key in processed:
            pending.pop(block_key, None)