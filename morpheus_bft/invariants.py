"""Checks of the internal state invariants of a Morpheus process."""

from __future__ import annotations

from collections import Counter
from typing import List

from .types import GEN_BLOCK_KEY, BlockType, MessageKind
from .violations import InvariantViolation, ViolationKind

V = ViolationKind

_PENDING_CATEGORIES = (("tr_1", 1), ("tr_2", 2), ("lead_1", 1), ("lead_2", 2))


class InvariantsMixin:
    """Invariant checking of a Morpheus process, meant for tests and debugging."""

    def _is_finalized(self, key) -> bool:
        return self.index.finalized.get(key, False)

    def check_invariants(self) -> List[InvariantViolation]:
        """Return every protocol invariant the current state breaks."""
        violations: List[InvariantViolation] = []
        report = violations.append
        index = self.index

        if self.view_i not in self.phase_i:
            report(InvariantViolation(V.VIEW_HAS_NO_PHASE, view=self.view_i))

        if self.view_entry_time > self.current_time:
            report(
                InvariantViolation(
                    V.VIEW_ENTRY_TIME_AFTER_CURRENT_TIME,
                    view_entry_time=self.view_entry_time,
                    current_time=self.current_time,
                )
            )

        qcs = sorted(self.qcs)
        qc_datas = [qc.data for qc in qcs]

        self._check_block_dag(report)
        self._check_tips(report, qcs, qc_datas)

        # A 2-QC is final exactly when some other QC observes it.
        for vote_data in qc_datas:
            if vote_data.z != 2:
                continue
            block_key = vote_data.for_which
            observed_by_any = any(
                other != vote_data and self.observes(other, vote_data) for other in qc_datas
            )
            is_marked_final = self._is_finalized(block_key)
            if observed_by_any and not is_marked_final:
                report(InvariantViolation(V.BLOCK_WITH_OBSERVED_2QC_NOT_FINALIZED, block=block_key))
            if is_marked_final and not observed_by_any:
                report(InvariantViolation(V.FINALIZED_BLOCK_NOT_2QC_OBSERVED, block=block_key))

        recorded_height, max_height_key = index.max_height
        actual_height = max((key.height for key in index.blocks), default=0)
        if recorded_height != actual_height:
            report(
                InvariantViolation(
                    V.MAX_HEIGHT_MISMATCH, recorded=recorded_height, actual=actual_height
                )
            )
        if recorded_height > 0 and max_height_key not in index.blocks:
            report(InvariantViolation(V.MAX_HEIGHT_KEY_DOES_NOT_EXIST, key=max_height_key))

        max_1qc = index.max_1qc.data
        if max_1qc.z != 1:
            report(InvariantViolation(V.MAX_1QC_HAS_WRONG_Z, z=max_1qc.z))
        for vote_data in qc_datas:
            if vote_data.z == 1 and vote_data.compare_qc(max_1qc) == 1:
                report(
                    InvariantViolation(
                        V.FOUND_1QC_GREATER_THAN_MAX_1QC, found=vote_data, max_1qc=max_1qc
                    )
                )

        for key, is_finalized in sorted(index.finalized.items()):
            if is_finalized and key in index.unfinalized:
                report(InvariantViolation(V.BLOCK_FINALIZED_BUT_ALSO_UNFINALIZED, block=key))

        for qc in sorted(index.unfinalized_2qc):
            if qc.data.z != 2:
                report(InvariantViolation(V.UNFINALIZED_QC_HAS_WRONG_Z, vote_data=qc))
            if qc.data not in qc_datas:
                report(InvariantViolation(V.UNFINALIZED_QC_NOT_IN_QCS, vote_data=qc))
            if qc.data.for_which not in index.unfinalized:
                report(
                    InvariantViolation(
                        V.BLOCK_FOR_UNFINALIZED_QC_NOT_IN_UNFINALIZED, block=qc.data.for_which
                    )
                )

        leader = self.lead(self.view_i)
        if not self.verify_leader(leader, self.view_i):
            report(InvariantViolation(V.LEADER_VERIFICATION_FAILED, leader=leader, view=self.view_i))

        self._check_votes(report, qc_datas)
        self._check_pending_votes(report, qc_datas)
        return violations

    def _check_block_dag(self, report) -> None:
        index = self.index
        for key, block in sorted(index.blocks.items()):
            if block.data.key != key:
                report(
                    InvariantViolation(V.BLOCK_KEY_MISMATCH, index_key=key, block_key=block.data.key)
                )
            for qc in block.data.prev:
                pointed_to = qc.data.for_which
                pointed_by = index.block_pointed_by.get(pointed_to)
                if pointed_by is None:
                    report(
                        InvariantViolation(
                            V.BLOCK_POINTS_TO_MISSING_POINTED_BY_ENTRY,
                            block=key,
                            pointed_to=pointed_to,
                        )
                    )
                elif key not in pointed_by:
                    report(
                        InvariantViolation(
                            V.BLOCK_POINTS_TO_MISSING_FROM_POINTED_BY,
                            block=key,
                            pointed_to=pointed_to,
                        )
                    )

        for key, pointing_keys in sorted(index.block_pointed_by.items()):
            if key not in index.blocks and key != GEN_BLOCK_KEY:
                report(InvariantViolation(V.BLOCK_POINTED_BY_CONTAINS_NON_EXISTENT_BLOCK, key=key))
            for pointing_key in sorted(pointing_keys):
                pointing_block = index.blocks.get(pointing_key)
                if pointing_block is None:
                    report(
                        InvariantViolation(
                            V.BLOCK_POINTED_BY_CONTAINS_NON_EXISTENT_POINTING_BLOCK,
                            pointed_block=key,
                            pointing_block=pointing_key,
                        )
                    )
                elif not any(qc.data.for_which == key for qc in pointing_block.data.prev):
                    report(
                        InvariantViolation(
                            V.POINTING_BLOCK_DOES_NOT_ACTUALLY_POINT,
                            pointing_block=pointing_key,
                            pointed_block=key,
                        )
                    )

    def _check_tips(self, report, qcs, qc_datas) -> None:
        # Tips are the QCs that no other QC strictly observes.
        computed = {
            qc
            for qc in qcs
            if not any(
                other != qc.data
                and self.observes(other, qc.data)
                and not self.observes(qc.data, other)
                for other in qc_datas
            )
        }
        actual = set(self.index.tips)
        missing = sorted(computed - actual)
        extra = sorted(actual - computed)
        if missing:
            report(InvariantViolation(V.TIPS_MISSING_QCS, missing_tips=missing))
        if extra:
            report(InvariantViolation(V.TIPS_CONTAINS_EXTRA_QCS, extra_tips=extra))

    def _check_votes(self, report, qc_datas) -> None:
        counts: Counter = Counter()
        for message in self.received_messages:
            if message.kind != MessageKind.NEW_VOTE:
                continue
            vote = message.payload
            counts[vote.data] += 1
            if vote.author not in self.vote_tracker.votes.get(vote.data, {}):
                report(InvariantViolation(V.UNTRACKED_VOTE, vote_data=vote))

        quorum = self.n - self.f
        for vote_data, received in sorted(counts.items()):
            if received >= quorum and vote_data not in qc_datas:
                report(InvariantViolation(V.MISSING_QC_DESPITE_QUORUM, vote_data=vote_data))
            tracked = len(self.vote_tracker.votes.get(vote_data, {}))
            if received != tracked:
                report(
                    InvariantViolation(
                        V.VOTE_COUNT_MISMATCH,
                        vote_data=vote_data,
                        received_count=received,
                        tracked_count=tracked,
                    )
                )

    def _check_pending_votes(self, report, qc_datas) -> None:
        index = self.index
        for view, pending in sorted(self.pending_votes.items()):
            for vote_type, z in _PENDING_CATEGORIES:
                for block_key in sorted(getattr(pending, vote_type)):
                    details = {"view": view, "block_key": block_key, "vote_type": vote_type}
                    if block_key not in index.blocks:
                        report(InvariantViolation(V.PENDING_VOTES_BLOCK_NOT_FOUND, **details))
                        continue
                    if self._is_finalized(block_key):
                        report(InvariantViolation(V.PENDING_VOTES_FOR_FINALIZED_BLOCK, **details))
                    marker = (z, block_key.type_, block_key.slot, block_key.author)
                    if marker in self.voted_i:
                        report(InvariantViolation(V.PENDING_VOTES_ALREADY_VOTED, **details))

            if view != self.view_i:
                continue

            for block_key in sorted(index.blocks):
                if (
                    block_key.type_ == BlockType.TR
                    and block_key.view == self.view_i
                    and not self._is_finalized(block_key)
                    and self.is_eligible_for_tr_1_vote(block_key)
                    and block_key not in pending.tr_1
                ):
                    report(
                        InvariantViolation(
                            V.PENDING_VOTES_MISSING_ELIGIBLE_BLOCK,
                            view=view,
                            block_key=block_key,
                            vote_type="tr_1",
                        )
                    )

            for vote_data in qc_datas:
                block_key = vote_data.for_which
                if (
                    vote_data.z == 1
                    and block_key.type_ == BlockType.TR
                    and block_key.view == self.view_i
                    and not self._is_finalized(block_key)
                    and self.is_eligible_for_tr_2_vote(block_key)
                    and block_key not in pending.tr_2
                ):
                    report(
                        InvariantViolation(
                            V.PENDING_VOTES_MISSING_ELIGIBLE_BLOCK,
                            view=view,
                            block_key=block_key,
                            vote_type="tr_2",
                        )
                    )