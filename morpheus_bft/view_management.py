"""View changes, leader selection and timeouts."""

from __future__ import annotations

from functools import reduce
from typing import Optional

from . import tracing_setup
from .crypto import Identity, Signed, ThreshPartial
from .format import format_message
from .state_tracking import PendingVotes
from .types import Message, MessageKind, Phase, StartView, ViewNum

COMPLAIN_TIMEOUT = 6
END_VIEW_TIMEOUT = 12

_U32 = 0xFFFFFFFF


class ViewManagementMixin:
    """View handling of a Morpheus process."""

    def set_now(self, now: int) -> None:
        self.current_time = now

    def set_phase(self, phase: Phase) -> None:
        self.phase_i[self.view_i] = phase

    def verify_leader(self, author: Identity, view: ViewNum) -> bool:
        return author.value == 1 + (view.value & _U32) % self.n

    def lead(self, view: ViewNum) -> Identity:
        """The leader of ``view``; identities are 1-indexed."""
        return Identity((view.value & _U32) % self.n + 1)

    def end_view(self, cause: Message, new_view: ViewNum) -> None:
        """Enter ``new_view`` because of ``cause`` and report to its leader."""
        tracing_setup.protocol_transition(
            self.id, "view_change", self.view_i, new_view, format_message(cause, False)
        )
        if new_view < self.view_i:
            raise ValueError(f"cannot move from view {self.view_i} back to {new_view}")

        self.view_i = new_view
        self.view_entry_time = self.current_time
        self.phase_i[new_view] = Phase.HIGH
        self.pending_votes.setdefault(new_view, PendingVotes()).dirty = True

        self.send_msg(cause, None)

        leader = self.lead(new_view)
        for tip in list(self.index.tips):
            if tip.data.for_which.author == self.id:
                self.send_msg(Message(MessageKind.QC, tip), leader)

        start_view = Signed.from_data(StartView(new_view, self.index.max_1qc), self.kb)
        self.send_msg(Message(MessageKind.START_VIEW, start_view), leader)

        self.reevaluate_pending_votes()

    def check_timeouts(self) -> None:
        """Complain after 6 delta in a view, and end the view after 12 delta."""
        time_in_view = self.current_time - self.view_entry_time

        if time_in_view >= self.delta * COMPLAIN_TIMEOUT:
            maximal = self._maximal_unfinalized()
            # The complaint goes out once the QC is already on record.
            if maximal is not None:
                if maximal in self.complained_qcs:
                    self.send_msg(Message(MessageKind.QC, maximal), self.lead(self.view_i))
                else:
                    self.complained_qcs.add(maximal)

        if time_in_view >= self.delta * END_VIEW_TIMEOUT and self.index.unfinalized:
            end_view = ThreshPartial.from_data(self.view_i, self.kb)
            self.send_msg(Message(MessageKind.END_VIEW, end_view), None)

    def _maximal_unfinalized(self):
        candidates = [
            qc
            for key in sorted(self.index.unfinalized)
            for qc in sorted(self.index.unfinalized[key])
        ]
        if not candidates:
            return None

        def compare(a, b) -> int:
            if self.observes(a.data, b.data):
                return 1
            if self.observes(b.data, a.data):
                return -1
            return 0

        return reduce(lambda acc, qc: acc if compare(acc, qc) > 0 else qc, candidates)


def leader_of(view: ViewNum, n: int) -> Optional[Identity]:
    """The leader of ``view`` among ``n`` processes."""
    return Identity((view.value & _U32) % n + 1)