"""Receiving and sending protocol messages."""

from __future__ import annotations

import logging
from typing import Optional

from .block_validation import BlockValidationError
from .crypto import Identity, ThreshSigned, canonical_bytes, sign_aggregate
from .format import format_message
from .types import Message, MessageKind
from .voting import DuplicateVote

logger = logging.getLogger(__name__)


class MessageHandlingMixin:
    """Message handling of a Morpheus process."""

    reject_duplicates: bool = __debug__
    check_invariants_on_receive: bool = __debug__

    def send_msg(self, message: Message, target: Optional[Identity] = None) -> None:
        """Queue ``message`` for ``target`` (everyone when None).

        A message for everyone or for this process counts as received by it at once.
        """
        if target is None or target == self.id:
            self.process_message(message, self.id)
        self.outbox.append((message, target))

    def process_message(self, message: Message, sender: Identity) -> bool:
        """Handle a received message; return False when it was rejected."""
        if self.reject_duplicates and message in self.received_messages:
            logger.error(
                "duplicate_message sender=%r full_message=%s: ignoring duplicate message",
                sender,
                format_message(message, True),
            )
            return False

        self.received_messages.add(message)
        logger.debug("process %r received a message", self.id)

        handlers = {
            MessageKind.BLOCK: self._handle_block,
            MessageKind.NEW_VOTE: self._handle_new_vote,
            MessageKind.QC: self._handle_qc,
            MessageKind.END_VIEW: self._handle_end_view,
            MessageKind.END_VIEW_CERT: self._handle_end_view_cert,
            MessageKind.START_VIEW: self._handle_start_view,
        }
        if not handlers[message.kind](message.payload):
            return False

        if self.check_invariants_on_receive:
            violations = self.check_invariants()
            if violations:
                raise AssertionError(
                    f"Process {self.id.value} has invariant violations: {violations!r}"
                )

        self.reevaluate_pending_votes()
        return True

    def _handle_block(self, block) -> bool:
        try:
            self.block_valid(block)
        except BlockValidationError as error:
            logger.error(
                "invalid_block process_id=%r block_key=%r error=%s",
                self.id,
                block.data.key,
                error,
            )
            return False
        self.try_vote(0, block.data.key, block.data.key.author)
        logger.debug("valid_block block_key=%r", block.data.key)
        self.record_block(block)
        return True

    def _handle_new_vote(self, vote) -> bool:
        if not vote.valid_signature(self.kb):
            logger.error("invalid_vote process_id=%r vote_data=%r", self.id, vote)
            return False
        self.record_vote(vote)
        return True

    def _handle_qc(self, qc) -> bool:
        if not qc.valid_signature(self.kb, self.n - self.f):
            logger.error("invalid_qc process_id=%r qc=%r", self.id, qc)
            return False
        self.record_qc(qc)
        max_view, max_view_qc = self.index.max_view
        if max_view > self.view_i:
            self.end_view(Message(MessageKind.QC, max_view_qc), max_view)
        return True

    def _handle_end_view(self, end_view) -> bool:
        if not end_view.valid_signature(self.kb):
            logger.error("invalid_end_view process_id=%r end_view=%r", self.id, end_view)
            return False
        try:
            num_votes = self.end_views.record_vote(end_view)
        except DuplicateVote:
            return False
        if end_view.data >= self.view_i and num_votes >= self.f + 1:
            parts = [
                (vote.author.value - 1, vote.signature)
                for vote in self.end_views.votes[end_view.data].values()
            ]
            signature = sign_aggregate(self.f + 1, parts, canonical_bytes(end_view.data))
            cert = ThreshSigned(end_view.data, signature)
            self.send_msg(Message(MessageKind.END_VIEW_CERT, cert), None)
        return True

    def _handle_end_view_cert(self, cert) -> bool:
        if not cert.valid_signature(self.kb, self.f + 1):
            logger.error("invalid_end_view_cert process_id=%r end_view_cert=%r", self.id, cert)
            return False
        view = cert.data.incr()
        if view >= self.view_i:
            self.end_view(Message(MessageKind.END_VIEW_CERT, cert), view)
        return True

    def _handle_start_view(self, start_view) -> bool:
        if not start_view.valid_signature(self.kb):
            logger.error("invalid_start_view process_id=%r start_view=%r", self.id, start_view)
            return False
        if start_view.data.qc.data.z != 1:
            return False
        self.record_qc(start_view.data.qc)
        self.start_views.setdefault(start_view.data.view, []).append(start_view)
        return True