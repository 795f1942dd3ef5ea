"""A single process of the Morpheus protocol."""

from __future__ import annotations

from typing import Dict, List, Optional, Set, Tuple

from . import tracing_setup
from .block_production import BlockProductionMixin
from .block_validation import BlockValidationMixin
from .crypto import Identity, KeyBook, PartialSignature, Signature, Signed, ThreshSigned
from .invariants import InvariantsMixin
from .message_handling import MessageHandlingMixin
from .state_tracking import PendingVotes, StateIndex, StateTrackingMixin
from .types import (
    GEN_BLOCK_KEY,
    Block,
    BlockKey,
    BlockType,
    GenesisData,
    Message,
    MessageKind,
    Phase,
    SlotNum,
    ViewNum,
    VoteData,
)
from .view_management import ViewManagementMixin
from .voting import QuorumTrack, VotingMixin

_GENESIS_AUTHOR = Identity(0xFFFFFFFF)


class MorpheusProcess(
    MessageHandlingMixin,
    VotingMixin,
    StateTrackingMixin,
    ViewManagementMixin,
    BlockValidationMixin,
    BlockProductionMixin,
    InvariantsMixin,
):
    """One process p_i: all the state it keeps and the messages it has yet to send.

    Messages the process sends are queued as ``(message, target)`` pairs in
    ``outbox``, where a target of None means every process.
    """

    def __init__(self, keybook: KeyBook, identity: Identity, n: int, f: int):
        tracing_setup.register_process(identity, n, f)

        genesis_qc = ThreshSigned(VoteData(1, GEN_BLOCK_KEY), Signature())
        genesis_block = Signed(
            Block(
                GEN_BLOCK_KEY,
                (),
                ThreshSigned(VoteData(1, GEN_BLOCK_KEY), Signature()),
                GenesisData(),
            ),
            _GENESIS_AUTHOR,
            PartialSignature(),
        )

        self.kb = keybook
        self.id = identity
        self.view_i = ViewNum(0)
        self.slot_i_lead = SlotNum(0)
        self.slot_i_tr = SlotNum(0)
        self.voted_i: Set[Tuple[int, BlockType, SlotNum, Identity]] = set()
        self.phase_i: Dict[ViewNum, Phase] = {ViewNum(0): Phase.HIGH}
        self.n = n
        self.f = f
        self.delta = 10

        self.end_views: QuorumTrack = QuorumTrack()
        self.zero_qcs_sent: Set[BlockKey] = set()
        self.complained_qcs: Set[ThreshSigned] = set()
        self.view_entry_time = 0
        self.current_time = 0

        self.vote_tracker: QuorumTrack = QuorumTrack()
        self.start_views: Dict[ViewNum, List[Signed]] = {}
        self.index = StateIndex(genesis_qc, genesis_block)
        self.produced_lead_in_view: Dict[ViewNum, bool] = {ViewNum(0): False}

        self.received_messages: Set[Message] = {
            Message(MessageKind.BLOCK, genesis_block),
            Message(MessageKind.QC, genesis_qc),
        }
        self.qcs: Set[ThreshSigned] = {genesis_qc}
        self.genesis = genesis_block
        self.genesis_qc = genesis_qc
        self.ready_transactions: list = []
        self.pending_votes: Dict[ViewNum, PendingVotes] = {}

        self.outbox: List[Tuple[Message, Optional[Identity]]] = []

    def drain_outbox(self) -> List[Tuple[Message, Optional[Identity]]]:
        """Return the queued outgoing messages and empty the queue."""
        drained, self.outbox = self.outbox, []
        return drained

    def __repr__(self) -> str:
        return f"MorpheusProcess(id={self.id!r}, view={self.view_i!r})"