import dataclasses

import pytest

from morpheus_bft.block_production import BlockProductionMixin
from morpheus_bft.block_validation import BlockValidationMixin
from morpheus_bft.crypto import (
    Identity,
    PartialSignature,
    Signature,
    Signed,
    ThreshPartial,
    ThreshSigned,
    canonical_bytes,
    generate_keybooks,
    sign_aggregate,
)
from morpheus_bft.message_handling import MessageHandlingMixin
from morpheus_bft.state_tracking import StateIndex, StateTrackingMixin
from morpheus_bft.types import (
    GEN_BLOCK_KEY,
    Block,
    GenesisData,
    Message,
    MessageKind,
    Phase,
    SlotNum,
    StartView,
    ViewNum,
    VoteData,
)
from morpheus_bft.view_management import ViewManagementMixin
from morpheus_bft.violations import InvariantViolation, ViolationKind
from morpheus_bft.voting import QuorumTrack, VotingMixin


class _Process(
    MessageHandlingMixin,
    BlockProductionMixin,
    BlockValidationMixin,
    ViewManagementMixin,
    VotingMixin,
    StateTrackingMixin,
):
    reject_duplicates = True
    check_invariants_on_receive = False

    def __init__(self, kb, n, f):
        genesis_qc = ThreshSigned(VoteData(1, GEN_BLOCK_KEY), Signature())
        genesis = Signed(
            Block(GEN_BLOCK_KEY, (), genesis_qc, GenesisData()),
            Identity(2**32 - 1),
            PartialSignature(),
        )
        self.kb = kb
        self.id = kb.me_identity
        self.view_i = ViewNum(0)
        self.slot_i_lead = SlotNum(0)
        self.slot_i_tr = SlotNum(0)
        self.voted_i = set()
        self.phase_i = {ViewNum(0): Phase.HIGH}
        self.n = n
        self.f = f
        self.delta = 10
        self.end_views = QuorumTrack()
        self.zero_qcs_sent = set()
        self.complained_qcs = set()
        self.view_entry_time = 0
        self.current_time = 0
        self.vote_tracker = QuorumTrack()
        self.start_views = {}
        self.index = StateIndex(genesis_qc, genesis)
        self.produced_lead_in_view = {ViewNum(0): False}
        self.received_messages = {
            Message(MessageKind.BLOCK, genesis),
            Message(MessageKind.QC, genesis_qc),
        }
        self.qcs = {genesis_qc}
        self.genesis = genesis
        self.genesis_qc = genesis_qc
        self.ready_transactions = []
        self.pending_votes = {}
        self.outbox = []


class _CheckedProcess(_Process):
    check_invariants_on_receive = True

    def check_invariants(self):
        return [InvariantViolation(ViolationKind.MAX_1QC_HAS_WRONG_Z, z=0)]


def _processes(n=4, f=1):
    return {kb.me_identity: _Process(kb, n, f) for kb in generate_keybooks(n, 7)}


def _produce_tr_block(proc, tx=7):
    proc.ready_transactions = [tx]
    proc.try_produce_blocks()
    return next(m for m, _ in proc.outbox if m.kind == MessageKind.BLOCK)


def _votes_in(proc):
    return [(m, t) for m, t in proc.outbox if m.kind == MessageKind.NEW_VOTE]


def test_duplicate_message_is_rejected():
    proc = _processes()[Identity(1)]
    assert proc.process_message(Message(MessageKind.QC, proc.genesis_qc), Identity(2)) is False


def test_send_to_other_process_is_only_queued():
    procs = _processes()
    p1 = procs[Identity(1)]
    start = Signed.from_data(StartView(ViewNum(0), p1.genesis_qc), p1.kb)
    message = Message(MessageKind.START_VIEW, start)
    p1.send_msg(message, Identity(3))
    assert p1.outbox == [(message, Identity(3))]
    assert message not in p1.received_messages


def test_broadcast_is_received_by_self():
    p1 = _processes()[Identity(1)]
    start = Signed.from_data(StartView(ViewNum(0), p1.genesis_qc), p1.kb)
    message = Message(MessageKind.START_VIEW, start)
    p1.send_msg(message, None)
    assert p1.outbox[-1] == (message, None)
    assert message in p1.received_messages
    assert p1.start_views[ViewNum(0)] == [start]


def test_valid_block_is_recorded_and_voted_for():
    procs = _processes()
    block_msg = _produce_tr_block(procs[Identity(2)])
    p1 = procs[Identity(1)]
    assert p1.process_message(block_msg, Identity(2)) is True
    key = block_msg.payload.data.key
    assert key in p1.index.blocks
    votes = _votes_in(p1)
    assert len(votes) == 1
    vote, target = votes[0]
    assert target == Identity(2)
    assert vote.payload.data == VoteData(0, key)


def test_block_with_bad_signature_is_rejected():
    procs = _processes()
    block_msg = _produce_tr_block(procs[Identity(2)])
    forged = dataclasses.replace(block_msg.payload, signature=PartialSignature(b"\x00" * 64))
    p1 = procs[Identity(1)]
    assert p1.process_message(Message(MessageKind.BLOCK, forged), Identity(2)) is False
    assert forged.data.key not in p1.index.blocks
    assert _votes_in(p1) == []


def test_votes_reaching_quorum_broadcast_zero_qc():
    procs = _processes()
    p2 = procs[Identity(2)]
    block_msg = _produce_tr_block(p2)
    key = block_msg.payload.data.key
    for ident in (Identity(1), Identity(3)):
        procs[ident].process_message(block_msg, Identity(2))
        vote_msg, _ = _votes_in(procs[ident])[0]
        assert p2.process_message(vote_msg, ident) is True
    qcs = [(m, t) for m, t in p2.outbox if m.kind == MessageKind.QC]
    assert len(qcs) == 1
    qc_msg, target = qcs[0]
    assert target is None
    assert qc_msg.payload.data == VoteData(0, key)
    assert key in p2.zero_qcs_sent
    assert qc_msg.payload in p2.qcs
    assert qc_msg.payload.valid_signature(p2.kb, 3)


def test_vote_with_bad_signature_is_rejected():
    procs = _processes()
    p2 = procs[Identity(2)]
    block_msg = _produce_tr_block(p2)
    p1 = procs[Identity(1)]
    p1.process_message(block_msg, Identity(2))
    vote = _votes_in(p1)[0][0].payload
    forged = dataclasses.replace(vote, signature=PartialSignature(b"\x01" * 64))
    assert p2.process_message(Message(MessageKind.NEW_VOTE, forged), Identity(1)) is False
    assert Identity(1) not in p2.vote_tracker.votes.get(vote.data, {})


def test_qc_below_quorum_threshold_is_rejected():
    procs = _processes()
    p2 = procs[Identity(2)]
    block_msg = _produce_tr_block(p2)
    p1 = procs[Identity(1)]
    p1.process_message(block_msg, Identity(2))
    vote = _votes_in(p1)[0][0].payload
    weak = ThreshSigned(
        vote.data, sign_aggregate(1, [(0, vote.signature)], canonical_bytes(vote.data))
    )
    assert p2.process_message(Message(MessageKind.QC, weak), Identity(1)) is False
    assert weak not in p2.qcs


def test_end_views_from_f_plus_one_processes_change_view():
    procs = _processes()
    p1 = procs[Identity(1)]
    for ident in (Identity(2), Identity(3)):
        end_view = ThreshPartial.from_data(ViewNum(0), procs[ident].kb)
        assert p1.process_message(Message(MessageKind.END_VIEW, end_view), ident) is True
    assert p1.view_i == ViewNum(1)
    certs = [m for m, t in p1.outbox if m.kind == MessageKind.END_VIEW_CERT and t is None]
    assert certs and certs[0].payload.data == ViewNum(0)
    starts = [(m, t) for m, t in p1.outbox if m.kind == MessageKind.START_VIEW]
    assert len(starts) == 1
    assert starts[0][1] == p1.lead(ViewNum(1))
    assert starts[0][0].payload.data.view == ViewNum(1)


def test_single_end_view_does_not_change_view():
    procs = _processes()
    p1 = procs[Identity(1)]
    end_view = ThreshPartial.from_data(ViewNum(0), procs[Identity(2)].kb)
    assert p1.process_message(Message(MessageKind.END_VIEW, end_view), Identity(2)) is True
    assert p1.view_i == ViewNum(0)
    assert p1.outbox == []


def test_start_view_requires_one_qc():
    procs = _processes()
    p1 = procs[Identity(1)]
    zero_qc = ThreshSigned(VoteData(0, GEN_BLOCK_KEY), Signature())
    start = Signed.from_data(StartView(ViewNum(0), zero_qc), procs[Identity(2)].kb)
    assert p1.process_message(Message(MessageKind.START_VIEW, start), Identity(2)) is False
    assert ViewNum(0) not in p1.start_views


def test_start_view_is_collected():
    procs = _processes()
    p1 = procs[Identity(1)]
    start = Signed.from_data(StartView(ViewNum(0), p1.genesis_qc), procs[Identity(3)].kb)
    assert p1.process_message(Message(MessageKind.START_VIEW, start), Identity(3)) is True
    assert p1.start_views[ViewNum(0)] == [start]


def test_invariant_violations_raise_after_handling():
    kb = generate_keybooks(4, 7)[0]
    proc = _CheckedProcess(kb, 4, 1)
    start = Signed.from_data(StartView(ViewNum(0), proc.genesis_qc), kb)
    message = Message(MessageKind.START_VIEW, start)
    with pytest.raises(AssertionError, match="has invariant violations"):
        proc.process_message(message, Identity(1))
    assert message in proc.received_messages
    assert proc.start_views[ViewNum(0)] == [start]