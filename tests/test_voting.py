from types import SimpleNamespace

import pytest

from morpheus_bft.crypto import Identity, ThreshPartial, generate_keybooks
from morpheus_bft.types import (
    BlockHash,
    BlockKey,
    BlockType,
    MessageKind,
    Phase,
    SlotNum,
    ViewNum,
    VoteData,
)
from morpheus_bft.voting import DuplicateVote, QuorumTrack, VotingMixin

N, F = 4, 1
KEYBOOKS = generate_keybooks(N, 7)


def key(type_=BlockType.TR, author=1, slot=0, view=0, height=1):
    return BlockKey(type_, ViewNum(view), height, Identity(author), SlotNum(slot), BlockHash(slot))


def pending(**kwargs):
    base = dict(tr_1={}, tr_2={}, lead_1={}, lead_2={}, dirty=True)
    base.update(kwargs)
    return SimpleNamespace(**base)


class Host(VotingMixin):
    def __init__(self, kb):
        self.kb = kb
        self.id = kb.me_identity
        self.n = N
        self.f = F
        self.voted_i = set()
        self.vote_tracker = QuorumTrack()
        self.zero_qcs_sent = set()
        self.sent = []
        self.recorded = []
        self.pending_votes = {}
        self.index = SimpleNamespace(contains_lead_by_view={}, unfinalized_lead_by_view={})
        self.view_i = ViewNum(0)
        self.phase_i = {ViewNum(0): Phase.HIGH}
        self.tr1_ok = set()
        self.tr2_ok = set()

    def send_msg(self, message, target):
        self.sent.append((message, target))

    def record_qc(self, qc):
        self.recorded.append(qc)

    def set_phase(self, phase):
        self.phase_i[self.view_i] = phase

    def is_eligible_for_tr_1_vote(self, block_key):
        return block_key in self.tr1_ok

    def is_eligible_for_tr_2_vote(self, block_key):
        return block_key in self.tr2_ok


def test_quorum_track_counts_votes():
    track = QuorumTrack()
    data = VoteData(0, key())
    counts = [track.record_vote(ThreshPartial.from_data(data, kb)) for kb in KEYBOOKS]
    assert counts == [1, 2, 3, 4]
    assert set(track.votes[data]) == {kb.me_identity for kb in KEYBOOKS}


def test_quorum_track_rejects_duplicate():
    track = QuorumTrack()
    vote = ThreshPartial.from_data(VoteData(1, key()), KEYBOOKS[0])
    track.record_vote(vote)
    with pytest.raises(DuplicateVote):
        track.record_vote(vote)
    assert len(track.votes[vote.data]) == 1


def test_quorum_track_separates_data():
    track = QuorumTrack()
    assert track.record_vote(ThreshPartial.from_data(VoteData(0, key()), KEYBOOKS[0])) == 1
    assert track.record_vote(ThreshPartial.from_data(VoteData(1, key()), KEYBOOKS[0])) == 1


def test_try_vote_once_per_marker():
    host = Host(KEYBOOKS[0])
    block = key(author=2)
    assert host.try_vote(0, block, Identity(2)) is True
    assert host.try_vote(0, block, None) is False
    assert len(host.sent) == 1
    message, target = host.sent[0]
    assert message.kind == MessageKind.NEW_VOTE
    assert target == Identity(2)
    assert message.payload.data == VoteData(0, block)
    assert message.payload.valid_signature(KEYBOOKS[0])


def test_try_vote_rejects_genesis_like_key():
    host = Host(KEYBOOKS[0])
    block = BlockKey(BlockType.GENESIS, ViewNum(-1), 0, None, SlotNum(0), None)
    with pytest.raises(ValueError):
        host.try_vote(0, block, None)


def test_record_vote_forms_qc_and_broadcasts_zero_qc():
    host = Host(KEYBOOKS[0])
    data = VoteData(0, key(author=1))
    votes = [ThreshPartial.from_data(data, kb) for kb in KEYBOOKS[: N - F]]
    assert host.record_vote(votes[0]) is True
    assert host.record_vote(votes[1]) is True
    assert host.recorded == []
    assert host.record_vote(votes[2]) is True
    assert len(host.recorded) == 1
    qc = host.recorded[0]
    assert qc.data == data
    assert qc.valid_signature(KEYBOOKS[1], N - F)
    assert host.sent == [(host.sent[0][0], None)]
    assert host.sent[0][0].kind == MessageKind.QC
    assert data.for_which in host.zero_qcs_sent


def test_record_vote_no_broadcast_for_other_author():
    host = Host(KEYBOOKS[0])
    data = VoteData(0, key(author=3))
    for kb in KEYBOOKS[: N - F]:
        host.record_vote(ThreshPartial.from_data(data, kb))
    assert len(host.recorded) == 1
    assert host.sent == []


def test_record_vote_duplicate_returns_false():
    host = Host(KEYBOOKS[0])
    vote = ThreshPartial.from_data(VoteData(1, key()), KEYBOOKS[1])
    assert host.record_vote(vote) is True
    assert host.record_vote(vote) is False


def test_reevaluate_votes_for_leader_block():
    host = Host(KEYBOOKS[0])
    lead = key(type_=BlockType.LEAD, author=1)
    other_view = key(type_=BlockType.LEAD, author=2, view=1)
    host.pending_votes[ViewNum(0)] = pending(lead_1={lead: True, other_view: True})
    host.reevaluate_pending_votes()
    p = host.pending_votes[ViewNum(0)]
    assert p.dirty is False
    assert list(p.lead_1) == [other_view]
    assert [m.payload.data for m, _ in host.sent] == [VoteData(1, lead)]


def test_reevaluate_transaction_vote_switches_phase():
    host = Host(KEYBOOKS[0])
    tr = key(author=2)
    host.tr1_ok.add(tr)
    host.index.contains_lead_by_view[ViewNum(0)] = True
    host.pending_votes[ViewNum(0)] = pending(tr_1={tr: True})
    host.reevaluate_pending_votes()
    assert host.phase_i[ViewNum(0)] == Phase.LOW
    assert host.pending_votes[ViewNum(0)].tr_1 == {}
    assert host.sent[0][0].payload.data == VoteData(1, tr)


def test_reevaluate_skips_transactions_without_leader_block():
    host = Host(KEYBOOKS[0])
    tr = key(author=2)
    host.tr1_ok.add(tr)
    host.pending_votes[ViewNum(0)] = pending(tr_1={tr: True})
    host.reevaluate_pending_votes()
    assert host.sent == []
    assert tr in host.pending_votes[ViewNum(0)].tr_1
    assert host.phase_i[ViewNum(0)] == Phase.HIGH


def test_reevaluate_clean_pending_does_nothing():
    host = Host(KEYBOOKS[0])
    lead = key(type_=BlockType.LEAD)
    host.pending_votes[ViewNum(0)] = pending(lead_1={lead: True}, dirty=False)
    host.reevaluate_pending_votes()
    assert host.sent == []
    assert lead in host.pending_votes[ViewNum(0)].lead_1


def test_reevaluate_desync_raises():
    host = Host(KEYBOOKS[0])
    lead = key(type_=BlockType.LEAD)
    host.voted_i.add((1, lead.type_, lead.slot, lead.author))
    host.pending_votes[ViewNum(0)] = pending(lead_1={lead: True})
    with pytest.raises(RuntimeError):
        host.reevaluate_pending_votes()