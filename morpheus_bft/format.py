"""Concise, human-readable renderings of protocol values for logs and debugging."""

from __future__ import annotations

from typing import Any, Callable

from .crypto import Identity, Signed, ThreshPartial, ThreshSigned
from .types import (
    Block,
    BlockHash,
    BlockKey,
    BlockType,
    GenesisData,
    LeadData,
    Message,
    MessageKind,
    Phase,
    SlotNum,
    StartView,
    TrData,
    ViewNum,
    VoteData,
)

_BLOCK_TYPE_NAMES = {
    BlockType.GENESIS: "Gen",
    BlockType.LEAD: "Lead",
    BlockType.TR: "Tr",
}

_PHASE_NAMES = {Phase.HIGH: "High", Phase.LOW: "Low"}


def format_block_type(block_type: BlockType) -> str:
    return _BLOCK_TYPE_NAMES[BlockType(block_type)]


def format_view_num(view_num: ViewNum) -> str:
    return f"v{view_num.value}"


def format_slot_num(slot_num: SlotNum) -> str:
    return f"s{slot_num.value}"


def format_identity(identity: Identity) -> str:
    return f"p{identity.value}"


def format_block_hash(block_hash: BlockHash) -> str:
    return f"#{block_hash.value:x}"


def format_block_key(key: BlockKey) -> str:
    """Render a block key such as ``Tr[v0,s1,h2,p3,#301]``."""
    name = format_block_type(key.type_)
    if key.type_ == BlockType.GENESIS:
        return f"{name}[Genesis]"
    parts = [format_view_num(key.view), format_slot_num(key.slot), f"h{key.height}"]
    if key.author is not None:
        parts.append(format_identity(key.author))
    if key.hash is not None:
        parts.append(format_block_hash(key.hash))
    return f"{name}[{','.join(parts)}]"


def format_vote_data(vote_data: VoteData, verbose: bool = False) -> str:
    key = format_block_key(vote_data.for_which)
    if verbose:
        return f"VoteData{{ z: {vote_data.z}, for_which: {key} }}"
    return f"{vote_data.z}-{key}"


def format_signed(signed: Signed, value_formatter: Callable[[Any], str], verbose: bool = False) -> str:
    value = value_formatter(signed.data)
    author = format_identity(signed.author)
    if verbose:
        return f"Signed{{ data: {value}, author: {author} }}"
    return f"{value}[{author}]"


def format_thresh_partial(
    signed: ThreshPartial, value_formatter: Callable[[Any], str], verbose: bool = False
) -> str:
    value = value_formatter(signed.data)
    author = format_identity(signed.author)
    if verbose:
        return f"ThreshPartial{{ data: {value}, author: {author} }}"
    return f"{value}[{author}]"


def format_thresh_signed(
    signed: ThreshSigned, value_formatter: Callable[[Any], str], verbose: bool = False
) -> str:
    value = value_formatter(signed.data)
    if verbose:
        return f"ThreshSigned{{ data: {value} }}"
    return f"QC({value})"


def _concise_vote(vote_data: VoteData) -> str:
    return format_vote_data(vote_data, False)


def format_start_view(start_view: StartView, verbose: bool = False) -> str:
    view = format_view_num(start_view.view)
    if verbose:
        qc = format_thresh_signed(start_view.qc, _concise_vote, False)
        return f"StartView{{ view: {view}, qc: {qc} }}"
    return f"Start({view},qc:{format_vote_data(start_view.qc.data, False)})"


def format_block_data(data, verbose: bool = False) -> str:
    if isinstance(data, GenesisData):
        return "Genesis"
    if isinstance(data, TrData):
        if verbose:
            txs = ", ".join(format_transaction(tx, False) for tx in data.transactions)
            return f"Tr{{ transactions: [{txs}] }}"
        return f"Tr[{len(data.transactions)} txs]"
    if isinstance(data, LeadData):
        if verbose:
            just = ", ".join(
                format_signed(j, lambda sv: format_start_view(sv, False), False)
                for j in data.justification
            )
            return f"Lead{{ justification: [{just}] }}"
        return f"Lead[{len(data.justification)} just]"
    raise TypeError(f"unknown block data {type(data).__name__}")


def format_transaction(tx, verbose: bool = False) -> str:
    return f"Tx({tx!r})"


def format_block(block: Block, verbose: bool = False) -> str:
    key = format_block_key(block.key)
    if verbose:
        prev = ", ".join(format_thresh_signed(qc, _concise_vote, False) for qc in block.prev)
        one = format_thresh_signed(block.one, _concise_vote, False)
        data = format_block_data(block.data, True)
        return f"Block{{ key: {key}, prev: [{prev}], one: {one}, data: {data} }}"
    return f"Block{key}[prev:{len(block.prev)},1qc:{format_vote_data(block.one.data, False)}]"


def format_message(message: Message, verbose: bool = False) -> str:
    kind = message.kind
    payload = message.payload
    if kind == MessageKind.BLOCK:
        if verbose:
            return f"Block({format_signed(payload, lambda b: format_block(b, True), True)})"
        return f"Block({format_block_key(payload.data.key)})"
    if kind == MessageKind.NEW_VOTE:
        if verbose:
            inner = format_thresh_partial(payload, lambda vd: format_vote_data(vd, True), True)
            return f"NewVote({inner})"
        return f"Vote({format_vote_data(payload.data, False)},{format_identity(payload.author)})"
    if kind == MessageKind.QC:
        if verbose:
            inner = format_thresh_signed(payload, lambda vd: format_vote_data(vd, True), True)
            return f"QC({inner})"
        return f"QC({format_vote_data(payload.data, False)})"
    if kind == MessageKind.END_VIEW:
        if verbose:
            return f"EndView({format_thresh_partial(payload, format_view_num, True)})"
        return f"EndView({format_view_num(payload.data)},{format_identity(payload.author)})"
    if kind == MessageKind.END_VIEW_CERT:
        if verbose:
            return f"EndViewCert({format_thresh_signed(payload, format_view_num, True)})"
        return f"EndViewCert({format_view_num(payload.data)})"
    if kind == MessageKind.START_VIEW:
        if verbose:
            inner = format_signed(payload, lambda sv: format_start_view(sv, True), True)
            return f"StartView({inner})"
        return f"StartView({format_view_num(payload.data.view)},{format_identity(payload.author)})"
    raise TypeError(f"unknown message kind {kind!r}")


def format_phase(phase: Phase) -> str:
    return _PHASE_NAMES[Phase(phase)]