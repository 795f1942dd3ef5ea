# morpheus_bft

`morpheus_bft` models one participant of the Morpheus Byzantine
fault-tolerant consensus protocol. Morpheus keeps a DAG of blocks of
two kinds:

- **Transaction blocks** carry transactions. Every process produces them.
- **Leader blocks** are produced by the leader of each view. They order
  the transaction blocks.

Each view starts in the high-throughput phase, where leader blocks do
the ordering. A process switches to the low-throughput phase of a view
once it has cast a 1-vote or 2-vote for a transaction block. Votes at
levels 0, 1 and 2 form quorum certificates (QCs) when `n - f`
processes agree. A block is final once its 2-QC is observed by another
QC. When a view stalls, processes complain to the leader, broadcast
end-view messages, and move on to the next view once `f + 1` of them
agree.

## What the package does not do

The package is a state machine only. It opens no sockets, runs no
timers, stores nothing on disk, has no wire format for messages and
ships no command-line tool. You feed each process the messages it
receives and tell it the current logical time; it queues the messages
it wants to send, and you deliver them however you like. That makes it
a fit for simulations, tests and protocol experiments.

## Installation

```
pip install morpheus_bft
```

Signatures use Ed25519 through PyNaCl. A threshold signature
(`crypto.Signature`) is the set of distinct signers' Ed25519
signatures over the same message, with the threshold it claims and a
SHA-256 digest of the message; it is not a compact aggregate.

## Quick start

```python
from morpheus_bft.crypto import Identity, generate_keybooks
from morpheus_bft.process import MorpheusProcess

n, f = 4, 1
keybooks = generate_keybooks(n, 42)  # one key book per process, deterministic for a seed

processes = {
    kb.me_identity: MorpheusProcess(kb, kb.me_identity, n, f)
    for kb in keybooks
}

# Hand a transaction to one process and let it build a block.
p1 = processes[Identity(1)]
p1.ready_transactions.append(b"increment")
p1.try_produce_blocks()

# Deliver what it wants to send: a target of None means "everyone".
for message, target in p1.drain_outbox():
    for identity, process in processes.items():
        if identity != p1.id and (target is None or target == identity):
            process.process_message(message, p1.id)
```

A message a process sends to everyone, or to itself, counts as
received by that process straight away, so the sender is skipped when
delivering. Repeat the delivery step until no process has anything
left to send.

Transactions may be any hashable, orderable value that
`crypto.canonical_bytes` can encode: integers, strings, bytes, or
objects with an `encode_canonical()` method.

## Main pieces

| Module | What it provides |
| --- | --- |
| `morpheus_bft.crypto` | `Identity`, `KeyBook`, `PartialSignature`, `Signature`, `Signed`, `ThreshPartial`, `ThreshSigned`, `sign`, `verify_partial`, `sign_aggregate`, `verify_aggregate`, `canonical_bytes`, `generate_keybooks` |
| `morpheus_bft.types` | `BlockType`, `ViewNum`, `SlotNum`, `BlockHash`, `BlockKey`, `GEN_BLOCK_KEY`, `VoteData`, `StartView`, `Block`, the block payloads `GenesisData`, `TrData` and `LeadData`, `Message`, `MessageKind`, `Phase` |
| `morpheus_bft.voting` | `QuorumTrack`, which collects one vote per process, and `DuplicateVote` |
| `morpheus_bft.state_tracking` | `StateIndex` (blocks, tips, finalization) and `PendingVotes` |
| `morpheus_bft.block_validation` | `BlockValidationError`, with the rule that failed in `ValidationErrorKind` |
| `morpheus_bft.violations` | `InvariantViolation` and `ViolationKind` |
| `morpheus_bft.format` | Short, log-friendly renderings such as `format_block_key`, `format_vote_data` and `format_message` |
| `morpheus_bft.tracing_setup` | Structured protocol events: `register_process`, `block_created`, `qc_formed`, `protocol_transition` and the rest |
| `morpheus_bft.process` | `MorpheusProcess`, which puts all of the above together |

### Working with a process

- `process_message(message, sender)` checks a message, records it and
  reacts to it. It returns `False` when the message is rejected: a bad
  signature, an invalid block, a repeated vote or end-view message, a
  start-view message whose QC is not a 1-QC, or a message already
  received.
- `try_produce_blocks()` makes a transaction block when transactions
  are ready. The leader of the current view also makes a leader block
  when it is allowed to.
- `block_valid(signed_block)` raises `BlockValidationError` for a block
  that breaks the protocol rules and returns `None` otherwise.
- `observes(root, needle)` evaluates the protocol's "observes" relation
  between two `VoteData` values.
- `check_invariants()` returns a list of `InvariantViolation` values.
  An empty list means the internal state is consistent.
- `drain_outbox()` returns and clears the `(message, target)` pairs
  waiting to be sent.
- `set_now(t)` sets the logical time; `check_timeouts()` then acts on
  time spent in the current view, measured against `delta` (10 by
  default). From `6 * delta` on it picks the maximal unfinalized QC,
  remembers it on the first check and sends it to the leader on later
  checks. From `12 * delta` on, while anything is unfinalized, it
  broadcasts an end-view message.

Leaders rotate each view: the leader of view `v` is
`Identity(v % n + 1)`, as `lead(view)` and
`verify_leader(author, view)` both reflect.

Two class attributes of `MorpheusProcess` follow Python's `__debug__`
flag (on unless Python runs with `-O`):

- `reject_duplicates`: reject a message that was already received.
- `check_invariants_on_receive`: run `check_invariants()` after each
  accepted message and raise `AssertionError` if anything is broken.

## Logging

Protocol events go through the standard `logging` module. Events from
`tracing_setup` use loggers named `morpheus_bft.<event>` and carry
their values on the record as `record.fields`. Turn on `DEBUG` to see
votes, tips and finalization as they happen:

```python
import logging
logging.basicConfig(level=logging.DEBUG)
```

## Running the tests

```
pip install "morpheus_bft[test]"
pytest
```