"""Identities, key books and the signatures used by the protocol.

Every process signs with an Ed25519 key. A threshold signature is the set
of partial signatures of distinct signers over the same message, together
with the threshold it claims and a digest binding it to that message.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Dict, Generic, Iterable, List, Tuple, TypeVar

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

T = TypeVar("T")


def _length_prefix(length: int) -> bytes:
    return length.to_bytes(8, "little")


def canonical_bytes(value) -> bytes:
    """Return the deterministic byte encoding of a protocol value.

    Objects provide their own encoding through ``encode_canonical``; plain
    integers are signed 64-bit little-endian, strings and bytes are length
    prefixed, sequences are a length followed by their items.
    """
    encode = getattr(value, "encode_canonical", None)
    if callable(encode):
        return encode()
    if value is None:
        return b"\x00"
    if isinstance(value, bool):
        return b"\x01" if value else b"\x00"
    if isinstance(value, int):
        return value.to_bytes(8, "little", signed=True)
    if isinstance(value, (bytes, bytearray)):
        return _length_prefix(len(value)) + bytes(value)
    if isinstance(value, str):
        data = value.encode("utf-8")
        return _length_prefix(len(data)) + data
    if isinstance(value, (list, tuple)):
        return _length_prefix(len(value)) + b"".join(canonical_bytes(item) for item in value)
    raise TypeError(f"cannot encode value of type {type(value).__name__}")


@dataclass(frozen=True, order=True)
class Identity:
    """A unique identifier for a process; identities start at 1."""

    value: int

    def encode_canonical(self) -> bytes:
        return self.value.to_bytes(4, "little")


@dataclass(frozen=True, order=True)
class PartialSignature:
    """The signature of a single process over a message."""

    value: bytes = b""

    def encode_canonical(self) -> bytes:
        return canonical_bytes(self.value)


@dataclass(frozen=True, order=True)
class Signature:
    """A threshold signature: distinct signers' partial signatures."""

    threshold: int = 0
    parts: Tuple[Tuple[int, PartialSignature], ...] = ()
    digest: bytes = b""

    def encode_canonical(self) -> bytes:
        body = b"".join(
            index.to_bytes(8, "little") + part.encode_canonical() for index, part in self.parts
        )
        return (
            self.threshold.to_bytes(8, "little")
            + _length_prefix(len(self.parts))
            + body
            + canonical_bytes(self.digest)
        )


@dataclass
class KeyBook:
    """The public keys of all identities and this process's own key pair."""

    keys: Dict[Identity, bytes]
    identities: Dict[bytes, Identity]
    me_identity: Identity
    me_public_key: bytes
    me_secret_key: SigningKey


def generate_keybooks(n: int, seed: int) -> List[KeyBook]:
    """Deterministically create one key book per identity ``1..n``."""
    if n < 1:
        raise ValueError("at least one identity is required")
    signing_keys = {
        Identity(i): SigningKey(hashlib.sha256(f"morpheus:{seed}:{i}".encode()).digest())
        for i in range(1, n + 1)
    }
    keys = {identity: bytes(sk.verify_key) for identity, sk in signing_keys.items()}
    identities = {public: identity for identity, public in keys.items()}
    return [
        KeyBook(
            keys=dict(keys),
            identities=dict(identities),
            me_identity=identity,
            me_public_key=keys[identity],
            me_secret_key=sk,
        )
        for identity, sk in signing_keys.items()
    ]


def sign(secret_key: SigningKey, message: bytes) -> PartialSignature:
    """Sign ``message`` with a process's secret key."""
    return PartialSignature(secret_key.sign(message).signature)


def verify_partial(public_key: bytes, message: bytes, signature: PartialSignature) -> bool:
    """Check a single process's signature over ``message``."""
    try:
        VerifyKey(public_key).verify(message, signature.value)
    except (BadSignatureError, ValueError, TypeError):
        return False
    return True


def sign_aggregate(
    threshold: int,
    parts: Iterable[Tuple[int, PartialSignature]],
    message: bytes,
) -> Signature:
    """Combine partial signatures, keyed by zero-based signer index.

    Raises ValueError when fewer than ``threshold`` distinct signers are given
    or when one signer appears with two different signatures.
    """
    collected: Dict[int, PartialSignature] = {}
    for index, part in parts:
        if index < 0:
            raise ValueError(f"invalid signer index {index}")
        if collected.setdefault(index, part) != part:
            raise ValueError(f"conflicting partial signatures for signer {index}")
    if len(collected) < threshold:
        raise ValueError(
            f"only {len(collected)} signers, threshold {threshold} not reached"
        )
    return Signature(
        threshold=threshold,
        parts=tuple(sorted(collected.items())),
        digest=hashlib.sha256(message).digest(),
    )


def verify_aggregate(keybook: KeyBook, signature: Signature, message: bytes) -> bool:
    """Check that a threshold signature is valid for ``message``."""
    if signature.digest != hashlib.sha256(message).digest():
        return False
    indices = [index for index, _ in signature.parts]
    if len(set(indices)) != len(indices) or len(indices) < signature.threshold:
        return False
    for index, part in signature.parts:
        public_key = keybook.keys.get(Identity(index + 1))
        if public_key is None or not verify_partial(public_key, message, part):
            return False
    return True


def _author_key(keybook: KeyBook, author: Identity) -> bytes:
    try:
        return keybook.keys[author]
    except KeyError:
        raise KeyError(f"author {author} not in keybook") from None


@dataclass(frozen=True, order=True)
class Signed(Generic[T]):
    """A value signed by a single process."""

    data: T
    author: Identity
    signature: PartialSignature

    @classmethod
    def from_data(cls, data: T, kb: KeyBook) -> "Signed[T]":
        return cls(data, kb.me_identity, sign(kb.me_secret_key, canonical_bytes(data)))

    def valid_signature(self, keybook: KeyBook) -> bool:
        public_key = _author_key(keybook, self.author)
        return verify_partial(public_key, canonical_bytes(self.data), self.signature)

    def encode_canonical(self) -> bytes:
        return (
            canonical_bytes(self.data)
            + self.author.encode_canonical()
            + self.signature.encode_canonical()
        )


@dataclass(frozen=True, order=True)
class ThreshSigned(Generic[T]):
    """A value carrying a threshold signature."""

    data: T
    signature: Signature

    def valid_signature(self, keybook: KeyBook, threshold: int) -> bool:
        return (
            verify_aggregate(keybook, self.signature, canonical_bytes(self.data))
            and self.signature.threshold >= threshold
        )

    def encode_canonical(self) -> bytes:
        return canonical_bytes(self.data) + self.signature.encode_canonical()


@dataclass(frozen=True, order=True)
class ThreshPartial(Generic[T]):
    """One process's share towards a threshold signature."""

    data: T
    author: Identity
    signature: PartialSignature

    @classmethod
    def from_data(cls, data: T, kb: KeyBook) -> "ThreshPartial[T]":
        return cls(data, kb.me_identity, sign(kb.me_secret_key, canonical_bytes(data)))

    def valid_signature(self, keybook: KeyBook) -> bool:
        public_key = _author_key(keybook, self.author)
        return verify_partial(public_key, canonical_bytes(self.data), self.signature)

    def encode_canonical(self) -> bytes:
        return (
            canonical_bytes(self.data)
            + self.author.encode_canonical()
            + self.signature.encode_canonical()
        )