"""Structured protocol events emitted through the logging module.

Each event goes to the logger ``morpheus_bft.<target>`` and carries its
fields on the log record as ``record.fields``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

_ROOT = "morpheus_bft"


def _emit(level: int, target: str, **fields: Any) -> None:
    rendered = " ".join(
        f"{name}={value}" if isinstance(value, str) else f"{name}={value!r}"
        for name, value in fields.items()
    )
    logging.getLogger(f"{_ROOT}.{target}").log(
        level, "%s %s", target, rendered, extra={"fields": fields}
    )


def register_process(identity, n: int, f: int) -> None:
    """Record that a process joined with ``n`` processes and ``f`` faulty."""
    _emit(logging.INFO, "register_process", process_id=identity, total_processes=n, max_faulty=f)


def protocol_transition(
    process_id, transition_type: str, from_, to, reason: Optional[str] = None
) -> None:
    """Record a protocol transition such as a view change."""
    fields = {"process_id": process_id, "transition": transition_type, "from": from_, "to": to}
    if reason is not None:
        fields["reason"] = reason
    _emit(logging.INFO, "protocol_transition", **fields)


def message_sent(from_, to, message_type: str, message) -> None:
    """Record a sent message; a missing recipient means a broadcast."""
    _emit(
        logging.DEBUG,
        "message_sent",
        **{
            "from": from_,
            "to": "broadcast" if to is None else to,
            "message_type": message_type,
            "message": message,
        },
    )


def block_created(author, block_type: str, block) -> None:
    _emit(logging.INFO, "block_created", author=author, block_type=block_type, block=block)


def qc_formed(process_id, qc_type: int, qc) -> None:
    _emit(logging.INFO, "qc_formed", process_id=process_id, qc_type=qc_type, qc=qc)


def block_finalized(process_id, block_key) -> None:
    _emit(logging.INFO, "block_finalized", process_id=process_id, block_key=block_key)


def protocol_error(process_id, error_type: str, details) -> None:
    _emit(
        logging.ERROR, "protocol_error", process_id=process_id, error_type=error_type, details=details
    )