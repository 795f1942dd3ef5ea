"""State machine for one participant of the Morpheus BFT consensus protocol."""

__version__ = "0.1.0"

__all__ = [
    "block_production",
    "block_validation",
    "crypto",
    "format",
    "invariants",
    "message_handling",
    "process",
    "state_tracking",
    "tracing_setup",
    "types",
    "view_management",
    "violations",
    "voting",
]