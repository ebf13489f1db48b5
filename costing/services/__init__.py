"""Service layer namespace."""

__all__ = [
    "caches",
    "fanout",
    "inline_edit",
    "invoicing",
    "reconciliation",
    "session",
    "totals",
]
