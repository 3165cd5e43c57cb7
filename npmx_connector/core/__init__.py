"""Core subsystem exports for the npmx connector."""

__all__ = [
    "classify",
    "executor",
    "operations",
    "scheduler",
    "session",
    "store",
    "validation",
]
