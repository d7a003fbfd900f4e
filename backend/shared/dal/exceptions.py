"""Errors raised by persistence adapters."""


class InfrastructureError(Exception):
    """A persistence operation failed at the storage layer (I/O, locking, corruption)."""
