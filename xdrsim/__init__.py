"""Forwarding proxy, in-memory agent ledger and ``xdr`` command for local AI agent development."""

__version__ = "0.1.0"
__all__ = ["__version__"]