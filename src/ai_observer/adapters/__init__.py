"""Adapters implementing core ports for storage, broadcast and HTTP."""
