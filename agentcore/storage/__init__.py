"""Storage module."""

from .storage import IStore, Storage

__all__ = ["IStore", "Storage"]
