"""Storage abstraction for PTM read sources."""

from .base import PtmStoreBase, get_store

__all__ = ["PtmStoreBase", "get_store"]
