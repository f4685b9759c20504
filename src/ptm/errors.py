"""Exceptions raised by the PTM engine."""


class PtmError(Exception):
    """Base class for PTM errors."""


class EmbeddingDecodeError(PtmError, ValueError):
    """An embedding payload could not be decoded into a usable vector."""


class ScanTimeoutError(PtmError, TimeoutError):
    """A full-corpus scan exceeded the configured deadline."""
