"""localnotes - local-first sticky notes."""

__version__ = "0.1.0"
