"""POS inventory core: queued writes, optimistic stock adjustments and payment callback checks."""

__version__ = "0.1.0"
