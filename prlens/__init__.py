"""PRLens: structural analysis core for pull-request review."""

__version__ = "0.3.0"
