"""Document persistence."""

from .database import DocumentStore, matches, utcnow_iso

__all__ = ["DocumentStore", "matches", "utcnow_iso"]
