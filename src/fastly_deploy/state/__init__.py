"""Record persistence between host calls."""

from .store import RecordStore

__all__ = ['RecordStore']
