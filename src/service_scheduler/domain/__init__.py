from .service import BackgroundService
from .entry import ActiveEntry, EntryState

__all__ = ["BackgroundService", "ActiveEntry", "EntryState"]
