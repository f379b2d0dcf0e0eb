"""Session orchestration over the catalog and tracked databases."""

from dblog_tracker.session.session import Session

__all__ = ['Session']
