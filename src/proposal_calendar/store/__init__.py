"""Entity store abstraction for calendar source collections."""

from proposal_calendar.store.entities import EntityStore, InMemoryEntityStore, Record
from proposal_calendar.store.postgres import PostgresEntityStore

__all__ = ["EntityStore", "InMemoryEntityStore", "PostgresEntityStore", "Record"]
