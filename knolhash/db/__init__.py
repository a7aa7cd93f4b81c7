from knolhash.db.models import Base, Card, ReviewLog, Source
from knolhash.db.session import create_engine_and_session
from knolhash.db.store import CardStore, open_store, to_memory_state

__all__ = [
    "Base",
    "Card",
    "ReviewLog",
    "Source",
    "CardStore",
    "create_engine_and_session",
    "open_store",
    "to_memory_state",
]
