from __future__ import annotations

import datetime as dt
import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from knolhash.db.models import CARD_STATE_NEW, CARD_STATE_REVIEW, Base, Card, ReviewLog, Source
from knolhash.db.session import create_engine_and_session
from knolhash.logging_config import get_logger
from knolhash.utils.scheduler import DEFAULT_PARAMETERS, MemoryState, Rating, SchedulerParameters, next_state
from knolhash.utils.types import ParsedCard

logger = get_logger(__name__)

# One lock per card hash; SQLite has no row locks, so writers of the same
# card are serialized in-process. An entry lives only while someone holds it.
_card_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_card_locks_guard = threading.Lock()


def _card_lock(card_hash: str) -> threading.Lock:
    with _card_locks_guard:
        lock = _card_locks.get(card_hash)
        if lock is None:
            lock = _card_locks[card_hash] = threading.Lock()
        return lock


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def to_db_time(value: dt.datetime | None) -> dt.datetime | None:
    """Store timestamps as naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return value


def from_db_time(value: dt.datetime | None) -> dt.datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def to_memory_state(card: Card) -> MemoryState:
    return MemoryState(
        stability=float(card.stability or 0.0),
        difficulty=float(card.difficulty or 0.0),
        last_reviewed=from_db_time(card.last_reviewed),
        due_at=from_db_time(card.due_at),
    )


class CardStore:
    """SQLAlchemy-backed persistence for sources, cards and their review history."""

    def __init__(self, db_url: Union[str, Path]):
        self.db_url = str(db_url)
        self.engine, self.SessionLocal = create_engine_and_session(db_url)
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    # Source helpers
    def add_source(self, path: str, kind: str = "local") -> Source:
        with self.SessionLocal() as session:
            source = Source(path=path, kind=kind, last_scanned=None)
            session.add(source)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise ValueError(f"Source {path} already exists.") from None
            logger.info("Added source | id=%s kind=%s path=%s", source.id, kind, path)
            return source

    def find_source_by_path(self, path: str) -> Optional[Source]:
        with self.SessionLocal() as session:
            return session.execute(select(Source).where(Source.path == path)).scalar_one_or_none()

    def get_source(self, source_id: int) -> Optional[Source]:
        with self.SessionLocal() as session:
            return session.get(Source, source_id)

    def list_sources(self) -> List[Source]:
        with self.SessionLocal() as session:
            return list(session.execute(select(Source).order_by(Source.id)).scalars().all())

    def touch_source(self, source_id: int, when: dt.datetime | None = None) -> None:
        with self.SessionLocal() as session:
            source = session.get(Source, source_id)
            if source is None:
                raise ValueError(f"Source {source_id} not found; cannot update last_scanned.")
            source.last_scanned = to_db_time(when or utcnow())
            session.commit()

    def delete_source(self, source_id: int) -> bool:
        """Delete a source and its cards in one transaction."""
        with self.SessionLocal() as session:
            source = session.get(Source, source_id)
            if source is None:
                return False
            deleted = session.execute(delete(Card).where(Card.source_id == source_id)).rowcount
            session.delete(source)
            session.commit()
        logger.info("Deleted source | id=%s cards=%s", source_id, deleted)
        return True

    # Card helpers
    def insert_card(self, card: ParsedCard, source_id: int | None, now: dt.datetime | None = None) -> Card:
        """Insert a never-reviewed card, due immediately."""
        if not card.hash:
            raise ValueError("Card hash must be set before insert.")
        fresh = MemoryState.new()
        with self.SessionLocal() as session:
            row = Card(
                hash=card.hash,
                question=card.question,
                answer=card.answer,
                context=card.context,
                stability=fresh.stability,
                difficulty=fresh.difficulty,
                due_at=to_db_time(now or utcnow()),
                last_reviewed=None,
                state=CARD_STATE_NEW,
                source_id=source_id,
            )
            session.add(row)
            session.commit()
            return row

    def find_card(self, card_hash: str) -> Optional[Card]:
        with self.SessionLocal() as session:
            return session.get(Card, card_hash)

    def cards_for_source(self, source_id: int) -> List[Card]:
        with self.SessionLocal() as session:
            stmt = select(Card).where(Card.source_id == source_id)
            return list(session.execute(stmt).scalars().all())

    def delete_card(self, card_hash: str) -> bool:
        with self.SessionLocal() as session:
            result = session.execute(delete(Card).where(Card.hash == card_hash))
            session.commit()
            return bool(result.rowcount)

    def due_cards(self, now: dt.datetime | None = None, limit: int | None = None) -> List[Card]:
        stmt = select(Card).where(Card.due_at <= to_db_time(now or utcnow())).order_by(Card.due_at.asc(), Card.hash.asc())
        if limit:
            stmt = stmt.limit(limit)
        with self.SessionLocal() as session:
            return list(session.execute(stmt).scalars().all())

    def count_due(self, now: dt.datetime | None = None) -> int:
        with self.SessionLocal() as session:
            stmt = select(func.count()).select_from(Card).where(Card.due_at <= to_db_time(now or utcnow()))
            return int(session.execute(stmt).scalar() or 0)

    def all_cards(self) -> List[Card]:
        """Every card sorted by due date, with its source eagerly loaded."""
        with self.SessionLocal() as session:
            stmt = select(Card).options(joinedload(Card.source)).order_by(Card.due_at.asc(), Card.hash.asc())
            return list(session.execute(stmt).scalars().unique().all())

    # Memory state
    def load_state(self, card_hash: str) -> Optional[MemoryState]:
        card = self.find_card(card_hash)
        return to_memory_state(card) if card is not None else None

    def save_state(self, card_hash: str, state: MemoryState) -> bool:
        """Overwrite a card's schedule; False if the card is unknown."""
        with _card_lock(card_hash), self.SessionLocal() as session:
            card = self._load_for_update(session, card_hash)
            if card is None:
                return False
            card.stability = state.stability
            card.difficulty = state.difficulty
            card.last_reviewed = to_db_time(state.last_reviewed)
            if state.due_at is not None:
                card.due_at = to_db_time(state.due_at)
            card.state = CARD_STATE_NEW if state.is_new else CARD_STATE_REVIEW
            session.commit()
        return True

    # Reviews
    def _load_for_update(self, session: Session, card_hash: str) -> Optional[Card]:
        stmt = select(Card).where(Card.hash == card_hash)
        bind = session.get_bind()
        if bind is not None and bind.dialect.name != "sqlite":
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    def apply_review(
        self,
        card_hash: str,
        rating: Rating,
        params: SchedulerParameters = DEFAULT_PARAMETERS,
        now: dt.datetime | None = None,
    ) -> Optional[Card]:
        """Load, reschedule and save a card as one serialized unit; None if the card is unknown."""
        with _card_lock(card_hash), self.SessionLocal() as session:
            card = self._load_for_update(session, card_hash)
            if card is None:
                return None
            updated = next_state(to_memory_state(card), rating, params, now or utcnow())
            card.stability = updated.stability
            card.difficulty = updated.difficulty
            card.last_reviewed = to_db_time(updated.last_reviewed)
            card.due_at = to_db_time(updated.due_at)
            card.state = CARD_STATE_REVIEW
            session.add(
                ReviewLog(
                    card_hash=card_hash,
                    rating=int(rating),
                    reviewed_at=card.last_reviewed,
                    stability=card.stability,
                    difficulty=card.difficulty,
                    due_at=card.due_at,
                )
            )
            session.commit()
        logger.info(
            "Reviewed card | hash=%s rating=%s stability=%.4f difficulty=%.4f due=%s",
            card_hash,
            rating.name,
            updated.stability,
            updated.difficulty,
            updated.due_at.isoformat(),
        )
        return card

    def review_history(self, card_hash: str) -> List[ReviewLog]:
        with self.SessionLocal() as session:
            stmt = select(ReviewLog).where(ReviewLog.card_hash == card_hash).order_by(ReviewLog.id.asc())
            return list(session.execute(stmt).scalars().all())


@contextmanager
def open_store(db_url: Union[str, Path]) -> Iterator[CardStore]:
    store = CardStore(db_url)
    try:
        yield store
    finally:
        store.close()


__all__ = ["CardStore", "from_db_time", "open_store", "to_db_time", "to_memory_state", "utcnow"]
