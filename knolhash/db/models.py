from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

CARD_STATE_NEW = 0
CARD_STATE_REVIEW = 2


class Source(Base):
    __tablename__ = "sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    path = Column(String, nullable=False, unique=True)
    kind = Column(String, nullable=False, default="local")  # local | git
    last_scanned = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    cards = relationship("Card", back_populates="source", cascade="all, delete-orphan", passive_deletes=True)


class Card(Base):
    __tablename__ = "cards"

    hash = Column(String(64), primary_key=True)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False, default="")
    context = Column(Text, nullable=False, default="")
    stability = Column(Float, nullable=False, default=0.0)
    difficulty = Column(Float, nullable=False, default=0.0)
    due_at = Column(DateTime, nullable=False, index=True)
    last_reviewed = Column(DateTime, nullable=True)
    state = Column(Integer, nullable=False, default=CARD_STATE_NEW)
    source_id = Column(Integer, ForeignKey("sources.id", ondelete="CASCADE"), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    source = relationship("Source", back_populates="cards")


class ReviewLog(Base):
    __tablename__ = "review_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_hash = Column(String(64), ForeignKey("cards.hash", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    reviewed_at = Column(DateTime, nullable=False)
    stability = Column(Float, nullable=False)
    difficulty = Column(Float, nullable=False)
    due_at = Column(DateTime, nullable=False)
