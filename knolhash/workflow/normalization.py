from __future__ import annotations

import hashlib

from knolhash.utils.types import ParsedCard


class CardNormalizer:
    """Canonical text form of a card, used to derive its identity."""

    FIELD_SEPARATOR = "\n"

    @staticmethod
    def normalize_part(text: str | None) -> str:
        part = (text or "").lower().strip()
        return part.replace("\r\n", "\n")

    def normalize_card(self, card: ParsedCard) -> str:
        # Separator keeps "question" + "answer" from hashing like "questionanswer".
        parts = (card.question, card.answer, card.context)
        return self.FIELD_SEPARATOR.join(self.normalize_part(part) for part in parts)


_normalizer = CardNormalizer()


def card_hash(card: ParsedCard) -> str:
    """SHA-256 hex digest of the normalized card; stable across case and surrounding whitespace."""
    normalized = _normalizer.normalize_card(card)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def assign_hashes(cards: list[ParsedCard]) -> list[ParsedCard]:
    for card in cards:
        card.hash = card_hash(card)
    return cards


__all__ = ["CardNormalizer", "assign_hashes", "card_hash"]
