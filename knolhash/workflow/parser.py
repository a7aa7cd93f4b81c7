from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Iterable, List

from knolhash.utils.types import ParsedCard

QUESTION_PREFIX = "Q:"
ANSWER_PREFIX = "A:"
CONTEXT_PREFIX = "C:"


class ParserState(Enum):
    SEEKING = "seeking"
    QUESTION = "question"
    ANSWER = "answer"
    CONTEXT = "context"


_PREFIX_STATES = (
    (QUESTION_PREFIX, ParserState.QUESTION),
    (ANSWER_PREFIX, ParserState.ANSWER),
    (CONTEXT_PREFIX, ParserState.CONTEXT),
)


class CardParser:
    """Line scanner turning `Q:` / `A:` / `C:` blocks into cards.

    A `Q:` line starts a new card; `A:` and `C:` switch the block being read.
    Lines without a prefix continue the current block and are ignored before
    the first prefix. Cards without a question are dropped.
    """

    def __init__(self) -> None:
        self.cards: List[ParsedCard] = []
        self._state = ParserState.SEEKING
        self._block: List[str] = []
        self._card = ParsedCard(question="")

    def _close_block(self) -> None:
        text = "\n".join(self._block).strip()
        if self._state == ParserState.QUESTION:
            self._card.question = text
        elif self._state == ParserState.ANSWER:
            self._card.answer = text
        elif self._state == ParserState.CONTEXT:
            self._card.context = text
        self._block = []

    def _finish_card(self) -> None:
        if self._card.question:
            self.cards.append(self._card)
        self._card = ParsedCard(question="")

    def feed(self, line: str) -> None:
        line = line.rstrip("\r\n")
        for prefix, state in _PREFIX_STATES:
            if line.startswith(prefix):
                self._close_block()
                if state == ParserState.QUESTION:
                    self._finish_card()
                self._state = state
                self._block.append(line[len(prefix):].strip())
                return
        if self._state != ParserState.SEEKING:
            self._block.append(line)

    def close(self) -> List[ParsedCard]:
        self._close_block()
        self._finish_card()
        self._state = ParserState.SEEKING
        return self.cards


def parse_lines(lines: Iterable[str]) -> List[ParsedCard]:
    parser = CardParser()
    for line in lines:
        parser.feed(line)
    return parser.close()


def parse_text(text: str) -> List[ParsedCard]:
    # Only "\n" ends a line, as when reading a file.
    return parse_lines(text.split("\n"))


def parse_file(path: Path | str) -> List[ParsedCard]:
    """Parse a UTF-8 document; each card remembers the file it came from."""
    source = Path(path)
    with source.open("r", encoding="utf-8", newline="\n") as handle:
        cards = parse_lines(handle)
    for card in cards:
        card.source_file = source
    return cards


__all__ = ["CardParser", "ParserState", "parse_file", "parse_lines", "parse_text"]
