from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


@dataclass
class ParsedCard:
    """A question/answer/context unit extracted from a document."""

    question: str
    answer: str = ""
    context: str = ""
    hash: str = ""
    source_file: Optional[Path] = None


@dataclass
class SyncReport:
    """Outcome of reconciling one source against the files it points to."""

    source_id: int
    source_path: str
    found: int = 0
    inserted: int = 0
    orphaned: int = 0
    orphan_check_skipped: bool = False
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "source_id": self.source_id,
            "source_path": self.source_path,
            "found": self.found,
            "inserted": self.inserted,
            "orphaned": self.orphaned,
            "orphan_check_skipped": self.orphan_check_skipped,
            "errors": list(self.errors),
        }
