from .parser import CardParser, parse_file, parse_lines, parse_text
from .normalization import CardNormalizer, assign_hashes, card_hash
from .sync import add_source_path, git_url_to_local_path, reconcile_source, run_sync, source_kind

__all__ = [
    "CardParser",
    "parse_file",
    "parse_lines",
    "parse_text",
    "CardNormalizer",
    "assign_hashes",
    "card_hash",
    "add_source_path",
    "git_url_to_local_path",
    "reconcile_source",
    "run_sync",
    "source_kind",
]
