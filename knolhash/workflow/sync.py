from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import List
from urllib.parse import urlparse

from knolhash.db.models import Source
from knolhash.db.store import CardStore, utcnow
from knolhash.logging_config import get_logger
from knolhash.utils.types import SyncReport
from knolhash.workflow.gitsource import GitSyncError, sync_repository
from knolhash.workflow.normalization import assign_hashes
from knolhash.workflow.parser import parse_file

logger = get_logger(__name__)

CARD_FILE_SUFFIX = ".md"
SOURCE_KIND_LOCAL = "local"
SOURCE_KIND_GIT = "git"


def source_kind(path: str) -> str:
    path = path.strip()
    if path.endswith(".git") or path.startswith("git@") or path.startswith(("https://", "http://")):
        return SOURCE_KIND_GIT
    return SOURCE_KIND_LOCAL


def git_url_to_local_path(base_dir: Path | str, repo_url: str) -> Path:
    """Map a clone URL to a checkout directory: base/host/owner/repo."""
    base = Path(base_dir)
    parsed = urlparse(repo_url)
    if parsed.scheme in {"http", "https"} and parsed.netloc:
        repo_path = parsed.path.strip("/").removesuffix(".git")
        if not repo_path:
            raise ValueError(f"Could not parse git URL: {repo_url}")
        return base / parsed.hostname / repo_path
    if "@" in repo_url and ":" in repo_url and "://" not in repo_url:
        host_part, _, repo_path = repo_url.partition(":")
        host = host_part.split("@", 1)[1]
        repo_path = repo_path.strip("/").removesuffix(".git")
        if host and repo_path:
            return base / host / repo_path
    raise ValueError(f"Could not parse git URL: {repo_url}")


def add_source_path(store: CardStore, path: str) -> Source:
    """Register a local directory or git URL as a card source; returns the existing row if already known."""
    path = path.strip()
    if not path:
        raise ValueError("Source path cannot be empty.")
    kind = source_kind(path)
    if kind == SOURCE_KIND_LOCAL:
        path = str(Path(path).expanduser().resolve())
    existing = store.find_source_by_path(path)
    if existing is not None:
        logger.info("Source already registered | id=%s path=%s", existing.id, path)
        return existing
    return store.add_source(path, kind)


def _card_files(root: Path) -> List[Path]:
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() == CARD_FILE_SUFFIX)


def _delete_orphans(store: CardStore, source: Source, found_hashes: set[str], report: SyncReport) -> None:
    for stored in store.cards_for_source(source.id):
        if stored.hash in found_hashes:
            continue
        try:
            if store.delete_card(stored.hash):
                report.orphaned += 1
                logger.info("Orphaned card deleted | source=%s hash=%s", source.id, stored.hash)
        except Exception as exc:
            report.errors.append(f"db delete for {stored.hash}: {exc}")
            logger.warning("Failed to delete orphaned card | source=%s hash=%s", source.id, stored.hash, exc_info=True)


def reconcile_source(store: CardStore, source: Source, root: Path | None = None, now: dt.datetime | None = None) -> SyncReport:
    """
    Bring the stored cards of `source` in line with the Markdown files under `root`.

    New card hashes are inserted as fresh cards, hashes of this source that no
    longer appear in any file are deleted. Per-file and per-card failures are
    collected in the report instead of aborting the scan. If any file could
    not be read, no card is deleted.
    """
    now = now or utcnow()
    scan_root = Path(root or source.path)
    report = SyncReport(source_id=source.id, source_path=str(scan_root))
    if not scan_root.is_dir():
        raise FileNotFoundError(f"Source directory not found: {scan_root}")

    found_hashes: set[str] = set()
    unreadable_files = 0
    for path in _card_files(scan_root):
        try:
            cards = assign_hashes(parse_file(path))
        except (OSError, UnicodeDecodeError) as exc:
            unreadable_files += 1
            report.errors.append(f"parsing {path}: {exc}")
            logger.warning("Failed to parse file | source=%s path=%s", source.id, path, exc_info=True)
            continue
        for card in cards:
            report.found += 1
            if card.hash in found_hashes:
                continue
            found_hashes.add(card.hash)
            try:
                if store.find_card(card.hash) is None:
                    store.insert_card(card, source.id, now=now)
                    report.inserted += 1
                    logger.info("New card found | source=%s hash=%s", source.id, card.hash)
            except Exception as exc:
                report.errors.append(f"db insert for {card.hash}: {exc}")
                logger.warning("Failed to insert card | source=%s hash=%s", source.id, card.hash, exc_info=True)

    # Cards of an unreadable file would look orphaned; keep them and their history.
    if unreadable_files:
        report.orphan_check_skipped = True
        logger.warning("Skipping orphan deletion | source=%s unreadable_files=%s", source.id, unreadable_files)
    else:
        _delete_orphans(store, source, found_hashes, report)

    store.touch_source(source.id, now)
    logger.info(
        "Reconciliation complete | source=%s path=%s found=%s inserted=%s orphaned=%s errors=%s",
        source.id,
        scan_root,
        report.found,
        report.inserted,
        report.orphaned,
        len(report.errors),
    )
    return report


def run_sync(store: CardStore, repos_dir: Path | str, now: dt.datetime | None = None) -> List[SyncReport]:
    """Reconcile every registered source, pulling git sources into `repos_dir` first."""
    sources = store.list_sources()
    if not sources:
        logger.info("No sources configured; nothing to sync")
        return []

    reports: List[SyncReport] = []
    for source in sources:
        logger.info("Syncing source | id=%s kind=%s path=%s", source.id, source.kind, source.path)
        try:
            root = None
            if source.kind == SOURCE_KIND_GIT:
                root = sync_repository(source.path, git_url_to_local_path(repos_dir, source.path))
            reports.append(reconcile_source(store, source, root=root, now=now))
        except (GitSyncError, ValueError, OSError) as exc:
            logger.warning("Failed to sync source | id=%s path=%s", source.id, source.path, exc_info=True)
            reports.append(SyncReport(source_id=source.id, source_path=source.path, errors=[str(exc)]))
    logger.info("Sync complete | sources=%s", len(reports))
    return reports


__all__ = [
    "SOURCE_KIND_GIT",
    "SOURCE_KIND_LOCAL",
    "add_source_path",
    "git_url_to_local_path",
    "reconcile_source",
    "run_sync",
    "source_kind",
]
