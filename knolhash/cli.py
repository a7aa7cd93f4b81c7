"""Command line entry point: reconcile a directory, manage sources, list due cards, or serve the API."""
from __future__ import annotations

import argparse
import sys
from typing import Sequence

from knolhash.db.store import CardStore, from_db_time, open_store, utcnow
from knolhash.logging_config import get_logger
from knolhash.workflow.sync import add_source_path, reconcile_source, run_sync
from knolhash.workflow.utils.settings import default_settings, load_env, parse_listen_addr

logger = get_logger("knolhash.cli")


def build_parser() -> argparse.ArgumentParser:
    settings = default_settings()
    parser = argparse.ArgumentParser(prog="knolhash", description="Spaced-repetition review of Q:/A:/C: cards in Markdown notes.")
    parser.add_argument("--db", default=settings.db_url, help="SQLite path or database URL")
    parser.add_argument("--dir", help="Directory to scan for Markdown files (registered as a local source)")
    parser.add_argument("--add-source", metavar="PATH", help="Register a local directory or git URL as a source")
    parser.add_argument("--sync", action="store_true", help="Reconcile all registered sources")
    parser.add_argument("--repos-dir", default=str(settings.repos_dir), help="Where git sources are cloned")
    parser.add_argument("--show-due", action="store_true", help="Print cards due for review and exit")
    parser.add_argument("--serve", action="store_true", help="Start the HTTP API")
    parser.add_argument("--listen-addr", default=settings.listen_addr, help="host:port for --serve")
    return parser


def show_due_cards(store: CardStore) -> int:
    due = store.due_cards(now=utcnow())
    print(f"Found {len(due)} cards due for review:")
    for card in due:
        print(f"- Hash: {card.hash}, Due: {from_db_time(card.due_at).isoformat(timespec='minutes')}")
    return 0


def reconcile_directory(store: CardStore, directory: str) -> int:
    source = add_source_path(store, directory)
    report = reconcile_source(store, source)
    print(
        f"Reconciliation complete. Found {report.found} cards in files. "
        f"{report.orphaned} orphaned cards deleted. {len(report.errors)} errors."
    )
    if report.errors:
        print("\nErrors during parsing or reconciliation:")
        for error in report.errors:
            print(f"- {error}")
    return 1 if report.errors else 0


def sync_sources(store: CardStore, repos_dir: str) -> int:
    reports = run_sync(store, repos_dir)
    for report in reports:
        print(
            f"Reconciliation for '{report.source_path}' complete. Found {report.found} cards. "
            f"{report.orphaned} orphaned deleted. {len(report.errors)} errors."
        )
    return 1 if any(report.errors for report in reports) else 0


def serve(db_url: str, listen_addr: str) -> int:
    import uvicorn

    import service_app

    service_app.SETTINGS.db_url = db_url
    host, port = parse_listen_addr(listen_addr)
    logger.info("Starting web server | addr=%s db=%s", listen_addr, db_url)
    uvicorn.run(service_app.app, host=host, port=port)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    load_env()
    args = build_parser().parse_args(argv)

    if args.serve:
        return serve(args.db, args.listen_addr)

    try:
        with open_store(args.db) as store:
            if args.add_source:
                source = add_source_path(store, args.add_source)
                print(f"Source {source.id} ({source.kind}): {source.path}")
                return 0
            if args.show_due:
                return show_due_cards(store)
            if args.sync:
                return sync_sources(store, args.repos_dir)
            return reconcile_directory(store, args.dir or ".")
    except (ValueError, OSError) as exc:
        logger.error("Command failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
