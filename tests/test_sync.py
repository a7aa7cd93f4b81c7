import datetime as dt
import subprocess
from pathlib import Path

import pytest

from knolhash.utils.scheduler import Rating
from knolhash.workflow import gitsource, sync
from knolhash.workflow.gitsource import GitSyncError, sync_repository
from knolhash.workflow.sync import add_source_path, git_url_to_local_path, reconcile_source, run_sync, source_kind


def write_notes(root: Path, name: str, text: str) -> Path:
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://github.com/user/repo.git", Path("/base/github.com/user/repo")),
        ("https://gitlab.com/group/sub/repo", Path("/base/gitlab.com/group/sub/repo")),
        ("git@github.com:user/repo.git", Path("/base/github.com/user/repo")),
    ],
)
def test_git_url_to_local_path(url, expected):
    assert git_url_to_local_path("/base", url) == expected


@pytest.mark.parametrize("url", ["not a url", "https://github.com/", "git@github.com:"])
def test_git_url_to_local_path_rejects_garbage(url):
    with pytest.raises(ValueError):
        git_url_to_local_path("/base", url)


@pytest.mark.parametrize(
    "path, kind",
    [
        ("/home/me/notes", "local"),
        ("notes", "local"),
        ("https://github.com/user/repo", "git"),
        ("git@github.com:user/repo.git", "git"),
    ],
)
def test_source_kind(path, kind):
    assert source_kind(path) == kind


def test_add_source_path_resolves_and_dedupes(store, tmp_path):
    first = add_source_path(store, str(tmp_path))
    again = add_source_path(store, f"  {tmp_path}  ")

    assert first.id == again.id
    assert first.path == str(tmp_path.resolve())
    with pytest.raises(ValueError):
        add_source_path(store, "   ")


def test_reconcile_inserts_new_cards(store, tmp_path, base_time):
    write_notes(tmp_path, "a.md", "Q: one\nA: 1\n\nQ: two\nA: 2\n")
    write_notes(tmp_path, "nested/b.MD", "Q: three\nA: 3\n")
    write_notes(tmp_path, "ignored.txt", "Q: not markdown\nA: skipped\n")
    source = add_source_path(store, str(tmp_path))

    report = reconcile_source(store, source, now=base_time)

    assert report.found == 3
    assert report.inserted == 3
    assert report.orphaned == 0
    assert report.errors == []
    assert sorted(c.question for c in store.cards_for_source(source.id)) == ["one", "three", "two"]
    assert store.count_due(base_time) == 3
    assert store.get_source(source.id).last_scanned is not None


def test_reconcile_is_idempotent_and_keeps_review_state(store, tmp_path, base_time):
    write_notes(tmp_path, "a.md", "Q: one\nA: 1\n")
    source = add_source_path(store, str(tmp_path))
    reconcile_source(store, source, now=base_time)
    card = store.cards_for_source(source.id)[0]
    store.apply_review(card.hash, Rating.EASY, now=base_time)

    report = reconcile_source(store, source, now=base_time + dt.timedelta(days=1))

    assert report.inserted == 0
    assert report.orphaned == 0
    assert store.find_card(card.hash).stability == pytest.approx(15.4722)


def test_reconcile_deletes_orphans(store, tmp_path, base_time):
    notes = write_notes(tmp_path, "a.md", "Q: keep\nA: 1\n\nQ: edit me\nA: old\n")
    source = add_source_path(store, str(tmp_path))
    reconcile_source(store, source, now=base_time)

    notes.write_text("Q: keep\nA: 1\n\nQ: edit me\nA: new\n", encoding="utf-8")
    report = reconcile_source(store, source, now=base_time)

    assert report.found == 2
    assert report.inserted == 1
    assert report.orphaned == 1
    assert sorted(c.answer for c in store.cards_for_source(source.id)) == ["1", "new"]


def test_reconcile_counts_duplicates_once(store, tmp_path, base_time):
    write_notes(tmp_path, "a.md", "Q: same\nA: card\n")
    write_notes(tmp_path, "b.md", "Q: SAME\nA: card \n")
    source = add_source_path(store, str(tmp_path))

    report = reconcile_source(store, source, now=base_time)

    assert report.found == 2
    assert report.inserted == 1
    assert len(store.cards_for_source(source.id)) == 1


def test_reconcile_collects_parse_errors(store, tmp_path, base_time):
    write_notes(tmp_path, "good.md", "Q: fine\nA: yes\n")
    (tmp_path / "bad.md").write_bytes(b"Q: \xff\xfe broken\n")
    source = add_source_path(store, str(tmp_path))

    report = reconcile_source(store, source, now=base_time)

    assert report.inserted == 1
    assert len(report.errors) == 1
    assert "bad.md" in report.errors[0]


def test_unreadable_file_keeps_its_cards_and_history(store, tmp_path, base_time):
    deck = write_notes(tmp_path, "deck.md", "Q: remembered\nA: yes\n")
    source = add_source_path(store, str(tmp_path))
    reconcile_source(store, source, now=base_time)
    card = store.cards_for_source(source.id)[0]
    store.apply_review(card.hash, Rating.GOOD, now=base_time)

    deck.write_bytes(deck.read_bytes() + b"\xff")
    report = reconcile_source(store, source, now=base_time + dt.timedelta(days=1))

    assert len(report.errors) == 1
    assert report.orphaned == 0
    assert report.orphan_check_skipped is True
    assert report.as_dict()["orphan_check_skipped"] is True
    assert store.find_card(card.hash) is not None
    assert len(store.review_history(card.hash)) == 1

    deck.write_text("Q: remembered\nA: yes\n", encoding="utf-8")
    assert reconcile_source(store, source, now=base_time).orphan_check_skipped is False


def test_reconcile_missing_directory_raises(store, tmp_path):
    source = store.add_source(str(tmp_path / "gone"))

    with pytest.raises(FileNotFoundError):
        reconcile_source(store, source)


def test_run_sync_without_sources_is_a_no_op(store, tmp_path):
    assert run_sync(store, tmp_path) == []


def test_run_sync_reconciles_local_and_git_sources(store, tmp_path, base_time, monkeypatch):
    local_root = tmp_path / "local"
    write_notes(local_root, "a.md", "Q: local\nA: card\n")
    add_source_path(store, str(local_root))
    add_source_path(store, "https://example.com/team/notes.git")
    calls = []

    def fake_sync_repository(url, local_path):
        calls.append((url, Path(local_path)))
        write_notes(Path(local_path), "remote.md", "Q: remote\nA: card\n")
        return Path(local_path)

    monkeypatch.setattr(sync, "sync_repository", fake_sync_repository)

    reports = run_sync(store, tmp_path / "repos", now=base_time)

    assert calls == [("https://example.com/team/notes.git", tmp_path / "repos" / "example.com" / "team" / "notes")]
    assert [report.inserted for report in reports] == [1, 1]
    assert store.count_due(base_time) == 2


def test_run_sync_records_git_failures(store, tmp_path, monkeypatch):
    add_source_path(store, "https://example.com/team/notes.git")

    def failing_sync(url, local_path):
        raise GitSyncError("git clone failed: auth required")

    monkeypatch.setattr(sync, "sync_repository", failing_sync)

    reports = run_sync(store, tmp_path)

    assert len(reports) == 1
    assert reports[0].errors == ["git clone failed: auth required"]


class FakeCompleted:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def test_sync_repository_clones_missing_checkout(tmp_path, monkeypatch):
    commands = []
    monkeypatch.setattr(gitsource.subprocess, "run", lambda args, **kwargs: commands.append(args) or FakeCompleted())
    target = tmp_path / "host" / "repo"

    assert sync_repository("https://host/repo.git", target) == target
    assert commands == [["git", "clone", "https://host/repo.git", str(target)]]
    assert target.parent.is_dir()


def test_sync_repository_pulls_existing_checkout(tmp_path, monkeypatch):
    commands = []
    monkeypatch.setattr(gitsource.subprocess, "run", lambda args, **kwargs: commands.append(args) or FakeCompleted())

    sync_repository("https://host/repo.git", tmp_path)

    assert commands == [["git", "-C", str(tmp_path), "pull", "origin"]]


def test_sync_repository_raises_on_git_failure(tmp_path, monkeypatch):
    monkeypatch.setattr(gitsource.subprocess, "run", lambda args, **kwargs: FakeCompleted(returncode=128, stderr="fatal: not found"))

    with pytest.raises(GitSyncError, match="fatal: not found"):
        sync_repository("https://host/repo.git", tmp_path / "missing")


def test_sync_repository_wraps_timeouts(tmp_path, monkeypatch):
    def timeout(args, **kwargs):
        raise subprocess.TimeoutExpired(args, 300)

    monkeypatch.setattr(gitsource.subprocess, "run", timeout)

    with pytest.raises(GitSyncError):
        sync_repository("https://host/repo.git", tmp_path)
