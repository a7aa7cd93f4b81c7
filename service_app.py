from __future__ import annotations

import datetime as dt
import uuid

from fastapi import Body, Depends, FastAPI
from fastapi.responses import JSONResponse

from knolhash.db.models import Card, Source
from knolhash.db.store import CardStore, from_db_time, to_memory_state, utcnow
from knolhash.logging_config import get_logger
from knolhash.task.sync import sync_sources_task
from knolhash.utils.scheduler import InvalidRatingError, MemoryState, Rating, SchedulerParameters, preview_intervals
from knolhash.workflow.sync import add_source_path, run_sync
from knolhash.workflow.utils.progress import read_progress
from knolhash.workflow.utils.request_models import (
    CardDetail,
    CardFront,
    MemoryStateModel,
    ReviewRequest,
    SourceModel,
    SourceRequest,
)
from knolhash.workflow.utils.settings import default_settings, scheduler_parameters

logger = get_logger("knolhash.service")

SETTINGS = default_settings()
# Validated at import so a bad KNOLHASH_DESIRED_RETENTION fails startup.
PARAMS = scheduler_parameters(SETTINGS)
_store: CardStore | None = None


def get_store() -> CardStore:
    global _store
    if _store is None:
        _store = CardStore(SETTINGS.db_url)
    return _store


def get_params() -> SchedulerParameters:
    return PARAMS


def get_clock() -> dt.datetime:
    return utcnow()


app = FastAPI(title="knolhash review service")


def _memory_model(state: MemoryState) -> MemoryStateModel:
    return MemoryStateModel(
        stability=state.stability,
        difficulty=state.difficulty,
        last_reviewed=state.last_reviewed,
        due_at=state.due_at,
    )


def _card_front(card: Card) -> dict:
    return CardFront(hash=card.hash, question=card.question, context=card.context or "", due_at=from_db_time(card.due_at)).model_dump(mode="json")


def _card_detail(card: Card, params: SchedulerParameters, now: dt.datetime, source_path: str | None = None) -> dict:
    state = to_memory_state(card)
    preview = preview_intervals(state, params, now)
    return CardDetail(
        hash=card.hash,
        question=card.question,
        context=card.context or "",
        answer=card.answer or "",
        due_at=state.due_at,
        state=card.state,
        source_id=card.source_id,
        source_path=source_path,
        memory=_memory_model(state),
        preview={rating.name.lower(): _memory_model(outcome) for rating, outcome in preview.items()},
    ).model_dump(mode="json")


def _source_model(source: Source) -> dict:
    return SourceModel(id=source.id, path=source.path, kind=source.kind, last_scanned=from_db_time(source.last_scanned)).model_dump(mode="json")


def _next_card_payload(store: CardStore, now: dt.datetime) -> dict:
    due = store.due_cards(now=now, limit=1)
    return {"card": _card_front(due[0]) if due else None, "due_count": store.count_due(now)}


@app.get("/health")
async def health() -> JSONResponse:
    return JSONResponse({"status": "ok"})


@app.get("/api/deck")
def deck(store: CardStore = Depends(get_store), now: dt.datetime = Depends(get_clock)) -> JSONResponse:
    due_count = store.count_due(now)
    return JSONResponse({"due_count": due_count, "has_due_cards": due_count > 0})


@app.get("/api/next")
def next_card(store: CardStore = Depends(get_store), now: dt.datetime = Depends(get_clock)) -> JSONResponse:
    return JSONResponse(_next_card_payload(store, now))


@app.get("/api/cards")
def list_cards(store: CardStore = Depends(get_store)) -> JSONResponse:
    cards = []
    for card in store.all_cards():
        payload = _card_front(card)
        payload.update(
            {
                "stability": card.stability,
                "difficulty": card.difficulty,
                "state": card.state,
                "source_path": card.source.path if card.source else None,
            }
        )
        cards.append(payload)
    return JSONResponse({"cards": cards})


@app.get("/api/cards/{card_hash}")
def show_card(
    card_hash: str,
    store: CardStore = Depends(get_store),
    params: SchedulerParameters = Depends(get_params),
    now: dt.datetime = Depends(get_clock),
) -> JSONResponse:
    card = store.find_card(card_hash)
    if card is None:
        return JSONResponse({"error": f"Card {card_hash} not found"}, status_code=404)
    source = store.get_source(card.source_id) if card.source_id is not None else None
    return JSONResponse(_card_detail(card, params, now, source.path if source else None))


@app.post("/api/review")
def review(
    payload: ReviewRequest = Body(...),
    store: CardStore = Depends(get_store),
    params: SchedulerParameters = Depends(get_params),
    now: dt.datetime = Depends(get_clock),
) -> JSONResponse:
    """Apply a learner's rating to a card and return its new schedule plus the next due card."""
    try:
        rating = Rating.parse(payload.rating)
    except InvalidRatingError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)

    card = store.apply_review(payload.hash, rating, params, now)
    if card is None:
        return JSONResponse({"error": f"Card {payload.hash} not found"}, status_code=404)
    return JSONResponse(
        {
            "hash": card.hash,
            "rating": rating.name.lower(),
            "memory": _memory_model(to_memory_state(card)).model_dump(mode="json"),
            "next": _next_card_payload(store, now),
        }
    )


@app.get("/api/sources")
def list_sources(store: CardStore = Depends(get_store)) -> JSONResponse:
    return JSONResponse({"sources": [_source_model(source) for source in store.list_sources()]})


@app.post("/api/sources")
def add_source(payload: SourceRequest = Body(...), store: CardStore = Depends(get_store)) -> JSONResponse:
    try:
        source = add_source_path(store, payload.path)
    except ValueError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    return JSONResponse({"source": _source_model(source), "sources": [_source_model(s) for s in store.list_sources()]})


@app.delete("/api/sources/{source_id}")
def delete_source(source_id: int, store: CardStore = Depends(get_store)) -> JSONResponse:
    if not store.delete_source(source_id):
        return JSONResponse({"error": f"Source {source_id} not found"}, status_code=404)
    return JSONResponse({"sources": [_source_model(s) for s in store.list_sources()]})


@app.post("/api/sync")
def sync(store: CardStore = Depends(get_store), now: dt.datetime = Depends(get_clock)) -> JSONResponse:
    """Reconcile all sources inline, or hand the work to the Celery worker."""
    if SETTINGS.sync_inline:
        reports = run_sync(store, SETTINGS.repos_dir, now=now)
        return JSONResponse({"status": "completed", "sources": [report.as_dict() for report in reports]})

    job_id = str(uuid.uuid4())
    task = sync_sources_task.apply_async(
        args=[{"job_id": job_id, "db_url": SETTINGS.db_url, "repos_dir": str(SETTINGS.repos_dir)}],
        task_id=job_id,
    )
    logger.info("Sync queued | job=%s task=%s", job_id, task.id)
    return JSONResponse({"status": "queued", "job_id": job_id, "task_id": task.id}, status_code=202)


@app.get("/api/sync/{job_id}")
async def sync_status(job_id: str) -> JSONResponse:
    snapshot = await read_progress(job_id)
    if not snapshot:
        return JSONResponse({"error": f"No progress for job {job_id}"}, status_code=404)
    return JSONResponse({"job_id": job_id, **snapshot})
