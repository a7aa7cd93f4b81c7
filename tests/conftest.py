import datetime as dt
import pathlib
import sys

import pytest

# Ensure the repository root is on the path for direct test runs.
REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

from knolhash.db.store import CardStore  # noqa: E402

BASE_TIME = dt.datetime(2024, 1, 1, 12, 0, 0, tzinfo=dt.timezone.utc)


@pytest.fixture
def base_time() -> dt.datetime:
    return BASE_TIME


@pytest.fixture
def store(tmp_path):
    card_store = CardStore(tmp_path / "knolhash.db")
    yield card_store
    card_store.close()
