import os
import sys

import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()

from syncme.tests.fakes import FakeCatalog  # noqa: E402


@pytest.fixture
def fake_catalog():
    return FakeCatalog()


@pytest.fixture(autouse=True)
def _clear_syncme_env():
    """Keep tokens and engine settings from the developer's shell out of the tests."""
    keys = ['SPOTIFY_ACCESS_TOKEN', 'SPOTIFY_CLIENT_ID', 'SPOTIFY_CLIENT_SECRET', 'SPOTIFY_REDIRECT_URI',
            'SYNCME_BATCH_LIMIT', 'SYNCME_SEARCH_LIMIT', 'SYNCME_MARKET', 'SYNCME_MATCH_WORKERS',
            'SYNCME_REQUEST_TIMEOUT']
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
