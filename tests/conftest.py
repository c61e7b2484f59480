import dataclasses
import os as _os
import sys
import time

import httpx
import pytest

# Ensure project root is importable (so `import services...` works reliably across environments)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)


@pytest.fixture
def registry_db(tmp_path, monkeypatch):
    """Point the registry store at an isolated sqlite file."""
    from clb import db

    monkeypatch.setattr(db, "settings", dataclasses.replace(db.settings, db_path=str(tmp_path / "registry.db")))
    db.init_db()
    return db


@pytest.fixture
def registry(registry_db):
    from fastapi.testclient import TestClient

    from services.registry.app import create_app

    with TestClient(create_app()) as client:
        yield client


@pytest.fixture
def wait_for():
    return _wait_for


def _wait_for(predicate, timeout_s=3.0):
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def bridge():
    return _bridge


def _bridge(client):
    """httpx transport that hands every request to an in-process TestClient.

    `client` may be one TestClient or a dict mapping port -> TestClient.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        target = client[request.url.port] if isinstance(client, dict) else client
        r = target.request(
            request.method,
            request.url.path,
            params=request.url.params,
            content=request.content,
            headers={"content-type": request.headers.get("content-type", "application/json")},
        )
        return httpx.Response(r.status_code, content=r.content, headers={"content-type": r.headers.get("content-type", "")})

    return httpx.MockTransport(handler)
