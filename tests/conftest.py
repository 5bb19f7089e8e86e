"""Shared fixtures for the Aqueduct test suite.

Provides in-memory doubles for the two external collaborators:
- FakeRedis: the subset of redis-py used by the limiter and token channel
- FakeNotionAPI: an httpx.MockTransport handler emulating the Notion
  databases / data_sources / pages endpoints used by the Events Queue
"""

from __future__ import annotations

import itertools
import json
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
import pytest

from aqueduct.queue import EventQueue
from aqueduct.ratelimit import RateLimiter
from aqueduct.upstream import NotionClient

DATABASE_ID = "db_events"
DATA_SOURCE_ID = "ds_events"


# ---------------------------------------------------------------------------
# Redis double
# ---------------------------------------------------------------------------


class FakePipeline:
    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._ops: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str) -> Callable:
        def queue(*args, **kwargs):
            self._ops.append((name, args, kwargs))
            return self

        return queue

    def execute(self) -> list[Any]:
        results = [getattr(self._redis, name)(*args, **kwargs) for name, args, kwargs in self._ops]
        self._ops = []
        return results


class FakeRedis:
    """Dict-backed Redis with expiry driven by time.time() (freezegun-friendly)."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._expires: dict[str, float] = {}

    def _alive(self, key: str) -> bool:
        exp = self._expires.get(key)
        if exp is not None and time.time() >= exp:
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return key in self._data

    def ping(self) -> bool:
        return True

    def get(self, key: str) -> str | None:
        return self._data[key] if self._alive(key) else None

    def set(self, key: str, value: Any, ex: int | None = None, nx: bool = False) -> bool | None:
        if nx and self._alive(key):
            return None
        self._data[key] = str(value)
        self._expires.pop(key, None)
        if ex is not None:
            self._expires[key] = time.time() + ex
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._alive(key):
                removed += 1
            self._data.pop(key, None)
            self._expires.pop(key, None)
        return removed

    def incr(self, key: str) -> int:
        value = int(self.get(key) or 0) + 1
        self._data[key] = str(value)
        return value

    def pexpire(self, key: str, ms: int) -> bool:
        if not self._alive(key):
            return False
        self._expires[key] = time.time() + ms / 1000
        return True

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)


# ---------------------------------------------------------------------------
# Notion double
# ---------------------------------------------------------------------------


def _text(prop: dict | None) -> str:
    if not prop:
        return ""
    parts = prop.get("rich_text") or prop.get("title") or []
    return "".join(p.get("plain_text") or p.get("text", {}).get("content", "") for p in parts)


def _select(prop: dict | None) -> str | None:
    if not prop or not prop.get("select"):
        return None
    return prop["select"].get("name")


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class FakeNotionAPI:
    """In-memory Notion REST API for one database with one data source."""

    def __init__(self):
        self.pages: dict[str, dict] = {}
        self.requests: list[tuple[str, str, dict | None]] = []
        self._ids = itertools.count(1)
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)
        # (method, path, body) -> httpx.Response or None to proceed normally
        self.fail_hook: Callable[[str, str, dict | None], httpx.Response | None] | None = None
        self.data_sources: list[dict] = [{"id": DATA_SOURCE_ID}]

    def _tick(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat().replace("+00:00", "Z")

    def add_page(self, properties: dict, *, created_time: str | None = None, last_edited_time: str | None = None) -> dict:
        page_id = f"page_{next(self._ids)}"
        created = created_time or self._tick()
        page = {
            "id": page_id,
            "object": "page",
            "created_time": created,
            "last_edited_time": last_edited_time or created,
            "properties": json.loads(json.dumps(properties)),
        }
        self.pages[page_id] = page
        return page

    def rows_for(self, event_id: str) -> list[dict]:
        return [p for p in self.pages.values() if _text(p["properties"].get("Event ID")) == event_id]

    def status_of(self, page_id: str) -> str | None:
        return _select(self.pages[page_id]["properties"].get("Status"))

    def log_of(self, page_id: str) -> str:
        return _text(self.pages[page_id]["properties"].get("Scipio log"))

    def review_flag(self, page_id: str) -> bool:
        return bool(self.pages[page_id]["properties"].get("Needs human review", {}).get("checkbox"))

    # -- filtering ----------------------------------------------------------

    def _matches(self, page: dict, flt: dict | None) -> bool:
        if not flt:
            return True
        if "and" in flt:
            return all(self._matches(page, f) for f in flt["and"])
        if flt.get("timestamp") == "last_edited_time":
            before = flt["last_edited_time"]["before"]
            return _parse_ts(page["last_edited_time"]) < _parse_ts(before)
        prop = page["properties"].get(flt["property"])
        if "rich_text" in flt:
            return _text(prop) == flt["rich_text"]["equals"]
        if "select" in flt:
            return _select(prop) == flt["select"]["equals"]
        raise AssertionError(f"unsupported filter {flt}")

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/v1")
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))

        if self.fail_hook is not None:
            failed = self.fail_hook(request.method, path, body)
            if failed is not None:
                return failed

        if request.method == "GET" and path == f"/databases/{DATABASE_ID}":
            return httpx.Response(200, json={"id": DATABASE_ID, "data_sources": self.data_sources})

        if request.method == "POST" and path == f"/data_sources/{DATA_SOURCE_ID}/query":
            results = [p for p in self.pages.values() if self._matches(p, body.get("filter"))]
            for sort in reversed(body.get("sorts") or []):
                results.sort(key=lambda p, s=sort: p[s["timestamp"]], reverse=sort["direction"] == "descending")
            return httpx.Response(200, json={"results": results[: body.get("page_size", 100)]})

        if request.method == "POST" and path == "/pages":
            for value in body["properties"].values():
                if value is None:
                    return httpx.Response(400, json={"message": "property value is null"})
            return httpx.Response(200, json=self.add_page(body["properties"]))

        if request.method == "PATCH" and path.startswith("/pages/"):
            page = self.pages.get(path.split("/")[-1])
            if page is None:
                return httpx.Response(404, json={"message": "not found"})
            page["properties"].update(json.loads(json.dumps(body["properties"])))
            page["last_edited_time"] = self._tick()
            return httpx.Response(200, json=page)

        return httpx.Response(404, json={"message": f"no route {request.method} {path}"})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def fake_notion() -> FakeNotionAPI:
    return FakeNotionAPI()


@pytest.fixture
def notion_client(fake_notion: FakeNotionAPI):
    client = NotionClient(
        "secret_test",
        limiter=RateLimiter(None),
        max_retries=0,
        transport=httpx.MockTransport(fake_notion.handler),
    )
    yield client
    client.close()


@pytest.fixture
def event_queue(notion_client: NotionClient) -> EventQueue:
    return EventQueue(notion_client, DATABASE_ID)
