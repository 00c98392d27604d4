"""Shared fixtures: an in-memory mirror database and a fake Stadion API."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

import pytest

from sportlink_sync.client.base import RemoteResponse
from sportlink_sync.errors import RemoteAPIError
from sportlink_sync.sync.retry import Pacer
from sportlink_sync.sync.store import MirrorDatabase


@dataclass
class Call:
    method: str
    path: str
    params: dict[str, Any] | None
    body: Any


class FakeStadion:
    """Just enough of the WordPress REST API to exercise the sync engine.

    Posts live in memory keyed by ID.  Search matches titles only, like
    WordPress, which does not index ACF fields.  ``fail`` makes a given
    ``(method, path)`` answer with a 500.
    """

    def __init__(self, next_id: int = 101) -> None:
        self.posts: dict[int, dict[str, Any]] = {}
        self.calls: list[Call] = []
        self.failures: set[tuple[str, str]] = set()
        self._next_id = next_id
        self._clock = 0

    # -- test helpers -----------------------------------------------------

    def add_post(self, resource: str, post: dict[str, Any], post_id: int | None = None) -> int:
        post_id = post_id if post_id is not None else self._take_id()
        self._clock += 1
        self.posts[post_id] = {**copy.deepcopy(post), "id": post_id, "type": resource, "modified": self._clock}
        return post_id

    def fail(self, method: str, path: str) -> None:
        self.failures.add((method, path))

    def mutations(self) -> list[Call]:
        return [c for c in self.calls if c.method != "GET"]

    def reset_calls(self) -> None:
        self.calls.clear()

    def close(self) -> None:
        pass

    # -- transport --------------------------------------------------------

    def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> RemoteResponse:
        self.calls.append(Call(method, path, copy.deepcopy(params), copy.deepcopy(body)))
        if (method, path) in self.failures:
            raise RemoteAPIError(f"Stadion API error (500) during {method} {path}", status=500)

        parts = path.strip("/").split("/")
        resource = parts[2]
        post_id = int(parts[3]) if len(parts) > 3 else None

        if post_id is None and method == "GET":
            return RemoteResponse(status=200, body=self._list(resource, params or {}))
        if post_id is None and method == "POST":
            new_id = self.add_post(resource, body or {})
            return RemoteResponse(status=201, body=copy.deepcopy(self.posts[new_id]))

        if post_id not in self.posts:
            raise RemoteAPIError(f"Stadion API error (404) during {method} {path}", status=404)
        if method == "GET":
            return RemoteResponse(status=200, body=copy.deepcopy(self.posts[post_id]))
        if method == "POST":
            post = self.posts[post_id]
            for key, value in (body or {}).items():
                if key in ("meta", "acf") and isinstance(value, dict):
                    current = post.get(key) if isinstance(post.get(key), dict) else {}
                    post[key] = {**current, **copy.deepcopy(value)}
                else:
                    post[key] = copy.deepcopy(value)
            self._clock += 1
            post["modified"] = self._clock
            return RemoteResponse(status=200, body=copy.deepcopy(post))
        if method == "DELETE":
            deleted = self.posts.pop(post_id)
            return RemoteResponse(status=200, body={"deleted": True, "previous": deleted})
        raise AssertionError(f"Unexpected call {method} {path}")

    def _list(self, resource: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        posts = [p for p in self.posts.values() if p["type"] == resource]
        if "meta_key" in params:
            key, value = params["meta_key"], params["meta_value"]
            posts = [p for p in posts if (p.get("meta") or {}).get(key) == value]
        if "search" in params:
            needle = str(params["search"]).lower()
            posts = [p for p in posts if needle in str(p.get("title", "")).lower()]
        if params.get("orderby") == "modified":
            posts.sort(key=lambda p: p["modified"], reverse=True)
        if "per_page" in params:
            posts = posts[: int(params["per_page"])]
        return copy.deepcopy(posts)

    def _take_id(self) -> int:
        post_id = self._next_id
        self._next_id += 1
        return post_id


@pytest.fixture
def database():
    with MirrorDatabase(":memory:") as db:
        yield db


@pytest.fixture
def stadion():
    return FakeStadion()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def pacer(sleeps):
    return Pacer(delay=2.0, sleep=sleeps.append)


@pytest.fixture
def make_stadion():
    return FakeStadion
