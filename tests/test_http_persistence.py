# tests/test_http_persistence.py

from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from daybook.core.errors import PersistenceError, TaskNotFoundError
from daybook.core.ports import ReorderMove
from daybook.tasks.http_persistence import HttpPersistence, fields_to_wire
from daybook.tasks.task_models import TaskCategory, TaskState

from .fakes import make_task

BASE = "http://store.test/api"


class Recorder:
    """MockTransport handler that records requests and replies from a route table."""

    def __init__(self, routes: dict[tuple[str, str], httpx.Response] | None = None) -> None:
        self.routes = routes or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        return self.routes.get(key, httpx.Response(204))

    def body(self, i: int = -1) -> object:
        return json.loads(self.requests[i].content)


def _port(recorder: Recorder) -> HttpPersistence:
    client = httpx.AsyncClient(base_url=BASE, transport=httpx.MockTransport(recorder))
    return HttpPersistence(BASE, client=client)


def test_fields_to_wire_derives_completed() -> None:
    body = fields_to_wire({"state": TaskState.COMPLETED, "date": date(2025, 1, 3)})
    assert body == {"state": "completed", "completed": True, "date": "2025-01-03"}
    assert fields_to_wire({"text": "x"}) == {"text": "x"}


@pytest.mark.asyncio
async def test_create_and_patch_requests() -> None:
    rec = Recorder()
    port = _port(rec)
    task = make_task("a", date(2025, 1, 3), order="V")

    await port.create(task)
    await port.update("a", {"state": TaskState.FAILED})

    assert [(r.method, r.url.path) for r in rec.requests] == [
        ("POST", "/api/tasks"),
        ("PATCH", "/api/tasks/a"),
    ]
    assert rec.body(0)["createdAt"] == "2025-01-03T12:00:00"  # type: ignore[index]
    assert rec.body(1) == {"state": "failed", "completed": False}


@pytest.mark.asyncio
async def test_batch_endpoints() -> None:
    rec = Recorder()
    port = _port(rec)

    await port.batch_punt(["a", "b"], date(2025, 1, 1), date(2025, 1, 3))
    await port.batch_set_state(["a"], TaskState.FAILED)
    await port.batch_graveyard(["b"])
    await port.batch_reorder([ReorderMove(id="a", order="G", category=TaskCategory.WORK)])

    assert [r.url.path for r in rec.requests] == [
        "/api/tasks/batch/punt",
        "/api/tasks/batch/fail",
        "/api/tasks/batch/graveyard",
        "/api/tasks/batch/reorder",
    ]
    assert rec.body(0) == {"taskIds": ["a", "b"], "sourceDate": "2025-01-01", "targetDate": "2025-01-03"}
    assert rec.body(3) == {"moves": [{"id": "a", "order": "G", "category": "work"}]}

    with pytest.raises(PersistenceError):
        await port.batch_set_state(["a"], TaskState.COMPLETED)


@pytest.mark.asyncio
async def test_reads_parse_grouped_and_flat_payloads() -> None:
    grouped = {"2025-01-03": [{"id": "a", "text": "x", "state": "active", "order": "V", "createdAt": "2025-01-01T12:00:00"}]}
    buried = [{"id": "g", "text": "old", "completed": True}]
    rec = Recorder(
        {
            ("GET", "/api/tasks"): httpx.Response(200, json=grouped),
            ("GET", "/api/tasks/graveyard"): httpx.Response(200, json=buried),
            ("GET", "/api/tasks/week"): httpx.Response(200, json=grouped),
        }
    )
    port = _port(rec)

    (t,) = await port.fetch_all()
    assert (t.id, t.date, t.order, t.punt_days) == ("a", date(2025, 1, 3), "V", 2)

    (g,) = await port.fetch_graveyard()
    assert g.in_graveyard and g.state is TaskState.COMPLETED

    await port.fetch_for_range(date(2025, 1, 1), date(2025, 1, 7))
    assert dict(rec.requests[-1].url.params) == {"start": "2025-01-01", "end": "2025-01-07"}


@pytest.mark.asyncio
async def test_errors_map_to_persistence_errors() -> None:
    rec = Recorder(
        {
            ("PATCH", "/api/tasks/gone"): httpx.Response(404),
            ("DELETE", "/api/tasks/a"): httpx.Response(500, text="db locked"),
            ("GET", "/api/tasks"): httpx.Response(200, json=["not", "grouped"]),
        }
    )
    port = _port(rec)

    with pytest.raises(TaskNotFoundError):
        await port.update("gone", {"text": "x"})
    with pytest.raises(PersistenceError, match="500"):
        await port.delete("a")
    with pytest.raises(PersistenceError):
        await port.fetch_all()


@pytest.mark.asyncio
async def test_transport_failure_is_a_persistence_error() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = httpx.AsyncClient(base_url=BASE, transport=httpx.MockTransport(refuse))
    port = HttpPersistence(BASE, client=client)
    with pytest.raises(PersistenceError):
        await port.delete("a")
    await port.close()
    assert not client.is_closed
    await client.aclose()
