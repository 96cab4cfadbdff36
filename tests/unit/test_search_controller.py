"""Unit tests for ImageSearchController and result normalization."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from imgsearch_console.controllers.search import ImageSearchController, normalize_hits
from imgsearch_console.models import SearchHit
from imgsearch_console.types import ErrorKind, OperationState, RankedResult, Severity


@pytest.fixture
async def search(client, notifications, intake):
    controller = ImageSearchController(client=client, notifications=notifications, intake=intake)
    yield controller
    await controller.aclose()
    notifications.close()


class TestNormalizeHits:
    def test_sorted_descending_and_clamped(self):
        hits = [
            SearchHit(path="low.png", score=0.2),
            SearchHit(path="over.png", score=1.7),
            SearchHit(path="neg.png", score=-0.4),
            SearchHit(path="mid.png", score=0.5),
        ]
        assert normalize_hits(hits) == [
            RankedResult("over.png", 1.0),
            RankedResult("mid.png", 0.5),
            RankedResult("low.png", 0.2),
            RankedResult("neg.png", 0.0),
        ]

    def test_nan_score_ranks_last(self):
        ranked = normalize_hits([SearchHit(path="nan.png", score=float("nan")), SearchHit(path="a.png", score=0.1)])
        assert [r.locator for r in ranked] == ["a.png", "nan.png"]
        assert ranked[1].score == 0.0

    def test_ties_keep_server_order(self):
        ranked = normalize_hits([SearchHit(path="first", score=0.5), SearchHit(path="second", score=0.5)])
        assert [r.locator for r in ranked] == ["first", "second"]


class TestSelection:
    async def test_select_opens_preview(self, search, png_file, preview_store):
        assert search.select_file(png_file) is True
        assert search.selected_file is png_file
        assert search.preview is not None
        assert preview_store.live == [search.preview.url]
        assert search.state is OperationState.IDLE

    async def test_invalid_format_rejected(self, search, file_factory, notifications, preview_store):
        assert search.select_file(file_factory("notes.txt")) is False
        assert search.selected_file is None
        assert preview_store.created == []
        assert notifications.current.severity is Severity.ERROR
        assert notifications.current.text == "Invalid file format. Allowed: png, jpg, jpeg, bmp, webp"

    async def test_replacing_selection_releases_old_preview(self, search, file_factory, preview_store):
        search.select_file(file_factory("a.png"))
        first = search.preview
        search.select_file(file_factory("b.jpg"))

        assert first.released
        assert preview_store.revoked[first.url] == 1
        assert preview_store.live == [search.preview.url]

    async def test_new_selection_clears_previous_results(self, search, remote, file_factory):
        remote.on("POST", "/compare_image", httpx.Response(200, json=[{"path": "a", "score": 0.9}]))
        search.select_file(file_factory("a.png"))
        await search.submit()
        assert search.results

        search.select_file(file_factory("b.png"))
        assert search.state is OperationState.IDLE
        assert search.results == []

    async def test_close_releases_preview(self, client, intake, png_file, preview_store):
        controller = ImageSearchController(client=client, notifications=_center(), intake=intake)
        controller.select_file(png_file)
        handle = controller.preview
        await controller.aclose()
        assert preview_store.revoked[handle.url] == 1

    async def test_cancelled_submit_keeps_selection_and_allows_resubmit(self, search, remote, png_file):
        gate = remote.gate("/compare_image")
        remote.on("POST", "/compare_image", httpx.Response(200, json=[{"path": "a.png", "score": 0.8}]))
        search.select_file(png_file)

        task = asyncio.create_task(search.submit())
        await gate.arrived.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert search.state is OperationState.IDLE
        assert search.selected_file.name == "query.png"

        gate.release.set()
        op = await search.submit()
        assert op.state is OperationState.SUCCEEDED
        assert search.results == [RankedResult("a.png", 0.8)]
        assert remote.calls("/compare_image") == 2
        assert search.selected_file is None


class TestSubmit:
    async def test_without_selection_warns_and_sends_nothing(self, search, remote, notifications):
        op = await search.submit()
        assert op.state is OperationState.IDLE
        assert notifications.current.text == "Please select an image first"
        assert notifications.current.severity is Severity.WARNING
        assert remote.calls() == 0

    async def test_results_ranked(self, search, remote, png_file, notifications):
        remote.on(
            "POST",
            "/compare_image",
            httpx.Response(
                200,
                json=[
                    {"path": "/data/b.png", "score": 0.4},
                    {"path": "/data/a.png", "score": 0.95},
                    {"path": "/data/c.png", "score": 0.7},
                ],
            ),
        )
        search.select_file(png_file)
        op = await search.submit()

        assert op.state is OperationState.SUCCEEDED
        assert [r.locator for r in search.results] == ["/data/a.png", "/data/c.png", "/data/b.png"]
        assert notifications.current.text == "Found 3 similar images!"
        assert notifications.current.severity is Severity.SUCCESS

    async def test_empty_result_is_success_with_warning(self, search, remote, png_file, notifications):
        remote.on("POST", "/compare_image", httpx.Response(200, json=[]))
        search.select_file(png_file)
        op = await search.submit()

        assert op.state is OperationState.SUCCEEDED
        assert search.results == []
        assert notifications.current.text == "No similar images found."
        assert notifications.current.severity is Severity.WARNING

    async def test_http_failure_shows_body_excerpt(self, search, remote, png_file, notifications):
        remote.on("POST", "/compare_image", httpx.Response(500, text="Index not trained yet"))
        search.select_file(png_file)
        op = await search.submit()

        assert op.state is OperationState.FAILED
        assert op.error.kind is ErrorKind.TRANSPORT
        assert notifications.current.text == "Search failed. Server returned: Index not trained yet"
        assert search.results == []

    async def test_network_failure(self, search, remote, png_file, notifications, connect_error_factory):
        remote.on("POST", "/compare_image", connect_error_factory("connection refused"))
        search.select_file(png_file)
        await search.submit()
        assert notifications.current.text == "Network Error: connection refused"

    async def test_retry_after_failure(self, search, remote, png_file):
        remote.on(
            "POST",
            "/compare_image",
            httpx.Response(502, text="bad gateway"),
            httpx.Response(200, json=[{"path": "x.png", "score": 0.3}]),
        )
        search.select_file(png_file)
        assert (await search.submit()).state is OperationState.FAILED
        op = await search.retry()
        assert op.state is OperationState.SUCCEEDED
        assert search.results == [RankedResult("x.png", 0.3)]

    async def test_selection_locked_while_searching(self, search, remote, file_factory):
        gate = remote.gate("/compare_image")
        remote.on("POST", "/compare_image", httpx.Response(200, json=[]))
        search.select_file(file_factory("a.png"))

        task = asyncio.create_task(search.submit())
        await gate.arrived.wait()
        assert search.state is OperationState.ACTIVE
        assert search.select_file(file_factory("b.png")) is False
        assert search.selected_file.name == "a.png"

        gate.release.set()
        await task

    async def test_reset_discards_late_results(self, search, remote, png_file, notifications, preview_store):
        gate = remote.gate("/compare_image")
        remote.on("POST", "/compare_image", httpx.Response(200, json=[{"path": "late.png", "score": 1.0}]))
        search.select_file(png_file)
        handle = search.preview

        task = asyncio.create_task(search.submit())
        await gate.arrived.wait()
        search.reset()
        gate.release.set()
        op = await task

        assert op.state is OperationState.IDLE
        assert search.results == []
        assert notifications.current is None
        assert preview_store.revoked[handle.url] == 1


def _center():
    from imgsearch_console.notifications import NotificationCenter

    return NotificationCenter(ttl_seconds=3.0)
