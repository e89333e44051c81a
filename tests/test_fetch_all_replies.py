"""
FetchAllRepliesWorker Tests

Recursive reply crawl: debounce stamping, dedup, cycles, the global cap and
the root-only fatal failure path.
"""

from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from conftest import make_resources, status_doc
from reply_crawler.core.errors import StatusNotFound, UnexpectedResponseError
from reply_crawler.db.statuses import Status
from reply_crawler.domain.pointers import RepliesRef
from reply_crawler.services.collections import CollectionConfig, CollectionFetcher
from reply_crawler.workers.fetch_all_replies import CrawlConfig, FetchAllRepliesWorker

ROOT = "https://a.example/notes/root"


def _statuses():
    statuses = MagicMock()
    statuses.get.return_value = Status(
        id=1,
        uri=ROOT,
        in_reply_to_uri=None,
        fetched_replies_at=None,
        created_at=0,
        updated_at=0,
    )
    statuses.recently_crawled_uris.return_value = set()
    return statuses


def _worker(documents, *, max_replies=1000):
    statuses = _statuses()
    resources = make_resources(documents)
    jobs = MagicMock()
    jobs.enqueue.return_value = ("job-id", True)
    collections = CollectionFetcher(resources, jobs, statuses, CollectionConfig())
    worker = FetchAllRepliesWorker(
        statuses,
        resources,
        collections,
        jobs,
        config=CrawlConfig(max_replies=max_replies),
    )
    return worker, statuses, resources, jobs


def _fetched_uris(resources):
    return [call.args[0] for call in resources.fetch_resource.await_args_list]


def _parent_refresh_jobs(jobs):
    return [
        call
        for call in jobs.enqueue.call_args_list
        if "prefetched_body" in call.args[1]
    ]


@pytest.mark.asyncio
async def test_root_without_replies_field():
    worker, statuses, resources, jobs = _worker({ROOT: status_doc(ROOT)})

    visited = await worker.perform(1)

    assert len(visited) == 0
    statuses.touch_fetched_replies_at.assert_not_called()
    # Exactly one follow-up job: the parent content refresh
    assert jobs.enqueue.call_count == 1
    kind, payload = jobs.enqueue.call_args.args
    assert kind == "fetch_reply"
    assert payload == {"uri": ROOT, "prefetched_body": status_doc(ROOT)}
    resources.fetch_resource.assert_awaited_once_with(ROOT, force_refresh=True)


@pytest.mark.asyncio
async def test_five_leaf_replies():
    leaves = [f"https://b.example/notes/{i}" for i in range(5)]
    documents = {ROOT: status_doc(ROOT, leaves)}
    documents.update({uri: status_doc(uri) for uri in leaves})
    worker, statuses, resources, jobs = _worker(documents)

    visited = await worker.perform(1)

    assert visited.as_set() == frozenset(leaves)
    # One fetch for the root and one expansion per leaf
    assert _fetched_uris(resources) == [ROOT] + list(reversed(leaves))
    statuses.touch_fetched_replies_at.assert_called_once_with(1)
    assert len(_parent_refresh_jobs(jobs)) == 1


@pytest.mark.asyncio
async def test_replies_pointer_with_no_children_still_stamps():
    worker, statuses, _, _ = _worker({ROOT: status_doc(ROOT, [])})

    visited = await worker.perform(1)

    assert len(visited) == 0
    statuses.touch_fetched_replies_at.assert_called_once_with(1)


@pytest.mark.asyncio
async def test_unreadable_root_collection_is_not_stamped():
    doc = {"id": ROOT, "replies": f"{ROOT}/replies"}
    worker, statuses, resources, _ = _worker({ROOT: doc})

    visited = await worker.perform(1)

    assert len(visited) == 0
    assert _fetched_uris(resources) == [ROOT, f"{ROOT}/replies"]
    statuses.touch_fetched_replies_at.assert_not_called()


@pytest.mark.asyncio
async def test_malformed_root_pointer_is_not_stamped():
    worker, statuses, resources, jobs = _worker({ROOT: {"id": ROOT, "replies": 42}})

    visited = await worker.perform(1)

    assert len(visited) == 0
    assert _fetched_uris(resources) == [ROOT]
    statuses.touch_fetched_replies_at.assert_not_called()
    # Only the parent refresh; no reply fetches
    assert jobs.enqueue.call_count == 1


@pytest.mark.asyncio
async def test_cycle_back_to_ancestor_terminates():
    a = "https://b.example/notes/a"
    b = "https://c.example/notes/b"
    c = "https://d.example/notes/c"
    documents = {
        ROOT: status_doc(ROOT, [a, b]),
        a: status_doc(a),
        b: status_doc(b, [c]),
        c: status_doc(c, [b, a]),
    }
    worker, _, resources, _ = _worker(documents)

    visited = await worker.perform(1)

    assert visited.as_set() == frozenset({a, b, c})
    fetched = _fetched_uris(resources)
    assert fetched.count(b) == 1
    assert fetched.count(c) == 1


@pytest.mark.asyncio
async def test_cycle_through_root_is_expanded_once():
    a = "https://b.example/notes/a"
    documents = {
        ROOT: status_doc(ROOT, [a]),
        a: status_doc(a, [ROOT]),
    }
    worker, _, resources, _ = _worker(documents)

    visited = await worker.perform(1)

    assert visited.as_set() == frozenset({a, ROOT})
    assert _fetched_uris(resources) == [ROOT, a, ROOT]


@pytest.mark.asyncio
async def test_reply_reached_from_two_parents_is_expanded_once():
    shared = "https://e.example/notes/shared"
    a = "https://b.example/notes/a"
    b = "https://c.example/notes/b"
    documents = {
        ROOT: status_doc(ROOT, [a, b]),
        a: status_doc(a, [shared]),
        b: status_doc(b, [shared]),
        shared: status_doc(shared),
    }
    worker, _, resources, _ = _worker(documents)

    visited = await worker.perform(1)

    assert len(visited) == 3
    assert _fetched_uris(resources).count(shared) == 1


@pytest.mark.asyncio
async def test_global_cap_stops_between_iterations():
    # 5 first-level replies, each with 9 replies of its own: 50 reachable
    first_level = [f"https://b.example/notes/{i}" for i in range(5)]
    documents = {ROOT: status_doc(ROOT, first_level)}
    for parent in first_level:
        children = [f"{parent}/r/{j}" for j in range(9)]
        documents[parent] = status_doc(parent, children)
        documents.update({uri: status_doc(uri) for uri in children})
    worker, _, resources, _ = _worker(documents, max_replies=10)

    visited = await worker.perform(1)

    # One batch may overshoot the cap, but no more
    assert 10 <= len(visited) <= 10 + 9
    assert len(visited) == 14
    # Last discovered first: only the final first-level reply was expanded
    assert _fetched_uris(resources) == [ROOT, first_level[-1]]


@pytest.mark.asyncio
async def test_non_root_failures_do_not_stop_the_run():
    a = "https://b.example/notes/a"
    b = "https://c.example/notes/b"
    c = "https://d.example/notes/c"
    documents = {
        ROOT: status_doc(ROOT, [a, b]),
        a: status_doc(a, [c]),
        b: aiohttp.ClientError("connection refused"),
        c: status_doc(c),
    }
    worker, statuses, _, _ = _worker(documents)

    visited = await worker.perform(1)

    assert visited.as_set() == frozenset({a, b, c})
    statuses.touch_fetched_replies_at.assert_called_once()


@pytest.mark.asyncio
async def test_root_fetch_error_propagates():
    worker, statuses, _, jobs = _worker({ROOT: aiohttp.ClientError("timeout")})

    with pytest.raises(aiohttp.ClientError):
        await worker.perform(1)

    statuses.touch_fetched_replies_at.assert_not_called()
    jobs.enqueue.assert_not_called()


@pytest.mark.asyncio
async def test_root_fetch_empty_raises():
    worker, statuses, _, _ = _worker({})

    with pytest.raises(UnexpectedResponseError):
        await worker.perform(1)

    statuses.touch_fetched_replies_at.assert_not_called()


@pytest.mark.asyncio
async def test_root_not_found():
    worker, statuses, resources, _ = _worker({})
    statuses.get.side_effect = StatusNotFound(99)

    with pytest.raises(StatusNotFound):
        await worker.perform(99)

    resources.fetch_resource.assert_not_awaited()


@pytest.mark.asyncio
async def test_empty_identifiers_are_skipped():
    statuses = _statuses()
    resources = make_resources({ROOT: status_doc(ROOT, ["placeholder"])})
    collections = MagicMock()
    collections.expand = AsyncMock(return_value=["", "https://b.example/notes/1"])
    worker = FetchAllRepliesWorker(statuses, resources, collections, MagicMock())

    visited = await worker.perform(1)

    assert "https://b.example/notes/1" in visited
    # Root plus the one real reply; the empty id is never fetched
    assert _fetched_uris(resources) == [ROOT, "https://b.example/notes/1"]


@pytest.mark.asyncio
async def test_options_are_forwarded_to_every_expansion():
    statuses = _statuses()
    child = "https://b.example/notes/1"
    resources = make_resources(
        {ROOT: status_doc(ROOT, [child]), child: {"id": child, "replies": "x"}}
    )
    collections = MagicMock()
    collections.expand = AsyncMock(side_effect=[[child], []])
    worker = FetchAllRepliesWorker(statuses, resources, collections, MagicMock())
    options = {"request_id": "abc", "trace": {"hops": []}}

    await worker.perform(1, options)

    assert collections.expand.await_count == 2
    first_pointer, first_options = collections.expand.await_args_list[0].args
    assert first_pointer.collection["id"] == f"{ROOT}/replies"
    second_pointer, second_options = collections.expand.await_args_list[1].args
    assert second_pointer == RepliesRef("x")
    assert first_options == second_options == options
    assert first_options is not second_options
    assert first_options["trace"] is not second_options["trace"]
    first_options["trace"]["hops"].append("mutated")
    assert second_options["trace"] == {"hops": []}
    assert options["trace"] == {"hops": []}
