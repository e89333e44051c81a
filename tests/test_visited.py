"""
VisitedSet Tests
"""

from reply_crawler.domain.visited import VisitedSet


def test_empty_by_default():
    visited = VisitedSet()
    assert len(visited) == 0
    assert "https://a.example/1" not in visited


def test_add_new_returns_only_unseen_in_order():
    visited = VisitedSet(["https://a.example/1"])

    added = visited.add_new(
        ["https://a.example/2", "https://a.example/1", "https://a.example/3"]
    )

    assert added == ["https://a.example/2", "https://a.example/3"]
    assert len(visited) == 3


def test_duplicates_within_one_batch_added_once():
    visited = VisitedSet()
    added = visited.add_new(["https://a.example/1", "https://a.example/1"])
    assert added == ["https://a.example/1"]
    assert len(visited) == 1


def test_never_shrinks():
    visited = VisitedSet(["x", "y"])
    visited.add_new([])
    visited.add_new(["x"])
    assert visited.as_set() == frozenset({"x", "y"})
    assert sorted(visited) == ["x", "y"]
