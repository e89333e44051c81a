"""
Visited Set

URIs already enqueued for expansion during one crawl run.
Only grows; never persisted.
"""

from typing import Iterable, Iterator


class VisitedSet:
    def __init__(self, uris: Iterable[str] = ()):
        self._uris: set[str] = set()
        self.add_new(uris)

    def add_new(self, uris: Iterable[str]) -> list[str]:
        """
        Add uris and return the ones that were not already present.

        Order of first appearance is kept and duplicates inside `uris`
        are returned only once.
        """
        added = []
        for uri in uris:
            if uri in self._uris:
                continue
            self._uris.add(uri)
            added.append(uri)
        return added

    def __contains__(self, uri: object) -> bool:
        return uri in self._uris

    def __len__(self) -> int:
        return len(self._uris)

    def __iter__(self) -> Iterator[str]:
        return iter(self._uris)

    def as_set(self) -> frozenset[str]:
        return frozenset(self._uris)
