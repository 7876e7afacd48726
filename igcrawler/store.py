"""Append-only collection of discovered resources, shared by crawl workers."""

import threading

from igcrawler.models import Resource


class ResourceStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._resources: list[Resource] = []

    def append(self, resource: Resource) -> int:
        """Add resource; returns the new size."""
        with self._lock:
            self._resources.append(resource)
            return len(self._resources)

    def resources(self) -> list[Resource]:
        """Copy of everything appended so far, in append order."""
        with self._lock:
            return list(self._resources)

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)
