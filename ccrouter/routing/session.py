"""Session-scoped routing state: previous-turn usage and project overrides."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

SESSION_USAGE_CACHE_SIZE = 100
PROJECT_LOOKUP_CACHE_SIZE = 1000


class LRUCache(Generic[K, V]):
    """Small bounded mapping evicting the least recently used key."""

    def __init__(self, max_size: int) -> None:
        self._store: OrderedDict[K, V] = OrderedDict()
        self._max_size = max_size

    def get(self, key: K) -> V | None:
        if key not in self._store:
            return None
        self._store.move_to_end(key)
        return self._store[key]

    def put(self, key: K, value: V) -> None:
        self._store[key] = value
        self._store.move_to_end(key)
        while len(self._store) > self._max_size:
            self._store.popitem(last=False)

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        self._store.clear()


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Usage:
        return cls(
            input_tokens=int(data.get("input_tokens") or data.get("prompt_tokens") or 0),
            output_tokens=int(data.get("output_tokens") or data.get("completion_tokens") or 0),
        )


def session_id_from_user_id(user_id: Any) -> str | None:
    if not isinstance(user_id, str):
        return None
    parts = user_id.split("_session_")
    return parts[1] if len(parts) > 1 else None


class SessionUsageCache:
    """Previous-turn upstream usage per session, bounded to 100 sessions."""

    def __init__(self, max_size: int = SESSION_USAGE_CACHE_SIZE) -> None:
        self._cache: LRUCache[str, Usage] = LRUCache(max_size)

    def get(self, session_id: str | None) -> Usage | None:
        if not session_id:
            return None
        return self._cache.get(session_id)

    def put(self, session_id: str | None, usage: Usage | dict[str, Any]) -> None:
        if not session_id:
            return
        if isinstance(usage, dict):
            usage = Usage.from_dict(usage)
        self._cache.put(session_id, usage)

    def __len__(self) -> int:
        return len(self._cache)


class ProjectOverrides:
    """Finds the Claude project owning a session and loads its Router override.

    The project is the directory under ``projects_dir`` holding
    ``<session>.jsonl``. Overrides live at ``<home>/<project>/<session>.json``
    and then ``<home>/<project>/config.json``; the first one with a
    ``Router`` key wins.
    """

    def __init__(
        self, projects_dir: str, home_dir: str, max_size: int = PROJECT_LOOKUP_CACHE_SIZE
    ) -> None:
        self.projects_dir = projects_dir
        self.home_dir = home_dir
        # "" marks a session known to have no project
        self._projects: LRUCache[str, str] = LRUCache(max_size)

    def _scan(self, session_id: str) -> str:
        try:
            entries = sorted(os.scandir(self.projects_dir), key=lambda e: e.name)
        except OSError as e:
            logger.debug(f"Cannot scan projects dir {self.projects_dir}: {e}")
            return ""
        for entry in entries:
            if entry.is_dir() and os.path.isfile(
                os.path.join(entry.path, f"{session_id}.jsonl")
            ):
                return entry.name
        return ""

    async def find_project(self, session_id: str) -> str | None:
        if session_id in self._projects:
            return self._projects.get(session_id) or None
        project = await asyncio.to_thread(self._scan, session_id)
        self._projects.put(session_id, project)
        return project or None

    @staticmethod
    def _read_router(path: str) -> dict[str, Any] | None:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable router override {path}: {e}")
            return None
        router = data.get("Router") if isinstance(data, dict) else None
        return router if isinstance(router, dict) and router else None

    async def router_for(self, session_id: str | None) -> dict[str, Any] | None:
        if not session_id:
            return None
        project = await self.find_project(session_id)
        if not project:
            return None
        for filename in (f"{session_id}.json", "config.json"):
            router = await asyncio.to_thread(
                self._read_router, os.path.join(self.home_dir, project, filename)
            )
            if router is not None:
                logger.debug(f"Using router override {project}/{filename}")
                return router
        return None
