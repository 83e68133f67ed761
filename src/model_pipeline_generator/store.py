"""Project store: persistence for pipeline projects.

The orchestrator depends only on ``get`` and ``update_partial``. Every
mutation is applied atomically under a lock and then announced to
subscribers with the new snapshot.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from .errors import ProjectNotFoundError
from .models import MUTABLE_FIELDS, Project, project_name_from_prompt, utcnow

logger = logging.getLogger(__name__)

ProjectListener = Callable[[Project], None]


class ProjectStore(Protocol):
    """Storage operations used by the pipeline and the CLI."""

    def fetch_all(self) -> list[Project]: ...
    def get(self, project_id: str) -> Project: ...
    def create(self, prompt: str, name: str | None = None, *, owner: str = "") -> Project: ...
    def update_partial(self, project_id: str, fields: dict[str, Any]) -> Project: ...
    def delete(self, project_id: str) -> None: ...
    def subscribe(self, listener: ProjectListener) -> Callable[[], None]: ...


class InMemoryProjectStore:
    """Dict-backed store; snapshots handed out are copies."""

    def __init__(self) -> None:
        self._projects: dict[str, Project] = {}
        self._lock = threading.RLock()
        self._listeners: list[ProjectListener] = []

    # -- queries ------------------------------------------------------------

    def fetch_all(self) -> list[Project]:
        """All projects, newest first."""
        with self._lock:
            projects = [p.model_copy(deep=True) for p in self._projects.values()]
        return sorted(projects, key=lambda p: p.created_at, reverse=True)

    def get(self, project_id: str) -> Project:
        with self._lock:
            project = self._projects.get(project_id)
            if project is None:
                raise ProjectNotFoundError(project_id)
            return project.model_copy(deep=True)

    # -- mutations ----------------------------------------------------------

    def create(self, prompt: str, name: str | None = None, *, owner: str = "") -> Project:
        if not prompt or not prompt.strip():
            raise ValueError("prompt must be non-empty")
        project = Project(
            prompt=prompt.strip(),
            name=name or project_name_from_prompt(prompt),
            owner=owner,
        )
        with self._lock:
            self._projects[project.id] = project
            self._persist_or_restore(project.id, None)
            snapshot = project.model_copy(deep=True)
        logger.debug("Created project %s", project.id)
        self._notify(snapshot)
        return snapshot

    def update_partial(self, project_id: str, fields: dict[str, Any]) -> Project:
        """Apply *fields* to one project and refresh ``updated_at``."""
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        with self._lock:
            current = self._projects.get(project_id)
            if current is None:
                raise ProjectNotFoundError(project_id)
            data = current.model_dump()
            data.update(fields)
            data["updated_at"] = utcnow()
            updated = Project.model_validate(data)
            self._projects[project_id] = updated
            self._persist_or_restore(project_id, current)
            snapshot = updated.model_copy(deep=True)
        logger.debug("Updated project %s: %s", project_id, ", ".join(sorted(fields)))
        self._notify(snapshot)
        return snapshot

    def delete(self, project_id: str) -> None:
        with self._lock:
            removed = self._projects.pop(project_id, None)
            if removed is None:
                raise ProjectNotFoundError(project_id)
            self._persist_or_restore(project_id, removed)
        logger.debug("Deleted project %s", project_id)

    # -- subscriptions ------------------------------------------------------

    def subscribe(self, listener: ProjectListener) -> Callable[[], None]:
        """Call *listener* with each new snapshot; returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, project: Project) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(project.model_copy(deep=True))

    def _persist(self) -> None:
        """Hook for durable subclasses; called with the lock held."""

    def _persist_or_restore(self, project_id: str, previous: Project | None) -> None:
        """Persist, putting back *previous* for *project_id* if the write fails."""
        try:
            self._persist()
        except BaseException:
            if previous is None:
                self._projects.pop(project_id, None)
            else:
                self._projects[project_id] = previous
            raise


class JsonProjectStore(InMemoryProjectStore):
    """Store persisted to a single JSON file.

    The file is rewritten after every mutation through a temporary file and
    ``os.replace`` so readers never see a partial write.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        with open(self.path, encoding="utf-8") as f:
            raw = json.load(f)
        for item in raw.get("projects", []):
            project = Project.model_validate(item)
            self._projects[project.id] = project
        logger.debug("Loaded %d projects from %s", len(self._projects), self.path)

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"projects": [p.model_dump(mode="json") for p in self._projects.values()]}
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".projects-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
