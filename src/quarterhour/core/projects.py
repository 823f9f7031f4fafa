"""Project catalog with optimistic create, edit, archive and delete."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Awaitable, Callable, Optional

from PySide6.QtCore import QObject, Signal

from .exceptions import LoadError, MutationError, PersistenceError, ValidationError
from .models import DEFAULT_PROJECT_COLOR, LocalId, Project, ProjectId, is_pending
from .mutations import MutationResult, MutationState, Notification, NotificationLevel
from .remote import RemoteStore


class ProjectCatalog(QObject):
    """Holds the user's projects, sorted by name, mirrored from the remote store."""

    projects_changed: Signal = Signal()
    notification: Signal = Signal(object)
    project_deleted: Signal = Signal(object)

    def __init__(
        self,
        remote: RemoteStore,
        logger: logging.Logger | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._remote = remote
        self._logger = logger or logging.getLogger("quarterhour.projects")
        self._projects: list[Project] = []
        self._in_flight: set[ProjectId] = set()

    # ------------------------------------------------------------------
    @property
    def projects(self) -> list[Project]:
        return list(self._projects)

    def active_projects(self) -> list[Project]:
        return [project for project in self._projects if not project.archived]

    def get(self, project_id: ProjectId) -> Optional[Project]:
        for project in self._projects:
            if project.id == project_id:
                return project
        return None

    async def load(self) -> bool:
        try:
            fetched = await self._remote.select_projects()
        except PersistenceError as exc:
            self._logger.warning("Project load failed", extra={"event": "projects_load_failed"})
            self._notify(NotificationLevel.ERROR, "Failed to load projects", LoadError(str(exc)))
            return False
        self._set(fetched)
        self._logger.info("Projects loaded", extra={"event": "projects_loaded", "count": len(fetched)})
        return True

    # ------------------------------------------------------------------
    async def add_project(self, name: str, color: str = DEFAULT_PROJECT_COLOR) -> MutationResult:
        result = MutationResult("add_project")
        try:
            clean_name = _clean_name(name)
        except ValidationError as exc:
            return self._reject(result, exc)

        draft = Project(id=LocalId(), name=clean_name, color=color)
        self._put(draft.id, draft)

        async def call() -> Project:
            return await self._remote.insert_project(clean_name, color)

        def commit(created: Project) -> None:
            self._projects = [project for project in self._projects if project.id != draft.id]
            self._put(created.id, created)

        return await self._settle(
            result, draft.id, None, call, commit, "Project created", "Failed to create project"
        )

    async def update_project(self, project_id: ProjectId, name: str, color: str) -> MutationResult:
        result = MutationResult("update_project")
        try:
            current = self._require(project_id)
            clean_name = _clean_name(name)
        except ValidationError as exc:
            return self._reject(result, exc)
        return await self._patch(result, current, "Project updated", "Failed to update project", name=clean_name, color=color)

    async def toggle_archive(self, project_id: ProjectId) -> MutationResult:
        result = MutationResult("toggle_archive")
        try:
            current = self._require(project_id)
        except ValidationError as exc:
            return self._reject(result, exc)
        archived = not current.archived
        success = "Project archived" if archived else "Project unarchived"
        return await self._patch(result, current, success, "Failed to update project", archived=archived)

    async def delete_project(self, project_id: ProjectId) -> MutationResult:
        """Remove a project; the remote store drops its slots with it.

        ``project_deleted`` is emitted once the removal is confirmed so slot
        mirrors can drop the project's slots too.
        """
        result = MutationResult("delete_project")
        try:
            current = self._require(project_id)
        except ValidationError as exc:
            return self._reject(result, exc)

        self._put(current.id, None)

        async def call() -> None:
            await self._remote.delete_project(current.id)

        def commit(_none: None) -> None:
            self.project_deleted.emit(current.id)

        return await self._settle(
            result, current.id, current, call, commit, "Project deleted", "Failed to delete project"
        )

    # ------------------------------------------------------------------
    async def _patch(self, result: MutationResult, current: Project, success: str, failure: str, **changes) -> MutationResult:
        self._put(current.id, replace(current, **changes))

        async def call() -> Project:
            return await self._remote.update_project(current.id, **changes)

        def commit(updated: Project) -> None:
            self._put(current.id, updated)

        return await self._settle(result, current.id, current, call, commit, success, failure)

    async def _settle(
        self,
        result: MutationResult,
        project_id: ProjectId,
        previous: Optional[Project],
        call: Callable[[], Awaitable[object]],
        commit: Callable[[object], None],
        success: str,
        failure: str,
    ) -> MutationResult:
        """Await ``call``; on failure put back ``previous`` for this project only."""
        self._in_flight.add(project_id)
        try:
            confirmed = await call()
        except Exception as exc:
            self._logger.error(
                "Project change failed; rolling back",
                exc_info=exc,
                extra={"event": "projects_rolled_back", "operation": result.operation},
            )
            self._put(project_id, previous)
            error = MutationError(f"{failure}: {exc}")
            error.__cause__ = exc
            result.state = MutationState.ROLLED_BACK
            result.error = error
            self._notify(NotificationLevel.ERROR, failure, error)
            return result
        finally:
            self._in_flight.discard(project_id)
        commit(confirmed)
        result.state = MutationState.COMMITTED
        self._logger.info("Project change committed", extra={"event": "projects_committed", "operation": result.operation})
        self._notify(NotificationLevel.SUCCESS, success)
        return result

    def _require(self, project_id: ProjectId) -> Project:
        project = self.get(project_id)
        if project is None:
            raise ValidationError(f"Unknown project: {project_id}")
        if is_pending(project.id):
            raise ValidationError("The project is still being created")
        if project.id in self._in_flight:
            raise ValidationError(f"A change to {project.name} is still in progress")
        return project

    def _reject(self, result: MutationResult, exc: ValidationError) -> MutationResult:
        result.state = MutationState.REJECTED
        result.error = exc
        self._notify(NotificationLevel.WARNING, str(exc), exc)
        return result

    def _put(self, project_id: ProjectId, project: Optional[Project]) -> None:
        """Replace, insert or (with ``None``) drop the record for ``project_id``."""
        others = [existing for existing in self._projects if existing.id != project_id]
        self._set(others if project is None else [*others, project])

    def _set(self, projects: list[Project]) -> None:
        self._projects = sorted(projects, key=lambda project: project.name.lower())
        self.projects_changed.emit()

    def _notify(self, level: NotificationLevel, message: str, error=None) -> None:
        self.notification.emit(Notification(level=level, message=message, error=error))


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Project name is required")
    return cleaned
