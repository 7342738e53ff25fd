from __future__ import annotations

from typing import Iterable, Protocol

from .models import Actor, Capability, Project, Role, User


class RoleProvider(Protocol):
    """Resolves what a user may sign off on within one project."""

    def capability(self, user_id: str, project_id: str) -> Capability: ...


def capability_for(user: User, project: Project | None) -> Capability:
    """Admins and designers hold oversight; a client only on their own project."""
    if user.role in (Role.ADMIN, Role.DESIGNER):
        return Capability.OVERSIGHT
    if user.role == Role.CLIENT and project is not None and project.client_id == user.id:
        return Capability.CLIENT
    return Capability.NONE


class DirectoryRoleProvider:
    """In-process role provider backed by known users and projects."""

    def __init__(self, users: Iterable[User], projects: Iterable[Project] = ()) -> None:
        self.users = {user.id: user for user in users}
        self.projects = {project.id: project for project in projects}

    def capability(self, user_id: str, project_id: str) -> Capability:
        user = self.users.get(user_id)
        if user is None:
            return Capability.NONE
        return capability_for(user, self.projects.get(project_id))

    def actor(self, user_id: str, project_id: str) -> Actor:
        return Actor(user_id=user_id, capability=self.capability(user_id, project_id))
