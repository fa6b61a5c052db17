"""Permission service for project and task access checks.

Permission Model:
- Project access: the project's owner or a row in ProjectMembers
- Task access: the task's creator or assignee, a member of the task's
  project, or any manager/admin
- Task status change: the task's creator or assignee, or any manager/admin

Checks are evaluated on every request and never cached, so membership
changes take effect on the next join.
"""

from ..models.task import Task
from ..schemas.user import Identity
from .gateway import PersistenceGateway


class PermissionService:
    """
    Service class for permission checks.

    Shared by the room coordinator, the event handlers and the REST routes
    so every entry point applies the same rules.
    """

    def __init__(self, gateway: PersistenceGateway):
        """
        Initialize the PermissionService.

        Args:
            gateway: Persistence gateway used for membership lookups
        """
        self.gateway = gateway

    async def can_access_project(self, identity: Identity, project_id: int) -> bool:
        """
        Check if a user owns or belongs to a project.

        Args:
            identity: The acting user
            project_id: The project's ID

        Returns:
            True if the user may join the project room
        """
        return await self.gateway.is_project_member(identity.id, project_id)

    async def can_access_task(self, identity: Identity, task: Task) -> bool:
        """
        Check if a user may view a task and receive its events.

        Args:
            identity: The acting user
            task: The task being accessed

        Returns:
            True if the user may join the task room or comment on the task
        """
        if identity.is_elevated:
            return True
        if identity.id in (task.created_by, task.assignee_id):
            return True
        if task.project_id is None:
            return False
        return await self.gateway.is_project_member(identity.id, task.project_id)

    @staticmethod
    def can_change_task_status(identity: Identity, task: Task) -> bool:
        """Check if a user may move a task between statuses."""
        if identity.is_elevated:
            return True
        return identity.id in (task.created_by, task.assignee_id)
