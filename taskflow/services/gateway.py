"""Persistence gateway: the query/command interface to the relational store.

Every call opens its own short-lived async session, so callers never hold
a session across an await on the socket. Between issuing a query and
receiving its result other connections' events may interleave; the gateway
itself keeps no state.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import Request
from sqlalchemy import case, delete, exists, func, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import joinedload

from ..models import (
    Comment,
    MessageReaction,
    Notification,
    Project,
    ProjectMember,
    ProjectMessage,
    Task,
    User,
)
from ..schemas.notification import NotificationCreate
from ..schemas.user import Identity, UserRole

logger = logging.getLogger(__name__)

# Membership roles that may moderate a project's chat
PROJECT_ADMIN_ROLES = ("admin", "manager")

_PRIORITY_ORDER = case(
    (Notification.priority == "urgent", 0),
    (Notification.priority == "high", 1),
    (Notification.priority == "normal", 2),
    else_=3,
)


class PersistenceGateway:
    """
    Async query/command interface over users, projects, tasks, comments,
    project messages and notifications.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        """
        Initialize the gateway.

        Args:
            session_maker: Factory producing async sessions
        """
        self._session_maker = session_maker

    async def ping(self) -> bool:
        """Run a trivial query to confirm the store is reachable."""
        try:
            async with self._session_maker() as db:
                await db.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Database health check failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user(self, user_id: int) -> Optional[User]:
        """Load a user row by id, including soft-deleted ones."""
        async with self._session_maker() as db:
            result = await db.execute(select(User).where(User.id == user_id))
            return result.scalar_one_or_none()

    @staticmethod
    def to_identity(user: User) -> Identity:
        """Build the connection-cached Identity from a user row."""
        try:
            role = UserRole(user.role or UserRole.MEMBER.value)
        except ValueError:
            role = UserRole.MEMBER
        return Identity(
            id=user.id,
            name=user.name,
            avatar=user.avatar,
            email=user.email,
            role=role,
        )

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def get_project(self, project_id: int) -> Optional[Project]:
        """Load a project row by id."""
        async with self._session_maker() as db:
            result = await db.execute(select(Project).where(Project.id == project_id))
            return result.scalar_one_or_none()

    async def is_project_member(self, user_id: int, project_id: int) -> bool:
        """
        Check whether a user owns or belongs to a project.

        Uses EXISTS so no rows are loaded.
        """
        async with self._session_maker() as db:
            owner = await db.execute(
                select(
                    exists().where(
                        Project.id == project_id,
                        Project.created_by == user_id,
                    )
                )
            )
            if owner.scalar():
                return True

            member = await db.execute(
                select(
                    exists().where(
                        ProjectMember.project_id == project_id,
                        ProjectMember.user_id == user_id,
                    )
                )
            )
            return bool(member.scalar())

    async def list_project_member_ids(self, project_id: int) -> list[int]:
        """Return the owner and all member ids of a project, without duplicates."""
        async with self._session_maker() as db:
            owner_result = await db.execute(
                select(Project.created_by).where(Project.id == project_id)
            )
            member_result = await db.execute(
                select(ProjectMember.user_id).where(ProjectMember.project_id == project_id)
            )
            ids: list[int] = []
            owner_id = owner_result.scalar_one_or_none()
            if owner_id is not None:
                ids.append(owner_id)
            for user_id in member_result.scalars():
                if user_id not in ids:
                    ids.append(user_id)
            return ids

    async def is_project_admin(self, user_id: int, project_id: int) -> bool:
        """Check whether a user owns a project or holds an admin or manager membership in it."""
        async with self._session_maker() as db:
            owner = await db.execute(
                select(
                    exists().where(
                        Project.id == project_id,
                        Project.created_by == user_id,
                    )
                )
            )
            if owner.scalar():
                return True

            member = await db.execute(
                select(
                    exists().where(
                        ProjectMember.project_id == project_id,
                        ProjectMember.user_id == user_id,
                        ProjectMember.role.in_(PROJECT_ADMIN_ROLES),
                    )
                )
            )
            return bool(member.scalar())

    # ------------------------------------------------------------------
    # Tasks and comments
    # ------------------------------------------------------------------

    async def get_task(self, task_id: int) -> Optional[Task]:
        """Load a task with its assignee/creator/project linkage."""
        async with self._session_maker() as db:
            result = await db.execute(select(Task).where(Task.id == task_id))
            return result.scalar_one_or_none()

    async def update_task_status(self, task_id: int, new_status: str) -> Optional[Task]:
        """
        Persist a task's status.

        Returns:
            The updated task, or None if it no longer exists
        """
        async with self._session_maker() as db:
            result = await db.execute(select(Task).where(Task.id == task_id))
            task = result.scalar_one_or_none()
            if task is None:
                return None
            task.status = new_status
            task.updated_at = datetime.utcnow()
            await db.commit()
            await db.refresh(task)
            return task

    async def insert_comment(self, task_id: int, user_id: int, content: str) -> Comment:
        """Insert a comment and return it with its author loaded."""
        async with self._session_maker() as db:
            comment = Comment(task_id=task_id, user_id=user_id, content=content)
            db.add(comment)
            await db.flush()
            comment_id = comment.id
            await db.commit()

            result = await db.execute(
                select(Comment)
                .options(joinedload(Comment.author))
                .where(Comment.id == comment_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one()

    async def list_comments(self, task_id: int, limit: int = 100) -> list[Comment]:
        """List a task's comments, oldest first."""
        async with self._session_maker() as db:
            result = await db.execute(
                select(Comment)
                .options(joinedload(Comment.author))
                .where(Comment.task_id == task_id)
                .order_by(Comment.created_at.asc(), Comment.id.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Project messages
    # ------------------------------------------------------------------

    async def create_project_message(
        self,
        project_id: int,
        user_id: int,
        message: str,
        message_type: str = "text",
        reply_to: Optional[int] = None,
    ) -> ProjectMessage:
        """Insert a chat message and return it with its author loaded."""
        async with self._session_maker() as db:
            row = ProjectMessage(
                project_id=project_id,
                user_id=user_id,
                message=message,
                message_type=message_type,
                reply_to=reply_to,
            )
            db.add(row)
            await db.flush()
            message_id = row.id
            await db.commit()

            result = await db.execute(
                select(ProjectMessage)
                .options(joinedload(ProjectMessage.author))
                .where(ProjectMessage.id == message_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one()

    async def list_project_messages(
        self,
        project_id: int,
        skip: int = 0,
        limit: int = 50,
    ) -> list[ProjectMessage]:
        """List non-archived chat messages of a project, newest first."""
        async with self._session_maker() as db:
            result = await db.execute(
                select(ProjectMessage)
                .options(joinedload(ProjectMessage.author))
                .where(
                    ProjectMessage.project_id == project_id,
                    ProjectMessage.is_archived.is_(False),
                )
                .order_by(ProjectMessage.created_at.desc(), ProjectMessage.id.desc())
                .offset(skip)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_project_message(self, project_id: int, message_id: int) -> Optional[ProjectMessage]:
        """Load a chat message of a project with its author."""
        async with self._session_maker() as db:
            result = await db.execute(
                select(ProjectMessage)
                .options(joinedload(ProjectMessage.author))
                .where(
                    ProjectMessage.id == message_id,
                    ProjectMessage.project_id == project_id,
                )
            )
            return result.scalar_one_or_none()

    async def update_project_message(self, message_id: int, message: str) -> Optional[ProjectMessage]:
        """Replace the body of a message and flag it as edited."""
        async with self._session_maker() as db:
            await db.execute(
                update(ProjectMessage)
                .where(ProjectMessage.id == message_id)
                .values(message=message, is_edited=True, edited_at=datetime.utcnow())
            )
            await db.commit()

            result = await db.execute(
                select(ProjectMessage)
                .options(joinedload(ProjectMessage.author))
                .where(ProjectMessage.id == message_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def delete_project_message(self, message_id: int) -> bool:
        """Delete a message and its reactions; returns whether the message went away."""
        async with self._session_maker() as db:
            await db.execute(delete(MessageReaction).where(MessageReaction.message_id == message_id))
            result = await db.execute(delete(ProjectMessage).where(ProjectMessage.id == message_id))
            await db.commit()
            return (result.rowcount or 0) > 0

    async def archive_project_messages(self, project_id: int, before: datetime) -> int:
        """Archive every live message of a project posted before a cutoff; returns the count."""
        async with self._session_maker() as db:
            result = await db.execute(
                update(ProjectMessage)
                .where(
                    ProjectMessage.project_id == project_id,
                    ProjectMessage.created_at < before,
                    ProjectMessage.is_archived.is_(False),
                )
                .values(is_archived=True, archived_at=datetime.utcnow())
            )
            await db.commit()
            return result.rowcount or 0

    async def toggle_message_reaction(self, message_id: int, user_id: int, emoji: str) -> bool:
        """
        Add a reaction, or remove it if the user already reacted with that emoji.

        Returns:
            True if the reaction was added, False if it was removed
        """
        async with self._session_maker() as db:
            result = await db.execute(
                delete(MessageReaction).where(
                    MessageReaction.message_id == message_id,
                    MessageReaction.user_id == user_id,
                    MessageReaction.emoji == emoji,
                )
            )
            if (result.rowcount or 0) > 0:
                await db.commit()
                return False

            db.add(MessageReaction(message_id=message_id, user_id=user_id, emoji=emoji))
            await db.commit()
            return True

    async def list_message_reactions(self, message_id: int) -> list[dict]:
        """
        Group the reactions of a message by emoji.

        Returns:
            One ``{"emoji", "count", "users"}`` entry per emoji, in the order
            each emoji was first used
        """
        async with self._session_maker() as db:
            result = await db.execute(
                select(MessageReaction)
                .options(joinedload(MessageReaction.user))
                .where(MessageReaction.message_id == message_id)
                .order_by(MessageReaction.created_at, MessageReaction.id)
            )
            grouped: dict[str, list[dict]] = {}
            for reaction in result.scalars().all():
                grouped.setdefault(reaction.emoji, []).append({
                    "id": reaction.user.id,
                    "name": reaction.user.name,
                    "avatar": reaction.user.avatar,
                })
            return [
                {"emoji": emoji, "count": len(users), "users": users}
                for emoji, users in grouped.items()
            ]

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def create_notification(self, data: NotificationCreate) -> Notification:
        """Insert a notification row."""
        async with self._session_maker() as db:
            notification = Notification(
                user_id=data.user_id,
                type=data.type.value,
                title=data.title,
                message=data.message,
                data=data.data,
                project_id=data.project_id,
                task_id=data.task_id,
                message_id=data.message_id,
                action_url=data.action_url,
                priority=data.priority.value,
            )
            db.add(notification)
            await db.commit()
            await db.refresh(notification)

            logger.info(
                f"Notification created: id={notification.id}, "
                f"user={notification.user_id}, type={notification.type}"
            )
            return notification

    async def get_notification(self, notification_id: int, user_id: int) -> Optional[Notification]:
        """Load a notification only if it belongs to the given user."""
        async with self._session_maker() as db:
            result = await db.execute(
                select(Notification).where(
                    Notification.id == notification_id,
                    Notification.user_id == user_id,
                )
            )
            return result.scalar_one_or_none()

    async def list_notifications(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 20,
        unread_only: bool = False,
        notification_type: Optional[str] = None,
    ) -> list[Notification]:
        """List a user's notifications, most urgent then newest first."""
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.read_at.is_(None))
        if notification_type:
            query = query.where(Notification.type == notification_type)
        query = (
            query.order_by(_PRIORITY_ORDER, Notification.created_at.desc(), Notification.id.desc())
            .offset(skip)
            .limit(limit)
        )

        async with self._session_maker() as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def count_notifications(self, user_id: int) -> tuple[int, int]:
        """Return (total, unread) notification counts for a user."""
        async with self._session_maker() as db:
            result = await db.execute(
                select(
                    func.count(Notification.id),
                    func.count(Notification.id).filter(Notification.read_at.is_(None)),
                ).where(Notification.user_id == user_id)
            )
            total, unread = result.one()
            return total or 0, unread or 0

    async def mark_notification_read(
        self,
        notification_id: int,
        user_id: int,
    ) -> Optional[Notification]:
        """
        Set read_at on a notification scoped to (notification_id, user_id).

        Marking an already-read notification keeps its original read_at.

        Returns:
            The notification, or None if it does not exist for this user
        """
        async with self._session_maker() as db:
            result = await db.execute(
                select(Notification).where(
                    Notification.id == notification_id,
                    Notification.user_id == user_id,
                )
            )
            notification = result.scalar_one_or_none()
            if notification is None:
                return None
            if notification.read_at is None:
                notification.read_at = datetime.utcnow()
                await db.commit()
                await db.refresh(notification)
            return notification

    async def mark_all_notifications_read(self, user_id: int) -> int:
        """Mark every unread notification of a user as read; returns the count."""
        async with self._session_maker() as db:
            result = await db.execute(
                update(Notification)
                .where(
                    Notification.user_id == user_id,
                    Notification.read_at.is_(None),
                )
                .values(read_at=datetime.utcnow())
            )
            await db.commit()
            return result.rowcount or 0

    async def delete_notification(self, notification_id: int, user_id: int) -> bool:
        """Delete a notification scoped to its owner; returns whether a row went away."""
        async with self._session_maker() as db:
            result = await db.execute(
                delete(Notification).where(
                    Notification.id == notification_id,
                    Notification.user_id == user_id,
                )
            )
            await db.commit()
            return (result.rowcount or 0) > 0

    async def delete_read_notifications(self, user_id: int) -> int:
        """Delete every read notification of a user; returns the count."""
        async with self._session_maker() as db:
            result = await db.execute(
                delete(Notification).where(
                    Notification.user_id == user_id,
                    Notification.read_at.is_not(None),
                )
            )
            await db.commit()
            return result.rowcount or 0


def get_gateway(request: Request) -> PersistenceGateway:
    """FastAPI dependency returning the gateway built in the app lifespan."""
    return request.app.state.gateway
