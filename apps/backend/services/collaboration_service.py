"""
Collaboration Service
=====================
Comments, tasks and emoji reactions.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select

from exceptions import NotFoundError, PermissionDeniedError, ValidationError
from models import (
    Comment,
    Document,
    Equipment,
    MaintenanceIntervention,
    Reaction,
    Task,
    TaskPriority,
    TaskStatus,
    User,
    utcnow,
)
from services.base import BaseService

logger = logging.getLogger(__name__)

COMMENT_TARGETS = {
    "document_id": Document,
    "equipment_id": Equipment,
    "maintenance_id": MaintenanceIntervention,
}
TASK_FIELDS = ("title", "description", "status", "priority", "due_date", "assigned_to")
TASK_STATUSES = tuple(s.value for s in TaskStatus)
TASK_PRIORITIES = tuple(p.value for p in TaskPriority)


class CollaborationService(BaseService):
    """
    Usage:
        service = CollaborationService.from_session(session)
        comment = await service.add_comment(user_id=1, content="Checked", document_id=5)
    """

    # =========================================================================
    # Comments
    # =========================================================================

    async def list_comments(
        self,
        document_id: Optional[int] = None,
        equipment_id: Optional[int] = None,
        maintenance_id: Optional[int] = None,
    ) -> List[Comment]:
        stmt = select(Comment)
        if document_id is not None:
            stmt = stmt.where(Comment.document_id == document_id)
        if equipment_id is not None:
            stmt = stmt.where(Comment.equipment_id == equipment_id)
        if maintenance_id is not None:
            stmt = stmt.where(Comment.maintenance_id == maintenance_id)
        result = await self._session.execute(stmt.order_by(Comment.created_at, Comment.id))
        return list(result.scalars().all())

    async def add_comment(
        self,
        user_id: int,
        content: str,
        document_id: Optional[int] = None,
        equipment_id: Optional[int] = None,
        maintenance_id: Optional[int] = None,
        parent_id: Optional[int] = None,
    ) -> Comment:
        """
        Raises:
            ValidationError: Empty content, or not exactly one target
            NotFoundError: Unknown target or parent comment
        """
        if not (content or "").strip():
            raise ValidationError("Comment content is required", field="content")

        targets = {
            "document_id": document_id,
            "equipment_id": equipment_id,
            "maintenance_id": maintenance_id,
        }
        chosen = {k: v for k, v in targets.items() if v is not None}
        if len(chosen) != 1:
            raise ValidationError(
                "Exactly one of document_id, equipment_id or maintenance_id is required", field="target"
            )

        (field, target_id), = chosen.items()
        if await self._session.get(COMMENT_TARGETS[field], target_id) is None:
            raise NotFoundError(COMMENT_TARGETS[field].__name__, target_id)

        if parent_id is not None and await self._session.get(Comment, parent_id) is None:
            raise NotFoundError("Comment", parent_id)

        comment = Comment(user_id=user_id, content=content.strip(), parent_id=parent_id, **targets)
        self._session.add(comment)
        await self._flush("Could not add comment", resource="comment")
        return comment

    async def delete_comment(self, comment_id: int, user: User) -> bool:
        comment = await self._session.get(Comment, comment_id)
        if comment is None:
            raise NotFoundError("Comment", comment_id)
        if comment.user_id != user.id and not user.is_admin:
            raise PermissionDeniedError("Only the author can delete this comment", action="delete_comment", user_id=user.id)

        await self._session.delete(comment)
        await self._session.flush()
        return True

    # =========================================================================
    # Tasks
    # =========================================================================

    async def list_tasks(self, assigned_to: Optional[int] = None, status: Optional[str] = None) -> List[Task]:
        stmt = select(Task)
        if assigned_to is not None:
            stmt = stmt.where(Task.assigned_to == assigned_to)
        if status:
            stmt = stmt.where(Task.status == status)
        result = await self._session.execute(stmt.order_by(Task.created_at.desc(), Task.id.desc()))
        return list(result.scalars().all())

    async def require_task(self, task_id: int) -> Task:
        task = await self._session.get(Task, task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def create_task(self, data: Dict[str, Any], user_id: Optional[int]) -> Task:
        self._check_task(data)
        values = {k: v for k, v in data.items() if k in TASK_FIELDS and v is not None}
        task = Task(created_by=user_id, **values)
        if task.status == TaskStatus.COMPLETED.value:
            task.completed_at = utcnow()
        self._session.add(task)
        await self._flush("Could not create task", resource="task")
        return task

    async def update_task(self, task_id: int, changes: Dict[str, Any]) -> Task:
        """Apply changes. Entering ``completed`` stamps completed_at, leaving it clears it."""
        task = await self.require_task(task_id)
        self._check_task(changes)

        previous_status = task.status
        for key, value in changes.items():
            if key in TASK_FIELDS and value is not None:
                setattr(task, key, value)

        if task.status == TaskStatus.COMPLETED.value and previous_status != TaskStatus.COMPLETED.value:
            task.completed_at = utcnow()
        elif task.status != TaskStatus.COMPLETED.value:
            task.completed_at = None

        await self._session.flush()
        return task

    async def delete_task(self, task_id: int, user: User) -> bool:
        task = await self.require_task(task_id)
        if task.created_by != user.id and not user.is_admin:
            raise PermissionDeniedError("Only the creator can delete this task", action="delete_task", user_id=user.id)
        await self._session.delete(task)
        await self._session.flush()
        return True

    @staticmethod
    def _check_task(data: Dict[str, Any]) -> None:
        status = data.get("status")
        if status is not None and status not in TASK_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(TASK_STATUSES)}", field="status")
        priority = data.get("priority")
        if priority is not None and priority not in TASK_PRIORITIES:
            raise ValidationError(
                f"Invalid priority. Must be one of: {', '.join(TASK_PRIORITIES)}", field="priority"
            )

    # =========================================================================
    # Reactions
    # =========================================================================

    @staticmethod
    def _target_condition(comment_id: Optional[int], task_id: Optional[int]):
        if comment_id is not None:
            return Reaction.comment_id == comment_id
        if task_id is not None:
            return Reaction.task_id == task_id
        raise ValidationError("A comment_id or task_id is required", field="target")

    async def toggle_reaction(
        self,
        user_id: int,
        emoji: Optional[str],
        comment_id: Optional[int] = None,
        task_id: Optional[int] = None,
    ) -> Optional[Reaction]:
        """
        Add the reaction, or remove it if the user already reacted that way.

        Returns:
            The new reaction, or None when it was removed
        """
        if not emoji:
            raise ValidationError("Emoji is required", field="emoji")
        target = self._target_condition(comment_id, task_id)

        if comment_id is not None and await self._session.get(Comment, comment_id) is None:
            raise NotFoundError("Comment", comment_id)
        if comment_id is None and await self._session.get(Task, task_id) is None:
            raise NotFoundError("Task", task_id)

        result = await self._session.execute(
            select(Reaction).where(Reaction.user_id == user_id, Reaction.emoji == emoji, target)
        )
        existing = result.scalars().first()
        if existing is not None:
            await self._session.delete(existing)
            await self._session.flush()
            return None

        reaction = Reaction(
            emoji=emoji,
            user_id=user_id,
            comment_id=comment_id,
            task_id=task_id if comment_id is None else None,
        )
        self._session.add(reaction)
        await self._flush("Could not add reaction", resource="reaction")
        return reaction

    async def formatted_reactions(
        self,
        user_id: int,
        comment_id: Optional[int] = None,
        task_id: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Per-emoji counts, most used first, flagged when the user reacted."""
        target = self._target_condition(comment_id, task_id)

        count = func.count(Reaction.id).label("count")
        result = await self._session.execute(
            select(Reaction.emoji, count).where(target).group_by(Reaction.emoji).order_by(count.desc(), Reaction.emoji)
        )
        counts = result.all()

        mine = await self._session.execute(
            select(Reaction.emoji).where(target, Reaction.user_id == user_id)
        )
        selected = set(mine.scalars().all())

        return [
            {"emoji": emoji, "count": int(n), "selected": emoji in selected}
            for emoji, n in counts
        ]
