"""
Goal Tracker

Savings goals with progress tracking. Goals are bookkeeping only: adding
progress to a goal does not move money between jars.
"""

import math
from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog

from dailymoney.jars import to_amount
from dailymoney.ledger.jar_ledger import Clock
from dailymoney.models.ledger import FinancialGoal, GoalPriority, GoalStatus, ensure_utc, utc_now
from dailymoney.services.storage import LedgerStorage, NotFoundError


logger = structlog.get_logger(__name__)

_PRIORITY_RANK = {GoalPriority.HIGH: 2, GoalPriority.MEDIUM: 1, GoalPriority.LOW: 0}


class GoalTracker:
    """Create goals, record progress, and report how far along they are."""

    def __init__(self, storage: LedgerStorage, clock: Clock = utc_now):
        self._storage = storage
        self._clock = clock

    async def create(
        self,
        user_id: str,
        title: str,
        target_amount: object,
        description: Optional[str] = None,
        target_date: Optional[datetime] = None,
        jar_code: Optional[str] = None,
        priority: GoalPriority = GoalPriority.MEDIUM,
    ) -> FinancialGoal:
        now = self._clock()
        goal = FinancialGoal(
            title=title,
            description=description,
            target_amount=to_amount(target_amount),
            target_date=target_date,
            jar_code=jar_code,
            priority=priority,
            created_at=now,
            updated_at=now,
        )
        await self._storage.save_goal(user_id, goal)
        logger.info("goal_created", user_id=user_id, goal_id=str(goal.id))
        return goal

    async def get(self, user_id: str, goal_id: UUID) -> Optional[FinancialGoal]:
        return await self._storage.get_goal(user_id, goal_id)

    async def _require(self, user_id: str, goal_id: UUID) -> FinancialGoal:
        goal = await self._storage.get_goal(user_id, goal_id)
        if goal is None:
            raise NotFoundError(f"Goal not found: {goal_id}")
        return goal

    async def update_progress(self, user_id: str, goal_id: UUID, amount: int) -> FinancialGoal:
        """
        Add `amount` (negative to withdraw) to a goal's current amount.

        An active goal that reaches its target is marked completed.

        Raises:
            NotFoundError: If the goal doesn't exist
            ValueError: If the result would go below zero
        """
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValueError(f"Progress amount must be a whole number, got {amount!r}")

        goal = await self._require(user_id, goal_id)
        new_amount = goal.current_amount + amount
        if new_amount < 0:
            raise ValueError("Goal progress cannot go below zero")

        changes = {"current_amount": new_amount, "updated_at": self._clock()}
        if goal.status == GoalStatus.ACTIVE and new_amount >= goal.target_amount:
            changes["status"] = GoalStatus.COMPLETED

        updated = goal.model_copy(update=changes)
        await self._storage.update_goal(user_id, updated)
        if updated.status != goal.status:
            logger.info("goal_completed", user_id=user_id, goal_id=str(goal_id))
        return updated

    async def cancel(self, user_id: str, goal_id: UUID) -> FinancialGoal:
        goal = await self._require(user_id, goal_id)
        updated = goal.model_copy(
            update={"status": GoalStatus.CANCELLED, "updated_at": self._clock()}
        )
        await self._storage.update_goal(user_id, updated)
        return updated

    async def delete(self, user_id: str, goal_id: UUID) -> bool:
        return await self._storage.delete_goal(user_id, goal_id)

    @staticmethod
    def progress_percentage(goal: FinancialGoal) -> float:
        """Share of the target reached, capped at 100."""
        if goal.target_amount == 0:
            return 0.0
        return min(goal.current_amount / goal.target_amount * 100, 100.0)

    def days_remaining(self, goal: FinancialGoal, now: Optional[datetime] = None) -> Optional[int]:
        """Whole days until the target date, rounded up; None without one."""
        if goal.target_date is None:
            return None
        now = ensure_utc(now) if now is not None else self._clock()
        seconds = (goal.target_date - now).total_seconds()
        return math.ceil(seconds / 86400)

    async def list(self, user_id: str, active_only: bool = False) -> list[FinancialGoal]:
        """
        All goals, newest first. Active goals are ordered by priority
        (high first), then newest first.
        """
        if not active_only:
            return await self._storage.list_goals(user_id)
        goals = await self._storage.list_goals(user_id, status=GoalStatus.ACTIVE)
        # list_goals is newest first and sort is stable
        return sorted(goals, key=lambda g: _PRIORITY_RANK[g.priority], reverse=True)
