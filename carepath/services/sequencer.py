"""
Sibling Sequencer

Keeps sequence_number dense (1..N) among siblings: modules within a program,
content items within a module, questions within an assessment.

None of these methods commit. Callers run them inside a unit of work so a
shift and the final placement land together or not at all.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from carepath.errors import NotFoundError, ValidationError
from carepath.models import ContentItem, Module, Question

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SiblingFamily:
    """A model whose rows are ordered within a parent"""
    name: str
    model: type
    parent_attr: str

    @property
    def parent_column(self):
        return getattr(self.model, self.parent_attr)


MODULES = SiblingFamily("Module", Module, "program_id")
CONTENT_ITEMS = SiblingFamily("Content item", ContentItem, "module_id")
QUESTIONS = SiblingFamily("Question", Question, "assessment_id")


def clamp_position(position: int, sibling_count: int) -> int:
    """Clamp a requested position into [1, sibling_count]."""
    if sibling_count < 1:
        return 1
    return max(1, min(position, sibling_count))


def shift_window(current: int, target: int) -> Optional[Tuple[int, int, int]]:
    """
    Siblings displaced by moving an item from current to target.

    Returns (low, high, delta): every sibling with low <= seq <= high moves
    by delta. None when the item stays where it is.
    """
    if current == target:
        return None
    if current < target:
        return current + 1, target, -1
    return target, current - 1, 1


def dense_renumbering(ordered: Sequence[Tuple[UUID, int]]) -> Dict[UUID, int]:
    """Map each id whose position differs from its 1-based rank to that rank."""
    changes = {}
    for rank, (item_id, sequence_number) in enumerate(ordered, start=1):
        if sequence_number != rank:
            changes[item_id] = rank
    return changes


class Sequencer:
    """Dense ordering operations for one sibling family"""

    def __init__(self, session: AsyncSession, family: SiblingFamily):
        self.session = session
        self.family = family

    @property
    def model(self):
        return self.family.model

    async def next_sequence(self, parent_id: UUID) -> int:
        result = await self.session.execute(
            select(func.max(self.model.sequence_number)).where(self.family.parent_column == parent_id)
        )
        current_max = result.scalar()
        return (current_max or 0) + 1

    async def sibling_count(self, parent_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(self.model).where(self.family.parent_column == parent_id)
        )
        return result.scalar() or 0

    async def reorder(self, item_id: UUID, new_position: int, parent_id: Optional[UUID] = None) -> int:
        """
        Move an item to new_position, shifting the siblings in between.

        The target is clamped to [1, sibling_count]. Returns the position the
        item ends up at.
        """
        item = await self.session.get(self.model, item_id)
        if item is None:
            raise NotFoundError(self.family.name)

        item_parent = getattr(item, self.family.parent_attr)
        if parent_id is not None and item_parent != parent_id:
            raise ValidationError.for_field(
                "parent_id", f"{self.family.name} does not belong to the given parent"
            )

        count = await self.sibling_count(item_parent)
        target = clamp_position(new_position, count)
        current = item.sequence_number

        window = shift_window(current, target)
        if window is None:
            return current

        low, high, delta = window
        await self.session.execute(
            update(self.model)
            .where(
                self.family.parent_column == item_parent,
                self.model.id != item.id,
                self.model.sequence_number >= low,
                self.model.sequence_number <= high,
            )
            .values(sequence_number=self.model.sequence_number + delta)
            .execution_options(synchronize_session="fetch")
        )
        item.sequence_number = target
        await self.session.flush()

        logger.info(
            f"Reordered {self.family.name.lower()} {item_id}: {current} -> {target} "
            f"(shifted {low}..{high} by {delta:+d})"
        )
        return target

    async def close_gap(self, parent_id: UUID) -> int:
        """Renumber remaining siblings to 1..count; returns how many moved."""
        result = await self.session.execute(
            select(self.model)
            .where(self.family.parent_column == parent_id)
            .order_by(self.model.sequence_number, self.model.created_at)
        )
        siblings: List = list(result.scalars().all())
        changes = dense_renumbering([(s.id, s.sequence_number) for s in siblings])

        for sibling in siblings:
            if sibling.id in changes:
                sibling.sequence_number = changes[sibling.id]

        if changes:
            await self.session.flush()
            logger.debug(f"Closed sequence gap under {parent_id}: {len(changes)} renumbered")
        return len(changes)
