"""Patient mood check-ins"""
import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from carepath.errors import ValidationError
from carepath.models import ContentItem, MoodEntry
from carepath.models.mood_entry import MOOD_TYPES
from carepath.services.base import BaseService

logger = logging.getLogger(__name__)


class MoodTracker(BaseService):

    async def submit_entry(
        self,
        patient_id: UUID,
        mood_type: str,
        mood_score: int,
        journal_entry: Optional[str] = None,
        content_item_id: Optional[UUID] = None,
    ) -> MoodEntry:
        if mood_type not in MOOD_TYPES:
            raise ValidationError.for_field("mood_type", f"Mood must be one of: {', '.join(MOOD_TYPES)}")
        if mood_score is None or not 1 <= mood_score <= 10:
            raise ValidationError.for_field("mood_score", "Mood score must be between 1 and 10")

        await self.get_patient(patient_id)
        if content_item_id is not None:
            await self.get_or_404(ContentItem, content_item_id, "Content item")

        async with self.unit_of_work("mood entry"):
            entry = MoodEntry(
                patient_id=patient_id,
                content_item_id=content_item_id,
                mood_type=mood_type,
                mood_score=mood_score,
                journal_entry=journal_entry or None,
                entry_timestamp=datetime.now(timezone.utc),
            )
            self.session.add(entry)
            await self.session.flush()
            self.cache.mark("/patient/mood")

        logger.info(f"Mood entry {entry.id} for patient {patient_id}: {mood_type} ({mood_score})")
        return entry

    async def recent_entries(self, patient_id: UUID, limit: int = 10) -> List[MoodEntry]:
        """Newest entries first."""
        await self.get_patient(patient_id)
        result = await self.session.execute(
            select(MoodEntry)
            .where(MoodEntry.patient_id == patient_id)
            .order_by(MoodEntry.entry_timestamp.desc())
            .limit(max(1, min(limit, 100)))
        )
        return list(result.scalars().all())
