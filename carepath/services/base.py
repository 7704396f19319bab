"""Shared plumbing for services: injected session, unit of work, lookups"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carepath.database import atomic
from carepath.errors import NotFoundError
from carepath.models import User
from carepath.services.cache_invalidator import CacheInvalidator

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


class BaseService:
    """Holds the request-scoped session and cache signal collector"""

    def __init__(self, session: AsyncSession, cache: Optional[CacheInvalidator] = None):
        self.session = session
        self.cache = cache or CacheInvalidator()

    @asynccontextmanager
    async def unit_of_work(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Commit the block atomically, then publish cache invalidations."""
        try:
            async with atomic(self.session, operation):
                yield self.session
        except BaseException:
            self.cache.discard()
            raise
        await self.cache.flush()

    async def get_or_404(self, model: Type[ModelT], entity_id: UUID, resource: str) -> ModelT:
        entity = await self.session.get(model, entity_id)
        if entity is None:
            raise NotFoundError(resource)
        return entity

    async def get_patient(self, patient_id: UUID) -> User:
        result = await self.session.execute(
            select(User).where(User.id == patient_id, User.role == "patient")
        )
        patient = result.scalar_one_or_none()
        if patient is None:
            raise NotFoundError("Patient")
        return patient
