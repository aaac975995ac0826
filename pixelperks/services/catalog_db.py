"""DB service layer for the package catalog and loyalty settings."""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from uuid6 import uuid7

from pixelperks.crud import CreateData, DeleteData, ReadData, UpdateData
from pixelperks.domain.pricing_rules import walk_in_packages
from pixelperks.models.dc_models import PackageModel
from pixelperks.models.schema_models import GamingPackageSchema, SettingsSchema, StationType


async def ensure_settings(session: AsyncSession) -> SettingsSchema:
    """Read the settings row, creating it with defaults on first use."""
    settings = await ReadData.read_settings(session)
    if settings is None:
        settings = SettingsSchema()
        await CreateData.create_settings(settings, session)
        logging.info("Created default loyalty settings")
    return settings


class CatalogService:
    def __init__(self, session_factory: async_sessionmaker):
        self.Session = session_factory

    async def create_package(self, package: PackageModel) -> GamingPackageSchema:
        new_package = GamingPackageSchema(package_id=uuid7(), **package.model_dump())
        async with self.Session() as session:
            async with session.begin():
                await CreateData.create_package(new_package, session)
        return new_package

    async def read_package(self, package_id: UUID) -> Optional[GamingPackageSchema]:
        async with self.Session() as session:
            return await ReadData.read_package(package_id, session)

    async def read_packages(self) -> List[GamingPackageSchema]:
        async with self.Session() as session:
            return await ReadData.read_packages(session)

    async def read_walk_in_packages(
        self, station_type: StationType, now: Optional[datetime] = None
    ) -> List[GamingPackageSchema]:
        packages = await self.read_packages()
        return walk_in_packages(packages, station_type, now or datetime.now())

    async def delete_package(self, package_id: UUID) -> bool:
        async with self.Session() as session:
            async with session.begin():
                return await DeleteData.delete_package(package_id, session)

    async def read_settings(self) -> SettingsSchema:
        async with self.Session() as session:
            async with session.begin():
                return await ensure_settings(session)

    async def update_settings(self, settings: SettingsSchema) -> SettingsSchema:
        async with self.Session() as session:
            async with session.begin():
                await ensure_settings(session)
                await UpdateData.update_settings(settings, session)
        logging.info(f"Settings updated, active cycle is {settings.active_cycle}")
        return settings
