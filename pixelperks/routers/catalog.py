from typing import List
from uuid import UUID

from fastapi import APIRouter, HTTPException

from pixelperks.models.dc_models import PackageModel
from pixelperks.models.schema_models import GamingPackageSchema, SettingsSchema, StationType
from pixelperks.services import registry

catalog_router = APIRouter(tags=["catalog"])


class PackageAPI:
    @staticmethod
    @catalog_router.post("/packages", response_model=GamingPackageSchema, status_code=201)
    async def create_package(package: PackageModel):
        return await registry.catalog_service.create_package(package)

    @staticmethod
    @catalog_router.get("/packages", response_model=List[GamingPackageSchema])
    async def get_packages():
        return await registry.catalog_service.read_packages()

    @staticmethod
    @catalog_router.get("/packages/walk-in", response_model=List[GamingPackageSchema])
    async def get_walk_in_packages(station_type: StationType):
        return await registry.catalog_service.read_walk_in_packages(station_type)

    @staticmethod
    @catalog_router.delete("/packages/{package_id}", status_code=204)
    async def delete_package(package_id: UUID):
        if not await registry.catalog_service.delete_package(package_id):
            raise HTTPException(status_code=404, detail="Package not found")


class SettingsAPI:
    @staticmethod
    @catalog_router.get("/settings", response_model=SettingsSchema)
    async def get_settings():
        return await registry.catalog_service.read_settings()

    @staticmethod
    @catalog_router.put("/settings", response_model=SettingsSchema)
    async def update_settings(settings: SettingsSchema):
        return await registry.catalog_service.update_settings(settings)
