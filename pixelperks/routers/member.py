from typing import List
from uuid import UUID

from fastapi import APIRouter, HTTPException

from pixelperks.models.dc_models import BalanceModel, MemberModel, PurchaseRechargeModel
from pixelperks.models.schema_models import BillSchema, MemberSchema
from pixelperks.services import registry
from pixelperks.services.atomic import StorageConflictError

member_router = APIRouter(prefix="/members", tags=["members"])


class MemberAPI:
    @staticmethod
    @member_router.post("", response_model=MemberSchema, status_code=201)
    async def create_member(member: MemberModel):
        return await registry.member_service.create_member(member)

    @staticmethod
    @member_router.get("", response_model=List[MemberSchema])
    async def get_members():
        return await registry.member_service.read_members()

    @staticmethod
    @member_router.get("/{member_id}", response_model=MemberSchema)
    async def get_member(member_id: UUID):
        member = await registry.member_service.read_member(member_id)
        if member is None:
            raise HTTPException(status_code=404, detail="Member not found")
        return member

    @staticmethod
    @member_router.put("/{member_id}", response_model=MemberSchema)
    async def update_member(member_id: UUID, member: MemberModel):
        try:
            updated = await registry.member_service.update_member(member_id, member)
        except StorageConflictError:
            raise HTTPException(status_code=409, detail="The member is busy, please retry")
        if updated is None:
            raise HTTPException(status_code=404, detail="Member not found")
        return updated

    @staticmethod
    @member_router.delete("/{member_id}", status_code=204)
    async def delete_member(member_id: UUID):
        if not await registry.member_service.delete_member(member_id):
            raise HTTPException(status_code=404, detail="Member not found")

    @staticmethod
    @member_router.get("/{member_id}/balance", response_model=BalanceModel)
    async def get_balance(member_id: UUID):
        balance = await registry.member_service.read_balance(member_id)
        if balance is None:
            raise HTTPException(status_code=404, detail="Member not found")
        return BalanceModel(member_id=member_id, active_balance=balance)


class RechargeAPI:
    @staticmethod
    @member_router.post("/{member_id}/recharges", response_model=BillSchema, status_code=201)
    async def purchase_recharge(member_id: UUID, request: PurchaseRechargeModel):
        settings = await registry.catalog_service.read_settings()
        try:
            _, bill = await registry.member_service.purchase_recharge(member_id, request, settings.active_cycle)
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except StorageConflictError:
            raise HTTPException(status_code=409, detail="The member is busy, please retry")
        return bill
