from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException

from pixelperks.models.dc_models import CheckoutModel, CheckoutResultModel, OperationResultModel
from pixelperks.models.schema_models import BillSchema, DebtSchema, DebtStatus
from pixelperks.routers.station import checked
from pixelperks.services import registry

billing_router = APIRouter(tags=["billing"])


class CheckoutAPI:
    @staticmethod
    @billing_router.post("/stations/{station_id}/checkout", response_model=CheckoutResultModel)
    async def checkout(station_id: UUID, request: CheckoutModel):
        settings = await registry.catalog_service.read_settings()
        result = await registry.settlement_service.checkout(station_id, request, settings.active_cycle)
        if not result.success:
            status_code = 404 if result.message.endswith("not found") else 409
            raise HTTPException(status_code=status_code, detail=result.message)
        return result


class BillAPI:
    @staticmethod
    @billing_router.get("/bills", response_model=List[BillSchema])
    async def get_bills(cycle: Optional[str] = None):
        return await registry.settlement_service.read_bills(cycle)

    @staticmethod
    @billing_router.get("/bills/{bill_id}", response_model=BillSchema)
    async def get_bill(bill_id: UUID):
        bill = await registry.settlement_service.read_bill(bill_id)
        if bill is None:
            raise HTTPException(status_code=404, detail="Bill not found")
        return bill

    @staticmethod
    @billing_router.delete("/bills/{bill_id}", response_model=OperationResultModel)
    async def void_bill(bill_id: UUID):
        return checked(await registry.settlement_service.void_bill(bill_id))


class DebtAPI:
    @staticmethod
    @billing_router.get("/debts", response_model=List[DebtSchema])
    async def get_debts(status: Optional[DebtStatus] = None):
        return await registry.settlement_service.read_debts(status)

    @staticmethod
    @billing_router.post("/debts/{debt_id}/clear", response_model=OperationResultModel)
    async def clear_debt(debt_id: UUID):
        return checked(await registry.settlement_service.clear_debt(debt_id))
