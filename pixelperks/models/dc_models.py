from pydantic import BaseModel, Field
from enum import Enum
from uuid import UUID
from typing import List, Optional

from pixelperks.models.schema_models import (
    BillItemSchema,
    BillSchema,
    MemberTier,
    PaymentMethod,
    StationSchema,
    StationType,
)


class PlanModeModel(str, Enum):
    walk_in = "walk_in"  # pays the package price at the counter
    recharge = "recharge"  # plays from one existing prepaid pack
    pool = "pool"  # plays from the combined prepaid balance
    buy_recharge = "buy_recharge"  # buys a new pack now, settled at checkout
    open = "open"  # no timer, e.g. a food-only order


class ParticipantPlanModel(BaseModel):
    participant_id: Optional[str] = None  # member id; omitted for guests
    name: str
    mode: PlanModeModel = PlanModeModel.walk_in
    package_id: Optional[str] = None
    recharge_id: Optional[str] = None
    duration_seconds: Optional[int] = Field(default=None, ge=0)


class StationModel(BaseModel):
    name: str
    station_type: StationType


class StartSessionModel(BaseModel):
    players: List[ParticipantPlanModel]


class JoinSessionModel(BaseModel):
    player: ParticipantPlanModel


class StopPlayerModel(BaseModel):
    participant_id: str


class TogglePlayerModel(BaseModel):
    participant_id: str


class AddTimeModel(BaseModel):
    package_id: str
    participant_ids: List[str]


class ReduceTimeModel(BaseModel):
    minutes: int = Field(gt=0)
    participant_ids: List[str]


class MoveSessionModel(BaseModel):
    target_station_id: UUID


class SaveBillModel(BaseModel):
    items: List[BillItemSchema]
    discount: float = 0.0


class CheckoutModel(BaseModel):
    payment_method: PaymentMethod
    cash_amount: float = 0.0
    upi_amount: float = 0.0
    paid_now: float = 0.0
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None


class MemberModel(BaseModel):
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    tier: MemberTier = MemberTier.red


class PurchaseRechargeModel(BaseModel):
    package_id: str
    payment_method: PaymentMethod = PaymentMethod.cash


class PackageModel(BaseModel):
    name: str
    duration: int = Field(ge=0)
    price: float = Field(ge=0)
    player_capacity: int = Field(default=1, ge=1)
    validity: int = Field(default=30, ge=1)
    is_add_time_package: bool = False
    is_recharge_pack: bool = False
    is_board_game_pass: bool = False
    is_priority_offer: bool = False
    available_days: List[str] = Field(default_factory=list)
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class TimerModel(BaseModel):
    station_id: UUID
    soonest_remaining: Optional[int] = None
    latest_remaining: Optional[int] = None


class BalanceModel(BaseModel):
    member_id: UUID
    active_balance: int


class OperationResultModel(BaseModel):
    success: bool
    message: str = ""
    station: Optional[StationSchema] = None
    checkout_required: bool = False


class CheckoutResultModel(BaseModel):
    success: bool
    message: str = ""
    bill: Optional[BillSchema] = None
