from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
from uuid import UUID
from datetime import datetime
from enum import Enum

POOL_RECHARGE_ID = "pool"
GUEST_ID_PREFIX = "guest-"


class StationType(str, Enum):
    console = "console"
    table = "table"


class StationStatus(str, Enum):
    available = "available"
    in_use = "in-use"
    paused = "paused"


class ParticipantStatus(str, Enum):
    active = "active"
    paused = "paused"
    finished = "finished"


class MemberTier(str, Enum):
    red = "Red"
    green = "Green"
    gold = "Gold"


class PaymentMethod(str, Enum):
    cash = "cash"
    upi = "upi"
    split = "split"
    pending = "pending"
    recharge = "recharge"


class DebtType(str, Enum):
    receivable = "receivable"
    payable = "payable"


class DebtStatus(str, Enum):
    pending = "pending"
    cleared = "cleared"


class LineKind(str, Enum):
    food = "food"
    session_package = "session_package"
    time_extension = "time_extension"
    recharge_usage = "recharge_usage"
    recharge_purchase = "recharge_purchase"

    @classmethod
    def from_name(cls, name: str) -> "LineKind":
        """Infer the kind of an untagged line from its legacy name prefix."""
        lowered = name.strip().lower()
        if lowered.startswith("time:"):
            return cls.time_extension
        if lowered.startswith("buy recharge:"):
            return cls.recharge_purchase
        if lowered.startswith("recharge:"):
            return cls.recharge_usage
        return cls.food


class SessionParticipantSchema(BaseModel):
    participant_id: str
    name: str
    status: ParticipantStatus = ParticipantStatus.active
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    remaining_time_on_pause: Optional[int] = None
    allotted_seconds: Optional[int] = None
    recharge_id: Optional[str] = None
    is_new_recharge: bool = False
    package_id: Optional[str] = None

    @property
    def is_guest(self) -> bool:
        return self.participant_id.startswith(GUEST_ID_PREFIX)

    @property
    def is_finished(self) -> bool:
        return self.status == ParticipantStatus.finished

    @property
    def has_timer(self) -> bool:
        return self.end_time is not None or self.remaining_time_on_pause is not None

    class Config:
        from_attributes = True


class BillItemSchema(BaseModel):
    item_id: str
    name: str
    unit_price: float
    quantity: int = 1
    kind: LineKind = LineKind.food
    added_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def infer_kind(cls, data):
        if isinstance(data, dict) and data.get("kind") is None and "name" in data:
            data = {**data, "kind": LineKind.from_name(data["name"])}
        return data

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    class Config:
        from_attributes = True


class StationSchema(BaseModel):
    station_id: UUID
    name: str
    station_type: StationType
    status: StationStatus = StationStatus.available
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    remaining_time_on_pause: Optional[int] = None
    package_name: Optional[str] = None
    members: List[SessionParticipantSchema] = Field(default_factory=list)
    current_bill: List[BillItemSchema] = Field(default_factory=list)
    discount: float = 0.0
    version: int = 0

    class Config:
        from_attributes = True


class MemberRechargeSchema(BaseModel):
    recharge_id: str
    package_id: str
    package_name: str
    total_duration: int
    remaining_duration: int
    purchase_date: datetime
    expiry_date: datetime
    price_paid: float

    class Config:
        from_attributes = True


class MemberSchema(BaseModel):
    member_id: UUID
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    tier: MemberTier = MemberTier.red
    level: int = 1
    xp: int = 0
    points: int = 0
    total_spent: float = 0.0
    recharges: List[MemberRechargeSchema] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    version: int = 0

    class Config:
        from_attributes = True


class GamingPackageSchema(BaseModel):
    package_id: UUID
    name: str
    duration: int
    price: float
    player_capacity: int = 1
    validity: int = 30
    is_add_time_package: bool = False
    is_recharge_pack: bool = False
    is_board_game_pass: bool = False
    is_priority_offer: bool = False
    available_days: List[str] = Field(default_factory=list)
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    class Config:
        from_attributes = True


class BillSchema(BaseModel):
    bill_id: UUID
    station_id: Optional[UUID] = None
    station_name: str
    package_name: Optional[str] = None
    members: List[SessionParticipantSchema] = Field(default_factory=list)
    items: List[BillItemSchema] = Field(default_factory=list)
    initial_package_price: float = 0.0
    food_subtotal: float = 0.0
    time_subtotal: float = 0.0
    discount: float = 0.0
    total_amount: float
    payment_method: PaymentMethod
    cash_amount: float = 0.0
    upi_amount: float = 0.0
    timestamp: datetime
    cycle: Optional[str] = None
    is_recharge_purchase: bool = False

    class Config:
        from_attributes = True


class MemberTransactionSchema(BaseModel):
    transaction_id: UUID
    member_id: UUID
    bill_id: UUID
    amount: float
    xp_gained: int
    date: datetime
    cycle: Optional[str] = None

    class Config:
        from_attributes = True


class DebtSchema(BaseModel):
    debt_id: UUID
    debt_type: DebtType
    contact_name: str
    contact_phone: Optional[str] = None
    member_id: Optional[UUID] = None
    amount: float
    original_amount: float
    description: str
    status: DebtStatus = DebtStatus.pending
    timestamp: datetime
    cycle: Optional[str] = None
    bill_id: Optional[UUID] = None

    class Config:
        from_attributes = True


class SettingsSchema(BaseModel):
    xp_per_rupee: float = 1.0
    xp_per_level: int = 1000
    max_levels: int = 10
    points_per_level_up: int = 100
    active_cycle: str = "Live Cycle"

    class Config:
        from_attributes = True
