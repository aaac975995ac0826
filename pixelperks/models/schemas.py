from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import Column
from sqlalchemy.types import JSON, Boolean, DateTime, Float, Integer, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from uuid6 import uuid7
from datetime import datetime

# JSONB on Postgres, plain JSON elsewhere (SQLite in development and tests)
JSONColumn = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class Station(Base):
    __tablename__ = "station"
    station_id = Column(Uuid, primary_key=True, default=uuid7)
    name = Column(String, unique=True)
    station_type = Column(String)
    status = Column(String, default="available")
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    remaining_time_on_pause = Column(Integer, nullable=True)
    package_name = Column(String, nullable=True)
    members = Column(JSONColumn, default=list)
    current_bill = Column(JSONColumn, default=list)
    discount = Column(Float, default=0.0)
    version = Column(Integer, nullable=False, default=0)


class Member(Base):
    __tablename__ = "member"
    member_id = Column(Uuid, primary_key=True, default=uuid7)
    name = Column(String)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    tier = Column(String, default="Red")
    level = Column(Integer, default=1)
    xp = Column(Integer, default=0)
    points = Column(Integer, default=0)
    total_spent = Column(Float, default=0.0)
    recharges = Column(JSONColumn, default=list)
    created_at = Column(DateTime, default=datetime.now)
    version = Column(Integer, nullable=False, default=0)


class GamingPackage(Base):
    __tablename__ = "gaming_package"
    package_id = Column(Uuid, primary_key=True, default=uuid7)
    name = Column(String)
    duration = Column(Integer)
    price = Column(Float)
    player_capacity = Column(Integer, default=1)
    validity = Column(Integer, default=30)
    is_add_time_package = Column(Boolean, default=False)
    is_recharge_pack = Column(Boolean, default=False)
    is_board_game_pass = Column(Boolean, default=False)
    is_priority_offer = Column(Boolean, default=False)
    available_days = Column(JSONColumn, default=list)
    start_time = Column(String, nullable=True)
    end_time = Column(String, nullable=True)


class Bill(Base):
    __tablename__ = "bill"
    bill_id = Column(Uuid, primary_key=True, default=uuid7)
    station_id = Column(Uuid, nullable=True)
    station_name = Column(String)
    package_name = Column(String, nullable=True)
    members = Column(JSONColumn, default=list)
    items = Column(JSONColumn, default=list)
    initial_package_price = Column(Float, default=0.0)
    food_subtotal = Column(Float, default=0.0)
    time_subtotal = Column(Float, default=0.0)
    discount = Column(Float, default=0.0)
    total_amount = Column(Float)
    payment_method = Column(String)
    cash_amount = Column(Float, default=0.0)
    upi_amount = Column(Float, default=0.0)
    timestamp = Column(DateTime, default=datetime.now)
    cycle = Column(String, nullable=True)
    is_recharge_purchase = Column(Boolean, default=False)


class MemberTransaction(Base):
    __tablename__ = "member_transaction"
    transaction_id = Column(Uuid, primary_key=True, default=uuid7)
    member_id = Column(Uuid, index=True)
    bill_id = Column(Uuid, index=True)
    amount = Column(Float)
    xp_gained = Column(Integer)
    date = Column(DateTime, default=datetime.now)
    cycle = Column(String, nullable=True)


class Debt(Base):
    __tablename__ = "debt"
    debt_id = Column(Uuid, primary_key=True, default=uuid7)
    debt_type = Column(String)
    contact_name = Column(String)
    contact_phone = Column(String, nullable=True)
    member_id = Column(Uuid, nullable=True)
    amount = Column(Float)
    original_amount = Column(Float)
    description = Column(String)
    status = Column(String, default="pending")
    timestamp = Column(DateTime, default=datetime.now)
    cycle = Column(String, nullable=True)
    bill_id = Column(Uuid, nullable=True)


class AppSettings(Base):
    __tablename__ = "app_settings"
    settings_id = Column(Integer, primary_key=True, default=1)
    xp_per_rupee = Column(Float, default=1.0)
    xp_per_level = Column(Integer, default=1000)
    max_levels = Column(Integer, default=10)
    points_per_level_up = Column(Integer, default=100)
    active_cycle = Column(String, default="Live Cycle")
