"""DB service layer for members and their prepaid recharges.

- Routers should not touch DB sessions directly; they call this module.
- Every member mutation is a versioned read-modify-write (services.atomic).
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from uuid6 import uuid7

from pixelperks.crud import CreateData, DeleteData, ReadData, UpdateData
from pixelperks.domain import recharge_ledger
from pixelperks.domain.pricing_rules import OFF_STATION_RECHARGE, RECHARGE_PREFIX
from pixelperks.domain.recharge_ledger import RechargeDebit
from pixelperks.event_publisher import EventPublisher
from pixelperks.models.dc_models import MemberModel, PurchaseRechargeModel
from pixelperks.models.schema_models import (
    BillItemSchema,
    BillSchema,
    LineKind,
    MemberSchema,
    PaymentMethod,
)
from pixelperks.services.atomic import run_atomic


async def apply_member_debit(
    debit: RechargeDebit,
    now: datetime,
    session: AsyncSession,
    new_recharge_id: Optional[str] = None,
) -> Optional[MemberSchema]:
    """Debit played time from a member inside the caller's transaction.

    A purchase debit creates the pack under `new_recharge_id` (a fresh id
    when omitted). A missing member or pack is logged and skipped; the
    session goes on.
    """
    member = await ReadData.read_member(debit.member_id, session, for_update=True)
    if member is None:
        logging.warning(f"Member {debit.member_id} not found, skipping a {debit.seconds}s debit")
        return None

    package = None
    if debit.purchase_package_id is not None:
        package = await ReadData.read_package(debit.purchase_package_id, session)
        if package is None:
            logging.warning(f"Package {debit.purchase_package_id} not found, recharge for {member.name} not bought")
            return None

    updated, found = recharge_ledger.apply_debit(member, debit, now, new_recharge_id or str(uuid7()), package)
    if not found:
        logging.warning(f"Recharge {debit.recharge_id} of {member.name} not found, nothing debited")
        return member
    logging.info(f"Debited {debit.seconds}s from {member.name} ({debit.recharge_id or 'new recharge'})")
    return await UpdateData.write_member(updated, session)


class MemberService:
    def __init__(self, session_factory: async_sessionmaker, publisher: EventPublisher):
        self.Session = session_factory
        self.publisher = publisher

    async def create_member(self, member: MemberModel, now: Optional[datetime] = None) -> MemberSchema:
        new_member = MemberSchema(member_id=uuid7(), created_at=now or datetime.now(), **member.model_dump())
        async with self.Session() as session:
            async with session.begin():
                await CreateData.create_member(new_member, session)
        logging.info(f"Enrolled member {new_member.name}")
        return new_member

    async def read_member(self, member_id: UUID) -> Optional[MemberSchema]:
        async with self.Session() as session:
            return await ReadData.read_member(member_id, session)

    async def read_members(self) -> List[MemberSchema]:
        async with self.Session() as session:
            return await ReadData.read_members(session)

    async def update_member(self, member_id: UUID, request: MemberModel) -> Optional[MemberSchema]:
        """Change contact details and tier; progression and recharges are kept."""

        async def work(session: AsyncSession):
            member = await ReadData.read_member(member_id, session, for_update=True)
            if member is None:
                return None
            return await UpdateData.write_member(member.model_copy(update=request.model_dump()), session)

        member = await run_atomic(self.Session, work, f"update member {member_id}")
        if member is not None:
            logging.info(f"Updated member {member.name}")
        return member

    async def delete_member(self, member_id: UUID) -> bool:
        async with self.Session() as session:
            async with session.begin():
                deleted = await DeleteData.delete_member(member_id, session)
        if deleted:
            logging.info(f"Deleted member {member_id}")
        return deleted

    async def read_balance(self, member_id: UUID, now: Optional[datetime] = None) -> Optional[int]:
        member = await self.read_member(member_id)
        if member is None:
            return None
        return recharge_ledger.active_balance(member, now or datetime.now())

    async def purchase_recharge(
        self,
        member_id: UUID,
        request: PurchaseRechargeModel,
        active_cycle: str,
        now: Optional[datetime] = None,
        skip_bill: bool = False,
    ) -> Tuple[MemberSchema, Optional[BillSchema]]:
        """Sell a recharge pack at the counter

        Args:
            member_id (UUID): Buyer
            request (PurchaseRechargeModel): Pack and payment method
            active_cycle (str): Activity cycle stamped on the sale bill
            now (datetime): Purchase instant
            skip_bill (bool): Do not record a separate sale bill
        Returns:
            Tuple[MemberSchema, BillSchema | None]: Updated member and the sale bill
        Raises:
            LookupError: The member or the package does not exist
            ValueError: The package is not a recharge pack
        """
        now = now or datetime.now()

        async def work(session: AsyncSession):
            member = await ReadData.read_member(member_id, session, for_update=True)
            if member is None:
                raise LookupError(f"Member {member_id} not found")
            package = await ReadData.read_package(request.package_id, session)
            if package is None:
                raise LookupError(f"Package {request.package_id} not found")
            if not package.is_recharge_pack:
                raise ValueError(f"{package.name} is not a recharge pack")

            updated, recharge = recharge_ledger.purchase(member, package, now, str(uuid7()))
            updated = await UpdateData.write_member(updated, session)
            if skip_bill:
                return updated, None

            bill = BillSchema(
                bill_id=uuid7(),
                station_name=OFF_STATION_RECHARGE,
                package_name=f"{RECHARGE_PREFIX}{package.name}",
                items=[
                    BillItemSchema(
                        item_id=str(package.package_id),
                        name=f"{RECHARGE_PREFIX}{package.name}",
                        unit_price=package.price,
                        quantity=1,
                        kind=LineKind.recharge_purchase,
                        added_at=now,
                    )
                ],
                time_subtotal=package.price,
                total_amount=package.price,
                payment_method=request.payment_method,
                cash_amount=package.price if request.payment_method == PaymentMethod.cash else 0.0,
                upi_amount=package.price if request.payment_method == PaymentMethod.upi else 0.0,
                timestamp=now,
                cycle=active_cycle,
                is_recharge_purchase=True,
            )
            await CreateData.create_bill(bill, session)
            return updated, bill

        member, bill = await run_atomic(self.Session, work, f"purchase recharge for {member_id}")
        logging.info(f"{member.name} bought a recharge ({request.package_id})")
        if bill is not None:
            await self.publisher.bill_created(bill)
        return member, bill

    async def consume_recharge(
        self, member_id: UUID, recharge_id: str, seconds: int, now: Optional[datetime] = None
    ) -> Optional[MemberSchema]:
        """Debit seconds from one pack, or from the pool when `recharge_id` is "pool"."""
        now = now or datetime.now()
        debit = RechargeDebit(member_id=str(member_id), seconds=seconds, recharge_id=recharge_id)

        async def work(session: AsyncSession):
            return await apply_member_debit(debit, now, session)

        return await run_atomic(self.Session, work, f"consume recharge of {member_id}")
