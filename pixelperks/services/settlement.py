"""DB service layer for checkout, bills and debts.

Checkout is all-or-nothing: the station reset, the bill, the debt, every
recharge debit and every XP grant are written in one transaction whose
station and member writes are version-checked. A conflict re-runs the whole
computation from fresh reads.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from uuid6 import uuid7

from pixelperks.crud import CreateData, DeleteData, ReadData, UpdateData, as_uuid
from pixelperks.domain import session_rules, settlement_rules
from pixelperks.domain.settlement_rules import SettlementError
from pixelperks.event_publisher import EventPublisher
from pixelperks.models.dc_models import CheckoutModel, CheckoutResultModel, OperationResultModel
from pixelperks.models.schema_models import (
    BillSchema,
    DebtSchema,
    DebtStatus,
    MemberTransactionSchema,
    SettingsSchema,
    StationSchema,
    StationStatus,
)
from pixelperks.services.atomic import StorageConflictError, run_atomic
from pixelperks.services.catalog_db import ensure_settings
from pixelperks.services.member_db import apply_member_debit


async def grant_member_rewards(
    station: StationSchema,
    bill: BillSchema,
    settings: SettingsSchema,
    now: datetime,
    session: AsyncSession,
) -> int:
    """Give every member on the bill their share of spend and XP.

    Guests count towards the head count but earn nothing.

    Returns:
        int: Number of members rewarded
    """
    share = settlement_rules.bill_share(bill.total_amount, len(station.members))
    if share <= 0:
        return 0

    rewarded = 0
    for participant in station.members:
        if participant.is_guest:
            continue
        member = await ReadData.read_member(participant.participant_id, session, for_update=True)
        if member is None:
            logging.warning(f"Member {participant.participant_id} not found, no XP granted")
            continue
        grant = settlement_rules.grant_rewards(member, share, settings)
        await UpdateData.write_member(grant.member, session)
        await CreateData.create_transaction(
            MemberTransactionSchema(
                transaction_id=uuid7(),
                member_id=member.member_id,
                bill_id=bill.bill_id,
                amount=share,
                xp_gained=grant.xp_gained,
                date=now,
                cycle=bill.cycle,
            ),
            session,
        )
        if grant.leveled_up:
            logging.info(f"{member.name} reached level {grant.member.level}")
        rewarded += 1
    return rewarded


class SettlementService:
    def __init__(self, session_factory: async_sessionmaker, publisher: EventPublisher):
        self.Session = session_factory
        self.publisher = publisher

    async def checkout(
        self,
        station_id: UUID,
        request: CheckoutModel,
        active_cycle: str,
        now: Optional[datetime] = None,
    ) -> CheckoutResultModel:
        """Settle a station's session into a bill

        Args:
            station_id (UUID): Station to check out
            request (CheckoutModel): Payment method and collected amounts
            active_cycle (str): Activity cycle stamped on the bill, debt and transactions
            now (datetime): Settlement instant
        Returns:
            CheckoutResultModel: The bill, or the reason nothing was settled
        """
        now = now or datetime.now()

        async def work(session: AsyncSession):
            station = await ReadData.read_station(station_id, session, for_update=True)
            if station is None:
                raise LookupError("Station not found")
            if station.status == StationStatus.available:
                raise SettlementError(f"Station {station.name} has no session to check out")

            packages = await ReadData.read_packages(session)
            settings = await ensure_settings(session)
            totals = settlement_rules.compute_totals(station, station.current_bill, station.discount, packages)
            payment = settlement_rules.validate_payment(
                station,
                totals.total,
                request.payment_method,
                cash_amount=request.cash_amount,
                upi_amount=request.upi_amount,
                paid_now=request.paid_now,
                contact_name=request.contact_name,
                contact_phone=request.contact_phone,
            )

            await ReadData.lock_members([p.participant_id for p in station.members if not p.is_guest], session)
            for debit in settlement_rules.plan_recharge_debits(station, now):
                await apply_member_debit(debit, now, session)

            bill = BillSchema(
                bill_id=uuid7(),
                station_id=station.station_id,
                station_name=station.name,
                package_name=station.package_name,
                members=station.members,
                items=station.current_bill,
                initial_package_price=totals.initial_package_price,
                food_subtotal=totals.food_subtotal,
                time_subtotal=totals.time_subtotal,
                discount=totals.discount,
                total_amount=totals.total,
                payment_method=payment.method,
                cash_amount=payment.cash_amount,
                upi_amount=payment.upi_amount,
                timestamp=now,
                cycle=active_cycle,
            )
            await CreateData.create_bill(bill, session)

            if payment.debt is not None:
                await CreateData.create_debt(
                    DebtSchema(
                        debt_id=uuid7(),
                        debt_type=payment.debt.debt_type,
                        contact_name=payment.debt.contact_name,
                        contact_phone=payment.debt.contact_phone,
                        member_id=as_uuid(payment.debt.member_id) if payment.debt.member_id else None,
                        amount=payment.debt.amount,
                        original_amount=payment.debt.amount,
                        description=f"Pending payment for {station.name}",
                        timestamp=now,
                        cycle=active_cycle,
                        bill_id=bill.bill_id,
                    ),
                    session,
                )

            reset = await UpdateData.write_station(session_rules.reset_station(station), session)
            await grant_member_rewards(station, bill, settings, now, session)
            return bill, reset

        try:
            bill, station = await run_atomic(self.Session, work, f"checkout {station_id}")
        except LookupError as e:
            return CheckoutResultModel(success=False, message=str(e))
        except ValueError as e:
            logging.info(f"Rejected checkout of {station_id}: {e}")
            return CheckoutResultModel(success=False, message=str(e))
        except StorageConflictError as e:
            logging.error(f"Failed to check out: {e}")
            return CheckoutResultModel(success=False, message="The station is busy, please retry")

        logging.info(f"Checked out {bill.station_name}: {bill.total_amount:.2f} by {bill.payment_method.value}")
        await self.publisher.bill_created(bill)
        await self.publisher.session_transitioned(station, "checkout", now)
        return CheckoutResultModel(success=True, message="Checkout complete", bill=bill)

    async def read_bill(self, bill_id: UUID) -> Optional[BillSchema]:
        async with self.Session() as session:
            return await ReadData.read_bill(bill_id, session)

    async def read_bills(self, cycle: Optional[str] = None) -> List[BillSchema]:
        async with self.Session() as session:
            return await ReadData.read_bills(session, cycle)

    async def void_bill(self, bill_id: UUID) -> OperationResultModel:
        """Delete a bill and take back the spend and XP it granted."""

        async def work(session: AsyncSession):
            bill = await ReadData.read_bill(bill_id, session)
            if bill is None:
                raise LookupError("Bill not found")
            transactions = await ReadData.read_transactions_for_bill(bill_id, session)
            await ReadData.lock_members([t.member_id for t in transactions], session)
            for transaction in transactions:
                member = await ReadData.read_member(transaction.member_id, session, for_update=True)
                if member is None:
                    logging.warning(f"Member {transaction.member_id} not found, nothing to revert")
                    continue
                reverted = settlement_rules.revert_rewards(member, transaction.amount, transaction.xp_gained)
                await UpdateData.write_member(reverted, session)
            await DeleteData.delete_transactions_for_bill(bill_id, session)
            await DeleteData.delete_bill(bill_id, session)
            return bill

        try:
            bill = await run_atomic(self.Session, work, f"void bill {bill_id}")
        except LookupError as e:
            return OperationResultModel(success=False, message=str(e))
        except StorageConflictError as e:
            logging.error(f"Failed to void bill: {e}")
            return OperationResultModel(success=False, message="Members are busy, please retry")
        logging.info(f"Voided bill {bill.bill_id} of {bill.station_name}")
        return OperationResultModel(success=True, message=f"Voided bill of {bill.total_amount:.2f}")

    async def read_debts(self, status: Optional[DebtStatus] = None) -> List[DebtSchema]:
        async with self.Session() as session:
            return await ReadData.read_debts(session, status)

    async def clear_debt(self, debt_id: UUID) -> OperationResultModel:
        async with self.Session() as session:
            async with session.begin():
                debt = await ReadData.read_debt(debt_id, session)
                if debt is None:
                    return OperationResultModel(success=False, message="Debt not found")
                if debt.status == DebtStatus.cleared:
                    return OperationResultModel(success=False, message="Debt is already cleared")
                await UpdateData.update_debt_status(debt_id, DebtStatus.cleared, session)
        logging.info(f"Cleared {debt.debt_type.value} debt of {debt.contact_name}")
        return OperationResultModel(success=True, message=f"Cleared debt of {debt.contact_name}")
