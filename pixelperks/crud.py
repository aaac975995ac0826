from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete, desc, select, update
from typing import List, Optional
from uuid import UUID
import logging

from pixelperks.converter import DataConverter
from pixelperks.models.schema_models import (
    BillSchema,
    DebtSchema,
    DebtStatus,
    GamingPackageSchema,
    MemberSchema,
    MemberTransactionSchema,
    SettingsSchema,
    StationSchema,
)
from pixelperks.models.schemas import (
    AppSettings,
    Bill,
    Debt,
    GamingPackage,
    Member,
    MemberTransaction,
    Station,
)

# These helpers never commit: the service layer owns transaction boundaries.


class VersionConflict(RuntimeError):
    """A conditional write found a newer version than the one it read."""


def as_uuid(value) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


class ReadData:
    @staticmethod
    async def read_station(station_id: UUID, session: AsyncSession, for_update: bool = False) -> Optional[StationSchema]:
        """Read one station with its live session

        Args:
            station_id (UUID): To identify the station
            session (AsyncSession): AsyncSession object to interact with database
            for_update (bool): Lock the row until the transaction ends
        Returns:
            StationSchema | None: The station, or None when it does not exist
        """
        stmt = select(Station).where(Station.station_id == as_uuid(station_id)).execution_options(
            populate_existing=True
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        row = result.scalars().first()
        return StationSchema.model_validate(row) if row is not None else None

    @staticmethod
    async def read_stations(session: AsyncSession) -> List[StationSchema]:
        result = await session.execute(select(Station).order_by(Station.name))
        return [StationSchema.model_validate(row) for row in result.scalars().all()]

    @staticmethod
    async def read_member(member_id, session: AsyncSession, for_update: bool = False) -> Optional[MemberSchema]:
        """Read one member with their recharges

        Args:
            member_id (UUID | str): Member id; participant ids arrive as strings
            session (AsyncSession): AsyncSession object to interact with database
            for_update (bool): Lock the row until the transaction ends
        Returns:
            MemberSchema | None: The member, or None when it does not exist
        """
        try:
            member_uuid = as_uuid(member_id)
        except ValueError:
            logging.warning(f"Malformed member id: {member_id}")
            return None
        stmt = select(Member).where(Member.member_id == member_uuid).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        row = result.scalars().first()
        return MemberSchema.model_validate(row) if row is not None else None

    @staticmethod
    async def lock_members(member_ids, session: AsyncSession) -> List[MemberSchema]:
        """Lock several members in ascending id order

        Every multi-member transaction takes its row locks through here, so two
        of them can never wait on each other in opposite orders.

        Args:
            member_ids (Iterable[UUID | str]): Members to lock; malformed ids are skipped
            session (AsyncSession): AsyncSession object to interact with database
        Returns:
            List[MemberSchema]: The locked members that exist, by ascending id
        """
        uuids = set()
        for member_id in member_ids:
            try:
                uuids.add(as_uuid(member_id))
            except ValueError:
                logging.warning(f"Malformed member id: {member_id}")
        if not uuids:
            return []
        stmt = (
            select(Member)
            .where(Member.member_id.in_(sorted(uuids)))
            .order_by(Member.member_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return [MemberSchema.model_validate(row) for row in result.scalars().all()]

    @staticmethod
    async def read_members(session: AsyncSession) -> List[MemberSchema]:
        result = await session.execute(select(Member).order_by(Member.name))
        return [MemberSchema.model_validate(row) for row in result.scalars().all()]

    @staticmethod
    async def read_package(package_id, session: AsyncSession) -> Optional[GamingPackageSchema]:
        try:
            package_uuid = as_uuid(package_id)
        except ValueError:
            return None
        result = await session.execute(select(GamingPackage).where(GamingPackage.package_id == package_uuid))
        row = result.scalars().first()
        return GamingPackageSchema.model_validate(row) if row is not None else None

    @staticmethod
    async def read_packages(session: AsyncSession) -> List[GamingPackageSchema]:
        result = await session.execute(select(GamingPackage).order_by(GamingPackage.name))
        return [GamingPackageSchema.model_validate(row) for row in result.scalars().all()]

    @staticmethod
    async def read_bill(bill_id: UUID, session: AsyncSession) -> Optional[BillSchema]:
        result = await session.execute(select(Bill).where(Bill.bill_id == as_uuid(bill_id)))
        row = result.scalars().first()
        return BillSchema.model_validate(row) if row is not None else None

    @staticmethod
    async def read_bills(session: AsyncSession, cycle: Optional[str] = None) -> List[BillSchema]:
        """Bills newest first, optionally limited to one activity cycle"""
        stmt = select(Bill).order_by(desc(Bill.timestamp))
        if cycle is not None:
            stmt = stmt.where(Bill.cycle == cycle)
        result = await session.execute(stmt)
        return [BillSchema.model_validate(row) for row in result.scalars().all()]

    @staticmethod
    async def read_transactions_for_bill(bill_id: UUID, session: AsyncSession) -> List[MemberTransactionSchema]:
        result = await session.execute(
            select(MemberTransaction).where(MemberTransaction.bill_id == as_uuid(bill_id))
        )
        return [MemberTransactionSchema.model_validate(row) for row in result.scalars().all()]

    @staticmethod
    async def read_debt(debt_id: UUID, session: AsyncSession) -> Optional[DebtSchema]:
        result = await session.execute(select(Debt).where(Debt.debt_id == as_uuid(debt_id)))
        row = result.scalars().first()
        return DebtSchema.model_validate(row) if row is not None else None

    @staticmethod
    async def read_debts(session: AsyncSession, status: Optional[DebtStatus] = None) -> List[DebtSchema]:
        stmt = select(Debt).order_by(desc(Debt.timestamp))
        if status is not None:
            stmt = stmt.where(Debt.status == status.value)
        result = await session.execute(stmt)
        return [DebtSchema.model_validate(row) for row in result.scalars().all()]

    @staticmethod
    async def read_settings(session: AsyncSession) -> Optional[SettingsSchema]:
        result = await session.execute(select(AppSettings).where(AppSettings.settings_id == 1))
        row = result.scalars().first()
        return SettingsSchema.model_validate(row) if row is not None else None


class CreateData:
    @staticmethod
    async def create_station(station: StationSchema, session: AsyncSession) -> None:
        session.add(DataConverter.to_station_row(station))
        await session.flush()

    @staticmethod
    async def create_member(member: MemberSchema, session: AsyncSession) -> None:
        session.add(DataConverter.to_member_row(member))
        await session.flush()

    @staticmethod
    async def create_package(package: GamingPackageSchema, session: AsyncSession) -> None:
        session.add(DataConverter.to_package_row(package))
        await session.flush()

    @staticmethod
    async def create_bill(bill: BillSchema, session: AsyncSession) -> None:
        """Insert a settled bill

        Args:
            bill (BillSchema): Immutable bill produced by checkout or a recharge sale
            session (AsyncSession): AsyncSession object to interact with database
        """
        session.add(DataConverter.to_bill_row(bill))
        await session.flush()

    @staticmethod
    async def create_transaction(transaction: MemberTransactionSchema, session: AsyncSession) -> None:
        session.add(DataConverter.to_transaction_row(transaction))
        await session.flush()

    @staticmethod
    async def create_debt(debt: DebtSchema, session: AsyncSession) -> None:
        session.add(DataConverter.to_debt_row(debt))
        await session.flush()

    @staticmethod
    async def create_settings(settings: SettingsSchema, session: AsyncSession) -> None:
        session.add(DataConverter.to_settings_row(settings))
        await session.flush()


class UpdateData:
    @staticmethod
    async def write_station(station: StationSchema, session: AsyncSession) -> StationSchema:
        """Write a station only if nobody changed it since it was read

        Args:
            station (StationSchema): Updated station carrying the version it was read at
            session (AsyncSession): AsyncSession object to interact with database
        Returns:
            StationSchema: The station with its bumped version
        Raises:
            VersionConflict: The stored version moved on in the meantime
        """
        stmt = (
            update(Station)
            .where(Station.station_id == station.station_id, Station.version == station.version)
            .values(**DataConverter.station_values(station), version=station.version + 1)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            raise VersionConflict(f"station {station.station_id} changed since version {station.version}")
        return station.model_copy(update={"version": station.version + 1})

    @staticmethod
    async def write_member(member: MemberSchema, session: AsyncSession) -> MemberSchema:
        """Write a member only if nobody changed it since it was read

        Args:
            member (MemberSchema): Updated member carrying the version it was read at
            session (AsyncSession): AsyncSession object to interact with database
        Returns:
            MemberSchema: The member with its bumped version
        Raises:
            VersionConflict: The stored version moved on in the meantime
        """
        stmt = (
            update(Member)
            .where(Member.member_id == member.member_id, Member.version == member.version)
            .values(**DataConverter.member_values(member), version=member.version + 1)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            raise VersionConflict(f"member {member.member_id} changed since version {member.version}")
        return member.model_copy(update={"version": member.version + 1})

    @staticmethod
    async def update_debt_status(debt_id: UUID, status: DebtStatus, session: AsyncSession) -> bool:
        stmt = (
            update(Debt)
            .where(Debt.debt_id == as_uuid(debt_id))
            .values(status=status.value)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def update_settings(settings: SettingsSchema, session: AsyncSession) -> None:
        stmt = (
            update(AppSettings)
            .where(AppSettings.settings_id == 1)
            .values(**settings.model_dump())
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)


class DeleteData:
    @staticmethod
    async def delete_bill(bill_id: UUID, session: AsyncSession) -> bool:
        result = await session.execute(delete(Bill).where(Bill.bill_id == as_uuid(bill_id)))
        return result.rowcount == 1

    @staticmethod
    async def delete_transactions_for_bill(bill_id: UUID, session: AsyncSession) -> None:
        await session.execute(delete(MemberTransaction).where(MemberTransaction.bill_id == as_uuid(bill_id)))

    @staticmethod
    async def delete_station(station_id: UUID, session: AsyncSession) -> bool:
        result = await session.execute(delete(Station).where(Station.station_id == as_uuid(station_id)))
        return result.rowcount == 1

    @staticmethod
    async def delete_package(package_id: UUID, session: AsyncSession) -> bool:
        result = await session.execute(delete(GamingPackage).where(GamingPackage.package_id == as_uuid(package_id)))
        return result.rowcount == 1

    @staticmethod
    async def delete_member(member_id: UUID, session: AsyncSession) -> bool:
        result = await session.execute(delete(Member).where(Member.member_id == as_uuid(member_id)))
        return result.rowcount == 1
