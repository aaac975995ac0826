from typing import List

from pixelperks.models.schema_models import (
    BillSchema,
    DebtSchema,
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


def _dump_list(values: list) -> List[dict]:
    return [value.model_dump(mode="json") for value in values]


class DataConverter:
    """This class is used to convert data between ORM rows and schemas."""

    @staticmethod
    def station_values(station: StationSchema) -> dict:
        """Column values of a station, without its key and version.

        Args:
            station (StationSchema): Station state to persist
        Returns:
            dict: Values for an UPDATE or INSERT on the station table
        """
        return {
            "name": station.name,
            "station_type": station.station_type.value,
            "status": station.status.value,
            "start_time": station.start_time,
            "end_time": station.end_time,
            "remaining_time_on_pause": station.remaining_time_on_pause,
            "package_name": station.package_name,
            "members": _dump_list(station.members),
            "current_bill": _dump_list(station.current_bill),
            "discount": station.discount,
        }

    @staticmethod
    def member_values(member: MemberSchema) -> dict:
        return {
            "name": member.name,
            "phone": member.phone,
            "email": member.email,
            "tier": member.tier.value,
            "level": member.level,
            "xp": member.xp,
            "points": member.points,
            "total_spent": member.total_spent,
            "recharges": _dump_list(member.recharges),
        }

    @staticmethod
    def to_station_row(station: StationSchema) -> Station:
        return Station(
            station_id=station.station_id,
            version=station.version,
            **DataConverter.station_values(station),
        )

    @staticmethod
    def to_member_row(member: MemberSchema) -> Member:
        return Member(
            member_id=member.member_id,
            created_at=member.created_at,
            version=member.version,
            **DataConverter.member_values(member),
        )

    @staticmethod
    def to_package_row(package: GamingPackageSchema) -> GamingPackage:
        return GamingPackage(**package.model_dump())

    @staticmethod
    def to_bill_row(bill: BillSchema) -> Bill:
        values = bill.model_dump(exclude={"members", "items", "payment_method"})
        return Bill(
            **values,
            payment_method=bill.payment_method.value,
            members=_dump_list(bill.members),
            items=_dump_list(bill.items),
        )

    @staticmethod
    def to_transaction_row(transaction: MemberTransactionSchema) -> MemberTransaction:
        return MemberTransaction(**transaction.model_dump())

    @staticmethod
    def to_debt_row(debt: DebtSchema) -> Debt:
        values = debt.model_dump(exclude={"debt_type", "status"})
        return Debt(**values, debt_type=debt.debt_type.value, status=debt.status.value)

    @staticmethod
    def to_settings_row(settings: SettingsSchema) -> AppSettings:
        return AppSettings(settings_id=1, **settings.model_dump())
