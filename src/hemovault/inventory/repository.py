"""Inventory queries, all routed through the query executor."""
from datetime import date
from typing import List, Optional

from loguru import logger

from ..infrastructure.cache import CacheKeys, QueryCache
from ..infrastructure.database import Database
from ..infrastructure.error_handling import AppError, ErrorKind
from ..infrastructure.query_executor import QueryExecutor
from ..infrastructure.retry import NO_RETRY
from ..models import (
    BLOOD_TYPES,
    RH_FACTORS,
    DonorSearchResult,
    Hospital,
    InventorySummary,
    InventoryType,
    LowStockWarning,
    NewBag,
    SurplusAlert,
)
from .alerts import collect_low_stock


def _rh_column(inventory_type: InventoryType, alias: str = "") -> str:
    prefix = f"{alias}." if alias else ""
    return f"{prefix}rh" if inventory_type.has_rh else "''"


def validate_bag(inventory_type: InventoryType, bag: NewBag, today: Optional[date] = None):
    """Reject obviously invalid bags before they reach the database."""
    today = today or date.today()

    if not bag.donor_name or not bag.donor_name.strip():
        raise AppError(ErrorKind.VALIDATION, "Donor name is required")
    if bag.amount <= 0:
        raise AppError(ErrorKind.VALIDATION, "Amount must be positive", f"got {bag.amount}")
    if bag.blood_type not in BLOOD_TYPES:
        raise AppError(
            ErrorKind.VALIDATION,
            "Invalid blood type",
            f"expected one of {', '.join(BLOOD_TYPES)}, got {bag.blood_type!r}",
        )
    if inventory_type.has_rh and bag.rh not in RH_FACTORS:
        raise AppError(ErrorKind.VALIDATION, "Invalid Rh factor", f"got {bag.rh!r}")
    if bag.expiration_date <= today:
        raise AppError(
            ErrorKind.VALIDATION,
            "Expiration date must be in the future",
            bag.expiration_date.isoformat(),
        )


class InventoryRepository:
    """Reads and writes hospital inventory."""

    def __init__(
        self,
        executor: QueryExecutor,
        cache: QueryCache,
        low_stock_threshold: int = 5,
        surplus_threshold: int = 10,
    ):
        self.executor = executor
        self.cache = cache
        self.surplus_threshold = surplus_threshold
        self.low_stock_threshold = low_stock_threshold

    async def get_hospital(self, hospital_id: int) -> Hospital:
        """Get one hospital; raises NOT_FOUND if it doesn't exist."""
        async def query(db: Database) -> Hospital:
            row = await db.fetchrow(
                "SELECT * FROM hospital WHERE hospital_id = $1", hospital_id
            )
            if row is None:
                raise AppError(ErrorKind.NOT_FOUND, "Hospital not found", f"id {hospital_id}")
            return Hospital(
                hospital_id=row['hospital_id'],
                hospital_name=row['hospital_name'],
                contact_phone=row['hospital_contact_phone'] or "",
                contact_email=row['hospital_contact_mail'] or "",
            )

        return await self.executor.execute_query(
            query, cache_key=CacheKeys.hospital(hospital_id), critical=True
        )

    async def get_all_hospitals(self) -> List[Hospital]:
        """All hospitals, ordered by name."""
        async def query(db: Database) -> List[Hospital]:
            rows = await db.fetch(
                "SELECT hospital_id, hospital_name FROM hospital ORDER BY hospital_name"
            )
            return [Hospital(row['hospital_id'], row['hospital_name']) for row in rows]

        return await self.executor.execute_query(query, cache_key=CacheKeys.all_hospitals())

    async def get_inventory(
        self, inventory_type: InventoryType, hospital_id: int
    ) -> List[InventorySummary]:
        """Active, unexpired bags of one type grouped by blood group."""
        rh = _rh_column(inventory_type)
        sql = f"""
            SELECT blood_type, {rh} AS rh,
                   COUNT(*)::integer AS count, SUM(amount)::integer AS total_amount
            FROM {inventory_type.table}
            WHERE hospital_id = $1 AND expiration_date > CURRENT_DATE AND active = true
            GROUP BY blood_type{', rh' if inventory_type.has_rh else ''}
            ORDER BY blood_type{', rh' if inventory_type.has_rh else ''}
        """

        async def query(db: Database) -> List[InventorySummary]:
            rows = await db.fetch(sql, hospital_id)
            return [
                InventorySummary(
                    blood_type=row['blood_type'],
                    rh=row['rh'] or "",
                    count=int(row['count'] or 0),
                    total_amount=int(row['total_amount'] or 0),
                )
                for row in rows
            ]

        return await self.executor.execute_query(
            query, cache_key=CacheKeys.inventory(inventory_type, hospital_id)
        )

    async def get_low_stock_warnings(self, hospital_id: int) -> List[LowStockWarning]:
        """Low-stock warnings across red blood, plasma and platelets."""
        inventory = {
            inventory_type: await self.get_inventory(inventory_type, hospital_id)
            for inventory_type in InventoryType
        }
        return collect_low_stock(inventory, self.low_stock_threshold)

    async def add_bag(self, inventory_type: InventoryType, bag: NewBag) -> int:
        """Insert a new bag and return its id."""
        validate_bag(inventory_type, bag)

        if inventory_type.has_rh:
            sql = f"""
                INSERT INTO {inventory_type.table}
                    (donor_name, amount, hospital_id, expiration_date, blood_type, rh)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING bag_id
            """
            args = (bag.donor_name, bag.amount, bag.hospital_id,
                    bag.expiration_date, bag.blood_type, bag.rh)
        else:
            sql = f"""
                INSERT INTO {inventory_type.table}
                    (donor_name, amount, hospital_id, expiration_date, blood_type)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING bag_id
            """
            args = (bag.donor_name, bag.amount, bag.hospital_id,
                    bag.expiration_date, bag.blood_type)

        async def query(db: Database) -> int:
            bag_id = await db.fetchval(sql, *args)
            if bag_id is None:
                raise AppError(
                    ErrorKind.SERVER,
                    f"Failed to add {inventory_type.label} bag",
                )
            return bag_id

        # inserts are not idempotent
        bag_id = await self.executor.execute_query(query, retry_config=NO_RETRY, critical=True)
        self.cache.invalidate(CacheKeys.inventory(inventory_type, bag.hospital_id))
        logger.info(f"Added {inventory_type.label} bag {bag_id} for hospital {bag.hospital_id}")
        return bag_id

    async def retract_bag(self, inventory_type: InventoryType, bag_id: int, hospital_id: int):
        """Soft-delete a bag owned by `hospital_id`."""
        table = inventory_type.table
        update_sent = False

        async def query(db: Database):
            nonlocal update_sent
            row = await db.fetchrow(
                f"SELECT hospital_id, active FROM {table} WHERE bag_id = $1",
                bag_id,
            )
            if row is None:
                raise AppError(ErrorKind.NOT_FOUND, "Entry not found", f"bag {bag_id}")
            if row['hospital_id'] != hospital_id:
                raise AppError(
                    ErrorKind.AUTHENTICATION,
                    "You don't have permission to modify this entry",
                )
            if not row['active']:
                # an earlier attempt's update committed before its reply was lost
                if update_sent:
                    return
                raise AppError(ErrorKind.NOT_FOUND, "Entry not found", f"bag {bag_id}")

            update_sent = True
            updated = await db.fetchval(
                f"UPDATE {table} SET active = false "
                f"WHERE bag_id = $1 AND hospital_id = $2 RETURNING bag_id",
                bag_id, hospital_id,
            )
            if updated is None:
                raise AppError(ErrorKind.SERVER, "Failed to delete entry", f"bag {bag_id}")

        try:
            await self.executor.execute_query(query, critical=True)
        finally:
            self.cache.invalidate(CacheKeys.inventory(inventory_type, hospital_id))
        logger.info(f"Retracted {inventory_type.label} bag {bag_id} for hospital {hospital_id}")

    async def get_surplus_alerts(self, hospital_id: int) -> List[SurplusAlert]:
        """Other hospitals holding a surplus of groups this hospital is low on."""
        low = self.low_stock_threshold
        surplus = self.surplus_threshold

        async def query(db: Database) -> List[SurplusAlert]:
            alerts = []
            for inventory_type in InventoryType:
                rh = _rh_column(inventory_type)
                grouping = "blood_type, rh" if inventory_type.has_rh else "blood_type"
                own = await db.fetch(
                    f"""
                    SELECT blood_type, {rh} AS rh, COUNT(*)::integer AS count
                    FROM {inventory_type.table}
                    WHERE hospital_id = $1 AND expiration_date > CURRENT_DATE AND active = true
                    GROUP BY {grouping}
                    """,
                    hospital_id,
                )

                for item in own:
                    if item['count'] >= low:
                        continue

                    rh_filter = "AND i.rh = $3" if inventory_type.has_rh else ""
                    args = [hospital_id, item['blood_type']]
                    if inventory_type.has_rh:
                        args.append(item['rh'])

                    others = await db.fetch(
                        f"""
                        SELECT h.hospital_id, h.hospital_name, COUNT(*)::integer AS count,
                               h.hospital_contact_phone, h.hospital_contact_mail
                        FROM {inventory_type.table} i
                        JOIN hospital h ON i.hospital_id = h.hospital_id
                        WHERE i.hospital_id != $1
                          AND i.blood_type = $2
                          {rh_filter}
                          AND i.expiration_date > CURRENT_DATE
                          AND i.active = true
                        GROUP BY h.hospital_id, h.hospital_name,
                                 h.hospital_contact_phone, h.hospital_contact_mail
                        HAVING COUNT(*) > {int(surplus)}
                        ORDER BY count DESC
                        """,
                        *args,
                    )

                    for other in others:
                        alerts.append(SurplusAlert(
                            inventory_type=inventory_type,
                            blood_type=item['blood_type'],
                            rh=item['rh'] or "",
                            hospital_id=other['hospital_id'],
                            hospital_name=other['hospital_name'],
                            count=other['count'],
                            your_count=item['count'],
                            contact_phone=other['hospital_contact_phone'] or "",
                            contact_email=other['hospital_contact_mail'] or "",
                        ))
            return alerts

        return await self.executor.execute_query(query)

    async def search_donors(self, search: str) -> List[DonorSearchResult]:
        """Find active bags by bag id (numeric query) or donor name."""
        search = (search or "").strip()
        if not search:
            return []

        if search.isdigit():
            condition, value = "i.bag_id = $1", int(search)
        else:
            condition, value = "i.donor_name ILIKE $1", f"%{search}%"

        async def query(db: Database) -> List[DonorSearchResult]:
            results = []
            for inventory_type in InventoryType:
                rows = await db.fetch(
                    f"""
                    SELECT i.bag_id, i.donor_name, i.blood_type, {_rh_column(inventory_type, 'i')} AS rh,
                           i.amount, i.expiration_date, h.hospital_name, h.hospital_contact_phone
                    FROM {inventory_type.table} i
                    JOIN hospital h ON i.hospital_id = h.hospital_id
                    WHERE {condition} AND i.active = true
                    """,
                    value,
                )
                results.extend(
                    DonorSearchResult(
                        inventory_type=inventory_type,
                        bag_id=row['bag_id'],
                        donor_name=row['donor_name'],
                        blood_type=row['blood_type'],
                        rh=row['rh'] or "",
                        amount=row['amount'],
                        expiration_date=row['expiration_date'],
                        hospital_name=row['hospital_name'],
                        hospital_contact_phone=row['hospital_contact_phone'] or "",
                    )
                    for row in rows
                )
            return results

        return await self.executor.execute_query(query)

    def invalidate_hospital(self, hospital_id: int) -> int:
        """Drop every cached inventory entry for one hospital."""
        removed = 0
        for inventory_type in InventoryType:
            if self.cache.invalidate(CacheKeys.inventory(inventory_type, hospital_id)):
                removed += 1
        if self.cache.invalidate(CacheKeys.hospital(hospital_id)):
            removed += 1
        return removed
