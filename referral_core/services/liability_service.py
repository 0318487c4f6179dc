"""Reconciliation of commission that a reversal could not recover."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.core.exceptions import LiabilityNotFound
from referral_core.models.commission import CommissionAccount, CommissionLiability, LiabilityStatus
from referral_core.services.ledger_service import CommissionLedger


logger = logging.getLogger(__name__)


class LiabilityService:
    """Admin view and resolution of flagged shortfalls."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = CommissionLedger(db)

    async def get_liability(self, liability_id: uuid.UUID) -> CommissionLiability:
        result = await self.db.execute(
            select(CommissionLiability)
            .where(CommissionLiability.id == liability_id)
            .execution_options(populate_existing=True)
        )
        liability = result.scalar_one_or_none()
        if not liability:
            raise LiabilityNotFound(f"Liability {liability_id} not found")
        return liability

    async def list_liabilities(
        self,
        status: Optional[str] = None,
        account_id: Optional[uuid.UUID] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[CommissionLiability], int]:
        query = select(CommissionLiability)
        count_query = select(func.count(CommissionLiability.id))
        if status:
            query = query.where(CommissionLiability.status == status)
            count_query = count_query.where(CommissionLiability.status == status)
        if account_id:
            query = query.where(CommissionLiability.account_id == account_id)
            count_query = count_query.where(CommissionLiability.account_id == account_id)

        total = (await self.db.execute(count_query)).scalar()

        query = query.order_by(CommissionLiability.created_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def resolve(
        self,
        liability_id: uuid.UUID,
        resolved_by: Optional[uuid.UUID] = None,
        notes: Optional[str] = None
    ) -> CommissionLiability:
        """Close an open liability and clear it from the account. Idempotent."""
        liability = await self.get_liability(liability_id)
        if liability.status != LiabilityStatus.OPEN.value:
            return liability

        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(CommissionLiability)
            .where(
                CommissionLiability.id == liability_id,
                CommissionLiability.status == LiabilityStatus.OPEN.value,
            )
            .values(
                status=LiabilityStatus.RESOLVED.value,
                resolved_by=resolved_by,
                resolved_at=now,
                notes=notes or liability.notes,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            account = await self.db.get(CommissionAccount, liability.account_id)
            await self.ledger.clear_liability(account, liability.amount)
            await self.db.commit()
            logger.info(f"Liability {liability_id} of {liability.amount} resolved")

        return await self.get_liability(liability_id)
