import logging
from typing import Optional, Union

from pydantic import BaseModel

from auth.exceptions import ProfileNotFoundError, StoreUnavailableError
from auth.usage_tracking.audit_log import AUDIT_PREFIX, AuditLog
from auth.usage_tracking.models import UNLIMITED, AuditAction, Tier, UsageLogEntry, UsageStats, get_tier_limits
from .store import ProfileStore

logger = logging.getLogger('cvboost.credits.ledger')

INSUFFICIENT_CREDITS = "Insufficient credits"
PROFILE_NOT_FOUND = "Profile not found"
INVALID_AMOUNT = "Invalid amount"

COMPLETED_OPERATION_ACTIONS = frozenset(
    f"{AUDIT_PREFIX}{action.value}"
    for action in (AuditAction.ANALYSIS_COMPLETED, AuditAction.OPTIMIZATION_COMPLETED)
)


class CreditCheckResult(BaseModel):
    has_credits: bool
    current_credits: Union[int, float]
    required_credits: int
    tier: Tier


class DeductResult(BaseModel):
    success: bool
    remaining_credits: Union[int, float]
    error: Optional[str] = None


class AddResult(BaseModel):
    success: bool
    new_balance: int
    error: Optional[str] = None


class CreditLedger:
    """
    Per-user credit balances with tier-aware semantics.

    Enterprise profiles have unlimited credits: they always pass the check and
    their balance is never touched, though usage is still logged.
    """

    def __init__(self, store: ProfileStore, audit_log: AuditLog):
        self.store = store
        self.audit_log = audit_log

    async def check_credits(self, user_id: str, required: int = 1) -> CreditCheckResult:
        """
        Check whether a user can afford an operation. Never mutates the balance.

        Raises:
            StoreUnavailableError: If the profile store cannot be reached
        """
        profile = await self.store.get_profile(user_id)

        if profile is None:
            logger.info(f"No readable profile for {user_id}, treating as zero credits")
            return CreditCheckResult(
                has_credits=False,
                current_credits=0,
                required_credits=required,
                tier=Tier.FREE,
            )

        if get_tier_limits(profile.tier).unlimited_credits:
            return CreditCheckResult(
                has_credits=True,
                current_credits=UNLIMITED,
                required_credits=required,
                tier=profile.tier,
            )

        return CreditCheckResult(
            has_credits=profile.credits >= required,
            current_credits=profile.credits,
            required_credits=required,
            tier=profile.tier,
        )

    async def deduct_credits(self, user_id: str, amount: int = 1, action: str = "analysis") -> DeductResult:
        """
        Deduct ``amount`` credits, all or nothing.

        The balance check and the debit run as one atomic store operation, so two
        concurrent deductions can never both spend the same credit.
        """
        if amount < 0:
            logger.warning(f"Refusing to deduct negative amount {amount} from {user_id} for {action}")
            return DeductResult(success=False, remaining_credits=0, error=INVALID_AMOUNT)

        try:
            profile = await self.store.get_profile(user_id)
            if profile is None:
                return DeductResult(success=False, remaining_credits=0, error=PROFILE_NOT_FOUND)

            if get_tier_limits(profile.tier).unlimited_credits:
                await self._log_usage(user_id, action, 0)
                return DeductResult(success=True, remaining_credits=UNLIMITED)

            applied, balance = await self.store.decrement_credits(user_id, amount)
        except ProfileNotFoundError:
            return DeductResult(success=False, remaining_credits=0, error=PROFILE_NOT_FOUND)
        except StoreUnavailableError as e:
            logger.error(f"Credit deduction for {user_id} failed: {e}")
            return DeductResult(success=False, remaining_credits=0, error=str(e))

        if not applied:
            return DeductResult(success=False, remaining_credits=balance, error=INSUFFICIENT_CREDITS)

        await self._log_usage(user_id, action, amount)
        logger.info(f"Deducted {amount} credit(s) from {user_id} for {action}, {balance} remaining")
        return DeductResult(success=True, remaining_credits=balance)

    async def add_credits(self, user_id: str, amount: int, reason: str = "purchase") -> AddResult:
        if amount <= 0:
            logger.warning(f"Refusing to add non-positive amount {amount} to {user_id} ({reason})")
            return AddResult(success=False, new_balance=0, error=INVALID_AMOUNT)

        try:
            new_balance = await self.store.increment_credits(user_id, amount)
        except ProfileNotFoundError:
            return AddResult(success=False, new_balance=0, error=PROFILE_NOT_FOUND)
        except StoreUnavailableError as e:
            logger.error(f"Adding credits for {user_id} failed: {e}")
            return AddResult(success=False, new_balance=0, error=str(e))

        # Negative amount marks an addition in the shared usage stream
        await self._log_usage(user_id, f"credit_{reason}", -amount)
        logger.info(f"Added {amount} credit(s) to {user_id} ({reason}), new balance {new_balance}")
        return AddResult(success=True, new_balance=new_balance)

    async def get_usage_stats(self, user_id: str, recent_limit: int = 10) -> UsageStats:
        entries = await self.audit_log.store.list_entries(user_id, limit=500)
        debits = [e for e in entries if e.credits_used > 0]
        operations = [e for e in entries if e.action in COMPLETED_OPERATION_ACTIONS]
        return UsageStats(
            total_operations=len(operations),
            credits_used=sum(e.credits_used for e in debits[:recent_limit]),
            recent_activity=debits[:recent_limit],
        )

    async def _log_usage(self, user_id: str, action: str, credits_used: int) -> None:
        await self.audit_log.record(UsageLogEntry(
            user_id=user_id,
            action=action,
            credits_used=credits_used,
            success=True,
        ))
