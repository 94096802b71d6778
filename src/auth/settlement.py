"""
Post-success credit settlement.

Protected operations follow a two-phase protocol:

    token = await registry.begin_operation(user_id, amount, action)
    ...run the LLM call...
    await registry.complete_operation(token)   # settles exactly once
    # or registry.fail_operation(token, error) / registry.abort_operation(token)

Only completion charges credits. Failed and aborted operations never do.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from .credits import CreditLedger

logger = logging.getLogger('cvboost.settlement')


class SettlementHook:
    """
    Deducts credits once a protected operation has succeeded.

    Settlement failures are never raised: the user already has their result, so a
    failed debit is logged as a reconciliation item instead.
    This hook does not deduplicate; callers must invoke it once per operation.
    """

    def __init__(self, ledger: CreditLedger):
        self.ledger = ledger

    async def settle(self, user_id: str, amount: int, action: str) -> None:
        try:
            result = await self.ledger.deduct_credits(user_id, amount, action)
        except Exception as e:
            logger.error(
                f"SETTLEMENT_RECONCILIATION_REQUIRED: deduction raised for user={user_id} "
                f"amount={amount} action={action}: {type(e).__name__}: {e}",
                exc_info=True,
            )
            return

        if not result.success:
            logger.error(
                f"SETTLEMENT_RECONCILIATION_REQUIRED: deduction failed for user={user_id} "
                f"amount={amount} action={action}: {result.error}"
            )
            return

        logger.info(f"Settled {amount} credit(s) for {user_id} ({action}), remaining={result.remaining_credits}")


class OperationState(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass
class PendingOperation:
    token: str
    user_id: Optional[str]
    owner: Optional[str]
    amount: int
    action: str
    started_at: datetime = field(default_factory=datetime.now)
    state: OperationState = OperationState.PENDING
    cancel_requested: bool = False
    error: Optional[str] = None

    @property
    def billable(self) -> bool:
        return self.user_id is not None and self.amount > 0


class OperationRegistry:
    """
    Tracks in-flight protected operations and settles them on completion.

    Tokens are single use: once an operation leaves the pending state, further
    completion, failure or abort calls are no-ops.
    Thread-safe for async operations.
    """

    def __init__(self, settlement_hook: SettlementHook):
        self.settlement_hook = settlement_hook
        self._operations: dict[str, PendingOperation] = {}
        self._lock = asyncio.Lock()

    async def begin_operation(
        self,
        user_id: Optional[str],
        amount: int,
        action: str,
        owner: Optional[str] = None,
    ) -> str:
        """
        Register a new protected operation.

        Args:
            user_id: The user to charge, or None for anonymous operations
            amount: Credits to settle on success
            action: Usage log action name
            owner: Key of the caller allowed to stop the operation, defaults to user_id.
                Anonymous callers pass their ``ip:`` key.

        Returns:
            The operation token
        """
        token = str(uuid.uuid4())
        async with self._lock:
            self._operations[token] = PendingOperation(
                token=token,
                user_id=user_id,
                owner=owner if owner is not None else user_id,
                amount=amount,
                action=action,
            )
        logger.debug(f"Operation {token} started: {action} for user={user_id}")
        return token

    async def _finish(self, token: str, state: OperationState, error: Optional[str] = None) -> Optional[PendingOperation]:
        async with self._lock:
            operation = self._operations.pop(token, None)
            if operation is None:
                return None
            operation.state = state
            operation.error = error
            return operation

    async def complete_operation(self, token: str) -> bool:
        """
        Mark an operation as successfully completed and settle its credits.

        Returns:
            True if this call completed the operation, False if the token was
            unknown or already finished
        """
        operation = await self._finish(token, OperationState.COMPLETED)
        if operation is None:
            logger.warning(f"Ignoring completion of unknown or finished operation {token}")
            return False

        if operation.billable:
            assert operation.user_id is not None
            await self.settlement_hook.settle(operation.user_id, operation.amount, operation.action)
        logger.info(f"Operation {token} completed ({operation.action})")
        return True

    async def fail_operation(self, token: str, error: str) -> bool:
        operation = await self._finish(token, OperationState.FAILED, error)
        if operation is None:
            return False
        logger.warning(f"Operation {token} failed ({operation.action}), no credits charged: {error}")
        return True

    async def abort_operation(self, token: str) -> bool:
        operation = await self._finish(token, OperationState.ABORTED)
        if operation is None:
            return False
        logger.info(f"Operation {token} aborted ({operation.action}), no credits charged")
        return True

    async def request_cancellation(self, token: str, requester: str) -> bool:
        """
        Ask a running operation to stop. The streaming loop checks the flag between chunks.

        Args:
            token: The operation token
            requester: Owner key of the caller; must match the key the operation was started with

        Returns:
            True if the flag was set
        """
        async with self._lock:
            operation = self._operations.get(token)
            if operation is None or operation.owner is None or operation.owner != requester:
                return False
            operation.cancel_requested = True
        logger.info(f"Cancellation requested for operation {token}")
        return True

    async def is_cancelled(self, token: str) -> bool:
        async with self._lock:
            operation = self._operations.get(token)
            return operation is not None and operation.cancel_requested

    async def get_operation(self, token: str) -> Optional[PendingOperation]:
        async with self._lock:
            return self._operations.get(token)

    async def cleanup_stale(self, max_age_minutes: int = 10) -> int:
        """
        Abort operations that never reported an outcome.

        Returns:
            Number of operations removed
        """
        async with self._lock:
            cutoff = datetime.now() - timedelta(minutes=max_age_minutes)
            stale = [t for t, op in self._operations.items() if op.started_at < cutoff]
            for token in stale:
                del self._operations[token]

        if stale:
            logger.warning(f"Aborted {len(stale)} stale operations without charging credits")
        return len(stale)

    async def get_stats(self) -> dict[str, Any]:
        async with self._lock:
            started = [op.started_at for op in self._operations.values()]
            return {
                "active_operations": len(started),
                "oldest_operation": min(started) if started else None,
            }
