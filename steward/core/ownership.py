"""
Steward — Ownership & access control.

Exactly one user owns a deployment. The owner claims it once with a secret
code seeded at bootstrap; the claim runs in one serializable transaction
holding row locks on the ownership and claim-code rows, so concurrent
attempts resolve to a single winner. Everyone else must be on the allow-list.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from steward.core.rate_limiter import RateLimiter
from steward.data.models import AuditEvent
from steward.ports.store_port import OwnershipStore, TransactionConflict
from steward.security.hashing import hash_secret, verify_secret

logger = logging.getLogger(__name__)

_MAX_TRANSACTION_ATTEMPTS = 3


class ClaimFailure(Enum):
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    ALREADY_CLAIMED = "already_claimed"
    INVALID_CODE = "invalid_code"
    CLAIM_UNAVAILABLE = "claim_unavailable"


@dataclass(frozen=True)
class ClaimResult:
    """Outcome of a claim attempt: ok, or a failure reason."""

    ok: bool
    reason: ClaimFailure | None = None

    @classmethod
    def success(cls) -> "ClaimResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: ClaimFailure) -> "ClaimResult":
        return cls(ok=False, reason=reason)


class OwnershipService:
    def __init__(
        self,
        store: OwnershipStore,
        rate_limiter: RateLimiter,
        claim_code: str,
        pepper: str,
        default_model: str = "",
        max_attempts: int = 5,
        window_seconds: int = 300,
    ) -> None:
        self._store = store
        self._rate_limiter = rate_limiter
        self._claim_code = claim_code
        self._pepper = pepper
        self._default_model = default_model
        self._max_attempts = max_attempts
        self._window_seconds = window_seconds

    async def bootstrap_claim_code(self) -> None:
        """Seed the hashed claim code if no owner exists yet. Safe on every start."""
        if await self._store.get_owner() is not None:
            return
        code_hash = await asyncio.to_thread(hash_secret, self._claim_code, self._pepper)
        await self._store.seed_claim_code_if_missing(code_hash)

    async def is_owner_configured(self) -> bool:
        return await self._store.get_owner() is not None

    async def is_allowed_user(self, user_id: str) -> bool:
        return await self._store.is_allowed(user_id)

    async def claim_ownership(self, user_id: str, code: str) -> ClaimResult:
        """Run the claim protocol for user_id with the supplied code."""
        allowed = await self._rate_limiter.is_allowed(
            f"claim-attempt:{user_id}", self._max_attempts, self._window_seconds
        )
        if not allowed:
            return ClaimResult.failure(ClaimFailure.TOO_MANY_ATTEMPTS)

        for attempt in range(1, _MAX_TRANSACTION_ATTEMPTS + 1):
            try:
                return await self._claim_in_transaction(user_id, code)
            except TransactionConflict:
                if attempt == _MAX_TRANSACTION_ATTEMPTS:
                    raise
                logger.info("Claim transaction conflict for %s, retrying (%d)", user_id, attempt)

        raise AssertionError("unreachable")

    async def _claim_in_transaction(self, user_id: str, code: str) -> ClaimResult:
        async with self._store.transaction() as tx:
            if await tx.get_owner_for_update() is not None:
                return ClaimResult.failure(ClaimFailure.ALREADY_CLAIMED)

            claim_code = await tx.get_active_claim_code_for_update()
            if claim_code is None:
                return ClaimResult.failure(ClaimFailure.CLAIM_UNAVAILABLE)

            matches = await asyncio.to_thread(
                verify_secret, code, self._pepper, claim_code.code_hash
            )
            if not matches:
                await tx.log_audit(
                    AuditEvent(
                        event_type="claim_failed_invalid_code",
                        actor_user_id=user_id,
                        metadata={"reason": ClaimFailure.INVALID_CODE.value},
                    )
                )
                logger.warning("Invalid claim code from user %s", user_id)
                return ClaimResult.failure(ClaimFailure.INVALID_CODE)

            await tx.create_owner(user_id)
            await tx.add_allowed_user(user_id, user_id)
            await tx.seed_profile(user_id, self._default_model)
            await tx.consume_claim_code(claim_code.id, user_id)
            await tx.log_audit(
                AuditEvent(
                    event_type="claim_success",
                    actor_user_id=user_id,
                    metadata={"source": "claim_code"},
                )
            )

        logger.info("Ownership claimed by user %s", user_id)
        return ClaimResult.success()
