"""Request-path entry point of the rate limiter.

``admit`` walks one request through ``resolve -> check -> branch`` and always
returns a ``GateResult`` in exactly one terminal state. Counter store
failures never escape ``admit``: the configured fail mode turns them into a
degraded admission (fail-open) or a degraded rejection (fail-closed).
"""

from __future__ import annotations

import hashlib
import logging
from enum import Enum

from ratewarden.core.errors import StoreAppError
from ratewarden.services.models import (
    Decision,
    GateOutcome,
    GateResult,
    Identity,
    RateLimitKey,
    RateLimitPolicy,
)
from ratewarden.services.policy_resolver import PolicyResolver
from ratewarden.services.window_accountant import WindowAccountant

logger = logging.getLogger(__name__)


class FailMode(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


def hash_subject(subject_id: str) -> str:
    """Truncated SHA-256 of a subject or API key.

    Used wherever a caller must be identified without exposing the raw key or
    address: log fields and API key subjects.
    """
    return hashlib.sha256(subject_id.encode()).hexdigest()[:16]


class DecisionGate:
    """Combines policy resolution and window accounting per request."""

    def __init__(
        self,
        resolver: PolicyResolver,
        accountant: WindowAccountant,
        *,
        fail_mode: FailMode = FailMode.CLOSED,
        degraded_retry_after_seconds: int = 1,
        key_prefix: str = "rl",
    ) -> None:
        if degraded_retry_after_seconds < 1:
            raise ValueError("degraded_retry_after_seconds must be >= 1")
        self._resolver = resolver
        self._accountant = accountant
        self._fail_mode = FailMode(fail_mode)
        self._degraded_retry_after_ms = degraded_retry_after_seconds * 1000
        self._key_prefix = key_prefix

    @property
    def fail_mode(self) -> FailMode:
        return self._fail_mode

    @property
    def resolver(self) -> PolicyResolver:
        return self._resolver

    def _locate(self, identity: Identity, target: str) -> tuple[str, RateLimitPolicy]:
        policy = self._resolver.resolve(identity, target)
        key = RateLimitKey(subject_id=identity.subject_id, scope=policy.scope)
        return key.render(self._key_prefix), policy

    def _degraded(self, key: str, policy: RateLimitPolicy, exc: StoreAppError) -> GateResult:
        if self._fail_mode is FailMode.OPEN:
            outcome = GateOutcome.DEGRADED_ADMIT
            # the window was never observed, so neither value is known
            decision = Decision(allowed=True, remaining=None, reset_ms=None)
        else:
            outcome = GateOutcome.DEGRADED_REJECT
            decision = Decision(
                allowed=False,
                remaining=0,
                reset_ms=self._degraded_retry_after_ms,
            )

        logger.warning(
            "rate_limit.degraded",
            extra={
                "outcome": outcome.value,
                "fail_mode": self._fail_mode.value,
                "error_code": exc.code,
                "scope": policy.scope,
            },
        )
        return GateResult(key=key, policy=policy, decision=decision, outcome=outcome)

    async def admit(self, identity: Identity, target: str) -> GateResult:
        """Consume one attempt for ``identity`` on ``target`` and decide.

        Args:
            identity: Subject and plan tier of the caller.
            target: Route being accessed, used for route overrides.

        Returns:
            GateResult in one of the ADMITTED, REJECTED, DEGRADED_ADMIT or
            DEGRADED_REJECT states.
        """
        key, policy = self._locate(identity, target)

        try:
            decision = await self._accountant.check(key, policy.limit, policy.window_ms)
        except StoreAppError as exc:
            return self._degraded(key, policy, exc)

        outcome = GateOutcome.ADMITTED if decision.allowed else GateOutcome.REJECTED
        log_fields = {
            "subject_hash": hash_subject(identity.subject_id),
            "tier": policy.tier.value,
            "scope": policy.scope,
            "limit": policy.limit,
            "remaining": decision.remaining,
            "window_ms": policy.window_ms,
        }
        if decision.allowed:
            logger.info("rate_limit.allowed", extra=log_fields)
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={**log_fields, "reset_ms": decision.reset_ms},
            )
        return GateResult(key=key, policy=policy, decision=decision, outcome=outcome)

    async def status(self, identity: Identity, target: str) -> GateResult:
        """Report the caller's window without consuming an attempt.

        Raises:
            StoreAppError: If the counter store cannot be consulted.
        """
        key, policy = self._locate(identity, target)
        decision = await self._accountant.peek(key, policy.limit, policy.window_ms)
        outcome = GateOutcome.ADMITTED if decision.allowed else GateOutcome.REJECTED
        return GateResult(key=key, policy=policy, decision=decision, outcome=outcome)

    async def reset(self, identity: Identity, target: str) -> bool:
        """Drop every recorded attempt in the caller's window for ``target``.

        Raises:
            StoreAppError: If the counter store cannot be consulted.
        """
        key, policy = self._locate(identity, target)
        existed = await self._accountant.reset(key)
        logger.info(
            "rate_limit.reset",
            extra={
                "subject_hash": hash_subject(identity.subject_id),
                "scope": policy.scope,
                "existed": existed,
            },
        )
        return existed
