"""Resolution of an identity and target route to a concrete budget.

The tier table and route overrides live in an immutable ``PolicyTable`` that
is built once at startup and handed to the resolver. A route override
replaces the tier budget outright; the two are never combined.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from ratewarden.core.config import RateLimitSettings, TierLimit
from ratewarden.core.errors import PolicyNotFoundError, ValidationAppError
from ratewarden.services.models import (
    GLOBAL_SCOPE,
    Identity,
    PlanTier,
    PolicySource,
    RateLimitPolicy,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Budget:
    """``limit`` attempts per ``window_ms``."""

    limit: int
    window_ms: int

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValidationAppError(code="invalid_budget", message="limit must be >= 1")
        if self.window_ms < 1:
            raise ValidationAppError(code="invalid_budget", message="window_ms must be >= 1")

    @classmethod
    def from_setting(cls, value: TierLimit) -> "Budget":
        return cls(limit=value.request_limit, window_ms=value.window_ms)


class PolicyTable:
    """Read-only tier and route budgets."""

    def __init__(
        self,
        tiers: Mapping[PlanTier, Budget],
        route_overrides: Mapping[str, Budget] | None = None,
    ) -> None:
        lowest = PlanTier.lowest()
        if lowest not in tiers:
            raise ValidationAppError(
                code="policy_missing_lowest_tier",
                message=f"Tier table must define the lowest tier '{lowest.value}'",
                details={"tier": lowest.value},
            )
        self._tiers = MappingProxyType(dict(tiers))
        self._routes = MappingProxyType(dict(route_overrides or {}))

    @classmethod
    def from_settings(cls, cfg: RateLimitSettings) -> "PolicyTable":
        """Build the table from ``RATE_LIMIT_TIERS`` / ``RATE_LIMIT_ROUTE_OVERRIDES``.

        Raises:
            ValidationAppError: If a tier name is not a known plan tier or the
                lowest tier is missing.
        """
        tiers: dict[PlanTier, Budget] = {}
        for name, value in cfg.tiers.items():
            tier = PlanTier.parse(name)
            if tier is None:
                raise ValidationAppError(
                    code="policy_unknown_tier",
                    message=f"Unknown tier '{name}' in rate limit configuration",
                    details={"tier": name},
                )
            tiers[tier] = Budget.from_setting(value)

        routes = {route: Budget.from_setting(value) for route, value in cfg.route_overrides.items()}
        return cls(tiers, routes)

    @property
    def tiers(self) -> Mapping[PlanTier, Budget]:
        return self._tiers

    @property
    def route_overrides(self) -> Mapping[str, Budget]:
        return self._routes

    def tier_budget(self, tier: PlanTier) -> Budget:
        try:
            return self._tiers[tier]
        except KeyError:
            raise PolicyNotFoundError(
                code="policy_not_found",
                message=f"No budget configured for tier '{tier.value}'",
                details={"tier": tier.value},
            ) from None

    def route_budget(self, target: str) -> Budget | None:
        return self._routes.get(target)


def route_scope(target: str) -> str:
    return f"route:{target}"


class PolicyResolver:
    """Maps ``(identity, target)`` to the budget that applies to it."""

    def __init__(self, table: PolicyTable) -> None:
        self._table = table

    @property
    def table(self) -> PolicyTable:
        return self._table

    def _tier_for(self, identity: Identity) -> tuple[PlanTier, Budget]:
        lowest = PlanTier.lowest()
        tier = PlanTier.parse(identity.tier) or lowest
        try:
            return tier, self._table.tier_budget(tier)
        except PolicyNotFoundError:
            logger.info(
                "policy.tier_fallback",
                extra={"requested_tier": identity.tier, "fallback_tier": lowest.value},
            )
            return lowest, self._table.tier_budget(lowest)

    def resolve(self, identity: Identity, target: str) -> RateLimitPolicy:
        """Resolve the budget for one request.

        Unknown or unconfigured tiers fall back to the lowest tier, never to
        an unlimited budget. A route override, when registered for
        ``target``, is used instead of the tier budget and gets its own scope.
        """
        tier, budget = self._tier_for(identity)

        override = self._table.route_budget(target)
        if override is not None:
            return RateLimitPolicy(
                limit=override.limit,
                window_ms=override.window_ms,
                scope=route_scope(target),
                tier=tier,
                source=PolicySource.ROUTE,
            )

        return RateLimitPolicy(
            limit=budget.limit,
            window_ms=budget.window_ms,
            scope=GLOBAL_SCOPE,
            tier=tier,
            source=PolicySource.TIER,
        )
