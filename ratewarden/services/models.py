"""Value types shared by the rate limit services.

None of these are persisted. A ``Decision`` and ``GateResult`` live for one
request; a ``RateLimitKey`` exists in the store only while it has entries.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote


class PlanTier(str, Enum):
    """Closed set of plan tiers, declared from lowest to highest."""

    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    ENTERPRISE = "enterprise"

    @classmethod
    def lowest(cls) -> "PlanTier":
        return next(iter(cls))

    @classmethod
    def parse(cls, value: str | None) -> "PlanTier | None":
        """Map a tier name to a member; unknown or empty names give None."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class PolicySource(str, Enum):
    TIER = "tier"
    ROUTE = "route"


GLOBAL_SCOPE = "global"


@dataclass(frozen=True)
class Identity:
    """Who is being limited, as supplied by the authentication layer.

    Attributes:
        subject_id: Authenticated principal or fallback network origin
            (e.g. ``api_key:<hash>`` or ``ip:203.0.113.7``).
        tier: Plan tier name, or None when the caller has no known plan.
    """

    subject_id: str
    tier: str | None = None


@dataclass(frozen=True)
class RateLimitKey:
    """Composite ``(subject_id, scope)`` identifier of one sliding window."""

    subject_id: str
    scope: str

    def render(self, prefix: str) -> str:
        # each part is percent-encoded so ':' inside a part can't forge a boundary
        parts = (prefix, self.subject_id, self.scope)
        return ":".join(quote(part, safe="") for part in parts)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Concrete budget resolved for one request."""

    limit: int
    window_ms: int
    scope: str
    tier: PlanTier
    source: PolicySource


@dataclass(frozen=True)
class Decision:
    """Outcome of one window check.

    Attributes:
        allowed: Whether the attempt fits inside the limit.
        remaining: Attempts left in the current window, never negative. None
            when the window could not be observed (degraded admission).
        reset_ms: Milliseconds until the oldest counted entry leaves the
            window. None under the same condition as ``remaining``.
    """

    allowed: bool
    remaining: int | None
    reset_ms: int | None


class GateOutcome(str, Enum):
    """Terminal state of one pass through the decision gate."""

    ADMITTED = "admitted"
    REJECTED = "rejected"
    DEGRADED_ADMIT = "degraded_admit"
    DEGRADED_REJECT = "degraded_reject"


@dataclass(frozen=True)
class GateResult:
    """Decision plus the key and policy it was taken against."""

    key: str
    policy: RateLimitPolicy
    decision: Decision
    outcome: GateOutcome

    @property
    def allowed(self) -> bool:
        return self.outcome in (GateOutcome.ADMITTED, GateOutcome.DEGRADED_ADMIT)

    @property
    def degraded(self) -> bool:
        return self.outcome in (GateOutcome.DEGRADED_ADMIT, GateOutcome.DEGRADED_REJECT)
