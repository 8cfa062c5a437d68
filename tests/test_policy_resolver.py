"""Tests for tier/route policy resolution."""

import json

import pytest

from ratewarden.core.config import RateLimitSettings, TierLimit
from ratewarden.core.errors import PolicyNotFoundError, ValidationAppError
from ratewarden.services.models import GLOBAL_SCOPE, Identity, PlanTier, PolicySource
from ratewarden.services.policy_resolver import Budget, PolicyResolver, PolicyTable


@pytest.fixture
def table() -> PolicyTable:
    return PolicyTable(
        tiers={
            PlanTier.FREE: Budget(limit=5, window_ms=60_000),
            PlanTier.PRO: Budget(limit=1000, window_ms=3_600_000),
        },
        route_overrides={"/v1/auth/login": Budget(limit=1, window_ms=900_000)},
    )


@pytest.fixture
def resolver(table) -> PolicyResolver:
    return PolicyResolver(table)


class TestResolve:
    def test_tier_default(self, resolver) -> None:
        policy = resolver.resolve(Identity("user-1", "pro"), "/v1/items")

        assert (policy.limit, policy.window_ms) == (1000, 3_600_000)
        assert policy.tier is PlanTier.PRO
        assert policy.scope == GLOBAL_SCOPE
        assert policy.source is PolicySource.TIER

    def test_route_override_replaces_tier_budget(self, resolver) -> None:
        policy = resolver.resolve(Identity("user-1", "pro"), "/v1/auth/login")

        assert (policy.limit, policy.window_ms) == (1, 900_000)
        assert policy.source is PolicySource.ROUTE
        assert policy.scope == "route:/v1/auth/login"
        assert policy.tier is PlanTier.PRO

    def test_override_applies_to_its_route_only(self, resolver) -> None:
        other = resolver.resolve(Identity("user-1", "pro"), "/v1/auth/logout")

        assert (other.limit, other.window_ms) == (1000, 3_600_000)

    def test_tier_name_is_case_insensitive(self, resolver) -> None:
        policy = resolver.resolve(Identity("user-1", " PRO "), "/v1/items")

        assert policy.tier is PlanTier.PRO

    @pytest.mark.parametrize("tier", [None, "", "platinum"])
    def test_unknown_tier_falls_back_to_lowest(self, resolver, tier) -> None:
        policy = resolver.resolve(Identity("ip:10.0.0.1", tier), "/v1/items")

        assert policy.tier is PlanTier.FREE
        assert (policy.limit, policy.window_ms) == (5, 60_000)

    def test_unconfigured_tier_falls_back_to_lowest(self, resolver) -> None:
        # starter is a valid tier but has no budget in this table
        policy = resolver.resolve(Identity("user-2", "starter"), "/v1/items")

        assert policy.tier is PlanTier.FREE
        assert policy.limit == 5


class TestPolicyTable:
    def test_missing_lowest_tier_rejected(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            PolicyTable(tiers={PlanTier.PRO: Budget(limit=10, window_ms=1000)})

        assert exc_info.value.code == "policy_missing_lowest_tier"

    def test_tier_budget_raises_policy_not_found(self, table) -> None:
        with pytest.raises(PolicyNotFoundError):
            table.tier_budget(PlanTier.ENTERPRISE)

    def test_table_is_read_only(self, table) -> None:
        with pytest.raises(TypeError):
            table.tiers[PlanTier.ENTERPRISE] = Budget(limit=1, window_ms=1)  # type: ignore[index]

    def test_source_mapping_changes_do_not_leak_in(self) -> None:
        tiers = {PlanTier.FREE: Budget(limit=5, window_ms=1000)}
        table = PolicyTable(tiers=tiers)

        tiers[PlanTier.PRO] = Budget(limit=50, window_ms=1000)

        assert PlanTier.PRO not in table.tiers

    @pytest.mark.parametrize("limit, window_ms", [(0, 1000), (1, 0)])
    def test_invalid_budget(self, limit, window_ms) -> None:
        with pytest.raises(ValidationAppError):
            Budget(limit=limit, window_ms=window_ms)

    def test_from_settings(self) -> None:
        cfg = RateLimitSettings(
            tiers={
                "free": TierLimit(request_limit=5, window_ms=60_000),
                "pro": TierLimit(request_limit=1000, window_ms=3_600_000),
            },
            route_overrides={"/v1/auth/login": TierLimit(request_limit=1, window_ms=900_000)},
        )

        table = PolicyTable.from_settings(cfg)

        assert table.tiers[PlanTier.PRO] == Budget(limit=1000, window_ms=3_600_000)
        assert table.route_budget("/v1/auth/login") == Budget(limit=1, window_ms=900_000)
        assert table.route_budget("/v1/other") is None

    def test_from_settings_rejects_unknown_tier_name(self) -> None:
        cfg = RateLimitSettings(
            tiers={
                "free": TierLimit(request_limit=5, window_ms=60_000),
                "gold": TierLimit(request_limit=50, window_ms=60_000),
            },
        )

        with pytest.raises(ValidationAppError) as exc_info:
            PolicyTable.from_settings(cfg)

        assert exc_info.value.code == "policy_unknown_tier"

    def test_tables_load_from_json_environment(self, monkeypatch) -> None:
        monkeypatch.setenv(
            "RATE_LIMIT_TIERS",
            json.dumps({"free": {"request_limit": 3, "window_ms": 1000}}),
        )
        monkeypatch.setenv(
            "RATE_LIMIT_ROUTE_OVERRIDES",
            json.dumps({"/v1/auth/login": {"request_limit": 1, "window_ms": 900000}}),
        )

        table = PolicyTable.from_settings(RateLimitSettings())

        assert table.tiers == {PlanTier.FREE: Budget(limit=3, window_ms=1000)}
        assert table.route_budget("/v1/auth/login") == Budget(limit=1, window_ms=900_000)

    def test_default_settings_cover_every_tier(self) -> None:
        table = PolicyTable.from_settings(RateLimitSettings())

        assert set(table.tiers) == set(PlanTier)
