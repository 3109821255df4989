"""Unit tests for the request gate decision logic."""

import pytest

from app.core.cidr import DatacenterClassifier
from app.services.ip_blocker import (
    Check,
    DenyReason,
    PolicyRule,
    RequestContext,
    RequestGate,
    path_contains,
)
from app.services.violations import InMemoryViolationStore, ViolationRateLimiter

BROWSER_UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"


@pytest.fixture()
def gate(clock):
    limiter = ViolationRateLimiter(InMemoryViolationStore(), clock=clock)
    return RequestGate(limiter, DatacenterClassifier(ranges=["203.0.113.0/24"]))


def ctx(path="/api/sports", address="81.2.69.160", ua=BROWSER_UA, referrer=None, host="watch.example.com"):
    return RequestContext(address=address, method="GET", path=path, user_agent=ua, referrer=referrer, host=host)


def test_checks_for_paths(gate):
    assert gate.checks_for("/api/sports") == {Check.DATACENTER}
    assert gate.checks_for("/api/matches/live") == {Check.DATACENTER, Check.USER_AGENT}
    assert gate.checks_for("/api/match/abc") == {Check.DATACENTER, Check.USER_AGENT}
    assert gate.checks_for("/api/stream/alpha/1") == {Check.DATACENTER, Check.USER_AGENT, Check.REFERRER}


def test_allows_normal_request(gate):
    decision = gate.evaluate(ctx())
    assert decision.allow is True
    assert decision.reason == DenyReason.ALLOWED
    assert len(gate.limiter.store) == 0


def test_user_agent_only_checked_on_scoped_paths(gate):
    assert gate.evaluate(ctx(path="/api/sports", ua="curl/8.0")).allow is True
    decision = gate.evaluate(ctx(path="/api/match/1", ua="curl/8.0"))
    assert decision.allow is False
    assert decision.http_status == 403
    assert decision.body() == {
        "error": "Access denied",
        "message": "Access not permitted for automated clients",
        "code": "USER_AGENT_BLOCKED",
    }


def test_datacenter_blocked_on_any_path(gate):
    decision = gate.evaluate(ctx(path="/", address="203.0.113.42"))
    assert decision.http_status == 403
    assert decision.code == "DATACENTER_BLOCKED"
    assert gate.limiter.store.get("203.0.113.42").violation_count == 1


def test_user_agent_check_precedes_datacenter(gate):
    decision = gate.evaluate(ctx(path="/api/stream/a/1", address="203.0.113.42", ua="python-requests/2.31"))
    assert decision.code == "USER_AGENT_BLOCKED"


def test_referrer_required_on_stream_paths(gate):
    missing = gate.evaluate(ctx(path="/api/stream/a/1"))
    assert missing.code == "INVALID_REFERRER"
    assert missing.body()["message"] == "Direct access to streams is not permitted"

    foreign = gate.evaluate(ctx(path="/api/stream/a/1", referrer="https://elsewhere.example.net/"))
    assert foreign.code == "INVALID_REFERRER"

    ok = gate.evaluate(ctx(path="/api/stream/a/1", referrer="https://watch.example.com/match/1"))
    assert ok.allow is True


def test_referrer_not_required_elsewhere(gate):
    assert gate.evaluate(ctx(path="/api/match/1")).allow is True


def test_rate_limit_after_repeated_denials(gate):
    for _ in range(5):
        assert gate.evaluate(ctx(path="/api/stream/a/1")).http_status == 403

    decision = gate.evaluate(ctx(path="/api/sports"))
    assert decision.http_status == 429
    assert decision.retry_after_seconds == 900
    assert decision.body() == {
        "error": "Too many requests",
        "message": "Your IP has been temporarily blocked due to suspicious activity",
        "retryAfter": 900,
    }
    # The rate-limited request itself counts as another violation.
    assert gate.limiter.store.get("81.2.69.160").violation_count == 6


def test_block_lifts_after_quiet_period(gate, clock):
    for _ in range(5):
        gate.evaluate(ctx(path="/api/stream/a/1"))
    clock.advance(15 * 60 + 1)
    assert gate.evaluate(ctx(path="/api/sports")).allow is True


def test_classifier_errors_default_to_allow(clock):
    class Broken:
        def is_datacenter_address(self, address):
            raise RuntimeError("table corrupted")

    limiter = ViolationRateLimiter(InMemoryViolationStore(), clock=clock)
    gate = RequestGate(limiter, Broken())
    assert gate.evaluate(ctx()).allow is True


def test_custom_policy_rule(clock):
    limiter = ViolationRateLimiter(InMemoryViolationStore(), clock=clock)
    policy = [PolicyRule("admin", path_contains("/admin"), frozenset({Check.USER_AGENT}))]
    gate = RequestGate(limiter, DatacenterClassifier(ranges=["203.0.113.0/24"]), policy=policy)

    assert gate.evaluate(ctx(path="/admin/users", ua="wget/1.0")).code == "USER_AGENT_BLOCKED"
    # No datacenter rule in this policy.
    assert gate.evaluate(ctx(path="/api/sports", address="203.0.113.9")).allow is True


def test_allow_decision_has_empty_body(gate):
    decision = gate.evaluate(ctx())
    assert decision.body() == {}
    assert decision.code is None
