"""Request gate: decides whether an inbound request may reach the routes.

Evaluation order is fixed and the first denial wins:

1. rate limit (address already collected too many violations) -> 429
2. user agent, on stream and match endpoints -> 403 USER_AGENT_BLOCKED
3. datacenter address, everywhere -> 403 DATACENTER_BLOCKED
4. referrer, on stream endpoints -> 403 INVALID_REFERRER

Which of checks 2-4 run for a path is decided by ``PolicyRule``s, so new
endpoint classes are added by extending the policy, not the gate. Every
denial is recorded against the address in the violation rate limiter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional, Sequence, Tuple

from app.core.cidr import DatacenterClassifier
from app.services.classifiers import is_suspicious_user_agent, is_valid_referrer
from app.services.violations import ViolationRateLimiter

logger = logging.getLogger(__name__)


class Check(str, Enum):
    USER_AGENT = "user_agent"
    DATACENTER = "datacenter"
    REFERRER = "referrer"


CHECK_ORDER: Tuple[Check, ...] = (Check.USER_AGENT, Check.DATACENTER, Check.REFERRER)


class DenyReason(str, Enum):
    ALLOWED = "allowed"
    RATE_LIMITED = "rate_limited"
    USER_AGENT_BLOCKED = "USER_AGENT_BLOCKED"
    DATACENTER_BLOCKED = "DATACENTER_BLOCKED"
    INVALID_REFERRER = "INVALID_REFERRER"


_MESSAGES = {
    DenyReason.RATE_LIMITED: (
        "Too many requests",
        "Your IP has been temporarily blocked due to suspicious activity",
    ),
    DenyReason.USER_AGENT_BLOCKED: ("Access denied", "Access not permitted for automated clients"),
    DenyReason.DATACENTER_BLOCKED: ("Access denied", "Access from datacenter IPs is not permitted"),
    DenyReason.INVALID_REFERRER: ("Access denied", "Direct access to streams is not permitted"),
}


@dataclass(frozen=True)
class Decision:
    allow: bool
    reason: DenyReason
    http_status: int = 200
    retry_after_seconds: Optional[int] = None

    @property
    def code(self) -> Optional[str]:
        if self.allow or self.reason == DenyReason.RATE_LIMITED:
            return None
        return self.reason.value

    def body(self) -> Dict[str, Any]:
        if self.allow:
            return {}
        error, message = _MESSAGES[self.reason]
        out: Dict[str, Any] = {"error": error, "message": message}
        if self.code is not None:
            out["code"] = self.code
        if self.retry_after_seconds is not None:
            out["retryAfter"] = self.retry_after_seconds
        return out


ALLOW = Decision(allow=True, reason=DenyReason.ALLOWED)


@dataclass(frozen=True)
class RequestContext:
    address: str
    method: str
    path: str
    user_agent: str = ""
    referrer: Optional[str] = None
    host: Optional[str] = None


PathMatcher = Callable[[str], bool]


@dataclass(frozen=True)
class PolicyRule:
    name: str
    matcher: PathMatcher
    checks: FrozenSet[Check]


def path_contains(*fragments: str) -> PathMatcher:
    def _match(path: str) -> bool:
        return any(fragment in path for fragment in fragments)

    return _match


def any_path(path: str) -> bool:
    return True


DEFAULT_POLICY: Tuple[PolicyRule, ...] = (
    PolicyRule("all", any_path, frozenset({Check.DATACENTER})),
    PolicyRule(
        "stream-and-match",
        path_contains("/api/stream", "/api/match"),
        frozenset({Check.USER_AGENT}),
    ),
    PolicyRule("stream-fetch", path_contains("/api/stream"), frozenset({Check.REFERRER})),
)


class RequestGate:
    def __init__(
        self,
        limiter: ViolationRateLimiter,
        datacenter: DatacenterClassifier,
        policy: Sequence[PolicyRule] = DEFAULT_POLICY,
    ):
        self.limiter = limiter
        self.datacenter = datacenter
        self.policy = tuple(policy)

    def checks_for(self, path: str) -> FrozenSet[Check]:
        active = set()
        for rule in self.policy:
            if rule.matcher(path):
                active.update(rule.checks)
        return frozenset(active)

    def _is_suspicious_user_agent(self, ctx: RequestContext) -> bool:
        try:
            return is_suspicious_user_agent(ctx.user_agent)
        except Exception:
            logger.exception("User-agent classification failed")
            return False

    def _is_datacenter(self, ctx: RequestContext) -> bool:
        try:
            return self.datacenter.is_datacenter_address(ctx.address)
        except Exception:
            logger.exception(f"Datacenter classification failed for {ctx.address}")
            return False

    def _has_invalid_referrer(self, ctx: RequestContext) -> bool:
        try:
            return not is_valid_referrer(ctx.referrer, ctx.host)
        except Exception:
            logger.exception("Referrer validation failed")
            return False

    def _deny(self, ctx: RequestContext, reason: DenyReason, detail: str = "") -> Decision:
        logger.warning(
            f"[IP-BLOCK] {reason.value}: {ctx.address} {ctx.method} {ctx.path} - "
            f"User-Agent: {ctx.user_agent}{detail}"
        )
        self.limiter.record_violation(ctx.address)
        if reason == DenyReason.RATE_LIMITED:
            return Decision(
                allow=False,
                reason=reason,
                http_status=429,
                retry_after_seconds=self.limiter.retry_after_seconds,
            )
        return Decision(allow=False, reason=reason, http_status=403)

    def evaluate(self, ctx: RequestContext) -> Decision:
        logger.debug(f"[IP-BLOCK] {ctx.method} {ctx.path} from {ctx.address} - {ctx.user_agent}")

        if self.limiter.is_rate_limited(ctx.address):
            return self._deny(ctx, DenyReason.RATE_LIMITED)

        checks = self.checks_for(ctx.path)
        for check in CHECK_ORDER:
            if check not in checks:
                continue
            if check == Check.USER_AGENT and self._is_suspicious_user_agent(ctx):
                return self._deny(ctx, DenyReason.USER_AGENT_BLOCKED)
            if check == Check.DATACENTER and self._is_datacenter(ctx):
                return self._deny(ctx, DenyReason.DATACENTER_BLOCKED)
            if check == Check.REFERRER and self._has_invalid_referrer(ctx):
                return self._deny(ctx, DenyReason.INVALID_REFERRER, f" - Referrer: {ctx.referrer}")

        return ALLOW
