"""Inter-batch delay policy for clusters."""

from __future__ import annotations

from typing import Mapping, Optional

DEFAULT_DELAY = 2.0
STRICT_DELAY = 5.0

#: Origins known to throttle crawlers aggressively.
DEFAULT_STRICT_RULES: dict[str, float] = {
    "wikipedia.org": STRICT_DELAY,
    "amazon.com": STRICT_DELAY,
    "linkedin.com": STRICT_DELAY,
    "facebook.com": STRICT_DELAY,
    "twitter.com": STRICT_DELAY,
}


class RateLimitPolicy:
    """Map a cluster key to the pause (seconds) between two of its batches.

    *rules* maps a pattern to a delay; the first pattern (in mapping order)
    that occurs anywhere in the cluster key wins.  Keys matching no rule get
    *default_delay*.  Instances hold no mutable state, so one policy can be
    shared by every cluster task of a run.
    """

    def __init__(
        self,
        default_delay: float = DEFAULT_DELAY,
        rules: Optional[Mapping[str, float]] = None,
    ) -> None:
        if default_delay < 0:
            raise ValueError("default_delay must not be negative")
        self._default_delay = default_delay
        self._rules = tuple(
            (pattern, float(delay))
            for pattern, delay in (DEFAULT_STRICT_RULES if rules is None else rules).items()
        )

    @property
    def default_delay(self) -> float:
        return self._default_delay

    @property
    def rules(self) -> dict[str, float]:
        return dict(self._rules)

    def delay(self, cluster_key: str) -> float:
        for pattern, delay in self._rules:
            if pattern and pattern in cluster_key:
                return delay
        return self._default_delay

    @classmethod
    def from_settings(cls) -> "RateLimitPolicy":
        """Build the policy configured through ``RATE_LIMIT_DELAY`` and friends."""
        from aicrawler.config import settings

        return cls(settings.rate_limit_delay, settings.strict_rate_limit_rules)

    def __repr__(self) -> str:
        return f"RateLimitPolicy(default_delay={self._default_delay!r}, rules={self.rules!r})"
