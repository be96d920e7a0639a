"""robots.txt policy point.

Crawling is not checked against robots.txt; :class:`AllowAllRobotsPolicy` is
the only implementation and approves every URL.  The scheduler still asks the
policy before each fetch so that a real checker can be dropped in.
"""

from __future__ import annotations

from typing import Protocol


class RobotsPolicy(Protocol):
    async def is_allowed(self, url: str) -> bool:
        """Return ``True`` if *url* may be fetched."""


class AllowAllRobotsPolicy:
    async def is_allowed(self, url: str) -> bool:
        return True
