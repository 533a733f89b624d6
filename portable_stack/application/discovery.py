"""
Tiered discovery of candidate download locations for one component.

Tiers run in order and each one is consulted only when everything before it
came back empty: a fresh cache entry, the upstream's primary listing, its
widened secondary listing, and finally the configured fallback URLs. Upstream
failures are expected and only traced at debug level.
"""

import logging
from typing import Awaitable, Callable, Dict, List

from .domain import Candidate, Component, DiscoveryStrategy, LocationCache, Prober
from .exceptions import ConfigurationError, DiscoveryError


class SourceDiscoverer:
    """Produces a freshest-first candidate list for a component."""

    def __init__(
        self,
        strategies: Dict[str, DiscoveryStrategy],
        cache: LocationCache,
        prober: Prober,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.strategies = strategies
        self.cache = cache
        self.prober = prober

    async def _run_tier(
        self,
        component: Component,
        tier: str,
        query: Callable[[], Awaitable[List[Candidate]]],
    ) -> List[Candidate]:
        try:
            candidates = await query()
        except (DiscoveryError, ValueError) as e:
            self.logger.debug(f"{component.key}: {tier} discovery failed: {e}")
            return []
        self.logger.debug(f"{component.key}: {tier} discovery found {len(candidates)}")
        return candidates

    async def discover(self, component: Component) -> List[Candidate]:
        """
        Build the ordered candidate list for a component.

        The list is never empty. When some candidate proves reachable and
        large enough, that single URL is written to the location cache.

        Args:
            component: The component to find downloads for.

        Returns:
            Candidates in priority order. A cache hit returns just that URL.

        Raises:
            ConfigurationError: If the component has no strategy and no
                                fallback URLs.
        """

        cached = self.cache.get(component.key)
        if cached:
            self.logger.info(f"Using cached location for {component.name}: {cached}")
            return [Candidate(cached)]

        candidates: List[Candidate] = []
        strategy = self.strategies.get(component.key)
        if strategy is not None:
            candidates = await self._run_tier(component, "primary", strategy.primary)
            if not candidates:
                candidates = await self._run_tier(
                    component, "secondary", strategy.secondary
                )

        if not candidates:
            self.logger.debug(f"{component.key}: using the built-in fallback list")
            candidates = [Candidate(url) for url in component.fallback_urls]

        if not candidates:
            raise ConfigurationError(
                f"No download location is known for {component.name}; "
                f"add fallback_urls to its settings"
            )

        candidates = _unique_by_url(candidates)
        self.logger.info(
            f"Found {len(candidates)} candidate(s) for {component.name}, "
            f"first: {candidates[0].url}"
        )

        working = await self.prober.find_working_url(
            [candidate.url for candidate in candidates], component.min_size
        )
        if working:
            self.cache.put(component.key, working)

        return candidates


def _unique_by_url(candidates: List[Candidate]) -> List[Candidate]:
    seen = set()
    unique = []
    for candidate in candidates:
        if candidate.url not in seen:
            seen.add(candidate.url)
            unique.append(candidate)
    return unique
