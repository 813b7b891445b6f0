"""
scoring.py

Fuses the analyzer signals into one Verdict.

All analyzers run concurrently, each under its own timeout. An analyzer that
times out or raises contributes a zero score and an indicator naming the
failure, so ``ScoreAggregator.aggregate`` always returns a Verdict.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple

from .brands import BrandImpersonationDetector
from .domain_check import DomainAnalyzer
from .heuristics import StructureAnalyzer, hostname_of
from .models import AnalysisSignal, DomainFacts, ThreatFeedResult, Verdict
from .redirects import RedirectChainAnalyzer
from .threat_intel import ThreatFeedAdapter, ThreatLookup, merge_results

logger = logging.getLogger("phishsentry.scoring")

# Policy constants
PHISHING_THRESHOLD = 70
MAX_SCORE = 100

ANALYZER_TIMEOUT = 10.0  # seconds, outer bound per analyzer


def clamp_score(total: int) -> int:
    return max(0, min(MAX_SCORE, int(total)))


def is_phishing_score(score: int) -> bool:
    return score >= PHISHING_THRESHOLD


class ScoreAggregator:

    def __init__(self, structure: Optional[StructureAnalyzer] = None,
                 domain: Optional[DomainAnalyzer] = None,
                 brand: Optional[BrandImpersonationDetector] = None,
                 redirect: Optional[RedirectChainAnalyzer] = None,
                 threat: Optional[ThreatFeedAdapter] = None,
                 analyzer_timeout: float = ANALYZER_TIMEOUT):
        self.structure = structure or StructureAnalyzer()
        self.domain = domain or DomainAnalyzer()
        self.brand = brand or BrandImpersonationDetector()
        self.redirect = redirect or RedirectChainAnalyzer()
        self.threat = threat or ThreatFeedAdapter()
        self.analyzer_timeout = analyzer_timeout

    async def _guarded(self, label: str, coro: Awaitable[Any],
                       fallback: Callable[[AnalysisSignal], Any]) -> Any:
        try:
            return await asyncio.wait_for(coro, timeout=self.analyzer_timeout)
        except asyncio.TimeoutError:
            logger.warning("%s analysis timed out after %.1fs", label, self.analyzer_timeout)
            return fallback(AnalysisSignal.failed(f"{label} analysis timed out"))
        except Exception as e:
            logger.warning("%s analysis failed: %s", label, e)
            return fallback(AnalysisSignal.failed(f"{label} analysis failed: {e}"))

    async def _threat(self, url: str, supplied: Optional[ThreatFeedResult],
                      lookup: Optional[ThreatLookup]) -> Tuple[AnalysisSignal, Optional[bool]]:
        looked_up = None
        failure = None
        if lookup is not None:
            try:
                looked_up = await asyncio.to_thread(lookup, url)
            except Exception as e:
                logger.warning("threat lookup failed for %s: %s", url, e)
                failure = f"Threat feed lookup failed: {e}"

        # a supplied "safe" can never mask a threat the lookup found
        result = merge_results(looked_up, supplied)
        signal = await self.threat.analyze(result)
        if failure:
            signal = AnalysisSignal(signal.score, signal.indicators + (failure,))
        return signal, (None if result is None else not result.is_safe)

    async def aggregate(self, url: str, threat_result: Optional[ThreatFeedResult] = None,
                        threat_lookup: Optional[ThreatLookup] = None) -> Verdict:
        """
        Score ``url`` (already normalized, see heuristics.normalize_scan_url).

        ``threat_result`` is a caller-supplied feed verdict. A ``threat_lookup``,
        when given, always runs alongside the analyzers; the two answers are
        merged and any reported threat wins.
        """
        host = hostname_of(url)

        structure, (domain, facts), brand, (redirect, redirect_count), (threat, threat_flag) = \
            await asyncio.gather(
                self._guarded("Structure", self.structure.analyze(url), lambda s: s),
                self._guarded("Domain", self.domain.analyze(host),
                              lambda s: (s, DomainFacts())),
                self._guarded("Brand", self.brand.analyze(host), lambda s: s),
                self._guarded("Redirect", self.redirect.analyze(url), lambda s: (s, 0)),
                self._guarded("Threat feed", self._threat(url, threat_result, threat_lookup),
                              lambda s: (s, None)),
            )

        signals = (structure, domain, brand, redirect, threat)
        total = clamp_score(sum(s.score for s in signals))
        indicators = tuple(i for s in signals for i in s.indicators)

        return Verdict(
            url=url,
            total_score=total,
            is_phishing=is_phishing_score(total),
            indicators=indicators,
            domain_facts=facts,
            redirect_count=redirect_count,
            threat_feed_flag=threat_flag,
        )
