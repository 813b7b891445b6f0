"""
redirects.py

Follow a URL's redirect chain and score its length and cross-domain jumps.
Network trouble means "redirect behaviour unknown": zero score, no indicator.
"""

import asyncio
import logging
from typing import Optional, Tuple

import requests

from .heuristics import hostname_of
from .models import AnalysisSignal

logger = logging.getLogger("phishsentry.redirects")

REDIRECT_TIMEOUT = 5.0  # seconds, whole chain
MAX_HOPS = 10
EXCESSIVE_REDIRECTS = 3
PER_HOP_WEIGHT = 5
MAX_CHAIN_PENALTY = 20
WEIGHT_CROSS_DOMAIN = 25

USER_AGENT = "phishsentry/1.0"


class RedirectChainAnalyzer:
    def __init__(self, http: Optional[requests.Session] = None,
                 timeout: float = REDIRECT_TIMEOUT, max_hops: int = MAX_HOPS):
        # a caller-supplied session keeps its own redirect limit
        if http is None:
            http = requests.Session()
            http.max_redirects = max_hops
        self.http = http
        self.timeout = timeout

    def _follow(self, url: str) -> Tuple[int, str]:
        # stream=True: only headers are needed, the body is never read
        resp = self.http.get(url, timeout=self.timeout, allow_redirects=True,
                             stream=True, headers={"User-Agent": USER_AGENT})
        try:
            return len(resp.history), resp.url
        finally:
            resp.close()

    async def analyze(self, url: str) -> Tuple[AnalysisSignal, int]:
        """Return the signal and the number of hops followed (0 if unknown)."""
        try:
            count, final_url = await asyncio.wait_for(
                asyncio.to_thread(self._follow, url), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug("redirect probe timed out for %s", url)
            return AnalysisSignal.empty(), 0
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.debug("redirect probe failed for %s: %s", url, e)
            return AnalysisSignal.empty(), 0

        score = 0
        indicators = []
        if count > EXCESSIVE_REDIRECTS:
            score += min(count * PER_HOP_WEIGHT, MAX_CHAIN_PENALTY)
            indicators.append(f"Excessive redirect chain ({count} redirects)")

        original_host = hostname_of(url)
        final_host = hostname_of(final_url)
        if final_host and final_host != original_host:
            score += WEIGHT_CROSS_DOMAIN
            indicators.append(f"Redirects to different domain ({final_host})")

        return AnalysisSignal(score, indicators), count
