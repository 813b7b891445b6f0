"""
threat_intel.py

Threat intelligence integration.

The scoring engine itself only consumes a ``ThreatFeedResult`` (or None). The
lookups in this module are optional producers of that result:

    - SafeBrowsingClient: Google Safe Browsing v4 threatMatches:find
    - FeedIndexLookup: local PhishTank / OpenPhish index built by feed_updater
    - CombinedLookup: ask several lookups, report the first threat

Requirements:
    pip install requests
"""

import logging
import os
from typing import Callable, Dict, Optional

import requests

from .. import feed_updater
from .models import AnalysisSignal, ThreatFeedResult

logger = logging.getLogger("phishsentry.threat_intel")

THREAT_FEED_WEIGHT = 100

SAFE_BROWSING_API_URL = "https://safebrowsing.googleapis.com/v4/threatMatches:find"
THREAT_TYPES = [
    "MALWARE",
    "SOCIAL_ENGINEERING",
    "UNWANTED_SOFTWARE",
    "POTENTIALLY_HARMFUL_APPLICATION",
]
PLATFORM_TYPES = [
    "WINDOWS", "LINUX", "ANDROID", "OSX", "IOS",
    "ANY_PLATFORM", "ALL_PLATFORMS", "CHROME",
]
LOOKUP_TIMEOUT = 5  # seconds

# url -> ThreatFeedResult, or None when the source has nothing to say
ThreatLookup = Callable[[str], Optional[ThreatFeedResult]]


class ThreatFeedAdapter:
    """Fold an external verdict into the score. A reported threat alone saturates it."""

    def evaluate(self, result: Optional[ThreatFeedResult]) -> AnalysisSignal:
        if result is None or result.is_safe:
            return AnalysisSignal.empty()
        threat_type = result.threat_type or "Unknown threat"
        return AnalysisSignal(THREAT_FEED_WEIGHT, [f"Threat feed detection: {threat_type}"])

    async def analyze(self, result: Optional[ThreatFeedResult]) -> AnalysisSignal:
        return self.evaluate(result)


class SafeBrowsingClient:
    """Google Safe Browsing lookup. Errors mean "no answer", never "unsafe"."""

    def __init__(self, api_key: str, http: Optional[requests.Session] = None,
                 client_id: str = "phishsentry", client_version: str = "1.0.0"):
        if not api_key:
            raise ValueError("Safe Browsing API key is required")
        self.api_key = api_key
        self.http = http if http is not None else requests.Session()
        self.client_id = client_id
        self.client_version = client_version

    def _request_body(self, url: str) -> Dict:
        return {
            "client": {"clientId": self.client_id, "clientVersion": self.client_version},
            "threatInfo": {
                "threatTypes": THREAT_TYPES,
                "platformTypes": PLATFORM_TYPES,
                "threatEntryTypes": ["URL"],
                "threatEntries": [{"url": url}],
            },
        }

    def __call__(self, url: str) -> Optional[ThreatFeedResult]:
        try:
            resp = self.http.post(SAFE_BROWSING_API_URL, params={"key": self.api_key},
                                  json=self._request_body(url), timeout=LOOKUP_TIMEOUT)
            resp.raise_for_status()
            data = resp.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning("Safe Browsing lookup failed: %s", e)
            return None

        matches = data.get("matches") or []
        if matches:
            threat_type = matches[0].get("threatType")
            logger.info("Safe Browsing reports %s for %s", threat_type, url)
            return ThreatFeedResult(is_safe=False, threat_type=threat_type)
        return ThreatFeedResult(is_safe=True)


class FeedIndexLookup:
    """Match URLs and their hosts against the feed index (reloaded when the file changes)."""

    def __init__(self, index_file: Optional[str] = None):
        self.index_file = index_file or feed_updater.INDEX_FILE
        self._index: Dict[str, Dict] = {}
        self._mtime = None

    def _refresh(self) -> None:
        try:
            mtime = os.path.getmtime(self.index_file)
        except OSError:
            self._index, self._mtime = {}, None
            return
        if mtime != self._mtime:
            self._index = feed_updater.load_index(self.index_file)
            self._mtime = mtime
            logger.info("Loaded feed index %s (urls=%d, hosts=%d)", self.index_file,
                        len(self._index.get("urls", {})), len(self._index.get("hosts", {})))

    def __call__(self, url: str) -> Optional[ThreatFeedResult]:
        self._refresh()
        return feed_updater.match(self._index, url)


def merge_results(*results: Optional[ThreatFeedResult]) -> Optional[ThreatFeedResult]:
    """The first threat wins, otherwise the first answer; None when nobody answered."""
    first = None
    for result in results:
        if result is None:
            continue
        if not result.is_safe:
            return result
        if first is None:
            first = result
    return first


class CombinedLookup:
    """Ask each lookup in order and merge the answers with ``merge_results``."""

    def __init__(self, *lookups: ThreatLookup):
        self.lookups = lookups

    def __call__(self, url: str) -> Optional[ThreatFeedResult]:
        first = None
        for lookup in self.lookups:
            result = lookup(url)
            if result is not None and not result.is_safe:
                return result
            first = merge_results(first, result)
        return first
