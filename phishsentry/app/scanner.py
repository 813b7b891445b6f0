"""
scanner.py

Main orchestration of the phishing detection pipeline.

    Admitted -> Analyzing -> Aggregated -> Logged
    Rejected (session invalid or rate limit exceeded, nothing analyzed)

Every outcome, verdict or rejection, is written to the audit log before the
caller sees it. Rejections are raised as ``AdmissionRejected`` subclasses so
"could not evaluate" can never be mistaken for "evaluated safe".
"""

import asyncio
import itertools
import logging
from enum import Enum
from typing import Optional

from ..errors import AdmissionRejected, InvalidSession, RateLimitExceeded
from ..security.audit import AuditLogger
from ..security.rate_limit import RateLimiter
from ..security.sessions import SessionStore
from .heuristics import normalize_scan_url
from .models import ThreatFeedResult, Verdict
from .scoring import ScoreAggregator
from .threat_intel import ThreatLookup

logger = logging.getLogger("phishsentry.scanner")
fallback_logger = logging.getLogger("phishsentry.audit.fallback")


class PipelineState(Enum):
    ADMITTED = "admitted"
    ANALYZING = "analyzing"
    AGGREGATED = "aggregated"
    LOGGED = "logged"
    REJECTED = "rejected"


class ScoringPipeline:

    def __init__(self, aggregator: Optional[ScoreAggregator] = None,
                 rate_limiter: Optional[RateLimiter] = None,
                 sessions: Optional[SessionStore] = None,
                 audit: Optional[AuditLogger] = None,
                 threat_lookup: Optional[ThreatLookup] = None,
                 require_session: bool = False):
        self.aggregator = aggregator or ScoreAggregator()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.sessions = sessions or SessionStore()
        self.audit = audit or AuditLogger()
        self.threat_lookup = threat_lookup
        self.require_session = require_session
        self._runs = itertools.count(1)

    def _transition(self, run_id: int, state: PipelineState) -> None:
        logger.debug("scan #%d -> %s", run_id, state.value)

    def _audit(self, level, message, caller_id, action, details) -> None:
        try:
            self.audit.record(level, message, caller_id, action, details)
        except Exception:
            # audit is best effort; the caller still gets its answer
            fallback_logger.exception("audit write failed (action=%s, caller=%s)", action, caller_id)

    def _reject(self, run_id: int, error: AdmissionRejected, url: str) -> AdmissionRejected:
        self._transition(run_id, PipelineState.REJECTED)
        self._audit("warning", f"request rejected: {error.reason}", error.caller_id,
                    "scan.rejected", {"url": url, "reason": error.reason})
        return error

    def _identify(self, run_id: int, url: str, caller_id: Optional[str],
                  session_token: Optional[str]) -> str:
        if session_token is None:
            if self.require_session:
                raise self._reject(run_id, InvalidSession(caller_id, "session token required"), url)
            if not caller_id:
                raise ValueError("caller_id or session_token is required")
            return caller_id

        owner = self.sessions.resolve(session_token)
        if owner is None:
            raise self._reject(run_id, InvalidSession(caller_id, "invalid or expired session"), url)
        if caller_id and caller_id != owner:
            raise self._reject(run_id, InvalidSession(caller_id, "session belongs to another caller"), url)
        return owner

    async def score(self, url: str, caller_id: Optional[str] = None,
                    session_token: Optional[str] = None,
                    threat_result: Optional[ThreatFeedResult] = None) -> Verdict:
        """
        Score ``url`` on behalf of a caller.

        Raises InvalidSession / RateLimitExceeded when the request is not
        admitted, ValueError for an empty URL or missing caller identity.
        """
        normalized = normalize_scan_url(url)
        run_id = next(self._runs)

        caller = self._identify(run_id, normalized, caller_id, session_token)
        if not self.rate_limiter.admit(caller):
            raise self._reject(run_id, RateLimitExceeded(caller), normalized)
        self._transition(run_id, PipelineState.ADMITTED)

        self._transition(run_id, PipelineState.ANALYZING)
        verdict = await self.aggregator.aggregate(normalized, threat_result, self.threat_lookup)
        self._transition(run_id, PipelineState.AGGREGATED)

        self._audit("warning" if verdict.is_phishing else "info",
                    f"verdict {verdict.total_score}/100 phishing={verdict.is_phishing}",
                    caller, "scan.verdict", verdict.to_dict())
        self._transition(run_id, PipelineState.LOGGED)
        logger.info("scanned %s for %s: score=%d phishing=%s",
                    normalized, caller, verdict.total_score, verdict.is_phishing)
        return verdict


def scan_url(url: str, caller_id: str = "local",
             threat_result: Optional[ThreatFeedResult] = None) -> Verdict:
    """Run one scan with a default pipeline (blocking)."""
    pipeline = ScoringPipeline()
    return asyncio.run(pipeline.score(url, caller_id=caller_id, threat_result=threat_result))


# CLI testing
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    for u in ("http://example.com", "https://www.google.com"):
        print("=" * 80)
        print(scan_url(u).to_dict())
