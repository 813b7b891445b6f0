"""
domain_check.py

DNS, TLS and registration-age checks for a hostname.

Public names:
    DomainAnalyzer(age_oracle=None, http=None, resolver=None).analyze(hostname)
        -> (AnalysisSignal, DomainFacts)
    WhoisAgeOracle()(hostname) -> age in days or None

Every sub-check is independent: a failing check turns into a score/indicator
or an "unknown" fact, never an exception.

Requires:
    pip install requests python-whois
"""

import asyncio
import datetime
import logging
import socket
from typing import Awaitable, Callable, Optional, Tuple

import requests
import whois

from .models import AnalysisSignal, DomainFacts

logger = logging.getLogger("phishsentry.domain_check")

TLS_PROBE_TIMEOUT = 3.0  # seconds
NEW_DOMAIN_DAYS = 30

WEIGHT_NO_DNS = 30
WEIGHT_NO_TLS = 20
MAX_AGE_PENALTY = 25

# hostname -> age in days, None when unknown
AgeOracle = Callable[[str], Optional[int]]
Resolver = Callable[[str], Awaitable[bool]]


class WhoisAgeOracle:
    """Registration age from WHOIS (may fail if the registrar blocks queries)."""

    def __call__(self, hostname: str) -> Optional[int]:
        try:
            w = whois.whois(hostname)
        except Exception as e:
            logger.debug("whois lookup failed for %s: %s", hostname, e)
            return None
        creation_date = w.creation_date
        if isinstance(creation_date, list):  # sometimes it's a list
            creation_date = creation_date[0] if creation_date else None
        if not isinstance(creation_date, datetime.datetime):
            return None
        if creation_date.tzinfo is None:
            creation_date = creation_date.replace(tzinfo=datetime.timezone.utc)
        now = datetime.datetime.now(datetime.timezone.utc)
        return max(0, (now - creation_date).days)


async def _system_resolver(hostname: str) -> bool:
    loop = asyncio.get_running_loop()
    try:
        await loop.getaddrinfo(hostname, None)
    except (socket.gaierror, OSError, UnicodeError) as e:
        logger.debug("DNS lookup failed for %s: %s", hostname, e)
        return False
    return True


def _is_name_resolution_error(exc: BaseException) -> bool:
    """Walk the requests / urllib3 wrapping down to a socket.gaierror."""
    seen = set()
    pending = [exc]
    while pending:
        e = pending.pop()
        if e is None or id(e) in seen:
            continue
        seen.add(id(e))
        if isinstance(e, socket.gaierror):
            return True
        # requests wraps urllib3's MaxRetryError, which keeps the cause in .reason
        links = list(getattr(e, "args", ())) + [getattr(e, "reason", None), e.__cause__, e.__context__]
        pending.extend(link for link in links if isinstance(link, BaseException))
    return False


class DomainAnalyzer:
    def __init__(self, age_oracle: Optional[AgeOracle] = None,
                 http: Optional[requests.Session] = None,
                 resolver: Optional[Resolver] = None,
                 tls_timeout: float = TLS_PROBE_TIMEOUT):
        self.age_oracle = age_oracle if age_oracle is not None else WhoisAgeOracle()
        self.http = http if http is not None else requests.Session()
        self.resolver = resolver or _system_resolver
        self.tls_timeout = tls_timeout

    def _head(self, hostname: str) -> Optional[bool]:
        try:
            resp = self.http.head(f"https://{hostname}", timeout=self.tls_timeout,
                                  allow_redirects=False)
        except requests.exceptions.Timeout:
            # ConnectTimeout is also a ConnectionError, so this check comes first
            return None
        except requests.exceptions.ConnectionError as e:
            if _is_name_resolution_error(e):
                # no address to connect to; DNS already accounts for it
                return None
            logger.debug("TLS probe connection failed for %s: %s", hostname, e)
            return False
        except requests.exceptions.RequestException as e:
            logger.debug("TLS probe inconclusive for %s: %s", hostname, e)
            return None
        return resp.status_code < 400

    async def probe_tls(self, hostname: str) -> Optional[bool]:
        """True/False when HTTPS is (un)available, None when it cannot be told."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(self._head, hostname),
                                          timeout=self.tls_timeout)
        except asyncio.TimeoutError:
            return None

    async def estimate_age(self, hostname: str) -> Optional[int]:
        try:
            age = await asyncio.to_thread(self.age_oracle, hostname)
        except Exception as e:
            logger.info("age oracle failed for %s: %s", hostname, e)
            return None
        return None if age is None else max(0, int(age))

    async def resolves(self, hostname: str) -> bool:
        try:
            return await self.resolver(hostname)
        except Exception as e:
            logger.debug("resolver error for %s: %s", hostname, e)
            return False

    async def analyze(self, hostname: str) -> Tuple[AnalysisSignal, DomainFacts]:
        if not hostname:
            raise ValueError("URL has no hostname")
        resolvable, has_tls, age_days = await asyncio.gather(
            self.resolves(hostname),
            self.probe_tls(hostname),
            self.estimate_age(hostname),
        )

        score = 0
        indicators = []
        if not resolvable:
            score += WEIGHT_NO_DNS
            indicators.append("Domain does not resolve to an IP address")
        if has_tls is False:
            score += WEIGHT_NO_TLS
            indicators.append("No SSL/TLS support")
        if age_days is not None and age_days < NEW_DOMAIN_DAYS:
            score += MAX_AGE_PENALTY - min(age_days, MAX_AGE_PENALTY)
            indicators.append(f"Recently registered domain ({age_days} days old)")

        facts = DomainFacts(resolvable=resolvable, has_tls=has_tls, age_days=age_days)
        return AnalysisSignal(score, indicators), facts


# Quick test harness
if __name__ == "__main__":
    async def _main():
        analyzer = DomainAnalyzer()
        for d in ("google.com", "expired.badssl.com", "does-not-exist.invalid"):
            signal, facts = await analyzer.analyze(d)
            print("=" * 80)
            print("Domain:", d, facts.to_dict())
            print("Score:", signal.score, list(signal.indicators))

    asyncio.run(_main())
