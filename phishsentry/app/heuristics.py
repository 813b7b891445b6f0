"""
heuristics.py

Lexical URL heuristics (no network access).

Public functions:
    normalize_scan_url(url: str) -> str
    hostname_of(url: str) -> str
    analyze_structure(url: str) -> AnalysisSignal

Example:
    >>> analyze_structure("https://203.0.113.5/").score
    25
"""

import re
from urllib.parse import urlparse

from .models import AnalysisSignal

# Configuration: rule thresholds and weights
SUSPICIOUS_TLDS = ('tk', 'ml', 'ga', 'cf', 'gq', 'cc', 'top', 'xyz')
SUSPICIOUS_SUBDOMAIN_DEPTH = 3  # > 3 => suspicious
MAX_HOSTNAME_LENGTH = 30
MAX_PERCENT_ENCODED = 3
MAX_HYPHENS = 2

WEIGHT_IP_LITERAL = 25
WEIGHT_MANY_SUBDOMAINS = 10
WEIGHT_SUSPICIOUS_TLD = 15
WEIGHT_LONG_HOSTNAME = 10
WEIGHT_ENCODING_DENSITY = 15
WEIGHT_HYPHENS = 10

PERCENT_ENCODED_RE = re.compile(r'%[0-9A-Fa-f]{2}')
CONTROL_CHARS_RE = re.compile(r'[\x00-\x1f\x7f]')
SCRIPT_SCHEME_RE = re.compile(r'^(?:javascript|data|vbscript):', re.IGNORECASE)


def _ensure_scheme(url: str) -> str:
    """Ensure URL has a scheme so urlparse works predictably."""
    if not re.match(r'^[a-zA-Z][a-zA-Z\d+.-]*://', url):
        return 'http://' + url
    return url


def normalize_scan_url(url: str) -> str:
    """Strip control characters and default a missing scheme to http://."""
    cleaned = CONTROL_CHARS_RE.sub('', url or '').strip()
    if not cleaned:
        raise ValueError("empty url")
    # scripting URLs keep their scheme so they parse without a hostname
    if SCRIPT_SCHEME_RE.match(cleaned):
        return cleaned
    return _ensure_scheme(cleaned)


def hostname_of(url: str) -> str:
    """Lower-cased hostname without port, credentials or trailing dot ('' if none)."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return ''
    return (host or '').rstrip('.')


def _is_ip_literal(host: str) -> bool:
    """Return True if host is a dotted IPv4 address."""
    parts = host.split('.')
    return len(parts) == 4 and all(p.isdigit() and 0 <= int(p) <= 255 for p in parts)


def _subdomain_depth(host: str) -> int:
    """Labels left of the registrable domain (last two labels treated as domain+TLD)."""
    return max(0, len(host.split('.')) - 2)


def analyze_structure(url: str) -> AnalysisSignal:
    """
    Score lexical properties of a URL. Rules are additive and the sum is not capped.

    | rule                        | weight |
    |-----------------------------|--------|
    | IPv4 literal host           | 25     |
    | more than 3 subdomain labels| 10     |
    | suspicious TLD              | 15     |
    | hostname longer than 30     | 10     |
    | > 3 percent-encoded octets  | 15     |
    | > 2 hyphens in hostname     | 10     |
    """
    host = hostname_of(url)
    if not host:
        return AnalysisSignal.failed("Malformed URL: no hostname")

    score = 0
    indicators = []

    # 1) IP literal
    if _is_ip_literal(host):
        score += WEIGHT_IP_LITERAL
        indicators.append("Uses IP address instead of domain name")

    # 2) Subdomain depth
    depth = _subdomain_depth(host)
    if depth > SUSPICIOUS_SUBDOMAIN_DEPTH:
        score += WEIGHT_MANY_SUBDOMAINS
        indicators.append(f"Excessive subdomain count ({depth})")

    # 3) TLD
    tld = host.rsplit('.', 1)[-1]
    if tld in SUSPICIOUS_TLDS:
        score += WEIGHT_SUSPICIOUS_TLD
        indicators.append(f"Suspicious TLD (.{tld})")

    # 4) Hostname length
    if len(host) > MAX_HOSTNAME_LENGTH:
        score += WEIGHT_LONG_HOSTNAME
        indicators.append(f"Unusually long domain name ({len(host)} chars)")

    # 5) Encoding density in path
    encoded = len(PERCENT_ENCODED_RE.findall(urlparse(url).path))
    if encoded > MAX_PERCENT_ENCODED:
        score += WEIGHT_ENCODING_DENSITY
        indicators.append(f"High number of URL encoded characters ({encoded})")

    # 6) Hyphens
    hyphens = host.count('-')
    if hyphens > MAX_HYPHENS:
        score += WEIGHT_HYPHENS
        indicators.append(f"Multiple hyphens in domain name ({hyphens})")

    return AnalysisSignal(score, indicators)


class StructureAnalyzer:
    async def analyze(self, url: str) -> AnalysisSignal:
        return analyze_structure(url)


# Simple CLI / quick tests
if __name__ == "__main__":
    test_urls = [
        "http://example.com",
        "https://203.0.113.5/",
        "https://g00gle-verify.tk/login",
        "http://a.b.c.d.secure-login-verify-account.example.xyz/%2e%2e%2f%2e%2e%2f",
    ]
    for u in test_urls:
        res = analyze_structure(normalize_scan_url(u))
        print("=" * 80)
        print("URL:", u)
        print("Score:", res.score)
        for ind in res.indicators:
            print("-", ind)
