# feed_updater.py
"""
Builds the local phishing index that threat_intel.FeedIndexLookup consults.

PhishTank and OpenPhish are fetched, every listed URL is normalized and the
result is written to ``feeds/index.json`` with two tables:

    urls:  normalized URL -> record   (exact listing)
    hosts: hostname       -> record   (any URL on a listed host)

A record is what a ThreatFeedResult is made from: the feed name, a threat type
and, for PhishTank, the impersonated target. Hosts that belong to the brands
in brands.BRAND_VARIANTS are kept out of the host table; phishing pages hosted
on e.g. sites.google.com must not flag all of google.com.

Run:
    python -m phishsentry.feed_updater
"""

import json
import logging
import os
import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

import requests

from .app.brands import BRAND_VARIANTS
from .app.models import ThreatFeedResult

# Config
FEED_DIR = os.getenv("PHISHSENTRY_FEED_DIR", "feeds")
INDEX_FILE = os.path.join(FEED_DIR, "index.json")
PHISHTANK_URL = "http://data.phishtank.com/data/online-valid.json"
OPENPHISH_URL = "https://openphish.com/feed.txt"
DOWNLOAD_TIMEOUT = 30  # seconds

logger = logging.getLogger("phishsentry.feed_updater")

# (url, impersonated target or None)
Listing = Tuple[str, Optional[str]]


def normalize_url(url: str) -> str:
    """Lowercase scheme/host, drop fragment and trailing slash, keep the query."""
    url = (url or "").strip()
    try:
        parsed = urlparse(url if "://" in url else "http://" + url)
    except ValueError:
        return url.lower()
    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    path = parsed.path.rstrip("/")
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{scheme}://{netloc}{path}{query}"


def listed_host(url: str) -> str:
    try:
        host = urlparse(url if "://" in url else "http://" + url).hostname or ""
    except ValueError:
        return ""
    return host.rstrip(".")


def is_brand_property(host: str) -> bool:
    return any(host == f"{brand}.com" or host.endswith(f".{brand}.com")
               for brand, _variants in BRAND_VARIANTS)


def parse_phishtank(resp) -> List[Listing]:
    entries = resp.json()
    # the feed is normally a list; tolerate a wrapping object
    if isinstance(entries, dict):
        entries = next((v for v in entries.values() if isinstance(v, list)), [])
    listings = []
    for entry in entries:
        url = entry.get("url") or entry.get("phish_url")
        if url:
            target = entry.get("target")
            listings.append((url, None if target in (None, "", "Other") else target))
    return listings


def parse_openphish(resp) -> List[Listing]:
    return [(line.strip(), None) for line in resp.text.splitlines() if line.strip()]


# Declared order is priority order: an earlier feed's record wins on duplicates.
FEEDS: Dict[str, Tuple[str, Callable]] = {
    "PhishTank": (PHISHTANK_URL, parse_phishtank),
    "OpenPhish": (OPENPHISH_URL, parse_openphish),
}


def fetch_feed(name: str, http=requests) -> List[Listing]:
    url, parse = FEEDS[name]
    resp = http.get(url, timeout=DOWNLOAD_TIMEOUT)
    resp.raise_for_status()
    listings = parse(resp)
    logger.info("%s: %d listings", name, len(listings))
    return listings


def feed_record(feed: str, target: Optional[str]) -> Dict[str, Optional[str]]:
    return {"feed": feed, "threat_type": "PHISHING", "target": target}


def build_index(listings: Iterable[Tuple[str, Iterable[Listing]]]) -> Dict[str, Dict]:
    """``listings`` is (feed name, listings) pairs in priority order."""
    urls: Dict[str, Dict] = {}
    hosts: Dict[str, Dict] = {}
    for feed, entries in listings:
        for url, target in entries:
            record = feed_record(feed, target)
            urls.setdefault(normalize_url(url), record)
            host = listed_host(url)
            if host and not is_brand_property(host):
                hosts.setdefault(host, record)
    return {"urls": urls, "hosts": hosts}


def to_threat_result(record: Dict, scope: str) -> ThreatFeedResult:
    detail = record.get("feed", "feed")
    if record.get("target"):
        detail += f": {record['target']}"
    if scope == "host":
        detail += ", listed host"
    return ThreatFeedResult(is_safe=False,
                            threat_type=f"{record.get('threat_type', 'PHISHING')} ({detail})")


def match(index: Dict[str, Dict], url: str) -> Optional[ThreatFeedResult]:
    """Exact URL listing first, then a listing anywhere on the same host."""
    record = index.get("urls", {}).get(normalize_url(url))
    if record:
        return to_threat_result(record, "url")
    host = listed_host(url)
    record = index.get("hosts", {}).get(host) if host else None
    if record:
        return to_threat_result(record, "host")
    return None


def save_index(index: Dict[str, Dict], index_file: str = INDEX_FILE) -> None:
    os.makedirs(os.path.dirname(index_file) or ".", exist_ok=True)
    tmp = index_file + ".tmp"
    with open(tmp, "w", encoding="utf-8") as fh:
        json.dump(dict(index, updated_at=int(time.time())), fh)
    os.replace(tmp, index_file)
    logger.info("Wrote %s (urls=%d, hosts=%d)", index_file,
                len(index.get("urls", {})), len(index.get("hosts", {})))


def load_index(index_file: Optional[str] = None) -> Dict[str, Dict]:
    index_file = index_file or INDEX_FILE
    if not os.path.exists(index_file):
        return {}
    try:
        with open(index_file, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as e:
        logger.error("Unreadable feed index %s: %s", index_file, e)
        return {}
    if not isinstance(data, dict):
        logger.error("Feed index %s is not an object", index_file)
        return {}
    return {"urls": data.get("urls", {}), "hosts": data.get("hosts", {})}


def main():
    logging.basicConfig(level=logging.INFO)
    fetched = []
    for name in FEEDS:
        try:
            fetched.append((name, fetch_feed(name)))
        except (requests.exceptions.RequestException, ValueError):
            logger.exception("Failed to fetch %s, skipping it", name)
    if not fetched:
        logger.error("No feed could be fetched; keeping the existing index")
        return
    save_index(build_index(fetched), INDEX_FILE)


if __name__ == "__main__":
    main()
