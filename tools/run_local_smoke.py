"""
Quick local smoke test: score a few sample URLs through the full pipeline
(real DNS / HTTPS / WHOIS lookups) and print each verdict.

Run: python3 tools/run_local_smoke.py [url ...]
"""
import asyncio
import json
import logging
import sys

from phishsentry.app.scanner import ScoringPipeline

SAMPLES = [
    "http://example.com",
    "https://wikipedia.org",
    "https://g00gle-verify.tk/login",
    "https://203.0.113.5/",
    "https://github.com",
]


async def run(urls):
    pipeline = ScoringPipeline()
    for url in urls:
        verdict = await pipeline.score(url, caller_id="smoke")
        print("=" * 80)
        print(json.dumps(verdict.to_dict(), indent=2))


def main():
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run(sys.argv[1:] or SAMPLES))


if __name__ == "__main__":
    main()
