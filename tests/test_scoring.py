import asyncio

import pytest
import requests

from phishsentry.app.models import AnalysisSignal, DomainFacts, ThreatFeedResult
from phishsentry.app.scoring import ScoreAggregator, clamp_score
from conftest import FakeResponse, StubAnalyzer, offline_aggregator


def aggregate(aggregator, url, **kwargs):
    return asyncio.run(aggregator.aggregate(url, **kwargs))


def stubbed(structure=0, **kwargs):
    defaults = dict(
        structure=StubAnalyzer(AnalysisSignal(structure)),
        domain=StubAnalyzer((AnalysisSignal.empty(), DomainFacts(True, True, 1000))),
        brand=StubAnalyzer(),
        redirect=StubAnalyzer((AnalysisSignal.empty(), 0)),
    )
    defaults.update(kwargs)
    return ScoreAggregator(**defaults)


def test_typosquat_on_suspicious_tld_is_phishing():
    aggregator = offline_aggregator(resolvable=False,
                                    head=requests.exceptions.ConnectionError("refused"),
                                    get=requests.exceptions.ConnectionError("refused"))
    verdict = aggregate(aggregator, "https://g00gle-verify.tk/login")
    assert verdict.is_phishing
    assert verdict.total_score == 15 + 30 + 20 + 25
    assert "Suspicious TLD (.tk)" in verdict.indicators
    assert 'Potential typosquatting of "google" (g00gle)' in verdict.indicators
    assert verdict.domain_facts == DomainFacts(resolvable=False, has_tls=False, age_days=None)


def test_ip_literal_alone_is_not_phishing():
    aggregator = offline_aggregator(head=requests.exceptions.ReadTimeout("slow"))
    verdict = aggregate(aggregator, "https://203.0.113.5/")
    assert verdict.total_score == 25
    assert not verdict.is_phishing
    assert verdict.indicators == ("Uses IP address instead of domain name",)
    assert verdict.domain_facts.has_tls is None
    assert verdict.threat_feed_flag is None


def test_threat_feed_forces_phishing():
    aggregator = offline_aggregator(age=5000)
    verdict = aggregate(aggregator, "https://example.com",
                        threat_result=ThreatFeedResult(False, "MALWARE"))
    assert verdict.total_score == 100
    assert verdict.is_phishing
    assert verdict.threat_feed_flag is True
    assert verdict.indicators == ("Threat feed detection: MALWARE",)


def test_clean_url():
    verdict = aggregate(offline_aggregator(age=5000), "https://example.com",
                        threat_result=ThreatFeedResult(True))
    assert verdict.total_score == 0
    assert verdict.threat_feed_flag is False
    assert verdict.to_dict()["domain_facts"] == {"resolvable": True, "has_tls": True,
                                                "age_days": 5000}


@pytest.mark.parametrize("score,phishing", [(0, False), (69, False), (70, True), (100, True)])
def test_threshold_boundary(score, phishing):
    verdict = aggregate(stubbed(structure=score), "https://example.com")
    assert verdict.total_score == score
    assert verdict.is_phishing is phishing


def test_total_is_clamped():
    aggregator = stubbed(structure=90, brand=StubAnalyzer(AnalysisSignal(50)))
    verdict = aggregate(aggregator, "https://example.com",
                        threat_result=ThreatFeedResult(False, "MALWARE"))
    assert verdict.total_score == 100
    assert clamp_score(-5) == 0


def test_failing_analyzer_degrades_to_zero():
    aggregator = stubbed(structure=30, domain=StubAnalyzer(error=RuntimeError("socket exploded")))
    verdict = aggregate(aggregator, "https://example.com")
    assert verdict.total_score == 30
    assert "Domain analysis failed: socket exploded" in verdict.indicators
    assert verdict.domain_facts == DomainFacts()


def test_slow_analyzer_times_out():
    class Hanging:
        async def analyze(self, url):
            await asyncio.sleep(10)

    aggregator = stubbed(structure=10, redirect=Hanging(), analyzer_timeout=0.05)
    verdict = aggregate(aggregator, "https://example.com")
    assert verdict.total_score == 10
    assert verdict.redirect_count == 0
    assert "Redirect analysis timed out" in verdict.indicators


def test_redirect_count_is_reported():
    aggregator = offline_aggregator(
        age=5000,
        get=lambda url: FakeResponse(200, url=url, history=[FakeResponse(302)] * 4))
    verdict = aggregate(aggregator, "https://example.com/")
    assert verdict.redirect_count == 4
    assert verdict.total_score == 20


def test_threat_lookup_used_when_no_result_given():
    seen = []

    def lookup(url):
        seen.append(url)
        return ThreatFeedResult(False, "SOCIAL_ENGINEERING")

    verdict = aggregate(stubbed(), "https://example.com", threat_lookup=lookup)
    assert seen == ["https://example.com"]
    assert verdict.is_phishing
    assert verdict.threat_feed_flag is True


def test_supplied_safe_result_cannot_hide_a_lookup_threat():
    seen = []

    def lookup(url):
        seen.append(url)
        return ThreatFeedResult(False, "SOCIAL_ENGINEERING")

    verdict = aggregate(stubbed(), "https://example.com",
                        threat_result=ThreatFeedResult(True), threat_lookup=lookup)
    assert seen == ["https://example.com"]
    assert verdict.total_score == 100
    assert verdict.is_phishing
    assert verdict.threat_feed_flag is True
    assert verdict.indicators == ("Threat feed detection: SOCIAL_ENGINEERING",)


@pytest.mark.parametrize("looked_up", [None, ThreatFeedResult(True)])
def test_supplied_threat_counts_when_lookup_is_clean(looked_up):
    verdict = aggregate(stubbed(), "https://example.com",
                        threat_result=ThreatFeedResult(False, "MALWARE"),
                        threat_lookup=lambda url: looked_up)
    assert verdict.total_score == 100
    assert verdict.indicators == ("Threat feed detection: MALWARE",)


def test_both_safe_is_reported_checked():
    verdict = aggregate(stubbed(), "https://example.com",
                        threat_result=ThreatFeedResult(True),
                        threat_lookup=lambda url: None)
    assert (verdict.total_score, verdict.threat_feed_flag) == (0, False)


def test_failing_lookup_is_degraded():
    def lookup(url):
        raise ConnectionError("feed down")
    verdict = aggregate(stubbed(), "https://example.com", threat_lookup=lookup)
    assert verdict.total_score == 0
    assert verdict.threat_feed_flag is None
    assert verdict.indicators == ("Threat feed lookup failed: feed down",)

    # the supplied result still counts when the lookup is down
    verdict = aggregate(stubbed(), "https://example.com", threat_lookup=lookup,
                        threat_result=ThreatFeedResult(False, "MALWARE"))
    assert verdict.total_score == 100
    assert "Threat feed lookup failed: feed down" in verdict.indicators


def test_rescoring_is_stable():
    aggregator = offline_aggregator(age=400)
    first = aggregate(aggregator, "http://a.b.c.d.example.xyz/")
    second = aggregate(aggregator, "http://a.b.c.d.example.xyz/")
    assert first == second
    assert first.total_score == 25
