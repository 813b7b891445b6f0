import time

import limits.storage.memory
import pytest
import requests

from phishsentry.app.domain_check import DomainAnalyzer
from phishsentry.app.models import AnalysisSignal
from phishsentry.app.redirects import RedirectChainAnalyzer
from phishsentry.app.scoring import ScoreAggregator


class FakeResponse:
    def __init__(self, status_code=200, url=None, history=(), payload=None):
        self.status_code = status_code
        self.url = url
        self.history = list(history)
        self.payload = payload
        self.closed = False

    def close(self):
        self.closed = True

    def json(self):
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeHTTP:
    """Stands in for requests.Session; each result is a response or an exception."""

    def __init__(self, head=None, get=None, post=None):
        self.results = {"head": head, "get": get, "post": post}
        self.calls = []

    def _answer(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        result = self.results[method]
        if callable(result):
            result = result(url)
        if isinstance(result, BaseException):
            raise result
        return result

    def head(self, url, **kwargs):
        return self._answer("head", url, kwargs)

    def get(self, url, **kwargs):
        return self._answer("get", url, kwargs)

    def post(self, url, **kwargs):
        return self._answer("post", url, kwargs)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class ListSink:
    def __init__(self):
        self.records = []

    def emit(self, record):
        self.records.append(record)


class StubAnalyzer:
    def __init__(self, result=None, error=None):
        self.result = result if result is not None else AnalysisSignal.empty()
        self.error = error
        self.calls = 0

    async def analyze(self, *args):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def fixed_resolver(answer):
    async def resolve(hostname):
        return answer
    return resolve


def offline_domain(resolvable=True, head=None, age=None):
    return DomainAnalyzer(
        age_oracle=lambda host: age,
        http=FakeHTTP(head=head if head is not None else FakeResponse(200)),
        resolver=fixed_resolver(resolvable),
    )


def offline_redirect(get=None):
    # default: no redirects, final URL == requested URL
    return RedirectChainAnalyzer(
        http=FakeHTTP(get=get if get is not None else (lambda url: FakeResponse(200, url=url))))


def offline_aggregator(resolvable=True, head=None, age=None, get=None, **kwargs):
    return ScoreAggregator(domain=offline_domain(resolvable, head, age),
                           redirect=offline_redirect(get), **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return ListSink()


class StorageTime:
    """Replaces the ``time`` module seen by limits' in-memory storage."""

    def __init__(self, clock):
        self.clock = clock

    def time(self):
        return self.clock.now / 1000.0

    def __getattr__(self, name):
        return getattr(time, name)


@pytest.fixture
def limiter_clock(clock, monkeypatch):
    clock.now = 1_000_000.0
    monkeypatch.setattr(limits.storage.memory, "time", StorageTime(clock))
    return clock
