from phishsentry import feed_updater
from phishsentry.app.models import ThreatFeedResult
from conftest import FakeHTTP, FakeResponse


class TextResponse(FakeResponse):
    def __init__(self, text):
        super().__init__(200)
        self.text = text


def sample_index():
    return feed_updater.build_index([
        ("PhishTank", [("http://Dup.test/a/", "PayPal"), ("http://pt.test/", None)]),
        ("OpenPhish", [("http://dup.test/a", None), ("http://op.test/x", None),
                       ("https://sites.google.com/view/fake-login", None)]),
    ])


def test_normalize_url():
    assert feed_updater.normalize_url(" HTTP://Example.COM/Path/?a=1#frag ") == \
        "http://example.com/Path?a=1"
    assert feed_updater.normalize_url("example.com/") == "http://example.com"


def test_build_index_prefers_earlier_feed():
    index = sample_index()
    assert index["urls"]["http://dup.test/a"] == \
        {"feed": "PhishTank", "threat_type": "PHISHING", "target": "PayPal"}
    assert index["urls"]["http://op.test/x"]["feed"] == "OpenPhish"
    assert index["hosts"]["dup.test"]["feed"] == "PhishTank"
    assert sorted(index["hosts"]) == ["dup.test", "op.test", "pt.test"]


def test_brand_hosts_are_not_indexed_as_hosts():
    index = sample_index()
    assert "https://sites.google.com/view/fake-login" in index["urls"]
    assert "sites.google.com" not in index["hosts"]
    assert feed_updater.is_brand_property("paypal.com")
    assert not feed_updater.is_brand_property("paypal.com.evil.test")


def test_match_exact_url_then_host():
    index = sample_index()
    assert feed_updater.match(index, "http://dup.test/a") == \
        ThreatFeedResult(False, "PHISHING (PhishTank: PayPal)")
    assert feed_updater.match(index, "https://op.test/other/page") == \
        ThreatFeedResult(False, "PHISHING (OpenPhish, listed host)")
    assert feed_updater.match(index, "https://sites.google.com/view/other") is None
    assert feed_updater.match(index, "http://clean.test/") is None
    assert feed_updater.match({}, "http://dup.test/a") is None


def test_save_and_load(tmp_path):
    index_file = str(tmp_path / "feeds" / "index.json")
    feed_updater.save_index(sample_index(), index_file)
    assert feed_updater.load_index(index_file) == sample_index()


def test_load_corrupt_index(tmp_path):
    index_file = tmp_path / "index.json"
    index_file.write_text("{not json")
    assert feed_updater.load_index(str(index_file)) == {}
    index_file.write_text("[]")
    assert feed_updater.load_index(str(index_file)) == {}


def test_fetch_phishtank_unwraps_object():
    payload = {"data": [{"url": "http://x.test", "target": "Other"},
                        {"phish_url": "http://y.test", "target": "Netflix"}, {}]}
    http = FakeHTTP(get=FakeResponse(200, payload=payload))
    assert feed_updater.fetch_feed("PhishTank", http) == \
        [("http://x.test", None), ("http://y.test", "Netflix")]
    assert http.calls[0][1] == feed_updater.PHISHTANK_URL


def test_fetch_openphish_skips_blank_lines():
    http = FakeHTTP(get=TextResponse("http://a.test\n\n  http://b.test  \n"))
    assert feed_updater.fetch_feed("OpenPhish", http) == \
        [("http://a.test", None), ("http://b.test", None)]


def test_main_keeps_index_when_every_feed_fails(tmp_path, monkeypatch):
    index_file = str(tmp_path / "index.json")
    feed_updater.save_index(sample_index(), index_file)
    monkeypatch.setattr(feed_updater, "INDEX_FILE", index_file)

    def offline(name, http=None):
        raise feed_updater.requests.exceptions.ConnectionError("offline")

    monkeypatch.setattr(feed_updater, "fetch_feed", offline)
    feed_updater.main()
    assert feed_updater.load_index(index_file) == sample_index()
