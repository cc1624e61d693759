"""
Тесты UTM-атрибуции.
"""

from urllib.parse import parse_qs, urlsplit

from src.attribution import (
    STORAGE_KEY,
    build_checkout_url,
    capture_attribution,
    ensure_attribution,
    extract_attribution,
    load_attribution,
)
from src.feature_flags import flags


class TestExtract:

    def test_known_params_only(self):
        url = "https://q.example/?utm_source=fb&utm_campaign=c1&fbclid=abc&foo=bar"
        assert extract_attribution(url) == {"utm_source": "fb", "utm_campaign": "c1", "fbclid": "abc"}

    def test_blank_values_dropped(self):
        assert extract_attribution("https://q.example/?utm_source=&gclid=g") == {"gclid": "g"}


class TestCapture:

    def test_capture_persists(self, storage):
        capture_attribution("https://q.example/?utm_source=x&fbclid=y", storage)
        assert storage.get_json(STORAGE_KEY) == {"utm_source": "x", "fbclid": "y"}

    def test_visit_without_params_keeps_previous(self, storage):
        capture_attribution("https://q.example/?utm_source=x", storage)
        assert capture_attribution("https://q.example/", storage) == {}
        assert load_attribution(storage) == {"utm_source": "x"}

    def test_flag_off(self, storage):
        flags.set_override("attribution_capture", False)
        assert capture_attribution("https://q.example/?utm_source=x", storage) == {}
        assert storage.get(STORAGE_KEY) is None

    def test_malformed_stored_value(self, storage):
        storage.set(STORAGE_KEY, "[1, 2]")
        assert load_attribution(storage) == {}


class TestPropagation:

    def test_ensure_on_bare_url(self, storage):
        storage.set_json(STORAGE_KEY, {"utm_source": "x"})
        assert ensure_attribution("https://q.example/chat", storage) == "https://q.example/chat?utm_source=x"

    def test_ensure_keeps_existing_query(self, storage):
        storage.set_json(STORAGE_KEY, {"utm_source": "x"})
        url = "https://q.example/chat?ref=1"
        assert ensure_attribution(url, storage) == url

    def test_checkout_url_merges(self):
        url = build_checkout_url("https://pay.example/checkout?off=abc", {"utm_source": "x", "fbclid": "y"})
        query = parse_qs(urlsplit(url).query)
        assert query == {"off": ["abc"], "utm_source": ["x"], "fbclid": ["y"]}

    def test_checkout_without_attribution(self):
        assert build_checkout_url("https://pay.example/c", {}) == "https://pay.example/c"
