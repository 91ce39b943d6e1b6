import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
import main  # noqa: E402

VENDOR_KEYS = [
    "GROQ_API_KEY",
    "ANTHROPIC_API_KEY",
    "ELEVENLABS_API_KEY",
    "VAPI_PRIVATE_KEY",
    "VAPI_PUBLIC_KEY",
    "COQUI_API_KEY",
]


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b"", text=""):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.content = content
        self.text = text

    def json(self):
        return self._payload


class FakeVendor:
    """Routes upstream calls by (method, url fragment); unmatched calls get a 404."""

    def __init__(self):
        self.routes = []
        self.requests = []

    def on(self, method, fragment, status_code=200, payload=None, content=b"", text="", error=None):
        response = error if error is not None else FakeResponse(status_code, payload, content, text)
        self.routes.append((method.upper(), fragment, response))
        return self

    def calls(self, method, fragment):
        return [r for r in self.requests if r["method"] == method.upper() and fragment in r["url"]]

    def dispatch(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        for m, fragment, response in self.routes:
            if m == method and fragment in url:
                if isinstance(response, Exception):
                    raise response
                return response
        return FakeResponse(404, text="not found")


class _FakeClient:
    def __init__(self, vendor):
        self.vendor = vendor

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def get(self, url, **kwargs):
        return self.vendor.dispatch("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self.vendor.dispatch("POST", url, **kwargs)

    def delete(self, url, **kwargs):
        return self.vendor.dispatch("DELETE", url, **kwargs)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in VENDOR_KEYS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(main, "_cleanup_delay", 0)
    main._voice_models.clear()
    yield
    main._voice_models.clear()


@pytest.fixture
def vendor(monkeypatch):
    fake = FakeVendor()
    monkeypatch.setattr(main, "httpx", type("X", (), {"Client": lambda *a, **k: _FakeClient(fake)}))
    return fake
