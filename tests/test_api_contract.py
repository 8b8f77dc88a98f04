import json

import httpx
import pytest
from fastapi.testclient import TestClient

from partlookup import api, config
from partlookup.api import app
from partlookup.pipeline import build_orchestrator
from partlookup.resilience import RetryPolicy
from partlookup.selection import TOOL_NAME

client = TestClient(app)

GRAYBAR_PAGE = '<div class="results"><div data-product-sku="12345">12 AWG THHN</div></div>'


class Collaborators:
    """Mock transports for search, live vendor pages and the LLM; records every call."""

    def __init__(self):
        self.calls = []

    def search(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(("search", request.url.path))
        if request.url.path.endswith("-corrections/search"):
            return httpx.Response(200, json={"result": {"hits": []}})
        return httpx.Response(200, json={"result": {"hits": [
            {"_id": "r1", "_score": 0.82,
             "fields": {"part_number": "12345", "description": "12 AWG THHN copper wire 500ft"}},
            {"_id": "r2", "_score": 0.74,
             "fields": {"part_number": "67890", "description": "14 AWG THHN copper wire 500ft"}},
        ]}})

    def scrape(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(("scrape", str(request.url)))
        return httpx.Response(200, text=GRAYBAR_PAGE)

    def llm(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(("llm", request.url.path))
        args = {"vendorPartNumber": "12345", "explanation": "Matches gauge, insulation and material."}
        return httpx.Response(200, json={"choices": [{"message": {"tool_calls": [
            {"id": "c1", "type": "function", "function": {"name": TOOL_NAME, "arguments": json.dumps(args)}},
        ]}}]})

    def orchestrator(self):
        return build_orchestrator(
            search_client=httpx.Client(transport=httpx.MockTransport(self.search)),
            scrape_client=httpx.Client(transport=httpx.MockTransport(self.scrape)),
            llm_client=httpx.Client(transport=httpx.MockTransport(self.llm)),
            retry_policy=RetryPolicy(max_attempts=2, base_delay=0.0),
        )


@pytest.fixture
def collaborators(monkeypatch):
    fake = Collaborators()
    orch = fake.orchestrator()
    monkeypatch.setattr("partlookup.api.get_orchestrator", lambda: orch)
    return fake


def test_health_endpoint():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}


@pytest.mark.parametrize(
    "body, message",
    [
        ({"descriptions": []}, "No descriptions provided."),
        ({}, "No descriptions provided."),
        ({"descriptions": "12 AWG wire"}, "array"),
        ({"descriptions": ["ok", 5]}, "strings"),
        ({"descriptions": ["ok", "  "]}, "blank"),
    ],
)
def test_invalid_descriptions_are_rejected_without_external_calls(collaborators, body, message):
    resp = client.post("/part-numbers", json=body)
    assert resp.status_code == 400
    assert message in resp.json()["error"]
    assert collaborators.calls == []


def test_non_object_body_is_rejected(collaborators):
    resp = client.post("/part-numbers", json=["12 AWG wire"])
    assert resp.status_code == 400
    assert "error" in resp.json()
    assert collaborators.calls == []


def test_unknown_vendor_is_rejected(collaborators):
    resp = client.post("/part-numbers", json={"descriptions": ["wire"], "vendor": "acme"})
    assert resp.status_code == 400
    assert "Unknown vendor" in resp.json()["error"]
    assert collaborators.calls == []


@pytest.mark.parametrize("path", ["/part-numbers", "/part-numbers/stream"])
def test_preflight_returns_204(path):
    resp = client.options(path)
    assert resp.status_code == 204
    assert resp.content == b""
    assert resp.headers["access-control-allow-origin"] == "*"
    assert "POST" in resp.headers["access-control-allow-methods"]


def test_browser_preflight_also_returns_204():
    resp = client.options(
        "/part-numbers",
        headers={"Origin": "https://rfq.example.com", "Access-Control-Request-Method": "POST"},
    )
    assert resp.status_code == 204


def test_unsupported_methods_return_405():
    assert client.get("/part-numbers").status_code == 405
    assert client.put("/part-numbers", json={}).status_code == 405
    assert client.post("/part-numbers/stream").status_code == 405


def test_end_to_end_graybar_lookup(collaborators):
    resp = client.post(
        "/part-numbers",
        json={"descriptions": ["12 AWG THHN Copper Wire"], "vendor": "graybar"},
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "vendors": [
            {
                "vendor": "graybar",
                "vendorDisplayName": "Graybar",
                "partNumbers": [
                    {
                        "vendor": "graybar",
                        "vendorDisplayName": "Graybar",
                        "description": "12 AWG THHN Copper Wire",
                        "partNumber": "12345",
                        "explanation": "Matches gauge, insulation and material.",
                    }
                ],
            }
        ]
    }
    kinds = [k for k, _ in collaborators.calls]
    assert kinds == ["search", "search", "scrape", "llm"]
    assert collaborators.calls[0][1] == "/records/namespaces/graybar-corrections/search"


def test_vendor_key_is_case_insensitive(collaborators):
    resp = client.post("/part-numbers", json={"descriptions": ["wire"], "vendor": "GrayBar"})
    assert resp.status_code == 200
    assert [v["vendor"] for v in resp.json()["vendors"]] == ["graybar"]


def test_all_vendors_when_none_requested(collaborators):
    resp = client.post("/part-numbers", json={"descriptions": ["wire", "tape"]})
    body = resp.json()
    assert [v["vendor"] for v in body["vendors"]] == ["graybar", "platt", "wesco"]
    for group in body["vendors"]:
        assert [p["description"] for p in group["partNumbers"]] == ["wire", "tape"]


def _frames(text):
    return [json.loads(chunk[len("data: "):]) for chunk in text.split("\n\n") if chunk.startswith("data: ")]


def test_stream_endpoint_emits_progress_and_terminal_frames(collaborators):
    resp = client.get(
        "/part-numbers/stream",
        params={"descriptions": json.dumps(["12 AWG THHN Copper Wire", "duct tape"]), "vendor": "graybar"},
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")

    frames = [f for f in _frames(resp.text) if f]
    assert [f["progress"] for f in frames[:2]] == [50.0, 100.0]
    assert frames[0]["vendors"][0]["partNumber"] == "12345"
    assert frames[-1]["complete"] is True
    assert len(frames[-1]["results"][0]["partNumbers"]) == 2


@pytest.mark.parametrize(
    "params",
    [
        {},
        {"descriptions": "not json"},
        {"descriptions": json.dumps("a string")},
        {"descriptions": json.dumps([])},
        {"descriptions": json.dumps(["wire"]), "vendor": "acme"},
    ],
)
def test_stream_endpoint_validates_before_streaming(collaborators, params):
    resp = client.get("/part-numbers/stream", params=params)
    assert resp.status_code == 400
    assert "error" in resp.json()
    assert collaborators.calls == []


def test_main_serves_the_app_with_uvicorn(monkeypatch):
    seen = {}
    monkeypatch.setattr(api.uvicorn, "run", lambda target, **kw: seen.update(target=target, **kw))
    api.main()
    assert seen["target"] is app
    assert seen["host"] == config.API_HOST
    assert seen["port"] == config.API_PORT
