import json

import httpx
import pytest

from partlookup import config
from partlookup.errors import MalformedSelection, RetryExhausted
from partlookup.pipeline_types import Candidate
from partlookup.resilience import RetryPolicy
from partlookup.selection import (
    NO_CANDIDATES_NOTE,
    TOOL_NAME,
    SelectionEngine,
    build_prompt,
    build_request,
    parse_selection,
    realtime_emphasis,
)

FAST = RetryPolicy(max_attempts=3, base_delay=0.0)

CANDIDATES = [
    Candidate("12345", "12 AWG THHN copper wire, 500ft reel", 0.91, realtime_rank=1),
    Candidate("67890", "14 AWG THHN copper wire, 500ft reel", 0.88),
]


def tool_call_body(args, name=TOOL_NAME):
    return {"choices": [{"message": {"tool_calls": [
        {"id": "call_1", "type": "function", "function": {"name": name, "arguments": args}},
    ]}}]}


def test_prompt_is_deterministic_and_lists_candidates():
    a = build_prompt("12 AWG THHN Copper Wire", CANDIDATES, 0.7, True, "Graybar")
    b = build_prompt("12 AWG THHN Copper Wire", CANDIDATES, 0.7, True, "Graybar")
    assert a == b
    assert "1. Part Number: 12345" in a
    assert "Realtime Rank: 1" in a
    assert "2. Part Number: 67890" in a
    assert "Realtime Rank" not in a.split("2. Part Number")[1].split("\n")[0]
    assert "from Graybar" in a


def test_realtime_emphasis_bands():
    assert realtime_emphasis(0.7, True).startswith("HIGH")
    assert realtime_emphasis(0.4, True).startswith("MEDIUM")
    assert realtime_emphasis(0.1, True).startswith("LOW")
    assert "not available" in realtime_emphasis(0.7, False)
    assert "not used" in realtime_emphasis(0.0, False)


def test_request_forces_the_tool_call():
    payload = build_request("prompt", model="ft:gpt-4o-mini:parts")
    assert payload["model"] == "ft:gpt-4o-mini:parts"
    assert payload["temperature"] == 0
    assert payload["tool_choice"] == {"type": "function", "function": {"name": TOOL_NAME}}
    params = payload["tools"][0]["function"]["parameters"]
    assert params["required"] == ["vendorPartNumber", "explanation"]


def test_parse_selection_reads_tool_arguments():
    body = tool_call_body(json.dumps({"vendorPartNumber": " 12345 ", "explanation": "Exact gauge."}))
    sel = parse_selection(body)
    assert sel.part_number == "12345"
    assert sel.explanation == "Exact gauge."


@pytest.mark.parametrize(
    "body",
    [
        {"choices": []},
        {"choices": [{"message": None}]},
        {"choices": [{"message": {"tool_calls": ["not a call"]}}]},
        {"choices": [{"message": {"content": "I think 12345"}}]},
        tool_call_body(json.dumps({"vendorPartNumber": "1", "explanation": "x"}), name="other_tool"),
        tool_call_body("{not json"),
        tool_call_body(json.dumps({"explanation": "missing part"})),
        tool_call_body(json.dumps({"vendorPartNumber": "  ", "explanation": "blank"})),
    ],
)
def test_parse_selection_rejects_malformed_responses(body):
    with pytest.raises(MalformedSelection):
        parse_selection(body)


def test_parse_selection_rejects_two_calls():
    call = {"function": {"name": TOOL_NAME, "arguments": json.dumps({"vendorPartNumber": "1", "explanation": ""})}}
    with pytest.raises(MalformedSelection):
        parse_selection({"choices": [{"message": {"tool_calls": [call, call]}}]})


def test_parse_selection_rejects_an_extra_tool_call():
    call = {"function": {"name": TOOL_NAME, "arguments": json.dumps({"vendorPartNumber": "1", "explanation": ""})}}
    other = {"function": {"name": "lookup_stock", "arguments": "{}"}}
    with pytest.raises(MalformedSelection):
        parse_selection({"choices": [{"message": {"tool_calls": [call, other]}}]})


def _engine(handler):
    return SelectionEngine(
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        url="https://llm.test/v1/chat/completions",
        model="test-model",
        retry_policy=FAST,
    )


def test_empty_candidates_return_sentinel_without_calling_llm():
    calls = []
    engine = _engine(lambda r: calls.append(r) or httpx.Response(500))
    sel = engine.select("12 AWG THHN Copper Wire", [])
    assert sel.part_number == config.NOT_AVAILABLE
    assert sel.explanation == NO_CANDIDATES_NOTE
    assert calls == []


def test_engine_posts_prompt_and_returns_selection():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=tool_call_body(
            json.dumps({"vendorPartNumber": "12345", "explanation": "Matches gauge and insulation."})
        ))

    sel = _engine(handler).select("12 AWG THHN Copper Wire", CANDIDATES, 0.7, True, "Graybar")

    assert sel.part_number == "12345"
    assert seen["body"]["model"] == "test-model"
    assert "12 AWG THHN Copper Wire" in seen["body"]["messages"][1]["content"]


def test_engine_surfaces_rate_limit_exhaustion():
    with pytest.raises(RetryExhausted):
        _engine(lambda r: httpx.Response(429)).select("wire", CANDIDATES)
