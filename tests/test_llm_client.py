import asyncio
import io
import json
from urllib.error import HTTPError, URLError

import pytest

from autodesign.agent.models import Decision, LearnedPatterns
from autodesign.agent.services import DecisionRequest, OutcomeRequest, ServiceError
from autodesign.llm import client as client_module
from autodesign.llm.client import VisionClient, post_json

DECISION_REQUEST = DecisionRequest(
    artifact="QUJD",
    design_goal="japandi living room",
    style_keywords=("japandi", "muted earth tones"),
    history_summary="EDIT Sofa",
    memory=LearnedPatterns(),
    memory_summary="Failure patterns (avoid these): Avoid: REMOVE Rug - blur",
    iteration=2,
)


def _structured(payload: dict[str, object]) -> dict[str, object]:
    return {
        "output": [
            {"content": [{"type": "output_text", "text": json.dumps(payload)}]},
        ]
    }


class FakeResponse(io.BytesIO):
    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *_args: object) -> None:
        self.close()


def test_extract_output_json() -> None:
    parsed = VisionClient._extract_output_json(_structured({"action": "EDIT", "target": "Sofa"}))

    assert parsed == {"action": "EDIT", "target": "Sofa"}


def test_extract_output_json_without_output_raises() -> None:
    with pytest.raises(ServiceError):
        VisionClient._extract_output_json({"id": "resp_1"})


def test_extract_output_json_with_invalid_text_raises() -> None:
    payload = {"output": [{"content": [{"type": "output_text", "text": "{not json"}]}]}

    with pytest.raises(ServiceError):
        VisionClient._extract_output_json(payload)


def test_decision_payload_carries_image_schema_and_memory() -> None:
    client = VisionClient(api_key=None, model="gpt-4.1-mini")

    payload = client._build_decision_payload(DECISION_REQUEST)

    assert payload["model"] == "gpt-4.1-mini"
    assert payload["temperature"] == 0.7
    schema = payload["text"]["format"]["schema"]
    assert schema["properties"]["action"]["enum"] == ["EDIT", "MOVE", "REMOVE", "WAIT"]
    assert "prompt" in schema["required"]
    user_content = payload["input"][1]["content"]
    assert user_content[1] == {"type": "input_image", "image_url": "data:image/jpeg;base64,QUJD"}
    text = user_content[0]["text"]
    assert "japandi living room" in text
    assert "- muted earth tones" in text
    assert "Changes made so far: EDIT Sofa" in text
    assert "Avoid: REMOVE Rug - blur" in text


def test_outcome_payload_describes_attempted_change() -> None:
    client = VisionClient(api_key=None, model="gpt-4.1-mini")
    decision = Decision(3, "EDIT", "Lamp", "Too modern", "Swap for a paper lantern", 0.6, 0.04)

    payload = client._build_outcome_payload(
        OutcomeRequest(
            artifact="REVG",
            decision=decision,
            design_goal="japandi living room",
            style_keywords=(),
        )
    )

    assert payload["temperature"] == 0.3
    assert payload["text"]["format"]["name"] == "design_outcome"
    text = payload["input"][1]["content"][0]["text"]
    assert "- Target: Lamp" in text
    assert "- Style goal: japandi living room" in text


def test_infer_decision_posts_and_parses(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_urlopen(req, timeout):  # type: ignore[no-untyped-def]
        captured["auth"] = req.get_header("Authorization")
        captured["timeout"] = timeout
        captured["body"] = json.loads(req.data.decode("utf-8"))
        body = _structured({"action": "REMOVE", "target": "Rug", "prompt": "Remove the rug"})
        return FakeResponse(json.dumps(body).encode("utf-8"))

    monkeypatch.setattr(client_module.request, "urlopen", fake_urlopen)
    client = VisionClient(api_key="secret", model="gpt-4.1-mini", timeout=12.0)

    parsed = asyncio.run(client.infer_decision(DECISION_REQUEST))

    assert parsed["action"] == "REMOVE"
    assert captured["auth"] == "Bearer secret"
    assert captured["timeout"] == 12.0
    assert captured["body"]["text"]["format"]["name"] == "design_decision"


def test_post_json_http_error_includes_body_excerpt(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req, timeout):  # type: ignore[no-untyped-def]
        raise HTTPError(
            req.full_url, 429, "Too Many Requests", hdrs=None, fp=io.BytesIO(b"rate\nlimited")
        )

    monkeypatch.setattr(client_module.request, "urlopen", fake_urlopen)

    with pytest.raises(ServiceError, match="HTTP 429: Too Many Requests. Response body: rate limited"):
        post_json("https://example.test", {"model": "m"}, api_key=None, timeout=1.0)


def test_post_json_transport_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req, timeout):  # type: ignore[no-untyped-def]
        raise URLError("connection refused")

    monkeypatch.setattr(client_module.request, "urlopen", fake_urlopen)

    with pytest.raises(ServiceError, match="transport error"):
        post_json("https://example.test", {}, api_key=None, timeout=1.0)


def test_post_json_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req, timeout):  # type: ignore[no-untyped-def]
        raise TimeoutError()

    monkeypatch.setattr(client_module.request, "urlopen", fake_urlopen)

    with pytest.raises(ServiceError, match="timed out after 2.5s"):
        post_json("https://example.test", {}, api_key=None, timeout=2.5)


def test_post_json_rejects_non_object(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        client_module.request,
        "urlopen",
        lambda req, timeout: FakeResponse(b"[1, 2]"),
    )

    with pytest.raises(ServiceError, match="expected top-level object"):
        post_json("https://example.test", {}, api_key=None, timeout=1.0)
