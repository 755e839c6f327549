"""HTTP client for the decision and outcome inference services."""

from __future__ import annotations

import asyncio
import json
import logging
from urllib import request
from urllib.error import HTTPError, URLError

from autodesign.agent.decision import VALID_ACTIONS
from autodesign.agent.services import DecisionRequest, OutcomeRequest, ServiceError

DECISION_SYSTEM_PROMPT_PARTS = [
    "You are an autonomous interior designer refining one room image step by step.",
    "Study the CURRENT image; it already reflects every earlier change.",
    "Each change must build on previous work and follow the style requirements.",
    (
        "Treat failure patterns as constraints to avoid, and success patterns and"
        " style insights as approaches worth repeating."
    ),
    (
        "Actions: EDIT changes colors, materials or styles; MOVE relocates an item;"
        " REMOVE deletes an item that does not fit; WAIT skips this iteration when"
        " the room needs no change or you are unsure."
    ),
    (
        "Return strict JSON with keys: action, target, reason, prompt (the edit"
        " instruction for the image model), confidence (0-1) and style_alignment."
    ),
]

OUTCOME_SYSTEM_PROMPT_PARTS = [
    "You are a quality analyst reviewing one edit made by an AI interior designer.",
    "Score visual realism and absence of artifacts as qualityScore (0-100).",
    "Score adherence to the requested style as styleScore (0-100).",
    (
        "List what worked as strengths and what did not as weaknesses, describe"
        " style adherence in styleNotes, state the lessonLearned, and give a"
        " betterApproach when the edit failed."
    ),
    "Be honest and specific.",
]

LOGGER = logging.getLogger(__name__)


class VisionClient:
    """Small HTTP client for image-grounded structured model calls."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        api_url: str = "https://api.openai.com/v1/responses",
        timeout: float = 60.0,
        decision_temperature: float = 0.7,
        outcome_temperature: float = 0.3,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.timeout = timeout
        self.decision_temperature = decision_temperature
        self.outcome_temperature = outcome_temperature

    async def infer_decision(self, decision_request: DecisionRequest) -> dict[str, object]:
        payload = self._build_decision_payload(decision_request)
        raw = await asyncio.to_thread(
            post_json, self.api_url, payload, api_key=self.api_key, timeout=self.timeout
        )
        return self._extract_output_json(raw)

    async def infer_outcome(self, outcome_request: OutcomeRequest) -> dict[str, object]:
        payload = self._build_outcome_payload(outcome_request)
        raw = await asyncio.to_thread(
            post_json, self.api_url, payload, api_key=self.api_key, timeout=self.timeout
        )
        return self._extract_output_json(raw)

    def _build_decision_payload(self, decision_request: DecisionRequest) -> dict[str, object]:
        schema: dict[str, object] = {
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": sorted(VALID_ACTIONS)},
                "target": {"type": "string"},
                "reason": {"type": "string"},
                "prompt": {"type": "string"},
                "confidence": {"type": "number"},
                "style_alignment": {"type": ["string", "null"]},
            },
            "required": ["action", "target", "reason", "prompt", "confidence", "style_alignment"],
            "additionalProperties": False,
        }
        return self._payload(
            system_prompt=" ".join(DECISION_SYSTEM_PROMPT_PARTS),
            user_message=self._build_decision_message(decision_request),
            artifact=decision_request.artifact,
            schema_name="design_decision",
            schema=schema,
            temperature=self.decision_temperature,
        )

    def _build_outcome_payload(self, outcome_request: OutcomeRequest) -> dict[str, object]:
        schema: dict[str, object] = {
            "type": "object",
            "properties": {
                "qualityScore": {"type": "number"},
                "styleScore": {"type": "number"},
                "success": {"type": "boolean"},
                "strengths": {"type": "array", "items": {"type": "string"}},
                "weaknesses": {"type": "array", "items": {"type": "string"}},
                "styleNotes": {"type": "string"},
                "lessonLearned": {"type": "string"},
                "betterApproach": {"type": ["string", "null"]},
            },
            "required": [
                "qualityScore",
                "styleScore",
                "success",
                "strengths",
                "weaknesses",
                "styleNotes",
                "lessonLearned",
                "betterApproach",
            ],
            "additionalProperties": False,
        }
        return self._payload(
            system_prompt=" ".join(OUTCOME_SYSTEM_PROMPT_PARTS),
            user_message=self._build_outcome_message(outcome_request),
            artifact=outcome_request.artifact,
            schema_name="design_outcome",
            schema=schema,
            temperature=self.outcome_temperature,
        )

    def _payload(
        self,
        *,
        system_prompt: str,
        user_message: str,
        artifact: str,
        schema_name: str,
        schema: dict[str, object],
        temperature: float,
    ) -> dict[str, object]:
        return {
            "model": self.model,
            "temperature": temperature,
            "input": [
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": user_message},
                        {
                            "type": "input_image",
                            "image_url": f"data:image/jpeg;base64,{artifact}",
                        },
                    ],
                },
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": schema_name,
                    "strict": True,
                    "schema": schema,
                }
            },
        }

    @staticmethod
    def _build_decision_message(decision_request: DecisionRequest) -> str:
        style = _format_keywords(decision_request.style_keywords)
        return (
            f"Design goal:\n{decision_request.design_goal}\n\n"
            f"Style requirements:\n{style}\n\n"
            f"Iteration: {decision_request.iteration}\n"
            f"Changes made so far: {decision_request.history_summary}\n\n"
            "Learned patterns from earlier iterations:\n"
            f"{decision_request.memory_summary}\n\n"
            "Choose the single most valuable next change and explain how it matches the style."
        )

    @staticmethod
    def _build_outcome_message(outcome_request: OutcomeRequest) -> str:
        decision = outcome_request.decision
        style = ", ".join(outcome_request.style_keywords) or outcome_request.design_goal
        return (
            "What was attempted:\n"
            f"- Action: {decision.action}\n"
            f"- Target: {decision.target}\n"
            f"- Reasoning: {decision.rationale}\n"
            f"- Instruction: {decision.instruction}\n"
            f"- Design goal: {outcome_request.design_goal}\n"
            f"- Style goal: {style}\n\n"
            "Evaluate the attached result image."
        )

    @staticmethod
    def _coerce_object_dict(value: object) -> dict[str, object] | None:
        if not isinstance(value, dict):
            return None
        return {str(key): raw_value for key, raw_value in value.items()}

    @classmethod
    def _extract_output_json(cls, payload: dict[str, object]) -> dict[str, object]:
        output_items = payload.get("output")
        if not isinstance(output_items, list):
            raise ServiceError("No structured output returned")

        for item in output_items:
            item_object = cls._coerce_object_dict(item)
            if item_object is None:
                continue
            content_items = item_object.get("content")
            if not isinstance(content_items, list):
                continue
            for content in content_items:
                content_object = cls._coerce_object_dict(content)
                if content_object is None:
                    continue
                content_type = content_object.get("type")
                content_text = content_object.get("text")
                if content_type == "output_text" and isinstance(content_text, str):
                    try:
                        parsed = cls._coerce_object_dict(json.loads(content_text))
                    except json.JSONDecodeError as exc:
                        raise ServiceError(f"Structured output parsing error: {exc}") from exc
                    if parsed is not None:
                        return parsed
                    break
        raise ServiceError("No structured output returned")


def post_json(
    url: str,
    payload: dict[str, object],
    *,
    api_key: str | None,
    timeout: float,
) -> dict[str, object]:
    """POST a JSON payload and return the decoded top-level object.

    Raises ``ServiceError`` for HTTP, transport, timeout and decoding failures.
    """
    body = json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"

    LOGGER.debug(
        "service_request_prepared",
        extra={"api_url": url, "model": payload.get("model"), "payload_bytes": len(body)},
    )

    req = request.Request(url, data=body, headers=headers, method="POST")
    try:
        with request.urlopen(req, timeout=timeout) as resp:  # noqa: S310
            raw_response = json.loads(resp.read().decode("utf-8"))
    except HTTPError as exc:
        body_excerpt = _read_error_body_excerpt(exc)
        LOGGER.error(
            "service_request_http_error",
            extra={
                "api_url": url,
                "http_status": exc.code,
                "reason": exc.reason,
                "response_excerpt": body_excerpt,
            },
        )
        details = f"Request failed with HTTP {exc.code}: {exc.reason}"
        if body_excerpt:
            details = f"{details}. Response body: {body_excerpt}"
        raise ServiceError(details) from exc
    except URLError as exc:
        LOGGER.error(
            "service_request_transport_error",
            extra={"api_url": url, "reason": str(exc.reason)},
        )
        raise ServiceError(f"Request transport error: {exc.reason}") from exc
    except TimeoutError as exc:
        LOGGER.error(
            "service_request_timeout",
            extra={"api_url": url, "timeout_seconds": timeout},
        )
        raise ServiceError(f"Request timed out after {timeout:.1f}s") from exc
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        LOGGER.error("service_response_parse_error", extra={"api_url": url, "error": str(exc)})
        raise ServiceError(f"Response parsing error: {exc}") from exc

    if not isinstance(raw_response, dict):
        raise ServiceError("Response parsing error: expected top-level object")
    return {str(key): value for key, value in raw_response.items()}


def _read_error_body_excerpt(exc: HTTPError, *, max_chars: int = 500) -> str | None:
    if exc.fp is None:
        return None
    try:
        raw = exc.read()
    except OSError:
        return None

    if not raw:
        return None

    excerpt = raw.decode("utf-8", errors="replace").replace("\n", " ").strip()
    if len(excerpt) > max_chars:
        return f"{excerpt[:max_chars]}..."
    return excerpt


def _format_keywords(keywords: tuple[str, ...]) -> str:
    if not keywords:
        return "- (none given; infer from the design goal)"
    return "\n".join(f"- {keyword}" for keyword in keywords)
