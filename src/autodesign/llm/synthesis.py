"""HTTP client for the image synthesis service."""

from __future__ import annotations

import asyncio
import logging

from autodesign.agent.services import SynthesisRequest, ServiceError
from autodesign.llm.client import post_json

LOGGER = logging.getLogger(__name__)


class SynthesisClient:
    """Sends an edit instruction plus the current image and returns the new image."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        api_url: str,
        timeout: float = 120.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.timeout = timeout

    async def synthesize(self, synthesis_request: SynthesisRequest) -> str | None:
        payload = self._build_payload(synthesis_request)
        raw = await asyncio.to_thread(
            post_json, self.api_url, payload, api_key=self.api_key, timeout=self.timeout
        )
        return self._extract_image(raw)

    def _build_payload(self, synthesis_request: SynthesisRequest) -> dict[str, object]:
        return {
            "model": self.model,
            "image": synthesis_request.artifact,
            "prompt": synthesis_request.instruction,
            "force_override": synthesis_request.force_override,
            "target": {
                "name": synthesis_request.target,
                "operation_type": synthesis_request.action,
                "interpreted_intent": synthesis_request.rationale,
            },
        }

    @staticmethod
    def _extract_image(payload: dict[str, object]) -> str | None:
        """Accept either ``{"image": ...}`` or ``{"data": [{"b64_json": ...}]}``."""
        image = payload.get("image")
        if isinstance(image, str) and image:
            return image

        data = payload.get("data")
        if isinstance(data, list):
            for item in data:
                if isinstance(item, dict):
                    encoded = item.get("b64_json")
                    if isinstance(encoded, str) and encoded:
                        return encoded

        error = payload.get("error")
        if error:
            LOGGER.error("synthesis_service_error", extra={"error": str(error)})
            raise ServiceError(f"Synthesis service error: {error}")
        return None
