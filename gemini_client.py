"""
gemini_client.py
================
Thin wrapper around the Google Gemini ``generateContent`` REST endpoint used
by ScoreMate to read handwritten snooker scoreboards.

Authentication
--------------
Requests are authorised with an API key passed as the ``key`` query
parameter.  Obtain one at https://aistudio.google.com/apikey and put it in
``GEMINI_API_KEY`` (``GOOGLE_API_KEY`` is accepted too).

Usage
-----
::

    from gemini_client import GeminiClient

    client = GeminiClient(api_key="AIza...")
    text = client.generate_json(prompt, image_bytes, "image/jpeg")
    # '{"player1Name": "Alice", "player2Name": "Bob", "frames": [...]}'
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger('scoremate.gemini')

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash"
_DEFAULT_TIMEOUT = 60  # seconds; vision calls are slow


class GeminiAuthError(Exception):
    """Raised when no usable API key is configured or the key is rejected."""


class GeminiAPIError(Exception):
    """Raised when the Gemini API returns an error or an unusable response."""


class GeminiClient:
    """Minimal Gemini REST client for image-plus-prompt JSON generation."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: int = _DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Args:
            api_key: Google AI Studio API key.
            model:   Model name, e.g. ``gemini-2.5-flash``.
            timeout: HTTP request timeout in seconds.
            session: Optional pre-configured :class:`requests.Session`.
        """
        if not api_key:
            raise GeminiAuthError("Gemini API key is not configured")
        self._api_key = api_key
        self._model = model or DEFAULT_MODEL
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def model(self) -> str:
        return self._model

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    def generate_json(self, prompt: str, image_bytes: bytes, mime_type: str) -> str:
        """Send *prompt* with an inline image and return the model's JSON text.

        Args:
            prompt:      Instruction text.
            image_bytes: Raw image file contents.
            mime_type:   MIME type of the image, e.g. ``image/png``.

        Returns:
            The text of the first candidate (a JSON document as a string).

        Raises:
            GeminiAuthError: The API rejected the key (HTTP 401/403).
            GeminiAPIError:  Network failure, error status, blocked prompt or
                empty response.
        """
        payload = {
            "contents": [{
                "parts": [
                    {"text": prompt},
                    {"inline_data": {
                        "mime_type": mime_type,
                        "data": base64.b64encode(image_bytes).decode("ascii"),
                    }},
                ],
            }],
            "generationConfig": {"response_mime_type": "application/json"},
        }
        body = self._post(f"/models/{self._model}:generateContent", payload)
        return self._first_text(body)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST *payload* to the Gemini API and return parsed JSON."""
        url = _API_BASE + path
        try:
            resp = self._session.post(
                url,
                params={"key": self._api_key},
                json=payload,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise GeminiAPIError(f"Network error calling Gemini API: {exc}") from exc

        try:
            resp.raise_for_status()
        except requests.HTTPError as exc:
            if resp.status_code in (401, 403):
                raise GeminiAuthError(
                    f"Gemini rejected the API key ({resp.status_code})"
                ) from exc
            raise GeminiAPIError(
                f"Gemini API error {resp.status_code} for {path}: {resp.text[:500]}"
            ) from exc

        try:
            return resp.json()
        except ValueError as exc:
            raise GeminiAPIError("Gemini API returned a non-JSON body") from exc

    @staticmethod
    def _first_text(body: Dict[str, Any]) -> str:
        """Pull the text of the first candidate out of a response body."""
        feedback = body.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise GeminiAPIError(f"Prompt blocked: {feedback['blockReason']}")

        candidates = body.get("candidates") or []
        if not candidates:
            raise GeminiAPIError("Gemini returned no candidates")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text.strip():
            reason = candidates[0].get("finishReason", "unknown")
            raise GeminiAPIError(f"Gemini returned an empty response (finishReason={reason})")
        logger.debug("Gemini returned %d characters", len(text))
        return text
