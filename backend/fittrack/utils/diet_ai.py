"""Diet-plan generation through a hosted chat-completion model.

The model is asked for one strict JSON object describing a day of meals.
Replies are cleaned (code fences, smart quotes, trailing commas) before
parsing, since models do not always honour "JSON only".
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable, Optional

import httpx

from ..config import Settings
from ..errors import DietGenerationError, DietResponseParseError

logger = logging.getLogger("fittrack.diet_ai")

SYSTEM_PROMPT = """
You are a certified nutritionist. Based on the user's request, generate a realistic daily diet plan in strict valid JSON format only.

Do NOT include any explanations, markdown, or extra text, ONLY the raw JSON object, without code fences or formatting.

Use this exact structure, and DO NOT add, omit, or change any fields:

{
  "date": "Fill with current date in YYYY-MM-DD format",
  "prompt": "<original user prompt>",
  "meals": [
    {
      "meal_time": "Breakfast",
      "items": [
        {
          "name": "Food name",
          "portion_size": "e.g., 1 cup",
          "calories": "e.g., 200 kcal",
          "macronutrients": {"protein": "e.g., 10g", "carbohydrates": "e.g., 30g", "fat": "e.g., 5g"},
          "additional_info": "If none, use empty string"
        }
      ]
    },
    {"meal_time": "Lunch", "items": ["same item structure"]},
    {"meal_time": "Dinner", "items": ["same item structure"]}
  ],
  "notes": "Include any dietary restrictions, preferences, lifestyle notes, or hydration advice. If none, use empty string."
}

Each meal should have exactly one or two food items.

Ensure all fields are present with valid values or empty strings, and the JSON is complete and valid.
"""

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def clean_ai_response(raw: str) -> str:
    """Normalise a model reply so that `json.loads` has a fair chance."""
    cleaned = (raw or "").strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_RE.sub("", cleaned).strip()
    cleaned = cleaned.replace("“", '"').replace("”", '"')
    cleaned = cleaned.replace("‘", "'").replace("’", "'")
    return _TRAILING_COMMA_RE.sub(r"\1", cleaned)


class DietPlanGenerator:
    """Client for the diet-plan model.

    Timeouts are retried up to `DIET_AI_RETRIES` attempts with a fixed
    delay; any other transport or HTTP error fails immediately.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = settings
        self._client = client or httpx.Client(timeout=settings.DIET_AI_TIMEOUT_SECONDS)
        self._sleep = sleep

    def close(self):
        self._client.close()

    def _post_with_retry(self, payload: dict) -> httpx.Response:
        s = self.settings
        headers = {"Content-Type": "application/json"}
        if s.DIET_AI_API_KEY:
            headers["Authorization"] = f"Bearer {s.DIET_AI_API_KEY}"
        for attempt in range(1, s.DIET_AI_RETRIES + 1):
            try:
                logger.info("diet model attempt %d: %s", attempt, s.DIET_AI_URL)
                resp = self._client.post(s.DIET_AI_URL, json=payload, headers=headers)
                resp.raise_for_status()
                return resp
            except httpx.TimeoutException as e:
                if attempt >= s.DIET_AI_RETRIES:
                    logger.error("diet model timed out after %d attempts", attempt)
                    raise DietGenerationError("diet model request timed out") from e
                logger.warning("diet model timeout (attempt %d/%d); retrying in %ss",
                               attempt, s.DIET_AI_RETRIES, s.DIET_AI_RETRY_DELAY_SECONDS)
                self._sleep(s.DIET_AI_RETRY_DELAY_SECONDS)
            except httpx.HTTPError as e:
                logger.error("diet model request failed: %s", e)
                raise DietGenerationError("diet model request failed") from e
        raise DietGenerationError("diet model request failed after retries")

    def generate(self, prompt: str) -> dict[str, Any]:
        """Return the parsed plan: a dict with `date`, `meals` and `notes`."""
        payload = {
            "model": self.settings.DIET_AI_MODEL,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.3,
            "max_tokens": 800,
        }
        resp = self._post_with_retry(payload)
        try:
            raw = resp.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise DietGenerationError("unexpected diet model response shape") from e
        if not isinstance(raw, str):
            # some providers return a list of content parts
            raise DietGenerationError("unexpected diet model response shape")
        cleaned = clean_ai_response(raw)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.error("failed to parse diet model reply %s", json.dumps({"raw": raw[:500], "error": str(e)}))
            raise DietResponseParseError("Failed to parse AI response") from e
        if not isinstance(data, dict):
            raise DietResponseParseError("Failed to parse AI response")
        return data
