from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from openai import AsyncOpenAI

from .command_router import command_to_parsed_order
from .ordering.types import Menu, ParsedOrder

logger = logging.getLogger(__name__)

SYSTEM = """You are an order parser for a text-message ordering service.
Convert the customer's message into ONE JSON object that matches the provided JSON schema.
Rules:
- Only use item names from menu_items, spelled exactly as given. Never invent items.
- qty is a positive integer; default to 1.
- customer_name / table_number only when the customer actually gave them, otherwise null.
- Keep it robust to typos/slang.
"""

# JSON Schema for Structured Outputs
ORDER_SCHEMA: Dict[str, Any] = {
    "name": "text_order",
    "schema": {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "items": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "properties": {
                        "item_name": {"type": "string"},
                        "qty": {"type": "integer", "minimum": 1},
                    },
                    "required": ["item_name", "qty"],
                },
            },
            "customer_name": {"type": ["string", "null"]},
            "table_number": {"type": ["string", "null"]},
        },
        "required": ["items", "customer_name", "table_number"],
    },
    "strict": True,
}


class LLMOrderParser:
    """Best-effort fallback used when the deterministic parser finds nothing or is unsure."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", client: Optional[AsyncOpenAI] = None):
        self._client = client or AsyncOpenAI(api_key=api_key)
        self._model = model

    async def interpret(self, message: str, menu: Menu) -> Dict[str, Any]:
        payload = {"message": message, "menu_items": list(menu)[:200]}  # cap
        resp = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": SYSTEM},
                {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
            ],
            # Structured Outputs: forces schema correctness
            response_format={"type": "json_schema", "json_schema": ORDER_SCHEMA},
        )
        return json.loads(resp.choices[0].message.content or "{}")

    async def parse(self, message: str, menu: Menu) -> ParsedOrder:
        cmd = await self.interpret(message, menu)
        return command_to_parsed_order(cmd, menu)
