from __future__ import annotations

from typing import Optional

import httpx


class BotLogicAPI:
    def __init__(self, base_url: str, timeout_sec: float = 8.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout_sec
        self.transport = transport

    async def send_text(self, chat_id: int, text: str) -> list[str]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            r = await client.post(f"{self.base_url}/message", json={"chat_id": chat_id, "text": text})
            r.raise_for_status()
            data = r.json()
            return data.get("messages", ["(пустой ответ)"])
