"""
ElevenLabs Conversational AI client.

Thin async wrapper around the handful of provider endpoints the call
lifecycle needs. Every method raises ``RateLimitError`` on 429 and
``VoiceProviderError`` on any other non-success status; callers decide
whether that is fatal.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from claimchaser.exceptions import RateLimitError, VoiceProviderError
from claimchaser.logging_config import get_logger
from claimchaser.schemas.conversation import (
    ConversationState,
    OutboundCallResponse,
    parse_conversation,
    parse_outbound_call,
)

logger = get_logger(__name__)

PROVIDER = "ElevenLabs"
DEFAULT_BASE_URL = "https://api.elevenlabs.io/v1"


class ElevenLabsClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
    ):
        self._client = client
        self._headers = {"xi-api-key": api_key}
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def conversations_url(self) -> str:
        return f"{self._base_url}/convai/conversations"

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> httpx.Response:
        resp = await self._client.request(
            method,
            f"{self._base_url}{path}",
            json=json,
            headers=self._headers,
            timeout=self._timeout,
        )

        if resp.status_code == 429:
            raise RateLimitError(PROVIDER)
        if allow_not_found and resp.status_code == 404:
            return resp
        if resp.status_code >= 400:
            raise VoiceProviderError(
                f"{PROVIDER} {method} {path} failed: {resp.text}",
                provider_status=resp.status_code,
            )
        return resp

    # -- Conversations --

    async def get_conversation(self, conversation_id: str) -> dict[str, Any]:
        resp = await self._request("GET", f"/convai/conversations/{conversation_id}")
        return resp.json()

    async def fetch_conversation(self, conversation_id: str) -> ConversationState:
        payload = await self.get_conversation(conversation_id)
        return parse_conversation(payload, conversation_id)

    async def create_outbound_call(
        self, agent_id: str, phone_number_id: str, to_number: str
    ) -> OutboundCallResponse:
        payload = {
            "agent_id": agent_id,
            "agent_phone_number_id": phone_number_id,
            "to_number": to_number,
        }

        logger.info("outbound_call_requested", to_number=to_number, agent_id=agent_id)
        resp = await self._request("POST", "/convai/twilio/outbound-call", json=payload)

        result = parse_outbound_call(resp.json())
        logger.info(
            "outbound_call_created",
            conversation_id=result.conversation_id,
            call_sid=result.call_sid,
        )
        return result

    # -- Termination endpoints --

    async def end_conversation(self, conversation_id: str) -> None:
        await self._request("POST", f"/convai/conversations/{conversation_id}/end")

    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete the conversation. An already-gone conversation counts as deleted."""
        await self._request(
            "DELETE", f"/convai/conversations/{conversation_id}", allow_not_found=True
        )

    async def patch_conversation_status(self, conversation_id: str) -> None:
        await self._request(
            "PATCH",
            f"/convai/conversations/{conversation_id}",
            json={"status": "ended", "action": "end"},
        )

    async def hangup_conversation(self, conversation_id: str) -> None:
        await self._request("POST", f"/convai/conversations/{conversation_id}/hangup")

    async def end_carrier_call(self, call_sid: str) -> None:
        await self._request("POST", f"/convai/twilio/calls/{call_sid}/end")

    # -- Agent / phone discovery --

    async def update_agent_prompt(self, agent_id: str, prompt: str) -> None:
        payload = {"conversation_config": {"agent": {"prompt": {"prompt": prompt}}}}
        await self._request("PATCH", f"/convai/agents/{agent_id}", json=payload)
        logger.info("agent_prompt_updated", agent_id=agent_id, prompt_chars=len(prompt))

    async def find_agent_id(self, name_hint: str) -> Optional[str]:
        """First agent whose name contains ``name_hint`` (case-insensitive)."""
        resp = await self._request("GET", "/convai/agents")
        data = resp.json()
        agents = data.get("agents", []) if isinstance(data, dict) else data

        hint = name_hint.lower()
        for agent in agents or []:
            if hint in str(agent.get("name", "")).lower():
                return agent.get("agent_id") or agent.get("id")
        return None

    async def first_phone_number_id(self) -> Optional[str]:
        resp = await self._request("GET", "/convai/phone-numbers")
        data = resp.json()
        numbers = data.get("phone_numbers", []) if isinstance(data, dict) else data

        if not numbers:
            return None
        first = numbers[0]
        return first.get("phone_number_id") or first.get("id")
