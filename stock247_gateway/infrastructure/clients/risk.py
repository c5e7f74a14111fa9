"""LLM gateway client for loan risk analysis"""

import httpx
from typing import Any, Mapping, Optional
from stock247_gateway.config import RiskConfig
from stock247_gateway.domain.exceptions import RiskServiceError
from stock247_gateway.domain.risk import SYSTEM_PROMPT, build_risk_prompt


class RiskClient:
    """Client for the OpenAI-compatible chat completions gateway"""

    def __init__(self, config: RiskConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    async def analyze(self, business_data: Mapping[str, Any], document_urls: Mapping[str, Any]) -> Optional[str]:
        """
        Ask the model for a risk verdict.

        Returns:
            Raw message content (parsing is the caller's concern)

        Raises:
            RiskServiceError: Not configured (503), rate limited (429),
                credits depleted (402), or any other gateway failure (502)
        """
        if not self.config.api_key:
            raise RiskServiceError("LLM API key is not configured", status_code=503)

        body = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_risk_prompt(business_data, document_urls)},
            ],
        }

        async with httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self.transport) as client:
            try:
                response = await client.post(
                    self.config.gateway_url,
                    json=body,
                    headers={"Authorization": f"Bearer {self.config.api_key}"},
                )
            except httpx.TimeoutException as e:
                raise RiskServiceError(f"AI gateway timeout after {self.config.timeout_seconds}s") from e
            except httpx.RequestError as e:
                raise RiskServiceError(f"AI gateway request failed: {e}") from e

        if response.status_code == 429:
            raise RiskServiceError("Rate limit exceeded. Please try again later.", status_code=429)
        if response.status_code == 402:
            raise RiskServiceError("AI credits depleted. Please add credits to continue.", status_code=402)
        if response.is_error:
            raise RiskServiceError(f"AI gateway error: {response.status_code}")

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            return None
