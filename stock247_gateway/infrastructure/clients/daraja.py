"""M-Pesa Daraja HTTP client for OAuth token exchange and STK push"""

import base64
import httpx
from datetime import datetime
from typing import Optional
from stock247_gateway.config import DarajaConfig
from stock247_gateway.domain.models import StkPushResult
from stock247_gateway.domain.exceptions import GatewayUnavailableError
from stock247_gateway.utils.date_utils import daraja_timestamp


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
    """Base64 of shortcode + passkey + timestamp, as Daraja requires"""
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode()


class DarajaClient:
    """Client for the Safaricom Daraja push-payment API"""

    def __init__(self, config: DarajaConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            transport=self.transport,
        )

    async def get_access_token(self, client: httpx.AsyncClient) -> str:
        """
        Exchange consumer key/secret for a short-lived bearer token.

        Raises:
            GatewayUnavailableError: On network errors, non-2xx or missing token
        """
        try:
            response = await client.get(
                "/oauth/v1/generate",
                params={"grant_type": "client_credentials"},
                auth=(self.config.consumer_key or "", self.config.consumer_secret or ""),
            )
            response.raise_for_status()
            body = response.json()
            token = body.get("access_token") if isinstance(body, dict) else None
        except httpx.TimeoutException as e:
            raise GatewayUnavailableError(f"Daraja token request timed out after {self.config.timeout_seconds}s") from e
        except httpx.HTTPStatusError as e:
            raise GatewayUnavailableError(f"Daraja token error: {e.response.status_code}") from e
        except (httpx.RequestError, ValueError) as e:
            raise GatewayUnavailableError(f"Daraja token request failed: {e}") from e

        if not token:
            raise GatewayUnavailableError("Failed to get access token")
        return token

    async def stk_push(
        self,
        phone: str,
        amount: int,
        account_reference: str,
        description: str = "Loan Repayment",
        now: Optional[datetime] = None,
    ) -> StkPushResult:
        """
        Prompt the payer's handset to authorize a CustomerPayBillOnline payment.

        Args:
            phone: Normalized 254XXXXXXXXX number
            amount: Whole shillings

        Raises:
            GatewayUnavailableError: Credentials missing, token exchange failed,
                network error, or ResponseCode other than "0"
        """
        if not self.config.is_configured:
            raise GatewayUnavailableError("Daraja credentials are not configured")

        timestamp = daraja_timestamp(now)
        payload = {
            "BusinessShortCode": self.config.shortcode,
            "Password": stk_password(self.config.shortcode, self.config.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": amount,
            "PartyA": phone,
            "PartyB": self.config.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.config.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": description,
        }

        async with self._client() as client:
            token = await self.get_access_token(client)
            try:
                response = await client.post(
                    "/mpesa/stkpush/v1/processrequest",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
                data = response.json()
            except httpx.TimeoutException as e:
                raise GatewayUnavailableError(f"STK push timed out after {self.config.timeout_seconds}s") from e
            except (httpx.RequestError, ValueError) as e:
                raise GatewayUnavailableError(f"STK push request failed: {e}") from e

        if not isinstance(data, dict):
            raise GatewayUnavailableError("Unexpected STK push response")

        if str(data.get("ResponseCode")) != "0" or not data.get("CheckoutRequestID"):
            raise GatewayUnavailableError(data.get("errorMessage") or data.get("ResponseDescription") or "STK Push failed")

        return StkPushResult(
            checkout_request_id=data["CheckoutRequestID"],
            merchant_request_id=data.get("MerchantRequestID", ""),
            response_description=data.get("ResponseDescription", ""),
        )
