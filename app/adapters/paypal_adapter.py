from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from app.adapters.base import CaptureResult, OrderResult, PaymentProviderError

logger = logging.getLogger(__name__)

PAYPAL_API_URL = os.getenv("PAYPAL_API_URL", "https://api-m.sandbox.paypal.com")
PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID", "")
PAYPAL_SECRET = os.getenv("PAYPAL_SECRET", "")
PAYPAL_TIMEOUT_SECONDS = float(os.getenv("PAYPAL_TIMEOUT_SECONDS", "15"))
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")


class PayPalAdapter:
    """PayPal Orders v2 client: one OAuth2 token request, then the order call."""

    def __init__(
        self,
        *,
        base_url: str = PAYPAL_API_URL,
        client_id: str = PAYPAL_CLIENT_ID,
        secret: str = PAYPAL_SECRET,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client_id = client_id
        self._secret = secret
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self._base_url,
            timeout=PAYPAL_TIMEOUT_SECONDS,
            transport=self._transport,
        )

    def _access_token(self, client: httpx.Client) -> str:
        if not self._client_id or not self._secret:
            raise PaymentProviderError("PayPal credentials are not configured")
        response = client.post(
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
            auth=(self._client_id, self._secret),
        )
        body = self._json(response, "token request")
        token = body.get("access_token")
        if not isinstance(token, str):
            raise PaymentProviderError("PayPal token response missing access_token")
        return token

    @staticmethod
    def _json(response: httpx.Response, what: str) -> dict[str, Any]:
        if response.is_error:
            logger.warning("paypal %s failed: %s %s", what, response.status_code, response.text[:500])
            raise PaymentProviderError(f"PayPal {what} failed with status {response.status_code}")
        body = response.json()
        if not isinstance(body, dict):
            raise PaymentProviderError(f"PayPal {what} returned an unexpected body")
        return body

    def create_order(
        self,
        *,
        invoice_id: str,
        amount: float,
        currency: str,
        description: str,
    ) -> OrderResult:
        order = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": invoice_id,
                    "description": description,
                    "amount": {"currency_code": currency, "value": f"{amount:.2f}"},
                }
            ],
            "application_context": {
                "return_url": f"{APP_BASE_URL}/customer/invoices?payment=success",
                "cancel_url": f"{APP_BASE_URL}/customer/invoices?payment=cancelled",
            },
        }
        try:
            with self._client() as client:
                token = self._access_token(client)
                response = client.post(
                    "/v2/checkout/orders",
                    json=order,
                    headers={"Authorization": f"Bearer {token}"},
                )
                body = self._json(response, "create order")
        except httpx.HTTPError as exc:
            raise PaymentProviderError(f"PayPal request failed: {exc}") from exc

        approve_url = next(
            (link.get("href") for link in body.get("links", []) if link.get("rel") == "approve"),
            None,
        )
        order_id = body.get("id")
        if not isinstance(order_id, str) or not isinstance(approve_url, str):
            raise PaymentProviderError("PayPal order response missing id or approve link")
        return OrderResult(order_id=order_id, approve_url=approve_url)

    def capture_order(self, order_id: str) -> CaptureResult:
        try:
            with self._client() as client:
                token = self._access_token(client)
                response = client.post(
                    f"/v2/checkout/orders/{order_id}/capture",
                    headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                )
                body = self._json(response, "capture order")
        except httpx.HTTPError as exc:
            raise PaymentProviderError(f"PayPal request failed: {exc}") from exc

        transaction_id: str | None = None
        for unit in body.get("purchase_units", []):
            captures = unit.get("payments", {}).get("captures", [])
            if captures:
                transaction_id = captures[0].get("id")
                break
        return CaptureResult(
            order_id=str(body.get("id", order_id)),
            status=str(body.get("status", "")),
            transaction_id=transaction_id,
            raw=body,
        )
