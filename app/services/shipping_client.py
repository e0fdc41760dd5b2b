# app/services/shipping_client.py
from decimal import Decimal

import requests

from app.utils.retry import http_retry
from app.utils.settings import SHIPPING_SERVICE_URL
from app.utils.logging import get_logger

logger = get_logger(__name__)


class ShippingRateClient:
    """Zewnetrzny serwis wyceny wysylki (HTTP)."""

    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or SHIPPING_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def quote(self, method: str, subtotal: Decimal, address) -> Decimal:
        url = f"{self.base_url}/quotes"
        logger.info(f"ShippingRateClient POST {url} method={method}")

        resp = requests.post(
            url,
            json={
                "method": method,
                "subtotal": str(subtotal),
                "country": address.country,
                "postal_code": address.postal_code,
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return Decimal(str(resp.json()["amount"]))
