# app/services/pricing.py
from decimal import Decimal

from app.services.shipping_client import ShippingRateClient
from app.utils.settings import SHIPPING_FLAT_RATE, SHIPPING_SERVICE_URL, TAX_RATE


class FlatRateShipping:
    def __init__(self, rate: Decimal = SHIPPING_FLAT_RATE):
        self.rate = rate

    def quote(self, method: str, subtotal: Decimal, address) -> Decimal:
        return self.rate


def default_tax_rate(address) -> Decimal:
    return TAX_RATE


def get_shipping_calculator():
    #bez adresu serwisu - stawka ryczaltowa z konfiguracji
    if SHIPPING_SERVICE_URL:
        return ShippingRateClient()
    return FlatRateShipping()
