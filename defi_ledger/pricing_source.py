"""
pricing_source.py - Fixed asset prices for valuation

The simulation has no market feed. Every crypto asset has a constant USD
price, used to value crypto collateral and to total a user's portfolio.

Classes:
- PricingSource: Protocol defining the pricing interface
- StaticPricingSource: Constant prices keyed by AssetType

All prices are returned in the base currency (USD).
"""

from decimal import Decimal
from typing import Dict, Mapping, Protocol, Union, runtime_checkable

from .core import AssetType, to_decimal


DEFAULT_PRICES: Dict[AssetType, Decimal] = {
    AssetType.ETH: Decimal("2000"),
    AssetType.BTC: Decimal("40000"),
    AssetType.USDC: Decimal("1"),
}


@runtime_checkable
class PricingSource(Protocol):
    """
    Protocol for pricing sources.

    A pricing source provides the price of one unit of an asset,
    denominated in base_currency.
    """
    base_currency: str

    def get_price(self, asset_type: AssetType) -> Decimal:
        """Get the price of one unit of asset_type."""
        ...


class StaticPricingSource:
    """
    Pricing source with static prices.

    Raises KeyError from get_price() for an asset with no configured price.
    """

    def __init__(
        self,
        prices: Mapping[Union[AssetType, str], Union[Decimal, float, str]] = None,
        base_currency: str = "USD",
    ):
        """
        Initialize with a price map.

        Args:
            prices: Asset -> price in base currency. Defaults to DEFAULT_PRICES.
                    String keys ("ETH") are accepted.
            base_currency: The currency in which prices are quoted
        """
        self.base_currency = base_currency
        source = DEFAULT_PRICES if prices is None else prices
        self.prices: Dict[AssetType, Decimal] = {
            AssetType(asset): to_decimal(price) for asset, price in source.items()
        }
        for asset, price in self.prices.items():
            if price < 0:
                raise ValueError(f"price for {asset.value} cannot be negative, got {price}")

    def get_price(self, asset_type: AssetType) -> Decimal:
        asset_type = AssetType(asset_type)
        if asset_type not in self.prices:
            raise KeyError(f"No price for {asset_type.value}")
        return self.prices[asset_type]

    def value(self, asset_type: AssetType, quantity: Decimal) -> Decimal:
        """Value a quantity of an asset in base currency."""
        return to_decimal(quantity) * self.get_price(asset_type)

    def __repr__(self):
        return f"StaticPricingSource({len(self.prices)} prices, base={self.base_currency})"
