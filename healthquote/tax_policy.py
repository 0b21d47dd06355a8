"""
VAT policies for quote recomputation.

Two policies exist historically for the same operation and they disagree
whenever a quote has passed through a zero subtotal:

    fixed_rate        flat rate (18% by default), ignores history
    ratio_preserving  keep the quote's prior tax/subtotal ratio;
                        collapses to 0% when the prior subtotal was 0

Exactly one is active per process (settings.VAT_POLICY). Every item
mutation path resolves its rate through get_tax_policy() so the choice is
applied uniformly.
"""

from decimal import Decimal

from .config import settings


def to_decimal(value) -> Decimal:
    """Floats go through str() so 0.1 stays 0.1 instead of its binary expansion."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class TaxPolicy:
    name = "base"

    def resolve(self, quote, subtotal: Decimal) -> Decimal:
        """
        Return the effective VAT rate for a recomputation.

        Args:
            quote: the Quote header as it was before this recomputation
                   (prior subtotal/tax still on it)
            subtotal: the freshly aggregated subtotal
        """
        raise NotImplementedError


class FixedRatePolicy(TaxPolicy):
    name = "fixed_rate"

    def __init__(self, rate=0.18):
        self.rate = to_decimal(rate)

    def resolve(self, quote, subtotal: Decimal) -> Decimal:
        return self.rate


class RatioPreservingPolicy(TaxPolicy):
    name = "ratio_preserving"

    def resolve(self, quote, subtotal: Decimal) -> Decimal:
        prior_subtotal = to_decimal(quote.subtotal)
        if prior_subtotal <= 0:
            # Known defect of this policy: an empty quote has no ratio to keep
            return Decimal("0")
        return to_decimal(quote.tax) / prior_subtotal


POLICIES = {
    FixedRatePolicy.name: lambda: FixedRatePolicy(settings.FIXED_VAT_RATE),
    RatioPreservingPolicy.name: RatioPreservingPolicy,
}


def get_tax_policy(name: str = None) -> TaxPolicy:
    name = name or settings.VAT_POLICY
    if name not in POLICIES:
        raise ValueError(f"Unknown VAT policy '{name}', expected one of {sorted(POLICIES)}")
    return POLICIES[name]()
