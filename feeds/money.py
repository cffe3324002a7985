"""
Display Feeds — money formatting policy

The display shows the current electricity price as a short currency string.
Formatting is a plain value object instead of a locale lookup so the output
does not depend on which locales the host happens to have installed.

Default policy reproduces the Dutch euro notation::

    MoneyFormat().format(0.1016)   -> "€ 0,10"
    MoneyFormat().format(1234.5)   -> "€ 1.234,50"
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field


class MoneyFormat(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol:           str = "€"
    symbol_separator: str = " "
    decimal_sep:      str = ","
    group_sep:        str = "."
    fraction_digits:  int = Field(default=2, ge=0, le=6)

    def format(self, amount: float) -> str:
        """Round half-up to ``fraction_digits`` and apply grouping."""
        # str() first so 0.125 rounds as the decimal the upstream sent
        quantum = Decimal(1).scaleb(-self.fraction_digits)
        value = Decimal(str(amount)).quantize(quantum, rounding=ROUND_HALF_UP)

        sign = "-" if value < 0 else ""
        digits = f"{abs(value):f}"
        whole, _, fraction = digits.partition(".")

        groups = []
        while len(whole) > 3:
            groups.insert(0, whole[-3:])
            whole = whole[:-3]
        groups.insert(0, whole)

        number = self.group_sep.join(groups)
        if self.fraction_digits:
            number = f"{number}{self.decimal_sep}{fraction}"
        return f"{self.symbol}{self.symbol_separator}{sign}{number}"
