import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

from slotbank.config import CURRENCY_SYMBOL
from slotbank.models.money import CENT


class CurrencyParser:
    """
    Parser and formatter for Brazilian real amounts typed into the app.

    Supports:
    - Brazilian format: 1.234,56 (dot as thousand separator, comma decimal)
    - Currency prefix: R$ 50,00
    - Plain numbers: 50, 1234.5
    - Keypad masking: "12345" -> "123,45"
    """

    # Matches an optional R$ prefix and the numeric part
    AMOUNT_PATTERN = re.compile(
        r"""
        ^\s*
        (?:R\$\s*)?                             # Optional currency symbol
        (?P<number>
            \d{1,3}(?:\.\d{3})+(?:,\d+)?       # 1.234.567,89
            |
            \d+(?:[.,]\d+)?                     # 1234 / 1234,5 / 1234.5
        )
        \s*$
        """,
        re.VERBOSE | re.IGNORECASE,
    )

    @classmethod
    def parse(cls, text: str) -> Optional[Decimal]:
        """
        Parse a typed amount.

        Args:
            text: String such as "R$ 1.234,56", "50,00" or "12.5"

        Returns:
            Decimal rounded to cents, or None if the text is not an amount
        """
        if not text:
            return None

        match = cls.AMOUNT_PATTERN.match(text)
        if not match:
            return None

        normalized = cls._normalize(match.group("number"))
        try:
            value = Decimal(normalized)
        except InvalidOperation:
            return None
        return value.quantize(CENT, rounding=ROUND_HALF_UP)

    @classmethod
    def _normalize(cls, number_str: str) -> str:
        """
        Turn a matched number into Decimal syntax.

        Handles:
        - Brazilian format: 1.234,56 -> 1234.56
        - Single comma as decimal: 50,5 -> 50.5
        - Single dot with three trailing digits: 1.234 -> 1234
        - Single dot otherwise: 12.50 -> 12.50
        """
        if "," in number_str:
            return number_str.replace(".", "").replace(",", ".")

        dots = number_str.count(".")
        if dots > 1:
            return number_str.replace(".", "")
        if dots == 1:
            whole, fraction = number_str.split(".")
            if len(fraction) == 3:
                # Thousand separator
                return whole + fraction
        return number_str

    @classmethod
    def format(cls, value: Decimal, symbol: bool = True) -> str:
        """
        Format an amount as Brazilian currency.

        Args:
            value: Amount to format
            symbol: Whether to prefix "R$ "

        Returns:
            String such as "R$ 1.234,56" or "-R$ 10,00"
        """
        amount = Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
        sign = "-" if amount < 0 else ""
        whole, fraction = f"{abs(amount):.2f}".split(".")
        grouped = f"{int(whole):,}".replace(",", ".")
        body = f"{grouped},{fraction}"
        return f"{sign}{CURRENCY_SYMBOL} {body}" if symbol else f"{sign}{body}"

    @classmethod
    def mask_input(cls, raw: str) -> str:
        """
        Format keypad input where the last two digits are cents.

        Args:
            raw: Text typed so far; non-digits are ignored

        Returns:
            Masked value such as "1.234,56", or "" when there are no digits
        """
        digits = re.sub(r"\D", "", raw or "")
        if not digits:
            return ""
        return cls.format(Decimal(int(digits)) / 100, symbol=False)
