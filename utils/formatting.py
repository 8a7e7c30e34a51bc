"""
Formatting utilities.
"""

from decimal import Decimal
from typing import Optional, Union


def format_percent(value: Union[Decimal, int, float], decimals: Optional[int] = None) -> str:
    """
    Format a number as a percentage.

    Args:
        value: The percentage value.
        decimals: Number of decimal places. When None, trailing zeros
            are dropped (Decimal("50.00") -> "50%").

    Returns:
        Formatted percentage string.
    """
    if decimals is not None:
        return f"{value:.{decimals}f}%"

    number = value if isinstance(value, Decimal) else Decimal(str(value))
    text = f"{number.normalize():f}"
    return f"{text}%"


def mask_account_number(account_number: Optional[str]) -> str:
    """Show only the last four digits of a bank account number."""
    if not account_number:
        return ""
    if len(account_number) <= 4:
        return account_number
    return f"****{account_number[-4:]}"


def mask_clabe(clabe: Optional[str]) -> str:
    """Show the bank prefix and last four digits of a CLABE."""
    if not clabe:
        return ""
    if len(clabe) <= 4:
        return clabe
    return f"{clabe[:3]}***{clabe[-4:]}"


def token_preview(token: Optional[str]) -> str:
    """Shorten a bearer token for logs: first and last eight characters."""
    if not token:
        return ""
    if len(token) <= 16:
        return f"{token[:4]}..."
    return f"{token[:8]}...{token[-8:]}"
