"""
Formatting helpers for text that will be read aloud by the voice platform.
"""

import time
from datetime import date, datetime
from typing import Optional, Union

Number = Union[int, float]


def format_amount(amount: Number) -> str:
    """Dollar amount with exactly two decimals, e.g. 250.5 -> '250.50'."""
    return f"{float(amount):.2f}"


def format_limit(amount: Number) -> str:
    """Thousands-grouped amount without trailing zero cents, e.g. 5000 -> '5,000'."""
    text = f"{float(amount):,.2f}"
    return text[:-3] if text.endswith(".00") else text


def spell_digits(value: str) -> str:
    """'123456789' -> '1 2 3 4 5 6 7 8 9' so TTS reads digits one by one."""
    return " ".join(str(value).strip())


def last_four(value: Optional[str]) -> str:
    return str(value or "")[-4:]


def timestamp_reference(prefix: str) -> str:
    """Prefix plus the last 8 digits of the current millisecond timestamp."""
    return f"{prefix}{str(int(time.time() * 1000))[-8:]}"


def speak_date(value: Union[str, date, datetime, None]) -> str:
    """Render a date the way a US caller expects to hear it (M/D/YYYY)."""
    if value is None:
        return "an unknown date"
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return f"{value.month}/{value.day}/{value.year}"
