from datetime import date
from typing import Iterable, Optional


def generate_document_number(prefix: str, existing: Iterable[Optional[str]], on: date) -> str:
    """Next ``PREFIX-YYMMDD-NNN`` number, counted per prefix and day."""
    stem = f"{prefix}-{on:%y%m%d}-"
    taken = sum(1 for number in existing if number and number.startswith(stem))
    return f"{stem}{taken + 1:03d}"
