"""Local syntax check and de-duplication applied before a batch is submitted."""
from __future__ import annotations

import re
from typing import Iterable, Set

from .models import FilterResult, normalise_email

# Permissive ``local@domain.tld`` shape; the service performs the real syntax check.
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_plausible_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value.strip()))


def filter_emails(emails: Iterable[str]) -> FilterResult:
    """Split raw addresses into those worth submitting and those rejected locally.

    Order is preserved and the original casing of each kept address is
    submitted; only the first occurrence of a normalised address is kept.
    """

    result = FilterResult()
    seen: Set[str] = set()
    for email in emails:
        if not isinstance(email, str) or not is_plausible_email(email):
            result.rejected.append(str(email))
            continue
        key = normalise_email(email)
        if key in seen:
            result.duplicate_count += 1
            continue
        seen.add(key)
        result.to_submit.append(email.strip())
    return result


__all__ = ["EMAIL_PATTERN", "filter_emails", "is_plausible_email"]
