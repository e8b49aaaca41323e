"""Display invoice numbers from the tenant counter and format template.

The tenant configures a template such as ``INV/25-26/00001``. Generating a
number refreshes the year tokens in the template to the current date and
replaces its trailing digit run (the sequence slot) with the counter value,
zero-padded to the slot's width:

>>> from datetime import date
>>> generate_invoice_number(7, "INV/25-26/00001", today=date(2031, 4, 1))
'INV/31-32/00007'
>>> generate_invoice_number(42, "")
'42'
>>> generate_invoice_number(3, "ABC")
'ABC00003'

Substitution order is fixed: year ranges (``YY-YY`` then ``YYYY-YYYY``), then
standalone years in the remaining text, then sequence slot detection. A digit
group only counts as a year token when it is not part of a longer digit run,
so sequence digits elsewhere in the template are never rewritten.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import re
from typing import List, Optional

from rental_billing.config.settings import get_fallback_sequence_width
from rental_billing.models.billing import InvoiceCounter

# ASCII: \d and \b only see 0-9 and [A-Za-z0-9_]
_YEAR_RANGE_RE = re.compile(r"((?<!\d)(?:\d{2}-\d{2}|\d{4}-\d{4})(?!\d))", re.ASCII)
_SHORT_YEAR_RE = re.compile(r"\b\d{2}\b", re.ASCII)
_LONG_YEAR_RE = re.compile(r"\b\d{4}\b", re.ASCII)
_DIGIT_RUN_RE = re.compile(r"\d+", re.ASCII)


@dataclass(frozen=True)
class YearTokens:
    current_year: str
    current_year_short: str
    next_year_short: str

    @classmethod
    def for_date(cls, today: date) -> "YearTokens":
        return cls(
            current_year=str(today.year),
            current_year_short=str(today.year)[-2:],
            next_year_short=str(today.year + 1)[-2:],
        )

    @property
    def year_range(self) -> str:
        return f"{self.current_year_short}-{self.next_year_short}"

    @property
    def full_year_range(self) -> str:
        return f"{self.current_year}-{int(self.current_year) + 1}"


def _replace_single_years(text: str, years: YearTokens) -> str:
    def _short(match: re.Match) -> str:
        return years.current_year_short if 20 <= int(match.group()) <= 99 else match.group()

    def _long(match: re.Match) -> str:
        return years.current_year if 2000 <= int(match.group()) <= 2099 else match.group()

    text = _SHORT_YEAR_RE.sub(_short, text)
    return _LONG_YEAR_RE.sub(_long, text)


def substitute_year_tokens(fmt: str, today: Optional[date] = None) -> str:
    """Refresh every year-like token in ``fmt`` to ``today`` (default: local date)."""
    years = YearTokens.for_date(today or date.today())
    # Odd indices are year ranges; single-year rules only see the text between them
    parts: List[str] = _YEAR_RANGE_RE.split(fmt)
    out: List[str] = []
    for idx, part in enumerate(parts):
        if idx % 2:
            out.append(years.year_range if len(part) == 5 else years.full_year_range)
        else:
            out.append(_replace_single_years(part, years))
    return "".join(out)


def generate_invoice_number(sequence_value: int, fmt: Optional[str], *, today: Optional[date] = None) -> str:
    """Return the display invoice number for ``sequence_value`` under ``fmt``.

    Empty templates yield the bare counter. A template without any digits gets
    the counter appended, padded to ``FALLBACK_SEQUENCE_WIDTH`` (5). Padding is
    a minimum width, wider values are never truncated. Any text after the
    sequence slot is dropped.
    """
    if not fmt or not fmt.strip():
        return str(sequence_value)

    processed = substitute_year_tokens(fmt, today)

    runs = list(_DIGIT_RUN_RE.finditer(processed))
    if runs:
        slot = runs[-1]
        width = slot.end() - slot.start()
        return processed[:slot.start()] + str(sequence_value).zfill(width)

    return processed + str(sequence_value).zfill(get_fallback_sequence_width())


def next_invoice_number(counter: InvoiceCounter, *, today: Optional[date] = None) -> str:
    """Number the next invoice would receive; does not advance the counter."""
    return generate_invoice_number(counter.invoice_count + 1, counter.global_invoice_format, today=today)


__all__ = ["YearTokens", "substitute_year_tokens", "generate_invoice_number", "next_invoice_number"]
