"""Text / JSON / CSV renderers for CLI output."""

from __future__ import annotations

import csv
import io
import json
from typing import Callable, List, Optional, Sequence, Tuple

from exchangerate.models.rates import ExchangeRateResponse

FORMATS = ("text", "json", "csv")

_CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "¥",
    "AUD": "A$",
    "CAD": "C$",
    "CHF": "Fr",
    "INR": "₹",
}


class InvalidFormatError(ValueError):
    pass


def resolve_format(fmt: Optional[str]) -> str:
    if fmt is None:
        return "text"
    lowered = fmt.lower()
    if lowered not in FORMATS:
        raise InvalidFormatError(f"Invalid output format: {fmt}")
    return lowered


def heading(text: str, color: bool) -> str:
    return f"\033[1;32m{text}\033[0m" if color else text


def format_currency_amount(amount: float, currency: str) -> str:
    return f"{_CURRENCY_SYMBOLS.get(currency, '')}{amount:.2f}"


def _table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    widths = [len(h) for h in headers]
    for row in rows:
        widths = [max(w, len(c)) for w, c in zip(widths, row)]
    lines = ["  ".join(h.ljust(w) for h, w in zip(headers, widths)).rstrip()]
    lines.append("  ".join("-" * w for w in widths))
    for row in rows:
        lines.append("  ".join(c.ljust(w) for c, w in zip(row, widths)).rstrip())
    return "\n".join(lines)


def _csv(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buf.getvalue().rstrip("\n")


def _dispatch(
    fmt: Optional[str],
    text: Callable[[], str],
    as_json: Callable[[], object],
    as_csv: Callable[[], str],
) -> str:
    resolved = resolve_format(fmt)
    if resolved == "json":
        return json.dumps(as_json(), indent=2, ensure_ascii=False)
    if resolved == "csv":
        return as_csv()
    return text()


# Latest rates -----------------------------------------------------
def format_latest_rates(
    rates: ExchangeRateResponse, fmt: Optional[str] = None, color: bool = False
) -> str:
    ordered = sorted(rates.conversion_rates.items())

    def text() -> str:
        out = [
            f"{heading('Base Currency:', color)} {rates.base_code}",
            f"{heading('Last Updated:', color)} {rates.time_last_update_utc}",
            f"{heading('Next Update:', color)} {rates.time_next_update_utc}",
            "",
            _table(("Code", "Rate"), [(c, f"{r:.4f}") for c, r in ordered]),
            "",
            f"{heading('Total Currencies:', color)} {len(ordered)}",
        ]
        return "\n".join(out)

    return _dispatch(
        fmt,
        text,
        lambda: {
            "base_currency": rates.base_code,
            "last_updated": rates.time_last_update_utc,
            "next_update": rates.time_next_update_utc,
            "rates": dict(ordered),
        },
        lambda: _csv(("Currency Code", "Rate"), [(c, f"{r:.4f}") for c, r in ordered]),
    )


# Conversion -------------------------------------------------------
def format_conversion(
    amount: float,
    from_currency: str,
    to_currency: str,
    converted: float,
    rate: float,
    fmt: Optional[str] = None,
    color: bool = False,
) -> str:
    def text() -> str:
        return "\n".join(
            [
                f"{heading('Conversion:', color)} "
                f"{format_currency_amount(amount, from_currency)} {from_currency} = "
                f"{format_currency_amount(converted, to_currency)} {to_currency}",
                f"{heading('Rate:', color)} {rate:.4f} {to_currency} per {from_currency}",
            ]
        )

    return _dispatch(
        fmt,
        text,
        lambda: {
            "amount": amount,
            "from_currency": from_currency,
            "to_currency": to_currency,
            "converted_amount": converted,
            "rate": rate,
        },
        lambda: _csv(
            ("Amount", "From Currency", "To Currency", "Converted Amount", "Rate"),
            [(f"{amount:.2f}", from_currency, to_currency, f"{converted:.2f}", f"{rate:.4f}")],
        ),
    )


# Pair rate --------------------------------------------------------
def format_pair_rate(
    from_currency: str,
    to_currency: str,
    rate: float,
    fmt: Optional[str] = None,
    color: bool = False,
) -> str:
    return _dispatch(
        fmt,
        lambda: f"{heading('Conversion Rate:', color)} 1 {from_currency} = {rate:.4f} {to_currency}",
        lambda: {"from_currency": from_currency, "to_currency": to_currency, "rate": rate},
        lambda: _csv(
            ("From Currency", "To Currency", "Rate"),
            [(from_currency, to_currency, f"{rate:.4f}")],
        ),
    )


# Supported codes --------------------------------------------------
def format_currency_codes(
    codes: List[Tuple[str, str]], fmt: Optional[str] = None, color: bool = False
) -> str:
    def text() -> str:
        return "\n".join(
            [
                heading("Supported Currency Codes", color),
                "",
                _table(("Code", "Currency"), codes),
                "",
                f"{heading('Total Currencies:', color)} {len(codes)}",
            ]
        )

    return _dispatch(
        fmt,
        text,
        lambda: {"currencies": dict(codes), "count": len(codes)},
        lambda: _csv(("Code", "Currency"), codes),
    )
