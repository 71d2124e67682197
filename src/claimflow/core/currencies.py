from __future__ import annotations

# Active ISO-4217 codes likely to appear on expense receipts.
ISO_4217_CODES = frozenset(
    {
        "AED", "ARS", "AUD", "BDT", "BGN", "BHD", "BRL", "CAD", "CHF", "CLP",
        "CNY", "COP", "CZK", "DKK", "EGP", "EUR", "GBP", "HKD", "HUF", "IDR",
        "ILS", "INR", "ISK", "JPY", "KES", "KRW", "KWD", "LKR", "MAD", "MXN",
        "MYR", "NGN", "NOK", "NZD", "OMR", "PEN", "PHP", "PKR", "PLN", "QAR",
        "RON", "RSD", "RUB", "SAR", "SEK", "SGD", "THB", "TRY", "TWD", "UAH",
        "USD", "VND", "ZAR",
    }
)


def is_iso4217_currency(code: str | None) -> bool:
    return bool(code) and code.strip().upper() in ISO_4217_CODES


def normalize_currency(code: str | None) -> str | None:
    if not code:
        return None
    cleaned = code.strip().upper()
    if cleaned not in ISO_4217_CODES:
        return None
    return cleaned
