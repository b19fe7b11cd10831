from __future__ import annotations

import re

VALID_SYMBOL_RE = re.compile(r"^[A-Z0-9.-]{1,20}$")
USD_PAIR_RE = re.compile(r"^([A-Z0-9]{2,10})-USD$")

# venue -> pair template for a crypto base asset
CRYPTO_VENUES = {
    "coinbase": "COINBASE:{base}-USD",
    "binance": "BINANCE:{base}USDT",
}

# client alias -> crypto base asset
CRYPTO_ALIASES = {
    "BTC": "BTC",
    "BTC-USD": "BTC",
    "ETH": "ETH",
    "ETH-USD": "ETH",
    "SOL": "SOL",
    "SOL-USD": "SOL",
    "ADA": "ADA",
    "ADA-USD": "ADA",
    "DOGE": "DOGE",
    "DOGE-USD": "DOGE",
}


def normalize_symbol(raw: str) -> str:
    return str(raw).strip().upper()


def is_valid_symbol(symbol: str) -> bool:
    return bool(VALID_SYMBOL_RE.fullmatch(symbol))


def map_to_provider_symbol(symbol: str, venue: str = "coinbase") -> str:
    """Map a client ticker or crypto alias to the quote provider's identifier.

    Known crypto aliases and any ``<BASE>-USD`` pair resolve to the venue pair
    (``BTC`` -> ``COINBASE:BTC-USD``); everything else is treated as a stock or
    ETF ticker and passed through.
    """
    s = normalize_symbol(symbol)
    template = CRYPTO_VENUES.get(venue)
    if template is None:
        raise ValueError(f"unknown crypto venue: {venue}")

    base = CRYPTO_ALIASES.get(s)
    if base is None:
        match = USD_PAIR_RE.fullmatch(s)
        if match:
            base = match.group(1)
    if base is None:
        return s
    return template.format(base=base)
