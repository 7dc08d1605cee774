"""A block that shows the price of one bitcoin in a chosen currency."""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Optional

from barblocks.core import (
    Block,
    BlockError,
    ClickEvent,
    ConfigurationError,
    MouseButton,
    TextWidget,
    Update,
    UpdateRequest,
)

TICKER_URL = "https://blockchain.info/ticker"

Fetcher = Callable[[str], str]


@dataclass(frozen=True)
class Ticker:
    """The price of one bitcoin in a currency."""

    m15: float = 0.0
    last: float = 0.0
    buy: float = 0.0
    sell: float = 0.0
    symbol: str = "None"


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("not a number")
    return float(value)


def parse_ticker(body: str, currency: str) -> Ticker:
    """The ticker entry for `currency`; a default ticker if it is missing or malformed."""
    try:
        entry = json.loads(body)[currency]
        symbol = entry["symbol"]
        if not isinstance(symbol, str):
            raise ValueError("symbol is not a string")
        return Ticker(
            m15=_number(entry["15m"]),
            last=_number(entry["last"]),
            buy=_number(entry["buy"]),
            sell=_number(entry["sell"]),
            symbol=symbol,
        )
    except (ValueError, KeyError, TypeError):
        return Ticker()


def _format_number(value: float) -> str:
    return str(int(value)) if value.is_integer() else repr(value)


def _fetch(url: str) -> str:
    try:
        with urllib.request.urlopen(url, timeout=10) as response:
            return response.read().decode("utf-8", errors="replace")
    except (urllib.error.URLError, OSError) as exc:
        raise BlockError("bitcoin", f"request to {url} failed: {exc}") from exc


def _config_error(detail: str) -> ConfigurationError:
    return ConfigurationError("bitcoin", "Failed to deserialize block config.", detail)


@dataclass
class BitcoinConfig:
    """Configuration of the bitcoin block; `interval` is in seconds."""

    interval: float = 60.0
    currency: str = "USD"
    currency_list: list[str] = field(default_factory=lambda: ["USD"])

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "BitcoinConfig":
        unknown = sorted(set(mapping) - {f.name for f in fields(cls)})
        if unknown:
            raise _config_error(f"unknown fields: {', '.join(unknown)}")
        values = dict(mapping)
        if "interval" in values:
            interval = values["interval"]
            if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval < 0:
                raise _config_error("bad `interval`")
            values["interval"] = float(interval)
        if "currency" in values and not isinstance(values["currency"], str):
            raise _config_error("`currency` must be a string")
        if "currency_list" in values:
            currencies = values["currency_list"]
            if not isinstance(currencies, (list, tuple)) or not all(isinstance(c, str) for c in currencies):
                raise _config_error("`currency_list` must be a list of strings")
            if not currencies:
                raise _config_error("`currency_list` must not be empty")
            values["currency_list"] = list(currencies)
        return cls(**values)


class Bitcoin(Block):
    """Shows the bitcoin price; scrolling down switches to the next currency."""

    def __init__(
        self,
        id: int,
        config: BitcoinConfig,
        update_request: Optional[UpdateRequest] = None,
        *,
        url: str = TICKER_URL,
        fetch: Optional[Fetcher] = None,
    ) -> None:
        self.id = id
        self.config = config
        self.url = url
        self._fetch = fetch if fetch is not None else _fetch
        self.currency = config.currency
        self.currency_list = list(config.currency_list)
        self.list_index = 0
        self.text = TextWidget(id, 0, text="Bitcoin")

    def _compute_index(self) -> None:
        for index, currency in enumerate(self.currency_list):
            if currency == self.currency:
                self.list_index = index

    def next_currency(self) -> None:
        """Move on to the next currency of the list, wrapping around."""
        index = self.list_index + 1
        if index >= len(self.currency_list):
            index = 0
        self.list_index = index
        self.currency = self.currency_list[index]

    def update(self) -> Update:
        self._compute_index()
        try:
            body = self._fetch(self.url)
        except (OSError, ValueError) as exc:
            raise BlockError("bitcoin", f"request to {self.url} failed: {exc}") from exc
        ticker = parse_ticker(body, self.currency)
        self.text.text = f"1 BTC to {self.currency}: {_format_number(ticker.last)} {ticker.symbol}"
        return Update.every(self.config.interval)

    def view(self) -> list[TextWidget]:
        return [self.text]

    def click(self, event: ClickEvent) -> None:
        if event.instance is None or event.instance != self.text.instance:
            return
        if event.button is MouseButton.WHEEL_DOWN:
            self.next_currency()
            self.update()