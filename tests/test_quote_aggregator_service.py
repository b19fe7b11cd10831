import asyncio
import threading
import time
import unittest

from app.errors import BadRequestError, ConfigurationError, ProviderError
from app.services.quote_aggregator import QuoteAggregatorService, parse_symbols
from app.services.ttl_cache import TTLCache


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class StubQuoteClient:
    provider = "finnhub"

    def __init__(self, fail_symbols: set[str] | None = None, current: float = 101.5) -> None:
        self.fail_symbols = set(fail_symbols or ())
        self.current = current
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def get_quote(self, provider_symbol: str) -> dict:
        with self._lock:
            self.calls.append(provider_symbol)
        if provider_symbol in self.fail_symbols:
            raise ProviderError("finnhub", "request failed (HTTPError)")
        return {
            "previous_close": 100.0,
            "current": self.current,
            "high": 102.0,
            "low": 99.0,
            "open": 100.5,
        }


class SlowQuoteClient(StubQuoteClient):
    def get_quote(self, provider_symbol: str) -> dict:
        if provider_symbol == "SLOW":
            time.sleep(0.3)
        return super().get_quote(provider_symbol)


def _service(client, clock=None, **kwargs) -> QuoteAggregatorService:
    return QuoteAggregatorService(cache=TTLCache(clock=clock or FakeClock()), quote_client=client, **kwargs)


class TestParseSymbols(unittest.TestCase):
    def test_dedupes_case_insensitively_in_request_order(self):
        valid, invalid = parse_symbols("aapl, MSFT,AAPL,,msft ,tsla")
        self.assertEqual(valid, ["AAPL", "MSFT", "TSLA"])
        self.assertEqual(invalid, [])

    def test_missing_or_blank_param_rejected(self):
        for param in (None, "", "   "):
            with self.assertRaises(BadRequestError) as ctx:
                parse_symbols(param)
            self.assertEqual(ctx.exception.error, "missing_symbols")

    def test_only_commas_rejected(self):
        with self.assertRaises(BadRequestError) as ctx:
            parse_symbols(" , ,")
        self.assertEqual(ctx.exception.error, "no_symbols")

    def test_more_than_max_distinct_symbols_rejected(self):
        param = ",".join(f"S{i}" for i in range(101))
        with self.assertRaises(BadRequestError) as ctx:
            parse_symbols(param)
        self.assertEqual(ctx.exception.error, "too_many_symbols")

    def test_duplicates_do_not_count_towards_cap(self):
        param = ",".join(f"S{i}" for i in range(100)) + ",s0,S1"
        valid, _ = parse_symbols(param)
        self.assertEqual(len(valid), 100)

    def test_invalid_symbols_are_reported(self):
        valid, invalid = parse_symbols("AAPL,BAD$,WAY-TOO-LONG-SYMBOL-NAME")
        self.assertEqual(valid, ["AAPL"])
        self.assertEqual(invalid, ["BAD$", "WAY-TOO-LONG-SYMBOL-NAME"])

    def test_all_invalid_rejected(self):
        with self.assertRaises(BadRequestError) as ctx:
            parse_symbols("BAD$,NOPE!")
        self.assertEqual(ctx.exception.error, "invalid_symbols")


class TestQuoteAggregatorService(unittest.TestCase):
    def test_returns_one_entry_per_symbol_with_client_symbol(self):
        client = StubQuoteClient()
        service = _service(client)

        result = asyncio.run(service.get_quotes("AAPL,BTC,ETH-USD"))

        self.assertEqual(list(result.data), ["AAPL", "BTC", "ETH-USD"])
        self.assertEqual(result.data["BTC"].symbol, "BTC")
        self.assertEqual(result.data["BTC"].current, 101.5)
        self.assertEqual(result.data["BTC"].provider, "finnhub")
        self.assertEqual(sorted(client.calls), ["AAPL", "COINBASE:BTC-USD", "COINBASE:ETH-USD"])
        self.assertIsNone(result.invalid_symbols)

    def test_failed_symbol_gets_placeholder_without_failing_batch(self):
        client = StubQuoteClient(fail_symbols={"XYZ"})
        service = _service(client)

        result = asyncio.run(service.get_quotes("AAPL,XYZ,MSFT"))

        self.assertEqual(len(result.data), 3)
        self.assertEqual(result.data["AAPL"].current, 101.5)
        self.assertEqual(result.data["MSFT"].current, 101.5)
        failed = result.data["XYZ"]
        self.assertEqual(failed.symbol, "XYZ")
        self.assertEqual(failed.provider, "finnhub")
        self.assertIsNone(failed.current)
        self.assertIsNone(failed.previous_close)
        self.assertIsNone(failed.high)
        self.assertIsNone(failed.low)
        self.assertIsNone(failed.open)
        self.assertEqual(service.metrics()["provider_failures"], 1)

    def test_failed_symbol_is_not_cached(self):
        client = StubQuoteClient(fail_symbols={"XYZ"})
        service = _service(client)

        asyncio.run(service.get_quotes("XYZ"))
        asyncio.run(service.get_quotes("XYZ"))

        self.assertEqual(client.calls, ["XYZ", "XYZ"])

    def test_second_request_within_ttl_hits_cache(self):
        clock = FakeClock()
        client = StubQuoteClient()
        service = _service(client, clock=clock)

        first = asyncio.run(service.get_quotes("AAPL,MSFT"))
        clock.now += 1800
        second = asyncio.run(service.get_quotes("AAPL,MSFT"))

        self.assertEqual(len(client.calls), 2)
        self.assertEqual(first.to_payload(), second.to_payload())
        self.assertEqual(service.metrics()["cache_hits"], 2)

    def test_request_after_ttl_refetches(self):
        clock = FakeClock()
        client = StubQuoteClient()
        service = _service(client, clock=clock)

        asyncio.run(service.get_quotes("AAPL"))
        client.current = 150.0
        clock.now += 3600
        result = asyncio.run(service.get_quotes("AAPL"))

        self.assertEqual(client.calls, ["AAPL", "AAPL"])
        self.assertEqual(result.data["AAPL"].current, 150.0)

    def test_aliases_share_cache_entry_but_keep_their_symbol(self):
        client = StubQuoteClient()
        service = _service(client)

        first = asyncio.run(service.get_quotes("BTC"))
        second = asyncio.run(service.get_quotes("BTC-USD"))

        self.assertEqual(client.calls, ["COINBASE:BTC-USD"])
        self.assertEqual(first.data["BTC"].symbol, "BTC")
        self.assertEqual(second.data["BTC-USD"].symbol, "BTC-USD")
        self.assertEqual(first.data["BTC"].current, second.data["BTC-USD"].current)
        # cached value keeps the symbol it was stored with
        self.assertEqual(service.cache.get("quote:COINBASE:BTC-USD").symbol, "BTC")

    def test_aliases_in_one_batch_share_one_provider_call(self):
        client = StubQuoteClient()
        service = _service(client)

        result = asyncio.run(service.get_quotes("BTC,BTC-USD"))

        self.assertEqual(client.calls, ["COINBASE:BTC-USD"])
        self.assertEqual(result.data["BTC"].symbol, "BTC")
        self.assertEqual(result.data["BTC-USD"].symbol, "BTC-USD")

    def test_invalid_symbols_listed_next_to_valid_data(self):
        service = _service(StubQuoteClient())

        result = asyncio.run(service.get_quotes("AAPL,BAD$"))

        self.assertEqual(list(result.data), ["AAPL"])
        self.assertEqual(result.invalid_symbols, ["BAD$"])
        self.assertEqual(result.to_payload()["invalidSymbols"], ["BAD$"])

    def test_slow_provider_times_out_into_placeholder(self):
        client = SlowQuoteClient()
        service = _service(client, timeout_sec=0.05)

        result = asyncio.run(service.get_quotes("SLOW,AAPL"))

        self.assertIsNone(result.data["SLOW"].current)
        self.assertEqual(result.data["AAPL"].current, 101.5)

    def test_misses_are_fetched_concurrently(self):
        barrier = threading.Barrier(3, timeout=2)

        class BarrierClient(StubQuoteClient):
            def get_quote(self, provider_symbol: str) -> dict:
                barrier.wait()
                return super().get_quote(provider_symbol)

        service = _service(BarrierClient(), timeout_sec=5)
        result = asyncio.run(service.get_quotes("AAPL,MSFT,TSLA"))

        self.assertEqual([q.current for q in result.data.values()], [101.5, 101.5, 101.5])

    def test_full_batch_of_slow_misses_runs_at_once(self):
        class LaggingClient(StubQuoteClient):
            def get_quote(self, provider_symbol: str) -> dict:
                time.sleep(0.4)
                return super().get_quote(provider_symbol)

        client = LaggingClient()
        service = _service(client, timeout_sec=1.0)
        symbols = ",".join(f"S{i}" for i in range(100))

        started = time.monotonic()
        result = asyncio.run(service.get_quotes(symbols))
        elapsed = time.monotonic() - started

        self.assertEqual(len(client.calls), 100)
        self.assertEqual(service.provider_failures, 0)
        self.assertTrue(all(q.current == 101.5 for q in result.data.values()))
        self.assertLess(elapsed, 1.0)
        service.close()

    def test_binance_venue_maps_crypto_to_usdt_pairs(self):
        client = StubQuoteClient()
        service = _service(client, venue="binance")

        asyncio.run(service.get_quotes("ETH"))

        self.assertEqual(client.calls, ["BINANCE:ETHUSDT"])

    def test_missing_provider_client_is_configuration_error(self):
        service = QuoteAggregatorService(cache=TTLCache(), quote_client=None)

        with self.assertRaises(ConfigurationError) as ctx:
            asyncio.run(service.get_quotes("AAPL"))
        self.assertEqual(ctx.exception.status_code, 500)

    def test_bad_input_is_rejected_before_configuration_check(self):
        service = QuoteAggregatorService(cache=TTLCache(), quote_client=None)

        with self.assertRaises(BadRequestError):
            asyncio.run(service.get_quotes(""))


if __name__ == "__main__":
    unittest.main()
