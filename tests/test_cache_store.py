"""Tests for the file-backed quote cache."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st

from quote_engine.models.market import MarketKind
from quote_engine.services.cache_store import (
    CacheRecord,
    cache_key,
    cache_path,
    evaluate_freshness,
    read_cache,
    record_to_quote,
    ttl_for_kind,
    write_cache,
)
from quote_engine.utils.config import RuntimeConfig

NOW = datetime(2026, 2, 10, 12, 0, 0, tzinfo=UTC)


def fixture_record(fetched_at="2026-02-10T11:56:00+00:00", unit_price="32.1"):
    return CacheRecord(
        base="USD",
        quote="TWD",
        provider="frankfurter",
        unit_price=unit_price,
        fetched_at=fetched_at,
    )


class TestCacheLayout:
    """Keys and paths."""

    def test_key_is_lowercase_kind_base_quote(self):
        assert cache_key(MarketKind.FX, "USD", "TWD") == "fx-usd-twd"
        assert cache_key(MarketKind.CRYPTO, "BTC", "USD") == "crypto-btc-usd"

    def test_path_lives_under_cache_dir(self, tmp_path):
        config = RuntimeConfig(cache_dir=tmp_path)

        path = cache_path(config, MarketKind.CRYPTO, "BTC", "USD")

        assert path == tmp_path / "market-cli" / "crypto-btc-usd.json"

    def test_ttl_depends_on_kind(self):
        assert ttl_for_kind(MarketKind.FX) == 86400
        assert ttl_for_kind(MarketKind.CRYPTO) == 300


class TestReadWrite:
    """Persistence and corruption handling."""

    def test_round_trip(self, tmp_path):
        path = tmp_path / "market-cli" / "fx-usd-twd.json"
        record = fixture_record()

        write_cache(path, record)

        assert read_cache(path) == record

    def test_missing_file_is_a_miss(self, tmp_path):
        assert read_cache(tmp_path / "absent.json") is None

    @pytest.mark.parametrize(
        "payload",
        ["not json", "[1, 2]", '{"base": "USD"}', ""],
    )
    def test_corrupt_payload_is_a_miss(self, tmp_path, payload):
        path = tmp_path / "fx-usd-twd.json"
        path.write_text(payload)

        assert read_cache(path) is None

    def test_undecodable_bytes_are_a_miss(self, tmp_path):
        path = tmp_path / "fx-usd-twd.json"
        path.write_bytes(b"\xff\xfe\x00garbage")

        assert read_cache(path) is None

    def test_unreadable_path_raises(self, tmp_path):
        path = tmp_path / "fx-usd-twd.json"
        path.mkdir()

        with pytest.raises(OSError):
            read_cache(path)

    def test_write_replaces_existing_record_and_leaves_no_temp_files(self, tmp_path):
        path = tmp_path / "market-cli" / "fx-usd-twd.json"
        write_cache(path, fixture_record(unit_price="31.0"))

        write_cache(path, fixture_record(unit_price="32.5"))

        assert read_cache(path).unit_price == "32.5"
        assert [p.name for p in path.parent.iterdir()] == ["fx-usd-twd.json"]

    def test_failed_write_cleans_up_temp_file(self, tmp_path):
        path = tmp_path / "fx-usd-twd.json"
        path.mkdir()

        with pytest.raises(OSError):
            write_cache(path, fixture_record())

        assert [p.name for p in tmp_path.iterdir()] == ["fx-usd-twd.json"]


class TestFreshness:
    """TTL evaluation."""

    def test_record_within_ttl_is_fresh(self):
        freshness = evaluate_freshness(fixture_record("2026-02-10T11:56:00Z"), NOW, 300)

        assert freshness.age_secs == 240
        assert freshness.is_fresh

    def test_record_past_ttl_is_stale(self):
        freshness = evaluate_freshness(fixture_record("2026-02-10T11:54:00Z"), NOW, 300)

        assert freshness.age_secs == 360
        assert not freshness.is_fresh

    def test_age_equal_to_ttl_is_fresh(self):
        assert evaluate_freshness(fixture_record("2026-02-10T11:55:00Z"), NOW, 300).is_fresh

    def test_future_timestamp_has_zero_age(self):
        freshness = evaluate_freshness(fixture_record("2026-02-10T12:30:00Z"), NOW, 300)

        assert freshness.age_secs == 0
        assert freshness.is_fresh

    @pytest.mark.parametrize("fetched_at", ["yesterday", "", "2026-02-10T11:59:00"])
    def test_unparseable_timestamp_is_never_fresh(self, fetched_at):
        freshness = evaluate_freshness(fixture_record(fetched_at), NOW, 300)

        assert freshness.age_secs == 301
        assert not freshness.is_fresh

    @given(age=st.integers(min_value=0, max_value=10 * 86400), ttl=st.integers(min_value=1, max_value=86400))
    def test_is_fresh_iff_age_within_ttl(self, age, ttl):
        fetched_at = (NOW - timedelta(seconds=age)).isoformat()

        freshness = evaluate_freshness(fixture_record(fetched_at), NOW, ttl)

        assert freshness.age_secs == age
        assert freshness.is_fresh is (age <= ttl)


class TestRecordToQuote:
    def test_rebuilds_quote(self):
        quote = record_to_quote(fixture_record())

        assert quote.provider == "frankfurter"
        assert str(quote.unit_price) == "32.1"
        assert quote.fetched_at == datetime(2026, 2, 10, 11, 56, tzinfo=UTC)

    @pytest.mark.parametrize(
        "record",
        [fixture_record(unit_price="abc"), fixture_record(unit_price="NaN"), fixture_record("bad")],
    )
    def test_unusable_record_yields_none(self, record):
        assert record_to_quote(record) is None


def test_cache_dir_is_created_on_first_write(tmp_path):
    """Test that writing creates missing parent directories."""
    path = Path(tmp_path) / "nested" / "market-cli" / "crypto-btc-usd.json"

    write_cache(path, fixture_record())

    assert path.exists()
