"""Unit tests for decimal, time and retry helpers"""

from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from app.core.exceptions import TransientError, ValidationError
from app.utils.decimal_utils import (currency_exponent, from_minor_units,
                                     round_decimal, to_minor_units)
from app.utils.retry import backoff_delay, retry_async
from app.utils.time_utils import (iso_week_start, local_date,
                                  resolve_timezone, to_naive_utc)


class TestDecimalUtils:
    """Test minor unit conversions"""

    def test_currency_exponent(self):
        assert currency_exponent("INR") == 2
        assert currency_exponent("jpy") == 0
        assert currency_exponent("KWD") == 3

    def test_to_minor_units(self):
        assert to_minor_units(Decimal("12.34"), "USD") == 1234
        assert to_minor_units(Decimal("301"), "JPY") == 301

    def test_to_minor_units_rejects_excess_precision(self):
        with pytest.raises(ValueError):
            to_minor_units(Decimal("0.001"), "USD")

    def test_three_decimal_currency(self):
        assert to_minor_units(Decimal("1.005"), "KWD") == 1005
        assert from_minor_units(502, "BHD") == Decimal("0.502")
        with pytest.raises(ValueError):
            to_minor_units(Decimal("1.0005"), "KWD")

    def test_from_minor_units(self):
        assert from_minor_units(3334, "USD") == Decimal("33.34")
        assert from_minor_units(101, "JPY") == Decimal("101")

    def test_round_decimal(self):
        assert round_decimal(Decimal("2.345")) == Decimal("2.35")


class TestTimeUtils:
    """Test timezone and week helpers"""

    def test_iso_week_start_is_monday(self):
        # 2024-03-14 is a Thursday
        assert iso_week_start(date(2024, 3, 14)) == date(2024, 3, 11)
        assert iso_week_start(date(2024, 3, 11)) == date(2024, 3, 11)
        assert iso_week_start(date(2024, 3, 17)) == date(2024, 3, 11)

    def test_local_date_crosses_midnight(self):
        # 20:00 UTC is already the next day in Kolkata (UTC+5:30)
        tz = resolve_timezone("Asia/Kolkata")
        assert local_date(datetime(2024, 3, 10, 20, 0), tz) == date(2024, 3, 11)

    def test_unknown_timezone_falls_back_to_utc(self):
        tz = resolve_timezone("Mars/Olympus_Mons")
        assert local_date(datetime(2024, 3, 10, 23, 59), tz) == date(2024, 3, 10)

    def test_to_naive_utc(self):
        aware = datetime.fromisoformat("2024-03-10T10:00:00+02:00")
        assert to_naive_utc(aware) == datetime(2024, 3, 10, 8, 0)


class TestRetry:
    """Test bounded retry with backoff"""

    def test_backoff_delay_bounded(self):
        for attempt in range(1, 10):
            assert 0 <= backoff_delay(attempt, 0.1, 1.0) <= 1.0

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        operation = AsyncMock(side_effect=[TransientError(), TransientError(), "ok"])

        with patch("app.utils.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await retry_async(operation, attempts=3, base_delay=0.1, max_delay=1.0)

        assert result == "ok"
        assert operation.await_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        operation = AsyncMock(side_effect=TransientError("down"))

        with patch("app.utils.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(TransientError, match="down"):
                await retry_async(operation, attempts=2, base_delay=0.1, max_delay=1.0)

        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_does_not_retry_other_errors(self):
        operation = AsyncMock(side_effect=ValidationError("bad"))

        with pytest.raises(ValidationError):
            await retry_async(operation, attempts=5, base_delay=0.1, max_delay=1.0)

        assert operation.await_count == 1
