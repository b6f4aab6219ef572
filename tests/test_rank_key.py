# tests/test_rank_key.py
from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from tally_stage.services.rank_key import (
    INVERSE_TIME_MAX,
    encode_magnitude,
    inverse_time_key,
    rank_key,
)


class TestEncodeMagnitude:
    def test_known_encodings(self) -> None:
        assert encode_magnitude(Decimal("0")) == "9998" + "9"
        assert encode_magnitude(Decimal("1")) == "9980" + "8" + "9" * 18
        assert encode_magnitude(Decimal("0.5")) == "9981" + "4" + "9" * 17

    def test_larger_magnitudes_sort_first(self) -> None:
        values = [
            Decimal("0"),
            Decimal("0.000001"),
            Decimal("0.5"),
            Decimal("1"),
            Decimal("2"),
            Decimal("9"),
            Decimal("10"),
            Decimal("99.99"),
            Decimal("100"),
            Decimal("12345678901234567890"),
            Decimal("12345678901234567891"),
        ]
        by_key = sorted(values, key=encode_magnitude)
        assert by_key == sorted(values, reverse=True)

    def test_equivalent_decimals_encode_identically(self) -> None:
        assert encode_magnitude(Decimal("1.50")) == encode_magnitude(Decimal("1.5"))
        assert encode_magnitude(Decimal("1E+2")) == encode_magnitude(Decimal("100"))

    def test_digits_below_precision_are_truncated(self) -> None:
        assert encode_magnitude(Decimal("1E-19")) == encode_magnitude(Decimal("0"))
        assert encode_magnitude(Decimal("1.0000000000000000009")) == encode_magnitude(
            Decimal("1")
        )

    def test_largest_encodable_magnitude(self) -> None:
        key = encode_magnitude(Decimal("1E+9980"))
        assert key.startswith("0000")

    @pytest.mark.parametrize("value", ["-1", "-0.000001", "NaN", "Infinity", "1E+9981"])
    def test_rejects_values_outside_domain(self, value: str) -> None:
        with pytest.raises(ValueError):
            encode_magnitude(Decimal(value))


def test_rank_key_breaks_ties_with_suffix() -> None:
    newer = rank_key(Decimal("5"), "0000000000000001")
    older = rank_key(Decimal("5"), "0000000000000002")
    bigger = rank_key(Decimal("6"), "0000000000000009")

    assert sorted([older, newer, bigger]) == [bigger, newer, older]
    assert newer.endswith(":0000000000000001")


class TestInverseTimeKey:
    def test_epoch_is_max_key(self) -> None:
        assert inverse_time_key(datetime(1970, 1, 1, tzinfo=UTC)) == str(INVERSE_TIME_MAX)

    def test_microsecond_resolution(self) -> None:
        moment = datetime(1970, 1, 1, tzinfo=UTC) + timedelta(microseconds=1)
        assert inverse_time_key(moment) == "9999999999999998"

    def test_later_moments_sort_first(self) -> None:
        earlier = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
        later = earlier + timedelta(milliseconds=1)
        keys = [inverse_time_key(earlier), inverse_time_key(later)]
        assert sorted(keys) == [inverse_time_key(later), inverse_time_key(earlier)]
        assert all(len(key) == 16 for key in keys)

    def test_naive_datetimes_are_utc(self) -> None:
        naive = datetime(2024, 3, 1, 12, 0)
        aware = datetime(2024, 3, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert inverse_time_key(naive) == inverse_time_key(aware)

    def test_rejects_moments_before_epoch(self) -> None:
        with pytest.raises(ValueError):
            inverse_time_key(datetime(1969, 12, 31, tzinfo=UTC))
