"""Order-inverting string keys for magnitudes and timestamps.

Both encoders produce strings whose ascending lexicographic order is the
descending order of their input, so "largest first" and "newest first"
reads are plain ascending index scans.

Magnitude keys use fixed-point digits with ``RANK_SCALE`` fractional
places. Digits below that precision are truncated toward zero, so two
magnitudes that differ only beyond it encode identically and rely on the
tiebreak suffix of :func:`rank_key`. The scaled integer is written as a
``LENGTH_WIDTH``-digit inverted length prefix followed by the nines'
complement of its digits::

    0      -> "9998" + "9"
    1      -> "9980" + "8999999999999999999"
    10**20 -> "9960" + "8999...9"

A longer number always has a smaller prefix; numbers of equal length
compare digit by digit in reverse. The largest encodable magnitude has
``MAX_SCALED_DIGITS`` scaled digits (about ``10**9981``).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

RANK_SCALE = 18
LENGTH_WIDTH = 4
MAX_SCALED_DIGITS = 10**LENGTH_WIDTH - 1

RANK_KEY_SEPARATOR = ":"

INVERSE_TIME_WIDTH = 16
INVERSE_TIME_MAX = 10**INVERSE_TIME_WIDTH - 1
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_COMPLEMENT = str.maketrans("0123456789", "9876543210")


def _scaled_digits(magnitude: Decimal) -> str:
    """Return the magnitude as a fixed-point integer string without leading zeros."""
    sign, digits, exponent = magnitude.as_tuple()
    assert isinstance(exponent, int)
    shift = exponent + RANK_SCALE
    raw = "".join(str(d) for d in digits)
    if shift >= 0:
        raw = raw + "0" * shift
    else:
        raw = raw[:shift]
    return raw.lstrip("0") or "0"


def encode_magnitude(magnitude: Decimal) -> str:
    """Encode ``magnitude`` so that larger values sort lexicographically first.

    Args:
        magnitude: Finite, non-negative decimal.

    Returns:
        Inverted length prefix plus complemented fixed-point digits.

    Raises:
        ValueError: If the magnitude is negative, not finite, or has more
            than ``MAX_SCALED_DIGITS`` digits once scaled.
    """
    magnitude = Decimal(magnitude)
    if not magnitude.is_finite():
        raise ValueError(f"Magnitude must be finite, got {magnitude}")
    if magnitude < 0:
        raise ValueError(f"Magnitude must be non-negative, got {magnitude}")

    digits = _scaled_digits(magnitude)
    if len(digits) > MAX_SCALED_DIGITS:
        raise ValueError(
            f"Magnitude too large to encode: {len(digits)} scaled digits exceeds "
            f"{MAX_SCALED_DIGITS}"
        )

    prefix = str(MAX_SCALED_DIGITS - len(digits)).zfill(LENGTH_WIDTH)
    return prefix + digits.translate(_COMPLEMENT)


def rank_key(magnitude: Decimal, tiebreak: str) -> str:
    """Return the rank index key for a total, suffixed with ``tiebreak``.

    Equal totals fall back to the ascending order of ``tiebreak``; the
    aggregation transaction passes the inverse-time vote id of the latest
    folded vote.
    """
    return f"{encode_magnitude(magnitude)}{RANK_KEY_SEPARATOR}{tiebreak}"


def inverse_time_key(moment: datetime) -> str:
    """Return a fixed-width key that sorts later moments first.

    Naive datetimes are treated as UTC. Resolution is one microsecond.

    Raises:
        ValueError: If ``moment`` predates the Unix epoch or overflows the key width.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    micros = (moment - _EPOCH) // timedelta(microseconds=1)
    if micros < 0 or micros > INVERSE_TIME_MAX:
        raise ValueError(f"Moment out of range for inverse time key: {moment.isoformat()}")
    return str(INVERSE_TIME_MAX - micros).zfill(INVERSE_TIME_WIDTH)
