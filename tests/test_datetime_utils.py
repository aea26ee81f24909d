from datetime import datetime, timezone
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

from datetime_utils import (
    checklist_date_key,
    epoch_ms,
    from_epoch_ms,
    normalize_date_key,
    parse_rfc3339,
    to_rfc3339_utc,
)


def test_checklist_day_starts_at_three_am():
    assert checklist_date_key(datetime(2024, 3, 10, 2, 59)) == "2024-03-09"
    assert checklist_date_key(datetime(2024, 3, 10, 3, 0)) == "2024-03-10"
    assert checklist_date_key(datetime(2024, 3, 10, 23, 30)) == "2024-03-10"
    # new year rolls back across the year boundary
    assert checklist_date_key(datetime(2024, 1, 1, 1, 0)) == "2023-12-31"


def test_epoch_ms_round_trip_keeps_milliseconds():
    moment = datetime(2024, 5, 1, 12, 30, 15, 250000, tzinfo=timezone.utc)
    value = epoch_ms(moment)
    assert value == 1714566615250
    assert from_epoch_ms(value) == moment
    assert from_epoch_ms(None) is None


def test_naive_datetimes_are_treated_as_utc():
    assert epoch_ms(datetime(1970, 1, 1, 0, 0, 1)) == 1000
    assert to_rfc3339_utc(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05Z"


def test_parse_rfc3339_variants():
    parsed = parse_rfc3339("2024-06-01T10:00:00.5Z")
    assert parsed == datetime(2024, 6, 1, 10, 0, 0, 500000, tzinfo=timezone.utc)
    shifted = parse_rfc3339("2024-06-01T10:00:00+02:00")
    assert shifted == datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
    assert parse_rfc3339("") is None
    assert parse_rfc3339("yesterday") is None


def test_normalize_date_key():
    assert normalize_date_key("2024-02-29") == "2024-02-29"
    assert normalize_date_key(" 2024-02-29 ") == "2024-02-29"
    assert normalize_date_key(None) is None
    assert normalize_date_key("29.02.2024") is None
    assert normalize_date_key("2024-02-29T12:00:00Z") is not None
