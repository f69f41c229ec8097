"""Tests for the date and time tool."""

from datetime import datetime, timezone

import pytest

from bibble.core.errors import ToolExecutionError
from bibble.tools.datetime_tool import get_current_datetime


def fixed_now():
    return datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)


def test_named_timezone():
    result = get_current_datetime({"timezone": "Asia/Tokyo"}, now=fixed_now)

    assert result.data["iso"] == "2024-03-01T21:30:00+09:00"
    assert result.data["timezone"] == "Asia/Tokyo"
    assert result.data["unix"] == 1709296200


def test_custom_format():
    result = get_current_datetime({"timezone": "UTC", "format": "%Y-%m-%d %H:%M"}, now=fixed_now)

    assert result.data["formatted"] == "2024-03-01 12:30"


def test_local_timezone_by_default():
    result = get_current_datetime({}, now=fixed_now)

    assert result.data["unix"] == 1709296200
    assert result.data["timezone"]


def test_unknown_timezone():
    with pytest.raises(ToolExecutionError, match="Unknown timezone: Mars/Olympus"):
        get_current_datetime({"timezone": "Mars/Olympus"}, now=fixed_now)
