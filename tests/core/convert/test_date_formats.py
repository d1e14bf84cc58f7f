# Copyright 2025 Emcie Co Ltd.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.


from datetime import date, datetime, time, timedelta, timezone

from pytest import mark, raises

from esdata import ConversionError, DateFormat
from esdata.core.convert.date_formats import ElasticsearchDateConverter
from esdata.core.convert.value_converters import (
    IsoTemporalPropertyValueConverter,
    TemporalPropertyValueConverter,
)

MOMENT = datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)


@mark.parametrize(
    "date_format, expected",
    [
        (DateFormat.EPOCH_MILLIS, "1704164645123"),
        (DateFormat.EPOCH_SECOND, "1704164645"),
        (DateFormat.DATE_OPTIONAL_TIME, "2024-01-02T03:04:05.123Z"),
        (DateFormat.DATE, "2024-01-02"),
        (DateFormat.BASIC_DATE, "20240102"),
        (DateFormat.DATE_HOUR_MINUTE, "2024-01-02T03:04"),
        (DateFormat.DATE_TIME, "2024-01-02T03:04:05.123Z"),
        (DateFormat.BASIC_DATE_TIME_NO_MILLIS, "20240102T030405Z"),
        (DateFormat.YEAR_MONTH, "2024-01"),
    ],
)
def test_that_a_datetime_is_formatted_in_builtin_formats(
    date_format: DateFormat,
    expected: str,
) -> None:
    assert ElasticsearchDateConverter.for_format(date_format).format(MOMENT) == expected


def test_that_a_custom_pattern_formats_and_parses_a_date() -> None:
    converter = ElasticsearchDateConverter.for_format("dd.MM.uuuu")

    assert converter.format(date(2024, 3, 7)) == "07.03.2024"
    assert converter.parse("07.03.2024", date) == date(2024, 3, 7)


def test_that_month_names_are_written_and_read() -> None:
    converter = ElasticsearchDateConverter.for_format("dd MMMM uuuu")

    assert converter.format(date(2024, 1, 2)) == "02 January 2024"
    assert converter.parse("02 January 2024", date) == date(2024, 1, 2)


def test_that_literals_in_patterns_are_kept() -> None:
    converter = ElasticsearchDateConverter.for_format("uuuu'W'dd")

    assert converter.format(date(2024, 1, 9)) == "2024W09"


def test_that_offsets_are_written_with_a_colon() -> None:
    moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone(timedelta(hours=2)))

    result = ElasticsearchDateConverter.for_format(DateFormat.DATE_TIME_NO_MILLIS).format(moment)

    assert result == "2024-01-02T03:04:05+02:00"


def test_that_an_iso_value_with_zulu_offset_is_parsed_as_utc() -> None:
    parsed = ElasticsearchDateConverter.for_format(DateFormat.DATE_OPTIONAL_TIME).parse(
        "2024-01-02T03:04:05.123Z"
    )

    assert parsed == datetime(2024, 1, 2, 3, 4, 5, 123000, tzinfo=timezone.utc)


def test_that_epoch_values_are_parsed_from_numbers_and_strings() -> None:
    converter = ElasticsearchDateConverter.for_format(DateFormat.EPOCH_MILLIS)

    assert converter.parse(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert converter.parse("1704164645123") == datetime(
        2024, 1, 2, 3, 4, 5, 123000, tzinfo=timezone.utc
    )
    assert converter.parse(86_400_000, date) == date(1970, 1, 2)


def test_that_naive_datetimes_are_treated_as_utc_for_epoch_formats() -> None:
    naive = datetime(1970, 1, 1, 0, 0, 1)

    assert ElasticsearchDateConverter.for_format(DateFormat.EPOCH_MILLIS).format(naive) == "1000"


def test_that_a_non_matching_value_raises_a_conversion_error() -> None:
    with raises(ConversionError):
        ElasticsearchDateConverter.for_format(DateFormat.DATE).parse("yesterday", date)


def test_that_the_none_format_cannot_convert() -> None:
    with raises(ConversionError):
        ElasticsearchDateConverter(DateFormat.NONE)


def test_that_times_are_parsed_from_hour_minute_second() -> None:
    parsed = ElasticsearchDateConverter.for_format(DateFormat.HOUR_MINUTE_SECOND).parse(
        "13:14:15", time
    )

    assert parsed == time(13, 14, 15)


def test_that_the_property_converter_writes_with_the_first_format() -> None:
    converter = TemporalPropertyValueConverter([DateFormat.DATE, DateFormat.EPOCH_MILLIS], date)

    assert converter.write(date(2024, 1, 2)) == "2024-01-02"


def test_that_the_property_converter_reads_with_the_first_matching_format() -> None:
    converter = TemporalPropertyValueConverter(
        [DateFormat.DATE, DateFormat.EPOCH_MILLIS],
        datetime,
    )

    assert converter.read("1704164645000") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_that_the_property_converter_reports_every_failed_format() -> None:
    converter = TemporalPropertyValueConverter([DateFormat.DATE, DateFormat.BASIC_DATE], date)

    with raises(ConversionError) as exc_info:
        converter.read("not a date")

    assert "uuuu-MM-dd" in str(exc_info.value)
    assert "uuuuMMdd" in str(exc_info.value)


def test_that_the_iso_fallback_keeps_microseconds() -> None:
    converter = IsoTemporalPropertyValueConverter(datetime)

    assert converter.write(MOMENT) == "2024-01-02T03:04:05.123456Z"
    assert converter.read("2024-01-02T03:04:05.123456Z") == MOMENT
