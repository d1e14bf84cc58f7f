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

"""Formatting and parsing of temporal values in Elasticsearch date formats.

Built-in formats are expressed as the same Java-style patterns Elasticsearch
uses, so custom patterns given in ``Field(pattern=...)`` go through the
same code path.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
import re
from typing import Any, Optional, Union

from esdata.core.common import ConversionError
from esdata.core.mapping.field_types import DateFormat

Temporal = Union[datetime, date, time]

_BUILTIN_PATTERNS: dict[DateFormat, str] = {
    DateFormat.BASIC_DATE: "uuuuMMdd",
    DateFormat.BASIC_DATE_TIME: "uuuuMMdd'T'HHmmss.SSSXXX",
    DateFormat.BASIC_DATE_TIME_NO_MILLIS: "uuuuMMdd'T'HHmmssXXX",
    DateFormat.BASIC_TIME: "HHmmss.SSSXXX",
    DateFormat.BASIC_TIME_NO_MILLIS: "HHmmssXXX",
    DateFormat.DATE: "uuuu-MM-dd",
    DateFormat.STRICT_DATE: "uuuu-MM-dd",
    DateFormat.DATE_HOUR: "uuuu-MM-dd'T'HH",
    DateFormat.DATE_HOUR_MINUTE: "uuuu-MM-dd'T'HH:mm",
    DateFormat.DATE_HOUR_MINUTE_SECOND: "uuuu-MM-dd'T'HH:mm:ss",
    DateFormat.DATE_HOUR_MINUTE_SECOND_MILLIS: "uuuu-MM-dd'T'HH:mm:ss.SSS",
    DateFormat.DATE_HOUR_MINUTE_SECOND_FRACTION: "uuuu-MM-dd'T'HH:mm:ss.SSS",
    DateFormat.DATE_TIME: "uuuu-MM-dd'T'HH:mm:ss.SSSXXX",
    DateFormat.STRICT_DATE_TIME: "uuuu-MM-dd'T'HH:mm:ss.SSSXXX",
    DateFormat.DATE_TIME_NO_MILLIS: "uuuu-MM-dd'T'HH:mm:ssXXX",
    DateFormat.STRICT_DATE_TIME_NO_MILLIS: "uuuu-MM-dd'T'HH:mm:ssXXX",
    DateFormat.HOUR_MINUTE: "HH:mm",
    DateFormat.HOUR_MINUTE_SECOND: "HH:mm:ss",
    DateFormat.HOUR_MINUTE_SECOND_MILLIS: "HH:mm:ss.SSS",
    DateFormat.TIME: "HH:mm:ss.SSSXXX",
    DateFormat.TIME_NO_MILLIS: "HH:mm:ssXXX",
    DateFormat.YEAR: "uuuu",
    DateFormat.YEAR_MONTH: "uuuu-MM",
    DateFormat.YEAR_MONTH_DAY: "uuuu-MM-dd",
}

_ISO_FORMATS = (
    DateFormat.DATE_OPTIONAL_TIME,
    DateFormat.STRICT_DATE_OPTIONAL_TIME,
    DateFormat.STRICT_DATE_OPTIONAL_TIME_NANOS,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]
_DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass(frozen=True)
class _Token:
    letter: str  # empty for literals
    width: int
    text: str = ""


def _tokenize(pattern: str) -> list[_Token]:
    tokens: list[_Token] = []
    i = 0

    while i < len(pattern):
        c = pattern[i]

        if c == "'":
            end = pattern.find("'", i + 1)
            if end == -1:
                raise ConversionError(f"Unterminated literal in date pattern {pattern!r}")
            # '' is an escaped quote
            tokens.append(_Token("", 0, pattern[i + 1 : end] or "'"))
            i = end + 1
        elif c.isalpha():
            j = i
            while j < len(pattern) and pattern[j] == c:
                j += 1
            tokens.append(_Token(c, j - i))
            i = j
        else:
            tokens.append(_Token("", 0, c))
            i += 1

    return tokens


def _format_offset(value: Union[datetime, time], token: _Token) -> str:
    offset = value.utcoffset()

    if offset is None:
        return ""
    if offset == timedelta(0) and token.letter == "X":
        return "Z"

    total_minutes = int(offset.total_seconds() // 60)
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)

    if token.width == 1:
        return f"{sign}{hours:02d}" + (f"{minutes:02d}" if minutes else "")
    if token.width == 2 or token.letter == "Z":
        return f"{sign}{hours:02d}{minutes:02d}"
    return f"{sign}{hours:02d}:{minutes:02d}"


def _format_token(value: Temporal, token: _Token) -> str:
    letter, width = token.letter, token.width

    if not letter:
        return token.text

    if letter in "yu":
        year = value.year  # type: ignore[union-attr]
        return f"{year % 100:02d}" if width == 2 else f"{year:0{max(width, 4)}d}"
    if letter == "M":
        month = value.month  # type: ignore[union-attr]
        if width >= 4:
            return _MONTH_NAMES[month - 1]
        if width == 3:
            return _MONTH_NAMES[month - 1][:3]
        return f"{month:0{width}d}"
    if letter == "d":
        return f"{value.day:0{width}d}"  # type: ignore[union-attr]
    if letter == "D":
        return f"{value.timetuple().tm_yday:0{width}d}"  # type: ignore[union-attr]
    if letter == "E":
        name = _DAY_NAMES[value.weekday()]  # type: ignore[union-attr]
        return name if width >= 4 else name[:3]
    if letter == "H":
        return f"{value.hour:0{width}d}"  # type: ignore[union-attr]
    if letter == "h":
        return f"{(value.hour % 12) or 12:0{width}d}"  # type: ignore[union-attr]
    if letter == "a":
        return "AM" if value.hour < 12 else "PM"  # type: ignore[union-attr]
    if letter == "m":
        return f"{value.minute:0{width}d}"  # type: ignore[union-attr]
    if letter == "s":
        return f"{value.second:0{width}d}"  # type: ignore[union-attr]
    if letter in "Sn":
        micros = f"{value.microsecond:06d}"  # type: ignore[union-attr]
        return (micros + "000")[:width]
    if letter in "XxZ":
        return _format_offset(value, token)  # type: ignore[arg-type]

    raise ConversionError(f"Unsupported date pattern letter {letter!r}")


def _token_regex(token: _Token) -> str:
    letter, width = token.letter, token.width

    if not letter:
        return re.escape(token.text)
    if letter in "yu":
        return r"(?P<year>\d{2})" if width == 2 else r"(?P<year>[+-]?\d{4,9})"
    if letter == "M":
        if width >= 3:
            return r"(?P<month_name>[A-Za-z]+)"
        return r"(?P<month>\d{1,2})" if width == 1 else rf"(?P<month>\d{{{width}}})"
    if letter == "d":
        return r"(?P<day>\d{1,2})" if width == 1 else rf"(?P<day>\d{{{width}}})"
    if letter == "D":
        return r"(?P<day_of_year>\d{1,3})"
    if letter == "E":
        return r"[A-Za-z]+"
    if letter in "Hh":
        return r"(?P<hour>\d{1,2})" if width == 1 else rf"(?P<hour>\d{{{width}}})"
    if letter == "a":
        return r"(?P<ampm>AM|PM|am|pm)"
    if letter == "m":
        return rf"(?P<minute>\d{{{width}}})"
    if letter == "s":
        return rf"(?P<second>\d{{{width}}})"
    if letter in "Sn":
        return r"(?P<fraction>\d{1,9})"
    if letter in "XxZ":
        return r"(?P<offset>Z|[+-]\d{2}(?::?\d{2})?)?"

    raise ConversionError(f"Unsupported date pattern letter {letter!r}")


def _parse_offset(text: Optional[str]) -> Optional[timezone]:
    if not text:
        return None
    if text == "Z":
        return timezone.utc

    sign = -1 if text[0] == "-" else 1
    digits = text[1:].replace(":", "")
    hours = int(digits[:2])
    minutes = int(digits[2:4] or 0)
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


class ElasticsearchDateConverter:
    """Formats and parses temporal values for one Elasticsearch date format.

    Instances are created through :meth:`for_format` and cached per format.
    """

    def __init__(self, date_format: Union[DateFormat, str]) -> None:
        self.date_format = date_format

        if isinstance(date_format, DateFormat):
            if date_format is DateFormat.NONE:
                raise ConversionError("DateFormat.NONE cannot be used for conversion")
            self._pattern = _BUILTIN_PATTERNS.get(date_format)
        else:
            self._pattern = date_format

        self._tokens = _tokenize(self._pattern) if self._pattern else []
        self._regex = (
            re.compile("".join(_token_regex(t) for t in self._tokens) + "$")
            if self._tokens
            else None
        )

    @staticmethod
    @lru_cache(maxsize=None)
    def for_format(date_format: Union[DateFormat, str]) -> ElasticsearchDateConverter:
        return ElasticsearchDateConverter(date_format)

    @property
    def is_epoch(self) -> bool:
        return self.date_format in (DateFormat.EPOCH_MILLIS, DateFormat.EPOCH_SECOND)

    def format(self, value: Temporal) -> str:
        if self.date_format is DateFormat.EPOCH_MILLIS:
            return str(self._to_epoch_millis(value))
        if self.date_format is DateFormat.EPOCH_SECOND:
            return str(self._to_epoch_millis(value) // 1000)
        if self.date_format in _ISO_FORMATS:
            return self._format_iso(value)

        return "".join(_format_token(value, t) for t in self._tokens)

    def parse(self, value: Any, target_type: type = datetime) -> Temporal:
        if isinstance(value, (int, float)) or (
            self.is_epoch and isinstance(value, str) and value.lstrip("-").isdigit()
        ):
            millis = int(value) * (1000 if self.date_format is DateFormat.EPOCH_SECOND else 1)
            return self._from_epoch_millis(millis, target_type)

        if not isinstance(value, str):
            raise ConversionError(f"Cannot parse {value!r} as a date")

        if self.is_epoch:
            raise ConversionError(f"{value!r} is not an epoch value")

        if self.date_format in _ISO_FORMATS:
            return self._parse_iso(value, target_type)

        return self._parse_pattern(value, target_type)

    def _to_epoch_millis(self, value: Temporal) -> int:
        if isinstance(value, datetime):
            moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        elif isinstance(value, date):
            moment = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        else:
            raise ConversionError(f"Cannot convert {value!r} to epoch time")

        delta = moment - _EPOCH
        return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000

    def _from_epoch_millis(self, millis: int, target_type: type) -> Temporal:
        moment = _EPOCH + timedelta(milliseconds=millis)

        if target_type is date:
            return moment.date()
        if target_type is time:
            return moment.timetz()
        return moment

    def _format_iso(self, value: Temporal) -> str:
        if isinstance(value, datetime):
            timespec = (
                "microseconds"
                if self.date_format is DateFormat.STRICT_DATE_OPTIONAL_TIME_NANOS
                else "milliseconds"
            )
            text = value.isoformat(timespec=timespec)
            return text[:-6] + "Z" if text.endswith("+00:00") else text
        if isinstance(value, date):
            return value.isoformat()
        return value.isoformat(timespec="milliseconds")

    def _parse_iso(self, value: str, target_type: type) -> Temporal:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value

        try:
            if target_type is time:
                return time.fromisoformat(text)

            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ConversionError(f"Cannot parse {value!r} with format {self.date_format}") from exc

        return parsed.date() if target_type is date else parsed

    def _parse_pattern(self, value: str, target_type: type) -> Temporal:
        if self._regex is None:
            raise ConversionError(f"{self.date_format} has no pattern to parse with")

        match = self._regex.match(value)
        if not match:
            raise ConversionError(f"Cannot parse {value!r} with pattern {self._pattern!r}")

        groups = {k: v for k, v in match.groupdict().items() if v is not None}

        year = int(groups.get("year", 1970))
        if "year" in groups and len(groups["year"]) == 2:
            year += 2000
        if "month_name" in groups:
            month = next(
                i + 1
                for i, name in enumerate(_MONTH_NAMES)
                if name.lower().startswith(groups["month_name"].lower()[:3])
            )
        else:
            month = int(groups.get("month", 1))
        day = int(groups.get("day", 1))

        hour = int(groups.get("hour", 0))
        if groups.get("ampm", "").upper() == "PM" and hour < 12:
            hour += 12
        elif groups.get("ampm", "").upper() == "AM" and hour == 12:
            hour = 0
        minute = int(groups.get("minute", 0))
        second = int(groups.get("second", 0))
        microsecond = int((groups.get("fraction", "0") + "000000")[:6])
        tzinfo = _parse_offset(groups.get("offset"))

        if "day_of_year" in groups:
            base = date(year, 1, 1) + timedelta(days=int(groups["day_of_year"]) - 1)
            month, day = base.month, base.day

        if target_type is date:
            return date(year, month, day)
        if target_type is time:
            return time(hour, minute, second, microsecond, tzinfo=tzinfo)
        return datetime(year, month, day, hour, minute, second, microsecond, tzinfo=tzinfo)
