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

from enum import Enum


class FieldType(Enum):
    AUTO = "auto"
    TEXT = "text"
    KEYWORD = "keyword"
    LONG = "long"
    INTEGER = "integer"
    SHORT = "short"
    BYTE = "byte"
    DOUBLE = "double"
    FLOAT = "float"
    HALF_FLOAT = "half_float"
    SCALED_FLOAT = "scaled_float"
    DATE = "date"
    DATE_NANOS = "date_nanos"
    BOOLEAN = "boolean"
    BINARY = "binary"
    INTEGER_RANGE = "integer_range"
    FLOAT_RANGE = "float_range"
    LONG_RANGE = "long_range"
    DOUBLE_RANGE = "double_range"
    DATE_RANGE = "date_range"
    IP_RANGE = "ip_range"
    OBJECT = "object"
    NESTED = "nested"
    IP = "ip"
    TOKEN_COUNT = "token_count"
    PERCOLATOR = "percolator"
    FLATTENED = "flattened"
    SEARCH_AS_YOU_TYPE = "search_as_you_type"
    RANK_FEATURE = "rank_feature"
    RANK_FEATURES = "rank_features"
    WILDCARD = "wildcard"
    DENSE_VECTOR = "dense_vector"
    CONSTANT_KEYWORD = "constant_keyword"
    MATCH_ONLY_TEXT = "match_only_text"
    VERSION = "version"
    GEO_POINT = "geo_point"

    @property
    def mapped_name(self) -> str:
        return self.value

    @property
    def is_date(self) -> bool:
        return self in (FieldType.DATE, FieldType.DATE_NANOS, FieldType.DATE_RANGE)

    @property
    def is_nested_or_object(self) -> bool:
        return self in (FieldType.NESTED, FieldType.OBJECT)


class DateFormat(Enum):
    """Built-in Elasticsearch date formats."""

    NONE = "none"
    EPOCH_MILLIS = "epoch_millis"
    EPOCH_SECOND = "epoch_second"
    DATE_OPTIONAL_TIME = "date_optional_time"
    STRICT_DATE_OPTIONAL_TIME = "strict_date_optional_time"
    STRICT_DATE_OPTIONAL_TIME_NANOS = "strict_date_optional_time_nanos"
    BASIC_DATE = "basic_date"
    BASIC_DATE_TIME = "basic_date_time"
    BASIC_DATE_TIME_NO_MILLIS = "basic_date_time_no_millis"
    BASIC_TIME = "basic_time"
    BASIC_TIME_NO_MILLIS = "basic_time_no_millis"
    DATE = "date"
    STRICT_DATE = "strict_date"
    DATE_HOUR = "date_hour"
    DATE_HOUR_MINUTE = "date_hour_minute"
    DATE_HOUR_MINUTE_SECOND = "date_hour_minute_second"
    DATE_HOUR_MINUTE_SECOND_MILLIS = "date_hour_minute_second_millis"
    DATE_HOUR_MINUTE_SECOND_FRACTION = "date_hour_minute_second_fraction"
    DATE_TIME = "date_time"
    STRICT_DATE_TIME = "strict_date_time"
    DATE_TIME_NO_MILLIS = "date_time_no_millis"
    STRICT_DATE_TIME_NO_MILLIS = "strict_date_time_no_millis"
    HOUR_MINUTE = "hour_minute"
    HOUR_MINUTE_SECOND = "hour_minute_second"
    HOUR_MINUTE_SECOND_MILLIS = "hour_minute_second_millis"
    TIME = "time"
    TIME_NO_MILLIS = "time_no_millis"
    YEAR = "year"
    YEAR_MONTH = "year_month"
    YEAR_MONTH_DAY = "year_month_day"


class NullValueType(Enum):
    STRING = "string"
    INTEGER = "integer"
    LONG = "long"
    DOUBLE = "double"


class IndexOptions(Enum):
    DOCS = "docs"
    FREQS = "freqs"
    POSITIONS = "positions"
    OFFSETS = "offsets"


class TermVector(Enum):
    NO = "no"
    YES = "yes"
    WITH_POSITIONS = "with_positions"
    WITH_OFFSETS = "with_offsets"
    WITH_POSITIONS_OFFSETS = "with_positions_offsets"
    WITH_POSITIONS_PAYLOADS = "with_positions_payloads"
    WITH_POSITIONS_OFFSETS_PAYLOADS = "with_positions_offsets_payloads"


class Dynamic(Enum):
    TRUE = "true"
    FALSE = "false"
    STRICT = "strict"
    RUNTIME = "runtime"
