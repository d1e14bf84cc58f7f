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

from __future__ import annotations
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Sequence, Union
from typing_extensions import override

from esdata.core.common import ConversionError
from esdata.core.convert.date_formats import ElasticsearchDateConverter
from esdata.core.mapping.field_types import DateFormat


class PropertyValueConverter(ABC):
    """Converts a single property value between its Python and stored form.

    Custom converters are registered with ``Field(value_converter=...)`` and
    must be constructible without arguments.
    """

    @abstractmethod
    def write(self, value: Any) -> Any: ...

    @abstractmethod
    def read(self, value: Any) -> Any: ...


class TemporalPropertyValueConverter(PropertyValueConverter):
    """Writes with the first format and reads with the first format that matches."""

    def __init__(
        self,
        formats: Sequence[Union[DateFormat, str]],
        target_type: type = datetime,
    ) -> None:
        if not formats:
            raise ConversionError("At least one date format is required")

        self.target_type = target_type
        self._converters = [ElasticsearchDateConverter.for_format(f) for f in formats]

    @override
    def write(self, value: Any) -> Any:
        if isinstance(value, str):
            return value
        return self._converters[0].format(value)

    @override
    def read(self, value: Any) -> Any:
        if isinstance(value, self.target_type) and not isinstance(value, str):
            return value

        errors: list[str] = []

        for converter in self._converters:
            try:
                return converter.parse(value, self.target_type)
            except ConversionError as exc:
                errors.append(exc.message)

        raise ConversionError(
            f"Unable to parse date value {value!r}: " + "; ".join(errors),
        )


class IsoTemporalPropertyValueConverter(TemporalPropertyValueConverter):
    """Fallback used for temporal properties that declare no date field type."""

    def __init__(self, target_type: type = datetime) -> None:
        super().__init__([DateFormat.STRICT_DATE_OPTIONAL_TIME_NANOS], target_type)
