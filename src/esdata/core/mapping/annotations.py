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

"""Declarative metadata for entity classes.

Entities are plain dataclasses. Index-level metadata is attached with the
class decorators :func:`document`, :func:`setting` and :func:`mapping`;
property-level metadata is attached through ``typing.Annotated``::

    @document(index_name="books")
    @dataclass
    class Book:
        id: Annotated[Optional[str], Id()] = None
        title: Annotated[Optional[str], Field(type=FieldType.TEXT)] = None
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence, TypeVar, Union

from esdata.core.mapping.field_types import (
    DateFormat,
    Dynamic,
    FieldType,
    IndexOptions,
    NullValueType,
    TermVector,
)

TClass = TypeVar("TClass", bound=type)

IndexName = Union[str, Callable[[], str]]

DOCUMENT_ATTRIBUTE = "__esdata_document__"
SETTING_ATTRIBUTE = "__esdata_setting__"
MAPPING_ATTRIBUTE = "__esdata_mapping__"


class VersionType(Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"
    EXTERNAL_GTE = "external_gte"


@dataclass(frozen=True)
class DocumentInfo:
    index_name: IndexName
    create_index: bool = True
    write_type_hint: bool = True
    dynamic: Optional[Dynamic] = None
    store_id_in_source: bool = True
    store_version_in_source: bool = True
    routing: Optional[str] = None
    alias: Optional[str] = None
    version_type: Optional[VersionType] = None


@dataclass(frozen=True)
class SettingInfo:
    shards: int = 1
    replicas: int = 1
    refresh_interval: str = "1s"
    index_store_type: Optional[str] = None
    setting_path: Optional[str] = None
    sort_fields: Sequence[str] = ()
    sort_orders: Sequence[str] = ()
    sort_modes: Sequence[str] = ()
    sort_missing_values: Sequence[str] = ()


@dataclass(frozen=True)
class MappingInfo:
    mapping_path: Optional[str] = None
    runtime_fields_path: Optional[str] = None
    enabled: bool = True
    date_detection: Optional[bool] = None
    numeric_detection: Optional[bool] = None
    dynamic_date_formats: Sequence[str] = ()


def document(
    index_name: IndexName,
    create_index: bool = True,
    write_type_hint: bool = True,
    dynamic: Optional[Dynamic] = None,
    store_id_in_source: bool = True,
    store_version_in_source: bool = True,
    routing: Optional[str] = None,
    alias: Optional[str] = None,
    version_type: Optional[VersionType] = None,
) -> Callable[[TClass], TClass]:
    """Marks a dataclass as a root document stored in ``index_name``.

    ``index_name`` may be a zero-argument callable; it is evaluated every time
    the index coordinates are requested.
    """

    info = DocumentInfo(
        index_name=index_name,
        create_index=create_index,
        write_type_hint=write_type_hint,
        dynamic=dynamic,
        store_id_in_source=store_id_in_source,
        store_version_in_source=store_version_in_source,
        routing=routing,
        alias=alias,
        version_type=version_type,
    )

    def decorator(cls: TClass) -> TClass:
        setattr(cls, DOCUMENT_ATTRIBUTE, info)
        return cls

    return decorator


def setting(
    shards: int = 1,
    replicas: int = 1,
    refresh_interval: str = "1s",
    index_store_type: Optional[str] = None,
    setting_path: Optional[str] = None,
    sort_fields: Sequence[str] = (),
    sort_orders: Sequence[str] = (),
    sort_modes: Sequence[str] = (),
    sort_missing_values: Sequence[str] = (),
) -> Callable[[TClass], TClass]:
    info = SettingInfo(
        shards=shards,
        replicas=replicas,
        refresh_interval=refresh_interval,
        index_store_type=index_store_type,
        setting_path=setting_path,
        sort_fields=tuple(sort_fields),
        sort_orders=tuple(sort_orders),
        sort_modes=tuple(sort_modes),
        sort_missing_values=tuple(sort_missing_values),
    )

    def decorator(cls: TClass) -> TClass:
        setattr(cls, SETTING_ATTRIBUTE, info)
        return cls

    return decorator


def mapping(
    mapping_path: Optional[str] = None,
    runtime_fields_path: Optional[str] = None,
    enabled: bool = True,
    date_detection: Optional[bool] = None,
    numeric_detection: Optional[bool] = None,
    dynamic_date_formats: Sequence[str] = (),
) -> Callable[[TClass], TClass]:
    info = MappingInfo(
        mapping_path=mapping_path,
        runtime_fields_path=runtime_fields_path,
        enabled=enabled,
        date_detection=date_detection,
        numeric_detection=numeric_detection,
        dynamic_date_formats=tuple(dynamic_date_formats),
    )

    def decorator(cls: TClass) -> TClass:
        setattr(cls, MAPPING_ATTRIBUTE, info)
        return cls

    return decorator


DEFAULT_DATE_FORMATS: tuple[DateFormat, ...] = (
    DateFormat.DATE_OPTIONAL_TIME,
    DateFormat.EPOCH_MILLIS,
)


def _normalize_sequences(instance: Any, *names: str) -> None:
    # a single format, pattern or field name may be given without a tuple
    for name in names:
        value = getattr(instance, name)
        if value is None:
            value = ()
        elif isinstance(value, (str, Enum)):
            value = (value,)
        object.__setattr__(instance, name, tuple(value))


@dataclass(frozen=True)
class Field:
    name: Optional[str] = None
    type: FieldType = FieldType.AUTO
    format: Sequence[DateFormat] = DEFAULT_DATE_FORMATS
    pattern: Sequence[str] = ()
    index: bool = True
    store: bool = False
    doc_values: bool = True
    fielddata: bool = False
    analyzer: Optional[str] = None
    search_analyzer: Optional[str] = None
    normalizer: Optional[str] = None
    copy_to: Sequence[str] = ()
    ignore_above: Optional[int] = None
    null_value: Optional[str] = None
    null_value_type: NullValueType = NullValueType.STRING
    store_null_value: bool = False
    coerce: bool = True
    ignore_malformed: bool = False
    norms: bool = True
    index_options: Optional[IndexOptions] = None
    index_phrases: bool = False
    term_vector: Optional[TermVector] = None
    similarity: Optional[str] = None
    dims: Optional[int] = None
    element_type: Optional[str] = None
    scaling_factor: Optional[float] = None
    enabled: bool = True
    eager_global_ordinals: bool = False
    positive_score_impact: bool = True
    max_shingle_size: Optional[int] = None
    position_increment_gap: Optional[int] = None
    include_in_parent: bool = False
    exclude_from_source: bool = False
    dynamic: Optional[Dynamic] = None
    value_converter: Optional[type] = None

    def __post_init__(self) -> None:
        _normalize_sequences(self, "format", "pattern", "copy_to")


@dataclass(frozen=True)
class InnerField:
    suffix: str
    type: FieldType
    format: Sequence[DateFormat] = DEFAULT_DATE_FORMATS
    pattern: Sequence[str] = ()
    index: bool = True
    store: bool = False
    doc_values: bool = True
    fielddata: bool = False
    analyzer: Optional[str] = None
    search_analyzer: Optional[str] = None
    normalizer: Optional[str] = None
    ignore_above: Optional[int] = None
    null_value: Optional[str] = None
    null_value_type: NullValueType = NullValueType.STRING
    coerce: bool = True
    ignore_malformed: bool = False
    norms: bool = True
    index_options: Optional[IndexOptions] = None
    index_phrases: bool = False
    term_vector: Optional[TermVector] = None
    similarity: Optional[str] = None
    scaling_factor: Optional[float] = None
    eager_global_ordinals: bool = False
    positive_score_impact: bool = True
    max_shingle_size: Optional[int] = None
    position_increment_gap: Optional[int] = None

    def __post_init__(self) -> None:
        _normalize_sequences(self, "format", "pattern")


@dataclass(frozen=True)
class MultiField:
    main_field: Field
    other_fields: Sequence[InnerField] = ()


@dataclass(frozen=True)
class Id:
    pass


@dataclass(frozen=True)
class Version:
    pass


@dataclass(frozen=True)
class CreatedDate:
    pass


@dataclass(frozen=True)
class LastModifiedDate:
    pass


@dataclass(frozen=True)
class CreatedBy:
    pass


@dataclass(frozen=True)
class LastModifiedBy:
    pass


@dataclass(frozen=True)
class ScriptedField:
    """Marks a property that is filled from a script field of a search request."""

    name: Optional[str] = None


@dataclass(frozen=True)
class ReadOnly:
    pass


@dataclass(frozen=True)
class Transient:
    pass


@dataclass(frozen=True)
class GeoPointField:
    ignore_malformed: bool = False
    ignore_z_value: bool = True


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}

    @classmethod
    def from_value(cls, value: Any) -> GeoPoint:
        if isinstance(value, GeoPoint):
            return value
        if isinstance(value, dict):
            return cls(lat=float(value["lat"]), lon=float(value["lon"]))
        if isinstance(value, str):
            lat, lon = value.split(",")
            return cls(lat=float(lat), lon=float(lon))
        if isinstance(value, (list, tuple)):
            # GeoJSON order
            return cls(lat=float(value[1]), lon=float(value[0]))
        raise ValueError(f"Cannot read a geo point from {value!r}")


@dataclass(frozen=True)
class SeqNoPrimaryTerm:
    seq_no: int
    primary_term: int

    def __post_init__(self) -> None:
        if self.seq_no < 0:
            raise ValueError("seq_no should not be negative")
        if self.primary_term < 1:
            raise ValueError("primary_term should be positive")


AUDIT_MARKERS = (CreatedDate, LastModifiedDate, CreatedBy, LastModifiedBy)
