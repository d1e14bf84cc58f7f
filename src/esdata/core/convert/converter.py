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
from collections.abc import Mapping as AbcMapping
import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
import inspect
from typing import Any, Callable, Mapping, Optional, TypeVar, cast, get_origin
from uuid import UUID

from esdata.core.common import ConversionError
from esdata.core.convert.document import Document
from esdata.core.convert.value_converters import IsoTemporalPropertyValueConverter
from esdata.core.loggers import Logger, NullLogger
from esdata.core.mapping.annotations import GeoPoint, SeqNoPrimaryTerm
from esdata.core.mapping.context import (
    TYPE_HINT_FIELD,
    MappingContext,
    PersistentEntity,
    PersistentProperty,
    is_entity_type,
)
from esdata.core.mapping.field_types import FieldType
from esdata.core.query.criteria import Criteria, CriteriaEntry, OperationKey
from esdata.core.query.query import (
    CriteriaQuery,
    Highlight,
    HighlightField,
    HighlightQuery,
    Query,
    Sort,
    SourceFilter,
)

T = TypeVar("T")

_ITERABLE_TYPES = (list, tuple, set, frozenset)


@dataclass
class CustomConversions:
    """Converters for types the mapping does not handle natively.

    ``writing`` maps a Python type to a function producing a storable value,
    ``reading`` maps a Python type to a function building it from a stored value.
    """

    writing: dict[type, Callable[[Any], Any]] = field(default_factory=dict)
    reading: dict[type, Callable[[Any], Any]] = field(default_factory=dict)

    def writer_for(self, value: Any) -> Optional[Callable[[Any], Any]]:
        for t in type(value).__mro__:
            if t in self.writing:
                return self.writing[t]
        return None

    def reader_for(self, target: Any) -> Optional[Callable[[Any], Any]]:
        return self.reading.get(target) if inspect.isclass(target) else None


class MappingElasticsearchConverter:
    """Converts entities to documents and back, and maps queries onto field names."""

    def __init__(
        self,
        mapping_context: MappingContext,
        conversions: Optional[CustomConversions] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self.mapping_context = mapping_context
        self.conversions = conversions or CustomConversions()
        self._logger = logger or NullLogger()

    # writing

    def write(self, entity: Any) -> Document:
        if isinstance(entity, Mapping):
            return Document(entity)

        persistent_entity = self.mapping_context.get_persistent_entity(type(entity))
        document = Document(
            self._write_entity(entity, persistent_entity, persistent_entity.write_type_hint)
        )

        if id_property := persistent_entity.id_property:
            document.id = self.convert_id(getattr(entity, id_property.name))

        if version_property := persistent_entity.version_property:
            document.version = getattr(entity, version_property.name)

        if seq_no_property := persistent_entity.seq_no_primary_term_property:
            if seq_no_primary_term := getattr(entity, seq_no_property.name):
                document.seq_no = seq_no_primary_term.seq_no
                document.primary_term = seq_no_primary_term.primary_term

        if persistent_entity.document and (routing := persistent_entity.document.routing):
            routing_property = persistent_entity.get_property(routing)
            document.routing = (
                self._stringify(getattr(entity, routing_property.name))
                if routing_property
                else routing
            )

        return document

    def _write_entity(
        self,
        entity: Any,
        persistent_entity: PersistentEntity,
        write_type_hint: bool,
    ) -> dict[str, Any]:
        target: dict[str, Any] = {}

        if write_type_hint:
            target[TYPE_HINT_FIELD] = persistent_entity.type_alias

        for prop in persistent_entity.properties:
            if not prop.is_writable:
                continue
            if prop.is_id and not persistent_entity.store_id_in_source:
                continue

            value = getattr(entity, prop.name, None)

            if value is None:
                if prop.store_null_value:
                    target[prop.field_name] = None
                continue

            target[prop.field_name] = self._write_property_value(value, prop, write_type_hint)

        return target

    def _write_property_value(
        self,
        value: Any,
        prop: PersistentProperty,
        write_type_hint: bool,
    ) -> Any:
        if converter := prop.value_converter:
            if prop.is_collection and isinstance(value, _ITERABLE_TYPES):
                return [converter.write(v) if v is not None else None for v in value]
            if prop.is_map and isinstance(value, Mapping):
                return {str(k): converter.write(v) for k, v in value.items()}
            return converter.write(value)

        return self.write_value(value, write_type_hint)

    def write_value(self, value: Any, write_type_hint: bool = True) -> Any:
        """Converts a value without property metadata to its stored form."""
        if value is None:
            return None
        if writer := self.conversions.writer_for(value):
            return writer(value)
        if isinstance(value, GeoPoint):
            return value.to_dict()
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, (datetime, date, time)):
            return IsoTemporalPropertyValueConverter(type(value)).write(value)
        if isinstance(value, (UUID, Decimal)):
            return str(value)
        if isinstance(value, Mapping):
            return {str(k): self.write_value(v, write_type_hint) for k, v in value.items()}
        if isinstance(value, _ITERABLE_TYPES):
            return [self.write_value(v, write_type_hint) for v in value]
        if is_entity_type(type(value)):
            nested = self.mapping_context.get_persistent_entity(type(value))
            return self._write_entity(value, nested, write_type_hint)
        return value

    # reading

    def read(self, cls: type[T], document: Optional[Mapping[str, Any]]) -> Optional[T]:
        if document is None:
            return None

        if isinstance(cls, type) and issubclass(cls, Mapping):
            return cast(T, dict(document))

        metadata = document if isinstance(document, Document) else None
        return cast(T, self._read_entity(cls, document, metadata))

    def _resolve_type(self, cls: type, source: Mapping[str, Any]) -> type:
        alias = source.get(TYPE_HINT_FIELD)

        if isinstance(alias, str):
            resolved = self.mapping_context.resolve_type_alias(alias)
            if resolved and resolved is not cls and issubclass(resolved, cls):
                return resolved

        return cls

    def _read_entity(
        self,
        cls: type,
        source: Mapping[str, Any],
        document: Optional[Document],
    ) -> Any:
        cls = self._resolve_type(cls, source)
        persistent_entity = self.mapping_context.get_persistent_entity(cls)

        init_values: dict[str, Any] = {}
        late_values: dict[str, Any] = {}

        for prop in persistent_entity.properties:
            if prop.is_transient:
                continue

            found, value = self._read_property(prop, source, document)

            if not found:
                if prop.in_constructor and not prop.has_default:
                    init_values[prop.name] = None
                continue

            if prop.in_constructor:
                init_values[prop.name] = value
            else:
                late_values[prop.name] = value

        try:
            instance = cls(**init_values)
        except TypeError as exc:
            raise ConversionError(f"Cannot create an instance of {cls.__name__}: {exc}") from exc

        for name, value in late_values.items():
            object.__setattr__(instance, name, value)

        return instance

    def _read_property(
        self,
        prop: PersistentProperty,
        source: Mapping[str, Any],
        document: Optional[Document],
    ) -> tuple[bool, Any]:
        if document is not None:
            if prop.is_version and document.version is not None:
                return True, document.version

            if prop.is_seq_no_primary_term:
                if document.seq_no is not None and document.primary_term is not None:
                    return True, SeqNoPrimaryTerm(document.seq_no, document.primary_term)
                return False, None

            if prop.is_id and prop.field_name not in source and document.id is not None:
                return True, self._read_value(document.id, prop)

        if prop.field_name in source:
            return True, self._read_value(source[prop.field_name], prop)

        if document is not None and document.fields:
            field_name = (
                prop.scripted_field.name
                if prop.scripted_field and prop.scripted_field.name
                else prop.field_name
            )

            if field_name in document.fields:
                raw = document.fields[field_name]
                if not prop.is_collection and isinstance(raw, (list, tuple)):
                    raw = raw[0] if raw else None
                return True, self._read_value(raw, prop)

        return False, None

    def _read_value(self, raw: Any, prop: PersistentProperty) -> Any:
        if raw is None:
            return None

        if converter := prop.value_converter:
            if prop.is_collection and isinstance(raw, list):
                return self._as_container(
                    [converter.read(v) if v is not None else None for v in raw], prop.type
                )
            if prop.is_map and isinstance(raw, Mapping):
                return {k: converter.read(v) for k, v in raw.items()}
            return converter.read(raw)

        if prop.is_collection:
            values = raw if isinstance(raw, list) else [raw]
            return self._as_container([self.read_value(v, prop.actual_type) for v in values], prop.type)

        if prop.is_map and isinstance(raw, Mapping):
            return {k: self.read_value(v, prop.actual_type) for k, v in raw.items()}

        return self.read_value(raw, prop.actual_type)

    def read_value(self, raw: Any, target: Any) -> Any:
        """Converts a stored value to ``target`` without property metadata."""
        if raw is None or target is Any or not inspect.isclass(target):
            return raw

        if reader := self.conversions.reader_for(target):
            return reader(raw)
        if target is GeoPoint:
            return GeoPoint.from_value(raw)
        if is_entity_type(target):
            if not isinstance(raw, AbcMapping):
                raise ConversionError(f"Cannot read {target.__name__} from {raw!r}")
            return self._read_entity(target, raw, None)
        if issubclass(target, Enum):
            return target(raw)
        if issubclass(target, (datetime, date, time)):
            return IsoTemporalPropertyValueConverter(target).read(raw)
        if isinstance(raw, target):
            return raw
        if target is bool and isinstance(raw, str):
            return raw.lower() == "true"
        if target in (int, float, str, Decimal, UUID):
            try:
                return target(raw)
            except (TypeError, ValueError) as exc:
                raise ConversionError(f"Cannot convert {raw!r} to {target.__name__}") from exc

        return raw

    @staticmethod
    def _as_container(values: list[Any], declared: Any) -> Any:
        origin = get_origin(declared) or declared

        if origin in (set, frozenset, tuple):
            return origin(values)
        if inspect.isclass(origin) and origin.__name__ in ("Set", "AbstractSet", "MutableSet"):
            return set(values)
        return values

    # ids and metadata

    def _stringify(self, value: Any) -> Optional[str]:
        return self.convert_id(value)

    def convert_id(self, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, str):
            return value
        if isinstance(value, Enum):
            return str(value.value)
        if writer := self.conversions.writer_for(value):
            return str(writer(value))
        return str(value)

    def update_id(self, entity: T, id: Optional[str]) -> T:
        return self.update_metadata(entity, id=id)

    def update_metadata(
        self,
        entity: T,
        id: Optional[str] = None,
        seq_no: Optional[int] = None,
        primary_term: Optional[int] = None,
        version: Optional[int] = None,
    ) -> T:
        """Writes store-assigned metadata back; frozen dataclasses are copied."""
        if isinstance(entity, Mapping):
            return entity

        persistent_entity = self.mapping_context.get_persistent_entity(type(entity))
        changes: dict[str, Any] = {}

        if id is not None and (id_property := persistent_entity.id_property):
            changes[id_property.name] = self.read_value(id, id_property.actual_type)

        if (
            seq_no is not None
            and primary_term is not None
            and (seq_no_property := persistent_entity.seq_no_primary_term_property)
        ):
            changes[seq_no_property.name] = SeqNoPrimaryTerm(seq_no, primary_term)

        if version is not None and (version_property := persistent_entity.version_property):
            changes[version_property.name] = version

        return self._apply_changes(entity, persistent_entity, changes)

    @staticmethod
    def _apply_changes(entity: T, persistent_entity: PersistentEntity, changes: dict[str, Any]) -> T:
        if not changes:
            return entity

        params = getattr(type(entity), "__dataclass_params__", None)

        if params is not None and params.frozen:
            init_changes = {
                k: v for k, v in changes.items() if persistent_entity.get_property(k).in_constructor  # type: ignore[union-attr]
            }
            entity = dataclasses.replace(entity, **init_changes)  # type: ignore[type-var]
            changes = {k: v for k, v in changes.items() if k not in init_changes}

        for name, value in changes.items():
            object.__setattr__(entity, name, value)

        return entity

    # queries

    def update_query(self, query: Query, cls: Optional[type]) -> None:
        """Maps property names used in a query to the field names of ``cls``."""
        if cls is None or not is_entity_type(cls):
            return

        persistent_entity = self.mapping_context.get_persistent_entity(cls)

        if query.sort:
            query.sort = Sort(
                tuple(o.with_property(self._field_path(cls, o.property)) for o in query.sort)
            )

        if query.fields:
            query.fields = [self._field_path(cls, f) for f in query.fields]

        if query.stored_fields:
            query.stored_fields = [self._field_path(cls, f) for f in query.stored_fields]

        if query.source_filter:
            query.source_filter = SourceFilter(
                includes=[self._field_path(cls, f) for f in query.source_filter.includes],
                excludes=[self._field_path(cls, f) for f in query.source_filter.excludes],
                fetch_source=query.source_filter.fetch_source,
            )

        if query.highlight_query:
            target = query.highlight_query.type or persistent_entity.type
            highlight = query.highlight_query.highlight
            query.highlight_query = HighlightQuery(
                Highlight(
                    [
                        HighlightField(self._field_path(target, f.name), f.parameters)
                        for f in highlight.fields
                    ],
                    highlight.parameters,
                ),
                target,
            )

        if isinstance(query, CriteriaQuery):
            self._map_criteria(query.criteria, cls, set())

    def _field_path(self, cls: type, path: str) -> str:
        properties = self.mapping_context.get_property_path(cls, path)

        if len(properties) != len(path.split(".")):
            return path

        return ".".join(p.field_name for p in properties)

    def _map_criteria(self, criteria: Criteria, cls: type, seen: set[int]) -> None:
        for link in criteria.criteria_chain:
            if id(link) in seen:
                continue
            seen.add(id(link))

            self._map_criteria_field(link, cls)

            for sub_criteria in link.sub_criteria_list:
                self._map_criteria(sub_criteria, cls, seen)

    def _map_criteria_field(self, criteria: Criteria, cls: type) -> None:
        criteria_field = criteria.field

        if criteria_field is None or criteria_field.mapped:
            return

        segments = criteria_field.name.split(".")
        properties = self.mapping_context.get_property_path(cls, criteria_field.name)

        if len(properties) != len(segments):
            return

        leaf = properties[-1]
        criteria_field.name = ".".join(p.field_name for p in properties)
        criteria_field.field_type = leaf.field_type if leaf.field_type is not FieldType.AUTO else None

        nested_indices = [
            i for i, p in enumerate(properties[:-1]) if p.field_type is FieldType.NESTED
        ]
        if nested_indices:
            criteria_field.path = ".".join(p.field_name for p in properties[: nested_indices[-1] + 1])

        for entry in criteria.query_criteria_entries:
            entry.value = self._convert_criteria_value(entry, leaf)

        criteria_field.mapped = True

    def _convert_criteria_value(self, entry: CriteriaEntry, prop: PersistentProperty) -> Any:
        if not entry.key.has_value or entry.value is None:
            return entry.value

        def convert(v: Any) -> Any:
            if v is None:
                return None
            if prop.value_converter and not isinstance(v, str):
                return prop.value_converter.write(v)
            if isinstance(v, str):
                return v
            return self.write_value(v, write_type_hint=False)

        if entry.key in (OperationKey.IN, OperationKey.NOT_IN, OperationKey.BETWEEN):
            return [convert(v) for v in entry.value]

        return convert(entry.value)
