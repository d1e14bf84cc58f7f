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
from collections.abc import Mapping as AbcMapping
from collections.abc import Sequence as AbcSequence
from collections.abc import Set as AbcSet
import dataclasses
from datetime import date, datetime, time
from enum import Enum
import inspect
import os
import re
import sys
import threading
import types
from typing import (
    Annotated,
    Any,
    Iterator,
    Optional,
    Sequence,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)
from typing_extensions import override

from esdata.core.common import MappingError
from esdata.core.convert.value_converters import (
    IsoTemporalPropertyValueConverter,
    PropertyValueConverter,
    TemporalPropertyValueConverter,
)
from esdata.core.loggers import Logger, NullLogger
from esdata.core.mapping.annotations import (
    DOCUMENT_ATTRIBUTE,
    MAPPING_ATTRIBUTE,
    SETTING_ATTRIBUTE,
    CreatedBy,
    CreatedDate,
    DocumentInfo,
    Field,
    GeoPoint,
    GeoPointField,
    Id,
    LastModifiedBy,
    LastModifiedDate,
    MappingInfo,
    MultiField,
    ReadOnly,
    ScriptedField,
    SeqNoPrimaryTerm,
    SettingInfo,
    Transient,
    Version,
)
from esdata.core.mapping.field_types import FieldType
from esdata.core.operations import IndexCoordinates

TYPE_HINT_FIELD = "_class"

_TEMPORAL_TYPES = (datetime, date, time)
_COLLECTION_ORIGINS = (list, set, frozenset, tuple, AbcSequence, AbcSet)
_MAP_ORIGINS = (dict, AbcMapping)


class FieldNamingStrategy(ABC):
    @abstractmethod
    def get_field_name(self, property_name: str) -> str: ...


class PropertyNameFieldNamingStrategy(FieldNamingStrategy):
    @override
    def get_field_name(self, property_name: str) -> str:
        return property_name


class CamelCaseFieldNamingStrategy(FieldNamingStrategy):
    """``first_name`` is stored as ``firstName``."""

    @override
    def get_field_name(self, property_name: str) -> str:
        head, *rest = property_name.strip("_").split("_")
        return head + "".join(part[:1].upper() + part[1:] for part in rest)


class SnakeCaseFieldNamingStrategy(FieldNamingStrategy):
    """``firstName`` is stored as ``first_name``."""

    @override
    def get_field_name(self, property_name: str) -> str:
        return re.sub(r"(?<!^)(?=[A-Z])", "_", property_name).lower()


class AuditRole(Enum):
    CREATED_DATE = "created_date"
    LAST_MODIFIED_DATE = "last_modified_date"
    CREATED_BY = "created_by"
    LAST_MODIFIED_BY = "last_modified_by"


_AUDIT_ROLES = {
    CreatedDate: AuditRole.CREATED_DATE,
    LastModifiedDate: AuditRole.LAST_MODIFIED_DATE,
    CreatedBy: AuditRole.CREATED_BY,
    LastModifiedBy: AuditRole.LAST_MODIFIED_BY,
}


def is_entity_type(t: Any) -> bool:
    return inspect.isclass(t) and dataclasses.is_dataclass(t) and t not in (GeoPoint, SeqNoPrimaryTerm)


def _strip_optional(t: Any) -> tuple[Any, bool]:
    origin = get_origin(t)

    if origin is Union or (hasattr(types, "UnionType") and origin is types.UnionType):
        args = [a for a in get_args(t) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
        return t, True

    return t, False


@dataclasses.dataclass(frozen=True)
class _TypeInfo:
    type: Any
    actual_type: Any
    is_optional: bool
    is_collection: bool
    is_map: bool


def _analyze_type(t: Any) -> _TypeInfo:
    stripped, is_optional = _strip_optional(t)
    origin = get_origin(stripped)
    args = get_args(stripped)

    if origin in _MAP_ORIGINS or stripped in (dict,):
        value_type = args[1] if len(args) == 2 else Any
        return _TypeInfo(stripped, _strip_optional(value_type)[0], is_optional, False, True)

    if origin in _COLLECTION_ORIGINS or stripped in (list, set, frozenset, tuple):
        element = args[0] if args else Any
        return _TypeInfo(stripped, _strip_optional(element)[0], is_optional, True, False)

    return _TypeInfo(stripped, stripped, is_optional, False, False)


class PersistentProperty:
    def __init__(
        self,
        owner: PersistentEntity,
        dataclass_field: dataclasses.Field[Any],
        type_hint: Any,
        naming_strategy: FieldNamingStrategy,
        logger: Logger,
    ) -> None:
        self.owner = owner
        self.name = dataclass_field.name
        self.dataclass_field = dataclass_field

        unwrapped, optional = _strip_optional(type_hint)

        if get_origin(type_hint) is Annotated:
            self.python_type = get_args(type_hint)[0]
            self.annotations: tuple[Any, ...] = tuple(type_hint.__metadata__)
        elif optional and get_origin(unwrapped) is Annotated:
            # older interpreters wrap Annotated[T, ...] = None into Optional[...]
            self.python_type = Optional[get_args(unwrapped)[0]]
            self.annotations = tuple(unwrapped.__metadata__)
        else:
            self.python_type = type_hint
            self.annotations = ()

        info = _analyze_type(self.python_type)
        self.type = info.type
        self.actual_type = info.actual_type
        self.is_optional = info.is_optional
        self.is_collection = info.is_collection
        self.is_map = info.is_map

        self.field: Optional[Field] = None
        self.multi_field: Optional[MultiField] = None
        self.geo_point_field: Optional[GeoPointField] = self._find(GeoPointField)
        self.scripted_field: Optional[ScriptedField] = self._find(ScriptedField)

        if multi := self._find(MultiField):
            self.multi_field = multi
            self.field = multi.main_field
        else:
            self.field = self._find(Field)

        if self.field and self.field.name:
            self.field_name = self.field.name
            self.has_explicit_field_name = True
        else:
            self.field_name = naming_strategy.get_field_name(self.name)
            self.has_explicit_field_name = False

        self.is_id = self._find(Id) is not None
        self.is_version = self._find(Version) is not None
        self.is_seq_no_primary_term = self.actual_type is SeqNoPrimaryTerm
        self.is_read_only = self._find(ReadOnly) is not None
        self.is_transient = self._find(Transient) is not None
        self.is_scripted = self.scripted_field is not None
        self.is_geo_point = self.actual_type is GeoPoint or self.geo_point_field is not None
        self.is_entity = is_entity_type(self.actual_type)
        self.is_enum = inspect.isclass(self.actual_type) and issubclass(self.actual_type, Enum)
        self.is_temporal = inspect.isclass(self.actual_type) and issubclass(
            self.actual_type, _TEMPORAL_TYPES
        )

        self.audit_role: Optional[AuditRole] = next(
            (_AUDIT_ROLES[type(a)] for a in self.annotations if type(a) in _AUDIT_ROLES),
            None,
        )

        self.field_type = self.field.type if self.field else FieldType.AUTO
        if self.is_geo_point and self.field_type is FieldType.AUTO:
            self.field_type = FieldType.GEO_POINT

        self.date_formats: tuple[Any, ...] = ()
        self.value_converter: Optional[PropertyValueConverter] = self._init_value_converter(
            logger
        )

    def _find(self, annotation_type: type) -> Any:
        return next((a for a in self.annotations if isinstance(a, annotation_type)), None)

    def _init_value_converter(self, logger: Logger) -> Optional[PropertyValueConverter]:
        if self.field and self.field.value_converter:
            converter_type = self.field.value_converter
            if not (
                inspect.isclass(converter_type) and issubclass(converter_type, PropertyValueConverter)
            ):
                raise MappingError(
                    f"value_converter of {self.owner.type.__name__}.{self.name} "
                    "must be a PropertyValueConverter subclass"
                )
            return converter_type()

        if not self.is_temporal:
            return None

        if self.field and self.field_type.is_date:
            self.date_formats = tuple(f for f in self.field.format if f.value != "none") + tuple(
                self.field.pattern
            )

            if self.date_formats:
                return TemporalPropertyValueConverter(self.date_formats, self.actual_type)

        logger.warning(
            f"No date formatter for {self.owner.type.__name__}.{self.name}: it is not "
            "annotated with a date field type and a format; it will be stored in ISO format"
        )
        return IsoTemporalPropertyValueConverter(self.actual_type)

    @property
    def is_writable(self) -> bool:
        return not (
            self.is_read_only
            or self.is_scripted
            or self.is_transient
            or self.is_version
            or self.is_seq_no_primary_term
        )

    @property
    def is_readable(self) -> bool:
        return not self.is_transient

    @property
    def store_null_value(self) -> bool:
        return bool(self.field and self.field.store_null_value)

    @property
    def is_nested_path(self) -> bool:
        return self.field_type is FieldType.NESTED

    @property
    def has_default(self) -> bool:
        return (
            self.dataclass_field.default is not dataclasses.MISSING
            or self.dataclass_field.default_factory is not dataclasses.MISSING
        )

    @property
    def in_constructor(self) -> bool:
        return self.dataclass_field.init

    def __repr__(self) -> str:
        return f"PersistentProperty({self.owner.type.__name__}.{self.name} -> {self.field_name})"


class PersistentEntity:
    def __init__(
        self,
        cls: type,
        naming_strategy: FieldNamingStrategy,
        logger: Logger,
    ) -> None:
        self.type = cls
        self.name = cls.__name__
        self.type_alias = f"{cls.__module__}.{cls.__qualname__}"

        self.document: Optional[DocumentInfo] = getattr(cls, DOCUMENT_ATTRIBUTE, None)
        self.setting: SettingInfo = getattr(cls, SETTING_ATTRIBUTE, None) or SettingInfo()
        self.mapping: MappingInfo = getattr(cls, MAPPING_ATTRIBUTE, None) or MappingInfo()
        self.has_setting = getattr(cls, SETTING_ATTRIBUTE, None) is not None
        self.has_mapping = getattr(cls, MAPPING_ATTRIBUTE, None) is not None

        try:
            hints = get_type_hints(cls, include_extras=True)
        except NameError as exc:
            raise MappingError(f"Cannot resolve type hints of {cls.__name__}: {exc}") from exc

        self.properties: list[PersistentProperty] = [
            PersistentProperty(self, f, hints.get(f.name, Any), naming_strategy, logger)
            for f in dataclasses.fields(cls)
        ]
        self._by_name = {p.name: p for p in self.properties}
        self._by_field_name = {p.field_name: p for p in self.properties}

        self.id_property = self._select_id_property()
        if self.id_property:
            self.id_property.is_id = True

        self.version_property = self._single(lambda p: p.is_version, "version")
        self.seq_no_primary_term_property = self._single(
            lambda p: p.is_seq_no_primary_term, "seq_no/primary_term"
        )

        if self.version_property and self.seq_no_primary_term_property:
            raise MappingError(
                f"{cls.__name__} declares both a version property and a seq_no/primary_term "
                "property; only one optimistic locking mechanism can be used"
            )

    def _select_id_property(self) -> Optional[PersistentProperty]:
        explicit = [p for p in self.properties if p.is_id]

        if len(explicit) > 1:
            raise MappingError(f"{self.name} declares more than one Id property")
        if explicit:
            return explicit[0]

        for candidate in ("id", "document_id"):
            if candidate in self._by_name:
                return self._by_name[candidate]

        return None

    def _single(self, predicate: Any, description: str) -> Optional[PersistentProperty]:
        matches = [p for p in self.properties if predicate(p)]

        if len(matches) > 1:
            raise MappingError(f"{self.name} declares more than one {description} property")

        return matches[0] if matches else None

    @property
    def is_document(self) -> bool:
        return self.document is not None

    @property
    def index_name(self) -> str:
        if not self.document:
            raise MappingError(f"{self.name} is not annotated with @document")

        name = self.document.index_name
        return name() if callable(name) else name

    @property
    def index_coordinates(self) -> IndexCoordinates:
        return IndexCoordinates.of(self.index_name)

    @property
    def write_type_hint(self) -> bool:
        return self.document.write_type_hint if self.document else True

    @property
    def store_id_in_source(self) -> bool:
        return self.document.store_id_in_source if self.document else True

    @property
    def store_version_in_source(self) -> bool:
        return self.document.store_version_in_source if self.document else True

    @property
    def is_create_index_and_mapping(self) -> bool:
        return bool(self.document and self.document.create_index)

    @property
    def audit_properties(self) -> dict[AuditRole, PersistentProperty]:
        return {p.audit_role: p for p in self.properties if p.audit_role}

    def get_property(self, name: str) -> Optional[PersistentProperty]:
        return self._by_name.get(name)

    def get_property_by_field_name(self, field_name: str) -> Optional[PersistentProperty]:
        return self._by_field_name.get(field_name)

    def __iter__(self) -> Iterator[PersistentProperty]:
        return iter(self.properties)

    def resolve_path(self, path: str) -> str:
        """Resolves a mapping/settings file path declared on the entity.

        Absolute paths are used as-is; other paths (a leading ``/`` is ignored)
        are relative to the directory of the module declaring the entity.
        """
        if os.path.isabs(path) and os.path.exists(path):
            return path

        module = sys.modules.get(self.type.__module__)
        base_dir = (
            os.path.dirname(os.path.abspath(module.__file__))
            if module and getattr(module, "__file__", None)
            else os.getcwd()
        )
        return os.path.join(base_dir, path.lstrip("/"))

    def __repr__(self) -> str:
        return f"PersistentEntity({self.type_alias})"


class MappingContext:
    """Builds and caches entity metadata per class."""

    def __init__(
        self,
        field_naming_strategy: Optional[FieldNamingStrategy] = None,
        logger: Optional[Logger] = None,
        initial_entities: Sequence[type] = (),
    ) -> None:
        self.field_naming_strategy = field_naming_strategy or PropertyNameFieldNamingStrategy()
        self._logger = logger or NullLogger()
        self._entities: dict[type, PersistentEntity] = {}
        self._aliases: dict[str, type] = {}
        self._lock = threading.RLock()

        for cls in initial_entities:
            self.get_persistent_entity(cls)

    def has_persistent_entity(self, cls: type) -> bool:
        return cls in self._entities

    def get_persistent_entity(self, cls: type) -> PersistentEntity:
        if entity := self._entities.get(cls):
            return entity

        if not is_entity_type(cls):
            raise MappingError(f"{getattr(cls, '__name__', cls)!r} is not a dataclass entity")

        with self._lock:
            if entity := self._entities.get(cls):
                return entity

            self._logger.trace(f"Building persistent entity for {cls.__qualname__}")

            entity = PersistentEntity(cls, self.field_naming_strategy, self._logger)
            self._entities[cls] = entity
            self._aliases[entity.type_alias] = cls

            for prop in entity.properties:
                if prop.is_entity and prop.actual_type is not cls:
                    self.get_persistent_entity(prop.actual_type)

            return entity

    def get_persistent_entities(self) -> list[PersistentEntity]:
        return list(self._entities.values())

    def resolve_type_alias(self, alias: str) -> Optional[type]:
        return self._aliases.get(alias)

    def get_property_path(self, cls: type, path: str) -> list[PersistentProperty]:
        """Resolves a dotted property path; unknown segments end the resolution."""
        result: list[PersistentProperty] = []
        current: Optional[type] = cls

        for segment in path.split("."):
            if current is None or not is_entity_type(current):
                break

            entity = self.get_persistent_entity(current)
            prop = entity.get_property(segment) or entity.get_property_by_field_name(segment)
            if not prop:
                break

            result.append(prop)
            current = prop.actual_type if prop.is_entity else None

        return result
