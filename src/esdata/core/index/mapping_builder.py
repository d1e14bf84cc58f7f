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

"""Builds index mappings and settings from entity metadata.

Mapping parameters are only written when they differ from the Elasticsearch
defaults, so an annotated property produces the smallest equivalent mapping.
"""

from __future__ import annotations
import asyncio
import copy
import json
import threading
from typing import Any, Optional, Union

from esdata.core.common import MappingError
from esdata.core.convert.converter import MappingElasticsearchConverter
from esdata.core.loggers import Logger, NullLogger
from esdata.core.mapping.annotations import Field, InnerField, MultiField
from esdata.core.mapping.context import (
    TYPE_HINT_FIELD,
    PersistentEntity,
    PersistentProperty,
)
from esdata.core.mapping.field_types import FieldType, NullValueType

TYPE_HINT_MAPPING: dict[str, Any] = {"type": "keyword", "index": False, "doc_values": False}


def _typed_null_value(value: str, value_type: NullValueType) -> Union[str, int, float]:
    if value_type in (NullValueType.INTEGER, NullValueType.LONG):
        return int(value)
    if value_type is NullValueType.DOUBLE:
        return float(value)
    return value


def _field_parameters(
    field: Union[Field, InnerField],
    nested_or_object: bool = False,
) -> dict[str, Any]:
    params: dict[str, Any] = {}

    if field.type is not FieldType.AUTO:
        params["type"] = field.type.mapped_name

        if field.type.is_date:
            formats = [f.value for f in field.format if f.value != "none"] + list(field.pattern)
            if formats:
                params["format"] = "||".join(formats)

    if nested_or_object:
        if isinstance(field, Field):
            if not field.enabled:
                params["enabled"] = False
            if field.dynamic is not None:
                params["dynamic"] = field.dynamic.value
            if field.type is FieldType.NESTED and field.include_in_parent:
                params["include_in_parent"] = True
        return params

    if field.fielddata:
        params["fielddata"] = True
    if not field.index:
        params["index"] = False
    if field.store:
        params["store"] = True
    if not field.doc_values:
        params["doc_values"] = False
    if field.analyzer:
        params["analyzer"] = field.analyzer
    if field.search_analyzer:
        params["search_analyzer"] = field.search_analyzer
    if field.normalizer:
        params["normalizer"] = field.normalizer
    if isinstance(field, Field) and field.copy_to:
        params["copy_to"] = list(field.copy_to)
    if field.ignore_above is not None:
        params["ignore_above"] = field.ignore_above
    if not field.coerce:
        params["coerce"] = False
    if field.eager_global_ordinals:
        params["eager_global_ordinals"] = True
    if field.ignore_malformed:
        params["ignore_malformed"] = True
    if field.index_options is not None:
        params["index_options"] = field.index_options.value
    if field.index_phrases:
        params["index_phrases"] = True
    if not field.norms:
        params["norms"] = False
    if field.max_shingle_size is not None:
        params["max_shingle_size"] = field.max_shingle_size
    if field.null_value is not None:
        params["null_value"] = _typed_null_value(field.null_value, field.null_value_type)
    if field.position_increment_gap is not None:
        params["position_increment_gap"] = field.position_increment_gap
    if field.similarity:
        params["similarity"] = field.similarity
    if field.term_vector is not None:
        params["term_vector"] = field.term_vector.value
    if field.scaling_factor is not None:
        params["scaling_factor"] = field.scaling_factor
    if not field.positive_score_impact:
        params["positive_score_impact"] = False

    if isinstance(field, Field):
        if field.dims is not None:
            params["dims"] = field.dims
        if field.element_type:
            params["element_type"] = field.element_type
        if not field.enabled:
            params["enabled"] = False

    return params


class MappingBuilder:
    def __init__(
        self,
        converter: MappingElasticsearchConverter,
        logger: Optional[Logger] = None,
    ) -> None:
        self._mapping_context = converter.mapping_context
        self._logger = logger or NullLogger()
        self._resource_cache: dict[str, Any] = {}
        self._lock = threading.Lock()

    def build_property_mapping(self, cls: type) -> str:
        return json.dumps(self.build_mapping(cls))

    async def build_property_mapping_async(self, cls: type) -> str:
        return await asyncio.to_thread(self.build_property_mapping, cls)

    def build_mapping(self, cls: type) -> dict[str, Any]:
        entity = self._mapping_context.get_persistent_entity(cls)

        if entity.mapping.mapping_path:
            mapping = self.read_resource(entity, entity.mapping.mapping_path)
            if not isinstance(mapping, dict):
                raise MappingError(f"Mapping file of {entity.name} must contain a JSON object")
            return mapping

        mapping: dict[str, Any] = {}

        if entity.mapping.runtime_fields_path:
            mapping["runtime"] = self.read_resource(entity, entity.mapping.runtime_fields_path)

        if not entity.mapping.enabled:
            mapping["enabled"] = False
            return mapping

        if entity.document and entity.document.dynamic is not None:
            mapping["dynamic"] = entity.document.dynamic.value
        if entity.mapping.date_detection is not None:
            mapping["date_detection"] = entity.mapping.date_detection
        if entity.mapping.numeric_detection is not None:
            mapping["numeric_detection"] = entity.mapping.numeric_detection
        if entity.mapping.dynamic_date_formats:
            mapping["dynamic_date_formats"] = list(entity.mapping.dynamic_date_formats)

        mapping["properties"] = self._map_properties(
            entity, is_root=True, write_type_hint=entity.write_type_hint
        )

        excludes = [p.field_name for p in entity if p.field and p.field.exclude_from_source]
        if excludes:
            mapping["_source"] = {"excludes": excludes}

        return mapping

    def _map_properties(
        self,
        entity: PersistentEntity,
        is_root: bool,
        write_type_hint: bool,
    ) -> dict[str, Any]:
        properties: dict[str, Any] = {}

        if write_type_hint:
            properties[TYPE_HINT_FIELD] = dict(TYPE_HINT_MAPPING)

        for prop in entity.properties:
            self._map_property(properties, prop, is_root, write_type_hint)

        return properties

    def _map_property(
        self,
        properties: dict[str, Any],
        prop: PersistentProperty,
        is_root: bool,
        write_type_hint: bool,
    ) -> None:
        if prop.is_transient or prop.is_seq_no_primary_term or prop.is_scripted:
            if prop.field:
                self._logger.warning(
                    f"Property {prop.owner.name}.{prop.name} is not stored; its Field annotation is ignored"
                )
            return

        if prop.is_geo_point:
            geo: dict[str, Any] = {"type": FieldType.GEO_POINT.mapped_name}
            if prop.geo_point_field:
                if prop.geo_point_field.ignore_malformed:
                    geo["ignore_malformed"] = True
                if not prop.geo_point_field.ignore_z_value:
                    geo["ignore_z_value"] = False
            properties[prop.field_name] = geo
            return

        field = prop.field

        if is_root and field is not None and prop.is_id:
            properties[prop.field_name] = {"type": "keyword", "index": True}
            return

        if field is not None and field.type.is_nested_or_object:
            properties[prop.field_name] = self._map_object(prop, field, write_type_hint)
            return

        if prop.multi_field is not None:
            properties[prop.field_name] = self._multi_field_mapping(prop.multi_field)
            return

        if field is not None:
            params = _field_parameters(field)
            # an empty mapping is not valid; the field is mapped dynamically
            if params:
                properties[prop.field_name] = params

    def _map_object(
        self,
        prop: PersistentProperty,
        field: Field,
        write_type_hint: bool,
    ) -> dict[str, Any]:
        mapping = _field_parameters(field, nested_or_object=True)

        if not field.enabled or not prop.is_entity:
            return mapping

        nested_entity = self._mapping_context.get_persistent_entity(prop.actual_type)
        mapping["properties"] = self._map_properties(
            nested_entity, is_root=False, write_type_hint=write_type_hint
        )
        return mapping

    def _multi_field_mapping(self, multi_field: MultiField) -> dict[str, Any]:
        mapping = _field_parameters(multi_field.main_field)
        mapping["fields"] = {
            inner.suffix: _field_parameters(inner) for inner in multi_field.other_fields
        }
        return mapping

    def read_resource(self, entity: PersistentEntity, path: str) -> Any:
        resolved = entity.resolve_path(path)

        with self._lock:
            if resolved in self._resource_cache:
                return copy.deepcopy(self._resource_cache[resolved])

            try:
                with open(resolved, encoding="utf-8") as f:
                    content = json.load(f)
            except OSError as exc:
                raise MappingError(f"Cannot read mapping resource {path!r} of {entity.name}") from exc
            except json.JSONDecodeError as exc:
                raise MappingError(f"Mapping resource {path!r} is not valid JSON") from exc

            self._resource_cache[resolved] = content
            return copy.deepcopy(content)


class SettingsBuilder:
    def __init__(self, mapping_builder: MappingBuilder) -> None:
        self._mapping_builder = mapping_builder

    def build_settings(self, entity: PersistentEntity) -> dict[str, Any]:
        setting = entity.setting

        if setting.setting_path:
            content = self._mapping_builder.read_resource(entity, setting.setting_path)
            if not isinstance(content, dict):
                raise MappingError(f"Settings file of {entity.name} must contain a JSON object")
            return content

        index: dict[str, Any] = {
            "number_of_shards": setting.shards,
            "number_of_replicas": setting.replicas,
        }

        if setting.refresh_interval:
            index["refresh_interval"] = setting.refresh_interval
        if setting.index_store_type:
            index["store"] = {"type": setting.index_store_type}

        if setting.sort_fields:
            sort: dict[str, Any] = {
                "field": [self._sort_field_name(entity, f) for f in setting.sort_fields]
            }
            if setting.sort_orders:
                sort["order"] = list(setting.sort_orders)
            if setting.sort_modes:
                sort["mode"] = list(setting.sort_modes)
            if setting.sort_missing_values:
                sort["missing"] = list(setting.sort_missing_values)

            if setting.sort_orders and len(setting.sort_orders) != len(setting.sort_fields):
                raise MappingError(f"{entity.name}: sort_orders must match sort_fields in length")

            index["sort"] = sort

        return {"index": index}

    @staticmethod
    def _sort_field_name(entity: PersistentEntity, name: str) -> str:
        prop = entity.get_property(name)
        return prop.field_name if prop else name
