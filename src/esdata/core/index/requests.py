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
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Sequence


class AliasActionType(Enum):
    ADD = "add"
    REMOVE = "remove"
    REMOVE_INDEX = "remove_index"


@dataclass(frozen=True)
class AliasAction:
    type: AliasActionType
    indices: Sequence[str]
    aliases: Sequence[str] = ()
    filter: Optional[Mapping[str, Any]] = None
    routing: Optional[str] = None
    index_routing: Optional[str] = None
    search_routing: Optional[str] = None
    is_write_index: Optional[bool] = None
    is_hidden: Optional[bool] = None

    def __post_init__(self) -> None:
        if not self.indices:
            raise ValueError("An alias action needs at least one index")
        if self.type is not AliasActionType.REMOVE_INDEX and not self.aliases:
            raise ValueError(f"A {self.type.value} alias action needs at least one alias")

    def to_action(self) -> dict[str, Any]:
        body: dict[str, Any] = {"indices": list(self.indices)}

        if self.type is not AliasActionType.REMOVE_INDEX:
            body["aliases"] = list(self.aliases)

        if self.type is AliasActionType.ADD:
            optional = {
                "filter": dict(self.filter) if self.filter else None,
                "routing": self.routing,
                "index_routing": self.index_routing,
                "search_routing": self.search_routing,
                "is_write_index": self.is_write_index,
                "is_hidden": self.is_hidden,
            }
            body.update({k: v for k, v in optional.items() if v is not None})

        return {self.type.value: body}


@dataclass(frozen=True)
class AliasData:
    alias: str
    filter: Optional[Mapping[str, Any]] = None
    index_routing: Optional[str] = None
    search_routing: Optional[str] = None
    is_write_index: Optional[bool] = None
    is_hidden: Optional[bool] = None

    @staticmethod
    def of(alias: str, data: Mapping[str, Any]) -> AliasData:
        return AliasData(
            alias=alias,
            filter=data.get("filter"),
            index_routing=data.get("index_routing"),
            search_routing=data.get("search_routing"),
            is_write_index=data.get("is_write_index"),
            is_hidden=data.get("is_hidden"),
        )


@dataclass(frozen=True)
class PutIndexTemplateRequest:
    name: str
    index_patterns: Sequence[str]
    settings: Optional[Mapping[str, Any]] = None
    mappings: Optional[Mapping[str, Any]] = None
    aliases: Sequence[AliasData] = ()
    composed_of: Sequence[str] = ()
    priority: Optional[int] = None
    version: Optional[int] = None
    meta: Mapping[str, Any] = field(default_factory=dict)

    def to_request(self) -> dict[str, Any]:
        template: dict[str, Any] = {}

        if self.settings:
            template["settings"] = dict(self.settings)
        if self.mappings:
            template["mappings"] = dict(self.mappings)
        if self.aliases:
            template["aliases"] = {
                a.alias: {
                    k: v
                    for k, v in {
                        "filter": a.filter,
                        "index_routing": a.index_routing,
                        "search_routing": a.search_routing,
                        "is_write_index": a.is_write_index,
                        "is_hidden": a.is_hidden,
                    }.items()
                    if v is not None
                }
                for a in self.aliases
            }

        request: dict[str, Any] = {
            "name": self.name,
            "index_patterns": list(self.index_patterns),
        }

        if template:
            request["template"] = template
        if self.composed_of:
            request["composed_of"] = list(self.composed_of)
        if self.priority is not None:
            request["priority"] = self.priority
        if self.version is not None:
            request["version"] = self.version
        if self.meta:
            request["meta"] = dict(self.meta)

        return request


@dataclass(frozen=True)
class TemplateData:
    name: str
    index_patterns: Sequence[str]
    settings: Mapping[str, Any] = field(default_factory=dict)
    mappings: Mapping[str, Any] = field(default_factory=dict)
    aliases: Mapping[str, AliasData] = field(default_factory=dict)
    composed_of: Sequence[str] = ()
    priority: Optional[int] = None
    version: Optional[int] = None

    @staticmethod
    def from_response(item: Mapping[str, Any]) -> TemplateData:
        index_template = item.get("index_template") or {}
        template = index_template.get("template") or {}

        return TemplateData(
            name=item["name"],
            index_patterns=list(index_template.get("index_patterns") or ()),
            settings=template.get("settings") or {},
            mappings=template.get("mappings") or {},
            aliases={
                alias: AliasData.of(alias, data or {})
                for alias, data in (template.get("aliases") or {}).items()
            },
            composed_of=list(index_template.get("composed_of") or ()),
            priority=index_template.get("priority"),
            version=index_template.get("version"),
        )


_MAPPING_META_FIELDS = {"_source", "_routing", "_meta", "_field_names", "_data_stream_timestamp"}


def put_mapping_arguments(mapping: Mapping[str, Any]) -> dict[str, Any]:
    """Turns a mapping body into ``indices.put_mapping`` keyword arguments."""
    return {
        (key.lstrip("_") if key in _MAPPING_META_FIELDS else key): value
        for key, value in mapping.items()
    }
