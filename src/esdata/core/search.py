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
import math
from typing import Any, Generic, Iterator, Mapping, Optional, Sequence, TypeVar

from esdata.core.convert.document import SearchDocument
from esdata.core.mapping.context import MappingContext, is_entity_type
from esdata.core.query.query import Page, Pageable

T = TypeVar("T")


class TotalHitsRelation(Enum):
    EQUAL_TO = "eq"
    GREATER_THAN_OR_EQUAL_TO = "gte"
    OFF = "off"


@dataclass(frozen=True)
class SearchHit(Generic[T]):
    content: T
    id: Optional[str] = None
    index: Optional[str] = None
    score: float = math.nan
    sort_values: Sequence[Any] = ()
    highlight_fields: Mapping[str, Sequence[str]] = field(default_factory=dict)
    inner_hits: Mapping[str, Any] = field(default_factory=dict)
    matched_queries: Sequence[str] = ()
    explanation: Optional[Mapping[str, Any]] = None
    routing: Optional[str] = None

    def get_highlight_field(self, name: str) -> list[str]:
        return list(self.highlight_fields.get(name, ()))


@dataclass(frozen=True)
class SearchHits(Generic[T]):
    total_hits: int
    total_hits_relation: TotalHitsRelation
    max_score: float
    search_hits: Sequence[SearchHit[T]]
    aggregations: Optional[Mapping[str, Any]] = None
    scroll_id: Optional[str] = None
    suggest: Optional[Mapping[str, Any]] = None

    @property
    def has_search_hits(self) -> bool:
        return bool(self.search_hits)

    @property
    def has_aggregations(self) -> bool:
        return bool(self.aggregations)

    def get_search_hit(self, index: int) -> SearchHit[T]:
        return self.search_hits[index]

    def contents(self) -> list[T]:
        return [hit.content for hit in self.search_hits]

    def __iter__(self) -> Iterator[SearchHit[T]]:
        return iter(self.search_hits)

    def __len__(self) -> int:
        return len(self.search_hits)


def get_total_count(search_hits: SearchHits[Any]) -> int:
    return search_hits.total_hits


@dataclass(frozen=True)
class SearchPage(Page[SearchHit[T]]):
    search_hits: SearchHits[T] = field(default=None)  # type: ignore[assignment]

    @staticmethod
    def of(search_hits: SearchHits[T], pageable: Pageable) -> SearchPage[T]:
        return SearchPage(
            content=list(search_hits.search_hits),
            pageable=pageable,
            total_elements=search_hits.total_hits,
            search_hits=search_hits,
        )


@dataclass(frozen=True)
class MultiGetFailure:
    index: Optional[str]
    id: Optional[str]
    type: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class MultiGetItem(Generic[T]):
    item: Optional[T] = None
    failure: Optional[MultiGetFailure] = None

    @property
    def has_item(self) -> bool:
        return self.item is not None

    @property
    def is_failed(self) -> bool:
        return self.failure is not None


@dataclass(frozen=True)
class SearchDocumentResponse:
    """The parts of a search response needed to build :class:`SearchHits`."""

    total_hits: int
    total_hits_relation: TotalHitsRelation
    max_score: float
    search_documents: Sequence[SearchDocument]
    aggregations: Optional[Mapping[str, Any]] = None
    scroll_id: Optional[str] = None
    suggest: Optional[Mapping[str, Any]] = None

    @staticmethod
    def from_response(body: Mapping[str, Any]) -> SearchDocumentResponse:
        hits = body.get("hits") or {}
        total = hits.get("total")

        if isinstance(total, Mapping):
            total_hits = int(total.get("value", 0))
            relation = TotalHitsRelation(total.get("relation", "eq"))
        elif isinstance(total, int):
            total_hits, relation = total, TotalHitsRelation.EQUAL_TO
        else:
            total_hits, relation = 0, TotalHitsRelation.OFF

        max_score = hits.get("max_score")

        return SearchDocumentResponse(
            total_hits=total_hits,
            total_hits_relation=relation,
            max_score=float(max_score) if max_score is not None else math.nan,
            search_documents=[SearchDocument.from_hit(h) for h in hits.get("hits") or ()],
            aggregations=body.get("aggregations"),
            scroll_id=body.get("_scroll_id"),
            suggest=body.get("suggest"),
        )


class SearchHitMapping(Generic[T]):
    """Combines read entities with the hit metadata of their documents."""

    def __init__(self, cls: type[T], mapping_context: MappingContext) -> None:
        self._cls = cls
        self._mapping_context = mapping_context

    def map_hits(
        self,
        response: SearchDocumentResponse,
        contents: Sequence[T],
    ) -> SearchHits[T]:
        if len(contents) != len(response.search_documents):
            raise ValueError("Count of documents must match the count of entities")

        return SearchHits(
            total_hits=response.total_hits,
            total_hits_relation=response.total_hits_relation,
            max_score=response.max_score,
            search_hits=[
                self.map_hit(document, content)
                for document, content in zip(response.search_documents, contents)
            ],
            aggregations=response.aggregations,
            scroll_id=response.scroll_id,
            suggest=response.suggest,
        )

    def map_hit(self, document: SearchDocument, content: T) -> SearchHit[T]:
        return SearchHit(
            content=content,
            id=document.id,
            index=document.index,
            score=document.score if document.score is not None else math.nan,
            sort_values=list(document.sort_values),
            highlight_fields=self._property_highlight_fields(document.highlight_fields),
            inner_hits=dict(document.inner_hits),
            matched_queries=list(document.matched_queries),
            explanation=document.explanation,
            routing=document.routing,
        )

    def _property_highlight_fields(
        self,
        highlight_fields: Mapping[str, Sequence[str]],
    ) -> dict[str, list[str]]:
        if not is_entity_type(self._cls):
            return {k: list(v) for k, v in highlight_fields.items()}

        entity = self._mapping_context.get_persistent_entity(self._cls)
        result: dict[str, list[str]] = {}

        for field_name, fragments in highlight_fields.items():
            prop = entity.get_property_by_field_name(field_name)
            result[prop.name if prop else field_name] = list(fragments)

        return result
