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
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import Enum
import math
from typing import Any, Callable, Generic, Iterator, Mapping, Optional, Sequence, TypeVar
from typing_extensions import Self

from esdata.core.query.criteria import Criteria

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_UNPAGED_SIZE = 10_000


class Direction(Enum):
    ASC = "asc"
    DESC = "desc"

    @staticmethod
    def from_string(value: str) -> Direction:
        try:
            return Direction(value.lower())
        except ValueError:
            raise ValueError(f"Invalid sort direction {value!r}; use 'asc' or 'desc'") from None


class NullHandling(Enum):
    NATIVE = "native"
    NULLS_FIRST = "nulls_first"
    NULLS_LAST = "nulls_last"


@dataclass(frozen=True)
class Order:
    property: str
    direction: Direction = Direction.ASC
    null_handling: NullHandling = NullHandling.NATIVE
    mode: Optional[str] = None
    unmapped_type: Optional[str] = None
    missing: Optional[Any] = None

    @staticmethod
    def asc(property: str) -> Order:
        return Order(property, Direction.ASC)

    @staticmethod
    def desc(property: str) -> Order:
        return Order(property, Direction.DESC)

    @property
    def is_ascending(self) -> bool:
        return self.direction is Direction.ASC

    def with_property(self, property: str) -> Order:
        return replace(self, property=property)


@dataclass(frozen=True)
class Sort:
    orders: tuple[Order, ...] = ()

    @staticmethod
    def by(*properties: str, direction: Direction = Direction.ASC) -> Sort:
        return Sort(tuple(Order(p, direction) for p in properties))

    @staticmethod
    def by_orders(*orders: Order) -> Sort:
        return Sort(tuple(orders))

    @staticmethod
    def unsorted() -> Sort:
        return Sort()

    @property
    def is_sorted(self) -> bool:
        return bool(self.orders)

    def and_(self, other: Sort) -> Sort:
        return Sort(self.orders + other.orders)

    def ascending(self) -> Sort:
        return Sort(tuple(replace(o, direction=Direction.ASC) for o in self.orders))

    def descending(self) -> Sort:
        return Sort(tuple(replace(o, direction=Direction.DESC) for o in self.orders))

    def __iter__(self) -> Iterator[Order]:
        return iter(self.orders)

    def __bool__(self) -> bool:
        return self.is_sorted


class Pageable:
    """Pagination information; :meth:`unpaged` returns the unpaged instance."""

    @property
    def is_paged(self) -> bool:
        return False

    @property
    def sort(self) -> Sort:
        return Sort.unsorted()

    @staticmethod
    def unpaged() -> Pageable:
        return _UNPAGED


_UNPAGED = Pageable()


@dataclass(frozen=True)
class PageRequest(Pageable):
    page: int
    size: int
    page_sort: Sort = field(default_factory=Sort.unsorted)

    def __post_init__(self) -> None:
        if self.page < 0:
            raise ValueError("Page index must not be less than zero")
        if self.size < 1:
            raise ValueError("Page size must not be less than one")

    @staticmethod
    def of(page: int, size: int, sort: Optional[Sort] = None) -> PageRequest:
        return PageRequest(page, size, sort or Sort.unsorted())

    @property
    def is_paged(self) -> bool:
        return True

    @property
    def sort(self) -> Sort:
        return self.page_sort

    @property
    def offset(self) -> int:
        return self.page * self.size

    def next(self) -> PageRequest:
        return replace(self, page=self.page + 1)

    def previous_or_first(self) -> PageRequest:
        return replace(self, page=self.page - 1) if self.page > 0 else self

    def first(self) -> PageRequest:
        return replace(self, page=0)

    def with_sort(self, sort: Sort) -> PageRequest:
        return replace(self, page_sort=sort)


@dataclass(frozen=True)
class Page(Generic[T]):
    content: Sequence[T]
    pageable: Pageable
    total_elements: int

    @property
    def number(self) -> int:
        return self.pageable.page if isinstance(self.pageable, PageRequest) else 0

    @property
    def size(self) -> int:
        return self.pageable.size if isinstance(self.pageable, PageRequest) else len(self.content)

    @property
    def total_pages(self) -> int:
        if self.size == 0:
            return 1
        return max(1, math.ceil(self.total_elements / self.size))

    @property
    def has_next(self) -> bool:
        return self.number + 1 < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.number > 0

    @property
    def is_first(self) -> bool:
        return not self.has_previous

    @property
    def is_last(self) -> bool:
        return not self.has_next

    def map(self, converter: Callable[[T], R]) -> Page[R]:
        return Page([converter(c) for c in self.content], self.pageable, self.total_elements)

    def __iter__(self) -> Iterator[T]:
        return iter(self.content)

    def __len__(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class SourceFilter:
    includes: Sequence[str] = ()
    excludes: Sequence[str] = ()
    fetch_source: Optional[bool] = None


@dataclass(frozen=True)
class RuntimeField:
    name: str
    type: str
    script: Optional[str] = None
    params: Optional[Mapping[str, Any]] = None

    def to_mapping(self) -> dict[str, Any]:
        mapping: dict[str, Any] = {"type": self.type}

        if self.script:
            script: dict[str, Any] = {"source": self.script}
            if self.params:
                script["params"] = dict(self.params)
            mapping["script"] = script

        return mapping


@dataclass(frozen=True)
class ScriptData:
    source: Optional[str] = None
    lang: Optional[str] = None
    params: Optional[Mapping[str, Any]] = None
    script_name: Optional[str] = None

    def to_script(self) -> dict[str, Any]:
        script: dict[str, Any] = {}
        if self.script_name:
            script["id"] = self.script_name
        if self.source:
            script["source"] = self.source
        if self.lang:
            script["lang"] = self.lang
        if self.params:
            script["params"] = dict(self.params)
        return script


@dataclass(frozen=True)
class ScriptedField:
    """A script field requested in a search; hits carry its value in ``fields``."""

    name: str
    script: ScriptData


@dataclass(frozen=True)
class HighlightParameters:
    pre_tags: Sequence[str] = ()
    post_tags: Sequence[str] = ()
    fragment_size: Optional[int] = None
    number_of_fragments: Optional[int] = None
    type: Optional[str] = None
    order: Optional[str] = None
    require_field_match: Optional[bool] = None
    encoder: Optional[str] = None
    boundary_scanner: Optional[str] = None
    no_match_size: Optional[int] = None
    tags_schema: Optional[str] = None
    matched_fields: Sequence[str] = ()


@dataclass(frozen=True)
class HighlightField:
    name: str
    parameters: Optional[HighlightParameters] = None


@dataclass(frozen=True)
class Highlight:
    fields: Sequence[HighlightField]
    parameters: HighlightParameters = field(default_factory=HighlightParameters)


@dataclass(frozen=True)
class HighlightQuery:
    """A highlight definition whose field names are mapped against ``type`` when set."""

    highlight: Highlight
    type: Optional[type] = None


@dataclass(frozen=True)
class IndexBoost:
    index_name: str
    boost: float


class Query:
    """Settings shared by every search request type."""

    def __init__(
        self,
        pageable: Optional[Pageable] = None,
        sort: Optional[Sort] = None,
    ) -> None:
        self.pageable: Pageable = Pageable.unpaged()
        self.sort: Optional[Sort] = None
        self.fields: list[str] = []
        self.stored_fields: list[str] = []
        self.source_filter: Optional[SourceFilter] = None
        self.runtime_fields: list[RuntimeField] = []
        self.scripted_fields: list[ScriptedField] = []
        self.highlight_query: Optional[HighlightQuery] = None
        self.min_score: Optional[float] = None
        self.ids: list[str] = []
        self.route: Optional[str] = None
        self.track_scores: bool = False
        self.track_total_hits: Optional[bool] = None
        self.track_total_hits_up_to: Optional[int] = None
        self.timeout: Optional[timedelta] = None
        self.explain: bool = False
        self.preference: Optional[str] = None
        self.search_after: Optional[list[Any]] = None
        self.request_cache: Optional[bool] = None
        self.max_results: Optional[int] = None
        self.scroll_time: Optional[timedelta] = None
        self.indices_boost: list[IndexBoost] = []

        if pageable:
            self.set_pageable(pageable)
        if sort:
            self.add_sort(sort)

    @staticmethod
    def find_all() -> StringQuery:
        return StringQuery('{"match_all":{}}')

    def set_pageable(self, pageable: Pageable) -> Self:
        self.pageable = pageable
        if pageable.sort.is_sorted:
            self.add_sort(pageable.sort)
        return self

    def add_sort(self, sort: Sort) -> Self:
        if not sort.is_sorted:
            return self

        self.sort = self.sort.and_(sort) if self.sort else sort
        return self

    def add_fields(self, *fields: str) -> Self:
        self.fields.extend(fields)
        return self

    def add_stored_fields(self, *fields: str) -> Self:
        self.stored_fields.extend(fields)
        return self

    def add_source_filter(self, source_filter: SourceFilter) -> Self:
        self.source_filter = source_filter
        return self

    def add_runtime_field(self, runtime_field: RuntimeField) -> Self:
        self.runtime_fields.append(runtime_field)
        return self

    def add_scripted_field(self, scripted_field: ScriptedField) -> Self:
        self.scripted_fields.append(scripted_field)
        return self

    def set_highlight_query(self, highlight_query: HighlightQuery) -> Self:
        self.highlight_query = highlight_query
        return self

    def add_ids(self, *ids: str) -> Self:
        self.ids.extend(ids)
        return self

    def add_indices_boost(self, *boosts: IndexBoost) -> Self:
        self.indices_boost.extend(boosts)
        return self

    def set_max_results(self, max_results: int) -> Self:
        self.max_results = max_results
        return self

    @property
    def is_limiting(self) -> bool:
        return self.max_results is not None


class CriteriaQuery(Query):
    def __init__(
        self,
        criteria: Criteria,
        pageable: Optional[Pageable] = None,
        sort: Optional[Sort] = None,
    ) -> None:
        super().__init__(pageable, sort)
        self.criteria = criteria

    def add_criteria(self, criteria: Criteria) -> CriteriaQuery:
        self.criteria = self.criteria.and_(criteria)
        return self


class StringQuery(Query):
    def __init__(
        self,
        source: str,
        pageable: Optional[Pageable] = None,
        sort: Optional[Sort] = None,
    ) -> None:
        super().__init__(pageable, sort)
        self.source = source


class NativeQuery(Query):
    """A query given as raw query DSL, optionally with aggregations, post filter and knn."""

    def __init__(
        self,
        query: Optional[Mapping[str, Any]] = None,
        aggregations: Optional[Mapping[str, Any]] = None,
        post_filter: Optional[Mapping[str, Any]] = None,
        knn: Optional[Mapping[str, Any] | Sequence[Mapping[str, Any]]] = None,
        suggest: Optional[Mapping[str, Any]] = None,
        pageable: Optional[Pageable] = None,
        sort: Optional[Sort] = None,
    ) -> None:
        super().__init__(pageable, sort)
        self.query = dict(query) if query else None
        self.aggregations = dict(aggregations) if aggregations else {}
        self.post_filter = dict(post_filter) if post_filter else None
        self.knn = knn
        self.suggest = dict(suggest) if suggest else None
        self.sort_options: list[Mapping[str, Any]] = []


class MoreLikeThisQuery(Query):
    def __init__(
        self,
        id: str,
        fields: Sequence[str] = (),
        pageable: Optional[Pageable] = None,
    ) -> None:
        super().__init__(pageable)
        self.id = id
        self.search_fields = list(fields)
        self.analyzer: Optional[str] = None
        self.min_term_freq: Optional[int] = None
        self.max_query_terms: Optional[int] = None
        self.min_doc_freq: Optional[int] = None
        self.max_doc_freq: Optional[int] = None
        self.min_word_len: Optional[int] = None
        self.max_word_len: Optional[int] = None
        self.stop_words: list[str] = []
        self.boost_terms: Optional[float] = None
        self.include: Optional[bool] = None
        self.minimum_should_match: Optional[str] = None


class OpType(Enum):
    INDEX = "index"
    CREATE = "create"


@dataclass
class IndexQuery:
    id: Optional[str] = None
    object: Optional[Any] = None
    source: Optional[Mapping[str, Any]] = None
    version: Optional[int] = None
    seq_no: Optional[int] = None
    primary_term: Optional[int] = None
    routing: Optional[str] = None
    op_type: Optional[OpType] = None
    index_name: Optional[str] = None


@dataclass
class UpdateQuery:
    """An update of one document (``id``) or of every document matching ``query``."""

    id: Optional[str] = None
    query: Optional[Query] = None
    script: Optional[str] = None
    params: Optional[Mapping[str, Any]] = None
    lang: Optional[str] = None
    script_name: Optional[str] = None
    document: Optional[Mapping[str, Any]] = None
    upsert: Optional[Mapping[str, Any]] = None
    doc_as_upsert: Optional[bool] = None
    scripted_upsert: Optional[bool] = None
    routing: Optional[str] = None
    fetch_source: Optional[bool] = None
    fetch_source_includes: Sequence[str] = ()
    fetch_source_excludes: Sequence[str] = ()
    if_seq_no: Optional[int] = None
    if_primary_term: Optional[int] = None
    retry_on_conflict: Optional[int] = None
    timeout: Optional[str] = None
    wait_for_active_shards: Optional[str] = None
    abort_on_version_conflict: Optional[bool] = None
    batch_size: Optional[int] = None
    max_docs: Optional[int] = None
    pipeline: Optional[str] = None
    requests_per_second: Optional[float] = None
    slices: Optional[int] = None

    def __post_init__(self) -> None:
        if (self.id is None) == (self.query is None):
            raise ValueError("An UpdateQuery needs either an id or a query")

    @property
    def script_data(self) -> Optional[ScriptData]:
        if not (self.script or self.script_name):
            return None
        return ScriptData(self.script, self.lang, self.params, self.script_name)


@dataclass(frozen=True)
class UpdateResponse:
    result: str


@dataclass(frozen=True)
class ByQueryResponse:
    took: int = 0
    timed_out: bool = False
    total: int = 0
    updated: int = 0
    deleted: int = 0
    batches: int = 0
    version_conflicts: int = 0
    noops: int = 0
    failures: Sequence[Mapping[str, Any]] = ()

    @staticmethod
    def from_response(body: Mapping[str, Any]) -> ByQueryResponse:
        return ByQueryResponse(
            took=body.get("took", 0),
            timed_out=body.get("timed_out", False),
            total=body.get("total", 0),
            updated=body.get("updated", 0),
            deleted=body.get("deleted", 0),
            batches=body.get("batches", 0),
            version_conflicts=body.get("version_conflicts", 0),
            noops=body.get("noops", 0),
            failures=tuple(body.get("failures", ())),
        )
