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
from datetime import date, datetime
from enum import Enum
import json
import re
from typing import Any, AsyncIterator, Optional

from esdata.core.async_template import AsyncElasticsearchTemplate
from esdata.core.common import InvalidQueryError
from esdata.core.loggers import Logger, NullLogger
from esdata.core.mapping.context import MappingContext
from esdata.core.operations import IndexCoordinates
from esdata.core.query.query import HighlightQuery, Page, Pageable, Query, StringQuery
from esdata.core.search import SearchHits, SearchPage
from esdata.core.template import ElasticsearchTemplate
from esdata.repository.query.part_tree import PartTree, PartTreeParser
from esdata.repository.query.query_creator import ElasticsearchQueryCreator
from esdata.repository.query.query_method import BoundArguments, QueryMethod, ResultKind

PLACEHOLDER_PATTERN = re.compile(r"\?(\d+|[A-Za-z_]\w*)")


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return _plain(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    return value


def placeholder_text(value: Any) -> str:
    """Renders an argument for insertion into a JSON string query."""
    value = _plain(value)

    if isinstance(value, str):
        # the surrounding quotes come from the query text
        return json.dumps(value)[1:-1]
    if isinstance(value, list):
        return json.dumps(value, default=str)
    if value is None or isinstance(value, (bool, int, float)):
        return json.dumps(value)

    return json.dumps(str(value))[1:-1]


class AbstractElasticsearchRepositoryQuery(ABC):
    def __init__(self, method: QueryMethod, logger: Optional[Logger] = None) -> None:
        self.method = method
        self._logger = logger or NullLogger()

    @abstractmethod
    def create_query(self, arguments: BoundArguments) -> Query: ...

    @property
    @abstractmethod
    def is_count_query(self) -> bool: ...

    @property
    def is_delete_query(self) -> bool:
        return False

    @property
    def is_exists_query(self) -> bool:
        return False

    def prepare_query(self, arguments: BoundArguments) -> Query:
        query = self.create_query(arguments)

        if arguments.pageable is not None:
            query.set_pageable(arguments.pageable)
        if arguments.sort is not None:
            query.add_sort(arguments.sort)
        if self.method.highlight is not None:
            query.set_highlight_query(
                HighlightQuery(self.method.highlight, self.method.entity_class)
            )
        if self.method.source_filter is not None:
            query.add_source_filter(self.method.source_filter)

        return query

    def _page(
        self,
        hits: SearchHits[Any],
        arguments: BoundArguments,
    ) -> Page[Any]:
        pageable = arguments.pageable or Pageable.unpaged()

        if self.method.result_kind is ResultKind.SEARCH_PAGE:
            return SearchPage.of(hits, pageable)
        return Page(hits.contents(), pageable, hits.total_hits)

    def _from_hits(self, hits: SearchHits[Any], arguments: BoundArguments) -> Any:
        match self.method.result_kind:
            case ResultKind.SEARCH_HITS:
                return hits
            case ResultKind.SEARCH_HIT_LIST:
                return list(hits.search_hits)
            case ResultKind.PAGE | ResultKind.SEARCH_PAGE:
                return self._page(hits, arguments)
            case _:
                return hits.contents()

    def execute(
        self,
        template: ElasticsearchTemplate,
        index: IndexCoordinates,
        arguments: BoundArguments,
    ) -> Any:
        query = self.prepare_query(arguments)
        cls = self.method.entity_class
        kind = self.method.result_kind

        self._logger.debug(f"Executing {self.method.name} against {index}")

        if self.is_delete_query:
            deleted = template.search(query, cls, index).contents() if kind is ResultKind.LIST else None
            response = template.delete_by_query(query, cls, index)
            if kind is ResultKind.COUNT:
                return response.deleted
            return deleted

        if self.is_count_query or kind is ResultKind.COUNT:
            return template.count(query, cls, index)

        if self.is_exists_query or kind is ResultKind.EXISTS:
            return template.count(query, cls, index) > 0

        match kind:
            case ResultKind.STREAM:
                return (hit.content for hit in template.search_for_stream(query, cls, index))
            case ResultKind.SEARCH_HIT_STREAM:
                return template.search_for_stream(query, cls, index)
            case ResultKind.SINGLE:
                hit = template.search_one(query, cls, index)
                return hit.content if hit else None
            case ResultKind.SEARCH_HIT:
                return template.search_one(query, cls, index)

        return self._from_hits(template.search(query, cls, index), arguments)

    async def execute_async(
        self,
        template: AsyncElasticsearchTemplate,
        index: IndexCoordinates,
        arguments: BoundArguments,
    ) -> Any:
        query = self.prepare_query(arguments)
        cls = self.method.entity_class
        kind = self.method.result_kind

        self._logger.debug(f"Executing {self.method.name} against {index}")

        if self.is_delete_query:
            deleted = (
                (await template.search(query, cls, index)).contents()
                if kind is ResultKind.LIST
                else None
            )
            response = await template.delete_by_query(query, cls, index)
            if kind is ResultKind.COUNT:
                return response.deleted
            return deleted

        if self.is_count_query or kind is ResultKind.COUNT:
            return await template.count(query, cls, index)

        if self.is_exists_query or kind is ResultKind.EXISTS:
            return await template.count(query, cls, index) > 0

        match kind:
            case ResultKind.SINGLE:
                hit = await template.search_one(query, cls, index)
                return hit.content if hit else None
            case ResultKind.SEARCH_HIT:
                return await template.search_one(query, cls, index)

        return self._from_hits(await template.search(query, cls, index), arguments)

    async def stream_async(
        self,
        template: AsyncElasticsearchTemplate,
        index: IndexCoordinates,
        arguments: BoundArguments,
    ) -> AsyncIterator[Any]:
        query = self.prepare_query(arguments)
        cls = self.method.entity_class

        async for hit in template.search_for_stream(query, cls, index):
            yield hit if self.method.result_kind is ResultKind.SEARCH_HIT_STREAM else hit.content


class PartTreeElasticsearchQuery(AbstractElasticsearchRepositoryQuery):
    def __init__(
        self,
        method: QueryMethod,
        mapping_context: MappingContext,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(method, logger)
        self.tree: PartTree = PartTreeParser(mapping_context).parse(
            method.name, method.entity_class
        )

        if self.tree.is_distinct:
            self._logger.warning(f"{method.name}: distinct is not supported and is ignored")

    @property
    def is_count_query(self) -> bool:
        return self.tree.is_count

    @property
    def is_delete_query(self) -> bool:
        return self.tree.is_delete

    @property
    def is_exists_query(self) -> bool:
        return self.tree.is_exists

    def create_query(self, arguments: BoundArguments) -> Query:
        return ElasticsearchQueryCreator(self.tree, self._logger).create_query(arguments.values)


class StringBasedElasticsearchQuery(AbstractElasticsearchRepositoryQuery):
    def __init__(self, method: QueryMethod, logger: Optional[Logger] = None) -> None:
        super().__init__(method, logger)
        if method.annotated_query is None:
            raise InvalidQueryError(f"{method.name} is not annotated with a query")
        self._source = method.annotated_query.value

    @property
    def is_count_query(self) -> bool:
        return bool(self.method.annotated_query and self.method.annotated_query.count)

    def create_query(self, arguments: BoundArguments) -> Query:
        return StringQuery(self.replace_placeholders(arguments))

    def replace_placeholders(self, arguments: BoundArguments) -> str:
        def replace(match: re.Match[str]) -> str:
            key = match.group(1)

            if key.isdigit():
                position = int(key)
                if position >= len(arguments.values):
                    raise InvalidQueryError(
                        f"{self.method.name}: no argument for placeholder ?{key}"
                    )
                return placeholder_text(arguments.values[position])

            # "?" followed by a name that is not a parameter is query text, as in wildcards
            if key not in arguments.named:
                return match.group(0)
            return placeholder_text(arguments.named[key])

        return PLACEHOLDER_PATTERN.sub(replace, self._source)


def create_repository_query(
    method: QueryMethod,
    mapping_context: MappingContext,
    logger: Optional[Logger] = None,
) -> AbstractElasticsearchRepositoryQuery:
    if method.has_annotated_query:
        return StringBasedElasticsearchQuery(method, logger)
    return PartTreeElasticsearchQuery(method, mapping_context, logger)
