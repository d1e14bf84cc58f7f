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
from datetime import timedelta
from typing import Any, AsyncIterator, Mapping, Optional, Sequence, TypeVar, Union

from elasticsearch import AsyncElasticsearch, NotFoundError

from esdata.core.callbacks import (
    AfterConvertCallback,
    AfterLoadCallback,
    AfterSaveCallback,
    BeforeConvertCallback,
    EntityCallbacks,
)
from esdata.core.common import InvalidQueryError
from esdata.core.convert.converter import MappingElasticsearchConverter
from esdata.core.convert.document import Document, document_from_get_response
from esdata.core.index.requests import AliasAction, AliasData, PutIndexTemplateRequest, TemplateData
from esdata.core.loggers import LogLevel, Logger
from esdata.core.operations import IndexCoordinates, IndexedObjectInformation, RefreshPolicy, response_body
from esdata.core.query.query import ByQueryResponse, IndexQuery, Query, UpdateQuery, UpdateResponse
from esdata.core.query.request_factory import time_string
from esdata.core.search import MultiGetItem, SearchDocumentResponse, SearchHit, SearchHits
from esdata.core.template import (
    DEFAULT_SCROLL_TIME,
    IndexOperationsSupport,
    Target,
    TemplateSupport,
)

T = TypeVar("T")


class AsyncIndexOperations(IndexOperationsSupport):
    def __init__(
        self,
        template: AsyncElasticsearchTemplate,
        index: IndexCoordinates,
        cls: Optional[type] = None,
    ) -> None:
        super().__init__(template, index, cls)
        self._client = template.client

    async def create(self, settings: Optional[Mapping[str, Any]] = None) -> bool:
        return await self._create(settings, None)

    async def create_with_mapping(self) -> bool:
        mapping = await self.create_mapping_async()
        return await self._create(None, mapping)

    async def create_mapping_async(self, cls: Optional[type] = None) -> dict[str, Any]:
        """Builds the mapping off the event loop; mapping files may be read."""
        return await self._support.mapping_builder.build_mapping_async(self._bound_class(cls))

    async def _create(
        self,
        settings: Optional[Mapping[str, Any]],
        mapping: Optional[Mapping[str, Any]],
    ) -> bool:
        request = self._create_request(settings, mapping)
        self._support._log_request("create index", request)

        with self._translator.translating(self._index.index_name):
            response = await self._client.indices.create(**request)

        acknowledged = bool(response_body(response).get("acknowledged"))
        self._logger.info(f"Created index {self._index} (acknowledged: {acknowledged})")
        return acknowledged

    async def put_mapping(self, mapping: Optional[Mapping[str, Any]] = None) -> bool:
        if mapping is None:
            mapping = await self.create_mapping_async()

        arguments = self._mapping_for_put(mapping)

        with self._translator.translating(self._index.index_name):
            response = await self._client.indices.put_mapping(
                index=self._index.as_request_index(), **arguments
            )

        return bool(response_body(response).get("acknowledged"))

    async def get_mapping(self) -> dict[str, Any]:
        with self._translator.translating(self._index.index_name):
            response = await self._client.indices.get_mapping(index=self._index.as_request_index())

        return self._index_section(response_body(response), "mappings")

    async def get_settings(self, include_defaults: bool = False) -> dict[str, Any]:
        with self._translator.translating(self._index.index_name):
            response = await self._client.indices.get_settings(
                index=self._index.as_request_index(),
                include_defaults=include_defaults,
            )

        content = response_body(response).get(self._index.index_name) or {}
        settings = dict(content.get("settings") or {})
        if include_defaults:
            settings = {**(content.get("defaults") or {}), **settings}
        return settings

    async def exists(self) -> bool:
        with self._translator.translating(self._index.index_name):
            return bool(await self._client.indices.exists(index=self._index.as_request_index()))

    async def delete(self) -> bool:
        if not await self.exists():
            return False

        with self._translator.translating(self._index.index_name):
            response = await self._client.indices.delete(index=self._index.as_request_index())

        self._logger.info(f"Deleted index {self._index}")
        return bool(response_body(response).get("acknowledged"))

    async def refresh(self) -> None:
        with self._translator.translating(self._index.index_name):
            await self._client.indices.refresh(index=self._index.as_request_index())

    async def alter_aliases(self, *actions: AliasAction) -> bool:
        with self._translator.translating(self._index.index_name):
            response = await self._client.indices.update_aliases(
                actions=[a.to_action() for a in actions]
            )

        return bool(response_body(response).get("acknowledged"))

    async def get_aliases(self, *alias_names: str) -> dict[str, dict[str, AliasData]]:
        with self._translator.translating(self._index.index_name):
            if alias_names:
                response = await self._client.indices.get_alias(name=list(alias_names))
            else:
                response = await self._client.indices.get_alias(
                    index=self._index.as_request_index()
                )

        return self._aliases_from(response_body(response))

    async def put_index_template(self, request: PutIndexTemplateRequest) -> bool:
        with self._translator.translating():
            response = await self._client.indices.put_index_template(**request.to_request())

        return bool(response_body(response).get("acknowledged"))

    async def exists_index_template(self, name: str) -> bool:
        with self._translator.translating():
            return bool(await self._client.indices.exists_index_template(name=name))

    async def get_index_template(self, name: str) -> Optional[TemplateData]:
        try:
            with self._translator.translating():
                response = await self._client.indices.get_index_template(name=name)
        except NotFoundError:
            return None

        templates = response_body(response).get("index_templates") or ()
        return TemplateData.from_response(templates[0]) if templates else None

    async def delete_index_template(self, name: str) -> bool:
        with self._translator.translating():
            response = await self._client.indices.delete_index_template(name=name)

        return bool(response_body(response).get("acknowledged"))


class AsyncElasticsearchTemplate(TemplateSupport):
    """The asynchronous counterpart of :class:`ElasticsearchTemplate`.

    Callbacks may return awaitables; they are awaited before the next one runs.
    """

    def __init__(
        self,
        client: AsyncElasticsearch,
        converter: MappingElasticsearchConverter,
        callbacks: Optional[EntityCallbacks] = None,
        refresh_policy: RefreshPolicy = RefreshPolicy.NONE,
        logger: Optional[Logger] = None,
        index_prefix: str = "",
    ) -> None:
        super().__init__(converter, callbacks, refresh_policy, logger, index_prefix)
        self.client = client

    def with_refresh_policy(self, refresh_policy: RefreshPolicy) -> AsyncElasticsearchTemplate:
        return AsyncElasticsearchTemplate(
            self.client,
            self.converter,
            self.callbacks,
            refresh_policy,
            self.logger,
            self.index_prefix,
        )

    def index_ops(self, target: Target) -> AsyncIndexOperations:
        index, cls = self._split_target(target)
        return AsyncIndexOperations(self, index, cls)

    # documents

    async def save(self, entity: T, index: Optional[IndexCoordinates] = None) -> T:
        index = self._index_for(index, type(entity))

        entity = await self.callbacks.callback_async(BeforeConvertCallback, entity, index)
        request = self.request_factory.index_request(
            self._index_query(entity), index, self.refresh_policy
        )
        self._log_request("index", request)

        with self.logger.operation(f"save into {index}", LogLevel.TRACE):
            with self.exception_translator.translating(index.index_name):
                response = await self.client.index(**request)

        info = IndexedObjectInformation.from_response(response_body(response))
        entity = self._update_indexed_object(entity, info)

        return await self.callbacks.callback_async(AfterSaveCallback, entity, index)

    async def save_all(
        self,
        entities: Sequence[T],
        index: Optional[IndexCoordinates] = None,
    ) -> list[T]:
        if not entities:
            return []

        index = self._index_for(index, type(entities[0]))

        converted = [
            await self.callbacks.callback_async(BeforeConvertCallback, e, index) for e in entities
        ]
        infos = await self.bulk_index([self._index_query(e) for e in converted], index)

        return [
            await self.callbacks.callback_async(
                AfterSaveCallback, self._update_indexed_object(entity, info), index
            )
            for entity, info in zip(converted, infos)
        ]

    async def index(self, query: IndexQuery, index: IndexCoordinates) -> Optional[str]:
        if query.object is not None:
            query.object = await self.callbacks.callback_async(
                BeforeConvertCallback, query.object, index
            )

        request = self.request_factory.index_request(query, index, self.refresh_policy)
        self._log_request("index", request)

        with self.exception_translator.translating(index.index_name):
            response = await self.client.index(**request)

        info = IndexedObjectInformation.from_response(response_body(response))

        if query.object is not None:
            query.object = await self.callbacks.callback_async(
                AfterSaveCallback, self._update_indexed_object(query.object, info), index
            )

        return info.id

    async def bulk_index(
        self,
        queries: Sequence[IndexQuery],
        index: IndexCoordinates,
    ) -> list[IndexedObjectInformation]:
        return await self._bulk(queries, index)

    async def bulk_update(self, queries: Sequence[UpdateQuery], index: IndexCoordinates) -> None:
        await self._bulk(queries, index)

    async def _bulk(
        self,
        queries: Sequence[Union[IndexQuery, UpdateQuery]],
        index: IndexCoordinates,
    ) -> list[IndexedObjectInformation]:
        if not queries:
            return []

        operations = self.request_factory.bulk_operations(queries, index)
        refresh = self.refresh_policy

        with self.logger.operation(f"bulk of {len(queries)} into {index}", LogLevel.TRACE):
            with self.exception_translator.translating(index.index_name):
                if refresh is RefreshPolicy.NONE:
                    response = await self.client.bulk(operations=operations)
                else:
                    response = await self.client.bulk(
                        operations=operations, refresh=refresh.to_request_value()
                    )

        return self._bulk_result(response_body(response), index)

    async def get(
        self,
        id: Any,
        cls: type[T],
        index: Optional[IndexCoordinates] = None,
        routing: Optional[str] = None,
    ) -> Optional[T]:
        index = self._index_for(index, cls)
        request = self.request_factory.get_request(self.converter.convert_id(id), index, routing)  # type: ignore[arg-type]

        try:
            with self.exception_translator.translating(index.index_name):
                response = await self.client.get(**request)
        except NotFoundError:
            return None

        return await self._read(cls, document_from_get_response(response_body(response)), index)

    async def multi_get(
        self,
        query: Query,
        cls: type[T],
        index: Optional[IndexCoordinates] = None,
    ) -> list[MultiGetItem[T]]:
        index = self._index_for(index, cls)
        request = self.request_factory.multi_get_request(query, cls, index)

        with self.exception_translator.translating(index.index_name):
            response = await self.client.mget(**request)

        items: list[MultiGetItem[T]] = []

        for doc in response_body(response).get("docs") or ():
            if doc.get("error"):
                items.append(MultiGetItem(failure=self._multi_get_failure(doc)))
            else:
                item = await self._read(cls, document_from_get_response(doc), index)
                items.append(MultiGetItem(item=item))

        return items

    async def _read(
        self,
        cls: type[T],
        document: Optional[Document],
        index: IndexCoordinates,
    ) -> Optional[T]:
        if document is None:
            return None

        document = await self.callbacks.callback_async(AfterLoadCallback, document, cls, index)
        entity = self.converter.read(cls, document)
        return await self.callbacks.callback_async(AfterConvertCallback, entity, document, index)

    async def exists(self, id: Any, target: Target) -> bool:
        index, _ = self._split_target(target)

        with self.exception_translator.translating(index.index_name):
            return bool(
                await self.client.exists(index=index.index_name, id=self.converter.convert_id(id))  # type: ignore[arg-type]
            )

    async def delete(
        self,
        id_or_entity: Any,
        target: Optional[Target] = None,
        routing: Optional[str] = None,
    ) -> Optional[str]:
        if isinstance(id_or_entity, (str, int)) or id_or_entity is None:
            if target is None:
                raise InvalidQueryError("Deleting by id needs an entity class or an index")
            id = self.converter.convert_id(id_or_entity)
            index, _ = self._split_target(target)
        else:
            id = self._entity_id(id_or_entity)
            index = (
                self._split_target(target)[0]
                if target is not None
                else self.get_index_coordinates_for(type(id_or_entity))
            )
            if routing is None and not isinstance(id_or_entity, Mapping):
                routing = self.converter.write(id_or_entity).routing

        if id is None:
            raise InvalidQueryError("Cannot delete a document without an id")

        request = self.request_factory.delete_request(id, routing, index, self.refresh_policy)

        try:
            with self.exception_translator.translating(index.index_name):
                await self.client.delete(**request)
        except NotFoundError:
            self.logger.debug(f"Document {id} to delete was not found in {index}")

        return id

    async def delete_by_query(
        self,
        query: Query,
        cls: Optional[type] = None,
        index: Optional[IndexCoordinates] = None,
    ) -> ByQueryResponse:
        index = self._index_for(index, cls)
        request = self.request_factory.delete_by_query_request(
            query, cls, index, self.refresh_policy
        )
        self._log_request("delete by query", request)

        with self.logger.operation(f"delete by query in {index}", LogLevel.TRACE):
            with self.exception_translator.translating(index.index_name):
                response = await self.client.delete_by_query(**request)

        return ByQueryResponse.from_response(response_body(response))

    async def update(
        self,
        query_or_entity: Any,
        index: Optional[IndexCoordinates] = None,
    ) -> UpdateResponse:
        if isinstance(query_or_entity, UpdateQuery):
            if index is None:
                raise InvalidQueryError("Updating with an UpdateQuery needs an index")
            query = query_or_entity
        else:
            index = self._index_for(index, type(query_or_entity))
            entity = await self.callbacks.callback_async(
                BeforeConvertCallback, query_or_entity, index
            )
            query = self._update_query_for(entity, index)

        request = self.request_factory.update_request(query, index, self.refresh_policy)
        self._log_request("update", request)

        with self.exception_translator.translating(index.index_name):
            response = await self.client.update(**request)

        return UpdateResponse(result=response_body(response).get("result", ""))

    async def update_by_query(
        self,
        query: UpdateQuery,
        index: IndexCoordinates,
        cls: Optional[type] = None,
    ) -> ByQueryResponse:
        request = self.request_factory.update_by_query_request(
            query, cls, index, self.refresh_policy
        )
        self._log_request("update by query", request)

        with self.logger.operation(f"update by query in {index}", LogLevel.TRACE):
            with self.exception_translator.translating(index.index_name):
                response = await self.client.update_by_query(**request)

        return ByQueryResponse.from_response(response_body(response))

    # searching

    async def count(
        self,
        query: Query,
        cls: Optional[type] = None,
        index: Optional[IndexCoordinates] = None,
    ) -> int:
        index = self._index_for(index, cls)
        request = self.request_factory.count_request(query, cls, index)
        self._log_request("count", request)

        with self.exception_translator.translating(index.index_name):
            response = await self.client.count(**request)

        return int(response_body(response).get("count", 0))

    async def search(
        self,
        query: Query,
        cls: type[T],
        index: Optional[IndexCoordinates] = None,
    ) -> SearchHits[T]:
        index = self._index_for(index, cls)
        request = self._search_request(query, cls, index)
        self._log_request("search", request)

        with self.logger.operation(f"search in {index}", LogLevel.TRACE):
            with self.exception_translator.translating(index.index_name):
                response = await self.client.search(**request)

        return await self._search_hits(cls, response_body(response), index)

    async def _search_hits(
        self,
        cls: type[T],
        body: Mapping[str, Any],
        index: IndexCoordinates,
    ) -> SearchHits[T]:
        document_response = SearchDocumentResponse.from_response(body)
        contents = [await self._read(cls, d, index) for d in document_response.search_documents]
        return self._hit_mapping(cls).map_hits(document_response, contents)  # type: ignore[arg-type]

    async def search_one(
        self,
        query: Query,
        cls: type[T],
        index: Optional[IndexCoordinates] = None,
    ) -> Optional[SearchHit[T]]:
        max_results = query.max_results
        query.set_max_results(1)

        try:
            hits = await self.search(query, cls, index)
        finally:
            query.max_results = max_results

        return hits.search_hits[0] if hits.search_hits else None

    async def multi_search(
        self,
        queries: Sequence[Query],
        cls: type[T],
        index: Optional[IndexCoordinates] = None,
    ) -> list[SearchHits[T]]:
        if not queries:
            return []

        index = self._index_for(index, cls)
        searches = self.request_factory.multi_search_entries(
            [self._search_request(q, cls, index) for q in queries]
        )

        with self.logger.operation(f"multi search of {len(queries)} in {index}", LogLevel.TRACE):
            with self.exception_translator.translating(index.index_name):
                response = await self.client.msearch(searches=searches)

        results: list[SearchHits[T]] = []

        for position, item in enumerate(response_body(response).get("responses") or ()):
            self._check_multi_search_item(position, item)
            results.append(await self._search_hits(cls, item, index))

        return results

    async def search_scroll_start(
        self,
        scroll_time: timedelta,
        query: Query,
        cls: type[T],
        index: IndexCoordinates,
    ) -> SearchHits[T]:
        request = self._search_request(query, cls, index, scroll=scroll_time)
        self._log_request("scroll start", request)

        with self.exception_translator.translating(index.index_name):
            response = await self.client.search(**request)

        return await self._search_hits(cls, response_body(response), index)

    async def search_scroll_continue(
        self,
        scroll_id: str,
        scroll_time: timedelta,
        cls: type[T],
        index: IndexCoordinates,
    ) -> SearchHits[T]:
        with self.exception_translator.translating(index.index_name):
            response = await self.client.scroll(
                scroll_id=scroll_id, scroll=time_string(scroll_time)
            )

        return await self._search_hits(cls, response_body(response), index)

    async def search_scroll_clear(self, scroll_ids: Sequence[str]) -> None:
        if not scroll_ids:
            return

        with self.exception_translator.translating():
            await self.client.clear_scroll(scroll_id=list(scroll_ids))

    async def search_for_stream(
        self,
        query: Query,
        cls: type[T],
        index: Optional[IndexCoordinates] = None,
    ) -> AsyncIterator[SearchHit[T]]:
        index = self._index_for(index, cls)
        scroll_time = query.scroll_time or DEFAULT_SCROLL_TIME
        max_results = query.max_results
        query.max_results = None

        hits = await self.search_scroll_start(scroll_time, query, cls, index)
        scroll_ids = [hits.scroll_id] if hits.scroll_id else []
        yielded = 0

        try:
            while hits.search_hits:
                for hit in hits.search_hits:
                    if max_results is not None and yielded >= max_results:
                        return
                    yielded += 1
                    yield hit

                if not hits.scroll_id:
                    return

                hits = await self.search_scroll_continue(hits.scroll_id, scroll_time, cls, index)
                if hits.scroll_id and hits.scroll_id not in scroll_ids:
                    scroll_ids.append(hits.scroll_id)
        finally:
            query.max_results = max_results
            await self.search_scroll_clear(scroll_ids)

    async def refresh(self, target: Target) -> None:
        await self.index_ops(target).refresh()
