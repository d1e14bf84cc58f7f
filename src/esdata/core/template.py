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

"""Document and index operations over the blocking ``Elasticsearch`` client.

:class:`ElasticsearchTemplate` converts entities with the configured
converter, runs the entity callbacks around conversion and saving, and
translates client failures through :class:`ExceptionTranslator`.
"""

from __future__ import annotations
from datetime import timedelta
import json
from typing import Any, Iterator, Mapping, Optional, Sequence, TypeVar, Union

from elasticsearch import Elasticsearch, NotFoundError

from esdata.core.callbacks import (
    AfterConvertCallback,
    AfterLoadCallback,
    AfterSaveCallback,
    BeforeConvertCallback,
    EntityCallbacks,
)
from esdata.core.common import BulkFailureError, EsDataError, InvalidQueryError
from esdata.core.convert.converter import MappingElasticsearchConverter
from esdata.core.convert.document import Document, document_from_get_response
from esdata.core.index.mapping_builder import MappingBuilder, SettingsBuilder
from esdata.core.index.requests import (
    AliasAction,
    AliasData,
    PutIndexTemplateRequest,
    TemplateData,
    put_mapping_arguments,
)
from esdata.core.loggers import LogLevel, Logger, NullLogger
from esdata.core.mapping.context import is_entity_type
from esdata.core.operations import (
    ExceptionTranslator,
    IndexCoordinates,
    IndexedObjectInformation,
    RefreshPolicy,
    response_body,
)
from esdata.core.query.query import (
    ByQueryResponse,
    IndexQuery,
    MoreLikeThisQuery,
    Query,
    UpdateQuery,
    UpdateResponse,
)
from esdata.core.query.request_factory import RequestFactory, time_string
from esdata.core.search import (
    MultiGetFailure,
    MultiGetItem,
    SearchDocumentResponse,
    SearchHit,
    SearchHitMapping,
    SearchHits,
)

T = TypeVar("T")

DEFAULT_SCROLL_TIME = timedelta(minutes=1)

Target = Union[type, IndexCoordinates]


class TemplateSupport:
    """State and conversions shared by the blocking and asynchronous templates."""

    def __init__(
        self,
        converter: MappingElasticsearchConverter,
        callbacks: Optional[EntityCallbacks] = None,
        refresh_policy: RefreshPolicy = RefreshPolicy.NONE,
        logger: Optional[Logger] = None,
        index_prefix: str = "",
    ) -> None:
        self.converter = converter
        self.mapping_context = converter.mapping_context
        self.callbacks = callbacks or EntityCallbacks()
        self.refresh_policy = refresh_policy
        self.logger = logger or NullLogger()
        self.exception_translator = ExceptionTranslator(self.logger)
        self.request_factory = RequestFactory(converter)
        self.mapping_builder = MappingBuilder(converter, self.logger)
        self.settings_builder = SettingsBuilder(self.mapping_builder)
        self.index_prefix = index_prefix

    def get_index_coordinates_for(self, cls: type) -> IndexCoordinates:
        entity = self.mapping_context.get_persistent_entity(cls)
        return IndexCoordinates.of(self.index_prefix + entity.index_name)

    def _index_for(self, index: Optional[IndexCoordinates], cls: Optional[type]) -> IndexCoordinates:
        if index is not None:
            return index
        if cls is None or not is_entity_type(cls):
            raise InvalidQueryError(f"No index given and {cls!r} is not a mapped entity")
        return self.get_index_coordinates_for(cls)

    def _split_target(self, target: Target) -> tuple[IndexCoordinates, Optional[type]]:
        if isinstance(target, IndexCoordinates):
            return target, None
        return self.get_index_coordinates_for(target), target

    def _index_query(self, entity: Any) -> IndexQuery:
        document = self.converter.write(entity)

        return IndexQuery(
            id=document.id,
            source=document,
            version=document.version,
            seq_no=document.seq_no,
            primary_term=document.primary_term,
            routing=document.routing,
        )

    def _entity_id(self, entity: Any) -> Optional[str]:
        if isinstance(entity, Mapping):
            return self.converter.convert_id(entity.get("id"))

        persistent_entity = self.mapping_context.get_persistent_entity(type(entity))

        if id_property := persistent_entity.id_property:
            return self.converter.convert_id(getattr(entity, id_property.name))
        return None

    def _update_indexed_object(self, entity: T, info: IndexedObjectInformation) -> T:
        return self.converter.update_metadata(
            entity,
            id=info.id,
            seq_no=info.seq_no,
            primary_term=info.primary_term,
            version=info.version,
        )

    def _log_request(self, name: str, request: Mapping[str, Any]) -> None:
        self.logger.trace(f"{name} request: {json.dumps(request, default=str)}")

    def _search_request(
        self,
        query: Query,
        cls: Optional[type],
        index: IndexCoordinates,
        scroll: Optional[timedelta] = None,
    ) -> dict[str, Any]:
        if isinstance(query, MoreLikeThisQuery):
            query = self.request_factory.more_like_this_query(query, index)
        return self.request_factory.search_request(query, cls, index, scroll)

    def _bulk_result(
        self,
        body: Mapping[str, Any],
        index: IndexCoordinates,
    ) -> list[IndexedObjectInformation]:
        items = [next(iter(item.values())) for item in body.get("items") or ()]

        if body.get("errors"):
            failed = {
                str(item.get("_id")): str((item.get("error") or {}).get("reason", item.get("error")))
                for item in items
                if item.get("error")
            }
            self.logger.error(f"Bulk request against {index} failed for {len(failed)} document(s)")
            raise BulkFailureError(
                f"Bulk operation has failures. Use BulkFailureError.failed_documents "
                f"for detailed messages [{failed}]",
                failed_documents=failed,
            )

        return [IndexedObjectInformation.from_response(item) for item in items]

    @staticmethod
    def _multi_get_failure(doc: Mapping[str, Any]) -> MultiGetFailure:
        error = doc.get("error")
        return MultiGetFailure(
            index=doc.get("_index"),
            id=doc.get("_id"),
            type=error.get("type") if isinstance(error, Mapping) else None,
            reason=error.get("reason") if isinstance(error, Mapping) else str(error),
        )

    @staticmethod
    def _check_multi_search_item(position: int, item: Mapping[str, Any]) -> None:
        if error := item.get("error"):
            reason = error.get("reason") if isinstance(error, Mapping) else error
            raise EsDataError(f"Search {position} of the multi search failed: {reason}")

    def _update_query_for(self, entity: Any, index: IndexCoordinates) -> UpdateQuery:
        id = self._entity_id(entity)

        if id is None:
            raise InvalidQueryError("Cannot update an entity without an id")

        document = self.converter.write(entity)

        return UpdateQuery(
            id=id,
            document=dict(document),
            routing=document.routing,
            if_seq_no=document.seq_no,
            if_primary_term=document.primary_term,
        )

    def _hit_mapping(self, cls: type[T]) -> SearchHitMapping[T]:
        return SearchHitMapping(cls, self.mapping_context)


class IndexOperationsSupport:
    def __init__(
        self,
        support: TemplateSupport,
        index: IndexCoordinates,
        cls: Optional[type] = None,
    ) -> None:
        self._support = support
        self._index = index
        self._cls = cls
        self._logger = support.logger
        self._translator = support.exception_translator

    def get_index_coordinates(self) -> IndexCoordinates:
        return self._index

    def _bound_class(self, cls: Optional[type]) -> type:
        bound = cls or self._cls
        if bound is None:
            raise InvalidQueryError(f"Index operations for {self._index} are not bound to a class")
        return bound

    def create_mapping(self, cls: Optional[type] = None) -> dict[str, Any]:
        return self._support.mapping_builder.build_mapping(self._bound_class(cls))

    def create_settings(self, cls: Optional[type] = None) -> dict[str, Any]:
        entity = self._support.mapping_context.get_persistent_entity(self._bound_class(cls))
        return self._support.settings_builder.build_settings(entity)

    def _alias(self) -> Optional[str]:
        if self._cls is None:
            return None
        entity = self._support.mapping_context.get_persistent_entity(self._cls)
        return entity.document.alias if entity.document else None

    def _create_request(
        self,
        settings: Optional[Mapping[str, Any]],
        mapping: Optional[Mapping[str, Any]],
    ) -> dict[str, Any]:
        if settings is None and self._cls is not None:
            settings = self.create_settings()

        return self._support.request_factory.create_index_request(
            self._index, settings, mapping, self._alias()
        )

    def _mapping_for_put(self, mapping: Optional[Mapping[str, Any]]) -> dict[str, Any]:
        if mapping is None:
            mapping = self.create_mapping()
        return put_mapping_arguments(mapping)

    @staticmethod
    def _aliases_from(body: Mapping[str, Any]) -> dict[str, dict[str, AliasData]]:
        return {
            index: {
                alias: AliasData.of(alias, data or {})
                for alias, data in (content.get("aliases") or {}).items()
            }
            for index, content in body.items()
        }

    def _index_section(self, body: Mapping[str, Any], section: str) -> dict[str, Any]:
        content = body.get(self._index.index_name)
        if content is None and body:
            # the request may have used an alias
            content = next(iter(body.values()))
        return dict((content or {}).get(section) or {})


class IndexOperations(IndexOperationsSupport):
    def __init__(
        self,
        template: ElasticsearchTemplate,
        index: IndexCoordinates,
        cls: Optional[type] = None,
    ) -> None:
        super().__init__(template, index, cls)
        self._client = template.client

    def create(self, settings: Optional[Mapping[str, Any]] = None) -> bool:
        return self._create(settings, None)

    def create_with_mapping(self) -> bool:
        return self._create(None, self.create_mapping())

    def _create(
        self,
        settings: Optional[Mapping[str, Any]],
        mapping: Optional[Mapping[str, Any]],
    ) -> bool:
        request = self._create_request(settings, mapping)
        self._support._log_request("create index", request)

        with self._translator.translating(self._index.index_name):
            response = self._client.indices.create(**request)

        acknowledged = bool(response_body(response).get("acknowledged"))
        self._logger.info(f"Created index {self._index} (acknowledged: {acknowledged})")
        return acknowledged

    def put_mapping(self, mapping: Optional[Mapping[str, Any]] = None) -> bool:
        arguments = self._mapping_for_put(mapping)

        with self._translator.translating(self._index.index_name):
            response = self._client.indices.put_mapping(
                index=self._index.as_request_index(), **arguments
            )

        return bool(response_body(response).get("acknowledged"))

    def get_mapping(self) -> dict[str, Any]:
        with self._translator.translating(self._index.index_name):
            response = self._client.indices.get_mapping(index=self._index.as_request_index())

        return self._index_section(response_body(response), "mappings")

    def get_settings(self, include_defaults: bool = False) -> dict[str, Any]:
        with self._translator.translating(self._index.index_name):
            response = self._client.indices.get_settings(
                index=self._index.as_request_index(),
                include_defaults=include_defaults,
            )

        content = response_body(response).get(self._index.index_name) or {}
        settings = dict(content.get("settings") or {})
        if include_defaults:
            settings = {**(content.get("defaults") or {}), **settings}
        return settings

    def exists(self) -> bool:
        with self._translator.translating(self._index.index_name):
            return bool(self._client.indices.exists(index=self._index.as_request_index()))

    def delete(self) -> bool:
        if not self.exists():
            return False

        with self._translator.translating(self._index.index_name):
            response = self._client.indices.delete(index=self._index.as_request_index())

        self._logger.info(f"Deleted index {self._index}")
        return bool(response_body(response).get("acknowledged"))

    def refresh(self) -> None:
        with self._translator.translating(self._index.index_name):
            self._client.indices.refresh(index=self._index.as_request_index())

    def alter_aliases(self, *actions: AliasAction) -> bool:
        with self._translator.translating(self._index.index_name):
            response = self._client.indices.update_aliases(
                actions=[a.to_action() for a in actions]
            )

        return bool(response_body(response).get("acknowledged"))

    def get_aliases(self, *alias_names: str) -> dict[str, dict[str, AliasData]]:
        """Aliases per index; all aliases of the bound index when no names are given."""
        with self._translator.translating(self._index.index_name):
            if alias_names:
                response = self._client.indices.get_alias(name=list(alias_names))
            else:
                response = self._client.indices.get_alias(index=self._index.as_request_index())

        return self._aliases_from(response_body(response))

    def put_index_template(self, request: PutIndexTemplateRequest) -> bool:
        with self._translator.translating():
            response = self._client.indices.put_index_template(**request.to_request())

        return bool(response_body(response).get("acknowledged"))

    def exists_index_template(self, name: str) -> bool:
        with self._translator.translating():
            return bool(self._client.indices.exists_index_template(name=name))

    def get_index_template(self, name: str) -> Optional[TemplateData]:
        try:
            with self._translator.translating():
                response = self._client.indices.get_index_template(name=name)
        except NotFoundError:
            return None

        templates = response_body(response).get("index_templates") or ()
        return TemplateData.from_response(templates[0]) if templates else None

    def delete_index_template(self, name: str) -> bool:
        with self._translator.translating():
            response = self._client.indices.delete_index_template(name=name)

        return bool(response_body(response).get("acknowledged"))


class ElasticsearchTemplate(TemplateSupport):
    def __init__(
        self,
        client: Elasticsearch,
        converter: MappingElasticsearchConverter,
        callbacks: Optional[EntityCallbacks] = None,
        refresh_policy: RefreshPolicy = RefreshPolicy.NONE,
        logger: Optional[Logger] = None,
        index_prefix: str = "",
    ) -> None:
        super().__init__(converter, callbacks, refresh_policy, logger, index_prefix)
        self.client = client

    def with_refresh_policy(self, refresh_policy: RefreshPolicy) -> ElasticsearchTemplate:
        return ElasticsearchTemplate(
            self.client,
            self.converter,
            self.callbacks,
            refresh_policy,
            self.logger,
            self.index_prefix,
        )

    def index_ops(self, target: Target) -> IndexOperations:
        index, cls = self._split_target(target)
        return IndexOperations(self, index, cls)

    # documents

    def save(self, entity: T, index: Optional[IndexCoordinates] = None) -> T:
        index = self._index_for(index, type(entity))

        entity = self.callbacks.callback(BeforeConvertCallback, entity, index)
        request = self.request_factory.index_request(
            self._index_query(entity), index, self.refresh_policy
        )
        self._log_request("index", request)

        with self.logger.operation(f"save into {index}", LogLevel.TRACE):
            with self.exception_translator.translating(index.index_name):
                response = self.client.index(**request)

        info = IndexedObjectInformation.from_response(response_body(response))
        entity = self._update_indexed_object(entity, info)

        return self.callbacks.callback(AfterSaveCallback, entity, index)

    def save_all(self, entities: Sequence[T], index: Optional[IndexCoordinates] = None) -> list[T]:
        if not entities:
            return []

        index = self._index_for(index, type(entities[0]))

        converted = [self.callbacks.callback(BeforeConvertCallback, e, index) for e in entities]
        infos = self.bulk_index([self._index_query(e) for e in converted], index)

        return [
            self.callbacks.callback(
                AfterSaveCallback, self._update_indexed_object(entity, info), index
            )
            for entity, info in zip(converted, infos)
        ]

    def index(self, query: IndexQuery, index: IndexCoordinates) -> Optional[str]:
        """Indexes a prepared query and returns the document id."""
        if query.object is not None:
            query.object = self.callbacks.callback(BeforeConvertCallback, query.object, index)

        request = self.request_factory.index_request(query, index, self.refresh_policy)
        self._log_request("index", request)

        with self.exception_translator.translating(index.index_name):
            response = self.client.index(**request)

        info = IndexedObjectInformation.from_response(response_body(response))

        if query.object is not None:
            query.object = self.callbacks.callback(
                AfterSaveCallback, self._update_indexed_object(query.object, info), index
            )

        return info.id

    def bulk_index(
        self,
        queries: Sequence[IndexQuery],
        index: IndexCoordinates,
    ) -> list[IndexedObjectInformation]:
        return self._bulk(queries, index)

    def bulk_update(self, queries: Sequence[UpdateQuery], index: IndexCoordinates) -> None:
        self._bulk(queries, index)

    def _bulk(
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
                    response = self.client.bulk(operations=operations)
                else:
                    response = self.client.bulk(
                        operations=operations, refresh=refresh.to_request_value()
                    )

        return self._bulk_result(response_body(response), index)

    def get(
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
                response = self.client.get(**request)
        except NotFoundError:
            return None

        return self._read(cls, document_from_get_response(response_body(response)), index)

    def multi_get(
        self,
        query: Query,
        cls: type[T],
        index: Optional[IndexCoordinates] = None,
    ) -> list[MultiGetItem[T]]:
        index = self._index_for(index, cls)
        request = self.request_factory.multi_get_request(query, cls, index)

        with self.exception_translator.translating(index.index_name):
            response = self.client.mget(**request)

        items: list[MultiGetItem[T]] = []

        for doc in response_body(response).get("docs") or ():
            if doc.get("error"):
                items.append(MultiGetItem(failure=self._multi_get_failure(doc)))
            else:
                items.append(MultiGetItem(item=self._read(cls, document_from_get_response(doc), index)))

        return items

    def _read(
        self,
        cls: type[T],
        document: Optional[Document],
        index: IndexCoordinates,
    ) -> Optional[T]:
        if document is None:
            return None

        document = self.callbacks.callback(AfterLoadCallback, document, cls, index)
        entity = self.converter.read(cls, document)
        return self.callbacks.callback(AfterConvertCallback, entity, document, index)

    def exists(self, id: Any, target: Target) -> bool:
        index, _ = self._split_target(target)

        with self.exception_translator.translating(index.index_name):
            return bool(
                self.client.exists(index=index.index_name, id=self.converter.convert_id(id))  # type: ignore[arg-type]
            )

    def delete(
        self,
        id_or_entity: Any,
        target: Optional[Target] = None,
        routing: Optional[str] = None,
    ) -> Optional[str]:
        """Deletes by id (``target`` required) or by entity; returns the id."""
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
                self.client.delete(**request)
        except NotFoundError:
            self.logger.debug(f"Document {id} to delete was not found in {index}")

        return id

    def delete_by_query(
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
                response = self.client.delete_by_query(**request)

        return ByQueryResponse.from_response(response_body(response))

    def update(
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
            entity = self.callbacks.callback(BeforeConvertCallback, query_or_entity, index)
            query = self._update_query_for(entity, index)

        request = self.request_factory.update_request(query, index, self.refresh_policy)
        self._log_request("update", request)

        with self.exception_translator.translating(index.index_name):
            response = self.client.update(**request)

        return UpdateResponse(result=response_body(response).get("result", ""))

    def update_by_query(
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
                response = self.client.update_by_query(**request)

        return ByQueryResponse.from_response(response_body(response))

    # searching

    def count(
        self,
        query: Query,
        cls: Optional[type] = None,
        index: Optional[IndexCoordinates] = None,
    ) -> int:
        index = self._index_for(index, cls)
        request = self.request_factory.count_request(query, cls, index)
        self._log_request("count", request)

        with self.exception_translator.translating(index.index_name):
            response = self.client.count(**request)

        return int(response_body(response).get("count", 0))

    def search(
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
                response = self.client.search(**request)

        return self._search_hits(cls, response_body(response), index)

    def _search_hits(
        self,
        cls: type[T],
        body: Mapping[str, Any],
        index: IndexCoordinates,
    ) -> SearchHits[T]:
        document_response = SearchDocumentResponse.from_response(body)
        contents = [self._read(cls, d, index) for d in document_response.search_documents]
        return self._hit_mapping(cls).map_hits(document_response, contents)  # type: ignore[arg-type]

    def search_one(
        self,
        query: Query,
        cls: type[T],
        index: Optional[IndexCoordinates] = None,
    ) -> Optional[SearchHit[T]]:
        max_results = query.max_results
        query.set_max_results(1)

        try:
            hits = self.search(query, cls, index)
        finally:
            query.max_results = max_results

        return hits.search_hits[0] if hits.search_hits else None

    def multi_search(
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
                response = self.client.msearch(searches=searches)

        results: list[SearchHits[T]] = []

        for position, item in enumerate(response_body(response).get("responses") or ()):
            self._check_multi_search_item(position, item)
            results.append(self._search_hits(cls, item, index))

        return results

    def search_scroll_start(
        self,
        scroll_time: timedelta,
        query: Query,
        cls: type[T],
        index: IndexCoordinates,
    ) -> SearchHits[T]:
        request = self._search_request(query, cls, index, scroll=scroll_time)
        self._log_request("scroll start", request)

        with self.exception_translator.translating(index.index_name):
            response = self.client.search(**request)

        return self._search_hits(cls, response_body(response), index)

    def search_scroll_continue(
        self,
        scroll_id: str,
        scroll_time: timedelta,
        cls: type[T],
        index: IndexCoordinates,
    ) -> SearchHits[T]:
        with self.exception_translator.translating(index.index_name):
            response = self.client.scroll(scroll_id=scroll_id, scroll=time_string(scroll_time))

        return self._search_hits(cls, response_body(response), index)

    def search_scroll_clear(self, scroll_ids: Sequence[str]) -> None:
        if not scroll_ids:
            return

        with self.exception_translator.translating():
            self.client.clear_scroll(scroll_id=list(scroll_ids))

    def search_for_stream(
        self,
        query: Query,
        cls: type[T],
        index: Optional[IndexCoordinates] = None,
    ) -> Iterator[SearchHit[T]]:
        """Yields every hit of ``query`` through a scroll that is cleared at the end."""
        index = self._index_for(index, cls)
        scroll_time = query.scroll_time or DEFAULT_SCROLL_TIME
        max_results = query.max_results
        # the scroll size comes from the page, the limit is applied while iterating
        query.max_results = None

        hits = self.search_scroll_start(scroll_time, query, cls, index)
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

                hits = self.search_scroll_continue(hits.scroll_id, scroll_time, cls, index)
                if hits.scroll_id and hits.scroll_id not in scroll_ids:
                    scroll_ids.append(hits.scroll_id)
        finally:
            query.max_results = max_results
            self.search_scroll_clear(scroll_ids)

    def refresh(self, target: Target) -> None:
        self.index_ops(target).refresh()
