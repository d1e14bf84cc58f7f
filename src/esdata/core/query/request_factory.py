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

"""Builds keyword arguments for ``Elasticsearch``/``AsyncElasticsearch`` calls.

Both template flavors share this factory; it never talks to the cluster.
"""

from __future__ import annotations
from datetime import timedelta
import json
from typing import Any, Mapping, Optional, Sequence

from esdata.core.common import InvalidQueryError
from esdata.core.convert.converter import MappingElasticsearchConverter
from esdata.core.mapping.context import is_entity_type
from esdata.core.operations import IndexCoordinates, RefreshPolicy
from esdata.core.query.processor import CriteriaFilterProcessor, CriteriaQueryProcessor
from esdata.core.query.query import (
    DEFAULT_UNPAGED_SIZE,
    CriteriaQuery,
    Highlight,
    HighlightParameters,
    IndexQuery,
    MoreLikeThisQuery,
    NativeQuery,
    NullHandling,
    OpType,
    Query,
    Sort,
    StringQuery,
    UpdateQuery,
)

DEFAULT_SCROLL_SIZE = 500

MATCH_ALL: dict[str, Any] = {"match_all": {}}

_MSEARCH_HEADER_KEYS = ("index", "routing", "preference", "request_cache")
_MSEARCH_BODY_RENAMES = {"from_": "from", "source": "_source"}


def time_string(value: timedelta) -> str:
    return f"{int(value.total_seconds() * 1000)}ms"


def _drop_none(values: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


class RequestFactory:
    def __init__(self, converter: MappingElasticsearchConverter) -> None:
        self._converter = converter
        self._query_processor = CriteriaQueryProcessor()
        self._filter_processor = CriteriaFilterProcessor()

    # queries

    def query_body(self, query: Query, cls: Optional[type]) -> dict[str, Any]:
        """The ``query`` part of a request; call after the query was mapped."""
        if isinstance(query, CriteriaQuery):
            body = self._query_processor.create_query(query.criteria) or dict(MATCH_ALL)
        elif isinstance(query, StringQuery):
            try:
                body = json.loads(query.source)
            except json.JSONDecodeError as exc:
                raise InvalidQueryError(f"Invalid string query {query.source!r}: {exc}") from exc
        elif isinstance(query, NativeQuery):
            body = dict(query.query) if query.query else dict(MATCH_ALL)
        else:
            body = dict(MATCH_ALL)

        if query.ids:
            body = {"bool": {"must": [body], "filter": [{"ids": {"values": list(query.ids)}}]}}

        return body

    def search_request(
        self,
        query: Query,
        cls: Optional[type],
        index: IndexCoordinates,
        scroll: Optional[timedelta] = None,
    ) -> dict[str, Any]:
        self._converter.update_query(query, cls)

        request: dict[str, Any] = {
            "index": index.as_request_index(),
            "query": self.query_body(query, cls),
        }

        self._add_paging(request, query, scroll)

        if scroll is not None:
            request["scroll"] = time_string(scroll)

        if query.sort:
            request["sort"] = self.sort_options(query.sort)
        if isinstance(query, NativeQuery) and query.sort_options:
            request.setdefault("sort", []).extend(dict(s) for s in query.sort_options)

        if query.min_score is not None:
            request["min_score"] = query.min_score
        if query.route:
            request["routing"] = query.route
        if query.track_scores:
            request["track_scores"] = True
        if query.track_total_hits_up_to is not None:
            request["track_total_hits"] = query.track_total_hits_up_to
        elif query.track_total_hits is not None:
            request["track_total_hits"] = query.track_total_hits
        if query.timeout is not None:
            request["timeout"] = time_string(query.timeout)
        if query.explain:
            request["explain"] = True
        if query.preference:
            request["preference"] = query.preference
        if query.search_after is not None:
            request["search_after"] = list(query.search_after)
        if query.request_cache is not None:
            request["request_cache"] = query.request_cache
        if query.indices_boost:
            request["indices_boost"] = [{b.index_name: b.boost} for b in query.indices_boost]

        if query.source_filter:
            source_filter = query.source_filter
            if source_filter.fetch_source is False:
                request["source"] = False
            elif source_filter.includes or source_filter.excludes:
                request["source"] = _drop_none(
                    {
                        "includes": list(source_filter.includes) or None,
                        "excludes": list(source_filter.excludes) or None,
                    }
                )
        if query.fields:
            request["fields"] = list(query.fields)
        if query.stored_fields:
            request["stored_fields"] = list(query.stored_fields)

        if query.runtime_fields:
            request["runtime_mappings"] = {rf.name: rf.to_mapping() for rf in query.runtime_fields}

        if query.scripted_fields:
            request["script_fields"] = {
                sf.name: {"script": sf.script.to_script()} for sf in query.scripted_fields
            }
            # script fields suppress _source unless it is requested explicitly
            request.setdefault("source", True)

        if query.highlight_query:
            request["highlight"] = self.highlight(query.highlight_query.highlight)

        if isinstance(query, CriteriaQuery):
            if post_filter := self._filter_processor.create_filter(query.criteria):
                request["post_filter"] = post_filter

        if isinstance(query, NativeQuery):
            if query.aggregations:
                request["aggregations"] = dict(query.aggregations)
            if query.post_filter:
                request["post_filter"] = dict(query.post_filter)
            if query.knn:
                request["knn"] = query.knn
            if query.suggest:
                request["suggest"] = dict(query.suggest)

        if cls is not None and is_entity_type(cls):
            entity = self._converter.mapping_context.get_persistent_entity(cls)
            if entity.seq_no_primary_term_property:
                request["seq_no_primary_term"] = True
            if entity.version_property:
                request["version"] = True

        return request

    def _add_paging(
        self,
        request: dict[str, Any],
        query: Query,
        scroll: Optional[timedelta],
    ) -> None:
        pageable = query.pageable

        if scroll is not None:
            request["size"] = (
                pageable.size  # type: ignore[attr-defined]
                if pageable.is_paged
                else DEFAULT_SCROLL_SIZE
            )
            return

        if pageable.is_paged:
            request["from_"] = pageable.offset  # type: ignore[attr-defined]
            request["size"] = pageable.size  # type: ignore[attr-defined]
        else:
            request["size"] = DEFAULT_UNPAGED_SIZE

        if query.is_limiting:
            request["size"] = query.max_results

    def multi_search_entries(self, requests: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        """Splits search requests into the header/body pairs of ``msearch``."""
        searches: list[dict[str, Any]] = []

        for request in requests:
            header = {k: request[k] for k in _MSEARCH_HEADER_KEYS if k in request}
            body = {
                _MSEARCH_BODY_RENAMES.get(k, k): v
                for k, v in request.items()
                if k not in _MSEARCH_HEADER_KEYS and k != "scroll"
            }
            searches.extend((header, body))

        return searches

    def count_request(
        self,
        query: Query,
        cls: Optional[type],
        index: IndexCoordinates,
    ) -> dict[str, Any]:
        self._converter.update_query(query, cls)

        request: dict[str, Any] = {
            "index": index.as_request_index(),
            "query": self.query_body(query, cls),
        }

        if query.route:
            request["routing"] = query.route
        if query.min_score is not None:
            request["min_score"] = query.min_score

        return request

    def more_like_this_query(
        self,
        query: MoreLikeThisQuery,
        index: IndexCoordinates,
    ) -> NativeQuery:
        mlt: dict[str, Any] = {"like": [{"_index": index.index_name, "_id": query.id}]}

        if query.search_fields:
            mlt["fields"] = list(query.search_fields)

        mlt.update(
            _drop_none(
                {
                    "analyzer": query.analyzer,
                    "min_term_freq": query.min_term_freq,
                    "max_query_terms": query.max_query_terms,
                    "min_doc_freq": query.min_doc_freq,
                    "max_doc_freq": query.max_doc_freq,
                    "min_word_length": query.min_word_len,
                    "max_word_length": query.max_word_len,
                    "boost_terms": query.boost_terms,
                    "include": query.include,
                    "minimum_should_match": query.minimum_should_match,
                }
            )
        )

        if query.stop_words:
            mlt["stop_words"] = list(query.stop_words)

        native = NativeQuery(query={"more_like_this": mlt}, pageable=query.pageable)
        native.sort = query.sort
        native.source_filter = query.source_filter
        native.fields = list(query.fields)
        return native

    def sort_options(self, sort: Sort) -> list[dict[str, Any]]:
        options: list[dict[str, Any]] = []

        for order in sort:
            option: dict[str, Any] = {"order": order.direction.value}

            if order.mode:
                option["mode"] = order.mode
            if order.unmapped_type:
                option["unmapped_type"] = order.unmapped_type

            if order.missing is not None:
                option["missing"] = order.missing
            elif order.null_handling is NullHandling.NULLS_FIRST:
                option["missing"] = "_first"
            elif order.null_handling is NullHandling.NULLS_LAST:
                option["missing"] = "_last"

            options.append({order.property: option})

        return options

    def highlight(self, highlight: Highlight) -> dict[str, Any]:
        body = self._highlight_parameters(highlight.parameters)
        body["fields"] = {
            f.name: self._highlight_parameters(f.parameters) if f.parameters else {}
            for f in highlight.fields
        }
        return body

    @staticmethod
    def _highlight_parameters(parameters: HighlightParameters) -> dict[str, Any]:
        return _drop_none(
            {
                "pre_tags": list(parameters.pre_tags) or None,
                "post_tags": list(parameters.post_tags) or None,
                "fragment_size": parameters.fragment_size,
                "number_of_fragments": parameters.number_of_fragments,
                "type": parameters.type,
                "order": parameters.order,
                "require_field_match": parameters.require_field_match,
                "encoder": parameters.encoder,
                "boundary_scanner": parameters.boundary_scanner,
                "no_match_size": parameters.no_match_size,
                "tags_schema": parameters.tags_schema,
                "matched_fields": list(parameters.matched_fields) or None,
            }
        )

    # documents

    def index_request(
        self,
        query: IndexQuery,
        index: IndexCoordinates,
        refresh_policy: RefreshPolicy,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "index": query.index_name or index.index_name,
            "document": self._document_source(query),
        }

        request.update(self._index_metadata(query))

        if refresh_policy is not RefreshPolicy.NONE:
            request["refresh"] = refresh_policy.to_request_value()

        return request

    def _document_source(self, query: IndexQuery) -> dict[str, Any]:
        if query.source is not None:
            return dict(query.source)
        if query.object is not None:
            return dict(self._converter.write(query.object))
        raise InvalidQueryError("An IndexQuery needs either an object or a source")

    @staticmethod
    def _index_metadata(query: IndexQuery, prefix: str = "") -> dict[str, Any]:
        metadata: dict[str, Any] = {}

        if query.id is not None:
            metadata[f"{prefix}id"] = query.id
        if query.routing:
            metadata["routing"] = query.routing
        if query.version is not None:
            metadata["version"] = query.version
            metadata["version_type"] = "external"
        if query.seq_no is not None and query.primary_term is not None:
            metadata["if_seq_no"] = query.seq_no
            metadata["if_primary_term"] = query.primary_term
        if query.op_type is OpType.CREATE:
            metadata["op_type"] = OpType.CREATE.value

        return metadata

    def bulk_operations(
        self,
        queries: Sequence[IndexQuery | UpdateQuery],
        index: IndexCoordinates,
    ) -> list[dict[str, Any]]:
        operations: list[dict[str, Any]] = []

        for query in queries:
            if isinstance(query, UpdateQuery):
                if query.id is None:
                    raise InvalidQueryError("Bulk updates need a document id")

                action = _drop_none(
                    {
                        "_index": index.index_name,
                        "_id": query.id,
                        "routing": query.routing,
                        "if_seq_no": query.if_seq_no,
                        "if_primary_term": query.if_primary_term,
                        "retry_on_conflict": query.retry_on_conflict,
                    }
                )
                operations.append({"update": action})
                operations.append(self._update_body(query))
                continue

            metadata = self._index_metadata(query, prefix="_")
            op_type = metadata.pop("op_type", "index")
            action = {"_index": query.index_name or index.index_name, **metadata}
            operations.append({op_type: action})
            operations.append(self._document_source(query))

        return operations

    def _update_body(self, query: UpdateQuery) -> dict[str, Any]:
        body: dict[str, Any] = {}

        if query.document is not None:
            body["doc"] = dict(query.document)
        if script := query.script_data:
            body["script"] = script.to_script()
        if query.upsert is not None:
            body["upsert"] = dict(query.upsert)
        if query.doc_as_upsert is not None:
            body["doc_as_upsert"] = query.doc_as_upsert
        if query.scripted_upsert is not None:
            body["scripted_upsert"] = query.scripted_upsert

        return body

    def update_request(
        self,
        query: UpdateQuery,
        index: IndexCoordinates,
        refresh_policy: RefreshPolicy,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {"index": index.index_name, "id": query.id}
        request.update(self._update_body(query))

        request.update(
            _drop_none(
                {
                    "routing": query.routing,
                    "if_seq_no": query.if_seq_no,
                    "if_primary_term": query.if_primary_term,
                    "retry_on_conflict": query.retry_on_conflict,
                    "timeout": query.timeout,
                    "wait_for_active_shards": query.wait_for_active_shards,
                }
            )
        )

        if query.fetch_source_includes or query.fetch_source_excludes:
            request["source"] = _drop_none(
                {
                    "includes": list(query.fetch_source_includes) or None,
                    "excludes": list(query.fetch_source_excludes) or None,
                }
            )
        elif query.fetch_source is not None:
            request["source"] = query.fetch_source

        if refresh_policy is not RefreshPolicy.NONE:
            request["refresh"] = refresh_policy.to_request_value()

        return request

    def update_by_query_request(
        self,
        query: UpdateQuery,
        cls: Optional[type],
        index: IndexCoordinates,
        refresh_policy: RefreshPolicy,
    ) -> dict[str, Any]:
        if query.query is None:
            raise InvalidQueryError("An update by query needs a query")

        self._converter.update_query(query.query, cls)

        request: dict[str, Any] = {
            "index": index.as_request_index(),
            "query": self.query_body(query.query, cls),
        }

        if script := query.script_data:
            request["script"] = script.to_script()

        if query.abort_on_version_conflict is not None:
            request["conflicts"] = "abort" if query.abort_on_version_conflict else "proceed"

        request.update(
            _drop_none(
                {
                    "routing": query.routing,
                    "max_docs": query.max_docs,
                    "pipeline": query.pipeline,
                    "requests_per_second": query.requests_per_second,
                    "slices": query.slices,
                    "scroll_size": query.batch_size,
                    "timeout": query.timeout,
                    "wait_for_active_shards": query.wait_for_active_shards,
                }
            )
        )

        # update/delete by query only accept a boolean refresh
        if refresh_policy is not RefreshPolicy.NONE:
            request["refresh"] = True

        return request

    def delete_by_query_request(
        self,
        query: Query,
        cls: Optional[type],
        index: IndexCoordinates,
        refresh_policy: RefreshPolicy,
    ) -> dict[str, Any]:
        self._converter.update_query(query, cls)

        request: dict[str, Any] = {
            "index": index.as_request_index(),
            "query": self.query_body(query, cls),
        }

        if query.route:
            request["routing"] = query.route
        if query.is_limiting:
            request["max_docs"] = query.max_results
        if refresh_policy is not RefreshPolicy.NONE:
            request["refresh"] = True

        return request

    def delete_request(
        self,
        id: str,
        routing: Optional[str],
        index: IndexCoordinates,
        refresh_policy: RefreshPolicy,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {"index": index.index_name, "id": id}

        if routing:
            request["routing"] = routing
        if refresh_policy is not RefreshPolicy.NONE:
            request["refresh"] = refresh_policy.to_request_value()

        return request

    def get_request(
        self,
        id: str,
        index: IndexCoordinates,
        routing: Optional[str] = None,
        cls: Optional[type] = None,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {"index": index.index_name, "id": id}

        if routing:
            request["routing"] = routing

        return request

    def multi_get_request(
        self,
        query: Query,
        cls: Optional[type],
        index: IndexCoordinates,
    ) -> dict[str, Any]:
        if not query.ids:
            raise InvalidQueryError("A multi get query needs document ids")

        self._converter.update_query(query, cls)

        docs: list[dict[str, Any]] = []

        for id in query.ids:
            doc: dict[str, Any] = {"_index": index.index_name, "_id": id}
            if query.route:
                doc["routing"] = query.route
            if query.source_filter and (
                query.source_filter.includes or query.source_filter.excludes
            ):
                doc["_source"] = _drop_none(
                    {
                        "includes": list(query.source_filter.includes) or None,
                        "excludes": list(query.source_filter.excludes) or None,
                    }
                )
            if query.stored_fields:
                doc["stored_fields"] = list(query.stored_fields)
            docs.append(doc)

        return {"docs": docs}

    # indices

    def create_index_request(
        self,
        index: IndexCoordinates,
        settings: Optional[Mapping[str, Any]],
        mapping: Optional[Mapping[str, Any]],
        alias: Optional[str] = None,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {"index": index.index_name}

        if settings:
            request["settings"] = dict(settings)
        if mapping:
            request["mappings"] = dict(mapping)
        if alias:
            request["aliases"] = {alias: {}}

        return request
