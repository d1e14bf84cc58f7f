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

"""Translation of :class:`Criteria` into Elasticsearch query DSL dicts."""

from __future__ import annotations
from datetime import date, time
from enum import Enum
from typing import Any, Iterable, Optional

from esdata.core.common import InvalidQueryError
from esdata.core.mapping.annotations import GeoPoint
from esdata.core.mapping.field_types import FieldType
from esdata.core.query.criteria import Criteria, CriteriaEntry, CriteriaField, OperationKey

_LUCENE_SPECIAL_CHARACTERS = set('\\+-!():^[]"{}~*?|&/')


def escape(text: str) -> str:
    """Escapes Lucene query syntax characters."""
    return "".join("\\" + c if c in _LUCENE_SPECIAL_CHARACTERS else c for c in text)


def to_query_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


def _range_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, time)):
        return value.isoformat()
    return value


def _or_query_string(values: Iterable[Any]) -> str:
    return " ".join(f'"{escape(to_query_text(v))}"' for v in values if v is not None)


def _bool(
    must: Optional[list[dict[str, Any]]] = None,
    should: Optional[list[dict[str, Any]]] = None,
    must_not: Optional[list[dict[str, Any]]] = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {}
    if should:
        body["should"] = should
    if must_not:
        body["must_not"] = must_not
    if must:
        body["must"] = must
    return {"bool": body}


def _negated(query: dict[str, Any]) -> dict[str, Any]:
    return _bool(must_not=[query])


class CriteriaQueryProcessor:
    def create_query(self, criteria: Criteria) -> Optional[dict[str, Any]]:
        should: list[dict[str, Any]] = []
        must_not: list[dict[str, Any]] = []
        must: list[dict[str, Any]] = []

        first_query: Optional[dict[str, Any]] = None
        negate_first_query = False

        def add(link: Criteria, query: dict[str, Any]) -> None:
            if link.is_or:
                should.append(_negated(query) if link.is_negating else query)
            elif link.is_negating:
                must_not.append(query)
            else:
                must.append(query)

        for link in criteria.criteria_chain:
            fragment = self._query_for_entries(link)

            if fragment is not None:
                if first_query is None:
                    first_query = fragment
                    negate_first_query = link.is_negating
                else:
                    add(link, fragment)

            for sub_criteria in link.sub_criteria_list:
                if (sub_query := self.create_query(sub_criteria)) is not None:
                    add(link, sub_query)

        if first_query is not None:
            if should and not must_not and not must:
                should.insert(0, _negated(first_query) if negate_first_query else first_query)
            elif negate_first_query:
                must_not.insert(0, first_query)
            else:
                must.insert(0, first_query)

        if not (should or must_not or must):
            return None

        return _bool(must=must, should=should, must_not=must_not)

    def _query_for_entries(self, criteria: Criteria) -> Optional[dict[str, Any]]:
        field = criteria.field

        if field is None or not criteria.query_criteria_entries:
            return None

        if len(criteria.query_criteria_entries) == 1:
            query = self._query_for(criteria.query_criteria_entries[0], field)
        else:
            query = _bool(must=[self._query_for(e, field) for e in criteria.query_criteria_entries])

        if criteria.boost_value is not None:
            _add_boost(query, criteria.boost_value)

        if field.path:
            query = {"nested": {"path": field.path, "query": query, "score_mode": "avg"}}

        return query

    def _query_for(self, entry: CriteriaEntry, field: CriteriaField) -> dict[str, Any]:
        name = field.name
        is_keyword = field.field_type is FieldType.KEYWORD
        key = entry.key
        value = entry.value if key.has_value else None
        search_text = escape(to_query_text(value)) if value is not None else "UNKNOWN_VALUE"

        if key is OperationKey.EXISTS:
            return {"exists": {"field": name}}
        if key is OperationKey.EMPTY:
            return _bool(
                must=[{"exists": {"field": name}}],
                must_not=[{"wildcard": {name: {"wildcard": "*"}}}],
            )
        if key is OperationKey.NOT_EMPTY:
            return {"wildcard": {name: {"wildcard": "*"}}}
        if key is OperationKey.EQUALS:
            return {
                "query_string": {
                    "query": search_text,
                    "fields": [name],
                    "default_operator": "and",
                }
            }
        if key is OperationKey.CONTAINS:
            return _wildcard_query_string(name, f"*{search_text}*")
        if key is OperationKey.STARTS_WITH:
            return _wildcard_query_string(name, f"{search_text}*")
        if key is OperationKey.ENDS_WITH:
            return _wildcard_query_string(name, f"*{search_text}")
        if key is OperationKey.EXPRESSION:
            return {"query_string": {"query": to_query_text(value), "fields": [name]}}
        if key is OperationKey.LESS:
            return {"range": {name: {"lt": _range_value(value)}}}
        if key is OperationKey.LESS_EQUAL:
            return {"range": {name: {"lte": _range_value(value)}}}
        if key is OperationKey.GREATER:
            return {"range": {name: {"gt": _range_value(value)}}}
        if key is OperationKey.GREATER_EQUAL:
            return {"range": {name: {"gte": _range_value(value)}}}
        if key is OperationKey.BETWEEN:
            lower, upper = value
            bounds: dict[str, Any] = {}
            if lower is not None:
                bounds["gte"] = _range_value(lower)
            if upper is not None:
                bounds["lte"] = _range_value(upper)
            return {"range": {name: bounds}}
        if key is OperationKey.FUZZY:
            return {"fuzzy": {name: {"value": search_text}}}
        if key is OperationKey.MATCHES:
            return {"match": {name: {"query": to_query_text(value), "operator": "or"}}}
        if key is OperationKey.MATCHES_ALL:
            return {"match": {name: {"query": to_query_text(value), "operator": "and"}}}
        if key is OperationKey.IN:
            values = list(value)
            if is_keyword:
                return {"terms": {name: [_range_value(v) for v in values]}}
            return {"query_string": {"query": _or_query_string(values), "fields": [name]}}
        if key is OperationKey.NOT_IN:
            values = list(value)
            if is_keyword:
                return _bool(must_not=[{"terms": {name: [_range_value(v) for v in values]}}])
            return {
                "query_string": {"query": f"NOT({_or_query_string(values)})", "fields": [name]}
            }
        if key is OperationKey.REGEXP:
            return {"regexp": {name: {"value": to_query_text(value)}}}

        raise InvalidQueryError(f"Operation {key.name} cannot be used in a query, only in a filter")


def _wildcard_query_string(name: str, query: str) -> dict[str, Any]:
    return {"query_string": {"query": query, "fields": [name], "analyze_wildcard": True}}


def _add_boost(query: dict[str, Any], boost: float) -> None:
    # single clause queries carry the boost inside their body
    (query_type, body), *_ = query.items()

    if query_type in ("query_string", "exists", "bool", "nested"):
        body["boost"] = boost
        return

    (_, field_body), *_ = body.items()
    if isinstance(field_body, dict):
        field_body["boost"] = boost
    else:
        body["boost"] = boost


def _geo_value(value: Any) -> Any:
    if isinstance(value, GeoPoint):
        return value.to_dict()
    return value


class CriteriaFilterProcessor:
    """Creates the post filter for geo conditions of a criteria chain."""

    def create_filter(self, criteria: Criteria) -> Optional[dict[str, Any]]:
        filter_queries: list[dict[str, Any]] = []

        for link in criteria.criteria_chain:
            field = link.field
            if field is None or not link.filter_criteria_entries:
                continue

            queries = [self._filter_for(e, field) for e in link.filter_criteria_entries]

            if link.is_or:
                filter_queries.append(_bool(should=queries))
            elif link.is_negating:
                filter_queries.append(_bool(must_not=queries))
            else:
                filter_queries.extend(queries)

        if not filter_queries:
            return None
        if len(filter_queries) == 1:
            return filter_queries[0]
        return _bool(must=filter_queries)

    def _filter_for(self, entry: CriteriaEntry, field: CriteriaField) -> dict[str, Any]:
        if entry.key is OperationKey.WITHIN:
            location, distance = entry.value
            return {"geo_distance": {"distance": distance, field.name: _geo_value(location)}}

        if entry.key is OperationKey.BBOX:
            top_left, bottom_right = entry.value
            return {
                "geo_bounding_box": {
                    field.name: {
                        "top_left": _geo_value(top_left),
                        "bottom_right": _geo_value(bottom_right),
                    }
                }
            }

        raise InvalidQueryError(f"Operation {entry.key.name} cannot be used in a filter")
