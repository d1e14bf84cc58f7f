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
import json
from typing import Any, Mapping, Optional, Sequence


class Document(dict[str, Any]):
    """The ``_source`` of a stored document together with its metadata."""

    def __init__(
        self,
        source: Optional[Mapping[str, Any]] = None,
        *,
        id: Optional[str] = None,
        index: Optional[str] = None,
        version: Optional[int] = None,
        seq_no: Optional[int] = None,
        primary_term: Optional[int] = None,
        routing: Optional[str] = None,
        fields: Optional[Mapping[str, Sequence[Any]]] = None,
    ) -> None:
        super().__init__(source or {})
        self.id = id
        self.index = index
        self.version = version
        self.seq_no = seq_no
        self.primary_term = primary_term
        self.routing = routing
        self.fields: dict[str, Sequence[Any]] = dict(fields or {})

    @staticmethod
    def from_json(text: str) -> Document:
        return Document(json.loads(text))

    def to_json(self) -> str:
        return json.dumps(self, default=str)

    @property
    def has_id(self) -> bool:
        return self.id is not None

    @property
    def has_version(self) -> bool:
        return self.version is not None

    @property
    def has_seq_no(self) -> bool:
        return self.seq_no is not None

    @property
    def has_primary_term(self) -> bool:
        return self.primary_term is not None

    def get_path(self, path: str, default: Any = None) -> Any:
        """Gets a value by dotted path, descending into nested objects."""
        current: Any = self

        for segment in path.split("."):
            if not isinstance(current, Mapping) or segment not in current:
                return default
            current = current[segment]

        return current

    def set_path(self, path: str, value: Any) -> None:
        *parents, leaf = path.split(".")
        current: dict[str, Any] = self

        for segment in parents:
            current = current.setdefault(segment, {})

        current[leaf] = value

    def __repr__(self) -> str:
        return f"Document(id={self.id!r}, index={self.index!r}, source={dict(self)!r})"


class SearchDocument(Document):
    def __init__(
        self,
        source: Optional[Mapping[str, Any]] = None,
        *,
        score: Optional[float] = None,
        sort_values: Sequence[Any] = (),
        highlight_fields: Optional[Mapping[str, Sequence[str]]] = None,
        inner_hits: Optional[Mapping[str, Any]] = None,
        matched_queries: Sequence[str] = (),
        explanation: Optional[Mapping[str, Any]] = None,
        **metadata: Any,
    ) -> None:
        super().__init__(source, **metadata)
        self.score = score
        self.sort_values = list(sort_values)
        self.highlight_fields: dict[str, list[str]] = {
            k: list(v) for k, v in (highlight_fields or {}).items()
        }
        self.inner_hits = dict(inner_hits or {})
        self.matched_queries = list(matched_queries)
        self.explanation = explanation

    @staticmethod
    def from_hit(hit: Mapping[str, Any]) -> SearchDocument:
        matched = hit.get("matched_queries") or ()
        if isinstance(matched, Mapping):
            matched = list(matched.keys())

        score = hit.get("_score")

        return SearchDocument(
            hit.get("_source") or {},
            id=hit.get("_id"),
            index=hit.get("_index"),
            version=hit.get("_version"),
            seq_no=hit.get("_seq_no"),
            primary_term=hit.get("_primary_term"),
            routing=hit.get("_routing"),
            fields=hit.get("fields") or {},
            score=float(score) if score is not None else None,
            sort_values=hit.get("sort") or (),
            highlight_fields=hit.get("highlight") or {},
            inner_hits=hit.get("inner_hits") or {},
            matched_queries=matched,
            explanation=hit.get("_explanation"),
        )


def document_from_get_response(response: Mapping[str, Any]) -> Optional[Document]:
    if not response.get("found", False):
        return None

    return Document(
        response.get("_source") or {},
        id=response.get("_id"),
        index=response.get("_index"),
        version=response.get("_version"),
        seq_no=response.get("_seq_no"),
        primary_term=response.get("_primary_term"),
        routing=response.get("_routing"),
        fields=response.get("fields") or {},
    )
