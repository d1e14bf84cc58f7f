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
import collections.abc
from dataclasses import dataclass, field
from enum import Enum, auto
import inspect
import types
from typing import (
    Any,
    Callable,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from esdata.core.common import InvalidQueryError
from esdata.core.query.query import (
    Highlight,
    HighlightField,
    HighlightParameters,
    Page,
    Pageable,
    Sort,
    SourceFilter,
)
from esdata.core.search import SearchHit, SearchHits, SearchPage

F = TypeVar("F", bound=Callable[..., Any])

QUERY_ATTRIBUTE = "__esdata_query__"
HIGHLIGHT_ATTRIBUTE = "__esdata_highlight__"
SOURCE_FILTERS_ATTRIBUTE = "__esdata_source_filters__"


@dataclass(frozen=True)
class QueryAnnotation:
    value: str
    count: bool = False


def query(value: str, count: bool = False) -> Callable[[F], F]:
    """Declares a string query; ``?0`` and ``?name`` refer to method arguments."""

    def decorator(func: F) -> F:
        setattr(func, QUERY_ATTRIBUTE, QueryAnnotation(value, count))
        return func

    return decorator


def count_query(value: str) -> Callable[[F], F]:
    return query(value, count=True)


def highlight(
    *fields: Union[str, HighlightField],
    parameters: Optional[HighlightParameters] = None,
) -> Callable[[F], F]:
    highlight_fields = [HighlightField(f) if isinstance(f, str) else f for f in fields]

    def decorator(func: F) -> F:
        setattr(
            func,
            HIGHLIGHT_ATTRIBUTE,
            Highlight(highlight_fields, parameters or HighlightParameters()),
        )
        return func

    return decorator


def source_filters(
    includes: Sequence[str] = (),
    excludes: Sequence[str] = (),
) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        setattr(func, SOURCE_FILTERS_ATTRIBUTE, SourceFilter(tuple(includes), tuple(excludes)))
        return func

    return decorator


class ResultKind(Enum):
    LIST = auto()
    SINGLE = auto()
    SEARCH_HITS = auto()
    SEARCH_HIT = auto()
    SEARCH_HIT_LIST = auto()
    SEARCH_PAGE = auto()
    PAGE = auto()
    COUNT = auto()
    EXISTS = auto()
    STREAM = auto()
    SEARCH_HIT_STREAM = auto()
    NONE = auto()

    @property
    def is_stream(self) -> bool:
        return self in (ResultKind.STREAM, ResultKind.SEARCH_HIT_STREAM)


_SEQUENCE_ORIGINS = (list, tuple, collections.abc.Sequence, collections.abc.Iterable)
_STREAM_ORIGINS = (
    collections.abc.Iterator,
    collections.abc.Generator,
    collections.abc.AsyncIterator,
    collections.abc.AsyncGenerator,
    collections.abc.AsyncIterable,
)

_DEFAULT_KINDS = {
    "count": ResultKind.COUNT,
    "exists": ResultKind.EXISTS,
    "delete": ResultKind.NONE,
    "remove": ResultKind.NONE,
    "stream": ResultKind.STREAM,
}


def _is_search_hit(t: Any) -> bool:
    return t is SearchHit or get_origin(t) is SearchHit


def _strip_optional(t: Any) -> tuple[Any, bool]:
    if get_origin(t) in (Union, types.UnionType):
        args = [a for a in get_args(t) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
    return t, False


def result_kind_of(annotation: Any, verb: str) -> ResultKind:
    if annotation is inspect.Signature.empty:
        return _DEFAULT_KINDS.get(verb, ResultKind.LIST)

    if annotation is None or annotation is type(None):
        return ResultKind.NONE

    annotation, optional = _strip_optional(annotation)

    if _is_search_hit(annotation):
        return ResultKind.SEARCH_HIT
    if optional:
        return ResultKind.SINGLE

    if annotation is bool:
        return ResultKind.EXISTS
    if annotation is int:
        return ResultKind.COUNT

    origin = get_origin(annotation) or annotation
    args = get_args(annotation)
    element = args[0] if args else None

    if origin is SearchHits:
        return ResultKind.SEARCH_HITS
    if origin is SearchPage:
        return ResultKind.SEARCH_PAGE
    if origin is Page:
        return ResultKind.PAGE
    if origin in _STREAM_ORIGINS:
        return ResultKind.SEARCH_HIT_STREAM if _is_search_hit(element) else ResultKind.STREAM
    if origin in _SEQUENCE_ORIGINS:
        return ResultKind.SEARCH_HIT_LIST if _is_search_hit(element) else ResultKind.LIST

    return ResultKind.SINGLE


@dataclass(frozen=True)
class BoundArguments:
    values: Sequence[Any]
    named: Mapping[str, Any] = field(default_factory=dict)
    pageable: Optional[Pageable] = None
    sort: Optional[Sort] = None


class QueryMethod:
    """A repository method backed by a derived or a string query."""

    def __init__(
        self,
        name: str,
        entity_class: type,
        function: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.name = name
        self.entity_class = entity_class
        self.function = function
        self.verb = name.split("_", 1)[0]

        self.annotated_query: Optional[QueryAnnotation] = getattr(function, QUERY_ATTRIBUTE, None)
        self.highlight: Optional[Highlight] = getattr(function, HIGHLIGHT_ATTRIBUTE, None)
        self.source_filter: Optional[SourceFilter] = getattr(
            function, SOURCE_FILTERS_ATTRIBUTE, None
        )

        self.signature = inspect.signature(function) if function else None
        self.result_kind = result_kind_of(self._return_annotation(), self.verb)

    @property
    def has_annotated_query(self) -> bool:
        return self.annotated_query is not None

    def _return_annotation(self) -> Any:
        if self.function is None:
            return inspect.Signature.empty

        try:
            hints = get_type_hints(self.function)
        except NameError as exc:
            raise InvalidQueryError(
                f"Cannot resolve the return type of {self.name}: {exc}"
            ) from exc

        return hints.get("return", inspect.Signature.empty)

    def bind(self, args: Sequence[Any], kwargs: Mapping[str, Any]) -> BoundArguments:
        if self.signature is None:
            if kwargs:
                raise InvalidQueryError(f"{self.name} only accepts positional arguments")
            named: dict[str, Any] = {}
            arguments = list(args)
        else:
            try:
                bound = self.signature.bind(None, *args, **kwargs)
            except TypeError as exc:
                raise InvalidQueryError(f"{self.name}: {exc}") from exc
            bound.apply_defaults()
            named = dict(list(bound.arguments.items())[1:])
            arguments = list(named.values())

        pageable: Optional[Pageable] = None
        sort: Optional[Sort] = None
        values: list[Any] = []

        for argument in arguments:
            if isinstance(argument, Pageable):
                pageable = argument
            elif isinstance(argument, Sort):
                sort = argument
            else:
                values.append(argument)

        named = {k: v for k, v in named.items() if not isinstance(v, (Pageable, Sort))}

        return BoundArguments(values=values, named=named, pageable=pageable, sort=sort)

    def __repr__(self) -> str:
        return f"QueryMethod({self.entity_class.__name__}.{self.name}, {self.result_kind.name})"
