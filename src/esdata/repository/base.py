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

"""Repository base classes.

Subclasses bind an entity type through their generic base::

    class BookRepository(ElasticsearchRepository[Book, str]):
        def find_by_name(self, name: str) -> list[Book]: ...

        @query('{"match": {"name": {"query": "?0"}}}')
        def search_name(self, name: str) -> SearchHits[Book]: ...

Methods whose body is only ``...`` (or ``pass``) and methods decorated with
:func:`query` are implemented from their name or query string. Query method
names that are not declared at all resolve the same way on first access.
"""

from __future__ import annotations
import asyncio
import functools
import inspect
from typing import (
    Any,
    AsyncIterator,
    Callable,
    ClassVar,
    Generic,
    Iterable,
    Optional,
    Sequence,
    TypeVar,
    Union,
    get_args,
    get_origin,
)

from esdata.core.async_template import AsyncElasticsearchTemplate
from esdata.core.common import IncorrectResultSizeError, InvalidQueryError
from esdata.core.mapping.context import PersistentEntity
from esdata.core.operations import IndexCoordinates
from esdata.core.query.query import (
    DEFAULT_UNPAGED_SIZE,
    CriteriaQuery,
    MoreLikeThisQuery,
    Page,
    Pageable,
    PageRequest,
    Query,
    Sort,
)
from esdata.core.search import SearchPage
from esdata.core.template import ElasticsearchTemplate
from esdata.repository.query.part_tree import is_query_method_name
from esdata.repository.query.query_method import QUERY_ATTRIBUTE, QueryMethod
from esdata.repository.query.repository_query import (
    AbstractElasticsearchRepositoryQuery,
    create_repository_query,
)
from esdata.repository.query_by_example import Example, ExampleCriteriaMapper

T = TypeVar("T")
ID = TypeVar("ID")


def _stub() -> None: ...


def _documented_stub() -> None:
    """Documented."""
    ...


def _pass_stub() -> None:
    pass


async def _async_stub() -> None: ...


async def _async_documented_stub() -> None:
    """Documented."""
    ...


_STUB_CODES = frozenset(
    f.__code__.co_code
    for f in (_stub, _documented_stub, _pass_stub, _async_stub, _async_documented_stub)
)


def is_stub(function: Callable[..., Any]) -> bool:
    code = getattr(function, "__code__", None)
    return code is not None and code.co_code in _STUB_CODES


def _is_query_method(name: str, function: Any) -> bool:
    if not inspect.isfunction(function) or name.startswith("_"):
        return False
    if hasattr(function, QUERY_ATTRIBUTE):
        return True
    return is_query_method_name(name) and is_stub(function)


def _entity_class_of(repository_class: type, base: type) -> Optional[type]:
    for klass in repository_class.__mro__:
        for orig_base in getattr(klass, "__orig_bases__", ()):
            origin = get_origin(orig_base)
            if isinstance(origin, type) and issubclass(origin, base):
                args = get_args(orig_base)
                if args and isinstance(args[0], type):
                    return args[0]
    return None


class RepositorySupport(Generic[T, ID]):
    """Entity binding, index coordinates and query method lookup shared by both flavors."""

    # names of the declared query methods of a repository class
    _query_method_names: ClassVar[frozenset[str]] = frozenset()

    def __init__(
        self,
        template: Union[ElasticsearchTemplate, AsyncElasticsearchTemplate],
        entity_class: Optional[type[T]] = None,
    ) -> None:
        resolved = entity_class or _entity_class_of(type(self), RepositorySupport)

        if resolved is None:
            raise InvalidQueryError(
                f"Cannot determine the entity type of {type(self).__name__}; "
                "subclass it with a concrete type or pass entity_class"
            )

        self.entity_class: type[T] = resolved
        self._support = template
        self._mapping_context = template.mapping_context
        self._logger = template.logger
        self._example_mapper = ExampleCriteriaMapper(self._mapping_context, self._logger)
        self._queries: dict[str, AbstractElasticsearchRepositoryQuery] = {}

        for name in self._query_method_names:
            function = getattr(type(self), f"_declared_{name}")
            self._queries[name] = self._create_query(name, function)

    @property
    def entity(self) -> PersistentEntity:
        return self._mapping_context.get_persistent_entity(self.entity_class)

    @property
    def index_coordinates(self) -> IndexCoordinates:
        return self._support.get_index_coordinates_for(self.entity_class)

    def _should_create_index_and_mapping(self) -> bool:
        return self.entity.is_create_index_and_mapping

    def _create_query(
        self,
        name: str,
        function: Optional[Callable[..., Any]],
    ) -> AbstractElasticsearchRepositoryQuery:
        return create_repository_query(
            QueryMethod(name, self.entity_class, function),
            self._mapping_context,
            self._logger,
        )

    def _query_for(self, name: str) -> AbstractElasticsearchRepositoryQuery:
        if name not in self._queries:
            self._queries[name] = self._create_query(name, None)
        return self._queries[name]

    def _id_of(self, entity: Any) -> Optional[ID]:
        id_property = self.entity.id_property
        if id_property is None:
            raise InvalidQueryError(f"{self.entity.name} has no id property")
        return getattr(entity, id_property.name)  # type: ignore[no-any-return]

    def _ids_query(self, ids: Iterable[ID]) -> Query:
        converter = self._support.converter
        query = Query()
        query.add_ids(*[converter.convert_id(i) for i in ids])  # type: ignore[misc]
        return query

    def _example_query(self, example: Example[T]) -> CriteriaQuery:
        return CriteriaQuery(self._example_mapper.criteria(example))

    @staticmethod
    def _all_page(count: int) -> PageRequest:
        return PageRequest.of(0, max(1, min(count, DEFAULT_UNPAGED_SIZE)))


def _query_method(
    name: str,
    function: Callable[..., Any],
    invoke: Callable[[Any, str, tuple, dict], Any],
) -> Callable[..., Any]:
    @functools.wraps(function)
    def method(self: Any, *args: Any, **kwargs: Any) -> Any:
        return invoke(self, name, args, kwargs)

    return method


def _install_query_methods(cls: type, invoke: Callable[[Any, str, tuple, dict], Any]) -> None:
    names = set(getattr(cls, "_query_method_names", frozenset()))

    for name, function in list(vars(cls).items()):
        if not _is_query_method(name, function):
            continue

        setattr(cls, f"_declared_{name}", function)
        setattr(cls, name, _query_method(name, function, invoke))
        names.add(name)

    cls._query_method_names = frozenset(names)  # type: ignore[attr-defined]


class ElasticsearchRepository(RepositorySupport[T, ID]):
    def __init__(
        self,
        template: ElasticsearchTemplate,
        entity_class: Optional[type[T]] = None,
    ) -> None:
        super().__init__(template, entity_class)
        self.template = template

        if self._should_create_index_and_mapping():
            index_ops = template.index_ops(self.entity_class)
            if not index_ops.exists():
                index_ops.create_with_mapping()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        _install_query_methods(cls, ElasticsearchRepository._invoke)

    def _invoke(self, name: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        repository_query = self._query_for(name)
        arguments = repository_query.method.bind(args, kwargs)
        return repository_query.execute(self.template, self.index_coordinates, arguments)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or not is_query_method_name(name):
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

        def method(*args: Any, **kwargs: Any) -> Any:
            return self._invoke(name, args, kwargs)

        method.__name__ = name
        return method

    # CRUD

    def save(self, entity: T) -> T:
        return self.template.save(entity, self.index_coordinates)

    def save_all(self, entities: Iterable[T]) -> list[T]:
        return self.template.save_all(list(entities), self.index_coordinates)

    def find_by_id(self, id: ID) -> Optional[T]:
        return self.template.get(id, self.entity_class, self.index_coordinates)

    def exists_by_id(self, id: ID) -> bool:
        return self.template.exists(id, self.index_coordinates)

    def find_all(
        self,
        sort_or_pageable: Union[Sort, Pageable, None] = None,
    ) -> Union[list[T], Page[T]]:
        """All entities; sorted when given a Sort, one page when given a Pageable."""
        if isinstance(sort_or_pageable, Pageable) and sort_or_pageable.is_paged:
            query = Query(pageable=sort_or_pageable)
            hits = self.template.search(query, self.entity_class, self.index_coordinates)
            return SearchPage.of(hits, sort_or_pageable).map(lambda hit: hit.content)

        count = self.count()
        if count == 0:
            return []

        query = Query(pageable=self._all_page(count))
        if isinstance(sort_or_pageable, Sort):
            query.add_sort(sort_or_pageable)

        return self.template.search(query, self.entity_class, self.index_coordinates).contents()

    def find_all_by_id(self, ids: Iterable[ID]) -> list[T]:
        ids = list(ids)
        if not ids:
            return []

        items = self.template.multi_get(
            self._ids_query(ids), self.entity_class, self.index_coordinates
        )
        return [item.item for item in items if item.item is not None]

    def count(self) -> int:
        return self.template.count(Query(), self.entity_class, self.index_coordinates)

    def delete_by_id(self, id: ID) -> None:
        self.template.delete(self._support.converter.convert_id(id), self.index_coordinates)

    def delete(self, entity: T) -> None:
        self.template.delete(entity, self.index_coordinates)

    def delete_all_by_id(self, ids: Iterable[ID]) -> None:
        ids = list(ids)
        if ids:
            self.template.delete_by_query(
                self._ids_query(ids), self.entity_class, self.index_coordinates
            )

    def delete_all(self, entities: Optional[Iterable[T]] = None) -> None:
        if entities is None:
            self.template.delete_by_query(Query(), self.entity_class, self.index_coordinates)
            return

        self.delete_all_by_id([i for i in (self._id_of(e) for e in entities) if i is not None])

    def search_similar(
        self,
        entity: T,
        fields: Sequence[str] = (),
        pageable: Optional[Pageable] = None,
    ) -> SearchPage[T]:
        id = self._id_of(entity)
        if id is None:
            raise InvalidQueryError("search_similar needs an entity with an id")

        pageable = pageable or PageRequest.of(0, 10)
        query = MoreLikeThisQuery(self._support.converter.convert_id(id), fields, pageable)  # type: ignore[arg-type]
        hits = self.template.search(query, self.entity_class, self.index_coordinates)
        return SearchPage.of(hits, pageable)

    def refresh(self) -> None:
        self.template.refresh(self.index_coordinates)

    # query by example

    def find_one(self, example: Example[T]) -> Optional[T]:
        query = self._example_query(example).set_max_results(2)
        contents = self.template.search(query, self.entity_class, self.index_coordinates).contents()

        if len(contents) > 1:
            raise IncorrectResultSizeError(1, len(contents))
        return contents[0] if contents else None

    def find_all_by_example(
        self,
        example: Example[T],
        sort_or_pageable: Union[Sort, Pageable, None] = None,
    ) -> Union[list[T], Page[T]]:
        query = self._example_query(example)

        if isinstance(sort_or_pageable, Pageable) and sort_or_pageable.is_paged:
            query.set_pageable(sort_or_pageable)
            hits = self.template.search(query, self.entity_class, self.index_coordinates)
            return SearchPage.of(hits, sort_or_pageable).map(lambda hit: hit.content)

        if isinstance(sort_or_pageable, Sort):
            query.add_sort(sort_or_pageable)

        return self.template.search(query, self.entity_class, self.index_coordinates).contents()

    def count_by_example(self, example: Example[T]) -> int:
        return self.template.count(
            self._example_query(example), self.entity_class, self.index_coordinates
        )

    def exists_by_example(self, example: Example[T]) -> bool:
        return self.count_by_example(example) > 0


class AsyncElasticsearchRepository(RepositorySupport[T, ID]):
    """Asynchronous repository; the index is created on first use when missing."""

    def __init__(
        self,
        template: AsyncElasticsearchTemplate,
        entity_class: Optional[type[T]] = None,
    ) -> None:
        super().__init__(template, entity_class)
        self.template = template
        self._index_checked = not self._should_create_index_and_mapping()
        self._index_lock = asyncio.Lock()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        _install_query_methods(cls, AsyncElasticsearchRepository._invoke)

    async def ensure_index(self) -> None:
        if self._index_checked:
            return

        async with self._index_lock:
            if self._index_checked:
                return

            index_ops = self.template.index_ops(self.entity_class)
            if not await index_ops.exists():
                await index_ops.create_with_mapping()

            self._index_checked = True

    def _invoke(self, name: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        repository_query = self._query_for(name)
        arguments = repository_query.method.bind(args, kwargs)

        if repository_query.method.result_kind.is_stream:
            return self._stream(repository_query, arguments)

        return self._execute(repository_query, arguments)

    async def _execute(
        self,
        repository_query: AbstractElasticsearchRepositoryQuery,
        arguments: Any,
    ) -> Any:
        await self.ensure_index()
        return await repository_query.execute_async(
            self.template, self.index_coordinates, arguments
        )

    async def _stream(
        self,
        repository_query: AbstractElasticsearchRepositoryQuery,
        arguments: Any,
    ) -> AsyncIterator[Any]:
        await self.ensure_index()
        async for item in repository_query.stream_async(
            self.template, self.index_coordinates, arguments
        ):
            yield item

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or not is_query_method_name(name):
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

        def method(*args: Any, **kwargs: Any) -> Any:
            return self._invoke(name, args, kwargs)

        method.__name__ = name
        return method

    # CRUD

    async def save(self, entity: T) -> T:
        await self.ensure_index()
        return await self.template.save(entity, self.index_coordinates)

    async def save_all(self, entities: Iterable[T]) -> list[T]:
        await self.ensure_index()
        return await self.template.save_all(list(entities), self.index_coordinates)

    async def find_by_id(self, id: ID) -> Optional[T]:
        await self.ensure_index()
        return await self.template.get(id, self.entity_class, self.index_coordinates)

    async def exists_by_id(self, id: ID) -> bool:
        await self.ensure_index()
        return await self.template.exists(id, self.index_coordinates)

    async def find_all(
        self,
        sort_or_pageable: Union[Sort, Pageable, None] = None,
    ) -> Union[list[T], Page[T]]:
        await self.ensure_index()

        if isinstance(sort_or_pageable, Pageable) and sort_or_pageable.is_paged:
            query = Query(pageable=sort_or_pageable)
            hits = await self.template.search(query, self.entity_class, self.index_coordinates)
            return SearchPage.of(hits, sort_or_pageable).map(lambda hit: hit.content)

        count = await self.count()
        if count == 0:
            return []

        query = Query(pageable=self._all_page(count))
        if isinstance(sort_or_pageable, Sort):
            query.add_sort(sort_or_pageable)

        hits = await self.template.search(query, self.entity_class, self.index_coordinates)
        return hits.contents()

    async def find_all_by_id(self, ids: Iterable[ID]) -> list[T]:
        ids = list(ids)
        if not ids:
            return []

        await self.ensure_index()
        items = await self.template.multi_get(
            self._ids_query(ids), self.entity_class, self.index_coordinates
        )
        return [item.item for item in items if item.item is not None]

    async def count(self) -> int:
        await self.ensure_index()
        return await self.template.count(Query(), self.entity_class, self.index_coordinates)

    async def delete_by_id(self, id: ID) -> None:
        await self.ensure_index()
        await self.template.delete(self._support.converter.convert_id(id), self.index_coordinates)

    async def delete(self, entity: T) -> None:
        await self.ensure_index()
        await self.template.delete(entity, self.index_coordinates)

    async def delete_all_by_id(self, ids: Iterable[ID]) -> None:
        ids = list(ids)
        if ids:
            await self.ensure_index()
            await self.template.delete_by_query(
                self._ids_query(ids), self.entity_class, self.index_coordinates
            )

    async def delete_all(self, entities: Optional[Iterable[T]] = None) -> None:
        if entities is None:
            await self.ensure_index()
            await self.template.delete_by_query(
                Query(), self.entity_class, self.index_coordinates
            )
            return

        await self.delete_all_by_id(
            [i for i in (self._id_of(e) for e in entities) if i is not None]
        )

    async def search_similar(
        self,
        entity: T,
        fields: Sequence[str] = (),
        pageable: Optional[Pageable] = None,
    ) -> SearchPage[T]:
        id = self._id_of(entity)
        if id is None:
            raise InvalidQueryError("search_similar needs an entity with an id")

        await self.ensure_index()
        pageable = pageable or PageRequest.of(0, 10)
        query = MoreLikeThisQuery(self._support.converter.convert_id(id), fields, pageable)  # type: ignore[arg-type]
        hits = await self.template.search(query, self.entity_class, self.index_coordinates)
        return SearchPage.of(hits, pageable)

    async def refresh(self) -> None:
        await self.template.refresh(self.index_coordinates)

    # query by example

    async def find_one(self, example: Example[T]) -> Optional[T]:
        await self.ensure_index()
        query = self._example_query(example).set_max_results(2)
        hits = await self.template.search(query, self.entity_class, self.index_coordinates)
        contents = hits.contents()

        if len(contents) > 1:
            raise IncorrectResultSizeError(1, len(contents))
        return contents[0] if contents else None

    async def find_all_by_example(
        self,
        example: Example[T],
        sort_or_pageable: Union[Sort, Pageable, None] = None,
    ) -> Union[list[T], Page[T]]:
        await self.ensure_index()
        query = self._example_query(example)

        if isinstance(sort_or_pageable, Pageable) and sort_or_pageable.is_paged:
            query.set_pageable(sort_or_pageable)
            hits = await self.template.search(query, self.entity_class, self.index_coordinates)
            return SearchPage.of(hits, sort_or_pageable).map(lambda hit: hit.content)

        if isinstance(sort_or_pageable, Sort):
            query.add_sort(sort_or_pageable)

        hits = await self.template.search(query, self.entity_class, self.index_coordinates)
        return hits.contents()

    async def count_by_example(self, example: Example[T]) -> int:
        await self.ensure_index()
        return await self.template.count(
            self._example_query(example), self.entity_class, self.index_coordinates
        )

    async def exists_by_example(self, example: Example[T]) -> bool:
        return await self.count_by_example(example) > 0
