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

"""Query by example: a probe entity plus an :class:`ExampleMatcher` become criteria."""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar

from esdata.core.loggers import Logger, NullLogger
from esdata.core.mapping.context import MappingContext, PersistentEntity
from esdata.core.query.criteria import Criteria

T = TypeVar("T")


class StringMatcher(Enum):
    DEFAULT = "default"
    EXACT = "exact"
    STARTING = "starting"
    ENDING = "ending"
    CONTAINING = "containing"
    REGEX = "regex"


class NullHandler(Enum):
    IGNORE = "ignore"
    INCLUDE = "include"


class MatchMode(Enum):
    ALL = "all"
    ANY = "any"


@dataclass(frozen=True)
class PropertySpecifier:
    path: str
    string_matcher: Optional[StringMatcher] = None
    ignore_case: Optional[bool] = None
    value_transformer: Optional[Callable[[Any], Any]] = None

    def transform(self, value: Any) -> Any:
        return self.value_transformer(value) if self.value_transformer else value


@dataclass(frozen=True)
class ExampleMatcher:
    match_mode: MatchMode = MatchMode.ALL
    null_handler: NullHandler = NullHandler.IGNORE
    default_string_matcher: StringMatcher = StringMatcher.DEFAULT
    default_ignore_case: bool = False
    ignored_paths: frozenset[str] = frozenset()
    property_specifiers: Mapping[str, PropertySpecifier] = field(default_factory=dict)

    @staticmethod
    def matching() -> ExampleMatcher:
        return ExampleMatcher.matching_all()

    @staticmethod
    def matching_all() -> ExampleMatcher:
        return ExampleMatcher(match_mode=MatchMode.ALL)

    @staticmethod
    def matching_any() -> ExampleMatcher:
        return ExampleMatcher(match_mode=MatchMode.ANY)

    @property
    def is_all_matching(self) -> bool:
        return self.match_mode is MatchMode.ALL

    def with_ignore_paths(self, *paths: str) -> ExampleMatcher:
        return replace(self, ignored_paths=self.ignored_paths | frozenset(paths))

    def with_string_matcher(self, string_matcher: StringMatcher) -> ExampleMatcher:
        return replace(self, default_string_matcher=string_matcher)

    def with_ignore_case(self, *paths: str) -> ExampleMatcher:
        if not paths:
            return replace(self, default_ignore_case=True)
        matcher = self
        for path in paths:
            matcher = matcher._with_specifier(path, ignore_case=True)
        return matcher

    def with_null_handler(self, null_handler: NullHandler) -> ExampleMatcher:
        return replace(self, null_handler=null_handler)

    def with_include_null_values(self) -> ExampleMatcher:
        return self.with_null_handler(NullHandler.INCLUDE)

    def with_ignore_null_values(self) -> ExampleMatcher:
        return self.with_null_handler(NullHandler.IGNORE)

    def with_matcher(
        self,
        path: str,
        string_matcher: Optional[StringMatcher] = None,
        ignore_case: Optional[bool] = None,
    ) -> ExampleMatcher:
        return self._with_specifier(path, string_matcher=string_matcher, ignore_case=ignore_case)

    def with_transformer(self, path: str, transformer: Callable[[Any], Any]) -> ExampleMatcher:
        return self._with_specifier(path, value_transformer=transformer)

    def _with_specifier(self, path: str, **changes: Any) -> ExampleMatcher:
        specifier = self.property_specifiers.get(path, PropertySpecifier(path))
        specifier = replace(specifier, **{k: v for k, v in changes.items() if v is not None})
        return replace(self, property_specifiers={**self.property_specifiers, path: specifier})

    def is_ignored_path(self, path: str) -> bool:
        return path in self.ignored_paths

    def string_matcher_for(self, path: str) -> StringMatcher:
        specifier = self.property_specifiers.get(path)
        if specifier and specifier.string_matcher:
            return specifier.string_matcher
        return self.default_string_matcher

    def ignore_case_for(self, path: str) -> bool:
        specifier = self.property_specifiers.get(path)
        if specifier and specifier.ignore_case is not None:
            return specifier.ignore_case
        return self.default_ignore_case


@dataclass(frozen=True)
class Example(Generic[T]):
    probe: T
    matcher: ExampleMatcher = field(default_factory=ExampleMatcher.matching)

    @staticmethod
    def of(probe: T, matcher: Optional[ExampleMatcher] = None) -> Example[T]:
        return Example(probe, matcher or ExampleMatcher.matching())

    @property
    def probe_type(self) -> type:
        return type(self.probe)


class ExampleCriteriaMapper:
    def __init__(self, mapping_context: MappingContext, logger: Optional[Logger] = None) -> None:
        self._mapping_context = mapping_context
        self._logger = logger or NullLogger()

    def criteria(self, example: Example[Any]) -> Criteria:
        entity = self._mapping_context.get_persistent_entity(example.probe_type)
        result = self._criteria_for(entity, example.probe, example.matcher, None, prefix="")
        return result if result is not None else Criteria()

    def _criteria_for(
        self,
        entity: PersistentEntity,
        probe: Any,
        matcher: ExampleMatcher,
        criteria: Optional[Criteria],
        prefix: str,
    ) -> Optional[Criteria]:
        for prop in entity:
            path = f"{prefix}{prop.name}"

            if (
                matcher.is_ignored_path(path)
                or not prop.is_writable
                or prop.is_version
                or prop.is_seq_no_primary_term
            ):
                continue

            specifier = matcher.property_specifiers.get(path)
            value = getattr(probe, prop.name, None)
            if specifier:
                value = specifier.transform(value)

            if value is None or (prop.is_collection and not value):
                if matcher.null_handler is NullHandler.INCLUDE and not prop.is_id:
                    criteria = self._combine(criteria, Criteria(path).is_null(), matcher)
                continue

            if prop.is_entity and not prop.is_collection:
                criteria = self._criteria_for(
                    self._mapping_context.get_persistent_entity(prop.actual_type),
                    value,
                    matcher,
                    criteria,
                    prefix=f"{path}.",
                )
                continue

            criteria = self._combine(criteria, self._property_criteria(path, value, matcher), matcher)

        return criteria

    def _property_criteria(self, path: str, value: Any, matcher: ExampleMatcher) -> Criteria:
        criteria = Criteria(path)

        if isinstance(value, (list, tuple, set, frozenset)):
            return criteria.in_(value)
        if not isinstance(value, str):
            return criteria.is_(value)

        if matcher.ignore_case_for(path):
            self._logger.debug(f"Ignore case for {path!r} depends on the field's analyzer")

        match matcher.string_matcher_for(path):
            case StringMatcher.STARTING:
                return criteria.starts_with(value)
            case StringMatcher.ENDING:
                return criteria.ends_with(value)
            case StringMatcher.CONTAINING:
                return criteria.contains(value)
            case StringMatcher.REGEX:
                return criteria.expression(value)
            case _:
                return criteria.is_(value)

    @staticmethod
    def _combine(
        criteria: Optional[Criteria],
        property_criteria: Criteria,
        matcher: ExampleMatcher,
    ) -> Criteria:
        if criteria is None:
            return property_criteria
        if matcher.is_all_matching:
            return criteria.and_(property_criteria)
        return criteria.or_(property_criteria)
