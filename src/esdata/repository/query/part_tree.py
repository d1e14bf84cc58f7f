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

"""Parses derived query method names.

A method name consists of a subject and an optional predicate::

    find_first3_by_name_and_price_greater_than_order_by_name_desc
    ^^^^ ^^^^^^    ^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^^
    verb modifiers predicate (or-groups of and-parts) + ordering

Property names are matched against the entity so that names containing
underscores (``first_name``) and nested paths (``author_name`` for
``author.name``) resolve to the longest known property.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import re
from typing import Optional, Sequence

from esdata.core.common import InvalidQueryError
from esdata.core.mapping.context import MappingContext
from esdata.core.query.query import Direction, Order, Sort

QUERY_METHOD_PATTERN = re.compile(
    r"^(find|read|get|query|search|stream|count|exists|delete|remove)(_|$)"
)

_LIMIT_PATTERN = re.compile(r"^(first|top)(\d*)$")


class PartType(Enum):
    BETWEEN = ("between", 2)
    IS_NOT_NULL = ("is_not_null", 0)
    IS_NULL = ("is_null", 0)
    EXISTS = ("exists", 0)
    LESS_THAN = ("less_than", 1)
    LESS_THAN_EQUAL = ("less_than_equal", 1)
    GREATER_THAN = ("greater_than", 1)
    GREATER_THAN_EQUAL = ("greater_than_equal", 1)
    BEFORE = ("before", 1)
    AFTER = ("after", 1)
    NOT_LIKE = ("not_like", 1)
    LIKE = ("like", 1)
    STARTING_WITH = ("starting_with", 1)
    ENDING_WITH = ("ending_with", 1)
    IS_NOT_EMPTY = ("is_not_empty", 0)
    IS_EMPTY = ("is_empty", 0)
    NOT_CONTAINING = ("not_containing", 1)
    CONTAINING = ("containing", 1)
    NOT_IN = ("not_in", 1)
    IN = ("in", 1)
    TRUE = ("true", 0)
    FALSE = ("false", 0)
    REGEX = ("regex", 1)
    WITHIN = ("within", 2)
    NEGATING_SIMPLE_PROPERTY = ("not", 1)
    SIMPLE_PROPERTY = ("is", 1)

    def __init__(self, keyword: str, argument_count: int) -> None:
        self.keyword = keyword
        self.argument_count = argument_count


# Each keyword may be preceded by an optional "is".
_KEYWORDS: dict[tuple[str, ...], PartType] = {
    ("between",): PartType.BETWEEN,
    ("not", "null"): PartType.IS_NOT_NULL,
    ("null",): PartType.IS_NULL,
    ("exists",): PartType.EXISTS,
    ("less", "than"): PartType.LESS_THAN,
    ("less", "than", "equal"): PartType.LESS_THAN_EQUAL,
    ("greater", "than"): PartType.GREATER_THAN,
    ("greater", "than", "equal"): PartType.GREATER_THAN_EQUAL,
    ("before",): PartType.BEFORE,
    ("after",): PartType.AFTER,
    ("not", "like"): PartType.NOT_LIKE,
    ("like",): PartType.LIKE,
    ("starting", "with"): PartType.STARTING_WITH,
    ("starts", "with"): PartType.STARTING_WITH,
    ("ending", "with"): PartType.ENDING_WITH,
    ("ends", "with"): PartType.ENDING_WITH,
    ("not", "empty"): PartType.IS_NOT_EMPTY,
    ("empty",): PartType.IS_EMPTY,
    ("not", "containing"): PartType.NOT_CONTAINING,
    ("not", "contains"): PartType.NOT_CONTAINING,
    ("containing",): PartType.CONTAINING,
    ("contains",): PartType.CONTAINING,
    ("not", "in"): PartType.NOT_IN,
    ("in",): PartType.IN,
    ("true",): PartType.TRUE,
    ("false",): PartType.FALSE,
    ("regex",): PartType.REGEX,
    ("matches", "regex"): PartType.REGEX,
    ("matches",): PartType.REGEX,
    ("within",): PartType.WITHIN,
    ("near",): PartType.WITHIN,
    ("not",): PartType.NEGATING_SIMPLE_PROPERTY,
    ("equals",): PartType.SIMPLE_PROPERTY,
}

_KEYWORD_SEQUENCES = sorted(
    [(("is",) + words, part_type) for words, part_type in _KEYWORDS.items()]
    + list(_KEYWORDS.items())
    + [(("is",), PartType.SIMPLE_PROPERTY)],
    key=lambda item: len(item[0]),
    reverse=True,
)

_IGNORE_CASE = (("ignore", "case"), ("ignoring", "case"))
_ALL_IGNORE_CASE = (("all", "ignore", "case"), ("all", "ignoring", "case"))


@dataclass(frozen=True)
class Part:
    property: str
    type: PartType
    ignore_case: bool = False

    @property
    def argument_count(self) -> int:
        return self.type.argument_count


@dataclass(frozen=True)
class PartTree:
    method_name: str
    verb: str
    or_parts: Sequence[Sequence[Part]] = ()
    sort: Sort = field(default_factory=Sort.unsorted)
    is_distinct: bool = False
    max_results: Optional[int] = None

    @property
    def is_count(self) -> bool:
        return self.verb == "count"

    @property
    def is_exists(self) -> bool:
        return self.verb == "exists"

    @property
    def is_delete(self) -> bool:
        return self.verb in ("delete", "remove")

    @property
    def is_stream(self) -> bool:
        return self.verb == "stream"

    @property
    def is_limiting(self) -> bool:
        return self.max_results is not None

    @property
    def parts(self) -> list[Part]:
        return [part for group in self.or_parts for part in group]

    @property
    def argument_count(self) -> int:
        return sum(part.argument_count for part in self.parts)


def is_query_method_name(name: str) -> bool:
    return bool(QUERY_METHOD_PATTERN.match(name))


class PartTreeParser:
    def __init__(self, mapping_context: MappingContext) -> None:
        self._mapping_context = mapping_context

    def parse(self, method_name: str, entity_class: type) -> PartTree:
        match = QUERY_METHOD_PATTERN.match(method_name)

        if not match:
            raise InvalidQueryError(f"{method_name!r} is not a derived query method name")

        verb = match.group(1)
        words = [w for w in method_name[match.end(1) :].split("_") if w]

        by = self._find_by(words)
        if by is None:
            subject, order_words = self._split_order_by(words)
            predicate: list[str] = []
        else:
            subject = words[:by]
            predicate, order_words = self._split_order_by(words[by + 1 :])

        is_distinct, max_results = self._parse_subject(method_name, subject)

        all_ignore_case = False
        for sequence in _ALL_IGNORE_CASE:
            if tuple(predicate[-len(sequence) :]) == sequence:
                predicate = predicate[: -len(sequence)]
                all_ignore_case = True

        return PartTree(
            method_name=method_name,
            verb=verb,
            or_parts=self._parse_predicate(method_name, predicate, entity_class, all_ignore_case),
            sort=self._parse_order(method_name, order_words, entity_class),
            is_distinct=is_distinct,
            max_results=max_results,
        )

    @staticmethod
    def _find_by(words: list[str]) -> Optional[int]:
        for i, word in enumerate(words):
            if word == "by" and (i == 0 or words[i - 1] != "order"):
                return i
        return None

    @staticmethod
    def _parse_subject(method_name: str, subject: list[str]) -> tuple[bool, Optional[int]]:
        is_distinct = False
        max_results: Optional[int] = None

        for word in subject:
            if word == "distinct":
                is_distinct = True
            elif limit := _LIMIT_PATTERN.match(word):
                max_results = int(limit.group(2)) if limit.group(2) else 1
                if max_results < 1:
                    raise InvalidQueryError(f"{method_name}: result limit must be positive")

        return is_distinct, max_results

    @staticmethod
    def _split_order_by(words: list[str]) -> tuple[list[str], list[str]]:
        for i in range(len(words) - 1):
            if words[i] == "order" and words[i + 1] == "by":
                return words[:i], words[i + 2 :]
        return words, []

    def _parse_predicate(
        self,
        method_name: str,
        words: list[str],
        entity_class: type,
        all_ignore_case: bool,
    ) -> list[list[Part]]:
        if not words:
            return []

        groups: list[list[Part]] = [[]]
        position = 0

        while position < len(words):
            resolved = self._resolve_property(entity_class, words, position)
            if resolved is None:
                raise InvalidQueryError(
                    f"No property {words[position]!r} found on {entity_class.__name__} "
                    f"while parsing {method_name!r}"
                )
            path, position = resolved

            part_type = PartType.SIMPLE_PROPERTY
            for sequence, candidate in _KEYWORD_SEQUENCES:
                if tuple(words[position : position + len(sequence)]) == sequence:
                    part_type = candidate
                    position += len(sequence)
                    break

            ignore_case = all_ignore_case
            for sequence in _IGNORE_CASE:
                if tuple(words[position : position + len(sequence)]) == sequence:
                    ignore_case = True
                    position += len(sequence)

            groups[-1].append(Part(path, part_type, ignore_case))

            if position == len(words):
                break

            connector = words[position]
            position += 1

            if connector == "or":
                groups.append([])
            elif connector != "and":
                raise InvalidQueryError(f"Unexpected {connector!r} in {method_name!r}")

            if position == len(words):
                raise InvalidQueryError(f"{method_name!r} ends with a dangling {connector!r}")

        return groups

    def _parse_order(self, method_name: str, words: list[str], entity_class: type) -> Sort:
        orders: list[Order] = []
        position = 0

        while position < len(words):
            resolved = self._resolve_property(entity_class, words, position)
            if resolved is None:
                raise InvalidQueryError(
                    f"No property {words[position]!r} to order by in {method_name!r}"
                )
            path, position = resolved

            direction = Direction.ASC
            if position < len(words) and words[position] in ("asc", "desc"):
                direction = Direction.from_string(words[position])
                position += 1

            orders.append(Order(path, direction))

        return Sort(tuple(orders))

    def _resolve_property(
        self,
        entity_class: type,
        words: list[str],
        start: int,
    ) -> Optional[tuple[str, int]]:
        entity = self._mapping_context.get_persistent_entity(entity_class)

        for end in range(len(words), start, -1):
            prop = entity.get_property("_".join(words[start:end]))

            if prop is None:
                continue

            if prop.is_entity and end < len(words):
                nested = self._resolve_property(prop.actual_type, words, end)
                if nested is not None:
                    return f"{prop.name}.{nested[0]}", nested[1]

            return prop.name, end

        return None
