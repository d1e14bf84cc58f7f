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

"""Fluent, storage-agnostic description of search conditions.

A :class:`Criteria` belongs to a chain; :meth:`Criteria.and_` and
:meth:`Criteria.or_` append new links to the chain of the criteria they are
called on and return the new link::

    Criteria.where("name").is_("Bond").and_("age").greater_than(30)

Sub criteria are nested groups attached to one link; they form their own
boolean query that is combined with the chain using that link's connector.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Iterable, Iterator, Optional, Sequence, Union

from esdata.core.mapping.annotations import GeoPoint
from esdata.core.mapping.field_types import FieldType


class OperationKey(Enum):
    EQUALS = auto()
    CONTAINS = auto()
    STARTS_WITH = auto()
    ENDS_WITH = auto()
    EXPRESSION = auto()
    BETWEEN = auto()
    FUZZY = auto()
    MATCHES = auto()
    MATCHES_ALL = auto()
    IN = auto()
    NOT_IN = auto()
    WITHIN = auto()
    BBOX = auto()
    LESS = auto()
    LESS_EQUAL = auto()
    GREATER = auto()
    GREATER_EQUAL = auto()
    EXISTS = auto()
    EMPTY = auto()
    NOT_EMPTY = auto()
    REGEXP = auto()

    @property
    def has_value(self) -> bool:
        return self not in (OperationKey.EXISTS, OperationKey.EMPTY, OperationKey.NOT_EMPTY)


@dataclass
class CriteriaEntry:
    key: OperationKey
    value: Any = None


@dataclass
class CriteriaField:
    """The target of a criteria.

    ``name`` starts out as the property path and is replaced with the stored
    field name when the query is mapped against an entity; ``path`` is set for
    properties inside a nested field.
    """

    name: str
    field_type: Optional[FieldType] = None
    path: Optional[str] = None
    mapped: bool = False


class CriteriaChain(list["Criteria"]):
    pass


class Criteria:
    def __init__(
        self,
        field: Union[str, CriteriaField, None] = None,
        criteria_chain: Optional[CriteriaChain] = None,
        is_or: bool = False,
    ) -> None:
        if isinstance(field, str):
            if not field.strip():
                raise ValueError("Field name must not be empty")
            field = CriteriaField(field)

        self.field: Optional[CriteriaField] = field
        self.is_or = is_or
        self.is_negating = False
        self.boost_value: Optional[float] = None
        self.query_criteria_entries: list[CriteriaEntry] = []
        self.filter_criteria_entries: list[CriteriaEntry] = []
        self.sub_criteria_list: list[Criteria] = []

        self.criteria_chain = criteria_chain if criteria_chain is not None else CriteriaChain()
        self.criteria_chain.append(self)

    @staticmethod
    def where(field: Union[str, CriteriaField]) -> Criteria:
        return Criteria(field)

    @staticmethod
    def empty_or() -> Criteria:
        return Criteria(is_or=True)

    @property
    def is_and(self) -> bool:
        return not self.is_or

    @property
    def is_empty(self) -> bool:
        return not (
            self.query_criteria_entries or self.filter_criteria_entries or self.sub_criteria_list
        )

    def _link(self, criteria: Criteria, is_or: bool) -> Criteria:
        link = Criteria(criteria.field, self.criteria_chain, is_or=is_or)
        link.is_negating = criteria.is_negating
        link.boost_value = criteria.boost_value
        link.query_criteria_entries.extend(criteria.query_criteria_entries)
        link.filter_criteria_entries.extend(criteria.filter_criteria_entries)
        link.sub_criteria_list.extend(criteria.sub_criteria_list)
        return link

    def and_(self, *items: Union[str, CriteriaField, Criteria]) -> Criteria:
        """Chains with AND.

        A field name starts a new link; a single criteria is copied into a new
        link; several criteria are appended to the chain as they are.
        """
        if len(items) == 1:
            criteria = items[0]

            if not isinstance(criteria, Criteria):
                return Criteria(criteria, self.criteria_chain)

            if self.field is None and self.is_empty and len(self.criteria_chain) == 1:
                return criteria

            return self._link(criteria, is_or=False)

        for criteria in items:
            if not isinstance(criteria, Criteria):
                raise TypeError("Only Criteria instances can be chained together")
            self.criteria_chain.append(criteria)

        return self

    def or_(self, item: Union[str, CriteriaField, Criteria]) -> Criteria:
        if isinstance(item, Criteria):
            return self._link(item, is_or=True)

        return Criteria(item, self.criteria_chain, is_or=True)

    def sub_criteria(self, criteria: Criteria) -> Criteria:
        self.sub_criteria_list.append(criteria)
        return self

    def not_(self) -> Criteria:
        self.is_negating = True
        return self

    def boost(self, boost: float) -> Criteria:
        if boost < 0:
            raise ValueError("boost must not be negative")

        self.boost_value = boost
        return self

    def _add(self, key: OperationKey, value: Any = None) -> Criteria:
        self.query_criteria_entries.append(CriteriaEntry(key, value))
        return self

    def _add_filter(self, key: OperationKey, value: Any) -> Criteria:
        self.filter_criteria_entries.append(CriteriaEntry(key, value))
        return self

    def is_(self, value: Any) -> Criteria:
        return self._add(OperationKey.EQUALS, value)

    def is_null(self) -> Criteria:
        return self.not_().exists()

    def is_not_null(self) -> Criteria:
        return self.exists()

    def exists(self) -> Criteria:
        return self._add(OperationKey.EXISTS)

    def contains(self, value: str) -> Criteria:
        _assert_no_blanks(value)
        return self._add(OperationKey.CONTAINS, value)

    def starts_with(self, value: str) -> Criteria:
        _assert_no_blanks(value)
        return self._add(OperationKey.STARTS_WITH, value)

    def ends_with(self, value: str) -> Criteria:
        _assert_no_blanks(value)
        return self._add(OperationKey.ENDS_WITH, value)

    def expression(self, value: str) -> Criteria:
        return self._add(OperationKey.EXPRESSION, value)

    def fuzzy(self, value: str) -> Criteria:
        _assert_no_blanks(value)
        return self._add(OperationKey.FUZZY, value)

    def between(self, lower: Any, upper: Any) -> Criteria:
        if lower is None and upper is None:
            raise ValueError("Range value must not be None on both sides")
        return self._add(OperationKey.BETWEEN, [lower, upper])

    def less_than(self, value: Any) -> Criteria:
        return self._add(OperationKey.LESS, _not_none(value))

    def less_than_equal(self, value: Any) -> Criteria:
        return self._add(OperationKey.LESS_EQUAL, _not_none(value))

    def greater_than(self, value: Any) -> Criteria:
        return self._add(OperationKey.GREATER, _not_none(value))

    def greater_than_equal(self, value: Any) -> Criteria:
        return self._add(OperationKey.GREATER_EQUAL, _not_none(value))

    def in_(self, *values: Any) -> Criteria:
        return self._add(OperationKey.IN, _flatten(values))

    def not_in(self, *values: Any) -> Criteria:
        return self._add(OperationKey.NOT_IN, _flatten(values))

    def matches(self, value: Any) -> Criteria:
        return self._add(OperationKey.MATCHES, _not_none(value))

    def matches_all(self, value: Any) -> Criteria:
        return self._add(OperationKey.MATCHES_ALL, _not_none(value))

    def empty(self) -> Criteria:
        return self._add(OperationKey.EMPTY)

    def not_empty(self) -> Criteria:
        return self._add(OperationKey.NOT_EMPTY)

    def regexp(self, value: str) -> Criteria:
        return self._add(OperationKey.REGEXP, _not_none(value))

    def within(self, location: Union[GeoPoint, str], distance: str) -> Criteria:
        """Matches geo points within ``distance`` (for example ``"10km"``) of ``location``."""
        if not distance:
            raise ValueError("distance must not be empty")
        return self._add_filter(OperationKey.WITHIN, (_not_none(location), distance))

    def bounding_box(
        self,
        top_left: Union[GeoPoint, str],
        bottom_right: Union[GeoPoint, str],
    ) -> Criteria:
        return self._add_filter(
            OperationKey.BBOX,
            (_not_none(top_left), _not_none(bottom_right)),
        )

    def __iter__(self) -> Iterator[Criteria]:
        return iter(self.criteria_chain)

    def __repr__(self) -> str:
        field = self.field.name if self.field else None
        entries = ", ".join(f"{e.key.name}={e.value!r}" for e in self.query_criteria_entries)
        prefix = "OR " if self.is_or else ""
        negation = "NOT " if self.is_negating else ""
        return f"Criteria({prefix}{negation}{field}: [{entries}], sub={len(self.sub_criteria_list)})"


def _assert_no_blanks(value: Any) -> None:
    if value is None:
        raise ValueError("Value must not be None")
    if isinstance(value, str) and " " in value:
        raise ValueError(
            f'Cannot construct query "*{value}*"; use expression or multiple clauses instead'
        )


def _not_none(value: Any) -> Any:
    if value is None:
        raise ValueError("Value must not be None")
    return value


def _flatten(values: Sequence[Any]) -> list[Any]:
    if len(values) == 1 and isinstance(values[0], Iterable) and not isinstance(values[0], (str, bytes)):
        return list(values[0])
    return list(values)
