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
from typing import Any, Iterator, Optional, Sequence

from esdata.core.common import InvalidQueryError
from esdata.core.loggers import Logger, NullLogger
from esdata.core.query.criteria import Criteria
from esdata.core.query.query import CriteriaQuery
from esdata.repository.query.part_tree import Part, PartTree, PartType


class ElasticsearchQueryCreator:
    """Turns a parsed method name and its arguments into a :class:`CriteriaQuery`."""

    def __init__(self, tree: PartTree, logger: Optional[Logger] = None) -> None:
        self._tree = tree
        self._logger = logger or NullLogger()

    def create_query(self, arguments: Sequence[Any]) -> CriteriaQuery:
        if len(arguments) != self._tree.argument_count:
            raise InvalidQueryError(
                f"{self._tree.method_name} expects {self._tree.argument_count} "
                f"argument(s) but got {len(arguments)}"
            )

        values = iter(arguments)
        groups = [self._and_chain(group, values) for group in self._tree.or_parts]

        if not groups:
            criteria = Criteria()
        elif len(groups) == 1:
            criteria = groups[0]
        else:
            criteria = Criteria()
            for group in groups:
                criteria = criteria.or_(Criteria().sub_criteria(group))

        query = CriteriaQuery(criteria, sort=self._tree.sort)

        if self._tree.max_results is not None:
            query.set_max_results(self._tree.max_results)

        return query

    def _and_chain(self, parts: Sequence[Part], values: Iterator[Any]) -> Criteria:
        criteria: Optional[Criteria] = None

        for part in parts:
            if part.ignore_case:
                self._logger.debug(
                    f"{self._tree.method_name}: ignore case on {part.property!r} "
                    "depends on the field's analyzer"
                )

            link = self._from_part(part, Criteria(part.property), values)
            criteria = link if criteria is None else criteria.and_(link)

        if criteria is None:
            raise InvalidQueryError(f"{self._tree.method_name}: empty condition group")
        return criteria

    @staticmethod
    def _from_part(part: Part, criteria: Criteria, values: Iterator[Any]) -> Criteria:
        match part.type:
            case PartType.TRUE:
                return criteria.is_(True)
            case PartType.FALSE:
                return criteria.is_(False)
            case PartType.NEGATING_SIMPLE_PROPERTY:
                return criteria.is_(next(values)).not_()
            case PartType.REGEX:
                return criteria.regexp(next(values))
            case PartType.LIKE | PartType.STARTING_WITH:
                return criteria.starts_with(next(values))
            case PartType.NOT_LIKE:
                return criteria.starts_with(next(values)).not_()
            case PartType.ENDING_WITH:
                return criteria.ends_with(next(values))
            case PartType.CONTAINING:
                return criteria.contains(next(values))
            case PartType.NOT_CONTAINING:
                return criteria.contains(next(values)).not_()
            case PartType.GREATER_THAN | PartType.AFTER:
                return criteria.greater_than(next(values))
            case PartType.GREATER_THAN_EQUAL:
                return criteria.greater_than_equal(next(values))
            case PartType.LESS_THAN | PartType.BEFORE:
                return criteria.less_than(next(values))
            case PartType.LESS_THAN_EQUAL:
                return criteria.less_than_equal(next(values))
            case PartType.BETWEEN:
                return criteria.between(next(values), next(values))
            case PartType.IN:
                return criteria.in_(next(values))
            case PartType.NOT_IN:
                return criteria.not_in(next(values))
            case PartType.SIMPLE_PROPERTY:
                value = next(values)
                return criteria.is_null() if value is None else criteria.is_(value)
            case PartType.EXISTS | PartType.IS_NOT_NULL:
                return criteria.exists()
            case PartType.IS_NULL:
                return criteria.is_null()
            case PartType.IS_EMPTY:
                return criteria.empty()
            case PartType.IS_NOT_EMPTY:
                return criteria.not_empty()
            case PartType.WITHIN:
                return criteria.within(next(values), next(values))

        raise InvalidQueryError(f"Illegal criteria found {part.type.keyword!r}")
