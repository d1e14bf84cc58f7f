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

"""A grouping builder on top of :class:`Criteria`.

::

    criteria(
        lambda c: c.and_(
            Criteria("last_name").is_("Rodeck"),
            criteria(lambda c: c.or_(
                Criteria("first_name").is_("Alaya"),
                Criteria("first_name").is_("Salome"),
            )),
        )
    ).build()

Items of ``and_`` end up in ``must``, items of ``or_`` in ``should``; nested
builders become sub criteria.
"""

from __future__ import annotations
from typing import Callable, Union

from esdata.core.common import CriteriaDSLError
from esdata.core.query.criteria import Criteria

CriteriaItem = Union[Criteria, str, "CriteriaDSL"]


class CriteriaListDSL:
    def __init__(self) -> None:
        self.criteria_list: list[Criteria] = []
        self.sub_criteria_list: list[Criteria] = []

    def add(self, item: CriteriaItem) -> Criteria | None:
        """Adds an item; returns the criteria for field names so conditions can follow."""
        if isinstance(item, CriteriaDSL):
            self.sub_criteria_list.append(item.build())
            return None

        if isinstance(item, str):
            item = Criteria(item)

        if len(item.criteria_chain) > 1:
            raise ValueError("Cannot use chained Criteria inside the criteria DSL")

        self.criteria_list.append(item)
        return item

    def __iadd__(self, item: CriteriaItem) -> CriteriaListDSL:
        self.add(item)
        return self


ListInit = Callable[[CriteriaListDSL], object]


class CriteriaDSL:
    def __init__(self) -> None:
        self._must_criteria: list[Criteria] = []
        self._should_criteria: list[Criteria] = []
        self._must_sub_criteria: list[Criteria] = []
        self._should_sub_criteria: list[Criteria] = []

    @staticmethod
    def _collect(items: tuple[Union[CriteriaItem, ListInit], ...]) -> CriteriaListDSL:
        list_dsl = CriteriaListDSL()

        for item in items:
            if isinstance(item, (Criteria, str, CriteriaDSL)):
                list_dsl.add(item)
            else:
                item(list_dsl)

        return list_dsl

    def and_(self, *items: Union[CriteriaItem, ListInit]) -> CriteriaDSL:
        list_dsl = self._collect(items)
        self._must_criteria.extend(list_dsl.criteria_list)
        self._must_sub_criteria.extend(list_dsl.sub_criteria_list)
        return self

    def or_(self, *items: Union[CriteriaItem, ListInit]) -> CriteriaDSL:
        list_dsl = self._collect(items)
        self._should_criteria.extend(list_dsl.criteria_list)
        self._should_sub_criteria.extend(list_dsl.sub_criteria_list)
        return self

    def build(self) -> Criteria:
        should: Criteria | None = None

        if self._should_criteria:
            should = Criteria.empty_or()
            for next_criteria in self._should_criteria:
                should = should.or_(next_criteria)

        if self._should_sub_criteria:
            should = should or Criteria.empty_or()
            for sub in self._should_sub_criteria:
                should = should.sub_criteria(sub)

        must: Criteria | None = None

        if self._must_criteria:
            must = self._must_criteria[0]
            for next_criteria in self._must_criteria[1:]:
                must = must.and_(next_criteria)

        if self._must_sub_criteria:
            must = must or Criteria()
            for sub in self._must_sub_criteria:
                must = must.sub_criteria(sub)

        if should is None and must is None:
            raise CriteriaDSLError("empty CriteriaDSL detected")
        if must is None:
            return should
        if should is None:
            return must

        # the should links are appended to the must chain as OR links
        for link in list(should.criteria_chain):
            must = must.or_(link)

        return must


def criteria(init: Callable[[CriteriaDSL], object]) -> CriteriaDSL:
    dsl = CriteriaDSL()
    init(dsl)
    return dsl
