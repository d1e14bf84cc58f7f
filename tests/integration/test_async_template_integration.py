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


from dataclasses import dataclass
from typing import Annotated, Optional

from pytest import mark

from esdata import (
    AsyncElasticsearchTemplate,
    Criteria,
    CriteriaQuery,
    Field,
    FieldType,
    UpdateQuery,
    document,
)
from tests.test_utilities import index_names

pytestmark = mark.integration


@document(index_name=index_names.index_name)
@dataclass
class Ticket:
    id: Optional[str] = None
    subject: Annotated[Optional[str], Field(type=FieldType.TEXT)] = None
    status: Annotated[Optional[str], Field(type=FieldType.KEYWORD)] = None


async def test_that_tickets_are_saved_searched_and_deleted(
    async_template: AsyncElasticsearchTemplate,
) -> None:
    await async_template.index_ops(Ticket).create_with_mapping()

    await async_template.save_all(
        [
            Ticket("1", "Printer on fire", "open"),
            Ticket("2", "Cannot log in", "open"),
            Ticket("3", "Coffee machine", "closed"),
        ]
    )

    assert await async_template.get("2", Ticket) == Ticket("2", "Cannot log in", "open")
    assert await async_template.count(CriteriaQuery(Criteria("status").is_("open")), Ticket) == 2

    hits = await async_template.search(CriteriaQuery(Criteria("subject").is_("printer")), Ticket)

    assert [h.id for h in hits] == ["1"]

    await async_template.delete("1", Ticket)

    assert not await async_template.exists("1", Ticket)


async def test_that_tickets_are_updated_by_query(
    async_template: AsyncElasticsearchTemplate,
) -> None:
    await async_template.index_ops(Ticket).create_with_mapping()
    await async_template.save_all([Ticket("1", "a", "open"), Ticket("2", "b", "open")])

    response = await async_template.update_by_query(
        UpdateQuery(
            query=CriteriaQuery(Criteria("status").is_("open")),
            script="ctx._source.status = params.status",
            params={"status": "closed"},
        ),
        async_template.get_index_coordinates_for(Ticket),
        Ticket,
    )

    assert response.updated == 2

    ticket = await async_template.get("2", Ticket)

    assert ticket is not None
    assert ticket.status == "closed"
