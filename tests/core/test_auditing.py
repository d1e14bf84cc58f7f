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
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Optional

from pytest import fixture, raises

from esdata import (
    AuditingHandler,
    AuditorAware,
    BeforeConvertCallback,
    CreatedBy,
    CreatedDate,
    EntityCallbacks,
    Field,
    FieldType,
    IndexCoordinates,
    LastModifiedBy,
    LastModifiedDate,
    MappingContext,
    MappingError,
    Persistable,
    Transient,
    Version,
)
from esdata.core.auditing import AuditingEntityCallback

INDEX = IndexCoordinates.of("audited")


@dataclass
class AuditedEntity(Persistable):
    id: Optional[str] = None
    created_date: Annotated[
        Optional[datetime], CreatedDate(), Field(type=FieldType.DATE)
    ] = None
    created_by: Annotated[Optional[str], CreatedBy()] = None
    last_modified_date: Annotated[
        Optional[datetime], LastModifiedDate(), Field(type=FieldType.DATE)
    ] = None
    last_modified_by: Annotated[Optional[str], LastModifiedBy()] = None
    persisted: Annotated[bool, Transient()] = False

    def is_new(self) -> bool:
        return not self.persisted


@dataclass
class VersionedEntity:
    id: Optional[str] = None
    version: Annotated[Optional[int], Version()] = None
    created_millis: Annotated[Optional[int], CreatedDate()] = None


@dataclass(frozen=True)
class FrozenAuditedEntity:
    id: Optional[str] = None
    created_by: Annotated[Optional[str], CreatedBy()] = None


@dataclass
class BadlyTypedAuditDate:
    id: Optional[str] = None
    created: Annotated[Optional[str], CreatedDate()] = None


class CountingAuditor(AuditorAware[str]):
    def __init__(self) -> None:
        self.calls = 0

    def get_current_auditor(self) -> Optional[str]:
        self.calls += 1
        return f"Auditor {self.calls}"


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@fixture
def clock() -> Clock:
    return Clock()


@fixture
def handler(mapping_context: MappingContext, clock: Clock) -> AuditingHandler:
    return AuditingHandler(
        mapping_context,
        auditor_aware=CountingAuditor(),
        date_time_provider=clock,
    )


def test_that_a_new_entity_gets_created_and_modified_data(handler: AuditingHandler) -> None:
    entity = handler.mark_audited(AuditedEntity(id="1"))

    assert entity.created_by == "Auditor 1"
    assert entity.last_modified_by == "Auditor 1"
    assert entity.created_date is not None
    assert entity.created_date == entity.last_modified_date


def test_that_an_existing_entity_only_gets_modified_data(handler: AuditingHandler) -> None:
    entity = handler.mark_audited(AuditedEntity(id="1"))
    created_date = entity.created_date

    entity.persisted = True
    entity = handler.mark_audited(entity)

    assert entity.created_by == "Auditor 1"
    assert entity.created_date == created_date
    assert entity.last_modified_by == "Auditor 2"
    assert entity.last_modified_date is not None
    assert created_date is not None
    assert entity.last_modified_date > created_date


def test_that_modification_data_can_be_skipped_on_creation(
    mapping_context: MappingContext,
    clock: Clock,
) -> None:
    handler = AuditingHandler(
        mapping_context,
        auditor_aware=CountingAuditor(),
        date_time_provider=clock,
        modify_on_creation=False,
    )

    entity = handler.mark_audited(AuditedEntity())

    assert entity.created_by == "Auditor 1"
    assert entity.last_modified_by is None
    assert entity.last_modified_date is None


def test_that_dates_are_not_set_when_disabled(mapping_context: MappingContext) -> None:
    handler = AuditingHandler(mapping_context, CountingAuditor(), set_dates=False)

    entity = handler.mark_audited(AuditedEntity())

    assert entity.created_by == "Auditor 1"
    assert entity.created_date is None


def test_that_a_missing_version_marks_an_entity_as_new(handler: AuditingHandler) -> None:
    assert handler.is_new(VersionedEntity(id="1"))
    assert not handler.is_new(VersionedEntity(id="1", version=3))


def test_that_epoch_millis_are_written_to_integer_audit_dates(
    handler: AuditingHandler,
    clock: Clock,
) -> None:
    entity = handler.mark_audited(VersionedEntity(id="1"))

    assert entity.created_millis == int(clock.now.timestamp() * 1000)


def test_that_frozen_entities_are_copied(handler: AuditingHandler) -> None:
    original = FrozenAuditedEntity()

    audited = handler.mark_audited(original)

    assert original.created_by is None
    assert audited.created_by == "Auditor 1"


def test_that_an_unsupported_audit_date_type_is_rejected(handler: AuditingHandler) -> None:
    with raises(MappingError):
        handler.mark_audited(BadlyTypedAuditDate())


def test_that_the_auditing_callback_runs_before_conversion(handler: AuditingHandler) -> None:
    callbacks = EntityCallbacks([AuditingEntityCallback(handler)])

    entity = callbacks.callback(BeforeConvertCallback, AuditedEntity(), INDEX)

    assert entity.created_by == "Auditor 1"


def test_that_the_auditing_callback_leaves_plain_documents_alone(
    handler: AuditingHandler,
) -> None:
    callbacks = EntityCallbacks([AuditingEntityCallback(handler)])
    document = {"name": "raw"}

    assert callbacks.callback(BeforeConvertCallback, document, INDEX) is document


class UpperCaseCallback(BeforeConvertCallback):
    order = 200

    def on_before_convert(self, entity: Any, index: IndexCoordinates) -> Any:
        entity.created_by = entity.created_by.upper()
        return entity


class AsyncCallback(BeforeConvertCallback):
    async def on_before_convert(self, entity: Any, index: IndexCoordinates) -> Any:
        entity.id = "async"
        return entity


def test_that_callbacks_run_by_order(handler: AuditingHandler) -> None:
    callbacks = EntityCallbacks()
    callbacks.register(UpperCaseCallback())
    callbacks.register(AuditingEntityCallback(handler))

    entity = callbacks.callback(BeforeConvertCallback, AuditedEntity(), INDEX)

    assert entity.created_by == "AUDITOR 1"


def test_that_awaitable_callbacks_are_rejected_by_the_blocking_chain() -> None:
    callbacks = EntityCallbacks([AsyncCallback()])

    with raises(TypeError):
        callbacks.callback(BeforeConvertCallback, AuditedEntity(), INDEX)


async def test_that_awaitable_callbacks_are_awaited_by_the_async_chain() -> None:
    callbacks = EntityCallbacks([AsyncCallback()])

    entity = await callbacks.callback_async(BeforeConvertCallback, AuditedEntity(), INDEX)

    assert entity.id == "async"
