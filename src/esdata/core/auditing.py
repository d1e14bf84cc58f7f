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
from abc import ABC, abstractmethod
import dataclasses
from datetime import date, datetime, timezone
from typing import Any, Callable, ClassVar, Generic, Optional, TypeVar
from typing_extensions import override

from esdata.core.callbacks import BeforeConvertCallback
from esdata.core.common import MappingError
from esdata.core.loggers import Logger, NullLogger
from esdata.core.mapping.context import AuditRole, MappingContext, PersistentProperty
from esdata.core.operations import IndexCoordinates

A = TypeVar("A")
T = TypeVar("T")


class AuditorAware(ABC, Generic[A]):
    @abstractmethod
    def get_current_auditor(self) -> Optional[A]: ...


class Persistable(ABC):
    """Entities implementing this decide themselves whether they are new."""

    @abstractmethod
    def is_new(self) -> bool: ...


DateTimeProvider = Callable[[], datetime]


def current_date_time() -> datetime:
    return datetime.now(timezone.utc)


class AuditingHandler:
    def __init__(
        self,
        mapping_context: MappingContext,
        auditor_aware: Optional[AuditorAware[Any]] = None,
        date_time_provider: DateTimeProvider = current_date_time,
        set_dates: bool = True,
        modify_on_creation: bool = True,
        logger: Optional[Logger] = None,
    ) -> None:
        self._mapping_context = mapping_context
        self._auditor_aware = auditor_aware
        self._date_time_provider = date_time_provider
        self._set_dates = set_dates
        self._modify_on_creation = modify_on_creation
        self._logger = logger or NullLogger()

    def is_new(self, entity: Any) -> bool:
        if isinstance(entity, Persistable):
            return entity.is_new()

        persistent_entity = self._mapping_context.get_persistent_entity(type(entity))

        if id_property := persistent_entity.id_property:
            if getattr(entity, id_property.name) is None:
                return True

        if version_property := persistent_entity.version_property:
            if getattr(entity, version_property.name) is None:
                return True

        audit = persistent_entity.audit_properties
        created = [audit[r] for r in (AuditRole.CREATED_DATE, AuditRole.CREATED_BY) if r in audit]

        if created:
            return all(getattr(entity, p.name) is None for p in created)

        return id_property is None

    def mark_audited(self, entity: T) -> T:
        return self._touch(entity, self.is_new(entity))

    def mark_created(self, entity: T) -> T:
        return self._touch(entity, True)

    def mark_modified(self, entity: T) -> T:
        return self._touch(entity, False)

    def is_auditable(self, entity: Any) -> bool:
        return bool(self._mapping_context.get_persistent_entity(type(entity)).audit_properties)

    def _touch(self, entity: T, is_new: bool) -> T:
        persistent_entity = self._mapping_context.get_persistent_entity(type(entity))
        audit = persistent_entity.audit_properties

        if not audit:
            return entity

        changes: dict[str, Any] = {}

        by_roles = [AuditRole.LAST_MODIFIED_BY]
        date_roles = [AuditRole.LAST_MODIFIED_DATE]

        if is_new:
            by_roles = [AuditRole.CREATED_BY] + (by_roles if self._modify_on_creation else [])
            date_roles = [AuditRole.CREATED_DATE] + (
                date_roles if self._modify_on_creation else []
            )

        if self._auditor_aware and any(r in audit for r in by_roles):
            auditor = self._auditor_aware.get_current_auditor()
            if auditor is not None:
                for role in by_roles:
                    if prop := audit.get(role):
                        changes[prop.name] = auditor

        if self._set_dates and any(r in audit for r in date_roles):
            now = self._date_time_provider()
            for role in date_roles:
                if prop := audit.get(role):
                    changes[prop.name] = _date_value(now, prop)

        self._logger.trace(
            f"Auditing {persistent_entity.name} (new: {is_new}): {sorted(changes)}"
        )

        return _apply(entity, changes)


def _date_value(now: datetime, prop: PersistentProperty) -> Any:
    target = prop.actual_type

    if target is datetime:
        return now
    if target is date:
        return now.date()
    if target is int:
        return int(now.timestamp() * 1000)
    if target is float:
        return now.timestamp()

    raise MappingError(
        f"Cannot set an audit date on {prop.owner.name}.{prop.name} of type {target!r}"
    )


def _apply(entity: T, changes: dict[str, Any]) -> T:
    if not changes:
        return entity

    params = getattr(type(entity), "__dataclass_params__", None)

    if params is not None and params.frozen:
        init_names = {f.name for f in dataclasses.fields(entity) if f.init}  # type: ignore[arg-type]
        entity = dataclasses.replace(  # type: ignore[type-var]
            entity, **{k: v for k, v in changes.items() if k in init_names}
        )
        changes = {k: v for k, v in changes.items() if k not in init_names}

    for name, value in changes.items():
        object.__setattr__(entity, name, value)

    return entity


class AuditingEntityCallback(BeforeConvertCallback):
    order: ClassVar[int] = 100

    def __init__(self, auditing_handler: AuditingHandler) -> None:
        self._auditing_handler = auditing_handler

    @override
    def on_before_convert(self, entity: Any, index: IndexCoordinates) -> Any:
        if isinstance(entity, dict):
            return entity
        return self._auditing_handler.mark_audited(entity)
