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

"""Hooks invoked by the templates around conversion, saving and loading.

Callbacks are applied in registration order (lower ``order`` first); each
receives the result of the previous one. Async templates await callback
results that are awaitable, so the same callback classes serve both flavors.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import inspect
from typing import Any, ClassVar, Optional, Sequence, TypeVar

from esdata.core.convert.document import Document
from esdata.core.operations import IndexCoordinates

T = TypeVar("T")
C = TypeVar("C", bound="EntityCallback")


class EntityCallback(ABC):
    # callbacks only apply to instances of entity_type when set
    entity_type: ClassVar[Optional[type]] = None
    order: ClassVar[int] = 0

    def supports(self, entity: Any) -> bool:
        return self.entity_type is None or isinstance(entity, self.entity_type)

    @abstractmethod
    def invoke(self, entity: Any, *args: Any) -> Any: ...


class BeforeConvertCallback(EntityCallback):
    @abstractmethod
    def on_before_convert(self, entity: Any, index: IndexCoordinates) -> Any: ...

    def invoke(self, entity: Any, *args: Any) -> Any:
        return self.on_before_convert(entity, *args)


class AfterConvertCallback(EntityCallback):
    @abstractmethod
    def on_after_convert(self, entity: Any, document: Document, index: IndexCoordinates) -> Any: ...

    def invoke(self, entity: Any, *args: Any) -> Any:
        return self.on_after_convert(entity, *args)


class AfterSaveCallback(EntityCallback):
    @abstractmethod
    def on_after_save(self, entity: Any, index: IndexCoordinates) -> Any: ...

    def invoke(self, entity: Any, *args: Any) -> Any:
        return self.on_after_save(entity, *args)


class AfterLoadCallback(EntityCallback):
    """Receives the raw document before it is converted to ``entity_class``."""

    @abstractmethod
    def on_after_load(
        self,
        document: Document,
        entity_class: type,
        index: IndexCoordinates,
    ) -> Document: ...

    def supports(self, entity: Any) -> bool:
        return True

    def invoke(self, entity: Any, *args: Any) -> Any:
        return self.on_after_load(entity, *args)


class EntityCallbacks:
    def __init__(self, callbacks: Sequence[EntityCallback] = ()) -> None:
        self._callbacks: list[EntityCallback] = []
        for callback in callbacks:
            self.register(callback)

    def register(self, callback: EntityCallback) -> None:
        self._callbacks.append(callback)
        self._callbacks.sort(key=lambda c: c.order)

    def of_type(self, callback_type: type[C]) -> list[C]:
        return [c for c in self._callbacks if isinstance(c, callback_type)]

    def callback(self, callback_type: type[EntityCallback], entity: T, *args: Any) -> T:
        for callback in self.of_type(callback_type):
            if not callback.supports(entity):
                continue

            result = callback.invoke(entity, *args)

            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise TypeError(
                    f"{type(callback).__name__} returned an awaitable; "
                    "use it with an asynchronous template"
                )

            entity = result

        return entity

    async def callback_async(
        self,
        callback_type: type[EntityCallback],
        entity: T,
        *args: Any,
    ) -> T:
        for callback in self.of_type(callback_type):
            if not callback.supports(entity):
                continue

            result = callback.invoke(entity, *args)

            if inspect.isawaitable(result):
                result = await result

            entity = result

        return entity

    def __len__(self) -> int:
        return len(self._callbacks)
