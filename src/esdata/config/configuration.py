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

"""Assembling clients, converters and templates into a ``lagom.Container``.

Applications subclass :class:`ElasticsearchConfiguration` (or its async
counterpart), implement :meth:`client_configuration` and call
:meth:`configure` once at startup. Components are then looked up by type::

    container = Container()
    MyConfiguration().configure(container)
    enable_repositories(container, BookRepository)

    books = container[BookRepository]
"""

from __future__ import annotations
from abc import ABC, abstractmethod
import importlib
import inspect
import pkgutil
from types import ModuleType
from typing import Any, Iterator, Optional, Sequence

from elasticsearch import AsyncElasticsearch, Elasticsearch
from lagom import Container

from esdata.config.client import ClientConfiguration, create_async_client, create_client
from esdata.core.async_template import AsyncElasticsearchTemplate
from esdata.core.auditing import (
    AuditingEntityCallback,
    AuditingHandler,
    AuditorAware,
    DateTimeProvider,
    current_date_time,
)
from esdata.core.callbacks import EntityCallbacks
from esdata.core.common import EsDataError
from esdata.core.convert.converter import CustomConversions, MappingElasticsearchConverter
from esdata.core.loggers import LogLevel, Logger, StdoutLogger
from esdata.core.mapping.context import (
    FieldNamingStrategy,
    MappingContext,
    PropertyNameFieldNamingStrategy,
)
from esdata.core.operations import RefreshPolicy
from esdata.core.template import ElasticsearchTemplate
from esdata.repository.base import (
    AsyncElasticsearchRepository,
    ElasticsearchRepository,
    RepositorySupport,
)


class _ConfigurationSupport(ABC):
    @abstractmethod
    def client_configuration(self) -> ClientConfiguration: ...

    def logger(self) -> Logger:
        return StdoutLogger(LogLevel.INFO)

    def field_naming_strategy(self) -> FieldNamingStrategy:
        return PropertyNameFieldNamingStrategy()

    def initial_entity_set(self) -> Sequence[type]:
        return ()

    def mapping_context(self, logger: Logger) -> MappingContext:
        return MappingContext(
            field_naming_strategy=self.field_naming_strategy(),
            logger=logger,
            initial_entities=self.initial_entity_set(),
        )

    def custom_conversions(self) -> CustomConversions:
        return CustomConversions()

    def converter(
        self,
        mapping_context: MappingContext,
        logger: Logger,
    ) -> MappingElasticsearchConverter:
        return MappingElasticsearchConverter(mapping_context, self.custom_conversions(), logger)

    def entity_callbacks(self) -> EntityCallbacks:
        return EntityCallbacks()

    def refresh_policy(self) -> RefreshPolicy:
        return RefreshPolicy.NONE

    def transport_options(self) -> dict[str, Any]:
        """Per-request options (``headers``, ``request_timeout``, ...) applied to the client."""
        return {}

    def index_prefix(self, client_configuration: ClientConfiguration) -> str:
        return client_configuration.index_prefix

    def _configure_common(self, container: Container) -> tuple[ClientConfiguration, Logger]:
        client_configuration = self.client_configuration()
        logger = self.logger()

        container[ClientConfiguration] = client_configuration
        container[Logger] = logger

        mapping_context = self.mapping_context(logger)
        container[MappingContext] = mapping_context
        container[MappingElasticsearchConverter] = self.converter(mapping_context, logger)
        container[EntityCallbacks] = self.entity_callbacks()

        return client_configuration, logger


class ElasticsearchConfiguration(_ConfigurationSupport):
    def client(self, client_configuration: ClientConfiguration) -> Elasticsearch:
        client = create_client(client_configuration)

        if options := self.transport_options():
            client = client.options(**options)

        return client

    def configure(self, container: Container) -> Container:
        client_configuration, logger = self._configure_common(container)

        container[Elasticsearch] = self.client(client_configuration)
        container[ElasticsearchTemplate] = ElasticsearchTemplate(
            container[Elasticsearch],
            container[MappingElasticsearchConverter],
            container[EntityCallbacks],
            self.refresh_policy(),
            logger,
            self.index_prefix(client_configuration),
        )

        logger.debug(f"Configured Elasticsearch client for {client_configuration.urls}")

        return container


class AsyncElasticsearchConfiguration(_ConfigurationSupport):
    def client(self, client_configuration: ClientConfiguration) -> AsyncElasticsearch:
        client = create_async_client(client_configuration)

        if options := self.transport_options():
            client = client.options(**options)

        return client

    def configure(self, container: Container) -> Container:
        client_configuration, logger = self._configure_common(container)

        container[AsyncElasticsearch] = self.client(client_configuration)
        container[AsyncElasticsearchTemplate] = AsyncElasticsearchTemplate(
            container[AsyncElasticsearch],
            container[MappingElasticsearchConverter],
            container[EntityCallbacks],
            self.refresh_policy(),
            logger,
            self.index_prefix(client_configuration),
        )

        logger.debug(f"Configured async Elasticsearch client for {client_configuration.urls}")

        return container


def _require(container: Container, t: type) -> Any:
    if t not in container.defined_types:
        raise EsDataError(f"{t.__name__} is not configured; call configure(container) first")
    return container[t]


def enable_auditing(
    container: Container,
    auditor_aware: Optional[AuditorAware[Any]] = None,
    date_time_provider: DateTimeProvider = current_date_time,
    set_dates: bool = True,
    modify_on_creation: bool = True,
) -> AuditingHandler:
    handler = AuditingHandler(
        _require(container, MappingContext),
        auditor_aware=auditor_aware,
        date_time_provider=date_time_provider,
        set_dates=set_dates,
        modify_on_creation=modify_on_creation,
        logger=_require(container, Logger),
    )

    container[AuditingHandler] = handler
    _require(container, EntityCallbacks).register(AuditingEntityCallback(handler))

    return handler


def _is_concrete_repository(obj: Any) -> bool:
    return (
        inspect.isclass(obj)
        and issubclass(obj, (ElasticsearchRepository, AsyncElasticsearchRepository))
        and obj not in (ElasticsearchRepository, AsyncElasticsearchRepository)
        and not inspect.isabstract(obj)
        and not getattr(obj, "__parameters__", ())
    )


def _walk_modules(package_name: str) -> Iterator[ModuleType]:
    package = importlib.import_module(package_name)
    yield package

    if not hasattr(package, "__path__"):
        return

    for info in pkgutil.walk_packages(package.__path__, prefix=f"{package.__name__}."):
        yield importlib.import_module(info.name)


def _members(module: ModuleType, consider_nested: bool) -> Iterator[type]:
    pending = [m for _, m in inspect.getmembers(module, inspect.isclass)]

    while pending:
        member = pending.pop(0)
        if member.__module__ != module.__name__:
            continue

        yield member

        if consider_nested:
            pending.extend(
                m
                for m in vars(member).values()
                if inspect.isclass(m) and m.__qualname__.startswith(f"{member.__qualname__}.")
            )


def scan_repositories(
    base_packages: Sequence[str],
    consider_nested: bool = False,
) -> list[type[RepositorySupport[Any, Any]]]:
    found: dict[type, None] = {}

    for package_name in base_packages:
        for module in _walk_modules(package_name):
            for member in _members(module, consider_nested):
                if _is_concrete_repository(member):
                    found[member] = None

    return list(found)


def enable_repositories(
    container: Container,
    *repository_classes: type[RepositorySupport[Any, Any]],
    base_packages: Sequence[str] = (),
    consider_nested: bool = False,
) -> list[type[RepositorySupport[Any, Any]]]:
    """Registers one instance of each repository class, explicit or found in ``base_packages``."""
    classes = list(
        dict.fromkeys([*repository_classes, *scan_repositories(base_packages, consider_nested)])
    )
    logger = _require(container, Logger)

    for repository_class in classes:
        if issubclass(repository_class, AsyncElasticsearchRepository):
            repository: Any = repository_class(_require(container, AsyncElasticsearchTemplate))
        elif issubclass(repository_class, ElasticsearchRepository):
            repository = repository_class(_require(container, ElasticsearchTemplate))
        else:
            raise EsDataError(f"{repository_class.__name__} is not a repository")

        container[repository_class] = repository
        logger.debug(f"Registered repository {repository_class.__name__}")

    return classes
