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


from typing import AsyncIterator, Iterator

from elasticsearch import AsyncElasticsearch, Elasticsearch
from lagom import Container
from pytest import fixture, skip

from esdata import (
    AsyncElasticsearchTemplate,
    ClientConfiguration,
    ElasticsearchTemplate,
    LogLevel,
    Logger,
    MappingContext,
    MappingElasticsearchConverter,
    RefreshPolicy,
    StdoutLogger,
    create_async_client,
    create_client,
)
from tests.test_utilities import ClusterConnection, IndexNameProvider, index_names


@fixture
def logger() -> Logger:
    return StdoutLogger(LogLevel.DEBUG, logger_id="esdata.tests")


@fixture
def container(logger: Logger) -> Container:
    container = Container()

    container[Logger] = logger
    container[MappingContext] = MappingContext(logger=logger)
    container[MappingElasticsearchConverter] = MappingElasticsearchConverter(
        container[MappingContext],
        logger=logger,
    )

    return container


@fixture
def mapping_context(container: Container) -> MappingContext:
    return container[MappingContext]


@fixture
def converter(container: Container) -> MappingElasticsearchConverter:
    return container[MappingElasticsearchConverter]


@fixture(scope="session")
def cluster_configuration() -> Iterator[ClientConfiguration]:
    connection = ClusterConnection()
    configuration = connection.start()

    if configuration is None:
        skip("No Elasticsearch cluster (set ELASTICSEARCH__HOST or ESDATA_TEST_CONTAINER=true)")

    try:
        yield configuration
    finally:
        connection.stop()


@fixture
def index_name_provider() -> Iterator[IndexNameProvider]:
    index_names.increment()
    yield index_names


@fixture
def client(
    cluster_configuration: ClientConfiguration,
    index_name_provider: IndexNameProvider,
) -> Iterator[Elasticsearch]:
    client = create_client(cluster_configuration)

    try:
        yield client
    finally:
        for index_name in client.indices.get(index=index_name_provider.pattern()).body:
            client.indices.delete(index=index_name)
        client.close()


@fixture
async def async_client(
    cluster_configuration: ClientConfiguration,
    index_name_provider: IndexNameProvider,
) -> AsyncIterator[AsyncElasticsearch]:
    client = create_async_client(cluster_configuration)

    try:
        yield client
    finally:
        indices = await client.indices.get(index=index_name_provider.pattern())
        for index_name in indices.body:
            await client.indices.delete(index=index_name)
        await client.close()


@fixture
def template(
    client: Elasticsearch,
    converter: MappingElasticsearchConverter,
    logger: Logger,
) -> ElasticsearchTemplate:
    return ElasticsearchTemplate(
        client,
        converter,
        refresh_policy=RefreshPolicy.IMMEDIATE,
        logger=logger,
    )


@fixture
def async_template(
    async_client: AsyncElasticsearch,
    converter: MappingElasticsearchConverter,
    logger: Logger,
) -> AsyncElasticsearchTemplate:
    return AsyncElasticsearchTemplate(
        async_client,
        converter,
        refresh_policy=RefreshPolicy.IMMEDIATE,
        logger=logger,
    )
