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
from typing import Any, Optional

from elasticsearch import AsyncElasticsearch, Elasticsearch
from lagom import Container
from pytest import MonkeyPatch, raises

from esdata import (
    AsyncElasticsearchConfiguration,
    AsyncElasticsearchTemplate,
    AuditingHandler,
    CamelCaseFieldNamingStrategy,
    ClientConfiguration,
    ElasticsearchConfiguration,
    ElasticsearchTemplate,
    EntityCallbacks,
    EsDataError,
    FieldNamingStrategy,
    MappingContext,
    MappingElasticsearchConverter,
    RefreshPolicy,
    document,
    enable_auditing,
    enable_repositories,
)
from esdata.config.configuration import scan_repositories
from tests.config.sample_repositories.notes import Note, Notebook, NoteRepository


@document(index_name="books")
@dataclass
class Book:
    id: Optional[str] = None
    page_count: Optional[int] = None


class LocalConfiguration(ElasticsearchConfiguration):
    def client_configuration(self) -> ClientConfiguration:
        return ClientConfiguration(hosts=("localhost:9200",), index_prefix="test-")

    def field_naming_strategy(self) -> FieldNamingStrategy:
        return CamelCaseFieldNamingStrategy()

    def initial_entity_set(self) -> list[type]:
        return [Book]

    def refresh_policy(self) -> RefreshPolicy:
        return RefreshPolicy.IMMEDIATE

    def transport_options(self) -> dict[str, Any]:
        return {"request_timeout": 5}


class AsyncLocalConfiguration(AsyncElasticsearchConfiguration):
    def client_configuration(self) -> ClientConfiguration:
        return ClientConfiguration(hosts=("localhost:9200",))


def test_that_the_client_configuration_is_read_from_the_environment(
    monkeypatch: MonkeyPatch,
) -> None:
    monkeypatch.setenv("ELASTICSEARCH__HOST", "search.internal")
    monkeypatch.setenv("ELASTICSEARCH__PORT", "9243")
    monkeypatch.setenv("ELASTICSEARCH__USE_SSL", "true")
    monkeypatch.setenv("ELASTICSEARCH__USERNAME", "elastic")
    monkeypatch.setenv("ELASTICSEARCH__PASSWORD", "changeme")
    monkeypatch.setenv("ELASTICSEARCH__TIMEOUT", "12.5")
    monkeypatch.setenv("ELASTICSEARCH__INDEX_PREFIX", "staging-")

    configuration = ClientConfiguration.from_env()

    assert configuration.urls == ["https://search.internal:9243"]
    assert configuration.index_prefix == "staging-"

    arguments = configuration.client_arguments()
    assert arguments["hosts"] == ["https://search.internal:9243"]
    assert arguments["basic_auth"] == ("elastic", "changeme")
    assert arguments["request_timeout"] == 12.5
    assert arguments["verify_certs"] is False


def test_that_the_default_configuration_points_at_localhost(monkeypatch: MonkeyPatch) -> None:
    for name in ("HOST", "PORT", "USE_SSL", "USERNAME", "PASSWORD", "API_KEY"):
        monkeypatch.delenv(f"ELASTICSEARCH__{name}", raising=False)

    arguments = ClientConfiguration.from_env().client_arguments()

    assert arguments["hosts"] == ["http://localhost:9200"]
    assert "basic_auth" not in arguments
    assert "verify_certs" not in arguments


def test_that_urls_keep_explicit_schemes_and_add_the_path_prefix() -> None:
    configuration = ClientConfiguration(
        hosts=("https://a.example:9200", "b.example:9200"),
        path_prefix="/es/",
    )

    assert configuration.urls == ["https://a.example:9200/es", "http://b.example:9200/es"]


def test_that_api_keys_and_bearer_tokens_are_used_without_basic_auth() -> None:
    assert ClientConfiguration(api_key="key").client_arguments()["api_key"] == "key"
    assert ClientConfiguration(bearer_token="t").client_arguments()["bearer_auth"] == "t"

    arguments = ClientConfiguration(
        username="elastic",
        password="changeme",
        api_key="key",
        headers={"X-Tenant": "a"},
    ).client_arguments()

    assert arguments["basic_auth"] == ("elastic", "changeme")
    assert "api_key" not in arguments
    assert arguments["headers"] == {"X-Tenant": "a"}


def test_that_configure_registers_the_components() -> None:
    container = LocalConfiguration().configure(Container())

    template = container[ElasticsearchTemplate]

    assert isinstance(container[Elasticsearch], Elasticsearch)
    assert template.client is container[Elasticsearch]
    assert template.converter is container[MappingElasticsearchConverter]
    assert template.callbacks is container[EntityCallbacks]
    assert template.refresh_policy is RefreshPolicy.IMMEDIATE
    assert template.get_index_coordinates_for(Book).index_name == "test-books"


def test_that_the_configured_naming_strategy_and_entities_are_used() -> None:
    container = LocalConfiguration().configure(Container())

    mapping_context = container[MappingContext]

    assert mapping_context.has_persistent_entity(Book)
    assert mapping_context.get_persistent_entity(Book).get_property("page_count").field_name == (
        "pageCount"
    )


async def test_that_the_async_configuration_registers_an_async_template() -> None:
    container = AsyncLocalConfiguration().configure(Container())

    try:
        assert isinstance(container[AsyncElasticsearchTemplate], AsyncElasticsearchTemplate)
        assert container[AsyncElasticsearchTemplate].client is container[AsyncElasticsearch]
    finally:
        await container[AsyncElasticsearch].close()


def test_that_enabling_auditing_registers_the_callback() -> None:
    container = LocalConfiguration().configure(Container())

    handler = enable_auditing(container)

    assert container[AuditingHandler] is handler
    assert len(container[EntityCallbacks]) == 1


def test_that_auditing_needs_a_configured_container() -> None:
    with raises(EsDataError):
        enable_auditing(Container())


def test_that_explicit_repositories_are_registered() -> None:
    container = LocalConfiguration().configure(Container())

    assert enable_repositories(container, NoteRepository) == [NoteRepository]
    assert isinstance(container[NoteRepository], NoteRepository)
    assert container[NoteRepository].template is container[ElasticsearchTemplate]
    assert container[NoteRepository].entity_class is Note


def test_that_repositories_are_found_in_base_packages() -> None:
    found = scan_repositories(["tests.config.sample_repositories"])

    assert found == [NoteRepository]


def test_that_nested_repositories_are_found_on_request() -> None:
    found = scan_repositories(["tests.config.sample_repositories"], consider_nested=True)

    assert set(found) == {NoteRepository, Notebook.PageRepository}


def test_that_non_repository_classes_are_rejected() -> None:
    container = LocalConfiguration().configure(Container())

    with raises(EsDataError):
        enable_repositories(container, Book)  # type: ignore[arg-type]
