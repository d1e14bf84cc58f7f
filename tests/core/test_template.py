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
from datetime import timedelta
from typing import Annotated, Any, Optional
from unittest.mock import MagicMock

from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import ApiError, ConflictError, NotFoundError
from pytest import fixture, raises

from esdata import (
    BulkFailureError,
    Criteria,
    CriteriaQuery,
    ElasticsearchTemplate,
    EsDataError,
    Field,
    FieldType,
    IndexCoordinates,
    Logger,
    MappingElasticsearchConverter,
    NativeQuery,
    NoSuchIndexError,
    RefreshPolicy,
    VersionConflictError,
    document,
    setting,
)


@document(index_name="books")
@setting(shards=2, replicas=0)
@dataclass
class Book:
    id: Optional[str] = None
    title: Annotated[Optional[str], Field(type=FieldType.TEXT)] = None
    author_name: Annotated[Optional[str], Field(name="author", type=FieldType.KEYWORD)] = None


def api_error(error_type: type[ApiError], status: int, body: Any) -> ApiError:
    meta = ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    return error_type(message=f"status {status}", meta=meta, body=body)


def hit(id: str, title: str, **extra: Any) -> dict[str, Any]:
    return {
        "_index": "books",
        "_id": id,
        "_score": 1.0,
        "_source": {"_class": f"{Book.__module__}.Book", "id": id, "title": title},
        **extra,
    }


def search_response(*hits: dict[str, Any], scroll_id: Optional[str] = None) -> dict[str, Any]:
    response: dict[str, Any] = {
        "hits": {
            "total": {"value": len(hits), "relation": "eq"},
            "max_score": 1.0 if hits else None,
            "hits": list(hits),
        }
    }
    if scroll_id:
        response["_scroll_id"] = scroll_id
    return response


@fixture
def mock_client() -> MagicMock:
    return MagicMock()


@fixture
def book_template(
    mock_client: MagicMock,
    converter: MappingElasticsearchConverter,
    logger: Logger,
) -> ElasticsearchTemplate:
    return ElasticsearchTemplate(mock_client, converter, logger=logger)


def test_that_saving_an_entity_writes_back_the_assigned_id(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.index.return_value = {
        "_index": "books",
        "_id": "generated",
        "_version": 1,
        "_seq_no": 0,
        "_primary_term": 1,
        "result": "created",
    }

    saved = book_template.save(Book(title="Dune", author_name="Herbert"))

    assert saved.id == "generated"
    mock_client.index.assert_called_once_with(
        index="books",
        document={
            "_class": f"{Book.__module__}.Book",
            "title": "Dune",
            "author": "Herbert",
        },
    )


def test_that_the_refresh_policy_is_sent_with_writes(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.index.return_value = {"_id": "1"}

    book_template.with_refresh_policy(RefreshPolicy.WAIT_UNTIL).save(Book(id="1"))

    assert mock_client.index.call_args.kwargs["refresh"] == "wait_for"


def test_that_a_version_conflict_is_translated(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.index.side_effect = api_error(
        ConflictError, 409, {"error": {"type": "version_conflict_engine_exception"}}
    )

    with raises(VersionConflictError):
        book_template.save(Book(id="1", title="Dune"))


def test_that_a_missing_index_is_translated(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.search.side_effect = api_error(
        NotFoundError,
        404,
        {"error": {"type": "index_not_found_exception", "index": "books"}},
    )

    with raises(NoSuchIndexError) as exc_info:
        book_template.search(NativeQuery(), Book)

    assert exc_info.value.index == "books"


def test_that_getting_a_missing_document_returns_none(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.get.side_effect = api_error(
        NotFoundError, 404, {"_index": "books", "_id": "1", "found": False}
    )

    assert book_template.get("1", Book) is None


def test_that_a_found_document_is_read_into_an_entity(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.get.return_value = {
        "_index": "books",
        "_id": "1",
        "found": True,
        "_source": {"title": "Dune", "author": "Herbert"},
    }

    book = book_template.get("1", Book)

    assert book == Book(id="1", title="Dune", author_name="Herbert")
    mock_client.get.assert_called_once_with(index="books", id="1")


def test_that_bulk_failures_report_every_failed_document(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.bulk.return_value = {
        "errors": True,
        "items": [
            {"index": {"_id": "1", "status": 201}},
            {"index": {"_id": "2", "status": 400, "error": {"reason": "mapper_parsing"}}},
        ],
    }

    with raises(BulkFailureError) as exc_info:
        book_template.save_all([Book(id="1"), Book(id="2")])

    assert exc_info.value.failed_documents == {"2": "mapper_parsing"}


def test_that_save_all_updates_every_entity(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.bulk.return_value = {
        "errors": False,
        "items": [
            {"index": {"_id": "a", "_seq_no": 1, "_primary_term": 1}},
            {"index": {"_id": "b", "_seq_no": 2, "_primary_term": 1}},
        ],
    }

    saved = book_template.save_all([Book(title="one"), Book(title="two")])

    assert [b.id for b in saved] == ["a", "b"]


def test_that_search_hits_carry_metadata_and_property_highlights(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.search.return_value = search_response(
        hit("1", "Dune", highlight={"author": ["<em>Herbert</em>"]}, sort=[1]),
        hit("2", "Dune Messiah"),
    )

    hits = book_template.search(CriteriaQuery(Criteria("title").contains("Dune")), Book)

    assert hits.total_hits == 2
    assert hits.contents() == [Book(id="1", title="Dune"), Book(id="2", title="Dune Messiah")]
    assert hits.search_hits[0].id == "1"
    assert hits.search_hits[0].score == 1.0
    assert list(hits.search_hits[0].sort_values) == [1]
    assert hits.search_hits[0].get_highlight_field("author_name") == ["<em>Herbert</em>"]


def test_that_search_one_requests_a_single_hit(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.search.return_value = search_response(hit("1", "Dune"))

    query = NativeQuery().set_max_results(5)

    found = book_template.search_one(query, Book)

    assert found is not None
    assert found.content.title == "Dune"
    assert mock_client.search.call_args.kwargs["size"] == 1
    assert query.max_results == 5


def test_that_count_returns_the_document_count(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.count.return_value = {"count": 42}

    assert book_template.count(NativeQuery(), Book) == 42
    mock_client.count.assert_called_once_with(index="books", query={"match_all": {}})


def test_that_deleting_by_id_needs_a_target(book_template: ElasticsearchTemplate) -> None:
    with raises(EsDataError):
        book_template.delete("1")


def test_that_deleting_a_missing_document_is_not_an_error(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.delete.side_effect = api_error(NotFoundError, 404, {"result": "not_found"})

    assert book_template.delete("1", Book) == "1"


def test_that_streaming_scrolls_through_all_pages_and_clears_the_scroll(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.search.return_value = search_response(
        hit("1", "one"), hit("2", "two"), scroll_id="scroll-1"
    )
    mock_client.scroll.side_effect = [
        search_response(hit("3", "three"), scroll_id="scroll-1"),
        search_response(scroll_id="scroll-1"),
    ]

    titles = [h.content.title for h in book_template.search_for_stream(NativeQuery(), Book)]

    assert titles == ["one", "two", "three"]
    assert mock_client.search.call_args.kwargs["scroll"] == "60000ms"
    mock_client.clear_scroll.assert_called_once_with(scroll_id=["scroll-1"])


def test_that_streaming_stops_at_max_results(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.search.return_value = search_response(
        hit("1", "one"), hit("2", "two"), scroll_id="scroll-1"
    )
    query = NativeQuery().set_max_results(1)
    query.scroll_time = timedelta(seconds=5)

    hits = list(book_template.search_for_stream(query, Book))

    assert len(hits) == 1
    assert query.max_results == 1
    mock_client.scroll.assert_not_called()
    mock_client.clear_scroll.assert_called_once_with(scroll_id=["scroll-1"])


def test_that_a_failed_multi_search_item_raises(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.msearch.return_value = {
        "responses": [search_response(hit("1", "one")), {"error": {"reason": "boom"}}]
    }

    with raises(EsDataError):
        book_template.multi_search([NativeQuery(), NativeQuery()], Book)


def test_that_an_index_is_created_with_settings_and_mapping(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.indices.create.return_value = {"acknowledged": True}

    assert book_template.index_ops(Book).create_with_mapping()

    kwargs = mock_client.indices.create.call_args.kwargs
    assert kwargs["index"] == "books"
    assert kwargs["settings"] == {
        "index": {"number_of_shards": 2, "number_of_replicas": 0, "refresh_interval": "1s"}
    }
    assert kwargs["mappings"]["properties"]["author"] == {"type": "keyword"}


def test_that_index_existence_is_checked_on_the_client(
    mock_client: MagicMock,
    book_template: ElasticsearchTemplate,
) -> None:
    mock_client.indices.exists.return_value = False

    assert not book_template.index_ops(IndexCoordinates.of("other")).exists()
    mock_client.indices.exists.assert_called_once_with(index="other")


def test_that_the_index_prefix_is_prepended_to_entity_indices(
    mock_client: MagicMock,
    converter: MappingElasticsearchConverter,
) -> None:
    template = ElasticsearchTemplate(mock_client, converter, index_prefix="test-")

    assert template.get_index_coordinates_for(Book) == IndexCoordinates.of("test-books")
