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


from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Optional

from elasticsearch import Elasticsearch
from pytest import mark, raises

from esdata import (
    Criteria,
    CriteriaQuery,
    ElasticsearchTemplate,
    Field,
    FieldType,
    NativeQuery,
    PageRequest,
    RuntimeField,
    ScriptedField,
    SeqNoPrimaryTerm,
    Sort,
    VersionConflictError,
    document,
    setting,
)
from esdata.core.query.query import ScriptData
from esdata.core.query.query import ScriptedField as QueryScriptedField
from tests.test_utilities import index_names

pytestmark = mark.integration


@document(index_name=index_names.index_name)
@setting(shards=1, replicas=0)
@dataclass
class Article:
    id: Optional[str] = None
    title: Annotated[Optional[str], Field(type=FieldType.TEXT)] = None
    tags: Annotated[list[str], Field(type=FieldType.KEYWORD)] = field(default_factory=list)
    views: Annotated[Optional[int], Field(type=FieldType.INTEGER)] = None
    published: Annotated[Optional[datetime], Field(type=FieldType.DATE)] = None
    doubled_views: Annotated[Optional[int], ScriptedField()] = None
    seq_no_primary_term: Optional[SeqNoPrimaryTerm] = None


def articles() -> list[Article]:
    return [
        Article(id="1", title="Mapping documents", tags=["odm"], views=5),
        Article(id="2", title="Searching documents", tags=["search", "odm"], views=20),
        Article(id="3", title="Scaling clusters", tags=["ops"], views=50),
    ]


def test_that_a_saved_article_can_be_read_back(template: ElasticsearchTemplate) -> None:
    template.index_ops(Article).create_with_mapping()
    published = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    saved = template.save(Article(title="Hello", tags=["a"], views=1, published=published))

    assert saved.id is not None
    assert saved.seq_no_primary_term is not None

    loaded = template.get(saved.id, Article)

    assert loaded is not None
    assert loaded.title == "Hello"
    assert loaded.tags == ["a"]
    assert loaded.published == published


def test_that_the_index_is_created_with_the_entity_mapping(
    client: Elasticsearch,
    template: ElasticsearchTemplate,
) -> None:
    index_ops = template.index_ops(Article)

    assert index_ops.create_with_mapping()
    assert index_ops.exists()

    properties = index_ops.get_mapping()["properties"]

    assert properties["title"] == {"type": "text"}
    assert properties["tags"] == {"type": "keyword"}
    assert "doubled_views" not in properties
    assert index_ops.get_settings()["index"]["number_of_replicas"] == "0"


def test_that_criteria_queries_find_matching_articles(template: ElasticsearchTemplate) -> None:
    template.index_ops(Article).create_with_mapping()
    template.save_all(articles())

    hits = template.search(
        CriteriaQuery(Criteria("views").greater_than(10), sort=Sort.by("views")),
        Article,
    )

    assert [h.id for h in hits] == ["2", "3"]
    assert template.count(CriteriaQuery(Criteria("tags").is_("odm")), Article) == 2


def test_that_runtime_fields_can_be_queried(template: ElasticsearchTemplate) -> None:
    template.index_ops(Article).create_with_mapping()
    template.save_all(articles())

    query = CriteriaQuery(Criteria("views_times_two").greater_than(30))
    query.add_runtime_field(
        RuntimeField("views_times_two", "long", script="emit(doc['views'].value * 2)")
    )

    assert sorted(a.id for a in template.search(query, Article).contents()) == ["2", "3"]


def test_that_script_fields_fill_scripted_properties(template: ElasticsearchTemplate) -> None:
    template.index_ops(Article).create_with_mapping()
    template.save_all(articles())

    query = CriteriaQuery(Criteria("id").is_("2"))
    query.add_scripted_field(
        QueryScriptedField("doubled_views", ScriptData(source="doc['views'].value * 2"))
    )

    article = template.search(query, Article).contents()[0]

    assert article.doubled_views == 40
    assert article.title == "Searching documents"


def test_that_a_stale_save_is_rejected(template: ElasticsearchTemplate) -> None:
    template.index_ops(Article).create_with_mapping()
    stale = template.save(Article(id="1", title="first"))

    fresh = template.get("1", Article)
    assert fresh is not None
    fresh.title = "second"
    template.save(fresh)

    stale.title = "third"

    with raises(VersionConflictError):
        template.save(stale)


def test_that_documents_can_be_deleted_by_query(template: ElasticsearchTemplate) -> None:
    template.index_ops(Article).create_with_mapping()
    template.save_all(articles())

    response = template.delete_by_query(CriteriaQuery(Criteria("tags").is_("odm")), Article)

    assert response.deleted == 2
    assert not template.exists("1", Article)
    assert template.exists("3", Article)


def test_that_streaming_returns_every_article(template: ElasticsearchTemplate) -> None:
    template.index_ops(Article).create_with_mapping()
    template.save_all(articles())

    query = NativeQuery({"match_all": {}}, pageable=PageRequest.of(0, 2))

    assert sorted(h.id for h in template.search_for_stream(query, Article)) == ["1", "2", "3"]


def test_that_multi_search_answers_each_query(template: ElasticsearchTemplate) -> None:
    template.index_ops(Article).create_with_mapping()
    template.save_all(articles())

    results = template.multi_search(
        [
            CriteriaQuery(Criteria("tags").is_("ops")),
            CriteriaQuery(Criteria("title").is_("documents")),
        ],
        Article,
    )

    assert [len(r) for r in results] == [1, 2]
