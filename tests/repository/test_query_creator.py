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

from pytest import fixture, raises

from esdata import Direction, InvalidQueryError, MappingContext, Order, document
from esdata.core.query.processor import CriteriaQueryProcessor
from esdata.repository.query.part_tree import PartTreeParser
from esdata.repository.query.query_creator import ElasticsearchQueryCreator


@document(index_name="movies")
@dataclass
class Movie:
    id: Optional[str] = None
    title: Optional[str] = None
    year: Optional[int] = None
    rating: Optional[float] = None
    released: Optional[bool] = None


def query_string(value: str, field: str) -> dict[str, Any]:
    return {"query_string": {"query": value, "fields": [field], "default_operator": "and"}}


@fixture
def parser(mapping_context: MappingContext) -> PartTreeParser:
    return PartTreeParser(mapping_context)


def created_query(parser: PartTreeParser, method_name: str, *arguments: Any) -> dict[str, Any]:
    tree = parser.parse(method_name, Movie)
    criteria_query = ElasticsearchQueryCreator(tree).create_query(arguments)
    query = CriteriaQueryProcessor().create_query(criteria_query.criteria)
    assert query is not None
    return query


def test_that_and_parts_become_must_clauses(parser: PartTreeParser) -> None:
    assert created_query(parser, "find_by_title_and_year_greater_than", "Alien", 1970) == {
        "bool": {
            "must": [
                query_string("Alien", "title"),
                {"range": {"year": {"gt": 1970}}},
            ]
        }
    }


def test_that_or_groups_become_should_clauses(parser: PartTreeParser) -> None:
    assert created_query(parser, "find_by_title_or_year_between", "Alien", 1970, 1980) == {
        "bool": {
            "should": [
                {"bool": {"must": [query_string("Alien", "title")]}},
                {"bool": {"must": [{"range": {"year": {"gte": 1970, "lte": 1980}}}]}},
            ]
        }
    }


def test_that_a_none_argument_matches_missing_values(parser: PartTreeParser) -> None:
    assert created_query(parser, "find_by_title", None) == {
        "bool": {"must_not": [{"exists": {"field": "title"}}]}
    }


def test_that_negated_parts_become_must_not_clauses(parser: PartTreeParser) -> None:
    assert created_query(parser, "find_by_released_true_and_title_not", "Alien") == {
        "bool": {
            "must_not": [query_string("Alien", "title")],
            "must": [query_string("true", "released")],
        }
    }


def test_that_in_accepts_a_collection_argument(parser: PartTreeParser) -> None:
    assert created_query(parser, "find_by_title_in", ["Alien", "Aliens"]) == {
        "bool": {
            "must": [{"query_string": {"query": '"Alien" "Aliens"', "fields": ["title"]}}]
        }
    }


def test_that_regex_parts_use_a_regexp_query(parser: PartTreeParser) -> None:
    query = created_query(parser, "find_by_title_matches_regex", "Ali.*")

    assert query["bool"]["must"][0] == {"regexp": {"title": {"value": "Ali.*"}}}


def test_that_limits_and_ordering_are_carried_into_the_query(parser: PartTreeParser) -> None:
    tree = parser.parse("find_top2_by_released_true_order_by_rating_desc", Movie)

    query = ElasticsearchQueryCreator(tree).create_query([])

    assert query.max_results == 2
    assert list(query.sort or ()) == [Order("rating", Direction.DESC)]


def test_that_a_method_without_predicate_matches_everything(parser: PartTreeParser) -> None:
    tree = parser.parse("find_all_order_by_year", Movie)

    query = ElasticsearchQueryCreator(tree).create_query([])

    assert query.criteria.is_empty
    assert CriteriaQueryProcessor().create_query(query.criteria) is None


def test_that_the_argument_count_must_match(parser: PartTreeParser) -> None:
    tree = parser.parse("find_by_title_and_year", Movie)

    with raises(InvalidQueryError):
        ElasticsearchQueryCreator(tree).create_query(["Alien"])
