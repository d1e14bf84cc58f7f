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


from typing import Any

from pytest import fixture, raises

from esdata import Criteria, FieldType, GeoPoint, InvalidQueryError
from esdata.core.query.criteria import CriteriaEntry, CriteriaField, OperationKey
from esdata.core.query.processor import (
    CriteriaFilterProcessor,
    CriteriaQueryProcessor,
    escape,
)


def query_string(value: str, field: str) -> dict[str, Any]:
    return {"query_string": {"query": value, "fields": [field], "default_operator": "and"}}


@fixture
def processor() -> CriteriaQueryProcessor:
    return CriteriaQueryProcessor()


def test_that_an_equals_condition_becomes_a_query_string(
    processor: CriteriaQueryProcessor,
) -> None:
    query = processor.create_query(Criteria("name").is_("Bond"))

    assert query == {"bool": {"must": [query_string("Bond", "name")]}}


def test_that_query_string_syntax_characters_are_escaped() -> None:
    assert escape('a+b (c) "d"') == 'a\\+b \\(c\\) \\"d\\"'


def test_that_and_links_are_combined_in_must(processor: CriteriaQueryProcessor) -> None:
    criteria = Criteria("first_name").is_("James").and_("last_name").is_("Bond")

    assert processor.create_query(criteria) == {
        "bool": {
            "must": [
                query_string("James", "first_name"),
                query_string("Bond", "last_name"),
            ]
        }
    }


def test_that_or_links_are_combined_in_should(processor: CriteriaQueryProcessor) -> None:
    criteria = Criteria("first_name").is_("James").or_("last_name").is_("Bond")

    assert processor.create_query(criteria) == {
        "bool": {
            "should": [
                query_string("James", "first_name"),
                query_string("Bond", "last_name"),
            ]
        }
    }


def test_that_negated_or_links_keep_their_negation(processor: CriteriaQueryProcessor) -> None:
    criteria = Criteria("name").is_("Bond").or_(Criteria("age").is_(30).not_())

    assert processor.create_query(criteria) == {
        "bool": {
            "should": [
                query_string("Bond", "name"),
                {"bool": {"must_not": [query_string("30", "age")]}},
            ]
        }
    }


def test_that_a_negated_first_link_is_negated_among_should_clauses(
    processor: CriteriaQueryProcessor,
) -> None:
    criteria = Criteria("name").is_null().or_("age").is_(30)

    assert processor.create_query(criteria) == {
        "bool": {
            "should": [
                {"bool": {"must_not": [{"exists": {"field": "name"}}]}},
                query_string("30", "age"),
            ]
        }
    }


def test_that_a_negated_first_link_goes_into_must_not(
    processor: CriteriaQueryProcessor,
) -> None:
    criteria = Criteria("name").is_("Bond").not_().and_("age").greater_than(30)

    assert processor.create_query(criteria) == {
        "bool": {
            "must_not": [query_string("Bond", "name")],
            "must": [{"range": {"age": {"gt": 30}}}],
        }
    }


def test_that_wildcard_conditions_analyze_the_wildcard(
    processor: CriteriaQueryProcessor,
) -> None:
    contains = processor.create_query(Criteria("name").contains("on"))
    starts = processor.create_query(Criteria("name").starts_with("Bo"))
    ends = processor.create_query(Criteria("name").ends_with("nd"))

    assert contains == {
        "bool": {
            "must": [
                {"query_string": {"query": "*on*", "fields": ["name"], "analyze_wildcard": True}}
            ]
        }
    }
    assert starts["bool"]["must"][0]["query_string"]["query"] == "Bo*"  # type: ignore[index]
    assert ends["bool"]["must"][0]["query_string"]["query"] == "*nd"  # type: ignore[index]


def test_that_blanks_are_rejected_in_wildcard_values() -> None:
    with raises(ValueError):
        Criteria("name").contains("James Bond")


def test_that_range_conditions_use_range_queries(processor: CriteriaQueryProcessor) -> None:
    criteria = Criteria("age").between(18, None).and_("height").less_than_equal(190)

    assert processor.create_query(criteria) == {
        "bool": {
            "must": [
                {"range": {"age": {"gte": 18}}},
                {"range": {"height": {"lte": 190}}},
            ]
        }
    }


def test_that_several_conditions_on_one_field_are_combined(
    processor: CriteriaQueryProcessor,
) -> None:
    criteria = Criteria("age").greater_than_equal(18).less_than(65)

    assert processor.create_query(criteria) == {
        "bool": {
            "must": [
                {
                    "bool": {
                        "must": [
                            {"range": {"age": {"gte": 18}}},
                            {"range": {"age": {"lt": 65}}},
                        ]
                    }
                }
            ]
        }
    }


def test_that_in_uses_terms_for_keyword_fields(processor: CriteriaQueryProcessor) -> None:
    criteria = Criteria(CriteriaField("status", field_type=FieldType.KEYWORD)).in_("new", "open")

    assert processor.create_query(criteria) == {
        "bool": {"must": [{"terms": {"status": ["new", "open"]}}]}
    }


def test_that_in_uses_a_quoted_query_string_for_text_fields(
    processor: CriteriaQueryProcessor,
) -> None:
    criteria = Criteria("name").in_(["Bond", "Moneypenny"])

    assert processor.create_query(criteria) == {
        "bool": {
            "must": [
                {"query_string": {"query": '"Bond" "Moneypenny"', "fields": ["name"]}}
            ]
        }
    }


def test_that_not_in_negates_terms_for_keyword_fields(
    processor: CriteriaQueryProcessor,
) -> None:
    criteria = Criteria(CriteriaField("status", field_type=FieldType.KEYWORD)).not_in("closed")

    assert processor.create_query(criteria) == {
        "bool": {"must": [{"bool": {"must_not": [{"terms": {"status": ["closed"]}}]}}]}
    }


def test_that_exists_and_is_null_are_mirrored(processor: CriteriaQueryProcessor) -> None:
    assert processor.create_query(Criteria("email").exists()) == {
        "bool": {"must": [{"exists": {"field": "email"}}]}
    }
    assert processor.create_query(Criteria("email").is_null()) == {
        "bool": {"must_not": [{"exists": {"field": "email"}}]}
    }


def test_that_empty_and_not_empty_use_wildcards(processor: CriteriaQueryProcessor) -> None:
    assert processor.create_query(Criteria("tags").not_empty()) == {
        "bool": {"must": [{"wildcard": {"tags": {"wildcard": "*"}}}]}
    }
    assert processor.create_query(Criteria("tags").empty()) == {
        "bool": {
            "must": [
                {
                    "bool": {
                        "must_not": [{"wildcard": {"tags": {"wildcard": "*"}}}],
                        "must": [{"exists": {"field": "tags"}}],
                    }
                }
            ]
        }
    }


def test_that_match_conditions_set_the_operator(processor: CriteriaQueryProcessor) -> None:
    any_term = processor.create_query(Criteria("text").matches("secret agent"))
    all_terms = processor.create_query(Criteria("text").matches_all("secret agent"))

    assert any_term == {
        "bool": {"must": [{"match": {"text": {"query": "secret agent", "operator": "or"}}}]}
    }
    assert all_terms == {
        "bool": {"must": [{"match": {"text": {"query": "secret agent", "operator": "and"}}}]}
    }


def test_that_a_regular_expression_becomes_a_regexp_query(
    processor: CriteriaQueryProcessor,
) -> None:
    assert processor.create_query(Criteria("code").regexp("00[0-9]")) == {
        "bool": {"must": [{"regexp": {"code": {"value": "00[0-9]"}}}]}
    }


def test_that_a_boost_is_added_to_the_query_body(processor: CriteriaQueryProcessor) -> None:
    query = processor.create_query(Criteria("name").is_("Bond").boost(2.0))

    assert query == {
        "bool": {
            "must": [
                {
                    "query_string": {
                        "query": "Bond",
                        "fields": ["name"],
                        "default_operator": "and",
                        "boost": 2.0,
                    }
                }
            ]
        }
    }


def test_that_nested_fields_are_wrapped_in_a_nested_query(
    processor: CriteriaQueryProcessor,
) -> None:
    criteria = Criteria(CriteriaField("author.name", path="author")).is_("Fleming")

    assert processor.create_query(criteria) == {
        "bool": {
            "must": [
                {
                    "nested": {
                        "path": "author",
                        "query": query_string("Fleming", "author.name"),
                        "score_mode": "avg",
                    }
                }
            ]
        }
    }


def test_that_sub_criteria_form_their_own_bool_query(
    processor: CriteriaQueryProcessor,
) -> None:
    criteria = Criteria("type").is_("agent").sub_criteria(
        Criteria("name").is_("Bond").or_("name").is_("Trevelyan")
    )

    assert processor.create_query(criteria) == {
        "bool": {
            "must": [
                query_string("agent", "type"),
                {
                    "bool": {
                        "should": [
                            query_string("Bond", "name"),
                            query_string("Trevelyan", "name"),
                        ]
                    }
                },
            ]
        }
    }


def test_that_empty_criteria_produce_no_query(processor: CriteriaQueryProcessor) -> None:
    assert processor.create_query(Criteria()) is None


def test_that_geo_conditions_are_not_part_of_the_query(
    processor: CriteriaQueryProcessor,
) -> None:
    criteria = Criteria("location").within(GeoPoint(lat=51.5, lon=-0.1), "10km")

    assert processor.create_query(criteria) is None


def test_that_geo_distance_and_bounding_box_become_filters() -> None:
    criteria = (
        Criteria("location")
        .within(GeoPoint(lat=51.5, lon=-0.1), "10km")
        .and_("area")
        .bounding_box("52,-1", "50,1")
    )

    assert CriteriaFilterProcessor().create_filter(criteria) == {
        "bool": {
            "must": [
                {"geo_distance": {"distance": "10km", "location": {"lat": 51.5, "lon": -0.1}}},
                {"geo_bounding_box": {"area": {"top_left": "52,-1", "bottom_right": "50,1"}}},
            ]
        }
    }


def test_that_a_filter_only_operation_cannot_be_used_as_a_query(
    processor: CriteriaQueryProcessor,
) -> None:
    criteria = Criteria("location")
    criteria.query_criteria_entries.append(
        CriteriaEntry(OperationKey.WITHIN, (GeoPoint(lat=1, lon=1), "1km"))
    )

    with raises(InvalidQueryError):
        processor.create_query(criteria)
