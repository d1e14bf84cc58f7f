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
from typing import Annotated, Optional

from pytest import fixture, mark, raises

from esdata import Direction, Field, FieldType, InvalidQueryError, MappingContext, Order, document
from esdata.repository.query.part_tree import (
    Part,
    PartTree,
    PartTreeParser,
    PartType,
    is_query_method_name,
)


@dataclass
class Author:
    first_name: Optional[str] = None
    last_name: Optional[str] = None


@document(index_name="books")
@dataclass
class Book:
    id: Optional[str] = None
    name: Optional[str] = None
    price: Optional[float] = None
    available: Optional[bool] = None
    author: Annotated[Optional[Author], Field(type=FieldType.NESTED)] = None


@fixture
def parser(mapping_context: MappingContext) -> PartTreeParser:
    return PartTreeParser(mapping_context)


def parse(parser: PartTreeParser, method_name: str) -> PartTree:
    return parser.parse(method_name, Book)


def test_that_a_single_property_is_compared_for_equality(parser: PartTreeParser) -> None:
    tree = parse(parser, "find_by_name")

    assert tree.verb == "find"
    assert tree.or_parts == [[Part("name", PartType.SIMPLE_PROPERTY)]]
    assert tree.argument_count == 1
    assert not tree.sort.is_sorted


def test_that_and_parts_are_grouped_together(parser: PartTreeParser) -> None:
    tree = parse(parser, "find_by_name_and_price_greater_than")

    assert tree.or_parts == [
        [
            Part("name", PartType.SIMPLE_PROPERTY),
            Part("price", PartType.GREATER_THAN),
        ]
    ]
    assert tree.argument_count == 2


def test_that_or_starts_a_new_group(parser: PartTreeParser) -> None:
    tree = parse(parser, "find_by_name_or_price_less_than_equal")

    assert tree.or_parts == [
        [Part("name", PartType.SIMPLE_PROPERTY)],
        [Part("price", PartType.LESS_THAN_EQUAL)],
    ]


@mark.parametrize(
    ("suffix", "part_type", "argument_count"),
    [
        ("between", PartType.BETWEEN, 2),
        ("is_not_null", PartType.IS_NOT_NULL, 0),
        ("is_null", PartType.IS_NULL, 0),
        ("exists", PartType.EXISTS, 0),
        ("less_than", PartType.LESS_THAN, 1),
        ("is_greater_than_equal", PartType.GREATER_THAN_EQUAL, 1),
        ("before", PartType.BEFORE, 1),
        ("after", PartType.AFTER, 1),
        ("not_like", PartType.NOT_LIKE, 1),
        ("like", PartType.LIKE, 1),
        ("starting_with", PartType.STARTING_WITH, 1),
        ("starts_with", PartType.STARTING_WITH, 1),
        ("ends_with", PartType.ENDING_WITH, 1),
        ("is_not_empty", PartType.IS_NOT_EMPTY, 0),
        ("is_empty", PartType.IS_EMPTY, 0),
        ("not_containing", PartType.NOT_CONTAINING, 1),
        ("contains", PartType.CONTAINING, 1),
        ("not_in", PartType.NOT_IN, 1),
        ("in", PartType.IN, 1),
        ("matches_regex", PartType.REGEX, 1),
        ("not", PartType.NEGATING_SIMPLE_PROPERTY, 1),
        ("is", PartType.SIMPLE_PROPERTY, 1),
        ("equals", PartType.SIMPLE_PROPERTY, 1),
    ],
)
def test_that_keywords_select_the_part_type(
    parser: PartTreeParser,
    suffix: str,
    part_type: PartType,
    argument_count: int,
) -> None:
    tree = parse(parser, f"find_by_name_{suffix}")

    assert tree.parts == [Part("name", part_type)]
    assert tree.argument_count == argument_count


def test_that_boolean_keywords_take_no_argument(parser: PartTreeParser) -> None:
    tree = parse(parser, "count_by_available_true_and_price_is_null")

    assert tree.is_count
    assert tree.parts == [
        Part("available", PartType.TRUE),
        Part("price", PartType.IS_NULL),
    ]
    assert tree.argument_count == 0


def test_that_nested_property_paths_are_resolved(parser: PartTreeParser) -> None:
    tree = parse(parser, "find_by_author_last_name_and_author_first_name_starting_with")

    assert tree.parts == [
        Part("author.last_name", PartType.SIMPLE_PROPERTY),
        Part("author.first_name", PartType.STARTING_WITH),
    ]


def test_that_the_subject_can_limit_the_results(parser: PartTreeParser) -> None:
    assert parse(parser, "find_first_by_name").max_results == 1
    assert parse(parser, "find_top5_by_name").max_results == 5
    assert not parse(parser, "find_by_name").is_limiting


def test_that_distinct_is_recognized(parser: PartTreeParser) -> None:
    assert parse(parser, "find_distinct_by_name").is_distinct


def test_that_order_by_produces_a_sort(parser: PartTreeParser) -> None:
    tree = parse(parser, "find_top3_by_available_true_order_by_price_desc_name")

    assert tree.max_results == 3
    assert tree.parts == [Part("available", PartType.TRUE)]
    assert list(tree.sort) == [
        Order("price", Direction.DESC),
        Order("name", Direction.ASC),
    ]


def test_that_a_method_without_predicate_has_no_parts(parser: PartTreeParser) -> None:
    tree = parse(parser, "find_all_order_by_name_desc")

    assert tree.or_parts == []
    assert list(tree.sort) == [Order("name", Direction.DESC)]


def test_that_ignore_case_is_recorded(parser: PartTreeParser) -> None:
    assert parse(parser, "find_by_name_ignore_case").parts == [
        Part("name", PartType.SIMPLE_PROPERTY, ignore_case=True)
    ]

    tree = parse(parser, "find_by_name_and_author_last_name_all_ignore_case")

    assert all(part.ignore_case for part in tree.parts)


@mark.parametrize(
    ("method_name", "attribute"),
    [
        ("delete_by_name", "is_delete"),
        ("remove_by_name", "is_delete"),
        ("exists_by_name", "is_exists"),
        ("stream_by_name", "is_stream"),
        ("count_by_name", "is_count"),
    ],
)
def test_that_the_verb_selects_the_kind_of_query(
    parser: PartTreeParser,
    method_name: str,
    attribute: str,
) -> None:
    assert getattr(parse(parser, method_name), attribute)


@mark.parametrize(
    "method_name",
    [
        "find_by_title",
        "find_by_name_and",
        "find_by_name_xor_price",
        "find_top0_by_name",
        "find_by_name_order_by_publisher",
        "save_by_name",
    ],
)
def test_that_invalid_method_names_are_rejected(parser: PartTreeParser, method_name: str) -> None:
    with raises(InvalidQueryError):
        parse(parser, method_name)


def test_that_query_method_names_are_recognized() -> None:
    assert is_query_method_name("find_by_name")
    assert is_query_method_name("count")
    assert is_query_method_name("search_by_name")
    assert not is_query_method_name("findings")
    assert not is_query_method_name("save_all")
