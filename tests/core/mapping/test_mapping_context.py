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

from pytest import mark, raises

from esdata import (
    CamelCaseFieldNamingStrategy,
    Field,
    FieldType,
    Id,
    MappingContext,
    MappingError,
    SeqNoPrimaryTerm,
    SnakeCaseFieldNamingStrategy,
    Version,
    document,
)
from esdata.core.mapping.context import AuditRole


@dataclass
class Address:
    street_name: Optional[str] = None
    city: Annotated[Optional[str], Field(name="town", type=FieldType.KEYWORD)] = None


@document(index_name="people")
@dataclass
class Person:
    document_id: Optional[str] = None
    first_name: Optional[str] = None
    address: Annotated[Optional[Address], Field(type=FieldType.NESTED)] = None
    version: Annotated[Optional[int], Version()] = None


@dataclass
class ExplicitId:
    id: Optional[str] = None
    key: Annotated[Optional[str], Id()] = None


@dataclass
class TwoIds:
    first: Annotated[Optional[str], Id()] = None
    second: Annotated[Optional[str], Id()] = None


@dataclass
class VersionAndSeqNo:
    id: Optional[str] = None
    version: Annotated[Optional[int], Version()] = None
    seq_no_primary_term: Optional[SeqNoPrimaryTerm] = None


counter = {"value": 0}


def next_index_name() -> str:
    counter["value"] += 1
    return f"dynamic-{counter['value']}"


@document(index_name=next_index_name)
@dataclass
class DynamicIndex:
    id: Optional[str] = None


class NotAnEntity:
    pass


def test_that_the_document_id_property_is_detected_by_name() -> None:
    entity = MappingContext().get_persistent_entity(Person)

    assert entity.id_property is not None
    assert entity.id_property.name == "document_id"
    assert entity.version_property is not None
    assert entity.index_name == "people"


def test_that_an_id_annotation_takes_precedence_over_the_property_name() -> None:
    entity = MappingContext().get_persistent_entity(ExplicitId)

    assert entity.id_property is not None
    assert entity.id_property.name == "key"


def test_that_more_than_one_id_annotation_is_rejected() -> None:
    with raises(MappingError):
        MappingContext().get_persistent_entity(TwoIds)


def test_that_version_and_seq_no_primary_term_cannot_be_combined() -> None:
    with raises(MappingError):
        MappingContext().get_persistent_entity(VersionAndSeqNo)


def test_that_a_callable_index_name_is_evaluated_on_every_access() -> None:
    entity = MappingContext().get_persistent_entity(DynamicIndex)

    first = entity.index_name
    second = entity.index_name

    assert first != second
    assert first.startswith("dynamic-")


def test_that_non_dataclass_types_are_rejected() -> None:
    with raises(MappingError):
        MappingContext().get_persistent_entity(NotAnEntity)


def test_that_nested_entities_are_registered_with_their_owner() -> None:
    context = MappingContext()
    context.get_persistent_entity(Person)

    assert context.has_persistent_entity(Address)
    assert context.resolve_type_alias(f"{Address.__module__}.Address") is Address


def test_that_explicit_field_names_win_over_the_naming_strategy() -> None:
    context = MappingContext(field_naming_strategy=CamelCaseFieldNamingStrategy())
    entity = context.get_persistent_entity(Address)

    street = entity.get_property("street_name")
    city = entity.get_property("city")

    assert street is not None and street.field_name == "streetName"
    assert city is not None and city.field_name == "town"


@mark.parametrize(
    "property_name, expected",
    [
        ("first_name", "firstName"),
        ("name", "name"),
        ("a_long_property_name", "aLongPropertyName"),
    ],
)
def test_that_camel_case_naming_converts_snake_case_names(
    property_name: str,
    expected: str,
) -> None:
    assert CamelCaseFieldNamingStrategy().get_field_name(property_name) == expected


def test_that_snake_case_naming_converts_camel_case_names() -> None:
    assert SnakeCaseFieldNamingStrategy().get_field_name("firstName") == "first_name"


def test_that_a_dotted_property_path_is_resolved_through_nested_entities() -> None:
    context = MappingContext()

    path = context.get_property_path(Person, "address.city")

    assert [p.field_name for p in path] == ["address", "town"]
    assert path[0].is_nested_path


def test_that_unknown_path_segments_end_the_resolution() -> None:
    path = MappingContext().get_property_path(Person, "address.unknown")

    assert [p.name for p in path] == ["address"]


def test_that_audit_roles_are_not_assigned_without_audit_annotations() -> None:
    entity = MappingContext().get_persistent_entity(Person)

    assert entity.audit_properties == {}
    assert AuditRole.CREATED_DATE not in entity.audit_properties
