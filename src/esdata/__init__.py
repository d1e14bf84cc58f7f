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

"""Object-document mapping and repositories over Elasticsearch.

Example:
    from dataclasses import dataclass
    from typing import Annotated, Optional

    from esdata import ElasticsearchRepository, Field, FieldType, Id, document

    @document(index_name="books")
    @dataclass
    class Book:
        id: Annotated[Optional[str], Id()] = None
        name: Annotated[str, Field(type=FieldType.TEXT)] = ""

    class BookRepository(ElasticsearchRepository[Book, str]):
        def find_by_name(self, name: str) -> list[Book]: ...

The query ``ScriptedField`` (a script attached to a search) lives in
:mod:`esdata.core.query.query`; the name exported here is the property marker.
"""

from esdata.config.client import ClientConfiguration, create_async_client, create_client
from esdata.config.configuration import (
    AsyncElasticsearchConfiguration,
    ElasticsearchConfiguration,
    enable_auditing,
    enable_repositories,
)
from esdata.core.async_template import AsyncElasticsearchTemplate
from esdata.core.auditing import AuditingHandler, AuditorAware, Persistable
from esdata.core.callbacks import (
    AfterConvertCallback,
    AfterLoadCallback,
    AfterSaveCallback,
    BeforeConvertCallback,
    EntityCallbacks,
)
from esdata.core.common import (
    BulkFailureError,
    ConversionError,
    CriteriaDSLError,
    EsDataError,
    IncorrectResultSizeError,
    InvalidQueryError,
    ItemNotFoundError,
    MappingError,
    NoSuchIndexError,
    VersionConflictError,
)
from esdata.core.convert.converter import CustomConversions, MappingElasticsearchConverter
from esdata.core.convert.document import Document, SearchDocument
from esdata.core.convert.value_converters import PropertyValueConverter
from esdata.core.loggers import CompositeLogger, LogLevel, Logger, NullLogger, StdoutLogger
from esdata.core.mapping.annotations import (
    CreatedBy,
    CreatedDate,
    Field,
    GeoPoint,
    GeoPointField,
    Id,
    InnerField,
    LastModifiedBy,
    LastModifiedDate,
    MultiField,
    ReadOnly,
    ScriptedField,
    SeqNoPrimaryTerm,
    Transient,
    Version,
    VersionType,
    document,
    mapping,
    setting,
)
from esdata.core.mapping.context import (
    CamelCaseFieldNamingStrategy,
    FieldNamingStrategy,
    MappingContext,
    PropertyNameFieldNamingStrategy,
    SnakeCaseFieldNamingStrategy,
)
from esdata.core.mapping.field_types import DateFormat, Dynamic, FieldType
from esdata.core.operations import IndexCoordinates, RefreshPolicy
from esdata.core.query.criteria import Criteria
from esdata.core.query.criteria_dsl import criteria
from esdata.core.query.query import (
    CriteriaQuery,
    Direction,
    HighlightField,
    HighlightParameters,
    IndexQuery,
    MoreLikeThisQuery,
    NativeQuery,
    Order,
    Page,
    PageRequest,
    Pageable,
    RuntimeField,
    Sort,
    SourceFilter,
    StringQuery,
    UpdateQuery,
)
from esdata.core.search import SearchHit, SearchHits, SearchPage
from esdata.core.template import ElasticsearchTemplate
from esdata.repository.base import AsyncElasticsearchRepository, ElasticsearchRepository
from esdata.repository.query.query_method import (
    count_query,
    highlight,
    query,
    source_filters,
)
from esdata.repository.query_by_example import (
    Example,
    ExampleMatcher,
    NullHandler,
    StringMatcher,
)

__all__ = [
    "AfterConvertCallback",
    "AfterLoadCallback",
    "AfterSaveCallback",
    "AsyncElasticsearchConfiguration",
    "AsyncElasticsearchRepository",
    "AsyncElasticsearchTemplate",
    "AuditingHandler",
    "AuditorAware",
    "BeforeConvertCallback",
    "BulkFailureError",
    "CamelCaseFieldNamingStrategy",
    "ClientConfiguration",
    "CompositeLogger",
    "ConversionError",
    "CreatedBy",
    "CreatedDate",
    "Criteria",
    "CriteriaDSLError",
    "CriteriaQuery",
    "CustomConversions",
    "DateFormat",
    "Direction",
    "Document",
    "Dynamic",
    "ElasticsearchConfiguration",
    "ElasticsearchRepository",
    "ElasticsearchTemplate",
    "EntityCallbacks",
    "EsDataError",
    "Example",
    "ExampleMatcher",
    "Field",
    "FieldNamingStrategy",
    "FieldType",
    "GeoPoint",
    "GeoPointField",
    "HighlightField",
    "HighlightParameters",
    "Id",
    "IncorrectResultSizeError",
    "IndexCoordinates",
    "IndexQuery",
    "InnerField",
    "InvalidQueryError",
    "ItemNotFoundError",
    "LastModifiedBy",
    "LastModifiedDate",
    "LogLevel",
    "Logger",
    "MappingContext",
    "MappingElasticsearchConverter",
    "MappingError",
    "MoreLikeThisQuery",
    "MultiField",
    "NativeQuery",
    "NoSuchIndexError",
    "NullHandler",
    "NullLogger",
    "Order",
    "Page",
    "PageRequest",
    "Pageable",
    "Persistable",
    "PropertyNameFieldNamingStrategy",
    "PropertyValueConverter",
    "ReadOnly",
    "RefreshPolicy",
    "RuntimeField",
    "ScriptedField",
    "SearchDocument",
    "SearchHit",
    "SearchHits",
    "SearchPage",
    "SeqNoPrimaryTerm",
    "SnakeCaseFieldNamingStrategy",
    "Sort",
    "SourceFilter",
    "StdoutLogger",
    "StringMatcher",
    "StringQuery",
    "Transient",
    "UpdateQuery",
    "Version",
    "VersionConflictError",
    "VersionType",
    "count_query",
    "create_async_client",
    "create_client",
    "criteria",
    "document",
    "enable_auditing",
    "enable_repositories",
    "highlight",
    "mapping",
    "query",
    "setting",
    "source_filters",
]
