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

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Optional, Sequence, Union

from elasticsearch import ApiError, ConflictError, NotFoundError

from esdata.core.common import EsDataError, NoSuchIndexError, VersionConflictError
from esdata.core.loggers import Logger


@dataclass(frozen=True)
class IndexCoordinates:
    index_names: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.index_names:
            raise ValueError("At least one index name is required")

    @staticmethod
    def of(*index_names: str) -> IndexCoordinates:
        return IndexCoordinates(tuple(index_names))

    @property
    def index_name(self) -> str:
        return self.index_names[0]

    def as_request_index(self) -> str:
        return ",".join(self.index_names)

    def __str__(self) -> str:
        return self.as_request_index()


@dataclass(frozen=True)
class IndexedObjectInformation:
    id: Optional[str]
    index: Optional[str] = None
    seq_no: Optional[int] = None
    primary_term: Optional[int] = None
    version: Optional[int] = None

    @staticmethod
    def from_response(item: Any) -> IndexedObjectInformation:
        return IndexedObjectInformation(
            id=item.get("_id"),
            index=item.get("_index"),
            seq_no=item.get("_seq_no"),
            primary_term=item.get("_primary_term"),
            version=item.get("_version"),
        )


class RefreshPolicy(Enum):
    NONE = "none"
    IMMEDIATE = "immediate"
    WAIT_UNTIL = "wait_until"

    def to_request_value(self) -> Union[bool, str]:
        return {
            RefreshPolicy.NONE: False,
            RefreshPolicy.IMMEDIATE: True,
            RefreshPolicy.WAIT_UNTIL: "wait_for",
        }[self]


def _error_type(exc: ApiError) -> Optional[str]:
    body = exc.body if isinstance(exc.body, dict) else {}
    error = body.get("error")

    if isinstance(error, dict):
        return error.get("type")
    if isinstance(error, str):
        return error
    return None


class ExceptionTranslator:
    """Maps client exceptions to the framework's error hierarchy.

    Exceptions with no framework counterpart are returned unchanged.
    """

    def __init__(self, logger: Logger) -> None:
        self._logger = logger

    def translate(self, exc: Exception, index: Optional[str] = None) -> Exception:
        if isinstance(exc, EsDataError):
            return exc

        if isinstance(exc, NotFoundError) and _error_type(exc) == "index_not_found_exception":
            missing = index
            body = exc.body if isinstance(exc.body, dict) else {}
            if isinstance(body.get("error"), dict):
                missing = body["error"].get("index", index)
            self._logger.error(f"Index not found: {missing}")
            return NoSuchIndexError(missing or "", cause=exc)

        if isinstance(exc, ConflictError):
            self._logger.error(f"Version conflict in index {index}: {exc}")
            return VersionConflictError(
                f"Cannot index a document due to seq_no+primary_term or version conflict "
                f"in index {index}",
                cause=exc,
            )

        return exc

    @contextmanager
    def translating(self, index: Optional[str] = None) -> Iterator[None]:
        try:
            yield
        except ApiError as exc:
            translated = self.translate(exc, index)
            if translated is exc:
                raise
            raise translated from exc


def index_names_of(indices: Union[str, Sequence[str], IndexCoordinates]) -> IndexCoordinates:
    if isinstance(indices, IndexCoordinates):
        return indices
    if isinstance(indices, str):
        return IndexCoordinates.of(indices)
    return IndexCoordinates.of(*indices)


def response_body(response: Any) -> Any:
    """Returns the body of a client response; plain dicts pass through."""
    return getattr(response, "body", response)
