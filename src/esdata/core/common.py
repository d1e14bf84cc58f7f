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
from typing import Any, Mapping, NewType, Optional, Sequence, Union
import uuid

ObjectId = NewType("ObjectId", str)

JSONSerializable = Union[
    str,
    int,
    float,
    bool,
    None,
    Mapping[str, "JSONSerializable"],
    Sequence["JSONSerializable"],
]


def generate_id() -> str:
    return uuid.uuid4().hex[:10]


class EsDataError(Exception):
    def __init__(self, message: str, *args: object) -> None:
        self.message = message
        super().__init__(message, *args)


class MappingError(EsDataError):
    pass


class ConversionError(EsDataError):
    pass


class InvalidQueryError(EsDataError):
    pass


class CriteriaDSLError(EsDataError):
    pass


class ItemNotFoundError(EsDataError):
    def __init__(self, item_id: str, index: Optional[str] = None) -> None:
        if index:
            message = f'Document "{item_id}" not found in index "{index}"'
        else:
            message = f'Document "{item_id}" not found'

        super().__init__(message)
        self.item_id = item_id
        self.index = index


class IncorrectResultSizeError(EsDataError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Expected {expected} result(s) but found {actual}")
        self.expected = expected
        self.actual = actual


class NoSuchIndexError(EsDataError):
    def __init__(self, index: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f'Index "{index}" does not exist')
        self.index = index
        self.__cause__ = cause


class VersionConflictError(EsDataError):
    """Raised when an optimistic locking check fails (version or seq_no/primary_term)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class BulkFailureError(EsDataError):
    def __init__(self, message: str, failed_documents: Mapping[str, Any]) -> None:
        super().__init__(message)
        self.failed_documents = dict(failed_documents)
