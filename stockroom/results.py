"""
Stockroom — コマンド / クエリの結果型

例外を HTTP 層まで飛ばさず、成功・失敗を値として返す。
失敗理由は not_found と store_failure の 2 種類だけ。
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    STORE_FAILURE = "store_failure"


class Result(BaseModel, Generic[T]):
    success: bool
    data: T | None = None
    error: str | None = None
    reason: ErrorKind | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "Result":
        return cls(success=True, data=data)

    @classmethod
    def not_found(cls, error: str) -> "Result":
        return cls(success=False, error=error, reason=ErrorKind.NOT_FOUND)

    @classmethod
    def store_failure(cls, error: str, data: Any = None) -> "Result":
        return cls(success=False, error=error, reason=ErrorKind.STORE_FAILURE, data=data)
