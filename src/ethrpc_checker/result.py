# SPDX-License-Identifier: AGPL-3.0

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Status(Enum):
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"

    @property
    def priority(self) -> int:
        return _PRIORITY[self]

    def __str__(self) -> str:
        return self.value


_PRIORITY = {
    Status.OK: 1,
    Status.WARNING: 2,
    Status.ERROR: 3,
}


@dataclass(frozen=True)
class RpcResult:
    """Verdict of a single probe.

    `value` is already in display form: an int, a decimal or hex string, or a
    pretty-printed JSON document.
    """

    method: str
    status: Status
    value: Any = None
    warnings: tuple[str, ...] = ()
    error: str | None = None

    @staticmethod
    def ok(method: str, value: Any) -> "RpcResult":
        return RpcResult(method, Status.OK, value)

    @staticmethod
    def failed(method: str, message: str) -> "RpcResult":
        return RpcResult(method, Status.ERROR, error=message)

    @staticmethod
    def from_checks(method: str, value: Any, warnings: list[str]) -> "RpcResult":
        status = Status.WARNING if warnings else Status.OK
        return RpcResult(method, status, value, tuple(warnings))

    @property
    def is_error(self) -> bool:
        return self.status is Status.ERROR

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "status": self.status.value,
            "value": self.value,
            "warnings": list(self.warnings),
            "error": self.error,
        }


def worst_status(results: list[RpcResult]) -> Status:
    if not results:
        return Status.OK
    return max((r.status for r in results), key=lambda s: s.priority)
