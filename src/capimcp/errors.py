# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/errors.py
"""
Error taxonomy shared by the validator, the providers, the control-plane
facade and the lifecycle service.

Every failure raised by capimcp is a ``CapiError`` carrying a closed
``ErrorCode``, a terse user-safe message, an optional details bag and an
optional cause. Only ``to_safe_dict`` output may cross the trust boundary.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class ErrorCode(str, Enum):
    # caller fault
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"

    # system fault
    INTERNAL = "INTERNAL_ERROR"
    TIMEOUT = "TIMEOUT"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    KUBERNETES_API = "KUBERNETES_API_ERROR"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    UNAVAILABLE = "SERVICE_UNAVAILABLE"
    PROVIDER_VALIDATION = "PROVIDER_VALIDATION"
    DEPENDENCY_FAILURE = "DEPENDENCY_FAILURE"
    WORKLOAD_CLUSTER = "WORKLOAD_CLUSTER"


CALLER_FAULT_CODES = frozenset(
    {
        ErrorCode.INVALID_INPUT,
        ErrorCode.NOT_FOUND,
        ErrorCode.ALREADY_EXISTS,
        ErrorCode.UNAUTHORIZED,
        ErrorCode.FORBIDDEN,
        ErrorCode.VALIDATION_FAILED,
        ErrorCode.PRECONDITION_FAILED,
    }
)

# detail keys that may be returned to the caller
SAFE_DETAIL_KEYS = ("field", "fields", "resource", "operation", "provider", "cluster_name")

REDACTED = "[REDACTED]"


class CapiError(RuntimeError):
    """Base class for every classified capimcp failure."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.code.value}: {self.message} (caused by: {self.cause})"
        return f"{self.code.value}: {self.message}"

    def __repr__(self) -> str:
        return f"CapiError(code={self.code.value!r}, message={self.message!r})"

    @property
    def caller_fault(self) -> bool:
        return self.code in CALLER_FAULT_CODES

    def with_details(self, key: Optional[str] = None, value: Any = None, **more: Any) -> "CapiError":
        if key is not None:
            self.details[key] = value
        self.details.update(more)
        return self


def new_error(code: ErrorCode, message: str, **details: Any) -> CapiError:
    return CapiError(code, message, details=details)


def wrap_error(exc: Optional[BaseException], code: ErrorCode, message: str) -> Optional[CapiError]:
    """
    Re-wrap *exc* with operation context.

    Details already attached to a wrapped ``CapiError`` are preserved so the
    field/resource information survives as the error propagates upward.
    """
    if exc is None:
        return None
    details = dict(exc.details) if isinstance(exc, CapiError) else {}
    return CapiError(code, message, details=details, cause=exc)


def _walk(exc: Optional[BaseException]) -> Iterable[BaseException]:
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = getattr(exc, "cause", None) or exc.__cause__


def _has_code(exc: Optional[BaseException], code: ErrorCode) -> bool:
    return isinstance(exc, CapiError) and exc.code == code


def is_not_found(exc: Optional[BaseException]) -> bool:
    if exc is None:
        return False
    if _has_code(exc, ErrorCode.NOT_FOUND):
        return True
    text = str(exc).lower()
    return "not found" in text or "does not exist" in text


def is_already_exists(exc: Optional[BaseException]) -> bool:
    if exc is None:
        return False
    if _has_code(exc, ErrorCode.ALREADY_EXISTS):
        return True
    text = str(exc).lower()
    return "already exists" in text or "duplicate" in text


def is_timeout(exc: Optional[BaseException]) -> bool:
    if exc is None:
        return False
    if _has_code(exc, ErrorCode.TIMEOUT) or isinstance(exc, TimeoutError):
        return True
    text = str(exc).lower()
    return "timeout" in text or "timed out" in text or "deadline exceeded" in text


def is_unauthorized(exc: Optional[BaseException]) -> bool:
    if exc is None:
        return False
    if _has_code(exc, ErrorCode.UNAUTHORIZED):
        return True
    text = str(exc).lower()
    return "unauthorized" in text or "authentication failed" in text


def error_code(exc: Optional[BaseException]) -> Optional[ErrorCode]:
    if exc is None:
        return None
    for e in _walk(exc):
        if isinstance(e, CapiError):
            return e.code
    if isinstance(exc, TimeoutError):
        return ErrorCode.TIMEOUT
    return ErrorCode.INTERNAL


def user_message(exc: Optional[BaseException]) -> str:
    """High-level message without internal details."""
    if exc is None:
        return ""
    if isinstance(exc, CapiError):
        return exc.message
    if is_not_found(exc):
        return "The requested resource was not found"
    if is_already_exists(exc):
        return "A resource with that name already exists"
    if is_timeout(exc):
        return "The operation timed out"
    if is_unauthorized(exc):
        return "Authentication failed"
    return "An internal error occurred"


# ---------------------------------------------------------------------
# Sanitisation
# ---------------------------------------------------------------------
_SENSITIVE_PATTERNS = [
    # "Bearer eyJhbGci..." / "Authorization: Bearer ..."
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9_\-.=+/]+"), "Bearer " + REDACTED),
    # AWS access key ids
    (re.compile(r"\b(?:AKIA|ASIA)[A-Z0-9]{12,}\b"), REDACTED),
    # aws_secret_access_key=..., aws_session_token: ...
    (re.compile(r"(?i)\baws_[a-z_]+\s*[=:]\s*\S+"), REDACTED),
    # secret/token/password/key followed by a value
    (
        re.compile(
            r"(?i)\b(secret|token|password|passwd|api[_-]?key|key)(s?)(\s*[=:]\s*|\s+)([^\s,;\"']+)"
        ),
        r"\1\2\3" + REDACTED,
    ),
]


def sanitize_message(message: Optional[str]) -> str:
    """Scrub known secret shapes out of *message* before it is logged or returned."""
    if not message:
        return ""
    result = message
    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def to_safe_dict(exc: BaseException) -> Dict[str, Any]:
    """
    Trust-boundary form of an error: code, sanitized message and the
    allow-listed detail keys. Causes and stack traces never leave the process.
    """
    code = error_code(exc) or ErrorCode.INTERNAL
    out: Dict[str, Any] = {
        "code": code.value,
        "message": sanitize_message(user_message(exc)),
    }
    if isinstance(exc, CapiError):
        safe = {}
        for k in SAFE_DETAIL_KEYS:
            if k not in exc.details:
                continue
            v = exc.details[k]
            safe[k] = sanitize_message(v) if isinstance(v, str) else v
        if safe:
            out["details"] = safe
    return out


# ---------------------------------------------------------------------
# Combining violations
# ---------------------------------------------------------------------
def combine_errors(errors: List[CapiError]) -> Optional[CapiError]:
    """
    Fold several violations into one error so the caller sees every problem
    at once. A single violation is returned unchanged.
    """
    errors = [e for e in errors if e is not None]
    if not errors:
        return None
    if len(errors) == 1:
        return errors[0]

    codes = {e.code for e in errors}
    code = codes.pop() if len(codes) == 1 else ErrorCode.VALIDATION_FAILED

    lines = [f"{len(errors)} validation errors:"]
    lines += [f"{i}. {e.message}" for i, e in enumerate(errors, start=1)]

    merged: Dict[str, Any] = {}
    fields: List[str] = []
    for e in errors:
        for k, v in e.details.items():
            if k == "field":
                if v not in fields:
                    fields.append(v)
                continue
            if k == "fields":
                fields.extend(f for f in v if f not in fields)
                continue
            merged.setdefault(k, v)
    if fields:
        merged["fields"] = fields
    merged["violations"] = [e.message for e in errors]

    return CapiError(code, "\n".join(lines), details=merged)
