"""
Gateway header validation: Content-Type, Content-Length, Authorization, TUS.

Stateless. Each check returns a HeaderCheck; callers decide the status code.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

TUS_CONTENT_TYPE = "application/offset+octet-stream"


@dataclass(frozen=True)
class HeaderCheck:
    valid: bool
    error: str | None = None
    missing: list[str] = field(default_factory=list)
    size: int | None = None
    too_large: bool = False


_OK = HeaderCheck(valid=True)


def get_header(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup that works for plain dicts too."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, val in headers.items():
        if key.lower() == lowered:
            return val
    return None


def media_type(content_type: str | None) -> str:
    """'application/json; charset=utf-8' -> 'application/json'."""
    return (content_type or "").split(";")[0].strip().lower()


def validate_content_type(
    content_type: str | None, expected: Iterable[str] = ()
) -> HeaderCheck:
    """Content-Type must be present and, if `expected` is given, contain one of them."""
    if not content_type:
        return HeaderCheck(valid=False, error="Content-Type header is missing")
    expected = list(expected)
    if not expected:
        return _OK
    for exp in expected:
        if exp in content_type:
            return _OK
    return HeaderCheck(
        valid=False,
        error=f"Invalid Content-Type. Expected: {', '.join(expected)}, Got: {content_type}",
    )


def validate_required_headers(
    headers: Mapping[str, str], required: Iterable[str]
) -> HeaderCheck:
    missing = [name for name in required if get_header(headers, name) is None]
    if missing:
        return HeaderCheck(
            valid=False,
            error=f"Missing required headers: {', '.join(missing)}",
            missing=missing,
        )
    return _OK


def validate_authorization_header(
    value: str | None, expected_scheme: str | None = None
) -> HeaderCheck:
    if not value:
        return HeaderCheck(valid=False, error="Authorization header missing")
    if expected_scheme and not value.lower().startswith(expected_scheme.lower()):
        return HeaderCheck(
            valid=False,
            error=f"Authorization header must use {expected_scheme} scheme",
        )
    return _OK


def validate_tus_headers(headers: Mapping[str, str], method: str) -> HeaderCheck:
    """Tus-Resumable always; POST adds Upload-Length; PATCH adds Upload-Offset + Content-Type."""
    required = ["Tus-Resumable"]
    if method == "POST":
        required.append("Upload-Length")
    elif method == "PATCH":
        required.extend(["Upload-Offset", "Content-Type"])
    return validate_required_headers(headers, required)


def validate_content_length(value: str | None, max_size: int) -> HeaderCheck:
    """
    Content-Length must be a positive integer no larger than `max_size`.
    `too_large` distinguishes the 413 case from malformed input.
    """
    if not value:
        return HeaderCheck(valid=False, error="Content-Length header is missing")
    try:
        size = int(value.strip())
    except ValueError:
        return HeaderCheck(valid=False, error="Content-Length must be a numeric value")
    if size > max_size:
        return HeaderCheck(
            valid=False,
            error=f"File size ({size} bytes) exceeds maximum allowed size ({max_size} bytes)",
            size=size,
            too_large=True,
        )
    if size <= 0:
        return HeaderCheck(valid=False, error="Invalid Content-Length value", size=size)
    return HeaderCheck(valid=True, size=size)


def parse_non_negative_int(value: str | None) -> int | None:
    """Upload-Length / Upload-Offset parser; None when absent or malformed."""
    if value is None:
        return None
    value = value.strip()
    if not (value.isascii() and value.isdigit()):
        return None
    return int(value)
