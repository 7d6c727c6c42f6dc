"""Visitor identity resolution from the inbound cookie header.

A request either carries a well-formed visitor cookie, in which case the
visitor is reused as-is, or it gets a freshly minted UUIDv4 together with the
Set-Cookie value that hands it to the browser. Resolution never fails: an
unreadable cookie is treated as absent, which at worst over-counts unique
visitors and never drops a pageview.
"""

import re
import uuid
from dataclasses import dataclass
from typing import Union

from starlette.requests import cookie_parser

from sitepulse.config import Settings

VISITOR_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


@dataclass(frozen=True)
class ExistingVisitor:
    """A returning browser; nothing needs to be written or sent back."""

    visitor_id: str

    @property
    def is_new(self) -> bool:
        return False

    @property
    def set_cookie(self) -> None:
        return None


@dataclass(frozen=True)
class NewVisitor:
    """A browser seen for the first time; the cookie must be attached."""

    visitor_id: str
    set_cookie: str

    @property
    def is_new(self) -> bool:
        return True


Identity = Union[ExistingVisitor, NewVisitor]


def generate_visitor_id() -> str:
    """Return a random RFC 4122 version 4 identifier."""
    return str(uuid.uuid4())


def build_set_cookie(visitor_id: str, settings: Settings) -> str:
    """Build the persistent, HTTP-only, same-site-lax visitor cookie."""
    parts = [
        f"{settings.visitor_cookie_name}={visitor_id}",
        f"Max-Age={settings.visitor_cookie_max_age}",
        "Path=/",
        "HttpOnly",
        "SameSite=Lax",
    ]
    if settings.visitor_cookie_secure:
        parts.append("Secure")
    return "; ".join(parts)


def read_visitor_cookie(cookie_header: str | None, cookie_name: str) -> str | None:
    """Extract a well-formed visitor id from a raw Cookie header, if any."""
    if not cookie_header:
        return None
    value = cookie_parser(cookie_header).get(cookie_name)
    if value is None or not VISITOR_ID_PATTERN.match(value):
        return None
    return value


def resolve_identity(cookie_header: str | None, settings: Settings) -> Identity:
    """Reuse the visitor id from the cookie or mint a new one."""
    visitor_id = read_visitor_cookie(cookie_header, settings.visitor_cookie_name)
    if visitor_id is not None:
        return ExistingVisitor(visitor_id=visitor_id)

    visitor_id = generate_visitor_id()
    return NewVisitor(
        visitor_id=visitor_id,
        set_cookie=build_set_cookie(visitor_id, settings),
    )
