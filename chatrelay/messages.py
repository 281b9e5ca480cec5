"""Line formatting and parsing for the chat relay wire protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .constants import (
    DEPARTURE_FMT,
    FIELD_SEP,
    PM_FIELDS,
    PM_MARKER,
    PRIVATE_PREFIX,
    USER_LIST_PREFIX,
    WELCOME_FMT,
)


@dataclass(frozen=True)
class PrivateRequest:
    """A parsed ``PM|target|sender|body`` line."""

    target: str
    sender: str
    body: str


def is_private_request(line: str) -> bool:
    return line.startswith(PM_MARKER)


def parse_private_request(line: str) -> PrivateRequest | None:
    """
    Split a private-message request into its fields.

    The first two splits are ungreedy and the body keeps any further
    separators. Returns None when fewer than four fields are present; such
    requests are dropped without a reply.
    """
    parts = line.split(FIELD_SEP, PM_FIELDS - 1)
    if len(parts) < PM_FIELDS:
        return None
    _, target, sender, body = parts
    return PrivateRequest(target=target, sender=sender, body=body)


def format_welcome(nick: str) -> str:
    return WELCOME_FMT.format(nick=nick)


def format_private(sender: str, body: str) -> str:
    return FIELD_SEP.join((PRIVATE_PREFIX, sender, body))


def format_user_list(nicks: Iterable[str]) -> str:
    return USER_LIST_PREFIX + FIELD_SEP + FIELD_SEP.join(nicks)


def format_departure(nick: str) -> str:
    return DEPARTURE_FMT.format(nick=nick)
