from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from paybot.core.errors import ErrorKind


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class Deferred:
    hint: str | None = None


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    detail: str = ""


Outcome = Union[Text, Deferred, Failure]


@dataclass(frozen=True)
class Reply:
    target_mention_id: str
    text: str
