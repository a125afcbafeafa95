from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class BalanceScope(str, Enum):
    ALL = "all"
    NATIVE = "native"
    TOKEN = "token"
    NONE = "none"


class TokenOpKind(str, Enum):
    CREATE = "create"
    MINT = "mint"
    MINT_NFT = "mint_nft"
    ASSOCIATE = "associate"
    DISSOCIATE = "dissociate"
    REJECT = "reject"
    HOLDERS = "holders"
    AIRDROP = "airdrop"
    CLAIM = "claim"
    PENDING = "pending"


class TopicOpKind(str, Enum):
    INFO = "info"
    SUBMIT = "submit"
    CREATE = "create"
    MESSAGES = "messages"
    DELETE = "delete"


@dataclass(frozen=True, kw_only=True)
class BaseCommand:
    original_text: str

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True, kw_only=True)
class Transfer(BaseCommand):
    amount: str
    unit: str
    receiver_handle: str
    native: bool = False


@dataclass(frozen=True, kw_only=True)
class BalanceQuery(BaseCommand):
    scope: BalanceScope
    token_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class TokenOp(BaseCommand):
    kind: TokenOpKind
    token_id: str | None = None
    params: tuple[tuple[str, str], ...] = ()

    def get(self, key: str, default: str | None = None) -> str | None:
        for k, v in self.params:
            if k == key:
                return v
        return default

    def flag(self, key: str) -> bool:
        return self.get(key) == "true"

    @property
    def receivers(self) -> tuple[str, ...]:
        raw = self.get("receivers") or ""
        return tuple(r for r in raw.split(",") if r)

    @property
    def name(self) -> str:
        return f"TokenOp.{self.kind.value}"


@dataclass(frozen=True, kw_only=True)
class TopicOp(BaseCommand):
    kind: TopicOpKind
    topic_id: str | None = None
    message: str | None = None
    memo: str | None = None
    params: tuple[tuple[str, str], ...] = ()

    def get(self, key: str, default: str | None = None) -> str | None:
        for k, v in self.params:
            if k == key:
                return v
        return default

    @property
    def name(self) -> str:
        return f"TopicOp.{self.kind.value}"


@dataclass(frozen=True, kw_only=True)
class Register(BaseCommand):
    account_id: str


@dataclass(frozen=True, kw_only=True)
class RegisterIntent(BaseCommand):
    pass


@dataclass(frozen=True, kw_only=True)
class Greeting(BaseCommand):
    text: str = ""


@dataclass(frozen=True, kw_only=True)
class Unknown(BaseCommand):
    raw_text: str


Command = Union[Transfer, BalanceQuery, TokenOp, TopicOp, Register, RegisterIntent, Greeting, Unknown]


def build_params(**values: str | bool | None) -> tuple[tuple[str, str], ...]:
    """Freeze optional keyword values into a sorted params tuple, dropping empties."""
    out: list[tuple[str, str]] = []
    for key, value in sorted(values.items()):
        if value is None or value is False or value == "":
            continue
        out.append((key, "true" if value is True else str(value)))
    return tuple(out)
