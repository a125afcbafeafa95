from __future__ import annotations

from enum import Enum


class BotError(Exception):
    """Base bot error."""


class UpstreamError(BotError):
    """Raised when an upstream service is unavailable or times out."""


class ValidationError(BotError):
    """Raised for invalid user input."""


class FetchError(UpstreamError):
    """Raised when a batch of mentions could not be fetched."""


class ErrorKind(str, Enum):
    UNREGISTERED = "unregistered"
    MISSING_FIELD = "missing_field"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INSUFFICIENT_TOKEN_BALANCE = "insufficient_token_balance"
    INSUFFICIENT_FEE = "insufficient_fee"
    UNAUTHORIZED = "unauthorized"
    INVALID_SIGNATURE = "invalid_signature"
    ACCOUNT_NOT_FOUND = "account_not_found"
    TOKEN_NOT_FOUND = "token_not_found"
    TOPIC_NOT_FOUND = "topic_not_found"
    INVALID_ACCOUNT_ID = "invalid_account_id"
    INVALID_TOKEN_ID = "invalid_token_id"
    INVALID_TOPIC_ID = "invalid_topic_id"
    INVALID_SOLIDITY_ADDRESS = "invalid_solidity_address"
    TOKEN_NOT_ASSOCIATED = "token_not_associated"
    TOKEN_ALREADY_ASSOCIATED = "token_already_associated"
    MISSING_SUPPLY_KEY = "missing_supply_key"
    MISSING_SUBMIT_KEY = "missing_submit_key"
    KEY_REQUIRED = "key_required"
    MISSING_TOKEN_NAME = "missing_token_name"
    MISSING_TOKEN_SYMBOL = "missing_token_symbol"
    UNKNOWN = "unknown"
