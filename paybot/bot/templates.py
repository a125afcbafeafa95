from __future__ import annotations

from paybot.core.errors import ErrorKind

HELP_URL = "https://hederapaybot.netlify.app/help"

# ---------------------------------------------------------------------------
# Fixed replies
# ---------------------------------------------------------------------------

REGISTER_FIRST = (
    'You need to register your Hedera account first. '
    'Please use the "register [accountId]" command to get started.'
)

ASK_RECEIVER = "Please specify who to send tokens to."

REGISTER_FAILED = "Sorry, I couldn't create a Hedera account for you right now. Please try again later."

NEW_ACCOUNT_NOTICE = "I created a new Hedera account for @{handle}. "

RECEIVER_PROVISION_FAILED = "I couldn't create a Hedera account for @{handle}. Please try again later."

EMPTY_RESPONSE = "Sorry, I couldn't process your request at this time."

GENERIC_ERROR = "Sorry, there was an error processing your request. Please try again later."

PROCESSING_ERROR = "Sorry, I encountered an error processing your request. Please try again later."

UNKNOWN_COMMAND = "I didn't understand that command. Here are some examples:"

CHEAT_SHEET = (
    "Quick Command Guide 🚀\n\n"
    "💰 check balance | send HBAR\n"
    "🆕 register account\n"
    "✨ create/mint tokens\n"
    "🎯 airdrop tokens\n"
    f"For full command reference, visit: {HELP_URL}"
)

BALANCE_UNAVAILABLE = (
    "I'm unable to retrieve your balance information at the moment. "
    "Please make sure you've registered your Hedera account with me using the \"register\" command."
)

AGENT_HELP = (
    "I understand you want to interact with the Hedera network. Here are some commands you can use:\n\n"
    "💰 Account: register, check balance\n"
    "🪙 Tokens: create token, send tokens\n"
    "📤 Transfer: airdrop tokens to multiple users\n\n"
    f"For full command reference: {HELP_URL}"
)


def greeting_text(handle: str) -> str:
    return f"Hello @{handle}! I'm your Hedera Helper bot. How can I assist you today?"


def unknown_command_text(hint: str | None = None) -> str:
    return f"{hint or UNKNOWN_COMMAND}\n{CHEAT_SHEET}"


# ---------------------------------------------------------------------------
# Error translations
# ---------------------------------------------------------------------------

ERROR_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.UNREGISTERED: REGISTER_FIRST,
    ErrorKind.MISSING_FIELD: "Some details are missing from your request. Please check the command and try again.",
    ErrorKind.SERVICE_UNAVAILABLE: (
        "Sorry, I encountered an issue communicating with the Hedera network. Please try again later."
    ),
    ErrorKind.INVALID_TOPIC_ID: "The topic ID you provided doesn't exist. Please check the ID and try again.",
    ErrorKind.UNAUTHORIZED: "You don't have permission to perform this action. You might not have the right keys.",
    ErrorKind.INSUFFICIENT_BALANCE: "You don't have enough HBAR balance to complete this transaction.",
    ErrorKind.INSUFFICIENT_FEE: "The transaction fee is insufficient. Please try again with a higher fee.",
    ErrorKind.INVALID_SIGNATURE: "There was an authentication issue with your account.",
    ErrorKind.ACCOUNT_NOT_FOUND: "The account you specified couldn't be found. Please verify the account ID.",
    ErrorKind.TOKEN_NOT_FOUND: "The token you specified couldn't be found. Please verify the token ID.",
    ErrorKind.TOPIC_NOT_FOUND: "The topic you specified couldn't be found. Please verify the topic ID.",
    ErrorKind.TOKEN_NOT_ASSOCIATED: (
        "The token is not associated with this account. "
        "Please associate the token first before performing this operation."
    ),
    ErrorKind.TOKEN_ALREADY_ASSOCIATED: "This token is already associated with your account.",
    ErrorKind.INVALID_TOKEN_ID: "The token ID format is invalid. Please check and try again.",
    ErrorKind.INVALID_ACCOUNT_ID: "The account ID format is invalid. Please check and try again.",
    ErrorKind.MISSING_SUPPLY_KEY: "This token doesn't have a supply key, so new tokens can't be minted.",
    ErrorKind.KEY_REQUIRED: "This operation requires a specific key that your account doesn't have.",
    ErrorKind.MISSING_SUBMIT_KEY: "You don't have permission to submit messages to this topic.",
    ErrorKind.INSUFFICIENT_TOKEN_BALANCE: "You don't have enough tokens to complete this transaction.",
    ErrorKind.INVALID_SOLIDITY_ADDRESS: (
        "The Ethereum address format is invalid. Please use a Hedera account ID instead."
    ),
    ErrorKind.MISSING_TOKEN_NAME: "A token name is required to create a token.",
    ErrorKind.MISSING_TOKEN_SYMBOL: "A token symbol is required to create a token.",
}
