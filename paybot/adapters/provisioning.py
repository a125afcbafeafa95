from __future__ import annotations

import logging

from paybot.bot.templates import REGISTER_FAILED
from paybot.core.errors import UpstreamError
from paybot.core.fmt import is_account_id
from paybot.core.http import ResilientHTTPClient
from paybot.core.ports import ProvisionResult
from paybot.services.users import UserService

logger = logging.getLogger(__name__)


def hashscan_account_url(network: str, account_id: str) -> str:
    return f"https://hashscan.io/{network}/account/{account_id}"


class AccountProvisioner:
    """Creates a funded ledger account through the provisioning service and links it to a handle."""

    def __init__(self, http: ResilientHTTPClient, users: UserService, url: str, network: str = "testnet") -> None:
        self.http = http
        self.users = users
        self.url = url
        self.network = network

    async def create_account_for(
        self, handle: str, external_id: str | None, initial_funding: float
    ) -> ProvisionResult:
        handle = handle.lstrip("@")
        existing = await self.users.get_registered_account_id(handle)
        if existing:
            return ProvisionResult(
                success=False,
                message=f"User @{handle} already has a Hedera account: {existing}",
                account_id=existing,
            )

        try:
            data = await self.http.post_json(self.url, {"initialBalance": initial_funding, "network": self.network})
        except UpstreamError as exc:
            logger.warning("provision_failed", extra={"event": "provision_failed", "handle": handle, "error": str(exc)})
            return ProvisionResult(success=False, message=REGISTER_FAILED)

        account_id = str((data or {}).get("accountId") or "")
        if not is_account_id(account_id):
            logger.warning("provision_bad_response", extra={"event": "provision_bad_response", "handle": handle})
            return ProvisionResult(success=False, message=REGISTER_FAILED)

        await self.users.link_account(handle, account_id, external_id)
        logger.info("account_provisioned", extra={"event": "account_provisioned", "handle": handle})
        return ProvisionResult(
            success=True,
            message=(
                f"Hedera account {account_id} created for @{handle}. "
                f"Check details: {hashscan_account_url(self.network, account_id)}"
            ),
            account_id=account_id,
        )
