"""Gateway access control by wallet address."""

from __future__ import annotations

import logging
import os
from typing import Any

logger = logging.getLogger("nexusnode.access")


def check_gateway_access(wallet_address: Any) -> bool:
    """Return True if the wallet may perform gateway updates.

    GATEWAY_WALLET set to "*" allows every wallet.
    """
    allowed = os.environ.get("GATEWAY_WALLET", "")
    if allowed == "*":
        return True
    if wallet_address != allowed:
        logger.error("Updates Not Allowed for the Given Wallet Address")
        return False
    return True