"""
Read-only EVM client for governance token voting power.
"""

from decimal import Decimal
from typing import Any, Optional, Protocol

import structlog
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from .config import Settings
from .errors import VotingPowerUnavailable

logger = structlog.get_logger()


# Contract ABI (minimal)
GOVERNANCE_TOKEN_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class VotingPowerSource(Protocol):
    async def get_voting_power(self, wallet: str) -> str: ...


def format_ether(balance: int) -> str:
    """Format a wei amount as a decimal ether string ("1.5", "0.0")."""
    text = format(Decimal(Web3.from_wei(balance, "ether")).normalize(), "f")
    return text if "." in text else f"{text}.0"


class GovernanceClient:
    """
    Async client reading `balanceOf` on the governance token.
    """

    def __init__(self, settings: Settings, w3: Optional[AsyncWeb3] = None):
        self.settings = settings
        self.w3 = w3 or AsyncWeb3(
            AsyncHTTPProvider(
                settings.evm_rpc_url,
                request_kwargs={"timeout": settings.evm_timeout_seconds},
            )
        )

    async def check_connectivity(self) -> bool:
        """Check if EVM RPC is reachable."""
        try:
            await self.w3.eth.block_number
            return True
        except Exception:
            return False

    def get_token_contract(self) -> Any:
        """Get governance token contract instance."""
        if not self.settings.governance_token_address:
            raise VotingPowerUnavailable("GOVERNANCE_TOKEN_ADDRESS not configured")
        return self.w3.eth.contract(
            address=self.w3.to_checksum_address(self.settings.governance_token_address),
            abi=GOVERNANCE_TOKEN_ABI,
        )

    async def get_voting_power(self, wallet: str) -> str:
        """
        Token balance of `wallet`, formatted in ether units.

        Raises:
            VotingPowerUnavailable: on any lookup failure
        """
        contract = self.get_token_contract()
        try:
            owner = self.w3.to_checksum_address(wallet)
            balance = await contract.functions.balanceOf(owner).call()
        except Exception as e:
            logger.error("voting_power_lookup_failed", wallet=wallet, error=str(e))
            raise VotingPowerUnavailable(f"Voting power lookup failed for {wallet}: {e}") from e

        return format_ether(int(balance))
