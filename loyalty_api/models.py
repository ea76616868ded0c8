"""
Pydantic models for API requests and responses.
"""

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field


# ============================================================================
# Registration / Users
# ============================================================================

class RegisterRequest(BaseModel):
    """Request to register a user."""

    name: str = Field(..., min_length=1, description="Display name")
    email: EmailStr = Field(..., description="Email address (unique)")
    wallet: str = Field(..., min_length=1, description="Wallet address (0x...)")
    referral_code: Optional[str] = Field(None, description="Referral code of an existing user")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Alice",
                    "email": "alice@example.com",
                    "wallet": "0x1234567890abcdef1234567890abcdef12345678",
                    "referral_code": "1a2b3c4d"
                }
            ]
        }
    }


class UserResponse(BaseModel):
    """Public view of a user."""

    id: str = Field(..., description="User ID")
    name: str = Field(..., description="Display name")
    wallet: str = Field(..., description="Wallet address")
    balance: Decimal = Field(..., description="Monetary balance")
    points: int = Field(..., description="Loyalty points")
    tier: str = Field(..., description="Loyalty tier")
    referral_code: Optional[str] = Field(None, description="Code other users can register with")
    voting_power: Optional[str] = Field(None, description="Governance voting power at registration")


class ReferralsResponse(BaseModel):
    """Direct referrals of a user."""

    user_id: str = Field(..., description="Referrer user ID")
    direct: list[str] = Field(default_factory=list, description="Referred user IDs")


# ============================================================================
# Deposit
# ============================================================================

class DepositRequest(BaseModel):
    """Request to deposit into a user's balance."""

    amount: Decimal = Field(..., gt=0, allow_inf_nan=False, description="Positive amount to deposit")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "amount": 25
                }
            ]
        }
    }


class DepositResponse(BaseModel):
    """Balance and points after a deposit."""

    id: str = Field(..., description="User ID")
    balance: Decimal = Field(..., description="New balance")
    points: int = Field(..., description="New points total")


# ============================================================================
# Merkle Proofs
# ============================================================================

class ProofStepModel(BaseModel):
    """One sibling hash on the path to the root."""

    hash: str = Field(..., description="Sibling hash (0x...)")
    side: Literal["left", "right"] = Field(..., description="Side the sibling occupied")


class BuildProofRequest(BaseModel):
    """Request to prove a user's wallet is in a wallet list."""

    wallet_list: list[str] = Field(..., min_length=1, description="Wallet addresses forming the tree")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "wallet_list": ["0xA", "0xB", "0xC", "0xD"]
                }
            ]
        }
    }


class BuildProofResponse(BaseModel):
    """Inclusion proof plus the points awarded for it."""

    proof: list[ProofStepModel] = Field(..., description="Ordered sibling hashes, leaf to root")
    root: str = Field(..., description="Merkle root (0x...)")
    leaf: str = Field(..., description="Leaf hash of the user's wallet (0x...)")
    points: int = Field(..., description="Points after the proof bonus")


class VerifyProofRequest(BaseModel):
    """Request to verify an inclusion proof."""

    leaf_address: Optional[str] = Field(None, description="Wallet address to hash into the leaf")
    leaf: Optional[str] = Field(None, description="Precomputed leaf hash (0x...)")
    root: str = Field(..., description="Expected Merkle root (0x...)")
    proof: list[ProofStepModel] = Field(default_factory=list, description="Proof steps")


class VerifyProofResponse(BaseModel):
    """Verification outcome."""

    valid: bool = Field(..., description="Whether the proof recomputes the root")


# ============================================================================
# Rewards
# ============================================================================

class RewardModel(BaseModel):
    """Reward catalog entry."""

    id: str
    name: str
    points: int
    stock: int
    tier_required: str


# ============================================================================
# Health Check
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    evm_rpc: bool = Field(..., description="EVM RPC connectivity")
    users: int = Field(..., description="Registered users")
    governance_token: Optional[str] = Field(None, description="Configured governance token address")
