"""
Loyalty API - points, tiers and referrals on top of wallet registration.

Provides REST endpoints for:
- Registering users (POST /register)
- Reading users and referrals (GET /users/{id}, GET /users/{id}/referrals)
- Deposits (PUT /users/{id}/deposit)
- Merkle inclusion proofs (POST /users/{id}/proof, POST /proofs/verify)
- Reward catalog (GET /rewards, GET /users/{id}/rewards)
- Health checks (GET /health)
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import structlog
import uvicorn
from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .audit import LogAuditSink
from .cache import InMemoryTierCache, TierCache
from .config import Settings, get_settings
from .errors import ConflictError, LoyaltyError, ValidationError, VotingPowerUnavailable
from .governance import GovernanceClient, VotingPowerSource
from .ledger import Deposit, LedgerStore, PointsPolicy, ProofBonus, RewardEntry, User
from .merkle import ProofStep, Side, build_proof, from_hex, hash_leaf, verify_proof
from .models import (
    BuildProofRequest,
    BuildProofResponse,
    DepositRequest,
    DepositResponse,
    HealthResponse,
    ProofStepModel,
    ReferralsResponse,
    RegisterRequest,
    RewardModel,
    UserResponse,
    VerifyProofRequest,
    VerifyProofResponse,
)
from .notifier import MailRelayConfig, MailRelayNotifier, Notifier
from .randomness import RandomSource, SecureRandomSource


def configure_logging(settings: Settings) -> None:
    """Route structlog through stdlib logging, JSON lines to stderr and optional file."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file))
    logging.basicConfig(format="%(message)s", level=settings.log_level.upper(), handlers=handlers)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


configure_logging(get_settings())

logger = structlog.get_logger()


# Global collaborators (initialized at startup)
_store: LedgerStore | None = None
_governance: GovernanceClient | None = None
_tier_cache: InMemoryTierCache | None = None
_notifier: MailRelayNotifier | None = None
_random_source: RandomSource = SecureRandomSource()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    global _store, _governance, _tier_cache, _notifier

    settings = get_settings()

    _store = LedgerStore(policy=PointsPolicy.from_settings(settings), audit=LogAuditSink())
    _governance = GovernanceClient(settings)
    _tier_cache = InMemoryTierCache()
    _notifier = MailRelayNotifier(
        MailRelayConfig(
            url=settings.mail_relay_url,
            sender=settings.mail_from,
            timeout=settings.mail_timeout_seconds,
        )
    )

    logger.info(
        "API started",
        version=__version__,
        host=settings.host,
        port=settings.port,
        evm_rpc=settings.evm_rpc_url,
        governance_token=settings.governance_token_address,
    )

    yield

    # Cleanup
    if _notifier:
        await _notifier.close()

    logger.info("API stopped")


# Create FastAPI app
app = FastAPI(
    title="Loyalty API",
    description="Points, tiers and referrals with governance voting power and Merkle proofs",
    version=__version__,
    lifespan=lifespan,
)


# Add CORS middleware
_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LoyaltyError)
async def loyalty_error_handler(request: Request, exc: LoyaltyError) -> JSONResponse:
    """Translate domain errors into HTTP responses."""
    logger.warning(
        "Request failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


# ============================================================================
# Dependencies
# ============================================================================


def get_store() -> LedgerStore:
    if _store is None:
        raise HTTPException(status_code=503, detail="Ledger not initialized")
    return _store


def get_voting_power_source() -> VotingPowerSource:
    if _governance is None:
        raise HTTPException(status_code=503, detail="EVM client not initialized")
    return _governance


def get_tier_cache() -> TierCache:
    if _tier_cache is None:
        raise HTTPException(status_code=503, detail="Tier cache not initialized")
    return _tier_cache


def get_notifier() -> Notifier:
    if _notifier is None:
        raise HTTPException(status_code=503, detail="Notifier not initialized")
    return _notifier


def get_random_source() -> RandomSource:
    return _random_source


# ============================================================================
# Side effects (run after the response, never fail the request)
# ============================================================================


async def mirror_tier(tier_cache: TierCache, user_id: str, tier: str) -> None:
    try:
        await tier_cache.set_tier_mirror(user_id, tier)
    except Exception as e:
        logger.error("cache_write_failed", user_id=user_id, error=str(e))


async def send_notification(notifier: Notifier, recipient: str, template: str, data: dict[str, Any]) -> None:
    try:
        await notifier.notify(recipient, template, data)
    except Exception as e:
        logger.error("email_failed", to=recipient, template=template, error=str(e))


def to_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        wallet=user.wallet,
        balance=user.balance,
        points=user.points,
        tier=user.tier.value,
        referral_code=user.referral_code,
        voting_power=user.voting_power,
    )


def to_reward_model(entry: RewardEntry) -> RewardModel:
    return RewardModel(
        id=entry.id,
        name=entry.name,
        points=entry.points,
        stock=entry.stock,
        tier_required=entry.tier_required.value,
    )


# ============================================================================
# Health Check
# ============================================================================


@app.get("/health", response_model=HealthResponse)
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:
    """
    Check API health and connectivity.

    Returns service status and connectivity to the EVM RPC.
    """
    evm_ok = False
    if _governance:
        evm_ok = await _governance.check_connectivity()

    return HealthResponse(
        status="ok" if evm_ok else "degraded",
        version=__version__,
        evm_rpc=evm_ok,
        users=len(_store) if _store is not None else 0,
        governance_token=settings.governance_token_address,
    )


# ============================================================================
# Registration
# ============================================================================


@app.post("/register", response_model=UserResponse, status_code=201)
async def register(
    request: RegisterRequest,
    background_tasks: BackgroundTasks,
    store: LedgerStore = Depends(get_store),
    voting_source: VotingPowerSource = Depends(get_voting_power_source),
    tier_cache: TierCache = Depends(get_tier_cache),
    notifier: Notifier = Depends(get_notifier),
) -> UserResponse:
    """
    Register a user.

    Snapshots the wallet's governance voting power, awards registration
    points and, when the referral code resolves, credits the referrer.
    Fails with 409 for a taken email (before any RPC call) and with 503
    if voting power cannot be read.
    """
    if store.email_registered(request.email):
        raise ConflictError("Email already registered")

    try:
        voting_power = await voting_source.get_voting_power(request.wallet)
    except VotingPowerUnavailable:
        raise
    except Exception as e:
        raise VotingPowerUnavailable(f"Voting power lookup failed for {request.wallet}: {e}") from e

    result = store.register(
        name=request.name,
        email=request.email,
        wallet=request.wallet,
        voting_power=voting_power,
        referral_code=request.referral_code,
    )
    user = result.user

    logger.info(
        "User registered",
        user_id=user.id,
        wallet=user.wallet,
        referred_by=result.referrer_id,
    )

    background_tasks.add_task(mirror_tier, tier_cache, user.id, user.tier.value)
    background_tasks.add_task(send_notification, notifier, user.email, "welcome", {"name": user.name})
    if result.referrer_id:
        referrer = store.get_user(result.referrer_id)
        background_tasks.add_task(
            send_notification,
            notifier,
            referrer.email,
            "referral_credit",
            {"referred_name": user.name, "bonus": store.policy.referral_bonus},
        )

    return to_user_response(user)


# ============================================================================
# Users
# ============================================================================


@app.get("/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, store: LedgerStore = Depends(get_store)) -> UserResponse:
    """Get a user by id."""
    return to_user_response(store.get_user(user_id))


@app.get("/users/{user_id}/referrals", response_model=ReferralsResponse)
async def get_referrals(user_id: str, store: LedgerStore = Depends(get_store)) -> ReferralsResponse:
    """List users directly referred by this user."""
    return ReferralsResponse(user_id=user_id, direct=store.referrals_of(user_id))


@app.put("/users/{user_id}/deposit", response_model=DepositResponse)
async def deposit(
    user_id: str,
    request: DepositRequest,
    store: LedgerStore = Depends(get_store),
) -> DepositResponse:
    """
    Deposit into a user's balance.

    Adds `deposit_points` points per deposited unit.
    """
    user = store.apply_delta(user_id, Deposit(request.amount))
    return DepositResponse(id=user.id, balance=user.balance, points=user.points)


# ============================================================================
# Merkle Proofs
# ============================================================================


@app.post("/users/{user_id}/proof", response_model=BuildProofResponse)
async def build_user_proof(
    user_id: str,
    request: BuildProofRequest,
    store: LedgerStore = Depends(get_store),
    random_source: RandomSource = Depends(get_random_source),
) -> BuildProofResponse:
    """
    Build a Merkle inclusion proof for the user's wallet.

    The user's points are set to the proof bonus (base + random draw).
    """
    user = store.get_user(user_id)
    proof = build_proof(request.wallet_list, user.wallet)

    policy = store.policy
    draw = random_source.next(policy.proof_random_min, policy.proof_random_max)
    updated = store.apply_delta(user_id, ProofBonus(draw))

    serialized = proof.to_dict()
    logger.info(
        "proof_generated",
        user_id=user_id,
        root=serialized["root"],
        merkle_depth=len(proof.steps),
        leaves=len(request.wallet_list),
    )

    return BuildProofResponse(
        proof=[ProofStepModel(**step) for step in serialized["proof"]],
        root=serialized["root"],
        leaf=serialized["leaf"],
        points=updated.points,
    )


@app.post("/proofs/verify", response_model=VerifyProofResponse)
async def verify(request: VerifyProofRequest) -> VerifyProofResponse:
    """
    Verify an inclusion proof against an expected root.

    The leaf is given either as an address (hashed here) or as a leaf hash.
    """
    if request.leaf_address is not None:
        leaf = hash_leaf(request.leaf_address)
    elif request.leaf is not None:
        leaf = from_hex(request.leaf)
    else:
        raise ValidationError("Either leaf_address or leaf is required")

    steps = [ProofStep(hash=from_hex(step.hash), side=Side(step.side)) for step in request.proof]
    return VerifyProofResponse(valid=verify_proof(steps, leaf, from_hex(request.root)))


# ============================================================================
# Rewards
# ============================================================================


@app.get("/rewards", response_model=list[RewardModel])
async def list_rewards(store: LedgerStore = Depends(get_store)) -> list[RewardModel]:
    """Reward catalog."""
    return [to_reward_model(entry) for entry in store.catalog()]


@app.get("/users/{user_id}/rewards", response_model=list[RewardModel])
async def list_eligible_rewards(user_id: str, store: LedgerStore = Depends(get_store)) -> list[RewardModel]:
    """Rewards in stock that the user's tier qualifies for."""
    return [to_reward_model(entry) for entry in store.eligible_rewards(user_id)]


# ============================================================================
# Entry Point
# ============================================================================


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    uvicorn.run(
        "loyalty_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
