"""
In-memory user ledger.

All balance and points mutations go through LedgerStore, which holds a single
lock over the whole user collection for the duration of every mutation. The
referral credit touches two users (the new one and the referrer), so a
per-user lock would not make it atomic; the coarse lock does.

Core logic here never awaits: callers do their I/O (voting power lookup,
cache writes, mail) outside the critical section.
"""

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from enum import Enum
from typing import Iterable, Optional, Union

import structlog

from .audit import AuditEvent, AuditSink, LogAuditSink
from .config import Settings
from .errors import ConflictError, InvalidAmount, UserNotFound, ValidationError

logger = structlog.get_logger()


class Tier(str, Enum):
    """Loyalty tiers, lowest first."""

    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"

    @property
    def rank(self) -> int:
        return list(Tier).index(self)

    def meets(self, required: "Tier") -> bool:
        return self.rank >= required.rank


@dataclass
class User:
    id: str
    name: str
    email: str
    wallet: str
    voting_power: str
    referral_code: str
    balance: Decimal = Decimal("0")
    points: int = 0
    tier: Tier = Tier.BRONZE
    registration_bonus_awarded: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class RewardEntry:
    """Catalog entry. Read-only."""

    id: str
    name: str
    points: int
    stock: int
    tier_required: Tier


DEFAULT_CATALOG = (
    RewardEntry(id="r1", name="10 USDC Voucher", points=100, stock=5, tier_required=Tier.BRONZE),
)


@dataclass(frozen=True)
class PointsPolicy:
    """Fixed point and bonus amounts."""

    register_points: int = 5
    deposit_points: int = 10
    proof_points: int = 15
    referral_bonus: Decimal = Decimal("10")
    proof_random_min: int = 1
    proof_random_max: int = 1000

    @classmethod
    def from_settings(cls, settings: Settings) -> "PointsPolicy":
        return cls(
            register_points=settings.register_points,
            deposit_points=settings.deposit_points,
            proof_points=settings.proof_points,
            referral_bonus=Decimal(settings.referral_bonus),
            proof_random_min=settings.proof_random_min,
            proof_random_max=settings.proof_random_max,
        )


# ============================================================================
# Operations
# ============================================================================


@dataclass(frozen=True)
class Deposit:
    amount: Union[Decimal, int, float]


@dataclass(frozen=True)
class RegisterBonus:
    referral_code: Optional[str] = None


@dataclass(frozen=True)
class ProofBonus:
    random_component: int


Operation = Union[Deposit, RegisterBonus, ProofBonus]


@dataclass(frozen=True)
class RegistrationResult:
    user: User
    referrer_id: Optional[str] = None


def parse_amount(amount: Union[Decimal, int, float, str]) -> Decimal:
    """
    Normalize a deposit amount to a positive finite Decimal.

    Raises:
        InvalidAmount: for non-numeric, non-finite, zero or negative values
    """
    if isinstance(amount, bool):
        raise InvalidAmount(f"Invalid amount: {amount!r}")
    try:
        # str() first so floats keep their shortest repr (0.1 -> "0.1")
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= 0:
        raise InvalidAmount(f"Amount must be a positive finite number, got {amount!r}")
    return value


class LedgerStore:
    """
    Owner of the user collection and referral network.

    Every mutating method takes the collection lock for its whole duration.
    Returned users are snapshots; mutating them does not touch the store.
    """

    def __init__(
        self,
        policy: Optional[PointsPolicy] = None,
        audit: Optional[AuditSink] = None,
        catalog: Iterable[RewardEntry] = DEFAULT_CATALOG,
    ):
        self.policy = policy or PointsPolicy()
        self._audit = audit or LogAuditSink()
        self._lock = threading.Lock()
        self._users: dict[str, User] = {}
        self._ids_by_email: dict[str, str] = {}
        self._ids_by_code: dict[str, str] = {}
        self._referrals: dict[str, list[str]] = {}
        self._catalog = list(catalog)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def register(
        self,
        name: str,
        email: str,
        wallet: str,
        voting_power: str,
        referral_code: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Create a user and award the registration bonus in one critical section.

        An unknown referral code is not an error: the user is created without
        a referral edge and no referrer is credited.
        """
        if not name or not email or not wallet:
            raise ValidationError("name, email and wallet are required")

        with self._lock:
            email_key = email.strip().lower()
            if email_key in self._ids_by_email:
                raise ConflictError("Email already registered")

            user = User(
                id=str(uuid.uuid4()),
                name=name,
                email=email,
                wallet=wallet,
                voting_power=voting_power,
                referral_code=self._new_referral_code(),
            )
            self._users[user.id] = user
            self._ids_by_email[email_key] = user.id
            self._ids_by_code[user.referral_code] = user.id
            self._record(AuditEvent("register", user.id, {"wallet": wallet, "voting_power": voting_power}))

            referrer_id = self._apply_register_bonus(user, RegisterBonus(referral_code))
            return RegistrationResult(user=replace(user), referrer_id=referrer_id)

    def apply_delta(self, user_id: str, operation: Operation) -> User:
        """
        Apply one points/balance operation to a user.

        Raises:
            UserNotFound: unknown user id
            InvalidAmount: non-positive or non-finite deposit
            ValidationError: proof bonus outside the allowed range
            ConflictError: registration bonus already awarded
        """
        with self._lock:
            user = self._require(user_id)

            if isinstance(operation, Deposit):
                self._apply_deposit(user, operation)
            elif isinstance(operation, RegisterBonus):
                self._apply_register_bonus(user, operation)
            elif isinstance(operation, ProofBonus):
                self._apply_proof_bonus(user, operation)
            else:
                raise ValidationError(f"Unsupported operation: {operation!r}")

            return replace(user)

    def _apply_deposit(self, user: User, op: Deposit) -> None:
        amount = parse_amount(op.amount)
        earned = int((self.policy.deposit_points * amount).to_integral_value(rounding=ROUND_DOWN))

        user.balance += amount
        user.points += earned
        self._record(
            AuditEvent(
                "deposit",
                user.id,
                {"amount": amount, "balance": user.balance, "points": user.points},
            )
        )

    def _apply_register_bonus(self, user: User, op: RegisterBonus) -> Optional[str]:
        if user.registration_bonus_awarded:
            raise ConflictError(f"Registration bonus already awarded to {user.id}")

        referrer = None
        if op.referral_code:
            referrer_id = self._ids_by_code.get(op.referral_code)
            if referrer_id and referrer_id != user.id:
                referrer = self._users[referrer_id]

        user.points += self.policy.register_points
        user.registration_bonus_awarded = True
        self._record(AuditEvent("register_bonus", user.id, {"points": user.points}))

        if referrer is None:
            if op.referral_code:
                logger.info("Unknown referral code", user_id=user.id, referral_code=op.referral_code)
            return None

        referrer.balance += self.policy.referral_bonus
        self._referrals.setdefault(referrer.id, []).append(user.id)
        self._record(
            AuditEvent(
                "referral_credit",
                referrer.id,
                {
                    "referred_user_id": user.id,
                    "bonus": self.policy.referral_bonus,
                    "balance": referrer.balance,
                },
            )
        )
        return referrer.id

    def _apply_proof_bonus(self, user: User, op: ProofBonus) -> None:
        low, high = self.policy.proof_random_min, self.policy.proof_random_max
        if isinstance(op.random_component, bool) or not isinstance(op.random_component, int):
            raise ValidationError(f"Random component must be an integer, got {op.random_component!r}")
        if not low <= op.random_component <= high:
            raise ValidationError(f"Random component must be in [{low}, {high}], got {op.random_component}")

        # Replaces the running total rather than adding to it.
        # TODO: confirm with product whether the bonus should be additive.
        previous = user.points
        user.points = self.policy.proof_points + op.random_component
        self._record(
            AuditEvent(
                "proof_bonus",
                user.id,
                {"random_component": op.random_component, "previous_points": previous, "points": user.points},
            )
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> User:
        with self._lock:
            return replace(self._require(user_id))

    def email_registered(self, email: str) -> bool:
        """Whether `email` is taken. `register` re-checks under the same lock."""
        with self._lock:
            return email.strip().lower() in self._ids_by_email

    def find_by_referral_code(self, code: str) -> Optional[User]:
        with self._lock:
            user_id = self._ids_by_code.get(code)
            return replace(self._users[user_id]) if user_id else None

    def referrals_of(self, user_id: str) -> list[str]:
        """Ids of users directly referred by `user_id`, in registration order."""
        with self._lock:
            self._require(user_id)
            return list(self._referrals.get(user_id, []))

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def catalog(self) -> list[RewardEntry]:
        return list(self._catalog)

    def eligible_rewards(self, user_id: str) -> list[RewardEntry]:
        """Catalog entries in stock whose tier requirement the user meets."""
        user = self.get_user(user_id)
        return [r for r in self._catalog if r.stock > 0 and user.tier.meets(r.tier_required)]

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _require(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def _new_referral_code(self) -> str:
        while True:
            code = uuid.uuid4().hex[:8]
            if code not in self._ids_by_code:
                return code

    def _record(self, event: AuditEvent) -> None:
        try:
            self._audit.record(event)
        except Exception as e:
            logger.error("audit_record_failed", kind=event.kind, user_id=event.user_id, error=str(e))
