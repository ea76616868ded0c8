"""
Error taxonomy shared by the ledger, the proof engine and the HTTP layer.

Each error carries the HTTP status the API maps it to.
"""


class LoyaltyError(Exception):
    """Base class for all domain errors."""

    status_code = 500


class ValidationError(LoyaltyError):
    """Malformed or missing input. Nothing was mutated."""

    status_code = 400


class InvalidAmount(ValidationError):
    """Deposit amount is not a positive finite number."""


class NotFoundError(LoyaltyError):
    status_code = 404


class UserNotFound(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class ConflictError(LoyaltyError):
    """Unique constraint violation (duplicate email, bonus already awarded)."""

    status_code = 409


class ExternalDependencyError(LoyaltyError):
    status_code = 503


class VotingPowerUnavailable(ExternalDependencyError):
    """Governance token balance could not be read. Aborts registration."""


class ProofTargetNotFound(LoyaltyError):
    """Target address does not hash to any leaf of the supplied set."""

    status_code = 422

    def __init__(self, target: str):
        super().__init__(f"Address {target} is not in the wallet list")
        self.target = target
