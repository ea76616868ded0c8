"""
Loyalty API - points, tiers and referrals on top of wallet registration.

Provides REST endpoints for:
- Registering users (with governance voting power snapshot)
- Deposits and loyalty points
- Merkle inclusion proofs for wallet lists
"""

__version__ = "0.1.0"
