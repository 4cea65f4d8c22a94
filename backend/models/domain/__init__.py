"""
Domain Models - Storage-agnostic data structures

Workers and services operate on these models, not raw database rows.

- Domain models are pure Python objects (dataclasses)
- Storage details (PostgreSQL) are abstracted via repositories

Settlement Pipeline Models:
- PickupRequest: one submission, tracked pending -> verified | rejected
- VerificationVerdict: classifier judgment attached on the status transition
- UserPoints / PointsCredit: ledger total and the credits applied to it
"""
from .pickup import PickupRequest, WasteCategory, VerificationStatus, VerificationVerdict
from .points import UserPoints, PointsCredit, LeaderboardEntry, ProgramStats

__all__ = [
    # Pickups
    'PickupRequest',
    'WasteCategory',
    'VerificationStatus',
    'VerificationVerdict',

    # Ledger
    'UserPoints',
    'PointsCredit',

    # Read models
    'LeaderboardEntry',
    'ProgramStats',
]
