"""
State tables for the farm ledger
"""

from .balances import NATIVE_TOKEN, ZERO_ADDRESS, BalanceTable, canonical_address, is_valid_address
from .pools import AssetKind, PoolState, RewardStream, asset_kind_for
from .positions import MembershipIndex, PositionTable, UserPosition

__all__ = [
    "NATIVE_TOKEN",
    "ZERO_ADDRESS",
    "BalanceTable",
    "canonical_address",
    "is_valid_address",
    "AssetKind",
    "PoolState",
    "RewardStream",
    "asset_kind_for",
    "MembershipIndex",
    "PositionTable",
    "UserPosition",
]
