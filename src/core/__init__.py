"""
Core farm algorithms: accumulator math, asset routing, invariants and the ledger.
"""

from .accumulator import ACC_SCALE, Accrual, accrue, pending_reward, project, projected_accumulator
from .access import CallerContext, require_owner
from .asset_paths import NATIVE_PATH, TOKEN_PATH, AssetPath, PoolRoute, path_for
from .errors import (
    AccessDeniedError,
    ExternalCallError,
    FarmError,
    FarmGuardError,
    FarmInvariantError,
    ReentrancyError,
)
from .farm import FarmConfig, FarmLedger, PoolInfo, PositionInfo, StreamInfo
from .farm_state import FarmState
from .invariants import INVARIANT_REGISTRY, check_all

__all__ = [
    "ACC_SCALE",
    "Accrual",
    "accrue",
    "pending_reward",
    "project",
    "projected_accumulator",
    "CallerContext",
    "require_owner",
    "NATIVE_PATH",
    "TOKEN_PATH",
    "AssetPath",
    "PoolRoute",
    "path_for",
    "AccessDeniedError",
    "ExternalCallError",
    "FarmError",
    "FarmGuardError",
    "FarmInvariantError",
    "ReentrancyError",
    "FarmConfig",
    "FarmLedger",
    "PoolInfo",
    "PositionInfo",
    "StreamInfo",
    "FarmState",
    "INVARIANT_REGISTRY",
    "check_all",
]
