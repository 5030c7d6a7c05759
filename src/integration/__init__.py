"""
Host integration layer: token ledger, clock/transactions, custody vaults,
configuration loading, snapshots and the scenario runner.
"""

from .config import load_farm_config, farm_config_from_dict
from .farm_snapshot import FarmSnapshot, snapshot_from_farm
from .host import LedgerHost
from .scenario import ScenarioResult, load_scenario, run_scenario
from .tokens import TokenLedger
from .vault import CustodyVault, IdleStrategy

__all__ = [
    "load_farm_config",
    "farm_config_from_dict",
    "FarmSnapshot",
    "snapshot_from_farm",
    "LedgerHost",
    "ScenarioResult",
    "load_scenario",
    "run_scenario",
    "TokenLedger",
    "CustodyVault",
    "IdleStrategy",
]
