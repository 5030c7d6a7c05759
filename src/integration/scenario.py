"""
Scenario runner: drive a fresh host + farm from a declarative document.

A scenario is a mapping (usually loaded from YAML):

    farm: {owner: ..., farm_address: ...}      # optional, FarmConfig fields
    start_time: 0                              # initial host clock
    mint: [[holder, token, amount], ...]
    transfer_tax: {token: bps}
    vaults: [{address, asset, strategy?}]
    steps:
      - {at: 0, action: start_now, sender: <owner>}
      - {at: 0, action: add_pool, sender: <owner>, asset, weight, vault, streams: [[token, rate]]}
      - {at: 5, action: deposit, sender: <user>, pool_id: 0, amount: 100}
      - {at: 9, action: pending, user: <user>, pool_id: 0, token: <token>, expect: 40}

Steps run in order; `at` moves the host clock forward (never back). A step
fails the scenario unless it carries `expect_error: true` (then it must
fail). `expect` compares the step's return value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import yaml

from ..core.access import CallerContext
from ..core.errors import FarmError
from ..core.farm import FarmConfig, FarmLedger
from .config import farm_config_from_dict, load_farm_config
from .farm_snapshot import FarmSnapshot, snapshot_from_farm
from .host import LedgerHost
from .vault import CustodyVault, IdleStrategy


@dataclass(frozen=True)
class StepOutcome:
    index: int
    action: str
    ok: bool
    result: Any = None
    error: Optional[str] = None


@dataclass
class ScenarioResult:
    ok: bool
    host: LedgerHost
    farm: FarmLedger
    vaults: Dict[str, CustodyVault]
    steps: List[StepOutcome] = field(default_factory=list)
    error: Optional[str] = None

    def snapshot(self) -> FarmSnapshot:
        return snapshot_from_farm(self.farm)

    def to_dict(self) -> Dict[str, Any]:
        snap = self.snapshot()
        return {
            "ok": self.ok,
            "error": self.error,
            "steps": [
                {
                    "index": s.index,
                    "action": s.action,
                    "ok": s.ok,
                    "result": _jsonable(s.result),
                    "error": s.error,
                }
                for s in self.steps
            ],
            "snapshot": snap.data,
            "commitment": snap.commitment_hex(),
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Step handlers
# ---------------------------------------------------------------------------

StepFn = Callable[["_World", Mapping[str, Any]], Any]


@dataclass
class _World:
    host: LedgerHost
    farm: FarmLedger
    vaults: Dict[str, CustodyVault]

    def ctx(self, step: Mapping[str, Any]) -> CallerContext:
        return CallerContext.of(str(step["sender"]))

    def vault(self, address: str) -> CustodyVault:
        vault = self.vaults.get(address.lower())
        if vault is None:
            raise KeyError(f"unknown vault {address}")
        return vault


def _step_add_pool(w: _World, s: Mapping[str, Any]) -> Any:
    streams = [(str(t), int(r)) for t, r in s.get("streams", [])]
    return w.farm.add_pool(w.ctx(s), s["asset"], s["weight"], w.vault(s["vault"]), streams)


def _step_deposit(w: _World, s: Mapping[str, Any]) -> Any:
    return w.farm.deposit(w.ctx(s), s["pool_id"], s.get("amount", 0), s.get("attached_native", 0))


def _step_approve(w: _World, s: Mapping[str, Any]) -> Any:
    spender = s.get("spender", w.farm.address)
    w.host.tokens.approve(s["owner"], spender, s["token"], s["amount"])


def _step_mint(w: _World, s: Mapping[str, Any]) -> Any:
    w.host.tokens.mint(s["to"], s["token"], s["amount"])


def _step_balance(w: _World, s: Mapping[str, Any]) -> Any:
    return w.host.tokens.balance_of(s["holder"], s["token"])


_DISPATCH: Dict[str, StepFn] = {
    "start_now": lambda w, s: w.farm.start_now(w.ctx(s)),
    "set_start_time": lambda w, s: w.farm.set_start_time(w.ctx(s), s["start_time"]),
    "add_pool": _step_add_pool,
    "set_allocation_weight": lambda w, s: w.farm.set_allocation_weight(w.ctx(s), s["pool_id"], s["weight"]),
    "set_emission_rate": lambda w, s: w.farm.set_emission_rate(w.ctx(s), s["pool_id"], s["token"], s["rate"]),
    "add_reward_stream": lambda w, s: w.farm.add_reward_stream(w.ctx(s), s["pool_id"], s["token"], s["rate"]),
    "remove_reward_stream": lambda w, s: w.farm.remove_reward_stream(w.ctx(s), s["pool_id"], s["token"]),
    "set_vault": lambda w, s: w.farm.set_vault(w.ctx(s), s["pool_id"], w.vault(s["vault"])),
    "deposit": _step_deposit,
    "withdraw": lambda w, s: w.farm.withdraw(w.ctx(s), s["pool_id"], s["amount"]),
    "harvest": lambda w, s: w.farm.harvest(w.ctx(s), s["pool_id"]),
    "emergency_withdraw": lambda w, s: w.farm.emergency_withdraw(w.ctx(s), s["pool_id"]),
    "update_pool": lambda w, s: w.farm.update_pool(s["pool_id"]),
    "mass_update_pools": lambda w, s: w.farm.mass_update_pools(),
    "pending": lambda w, s: w.farm.pending(s["pool_id"], s["user"], s["token"]),
    "pending_all": lambda w, s: w.farm.pending_all(s["pool_id"], s["user"]),
    "approve": _step_approve,
    "mint": _step_mint,
    "balance": _step_balance,
}

SCENARIO_ACTIONS = tuple(sorted(_DISPATCH))


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _build_world(doc: Mapping[str, Any]) -> _World:
    farm_section = doc.get("farm")
    config: FarmConfig
    if farm_section is None:
        config = load_farm_config()
    else:
        config = farm_config_from_dict(farm_section)

    host = LedgerHost(start_time=int(doc.get("start_time", 0)))
    farm = FarmLedger(host, config)

    for holder, token, amount in doc.get("mint", []):
        host.tokens.mint(holder, token, int(amount))
    for token, bps in (doc.get("transfer_tax") or {}).items():
        host.tokens.set_transfer_tax(token, int(bps))

    vaults: Dict[str, CustodyVault] = {}
    for entry in doc.get("vaults", []):
        vault = CustodyVault(host, address=entry["address"], asset=entry["asset"], farm=farm.address)
        strategy_address = entry.get("strategy")
        if strategy_address:
            vault.set_strategy(
                IdleStrategy(host, address=strategy_address, asset=vault.asset, vault=vault.address)
            )
        vaults[vault.address] = vault
    return _World(host=host, farm=farm, vaults=vaults)


def run_scenario(doc: Mapping[str, Any]) -> ScenarioResult:
    """
    Run a scenario document. Stops at the first unexpected step outcome.

    Raises:
        TypeError / ValueError: If the document itself is malformed
    """
    if not isinstance(doc, Mapping):
        raise TypeError("scenario must be a mapping")
    world = _build_world(doc)
    result = ScenarioResult(ok=True, host=world.host, farm=world.farm, vaults=world.vaults)

    for index, step in enumerate(doc.get("steps", [])):
        if not isinstance(step, Mapping):
            raise TypeError(f"step {index} must be a mapping")
        action = step.get("action")
        handler = _DISPATCH.get(action)  # type: ignore[arg-type]
        if handler is None:
            raise ValueError(f"step {index}: unknown action {action!r}")
        if "at" in step and int(step["at"]) > world.host.now():
            world.host.set_time(int(step["at"]))

        expect_error = bool(step.get("expect_error", False))
        try:
            value = handler(world, step)
        except (FarmError, KeyError, ValueError) as exc:
            outcome = StepOutcome(index=index, action=str(action), ok=expect_error, error=f"{type(exc).__name__}: {exc}")
        else:
            ok = not expect_error
            error = "expected an error" if expect_error else None
            if ok and "expect" in step and _jsonable(value) != step["expect"]:
                ok = False
                error = f"expected {step['expect']!r}, got {value!r}"
            outcome = StepOutcome(index=index, action=str(action), ok=ok, result=value, error=error)

        result.steps.append(outcome)
        if not outcome.ok:
            result.ok = False
            result.error = f"step {index} ({action}): {outcome.error}"
            break
    return result


def load_scenario(path: Union[str, Path]) -> Dict[str, Any]:
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise TypeError(f"{path} must contain a YAML mapping")
    return data
