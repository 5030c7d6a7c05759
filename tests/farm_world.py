"""Builders shared by the farm tests: addresses, a host + farm world, funding helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from src.core.access import CallerContext
from src.core.farm import FarmConfig, FarmLedger
from src.integration.host import LedgerHost
from src.integration.vault import CustodyVault


def addr(suffix: int) -> str:
    return "0x" + format(suffix, "040x")


OWNER = addr(0xA1)
FARM = addr(0xF0)
ALICE = addr(0x0A)
BOB = addr(0x0B)
CAROL = addr(0x0C)

LP = addr(0x1001)
LP2 = addr(0x1002)
REWARD = addr(0x2002)
REWARD2 = addr(0x2003)


@dataclass
class World:
    host: LedgerHost
    farm: FarmLedger
    vaults: Dict[str, CustodyVault]

    @property
    def tokens(self):
        return self.host.tokens

    @property
    def owner(self) -> CallerContext:
        return CallerContext.of(OWNER)

    def vault_for(self, asset: str, *, address: Optional[str] = None) -> CustodyVault:
        address = address or addr(0x3000 + len(self.vaults) + 1)
        vault = CustodyVault(self.host, address=address, asset=asset, farm=self.farm.address)
        self.vaults[vault.address] = vault
        return vault

    def add_pool(
        self,
        asset: str = LP,
        weight: int = 100,
        streams: Iterable[Tuple[str, int]] = ((REWARD, 10),),
    ) -> int:
        return self.farm.add_pool(self.owner, asset, weight, self.vault_for(asset), list(streams))

    def fund_user(self, user: str, token: str = LP, amount: int = 1_000_000) -> None:
        self.tokens.mint(user, token, amount)
        self.tokens.approve(user, self.farm.address, token, amount)

    def fund_rewards(self, token: str = REWARD, amount: int = 10**12) -> None:
        self.tokens.mint(self.farm.address, token, amount)

    def deposit(self, user: str, pool_id: int, amount: int, attached_native: int = 0) -> int:
        return self.farm.deposit(CallerContext.of(user), pool_id, amount, attached_native)

    def withdraw(self, user: str, pool_id: int, amount: int) -> int:
        return self.farm.withdraw(CallerContext.of(user), pool_id, amount)

    def harvest(self, user: str, pool_id: int) -> Dict[str, int]:
        return self.farm.harvest(CallerContext.of(user), pool_id)

    def at(self, timestamp: int) -> None:
        self.host.set_time(timestamp)


def make_world(*, start_time: int = 0, check_invariants: bool = True) -> World:
    host = LedgerHost(start_time=start_time)
    farm = FarmLedger(host, FarmConfig(owner=OWNER, farm_address=FARM, check_invariants=check_invariants))
    return World(host=host, farm=farm, vaults={})


