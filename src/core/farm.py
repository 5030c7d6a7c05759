"""
Farm ledger: multi-pool, multi-reward-token staking.

This is the imperative shell around the accumulator math:
- every mutating operation runs inside a host transaction (all-or-nothing),
- a non-reentrant guard rejects nested mutating calls,
- time is read once from the host clock at operation entry,
- every transaction is invariant-checked before it commits.

Order of work for deposit / withdraw / harvest is fixed: accrue the pool,
pay the caller's pending rewards, mutate staked amounts, then re-snapshot
the caller's debt against the (already paid) accumulators.
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..state.balances import Address, Amount, TokenId, canonical_address, is_valid_address
from ..state.pools import AssetKind, PoolState, RewardStream, asset_kind_for
from ..state.positions import UserPosition
from .access import CallerContext, require_address, require_owner
from .accumulator import ACC_SCALE, accrue, accrued_value, pending_reward, project
from .asset_paths import PoolRoute, path_for
from .errors import (
    DuplicatePoolAssetError,
    ExternalCallError,
    FarmGuardError,
    FarmInvariantError,
    FarmNotStartedError,
    InsufficientStakeError,
    InvalidAddressError,
    ReentrancyError,
    RewardStreamError,
    StartTimeError,
    UnknownPoolError,
)
from .farm_state import FarmState
from .invariants import check_all
from .ports import HostPort, VaultPort

logger = logging.getLogger(__name__)


SECONDS_PER_DAY = 86_400
MAX_START_DELAY = 30 * SECONDS_PER_DAY

# Allowance granted to a pool's vault for the pool asset.
APPROVE_MAX = 2**256 - 1


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class FarmConfig:
    """Runtime config for the ledger."""

    owner: Address
    farm_address: Address
    acc_scale: int = ACC_SCALE
    max_start_delay: int = MAX_START_DELAY
    check_invariants: bool = True

    def __post_init__(self) -> None:
        if not is_valid_address(self.owner):
            raise ValueError(f"owner must be a valid address: {self.owner!r}")
        if not is_valid_address(self.farm_address):
            raise ValueError(f"farm_address must be a valid address: {self.farm_address!r}")
        if not _is_int(self.acc_scale) or self.acc_scale <= 0:
            raise ValueError("acc_scale must be a positive int")
        if not _is_int(self.max_start_delay) or self.max_start_delay <= 0:
            raise ValueError("max_start_delay must be a positive int")
        if not isinstance(self.check_invariants, bool):
            raise ValueError("check_invariants must be a bool")
        object.__setattr__(self, "owner", canonical_address(self.owner))
        object.__setattr__(self, "farm_address", canonical_address(self.farm_address))


@dataclass(frozen=True)
class StreamInfo:
    token: TokenId
    emission_rate: Amount
    accumulator: int
    stream_id: int


@dataclass(frozen=True)
class PoolInfo:
    pool_id: int
    asset: TokenId
    asset_kind: AssetKind
    allocation_weight: int
    total_staked: Amount
    last_accrual_time: int
    vault_address: Address
    streams: Tuple[StreamInfo, ...]


@dataclass(frozen=True)
class PositionInfo:
    amount: Amount
    debt: Mapping[TokenId, int] = field(default_factory=dict)


class FarmLedger:
    """
    Pool list, global allocation weight, accrual and the user/admin surfaces.

    Pools are append-only and addressed by index. Reward streams inside a
    pool are list-addressed and may be reordered by removal.
    """

    def __init__(self, host: HostPort, config: FarmConfig) -> None:
        self._host = host
        self._config = config
        self._state = FarmState()
        self._routes: List[PoolRoute] = []
        self._entered = False
        host.register(self)

    # ------------------------------------------------------------------
    # Host integration
    # ------------------------------------------------------------------

    @property
    def address(self) -> Address:
        return self._config.farm_address

    @property
    def owner(self) -> Address:
        return self._config.owner

    @property
    def config(self) -> FarmConfig:
        return self._config

    def snapshot(self) -> Tuple[FarmState, List[PoolRoute]]:
        return copy.deepcopy(self._state), list(self._routes)

    def restore(self, snap: Tuple[FarmState, List[PoolRoute]]) -> None:
        state, routes = snap
        self._state = state
        self._routes = list(routes)

    @contextmanager
    def _mutation(self, action: str) -> Iterator[int]:
        if self._entered:
            raise ReentrancyError(f"{action}: another farm operation is in flight")
        self._entered = True
        try:
            with self._host.transaction():
                now = self._host.now()
                yield now
                if self._config.check_invariants:
                    violations = check_all(self._state, self._config.acc_scale)
                    if violations:
                        raise FarmInvariantError(violations)
        finally:
            self._entered = False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _pool(self, pool_id: object) -> PoolState:
        if not _is_int(pool_id) or not 0 <= pool_id < len(self._state.pools):
            raise UnknownPoolError(f"unknown pool: {pool_id!r}")
        return self._state.pools[pool_id]  # type: ignore[index]

    def _caller(self, ctx: CallerContext) -> Address:
        if not isinstance(ctx, CallerContext):
            raise InvalidAddressError("missing caller context")
        return require_address(ctx.sender, name="caller")

    def _require_active(self, now: int) -> None:
        start = self._state.start_time
        if start is None or now < start:
            raise FarmNotStartedError("farming has not started")

    @staticmethod
    def _require_amount(value: object, *, name: str) -> int:
        if not _is_int(value) or value < 0:  # type: ignore[operator]
            raise FarmGuardError(f"{name} must be a non-negative int: {value!r}")
        return int(value)  # type: ignore[arg-type]

    def _parse_stream(self, token: object, emission_rate: object) -> Tuple[TokenId, int]:
        if not is_valid_address(token):
            raise RewardStreamError(f"invalid reward token: {token!r}")
        if not _is_int(emission_rate) or emission_rate < 0:  # type: ignore[operator]
            raise RewardStreamError(f"emission_rate must be a non-negative int: {emission_rate!r}")
        return canonical_address(token), int(emission_rate)  # type: ignore[arg-type]

    def _next_stream_id(self) -> int:
        sid = self._state.next_stream_id
        self._state.next_stream_id += 1
        return sid

    def _accrue(self, pool: PoolState, now: int) -> None:
        result = accrue(pool, now, self._state.total_allocation_weight, self._config.acc_scale)
        if result.changed:
            logger.debug(
                "Pool accrued",
                extra={"event": "farm.accrue", "pool_id": pool.pool_id, "elapsed": result.elapsed},
            )

    def _accrue_all(self, now: int) -> None:
        for pool in self._state.pools:
            self._accrue(pool, now)

    def _resync_debt(self, pool: PoolState, pos: UserPosition) -> None:
        scale = self._config.acc_scale
        pos.debt = {s.token: accrued_value(pos.amount, s.accumulator, scale) for s in pool.reward_streams}

    def _safe_transfer(self, token: TokenId, to: Address, amount: Amount) -> Amount:
        """Pay up to the farm's own balance. The shortfall is forgiven, not recorded."""
        tokens = self._host.tokens
        available = tokens.balance_of(self.address, token)
        paid = min(amount, available)
        if paid < amount:
            logger.warning(
                "Reward payout truncated",
                extra={
                    "event": "farm.payout_shortfall",
                    "token": token,
                    "user": to,
                    "owed": amount,
                    "paid": paid,
                },
            )
        if paid > 0:
            tokens.transfer(self.address, to, token, paid)
        return paid

    def _pay_stream(self, stream: RewardStream, user: Address, pos: UserPosition) -> Amount:
        owed = pending_reward(pos.amount, stream.accumulator, pos.debt_for(stream.token), self._config.acc_scale)
        if owed == 0:
            return 0
        paid = self._safe_transfer(stream.token, user, owed)
        distributed = self._state.total_distributed
        distributed[stream.token] = distributed.get(stream.token, 0) + paid
        return paid

    def _settle(self, pool: PoolState, user: Address, pos: UserPosition) -> Dict[TokenId, Amount]:
        """Pay every stream's pending reward. Caller must have accrued the pool."""
        return {s.token: self._pay_stream(s, user, pos) for s in list(pool.reward_streams)}

    def _approve_vault(self, asset: TokenId, vault: VaultPort, amount: int = APPROVE_MAX) -> None:
        self._host.tokens.approve(self.address, vault.address, asset, amount)

    def _check_vault(self, asset: TokenId, vault: VaultPort) -> None:
        vault_asset = getattr(vault, "asset", None)
        if not isinstance(vault_asset, str) or vault_asset.lower() != asset:
            raise FarmGuardError(f"vault asset {vault_asset!r} does not match pool asset {asset}")
        if not is_valid_address(getattr(vault, "address", None)):
            raise InvalidAddressError("vault address is invalid")

    # ------------------------------------------------------------------
    # Admin surface
    # ------------------------------------------------------------------

    def add_pool(
        self,
        ctx: CallerContext,
        asset: TokenId,
        allocation_weight: int,
        vault: VaultPort,
        reward_streams: Iterable[Tuple[TokenId, int]] = (),
    ) -> int:
        """Append a pool and return its id."""
        with self._mutation("add_pool") as now:
            require_owner(ctx, self.owner)
            asset = require_address(asset, name="asset")
            weight = self._require_amount(allocation_weight, name="allocation_weight")
            if any(p.asset == asset for p in self._state.pools):
                raise DuplicatePoolAssetError(f"a pool for {asset} already exists")
            self._check_vault(asset, vault)

            parsed = [self._parse_stream(token, rate) for token, rate in reward_streams]
            if len({token for token, _ in parsed}) != len(parsed):
                raise RewardStreamError("duplicate reward token in pool definition")

            self._accrue_all(now)

            kind = asset_kind_for(asset)
            pool = PoolState(
                pool_id=len(self._state.pools),
                asset=asset,
                asset_kind=kind,
                allocation_weight=weight,
                vault_address=vault.address.lower(),
                last_accrual_time=now,
                reward_streams=[
                    RewardStream(token=token, emission_rate=rate, stream_id=self._next_stream_id())
                    for token, rate in parsed
                ],
            )
            self._state.pools.append(pool)
            self._state.total_allocation_weight += weight
            self._state.reward_tokens.update(token for token, _ in parsed)
            self._routes.append(PoolRoute(vault=vault, path=path_for(kind)))
            self._approve_vault(asset, vault)

            logger.info(
                "Pool added",
                extra={"event": "farm.pool_added", "pool_id": pool.pool_id, "asset": asset, "weight": weight},
            )
            return pool.pool_id

    def set_allocation_weight(self, ctx: CallerContext, pool_id: int, allocation_weight: int) -> None:
        with self._mutation("set_allocation_weight") as now:
            require_owner(ctx, self.owner)
            pool = self._pool(pool_id)
            weight = self._require_amount(allocation_weight, name="allocation_weight")
            # Every pool's share changes with the total, so settle all of them at the old weights.
            self._accrue_all(now)
            self._state.total_allocation_weight += weight - pool.allocation_weight
            pool.allocation_weight = weight
            logger.info(
                "Allocation weight set",
                extra={"event": "farm.weight_set", "pool_id": pool.pool_id, "weight": weight},
            )

    def set_emission_rate(self, ctx: CallerContext, pool_id: int, token: TokenId, emission_rate: int) -> None:
        with self._mutation("set_emission_rate") as now:
            require_owner(ctx, self.owner)
            pool = self._pool(pool_id)
            token, rate = self._parse_stream(token, emission_rate)
            stream = pool.find_stream(token)
            if stream is None:
                raise RewardStreamError(f"pool {pool.pool_id} has no stream for {token}")
            self._accrue(pool, now)
            stream.emission_rate = rate
            logger.info(
                "Emission rate set",
                extra={"event": "farm.rate_set", "pool_id": pool.pool_id, "token": token, "rate": rate},
            )

    def add_reward_stream(self, ctx: CallerContext, pool_id: int, token: TokenId, emission_rate: int) -> None:
        with self._mutation("add_reward_stream") as now:
            require_owner(ctx, self.owner)
            pool = self._pool(pool_id)
            token, rate = self._parse_stream(token, emission_rate)
            if pool.find_stream(token) is not None:
                raise RewardStreamError(f"pool {pool.pool_id} already has a stream for {token}")

            # Bring existing streams up to date so the new one starts at the pool's clock.
            self._accrue(pool, now)
            pool.reward_streams.append(
                RewardStream(token=token, emission_rate=rate, stream_id=self._next_stream_id())
            )
            for _, pos in self._state.positions.items_for_pool(pool.pool_id):
                pos.debt[token] = 0
            self._state.reward_tokens.add(token)
            logger.info(
                "Reward stream added",
                extra={"event": "farm.stream_added", "pool_id": pool.pool_id, "token": token, "rate": rate},
            )

    def remove_reward_stream(self, ctx: CallerContext, pool_id: int, token: TokenId) -> Dict[Address, Amount]:
        """Settle every pool member for `token`, then drop the stream. Returns payouts by user."""
        with self._mutation("remove_reward_stream") as now:
            require_owner(ctx, self.owner)
            pool = self._pool(pool_id)
            if not is_valid_address(token):
                raise RewardStreamError(f"invalid reward token: {token!r}")
            token = canonical_address(token)
            stream = pool.find_stream(token)
            if stream is None:
                raise RewardStreamError(f"pool {pool.pool_id} has no stream for {token}")

            self._accrue(pool, now)
            payouts: Dict[Address, Amount] = {}
            for user in self._state.membership.members(pool.pool_id):
                pos = self._state.positions.get_or_create(pool.pool_id, user)
                payouts[user] = self._pay_stream(stream, user, pos)
                pos.debt.pop(token, None)

            pool.remove_stream(token)
            if token not in self._state.tokens_in_use():
                self._state.reward_tokens.discard(token)

            logger.info(
                "Reward stream removed",
                extra={
                    "event": "farm.stream_removed",
                    "pool_id": pool.pool_id,
                    "token": token,
                    "settled_users": len(payouts),
                    "paid": sum(payouts.values()),
                },
            )
            return payouts

    def set_start_time(self, ctx: CallerContext, start_time: int) -> None:
        with self._mutation("set_start_time") as now:
            require_owner(ctx, self.owner)
            if self._state.start_time is not None:
                raise StartTimeError("start time already set")
            if not _is_int(start_time):
                raise StartTimeError(f"start_time must be an int: {start_time!r}")
            if start_time <= now:
                raise StartTimeError("start time must be in the future")
            if start_time > now + self._config.max_start_delay:
                raise StartTimeError(
                    f"start time must be within {self._config.max_start_delay} seconds"
                )
            self._state.start_time = start_time
            logger.info("Start time set", extra={"event": "farm.start_set", "start_time": start_time})

    def start_now(self, ctx: CallerContext) -> None:
        with self._mutation("start_now") as now:
            require_owner(ctx, self.owner)
            if self._state.start_time is not None:
                raise StartTimeError("start time already set")
            self._state.start_time = now
            logger.info("Farm started", extra={"event": "farm.started", "start_time": now})

    def set_vault(self, ctx: CallerContext, pool_id: int, vault: VaultPort) -> None:
        """
        Replace a pool's vault.

        Only allowed while the pool has nothing staked. Staked funds are never
        migrated between vaults: stakers withdraw from the old vault first, then
        redeposit once the new one is in place. Refused with FarmGuardError
        otherwise.
        """
        with self._mutation("set_vault"):
            require_owner(ctx, self.owner)
            pool = self._pool(pool_id)
            self._check_vault(pool.asset, vault)
            if pool.total_staked != 0:
                raise FarmGuardError(f"pool {pool.pool_id} still has {pool.total_staked} staked")
            old = self._routes[pool.pool_id]
            self._approve_vault(pool.asset, old.vault, 0)
            self._routes[pool.pool_id] = PoolRoute(vault=vault, path=old.path)
            pool.vault_address = vault.address.lower()
            self._approve_vault(pool.asset, vault)
            logger.info(
                "Vault replaced",
                extra={"event": "farm.vault_set", "pool_id": pool.pool_id, "vault": pool.vault_address},
            )

    # ------------------------------------------------------------------
    # Permissionless maintenance
    # ------------------------------------------------------------------

    def update_pool(self, pool_id: int) -> None:
        with self._mutation("update_pool") as now:
            self._accrue(self._pool(pool_id), now)

    def mass_update_pools(self) -> None:
        with self._mutation("mass_update_pools") as now:
            self._accrue_all(now)

    # ------------------------------------------------------------------
    # User surface
    # ------------------------------------------------------------------

    def deposit(self, ctx: CallerContext, pool_id: int, amount: int, attached_native: int = 0) -> Amount:
        """Stake into a pool. Returns the amount credited to the position."""
        with self._mutation("deposit") as now:
            user = self._caller(ctx)
            self._require_active(now)
            pool = self._pool(pool_id)
            route = self._routes[pool.pool_id]
            amount = self._require_amount(amount, name="amount")
            attached_native = self._require_amount(attached_native, name="attached_native")
            route.path.check(amount, attached_native)

            self._accrue(pool, now)
            pos = self._state.positions.get_or_create(pool.pool_id, user)
            if pos.amount > 0:
                self._settle(pool, user, pos)

            tokens = self._host.tokens
            received = route.path.collect(tokens, self.address, user, pool.asset, amount, attached_native)
            credited = route.path.deposit(route.vault, user, received)
            if credited < 0 or credited > received:
                raise ExternalCallError(f"vault credited {credited} for {received} forwarded")

            pos.amount += credited
            pool.total_staked += credited
            self._resync_debt(pool, pos)
            self._state.membership.add(pool.pool_id, user)
            self._state.users.add(user)

            logger.info(
                "Deposit",
                extra={
                    "event": "farm.deposit",
                    "pool_id": pool.pool_id,
                    "user": user,
                    "native": route.path.is_native,
                    "amount": amount,
                    "credited": credited,
                },
            )
            return credited

    def withdraw(self, ctx: CallerContext, pool_id: int, amount: int) -> Amount:
        """Unstake from a pool. Returns what the vault released."""
        with self._mutation("withdraw") as now:
            user = self._caller(ctx)
            self._require_active(now)
            pool = self._pool(pool_id)
            route = self._routes[pool.pool_id]
            amount = self._require_amount(amount, name="amount")
            current = self._state.positions.get(pool.pool_id, user)
            if amount > current.amount:
                raise InsufficientStakeError(f"withdraw {amount} exceeds staked {current.amount}")

            self._accrue(pool, now)
            if not self._state.positions.exists(pool.pool_id, user):
                return 0
            pos = self._state.positions.get_or_create(pool.pool_id, user)
            self._settle(pool, user, pos)

            pos.amount -= amount
            pool.total_staked -= amount
            self._resync_debt(pool, pos)
            released = route.path.withdraw(route.vault, user, amount)

            logger.info(
                "Withdraw",
                extra={
                    "event": "farm.withdraw",
                    "pool_id": pool.pool_id,
                    "user": user,
                    "amount": amount,
                    "released": released,
                },
            )
            return released

    def harvest(self, ctx: CallerContext, pool_id: int) -> Dict[TokenId, Amount]:
        """Pay all pending rewards in a pool. Returns paid amounts by token."""
        with self._mutation("harvest") as now:
            user = self._caller(ctx)
            self._require_active(now)
            pool = self._pool(pool_id)
            self._accrue(pool, now)
            if not self._state.positions.exists(pool.pool_id, user):
                return {}
            pos = self._state.positions.get_or_create(pool.pool_id, user)
            paid = self._settle(pool, user, pos)
            self._resync_debt(pool, pos)
            logger.info(
                "Harvest",
                extra={"event": "farm.harvest", "pool_id": pool.pool_id, "user": user, "paid": sum(paid.values())},
            )
            return paid

    def emergency_withdraw(self, ctx: CallerContext, pool_id: int) -> Amount:
        """Withdraw the whole position and forfeit pending rewards."""
        with self._mutation("emergency_withdraw") as now:
            user = self._caller(ctx)
            self._require_active(now)
            pool = self._pool(pool_id)
            route = self._routes[pool.pool_id]
            current = self._state.positions.get(pool.pool_id, user)
            if current.amount == 0:
                raise InsufficientStakeError("nothing staked")

            self._accrue(pool, now)
            pos = self._state.positions.get_or_create(pool.pool_id, user)
            amount = pos.amount
            pos.amount = 0
            pool.total_staked -= amount
            self._resync_debt(pool, pos)
            released = route.path.withdraw(route.vault, user, amount)

            logger.warning(
                "Emergency withdrawal",
                extra={"event": "farm.emergency_withdraw", "pool_id": pool.pool_id, "user": user, "amount": amount},
            )
            return released

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    @property
    def start_time(self) -> Optional[int]:
        return self._state.start_time

    @property
    def total_allocation_weight(self) -> int:
        return self._state.total_allocation_weight

    def is_active(self) -> bool:
        start = self._state.start_time
        return start is not None and self._host.now() >= start

    def pool_count(self) -> int:
        return len(self._state.pools)

    def pool_info(self, pool_id: int) -> PoolInfo:
        pool = self._pool(pool_id)
        return PoolInfo(
            pool_id=pool.pool_id,
            asset=pool.asset,
            asset_kind=pool.asset_kind,
            allocation_weight=pool.allocation_weight,
            total_staked=pool.total_staked,
            last_accrual_time=pool.last_accrual_time,
            vault_address=pool.vault_address,
            streams=tuple(
                StreamInfo(
                    token=s.token,
                    emission_rate=s.emission_rate,
                    accumulator=s.accumulator,
                    stream_id=s.stream_id,
                )
                for s in pool.reward_streams
            ),
        )

    def position(self, pool_id: int, user: Address) -> PositionInfo:
        pool = self._pool(pool_id)
        pos = self._state.positions.get(pool.pool_id, require_address(user, name="user"))
        return PositionInfo(amount=pos.amount, debt=dict(pos.debt))

    def positions_in_pool(self, pool_id: int) -> Dict[Address, PositionInfo]:
        pool = self._pool(pool_id)
        return {
            user: PositionInfo(amount=pos.amount, debt=dict(pos.debt))
            for user, pos in self._state.positions.items_for_pool(pool.pool_id)
        }

    def pending(self, pool_id: int, user: Address, token: TokenId) -> Amount:
        """Reward a harvest would compute right now, without mutating state."""
        pool = self._pool(pool_id)
        user = require_address(user, name="user")
        if not is_valid_address(token):
            raise RewardStreamError(f"invalid reward token: {token!r}")
        token = canonical_address(token)
        try:
            idx = pool.stream_index(token)
        except KeyError:
            raise RewardStreamError(f"pool {pool.pool_id} has no stream for {token}") from None
        pos = self._state.positions.get(pool.pool_id, user)
        projected = project(pool, self._host.now(), self._state.total_allocation_weight, self._config.acc_scale)
        return pending_reward(pos.amount, projected.accumulators[idx], pos.debt_for(token), self._config.acc_scale)

    def pending_all(self, pool_id: int, user: Address) -> Dict[TokenId, Amount]:
        pool = self._pool(pool_id)
        user = require_address(user, name="user")
        pos = self._state.positions.get(pool.pool_id, user)
        projected = project(pool, self._host.now(), self._state.total_allocation_weight, self._config.acc_scale)
        return {
            s.token: pending_reward(pos.amount, acc, pos.debt_for(s.token), self._config.acc_scale)
            for s, acc in zip(pool.reward_streams, projected.accumulators)
        }

    def pool_tvl(self, pool_id: int) -> Amount:
        pool = self._pool(pool_id)
        return self._routes[pool.pool_id].vault.balance()

    def total_value_locked(self) -> Amount:
        return sum(route.vault.balance() for route in self._routes)

    def total_distributed(self, token: TokenId) -> Amount:
        if not is_valid_address(token):
            return 0
        return self._state.total_distributed.get(canonical_address(token), 0)

    def pool_members(self, pool_id: int) -> Tuple[Address, ...]:
        pool = self._pool(pool_id)
        return self._state.membership.members(pool.pool_id)

    def users(self) -> Tuple[Address, ...]:
        return tuple(sorted(self._state.users))

    def reward_tokens(self) -> Tuple[TokenId, ...]:
        return tuple(sorted(self._state.reward_tokens))

    def distributed_tokens(self) -> Tuple[TokenId, ...]:
        """Every token that has ever been paid out, including removed streams."""
        return tuple(sorted(self._state.total_distributed))

    def __repr__(self) -> str:
        return (
            f"FarmLedger(address={self.address[:10]}..., pools={len(self._state.pools)}, "
            f"weight={self._state.total_allocation_weight}, start={self._state.start_time})"
        )
