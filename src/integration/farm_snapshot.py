"""
Farm state snapshot encoding.

Goals:
- Deterministic JSON serialization for hashing / audit trails.
- Independent of dict insertion order and of reward-stream list order
  (stream order is not significant after swap-removal).
- Explicit versioning.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Dict, List

from ..core.farm import FarmLedger
from ..state.canonical import canonical_json_bytes, domain_sep_bytes, sha256_hex


FARM_SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class FarmSnapshot:
    """
    Deterministic, versioned snapshot of a farm ledger.

    The commitment is *not* included inside `data` to avoid self-reference.
    """

    version: int
    data: Dict[str, Any]

    def canonical_bytes(self) -> bytes:
        return canonical_json_bytes(self.data)

    def commitment_bytes(self) -> bytes:
        payload = domain_sep_bytes("farm_snapshot", version=self.version) + self.canonical_bytes()
        return hashlib.sha256(payload).digest()

    def commitment_hex(self) -> str:
        payload = domain_sep_bytes("farm_snapshot", version=self.version) + self.canonical_bytes()
        return sha256_hex(payload)


def snapshot_from_farm(farm: FarmLedger, *, version: int = FARM_SNAPSHOT_VERSION) -> FarmSnapshot:
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise ValueError("version must be a positive int")

    pools_entries: List[Dict[str, Any]] = []
    positions_entries: List[Dict[str, Any]] = []
    for pool_id in range(farm.pool_count()):
        info = farm.pool_info(pool_id)
        streams = [
            {
                "token": s.token,
                "emission_rate": int(s.emission_rate),
                "accumulator": int(s.accumulator),
                "stream_id": int(s.stream_id),
            }
            for s in info.streams
        ]
        streams.sort(key=lambda e: e["token"])
        pools_entries.append(
            {
                "pool_id": info.pool_id,
                "asset": info.asset,
                "asset_kind": info.asset_kind.value,
                "allocation_weight": int(info.allocation_weight),
                "total_staked": int(info.total_staked),
                "last_accrual_time": int(info.last_accrual_time),
                "vault_address": info.vault_address,
                "streams": streams,
                "members": list(farm.pool_members(pool_id)),
            }
        )
        for user, pos in farm.positions_in_pool(pool_id).items():
            positions_entries.append(
                {
                    "pool_id": pool_id,
                    "user": user,
                    "amount": int(pos.amount),
                    "debt": {token: int(v) for token, v in pos.debt.items()},
                }
            )
    positions_entries.sort(key=lambda e: (e["pool_id"], e["user"]))

    tokens = farm.reward_tokens()
    distributed = sorted(set(tokens) | set(farm.distributed_tokens()))

    data: Dict[str, Any] = {
        "version": version,
        "start_time": farm.start_time,
        "total_allocation_weight": int(farm.total_allocation_weight),
        "pools": pools_entries,
        "positions": positions_entries,
        "reward_tokens": list(tokens),
        "total_distributed": [
            {"token": token, "amount": int(farm.total_distributed(token))} for token in distributed
        ],
        "users": list(farm.users()),
    }
    return FarmSnapshot(version=version, data=data)
