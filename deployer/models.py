from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from deployer import config
from deployer.errors import DeployError, ErrorKind


@dataclass(frozen=True)
class WeightLimit:
    """Upper bound on what the chain may spend executing the call."""

    ref_time: int
    proof_size: int

    def __post_init__(self) -> None:
        for name in ("ref_time", "proof_size"):
            val = getattr(self, name)
            if isinstance(val, bool) or not isinstance(val, int):
                raise ValueError(f"{name} must be an integer, got {val!r}")
            if val < 0 or val > config.MAX_WEIGHT_PART:
                raise ValueError(f"{name} out of u64 range: {val}")

    def as_call_param(self) -> Dict[str, int]:
        return {"ref_time": int(self.ref_time), "proof_size": int(self.proof_size)}

    def __str__(self) -> str:
        return f"Weight(ref_time: {self.ref_time}, proof_size: {self.proof_size})"


def weight_limit_from_parts(gas_limit: Optional[int], proof_size: Optional[int]) -> Optional[WeightLimit]:
    """Return a fixed limit, or None when it has to be estimated.

    Both parts travel together: a gas limit without a proof size (or the
    reverse) is rejected instead of guessing the missing half.
    """
    if gas_limit is None and proof_size is None:
        return None
    if gas_limit is None or proof_size is None:
        missing = "proof_size" if proof_size is None else "gas"
        raise DeployError(
            ErrorKind.PARTIAL_WEIGHT_LIMIT,
            f"--gas and --proof-size must be given together (missing {missing}); "
            "omit both to estimate them with a dry run",
        )
    try:
        return WeightLimit(ref_time=int(gas_limit), proof_size=int(proof_size))
    except ValueError as exc:
        raise DeployError(ErrorKind.INVALID_ARGUMENTS, str(exc), cause=exc) from exc


@dataclass(frozen=True)
class TokenMetadata:
    decimals: int
    symbol: str


@dataclass(frozen=True)
class ContractArtifact:
    manifest_path: Path
    name: str
    wasm: bytes = field(repr=False)
    metadata_path: Path
    metadata: Dict[str, Any] = field(repr=False, compare=False)

    @property
    def code_hash(self) -> str:
        return "0x" + hashlib.blake2b(self.wasm, digest_size=32).hexdigest()


@dataclass(frozen=True)
class ContractAddress:
    address: str
    extrinsic_hash: Optional[str] = field(default=None, compare=False)
    block_hash: Optional[str] = field(default=None, compare=False)

    def __str__(self) -> str:
        return self.address


@dataclass(frozen=True)
class DryRunEstimate:
    ok: bool
    weight_limit: Optional[WeightLimit] = None
    reason: Optional[str] = None
    gas_consumed: Optional[WeightLimit] = None
    storage_deposit: Optional[int] = None
    contract_address: Optional[str] = None
    debug_message: Optional[str] = None


@dataclass(frozen=True)
class DeployOptions:
    """Raw caller input, before anything is resolved."""

    suri: str
    path: Optional[Path] = None
    constructor: str = config.DEFAULT_CONSTRUCTOR
    args: Tuple[str, ...] = ()
    value: str = config.DEFAULT_VALUE
    gas_limit: Optional[int] = None
    proof_size: Optional[int] = None
    salt: Optional[str] = None
    url: str = config.DEFAULT_URL
    storage_deposit_limit: Optional[int] = None


@dataclass(frozen=True)
class InstantiationRequest:
    constructor: str
    args: Tuple[str, ...]
    value: int
    weight_limit: Optional[WeightLimit]
    salt: Optional[bytes]
    signer: Any = field(repr=False, compare=False)
    url: str
    artifact: ContractArtifact = field(repr=False)
    token: Optional[TokenMetadata] = None
    ss58_format: int = config.DEFAULT_SS58_FORMAT
    storage_deposit_limit: Optional[int] = None

    @property
    def signer_address(self) -> str:
        return str(getattr(self.signer, "ss58_address", "") or "")
