import asyncio
import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any, List, Optional, Tuple

import pytest

from deployer.errors import DeployError
from deployer.manifest import load_artifact
from deployer.models import ContractAddress, DryRunEstimate, InstantiationRequest, TokenMetadata, WeightLimit

ALICE = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"
WASM = bytes.fromhex("0061736d01000000")

FLIPPER_METADATA = {
    "source": {"hash": "0x00", "language": "ink! 4.3.0", "compiler": "rustc 1.72.0", "wasm": "0x" + WASM.hex()},
    "contract": {"name": "flipper", "version": "0.1.0"},
    "spec": {
        "constructors": [
            {"label": "new", "args": [{"label": "init_value", "type": {"type": 0}}], "selector": "0x9bae9d5e"},
            {"label": "default", "args": [], "selector": "0xed4b9d1b"},
        ],
        "messages": [],
    },
    "version": "4",
}


def write_contract(root: Path, *, name: str = "flipper", bundle: bool = True) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    (root / "Cargo.toml").write_text(
        f'[package]\nname = "{name}"\nversion = "0.1.0"\nedition = "2021"\n',
        encoding="utf-8",
    )
    build = root / "target" / "ink"
    build.mkdir(parents=True, exist_ok=True)
    artifact = name.replace("-", "_")
    if bundle:
        (build / f"{artifact}.contract").write_text(json.dumps(FLIPPER_METADATA), encoding="utf-8")
    else:
        meta = dict(FLIPPER_METADATA)
        meta["source"] = {k: v for k, v in FLIPPER_METADATA["source"].items() if k != "wasm"}
        (build / f"{artifact}.json").write_text(json.dumps(meta), encoding="utf-8")
        (build / f"{artifact}.wasm").write_bytes(WASM)
    return root


class FakeTokenMetadata:
    def __init__(self, decimals: int = 12, symbol: str = "UNIT", ss58: int = 42, exc: Optional[Exception] = None, delay_s: float = 0.0):
        self.decimals = decimals
        self.symbol = symbol
        self.ss58 = ss58
        self.exc = exc
        self.delay_s = delay_s
        self.calls: List[str] = []

    async def query(self, url: str) -> Tuple[TokenMetadata, int]:
        self.calls.append(url)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.exc is not None:
            raise self.exc
        return TokenMetadata(decimals=self.decimals, symbol=self.symbol), self.ss58


class FakeChain:
    def __init__(
        self,
        estimate: Optional[DryRunEstimate] = None,
        address: str = "5FakeContractAddress",
        dry_run_exc: Optional[BaseException] = None,
        submit_exc: Optional[BaseException] = None,
        submit_delay_s: float = 0.0,
    ):
        self.estimate = estimate or DryRunEstimate(ok=True, weight_limit=WeightLimit(84213000, 98304))
        self.address = address
        self.dry_run_exc = dry_run_exc
        self.submit_exc = submit_exc
        self.submit_delay_s = submit_delay_s
        self.dry_run_calls: List[InstantiationRequest] = []
        self.submit_calls: List[Tuple[InstantiationRequest, WeightLimit, Any]] = []
        self.closed = False

    async def dry_run_instantiate(self, request: InstantiationRequest) -> DryRunEstimate:
        self.dry_run_calls.append(request)
        if self.dry_run_exc is not None:
            raise self.dry_run_exc
        return self.estimate

    async def submit_instantiate(self, request: InstantiationRequest, weight_limit: WeightLimit, signer: Any) -> ContractAddress:
        self.submit_calls.append((request, weight_limit, signer))
        if self.submit_delay_s:
            await asyncio.sleep(self.submit_delay_s)
        if self.submit_exc is not None:
            raise self.submit_exc
        return ContractAddress(address=self.address, extrinsic_hash="0xabc", block_hash="0xdef")

    def close(self) -> None:
        self.closed = True


def fake_signer_factory(suri: str, ss58_format: int) -> Any:
    if suri == "//bad":
        from deployer.errors import ErrorKind

        raise DeployError(ErrorKind.INVALID_SIGNING_KEY, "bad key")
    return SimpleNamespace(ss58_address=ALICE, suri=suri, ss58_format=ss58_format)


@pytest.fixture
def contract_dir(tmp_path: Path) -> Path:
    return write_contract(tmp_path / "flipper")


@pytest.fixture
def make_request(contract_dir: Path):
    artifact = load_artifact(contract_dir / "Cargo.toml")

    def _make(weight_limit: Optional[WeightLimit] = None, **overrides: Any) -> InstantiationRequest:
        fields = dict(
            constructor="new",
            args=("true",),
            value=0,
            weight_limit=weight_limit,
            salt=None,
            signer=SimpleNamespace(ss58_address=ALICE),
            url="ws://localhost:9944",
            artifact=artifact,
            token=TokenMetadata(decimals=12, symbol="UNIT"),
        )
        fields.update(overrides)
        return InstantiationRequest(**fields)

    return _make
