from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Protocol, Tuple

from deployer.models import ContractAddress, DryRunEstimate, InstantiationRequest, TokenMetadata, WeightLimit


class ManifestResolver(Protocol):
    def __call__(self, path: Optional[Path] = None) -> Path: ...


class TokenMetadataQuery(Protocol):
    async def query(self, url: str) -> Tuple[TokenMetadata, int]: ...


class SignerFactory(Protocol):
    def __call__(self, suri: str, ss58_format: int) -> Any: ...


class ChainClient(Protocol):
    async def dry_run_instantiate(self, request: InstantiationRequest) -> DryRunEstimate: ...

    async def submit_instantiate(
        self,
        request: InstantiationRequest,
        weight_limit: WeightLimit,
        signer: Any,
    ) -> ContractAddress: ...
