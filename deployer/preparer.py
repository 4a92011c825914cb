"""Turn raw deploy options into one immutable InstantiationRequest.

Nothing here mutates chain state: the only network access is the
system_properties query used to denominate the transfer value.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from deployer import config
from deployer.balance import format_balance, parse_balance
from deployer.errors import DeployError, ErrorKind
from deployer.interfaces import ManifestResolver, SignerFactory, TokenMetadataQuery
from deployer.manifest import check_constructor, load_artifact, resolve_manifest
from deployer.models import DeployOptions, InstantiationRequest, weight_limit_from_parts
from deployer.signer import create_signer, parse_hex_bytes, redact_suri

log = logging.getLogger(__name__)


async def prepare_deployment(
    options: DeployOptions,
    *,
    token_metadata: TokenMetadataQuery,
    signer_factory: SignerFactory = create_signer,
    manifest_resolver: ManifestResolver = resolve_manifest,
    timeout_s: Optional[float] = None,
) -> InstantiationRequest:
    # Local checks first so a bad invocation never touches the network.
    manifest_path = manifest_resolver(options.path)
    artifact = load_artifact(manifest_path)
    check_constructor(artifact, options.constructor, options.args)
    weight_limit = weight_limit_from_parts(options.gas_limit, options.proof_size)
    salt = parse_hex_bytes(options.salt)
    if options.storage_deposit_limit is not None and int(options.storage_deposit_limit) < 0:
        raise DeployError(ErrorKind.INVALID_ARGUMENTS, "storage deposit limit must be non-negative")
    log.info("Contract %s (%d bytes) from %s", artifact.name, len(artifact.wasm), artifact.metadata_path)

    deadline = float(timeout_s if timeout_s is not None else config.metadata_deadline_s())
    try:
        token, ss58_format = await asyncio.wait_for(token_metadata.query(options.url), timeout=deadline)
    except asyncio.TimeoutError as exc:
        cause = DeployError(ErrorKind.NETWORK_ERROR, f"no answer from {options.url} within {deadline}s")
        raise DeployError(
            ErrorKind.BALANCE_RESOLUTION_FAILED,
            "cannot query token metadata",
            cause=cause,
        ) from exc
    except DeployError as exc:
        raise DeployError(
            ErrorKind.BALANCE_RESOLUTION_FAILED,
            "cannot query token metadata",
            cause=exc,
        ) from exc

    value = parse_balance(options.value, token)
    signer = signer_factory(options.suri, ss58_format)
    log.info(
        "Deployer %s (%s), transfer %s",
        getattr(signer, "ss58_address", "?"),
        redact_suri(options.suri),
        format_balance(value, token),
    )

    return InstantiationRequest(
        constructor=options.constructor,
        args=tuple(options.args),
        value=value,
        weight_limit=weight_limit,
        salt=salt,
        signer=signer,
        url=options.url,
        artifact=artifact,
        token=token,
        ss58_format=ss58_format,
        storage_deposit_limit=options.storage_deposit_limit,
    )
