from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional

from deployer import config
from deployer.errors import DeployError
from deployer.executor import Deployment
from deployer.interfaces import ChainClient, SignerFactory, TokenMetadataQuery
from deployer.models import DeployOptions, InstantiationRequest
from deployer.preparer import prepare_deployment
from deployer.run_lock import SignerLock
from deployer.signer import create_signer

log = logging.getLogger(__name__)

ChainFactory = Callable[[InstantiationRequest], ChainClient]


def _close(chain: Any) -> None:
    close = getattr(chain, "close", None)
    if callable(close):
        try:
            close()
        except OSError as exc:
            log.debug("closing chain client: %s", exc)


async def run_deployment(
    options: DeployOptions,
    *,
    token_metadata: TokenMetadataQuery,
    chain_factory: ChainFactory,
    signer_factory: SignerFactory = create_signer,
    dry_run: bool = False,
    lock_dir: Optional[Path] = None,
    rpc_timeout_s: Optional[float] = None,
    dry_run_timeout_s: Optional[float] = None,
    submit_timeout_s: Optional[float] = None,
) -> Deployment:
    """prepare -> resolve weight -> submit, for exactly one request.

    Returns the finished Deployment (state DONE). Any terminal failure is
    raised as DeployError; the Deployment that failed is attached to it as
    `deployment` when one had been created.
    """
    request = await prepare_deployment(
        options,
        token_metadata=token_metadata,
        signer_factory=signer_factory,
        timeout_s=rpc_timeout_s,
    )

    chain = chain_factory(request)
    deployment = Deployment(
        request,
        chain,
        dry_run_timeout_s=dry_run_timeout_s,
        submit_timeout_s=submit_timeout_s,
    )
    try:
        if dry_run:
            await deployment.dry_run()
            return deployment
        with SignerLock(lock_dir or config.LOCK_DIR, request.signer_address):
            await deployment.run()
        return deployment
    except DeployError as exc:
        exc.deployment = deployment
        raise
    finally:
        _close(chain)
