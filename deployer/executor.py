"""Weight resolution and the one-shot instantiate submission.

A Deployment walks AWAITING_BUDGET -> [ESTIMATING] -> SUBMITTING -> DONE/FAILED.
SUBMITTING can be entered once per instance; a failed or timed-out submission
is reported, never retried, because the extrinsic may already be in a block.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from deployer import config
from deployer.errors import DeployError, ErrorKind
from deployer.interfaces import ChainClient
from deployer.models import ContractAddress, DryRunEstimate, InstantiationRequest, WeightLimit

log = logging.getLogger(__name__)


class DeployState(str, Enum):
    AWAITING_BUDGET = "awaiting_budget"
    ESTIMATING = "estimating"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: Dict[DeployState, FrozenSet[DeployState]] = {
    DeployState.AWAITING_BUDGET: frozenset({DeployState.ESTIMATING, DeployState.SUBMITTING, DeployState.FAILED}),
    # ESTIMATING -> DONE only for dry-run-only invocations
    DeployState.ESTIMATING: frozenset({DeployState.SUBMITTING, DeployState.DONE, DeployState.FAILED}),
    DeployState.SUBMITTING: frozenset({DeployState.DONE, DeployState.FAILED}),
    DeployState.DONE: frozenset(),
    DeployState.FAILED: frozenset(),
}


class IllegalTransition(RuntimeError):
    pass


class Deployment:
    def __init__(
        self,
        request: InstantiationRequest,
        chain: ChainClient,
        *,
        dry_run_timeout_s: Optional[float] = None,
        submit_timeout_s: Optional[float] = None,
    ) -> None:
        self.request = request
        self.chain = chain
        self.dry_run_timeout_s = float(dry_run_timeout_s if dry_run_timeout_s is not None else config.DRY_RUN_TIMEOUT_S)
        self.submit_timeout_s = float(submit_timeout_s if submit_timeout_s is not None else config.SUBMIT_TIMEOUT_S)
        self.state = DeployState.AWAITING_BUDGET
        self.weight_limit: Optional[WeightLimit] = None
        self.estimated = False
        self.estimate: Optional[DryRunEstimate] = None
        self.address: Optional[ContractAddress] = None
        self.error: Optional[DeployError] = None

    def _transition(self, target: DeployState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise IllegalTransition(f"{self.state.value} -> {target.value}")
        log.debug("deployment %s -> %s", self.state.value, target.value)
        self.state = target

    def _fail(self, err: DeployError) -> DeployError:
        self.error = err
        self._transition(DeployState.FAILED)
        return err

    async def _simulate(self) -> DryRunEstimate:
        self._transition(DeployState.ESTIMATING)
        log.info("Doing a dry run to estimate the gas...")
        try:
            estimate = await asyncio.wait_for(
                self.chain.dry_run_instantiate(self.request),
                timeout=self.dry_run_timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise self._fail(
                DeployError(ErrorKind.ESTIMATION_FAILED, f"dry run timed out after {self.dry_run_timeout_s}s")
            ) from exc
        except asyncio.CancelledError:
            # nothing was submitted, a plain cancellation is safe
            self._fail(DeployError(ErrorKind.ESTIMATION_FAILED, "dry run cancelled"))
            raise
        except DeployError as exc:
            raise self._fail(DeployError(ErrorKind.ESTIMATION_FAILED, "dry run failed", cause=exc)) from exc
        except Exception as exc:
            raise self._fail(
                DeployError(ErrorKind.ESTIMATION_FAILED, f"dry run failed: {type(exc).__name__}", cause=exc)
            ) from exc

        if not estimate.ok or estimate.weight_limit is None:
            raise self._fail(
                DeployError(
                    ErrorKind.ESTIMATION_FAILED,
                    f"Pre-submission dry-run failed: {estimate.reason or 'no weight estimate'}",
                )
            )
        self.estimate = estimate
        log.info("Gas limit %s", estimate.weight_limit)
        return estimate

    async def resolve_weight(self) -> WeightLimit:
        if self.state is not DeployState.AWAITING_BUDGET:
            raise IllegalTransition(f"weight already resolved ({self.state.value})")
        if self.request.weight_limit is not None:
            self.weight_limit = self.request.weight_limit
            self.estimated = False
            log.info("Using caller-supplied %s", self.weight_limit)
            return self.weight_limit
        estimate = await self._simulate()
        self.weight_limit = estimate.weight_limit
        self.estimated = True
        return self.weight_limit

    async def submit(self) -> ContractAddress:
        if self.weight_limit is None:
            raise IllegalTransition("submit before the weight limit is resolved")
        self._transition(DeployState.SUBMITTING)
        log.info("Uploading and instantiating the contract...")
        try:
            address = await asyncio.wait_for(
                self.chain.submit_instantiate(self.request, self.weight_limit, self.request.signer),
                timeout=self.submit_timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise self._fail(
                DeployError(
                    ErrorKind.INDETERMINATE_OUTCOME,
                    f"no inclusion within {self.submit_timeout_s}s; the extrinsic may still land, "
                    "check the deployer account before deploying again",
                )
            ) from exc
        except asyncio.CancelledError as exc:
            raise self._fail(
                DeployError(
                    ErrorKind.INDETERMINATE_OUTCOME,
                    "cancelled while submitting; the extrinsic may still land, "
                    "check the deployer account before deploying again",
                )
            ) from exc
        except DeployError as exc:
            if exc.kind is ErrorKind.SUBMISSION_FAILED:
                raise self._fail(exc)
            raise self._fail(DeployError(ErrorKind.SUBMISSION_FAILED, "submission failed", cause=exc)) from exc
        except Exception as exc:
            raise self._fail(
                DeployError(ErrorKind.SUBMISSION_FAILED, f"submission failed: {type(exc).__name__}", cause=exc)
            ) from exc

        self.address = address
        self._transition(DeployState.DONE)
        log.info("Contract deployed and instantiated: The Contract Address is %s", address)
        return address

    async def run(self) -> ContractAddress:
        await self.resolve_weight()
        return await self.submit()

    async def dry_run(self) -> DryRunEstimate:
        """Estimate only. Never enters SUBMITTING."""
        if self.state is not DeployState.AWAITING_BUDGET:
            raise IllegalTransition(f"dry run from {self.state.value}")
        estimate = await self._simulate()
        self.weight_limit = self.request.weight_limit or estimate.weight_limit
        self.estimated = self.request.weight_limit is None
        self._transition(DeployState.DONE)
        return estimate


def deployment_record(deployment: Deployment) -> Dict[str, Any]:
    req = deployment.request
    weight = deployment.weight_limit
    estimate = deployment.estimate
    address = deployment.address
    return {
        "status": deployment.state.value,
        "dry_run": address is None and deployment.state is DeployState.DONE,
        "contract": req.artifact.name,
        "code_hash": req.artifact.code_hash,
        "constructor": req.constructor,
        "args": list(req.args),
        "value": str(int(req.value)),
        "salt": "0x" + req.salt.hex() if req.salt is not None else None,
        "deployer": req.signer_address,
        "url": req.url,
        "weight_limit": weight.as_call_param() if weight else None,
        "weight_estimated": bool(deployment.estimated),
        "storage_deposit": str(estimate.storage_deposit) if estimate and estimate.storage_deposit is not None else None,
        "predicted_address": estimate.contract_address if estimate else None,
        "address": address.address if address else None,
        "extrinsic_hash": address.extrinsic_hash if address else None,
        "block_hash": address.block_hash if address else None,
        "error": str(deployment.error) if deployment.error else None,
    }
