# infra/chain.py

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from substrateinterface import SubstrateInterface
from substrateinterface.contracts import ContractMetadata

from deployer.errors import DeployError, ErrorKind
from deployer.manifest import constructor_signatures
from deployer.models import ContractAddress, DryRunEstimate, InstantiationRequest, WeightLimit

log = logging.getLogger(__name__)

# pallet-contracts ReturnFlags
_FLAG_REVERT = 0x1


def decode_cli_arg(raw: str) -> Any:
    """Turn a CLI argument string into a value the SCALE encoder accepts.

    JSON literals ('42', 'true', '[1, 2]', '"text"') are decoded; anything
    else (SS58 addresses, bare words) is passed through as a string.
    """
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, dict):
        for key in ("bits", "Charge", "Refund"):
            if key in value:
                return _as_int(value[key])
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _weight(value: Any) -> Optional[WeightLimit]:
    if isinstance(value, dict):
        ref_time = _as_int(value.get("ref_time"))
        proof_size = _as_int(value.get("proof_size"))
        if ref_time is None or proof_size is None:
            return None
        return WeightLimit(ref_time=ref_time, proof_size=proof_size)
    scalar = _as_int(value)
    if scalar is not None:
        # weights v1: one dimension only
        return WeightLimit(ref_time=scalar, proof_size=0)
    return None


def _debug_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        text = bytes(value).decode("utf-8", errors="replace")
    elif isinstance(value, str) and value.startswith("0x"):
        try:
            text = bytes.fromhex(value[2:]).decode("utf-8", errors="replace")
        except ValueError:
            text = value
    else:
        text = str(value)
    return text.strip() or None


def describe_dispatch_error(err: Any, module_error: Optional[Callable[[int, int], Any]] = None) -> str:
    """Render a DispatchError from a runtime call result as text."""
    if isinstance(err, dict) and "Module" in err:
        mod = err.get("Module") or {}
        module_index = _as_int(mod.get("index"))
        raw_error = mod.get("error")
        if isinstance(raw_error, str) and raw_error.startswith("0x"):
            error_index = int(raw_error[2:4] or "0", 16)
        else:
            error_index = _as_int(raw_error)
        if module_error is not None and module_index is not None and error_index is not None:
            try:
                resolved = module_error(module_index, error_index)
            except (KeyError, IndexError, ValueError, AttributeError):
                resolved = None
            if resolved is not None:
                name = getattr(resolved, "name", None) or str(resolved)
                docs = " ".join(getattr(resolved, "docs", None) or [])
                return f"Module error: {name}" + (f" ({docs})" if docs else "")
        return f"Module error: index={module_index} error={error_index}"
    if isinstance(err, dict) and err:
        key = next(iter(err))
        inner = err[key]
        return f"{key}: {inner}" if inner not in (None, {}) else str(key)
    return str(err)


def interpret_dry_run(value: Dict[str, Any], module_error: Optional[Callable[[int, int], Any]] = None) -> DryRunEstimate:
    """Turn a ContractsApi_instantiate result into a DryRunEstimate.

    The limit for the real call is gas_required, not gas_consumed: the
    former accounts for weight refunded during execution.
    """
    if not isinstance(value, dict):
        return DryRunEstimate(ok=False, reason="empty dry-run result")

    required = _weight(value.get("gas_required"))
    consumed = _weight(value.get("gas_consumed"))
    storage_deposit = _as_int(value.get("storage_deposit"))
    debug_message = _debug_text(value.get("debug_message"))
    result = value.get("result") or {}

    if isinstance(result, dict) and "Err" in result:
        reason = describe_dispatch_error(result.get("Err"), module_error)
        if debug_message:
            reason = f"{reason}: {debug_message}"
        return DryRunEstimate(
            ok=False,
            reason=reason,
            gas_consumed=consumed,
            storage_deposit=storage_deposit,
            debug_message=debug_message,
        )

    ok_val = result.get("Ok") if isinstance(result, dict) else None
    if not isinstance(ok_val, dict):
        return DryRunEstimate(ok=False, reason=f"unexpected dry-run result: {result!r}")

    inner = ok_val.get("result") or {}
    flags = _as_int(inner.get("flags")) or 0
    address = ok_val.get("account_id")
    if flags & _FLAG_REVERT:
        return DryRunEstimate(
            ok=False,
            reason="constructor reverted" + (f": {debug_message}" if debug_message else ""),
            gas_consumed=consumed,
            storage_deposit=storage_deposit,
            contract_address=str(address) if address else None,
            debug_message=debug_message,
        )
    if required is None:
        return DryRunEstimate(ok=False, reason="dry-run result has no gas_required")

    return DryRunEstimate(
        ok=True,
        weight_limit=required,
        gas_consumed=consumed,
        storage_deposit=storage_deposit,
        contract_address=str(address) if address else None,
        debug_message=debug_message,
    )


def _event_value(event: Any) -> Dict[str, Any]:
    value = getattr(event, "value", event)
    if not isinstance(value, dict):
        return {}
    # EventRecord values nest the event itself under 'event'
    inner = value.get("event")
    if isinstance(inner, dict) and "event_id" in inner:
        return inner
    return value


def instantiated_address(events: Iterable[Any]) -> Optional[str]:
    """Pick the new contract's address out of Contracts.Instantiated."""
    for event in events or []:
        ev = _event_value(event)
        if ev.get("module_id") != "Contracts" or ev.get("event_id") != "Instantiated":
            continue
        attrs = ev.get("attributes")
        if isinstance(attrs, dict) and attrs.get("contract"):
            return str(attrs["contract"])
        if isinstance(attrs, (list, tuple)) and len(attrs) >= 2:
            return str(attrs[1])
    return None


class SubstrateChainClient:
    """pallet-contracts access through substrate-interface.

    substrate-interface is blocking, so every call runs in a worker thread.
    """

    def __init__(
        self,
        url: str,
        *,
        ss58_format: Optional[int] = None,
        type_registry_preset: Optional[str] = None,
        substrate: Optional[SubstrateInterface] = None,
    ) -> None:
        self.url = url
        self.ss58_format = ss58_format
        self.type_registry_preset = type_registry_preset
        self._substrate = substrate

    def _connect(self) -> SubstrateInterface:
        if self._substrate is None:
            kwargs: Dict[str, Any] = {"url": self.url}
            if self.ss58_format is not None:
                kwargs["ss58_format"] = int(self.ss58_format)
            if self.type_registry_preset:
                kwargs["type_registry_preset"] = self.type_registry_preset
            self._substrate = SubstrateInterface(**kwargs)
        return self._substrate

    def close(self) -> None:
        if self._substrate is not None:
            self._substrate.close()
        self._substrate = None

    def _module_error(self, substrate: SubstrateInterface) -> Callable[[int, int], Any]:
        def _lookup(module_index: int, error_index: int) -> Any:
            return substrate.metadata.get_module_error(module_index=module_index, error_index=error_index)

        return _lookup

    def _constructor_data(self, substrate: SubstrateInterface, request: InstantiationRequest) -> str:
        labels = constructor_signatures(request.artifact.metadata).get(request.constructor)
        if labels is None:
            raise DeployError(ErrorKind.INVALID_ARGUMENTS, f"constructor {request.constructor!r} not in metadata")
        metadata = ContractMetadata(metadata_dict=request.artifact.metadata, substrate=substrate)
        args = {label: decode_cli_arg(raw) for label, raw in zip(labels, request.args)}
        data = metadata.generate_constructor_data(name=request.constructor, args=args)
        return data.to_hex()

    def _dry_run(self, request: InstantiationRequest) -> DryRunEstimate:
        substrate = self._connect()
        data = self._constructor_data(substrate, request)
        result = substrate.runtime_call(
            "ContractsApi",
            "instantiate",
            {
                "origin": request.signer_address,
                "value": int(request.value),
                "gas_limit": None,
                "storage_deposit_limit": request.storage_deposit_limit,
                "code": {"Upload": "0x" + request.artifact.wasm.hex()},
                "data": data,
                "salt": "0x" + (request.salt or b"").hex(),
            },
        )
        return interpret_dry_run(getattr(result, "value", result), self._module_error(substrate))

    def _submit(self, request: InstantiationRequest, weight_limit: WeightLimit, signer: Any) -> ContractAddress:
        substrate = self._connect()
        data = self._constructor_data(substrate, request)
        call = substrate.compose_call(
            call_module="Contracts",
            call_function="instantiate_with_code",
            call_params={
                "value": int(request.value),
                "gas_limit": weight_limit.as_call_param(),
                "storage_deposit_limit": request.storage_deposit_limit,
                "code": "0x" + request.artifact.wasm.hex(),
                "data": data,
                "salt": "0x" + (request.salt or b"").hex(),
            },
        )
        extrinsic = substrate.create_signed_extrinsic(call=call, keypair=signer)
        receipt = substrate.submit_extrinsic(extrinsic, wait_for_inclusion=True)
        log.debug("extrinsic %s included in %s", receipt.extrinsic_hash, receipt.block_hash)

        if not receipt.is_success:
            err = receipt.error_message
            if isinstance(err, dict):
                err = f"{err.get('name')}: {' '.join(err.get('docs') or [])}".strip(": ")
            raise DeployError(
                ErrorKind.SUBMISSION_FAILED,
                f"extrinsic {receipt.extrinsic_hash} failed: {err}",
            )
        address = instantiated_address(receipt.triggered_events)
        if not address:
            raise DeployError(
                ErrorKind.SUBMISSION_FAILED,
                f"extrinsic {receipt.extrinsic_hash} succeeded without a Contracts.Instantiated event",
            )
        return ContractAddress(address=address, extrinsic_hash=receipt.extrinsic_hash, block_hash=receipt.block_hash)

    async def dry_run_instantiate(self, request: InstantiationRequest) -> DryRunEstimate:
        return await asyncio.to_thread(self._dry_run, request)

    async def submit_instantiate(
        self,
        request: InstantiationRequest,
        weight_limit: WeightLimit,
        signer: Any,
    ) -> ContractAddress:
        return await asyncio.to_thread(self._submit, request, weight_limit, signer)
