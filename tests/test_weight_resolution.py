import asyncio

import pytest

from conftest import FakeChain
from deployer.errors import DeployError, ErrorKind
from deployer.executor import Deployment, DeployState, IllegalTransition, deployment_record
from deployer.models import DryRunEstimate, WeightLimit, weight_limit_from_parts


def test_fixed_weight_skips_dry_run(make_request) -> None:
    chain = FakeChain()
    request = make_request(weight_limit_from_parts(100_000_000, 131_072))
    deployment = Deployment(request, chain)

    address = asyncio.run(deployment.run())

    assert chain.dry_run_calls == []
    assert len(chain.submit_calls) == 1
    assert chain.submit_calls[0][1] == WeightLimit(100_000_000, 131_072)
    assert chain.submit_calls[0][2] is request.signer
    assert address.address == "5FakeContractAddress"
    assert deployment.state is DeployState.DONE
    assert deployment.estimated is False


def test_missing_weight_uses_dry_run_estimate(make_request) -> None:
    chain = FakeChain(estimate=DryRunEstimate(ok=True, weight_limit=WeightLimit(84_213_000, 98_304)))
    deployment = Deployment(make_request(), chain)

    asyncio.run(deployment.run())

    assert len(chain.dry_run_calls) == 1
    assert len(chain.submit_calls) == 1
    assert chain.submit_calls[0][1] == WeightLimit(84_213_000, 98_304)
    assert deployment.estimated is True
    assert deployment.state is DeployState.DONE


def test_partial_weight_is_rejected() -> None:
    with pytest.raises(DeployError) as exc_info:
        weight_limit_from_parts(100_000_000, None)
    assert exc_info.value.kind is ErrorKind.PARTIAL_WEIGHT_LIMIT

    with pytest.raises(DeployError) as exc_info:
        weight_limit_from_parts(None, 131_072)
    assert exc_info.value.kind is ErrorKind.PARTIAL_WEIGHT_LIMIT

    assert weight_limit_from_parts(None, None) is None


def test_weight_limit_rejects_out_of_range() -> None:
    with pytest.raises(ValueError):
        WeightLimit(-1, 0)
    with pytest.raises(ValueError):
        WeightLimit(0, 2**64)
    with pytest.raises(DeployError) as exc_info:
        weight_limit_from_parts(2**64, 1)
    assert exc_info.value.kind is ErrorKind.INVALID_ARGUMENTS


def test_failed_dry_run_never_submits(make_request) -> None:
    chain = FakeChain(estimate=DryRunEstimate(ok=False, reason="contract trapped during execution"))
    deployment = Deployment(make_request(), chain)

    with pytest.raises(DeployError) as exc_info:
        asyncio.run(deployment.run())

    assert exc_info.value.kind is ErrorKind.ESTIMATION_FAILED
    assert "contract trapped during execution" in str(exc_info.value)
    assert chain.submit_calls == []
    assert deployment.state is DeployState.FAILED
    assert deployment.error is exc_info.value


def test_dry_run_client_error_is_estimation_failure(make_request) -> None:
    chain = FakeChain(dry_run_exc=ConnectionError("socket closed"))
    deployment = Deployment(make_request(), chain)

    with pytest.raises(DeployError) as exc_info:
        asyncio.run(deployment.run())

    assert exc_info.value.kind is ErrorKind.ESTIMATION_FAILED
    assert isinstance(exc_info.value.cause, ConnectionError)
    assert chain.submit_calls == []


def test_submission_failure_after_estimate(make_request) -> None:
    chain = FakeChain(submit_exc=DeployError(ErrorKind.SUBMISSION_FAILED, "Inability to pay some fees (e.g. account balance too low)"))
    deployment = Deployment(make_request(), chain)

    with pytest.raises(DeployError) as exc_info:
        asyncio.run(deployment.run())

    assert exc_info.value.kind is ErrorKind.SUBMISSION_FAILED
    assert len(chain.dry_run_calls) == 1
    assert len(chain.submit_calls) == 1
    assert deployment.address is None
    assert deployment.state is DeployState.FAILED


def test_unexpected_submission_error_is_wrapped(make_request) -> None:
    chain = FakeChain(submit_exc=RuntimeError("1010: Invalid Transaction"))
    deployment = Deployment(make_request(WeightLimit(1, 1)), chain)

    with pytest.raises(DeployError) as exc_info:
        asyncio.run(deployment.run())

    assert exc_info.value.kind is ErrorKind.SUBMISSION_FAILED
    assert isinstance(exc_info.value.cause, RuntimeError)


def test_submission_timeout_is_indeterminate(make_request) -> None:
    chain = FakeChain(submit_delay_s=1.0)
    deployment = Deployment(make_request(WeightLimit(1, 1)), chain, submit_timeout_s=0.05)

    with pytest.raises(DeployError) as exc_info:
        asyncio.run(deployment.run())

    assert exc_info.value.kind is ErrorKind.INDETERMINATE_OUTCOME
    assert len(chain.submit_calls) == 1


def test_dry_run_timeout_is_clean_failure(make_request) -> None:
    class SlowChain(FakeChain):
        async def dry_run_instantiate(self, request):
            await asyncio.sleep(1.0)
            return self.estimate

    chain = SlowChain()
    deployment = Deployment(make_request(), chain, dry_run_timeout_s=0.05)

    with pytest.raises(DeployError) as exc_info:
        asyncio.run(deployment.run())

    assert exc_info.value.kind is ErrorKind.ESTIMATION_FAILED
    assert chain.submit_calls == []


@pytest.mark.asyncio
async def test_cancel_while_submitting_is_indeterminate(make_request) -> None:
    chain = FakeChain(submit_delay_s=5.0)
    deployment = Deployment(make_request(WeightLimit(1, 1)), chain, submit_timeout_s=10.0)

    task = asyncio.ensure_future(deployment.run())
    while not chain.submit_calls:
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(DeployError) as exc_info:
        await task

    assert exc_info.value.kind is ErrorKind.INDETERMINATE_OUTCOME
    assert deployment.state is DeployState.FAILED
    assert len(chain.submit_calls) == 1


@pytest.mark.asyncio
async def test_cancel_while_estimating_propagates(make_request) -> None:
    class SlowChain(FakeChain):
        async def dry_run_instantiate(self, request):
            self.dry_run_calls.append(request)
            await asyncio.sleep(5.0)
            return self.estimate

    chain = SlowChain()
    deployment = Deployment(make_request(), chain, dry_run_timeout_s=10.0)

    task = asyncio.ensure_future(deployment.run())
    while not chain.dry_run_calls:
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert deployment.state is DeployState.FAILED
    assert deployment.error.kind is ErrorKind.ESTIMATION_FAILED
    assert chain.submit_calls == []


@pytest.mark.asyncio
async def test_submission_happens_at_most_once(make_request) -> None:
    chain = FakeChain(submit_exc=DeployError(ErrorKind.SUBMISSION_FAILED, "rejected"))
    deployment = Deployment(make_request(WeightLimit(1, 1)), chain)

    with pytest.raises(DeployError):
        await deployment.run()
    with pytest.raises(IllegalTransition):
        await deployment.submit()
    with pytest.raises(IllegalTransition):
        await deployment.resolve_weight()

    assert len(chain.submit_calls) == 1


@pytest.mark.asyncio
async def test_successful_deployment_cannot_submit_again(make_request) -> None:
    chain = FakeChain()
    deployment = Deployment(make_request(WeightLimit(1, 1)), chain)

    await deployment.run()
    with pytest.raises(IllegalTransition):
        await deployment.submit()

    assert len(chain.submit_calls) == 1


@pytest.mark.asyncio
async def test_submit_requires_resolved_weight(make_request) -> None:
    deployment = Deployment(make_request(), FakeChain())
    with pytest.raises(IllegalTransition):
        await deployment.submit()


@pytest.mark.asyncio
async def test_dry_run_only_is_repeatable_and_never_submits(make_request) -> None:
    chain = FakeChain()
    request = make_request()

    first = Deployment(request, chain)
    second = Deployment(request, chain)
    est_a = await first.dry_run()
    est_b = await second.dry_run()

    assert est_a.weight_limit == est_b.weight_limit == WeightLimit(84_213_000, 98_304)
    assert len(chain.dry_run_calls) == 2
    assert chain.submit_calls == []
    assert first.state is DeployState.DONE
    assert first.address is None


def test_deployment_record(make_request) -> None:
    chain = FakeChain(
        estimate=DryRunEstimate(
            ok=True,
            weight_limit=WeightLimit(84_213_000, 98_304),
            storage_deposit=1_000,
            contract_address="5Predicted",
        )
    )
    deployment = Deployment(make_request(salt=b"\x01\x02"), chain)
    asyncio.run(deployment.run())

    record = deployment_record(deployment)
    assert record["status"] == "done"
    assert record["dry_run"] is False
    assert record["weight_limit"] == {"ref_time": 84_213_000, "proof_size": 98_304}
    assert record["weight_estimated"] is True
    assert record["salt"] == "0x0102"
    assert record["storage_deposit"] == "1000"
    assert record["predicted_address"] == "5Predicted"
    assert record["address"] == "5FakeContractAddress"
    assert record["extrinsic_hash"] == "0xabc"
    assert record["error"] is None
