"""
Tests for the strategy execution orchestrator.

The chain client and publisher are doubles; everything in between
(condition gating, sizing, batching, dedup, locking) is real.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from tests.conftest import (
    LENDING_POOL_ADDRESS,
    TEST_CID,
    TOKEN_ADDRESS,
    VAULT_ADDRESS,
    make_config,
)
from yieldpilot.chains.base_client import ChainExecutionError
from yieldpilot.chains.contracts import STRATEGY_VAULT_ABI
from yieldpilot.config import ConfigurationError
from yieldpilot.execution.dedup_store import DedupStore
from yieldpilot.execution.orchestrator import StrategyOrchestrator
from yieldpilot.models import (
    ExecutionPhase,
    ExecutionStep,
    ProvenanceRecord,
    StepStatus,
    StrategyValidationError,
)
from yieldpilot.provenance.publisher import PublishError


def _orchestrator(chain_client, publisher, config=None, **kwargs) -> StrategyOrchestrator:
    return StrategyOrchestrator(
        chain_client, publisher, config=config or make_config(), **kwargs
    )


def _submitted_functions(chain_client) -> list[str]:
    return [c.args[1] for c in chain_client.execute_contract.call_args_list]


# ==================== Happy Path Tests ====================


class TestSuccessfulExecution:
    """Tests for a full allocation + publication + anchor run."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, strategy, mock_chain_client, mock_publisher):
        """Test 7.2% APY against 'APY > 6%' allocates 70% of 1,000,000."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy, strategy_id=7)

        assert outcome.allocation_status == StepStatus.SUCCEEDED
        assert outcome.allocation_amount == 700_000
        assert outcome.allocation_receipt.tx_hash == "0xexecute"
        assert outcome.publication_status == StepStatus.SUCCEEDED
        assert outcome.provenance.id == TEST_CID
        assert outcome.anchor_status == StepStatus.SUCCEEDED
        assert outcome.anchor_receipt.tx_hash == "0xsetStrategyReference"
        assert outcome.errors == []
        assert outcome.network == "rootstock"
        assert outcome.duplicate is False

        # One atomic batch: approve then deposit
        batch_call, anchor_call = mock_chain_client.execute_contract.call_args_list
        assert batch_call.args[:2] == (VAULT_ADDRESS, "execute")
        targets, calls, values = batch_call.args[2]
        assert targets == [TOKEN_ADDRESS, LENDING_POOL_ADDRESS]
        assert calls[0].startswith(b"approve:")
        assert calls[1].startswith(b"deposit:")
        assert values == [0, 0]

        assert anchor_call.args == (
            VAULT_ADDRESS,
            "setStrategyReference",
            [7, f"https://ipfs.io/ipfs/{TEST_CID}"],
            STRATEGY_VAULT_ABI,
        )

    @pytest.mark.asyncio
    async def test_phase_sequence(self, strategy, mock_chain_client, mock_publisher):
        """Test the recorded phase transitions."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy)

        assert outcome.phases == [
            ExecutionPhase.IDLE,
            ExecutionPhase.GATING,
            ExecutionPhase.ALLOCATING,
            ExecutionPhase.PUBLISHING,
            ExecutionPhase.ANCHORING,
            ExecutionPhase.DONE,
        ]
        assert outcome.phase == ExecutionPhase.DONE

    @pytest.mark.asyncio
    async def test_publishes_strategy_document(
        self, strategy, strategy_document, mock_chain_client, mock_publisher
    ):
        """Test the camelCase envelope is what gets published."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        await orchestrator.execute("msg-1", strategy)

        published = mock_publisher.publish.call_args.args[0]
        assert published["strategy"]["assetAllocation"] == {"lendingProtocol": 70, "stablecoin": 30}
        assert published["strategy"]["lendingProtocol"]["investmentCondition"] == "APY > 6%"

    @pytest.mark.asyncio
    async def test_default_strategy_id(self, strategy, mock_chain_client, mock_publisher):
        """Test the configured default id is anchored when none is given."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy)

        assert outcome.strategy_id == 1
        anchor_call = mock_chain_client.execute_contract.call_args_list[-1]
        assert anchor_call.args[2][0] == 1

    @pytest.mark.asyncio
    async def test_strategy_id_zero_is_anchored(self, strategy, mock_chain_client, mock_publisher):
        """Test an explicit id of 0 is not replaced by the default."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy, strategy_id=0)

        assert outcome.strategy_id == 0
        anchor_call = mock_chain_client.execute_contract.call_args_list[-1]
        assert anchor_call.args[1:3] == ("setStrategyReference", [0, f"https://ipfs.io/ipfs/{TEST_CID}"])

    @pytest.mark.asyncio
    async def test_accepts_document(self, strategy_document, mock_chain_client, mock_publisher):
        """Test a raw document is validated before execution."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy_document)

        assert outcome.allocation_status == StepStatus.SUCCEEDED


# ==================== Skip Tests ====================


class TestSkippedAllocation:
    """Tests for allocations that are skipped without error."""

    @pytest.mark.asyncio
    async def test_condition_not_met(self, strategy, mock_chain_client, mock_publisher):
        """Test 5.0% APY skips the allocation with no balance read or batch."""
        orchestrator = _orchestrator(
            mock_chain_client, mock_publisher, config=make_config(current_apy=5.0)
        )

        outcome = await orchestrator.execute("msg-1", strategy)

        assert outcome.allocation_status == StepStatus.SKIPPED
        assert "investment condition not met" in outcome.skip_reason
        assert outcome.allocation_receipt is None
        assert outcome.errors == []
        mock_chain_client.call_contract.assert_not_awaited()
        assert _submitted_functions(mock_chain_client) == ["setStrategyReference"]
        assert outcome.publication_status == StepStatus.SUCCEEDED
        assert ExecutionPhase.ALLOCATING not in outcome.phases

    @pytest.mark.asyncio
    async def test_unparsable_condition(self, strategy_document, mock_chain_client, mock_publisher):
        """Test malformed conditions fail closed."""
        strategy_document["strategy"]["lendingProtocol"]["investmentCondition"] = "APY => 6%"
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy_document)

        assert outcome.allocation_status == StepStatus.SKIPPED
        mock_chain_client.call_contract.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_vault(self, strategy, mock_chain_client, mock_publisher):
        """Test an empty vault is a clean skip, not an error."""
        mock_chain_client.call_contract = AsyncMock(return_value=0)
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy)

        assert outcome.allocation_status == StepStatus.SKIPPED
        assert outcome.skip_reason == "no assets in vault"
        assert outcome.errors == []
        assert _submitted_functions(mock_chain_client) == ["setStrategyReference"]

    @pytest.mark.asyncio
    async def test_amount_rounds_to_zero(self, strategy, mock_chain_client, mock_publisher):
        """Test a dust balance produces a skip instead of a zero-value batch."""
        mock_chain_client.call_contract = AsyncMock(return_value=1)
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy)

        assert outcome.allocation_status == StepStatus.SKIPPED
        assert outcome.allocation_amount == 0
        assert _submitted_functions(mock_chain_client) == ["setStrategyReference"]


# ==================== Failure Tests ====================


class TestPartialFailures:
    """Tests for failures captured in the outcome."""

    @pytest.mark.asyncio
    async def test_allocation_failure_still_publishes(
        self, strategy, mock_chain_client, mock_publisher
    ):
        """Test a failed batch does not prevent publication and anchoring."""

        async def submit(address, fn, args, abi, value=0):
            if fn == "execute":
                raise ChainExecutionError("execution reverted")
            return f"0x{fn}"

        mock_chain_client.execute_contract = AsyncMock(side_effect=submit)
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy)

        assert outcome.allocation_status == StepStatus.FAILED
        assert outcome.allocation_receipt is None
        [error] = outcome.errors_for(ExecutionStep.ALLOCATION)
        assert error.error_type == "ChainExecutionError"
        assert error.message == "execution reverted"
        assert outcome.provenance is not None
        assert outcome.anchor_status == StepStatus.SUCCEEDED
        # Never resubmitted
        assert _submitted_functions(mock_chain_client) == ["execute", "setStrategyReference"]

    @pytest.mark.asyncio
    async def test_balance_read_failure(self, strategy, mock_chain_client, mock_publisher):
        """Test a failed balance read is an allocation error."""
        mock_chain_client.call_contract = AsyncMock(side_effect=ChainExecutionError("rpc down"))
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy)

        assert outcome.allocation_status == StepStatus.FAILED
        assert outcome.publication_status == StepStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_no_lending_allocation(self, strategy_document, mock_chain_client, mock_publisher):
        """Test a strategy without a lending share records NoAllocationError."""
        strategy_document["strategy"]["assetAllocation"] = {"stablecoin": 100}
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy_document)

        assert outcome.allocation_status == StepStatus.FAILED
        assert outcome.errors[0].error_type == "NoAllocationError"
        assert _submitted_functions(mock_chain_client) == ["setStrategyReference"]

    @pytest.mark.asyncio
    async def test_publish_failure_skips_anchor(self, strategy, mock_chain_client, mock_publisher):
        """Test no anchor is attempted without a CID."""
        mock_publisher.publish = AsyncMock(
            side_effect=PublishError("Pinata upload failed: unauthorized", status_code=401)
        )
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy)

        assert outcome.allocation_status == StepStatus.SUCCEEDED
        assert outcome.publication_status == StepStatus.FAILED
        assert outcome.provenance is None
        assert outcome.anchor_status == StepStatus.SKIPPED
        assert outcome.anchor_receipt is None
        assert _submitted_functions(mock_chain_client) == ["execute"]
        assert ExecutionPhase.ANCHORING not in outcome.phases

    @pytest.mark.asyncio
    async def test_empty_cid_skips_anchor(self, strategy, mock_chain_client, mock_publisher):
        """Test an empty content id is treated as nothing to anchor."""
        mock_publisher.publish = AsyncMock(
            return_value=ProvenanceRecord(id="", retrieval_url="", mirror_url="")
        )
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy)

        assert outcome.anchor_status == StepStatus.SKIPPED
        assert _submitted_functions(mock_chain_client) == ["execute"]

    @pytest.mark.asyncio
    async def test_anchor_failure(self, strategy, mock_chain_client, mock_publisher):
        """Test a failed anchor keeps the allocation and provenance."""

        async def submit(address, fn, args, abi, value=0):
            if fn == "setStrategyReference":
                raise ChainExecutionError("nonce too low")
            return f"0x{fn}"

        mock_chain_client.execute_contract = AsyncMock(side_effect=submit)
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcome = await orchestrator.execute("msg-1", strategy)

        assert outcome.allocation_status == StepStatus.SUCCEEDED
        assert outcome.provenance is not None
        assert outcome.anchor_status == StepStatus.FAILED
        assert outcome.errors_for(ExecutionStep.ANCHOR)[0].message == "nonce too low"


# ==================== Pre-flight Tests ====================


class TestPreflight:
    """Tests for failures raised before any external call."""

    @pytest.mark.asyncio
    async def test_missing_vault_address(self, strategy, mock_chain_client, mock_publisher):
        """Test missing configuration raises and contacts nothing."""
        orchestrator = _orchestrator(
            mock_chain_client, mock_publisher, config=make_config(strategy_vault_address="")
        )

        with pytest.raises(ConfigurationError, match="strategy vault address not configured"):
            await orchestrator.execute("msg-1", strategy)

        mock_chain_client.call_contract.assert_not_awaited()
        mock_chain_client.execute_contract.assert_not_awaited()
        mock_publisher.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_config_error_does_not_consume_request_id(
        self, strategy, mock_chain_client, mock_publisher
    ):
        """Test a request rejected for configuration can be retried."""
        dedup = DedupStore()
        broken = _orchestrator(
            mock_chain_client,
            mock_publisher,
            config=make_config(token_address=""),
            dedup_store=dedup,
        )
        with pytest.raises(ConfigurationError):
            await broken.execute("msg-1", strategy)

        fixed = _orchestrator(mock_chain_client, mock_publisher, dedup_store=dedup)
        outcome = await fixed.execute("msg-1", strategy)

        assert outcome.duplicate is False

    @pytest.mark.asyncio
    async def test_invalid_strategy(self, mock_chain_client, mock_publisher):
        """Test malformed documents raise StrategyValidationError."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        with pytest.raises(StrategyValidationError):
            await orchestrator.execute("msg-1", {"strategy": {"assetAllocation": {}}})

        mock_publisher.publish.assert_not_awaited()


# ==================== Deduplication Tests ====================


class TestDeduplication:
    """Tests for request and payload deduplication."""

    @pytest.mark.asyncio
    async def test_duplicate_request_id(self, strategy, mock_chain_client, mock_publisher):
        """Test a redelivered request produces one set of side effects."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        first = await orchestrator.execute("msg-1", strategy)
        second = await orchestrator.execute("msg-1", strategy)

        assert first.duplicate is False
        assert second.duplicate is True
        assert second.request_id == "msg-1"
        assert second.allocation_status == StepStatus.NOT_ATTEMPTED
        assert _submitted_functions(mock_chain_client) == ["execute", "setStrategyReference"]
        mock_publisher.publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_request(self, strategy, mock_chain_client, mock_publisher):
        """Test concurrent deliveries of one request execute once."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        outcomes = await asyncio.gather(
            orchestrator.execute("msg-1", strategy),
            orchestrator.execute("msg-1", strategy),
        )

        assert sorted(o.duplicate for o in outcomes) == [False, True]
        mock_publisher.publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_shared_store_across_orchestrators(
        self, strategy, mock_chain_client, mock_publisher
    ):
        """Test dedup follows the injected store, not the orchestrator."""
        dedup = DedupStore()
        first = _orchestrator(mock_chain_client, mock_publisher, dedup_store=dedup)
        second = _orchestrator(mock_chain_client, mock_publisher, dedup_store=dedup)

        await first.execute("msg-1", strategy)
        outcome = await second.execute("msg-1", strategy)

        assert outcome.duplicate is True

    @pytest.mark.asyncio
    async def test_without_request_id(self, strategy, mock_chain_client, mock_publisher):
        """Test invocations without an id are never treated as duplicates."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        first = await orchestrator.execute(None, strategy)
        second = await orchestrator.execute(None, strategy)

        assert first.duplicate is False
        assert second.duplicate is False
        assert mock_publisher.publish.await_count == 2

    @pytest.mark.asyncio
    async def test_repeated_payload(self, strategy, mock_chain_client, mock_publisher):
        """Test identical results under different request ids are flagged."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        first = await orchestrator.execute("msg-1", strategy)
        second = await orchestrator.execute("msg-2", strategy)

        assert first.repeated_payload is False
        assert second.repeated_payload is True
        assert first.content_hash() == second.content_hash()

    @pytest.mark.asyncio
    async def test_different_payload_not_flagged(
        self, strategy, mock_chain_client, mock_publisher
    ):
        """Test different results are not flagged."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        await orchestrator.execute("msg-1", strategy, strategy_id=1)
        second = await orchestrator.execute("msg-2", strategy, strategy_id=2)

        assert second.repeated_payload is False


# ==================== Concurrency Tests ====================


class TestVaultSerialization:
    """Tests for per-vault serialization of balance read and submission."""

    @pytest.mark.asyncio
    async def test_same_vault_does_not_interleave(
        self, strategy, mock_chain_client, mock_publisher
    ):
        """Test two invocations never share a balance snapshot."""
        events: list[str] = []

        async def read(*args, **kwargs):
            events.append("read")
            await asyncio.sleep(0.01)
            return 1_000_000

        async def submit(address, fn, args, abi, value=0):
            if fn == "execute":
                events.append("execute")
                await asyncio.sleep(0.01)
            return f"0x{fn}"

        mock_chain_client.call_contract = AsyncMock(side_effect=read)
        mock_chain_client.execute_contract = AsyncMock(side_effect=submit)
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        await asyncio.gather(
            orchestrator.execute("msg-1", strategy),
            orchestrator.execute("msg-2", strategy),
        )

        assert events == ["read", "execute", "read", "execute"]

    @pytest.mark.asyncio
    async def test_close(self, mock_chain_client, mock_publisher):
        """Test closing releases the chain client."""
        orchestrator = _orchestrator(mock_chain_client, mock_publisher)

        await orchestrator.close()

        mock_chain_client.close.assert_awaited_once()
