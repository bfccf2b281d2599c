"""
Shared fixtures for the YieldPilot test suite.
"""

from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

import yieldpilot.config as config_module
from yieldpilot.config import NetworkName, NetworkSettings, YieldPilotConfig
from yieldpilot.models import ProvenanceRecord, Strategy, TransactionReceipt

VAULT_ADDRESS = "0x" + "a" * 40
LENDING_POOL_ADDRESS = "0x" + "b" * 40
TOKEN_ADDRESS = "0x" + "c" * 40
TEST_CID = "bafkreibm6jg3ux5qumhcn2b3flc3tyu6dmlb4xa7u5bf44yegnrjhc4yeq"


@pytest.fixture(autouse=True)
def reset_global_config():
    """Reset global config before and after each test."""
    original = config_module._config
    config_module._config = None
    yield
    config_module._config = original


@pytest.fixture
def strategy_document() -> dict[str, Any]:
    """A strategy document in the stored envelope format."""
    return {
        "strategy": {
            "assetAllocation": {"lendingProtocol": 70, "stablecoin": 30},
            "lendingProtocol": {
                "investmentCondition": "APY > 6%",
                "fallbackCondition": "APY < 4%",
            },
            "rebalancing": {"frequency": "24 hours", "deviationTolerance": "8%"},
            "transactionLimits": {
                "maxTransactionPercentage": "12%",
                "maxSwapSlippage": "1.8%",
            },
        }
    }


@pytest.fixture
def strategy(strategy_document) -> Strategy:
    return Strategy.from_document(strategy_document)


def make_config(current_apy: float = 7.2, **network_overrides: Any) -> YieldPilotConfig:
    """Config with every Rootstock address set and a Pinata JWT."""
    settings: dict[str, Any] = {
        "rpc_url": "https://rpc.example.com",
        "strategy_vault_address": VAULT_ADDRESS,
        "lending_pool_address": LENDING_POOL_ADDRESS,
        "token_address": TOKEN_ADDRESS,
        "current_apy": current_apy,
    }
    settings.update(network_overrides)
    return YieldPilotConfig(
        _env_file=None,
        current_network=NetworkName.ROOTSTOCK,
        rootstock=NetworkSettings(**settings),
        pinata_jwt="test-jwt",
    )


@pytest.fixture
def config() -> YieldPilotConfig:
    return make_config()


def make_receipt(tx_hash: str, timeout_seconds: int | None = None) -> TransactionReceipt:
    return TransactionReceipt(
        tx_hash=tx_hash,
        network="rootstock",
        block_number=100,
        timestamp=datetime(2024, 1, 1, tzinfo=UTC),
        from_address="0x" + "d" * 40,
        to_address=VAULT_ADDRESS,
        gas_used=120000,
    )


@pytest.fixture
def mock_chain_client():
    """
    Chain client double.

    encode_call returns readable calldata such as b"approve:[...]" so tests
    can check batch contents without real ABI encoding.
    """
    client = MagicMock()
    client.call_contract = AsyncMock(return_value=1_000_000)
    client.encode_call = MagicMock(
        side_effect=lambda address, fn, args, abi: f"{fn}:{args}".encode()
    )
    client.execute_contract = AsyncMock(
        side_effect=lambda address, fn, args, abi, value=0: f"0x{fn}"
    )
    client.wait_for_transaction = AsyncMock(side_effect=make_receipt)
    client.close = AsyncMock()
    return client


@pytest.fixture
def provenance_record() -> ProvenanceRecord:
    return ProvenanceRecord(
        id=TEST_CID,
        retrieval_url=f"https://ipfs.io/ipfs/{TEST_CID}",
        mirror_url=f"https://gateway.pinata.cloud/ipfs/{TEST_CID}",
    )


@pytest.fixture
def mock_publisher(provenance_record):
    publisher = MagicMock()
    publisher.publish = AsyncMock(return_value=provenance_record)
    return publisher
