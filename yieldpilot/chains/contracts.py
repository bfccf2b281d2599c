"""
Contract ABIs

ABIs for the contracts the execution pipeline talks to:

- StrategyVault: custodial vault with a batched execute() entry point,
  totalAssets() for the live balance and setStrategyReference() for
  anchoring a published strategy document.
- Lending pool: accepts deposits of the settlement token.
- ERC-20: approve() so the lending pool can draw from the vault.
"""

from typing import Any

STRATEGY_VAULT_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"name": "contracts", "type": "address[]"},
            {"name": "data", "type": "bytes[]"},
            {"name": "msgValues", "type": "uint256[]"},
        ],
        "name": "execute",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "totalAssets",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "strategyId", "type": "uint256"},
            {"name": "referenceData", "type": "string"},
        ],
        "name": "setStrategyReference",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

LENDING_POOL_ABI: list[dict[str, Any]] = [
    {
        "inputs": [{"name": "amount", "type": "uint256"}],
        "name": "deposit",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

ERC20_ABI: list[dict[str, Any]] = [
    {
        "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]
