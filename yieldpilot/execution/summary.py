"""
Human-readable execution summaries for the presentation layer.
"""

from ..models import ExecutionOutcome, ExecutionStep, StepStatus, Strategy


def _first_error(outcome: ExecutionOutcome, step: ExecutionStep) -> str:
    errors = outcome.errors_for(step)
    return errors[0].message if errors else "unknown error"


def render_execution_steps(strategy: Strategy, outcome: ExecutionOutcome) -> list[str]:
    """One line per configured policy and per pipeline step."""
    allocation = ", ".join(
        f"{percentage:g}% {asset}" for asset, percentage in strategy.asset_allocation.items()
    )
    limits = strategy.transaction_limits
    steps = [
        f"✅ Asset allocation set: {allocation}",
        f"✅ Investment condition: {strategy.investment_condition}",
        f"✅ Rebalancing frequency: {strategy.rebalancing.frequency}, "
        f"deviation tolerance: {strategy.rebalancing.deviation_tolerance}",
        f"✅ Transaction limits configured: max {limits.max_transaction_percentage} per "
        f"transaction, max slippage {limits.max_swap_slippage}",
    ]
    if outcome.network:
        steps.append(f"✅ Using network: {outcome.network}")

    if outcome.allocation_status == StepStatus.SUCCEEDED and outcome.allocation_receipt:
        steps.append(
            "✅ Strategy executed on-chain. Transaction hash: "
            f"{outcome.allocation_receipt.tx_hash}"
        )
    elif outcome.allocation_status == StepStatus.SKIPPED:
        steps.append(f"ℹ️ No action taken - {outcome.skip_reason}")
    elif outcome.allocation_status == StepStatus.FAILED:
        steps.append(
            "❌ Failed to execute strategy on-chain: "
            f"{_first_error(outcome, ExecutionStep.ALLOCATION)}"
        )

    if outcome.publication_status == StepStatus.FAILED:
        steps.append(
            "❌ Failed to upload strategy to IPFS: "
            f"{_first_error(outcome, ExecutionStep.PUBLICATION)}"
        )

    if outcome.anchor_status == StepStatus.SUCCEEDED and outcome.anchor_receipt:
        steps.append(f"✅ Strategy reference set on-chain. Tx: {outcome.anchor_receipt.tx_hash}")
    elif outcome.anchor_status == StepStatus.FAILED:
        steps.append(
            "❌ Failed to set strategy reference on-chain: "
            f"{_first_error(outcome, ExecutionStep.ANCHOR)}"
        )

    return steps


def render_execution_text(strategy: Strategy, outcome: ExecutionOutcome) -> str:
    """Full confirmation message, including where the document was published."""
    text = "I've executed your yield strategy!\n\n" + "\n".join(
        render_execution_steps(strategy, outcome)
    )

    if outcome.provenance:
        text += (
            "\n\nYour strategy has been uploaded to IPFS:\n"
            f"- CID: {outcome.provenance.id}\n"
            f"- Gateway URL: {outcome.provenance.retrieval_url}\n"
            f"- Pinata Gateway: {outcome.provenance.mirror_url}\n"
        )
    return text
