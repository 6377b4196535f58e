"""Built-in workflow templates."""

from __future__ import annotations

from chainpilot.core.types import RiskLevel, StepType, WorkflowCategory
from chainpilot.pipeline.models import WorkflowDefinition, WorkflowStep


def token_swap() -> WorkflowDefinition:
    return WorkflowDefinition(
        id="token_swap",
        name="Token Swap",
        description="Swap one token for another using a DEX",
        category=WorkflowCategory.DEFI,
        steps=[
            WorkflowStep(
                id="approve_token",
                type=StepType.APPROVAL,
                description="Approve token spending",
                retryable=True,
            ),
            WorkflowStep(
                id="execute_swap",
                type=StepType.CONTRACT_CALL,
                description="Execute token swap",
                depends_on=["approve_token"],
                retryable=False,
            ),
        ],
        total_estimated_gas=150_000,
        required_approvals=["token_approval"],
        risk_level=RiskLevel.MEDIUM,
        tags=["defi", "swap", "token"],
    )


def nft_purchase() -> WorkflowDefinition:
    return WorkflowDefinition(
        id="nft_purchase",
        name="NFT Purchase",
        description="Purchase an NFT from a marketplace",
        category=WorkflowCategory.NFT,
        steps=[
            WorkflowStep(
                id="verify_nft",
                type=StepType.VERIFICATION,
                description="Verify NFT availability and price",
                retryable=True,
            ),
            WorkflowStep(
                id="purchase_nft",
                type=StepType.CONTRACT_CALL,
                description="Execute NFT purchase",
                depends_on=["verify_nft"],
                retryable=False,
            ),
        ],
        total_estimated_gas=200_000,
        risk_level=RiskLevel.MEDIUM,
        tags=["nft", "purchase", "marketplace"],
    )


def builtin_workflows() -> list[WorkflowDefinition]:
    """Fresh copies of every built-in template."""
    return [token_swap(), nft_purchase()]
