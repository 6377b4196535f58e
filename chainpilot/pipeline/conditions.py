"""Step gate conditions.

Only the balance check consults the chain. Allowance, ownership and
custom expressions are accepted as-is until an evaluator exists for them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from chainpilot.chain.abi import parse_ether
from chainpilot.chain.port import ChainContext
from chainpilot.core.types import ConditionType
from chainpilot.pipeline.models import WorkflowCondition

logger = logging.getLogger(__name__)


@dataclass
class ConditionReport:
    valid: bool
    errors: list[str] = field(default_factory=list)


class ConditionEvaluator:
    def __init__(self, chain: ChainContext, min_balance_ether: str = "0.01") -> None:
        self.chain = chain
        self.min_balance_wei = parse_ether(min_balance_ether)

    async def check(self, conditions: list[WorkflowCondition], parameters: dict[str, Any]) -> ConditionReport:
        """Evaluate every condition; an evaluator exception counts as a failure."""
        errors: list[str] = []
        for condition in conditions:
            try:
                passed = await self.evaluate(condition, parameters)
            except Exception as exc:
                logger.warning("Condition %s raised: %s", condition.type.value, exc)
                errors.append(f"Condition evaluation error: {condition.description}")
                continue
            if not passed:
                errors.append(condition.error_message or f"Condition failed: {condition.description}")
        return ConditionReport(valid=not errors, errors=errors)

    async def evaluate(self, condition: WorkflowCondition, parameters: dict[str, Any]) -> bool:
        if condition.type == ConditionType.BALANCE_CHECK:
            return await self._check_balance()
        if condition.type in (
            ConditionType.ALLOWANCE_CHECK,
            ConditionType.OWNERSHIP_CHECK,
            ConditionType.CUSTOM,
        ):
            return True
        return False

    async def _check_balance(self) -> bool:
        if self.chain.client is None or self.chain.signer is None:
            return False
        address = await self.chain.signer.get_address()
        balance = await self.chain.client.get_balance(address)
        return balance > self.min_balance_wei
