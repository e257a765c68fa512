"""AI Agents package."""

from expense_ledger.agents.ai_agents import (
    AgentError,
    ExpenseCategorizationAgent,
    FinancialTipsAgent,
)

__all__ = [
    "AgentError",
    "ExpenseCategorizationAgent",
    "FinancialTipsAgent",
]
