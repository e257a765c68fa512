"""
AI Agents for Expense Ledger

Both agents are single-shot prompt calls to Gemini: text in, text out.

CRITICAL BOUNDARIES:

1. CATEGORIZATION AGENT:
   - CAN: Suggest one category label for an expense description
   - CANNOT: Persist anything; the suggestion goes back to the caller
   - CANNOT: Invent categories; replies outside the known set become "Other"

2. FINANCIAL TIPS AGENT:
   - CAN: Write free-text advice FROM the spending digest it is given
   - CANNOT: See the ledger directly; it only sees the digest text

The model is a collaborator returning text. Its reply is trimmed and, for
categorization, matched against the known categories; nothing else is parsed.
"""

import re
from typing import Any, Optional, Sequence

import google.generativeai as genai
import structlog

from expense_ledger.config import GeminiSettings
from expense_ledger.models.ledger import DEFAULT_CATEGORY


logger = structlog.get_logger(__name__)


FINANCIAL_TIPS_PROMPT = """You are a financial advisor. Based on the following spending data, provide personalized financial tips to the user.

Spending Data:
{spending_data}

Financial Tips:"""


CATEGORIZATION_PROMPT = """You are categorizing an expense for a personal expense tracker used by an Indian household.

Expense description: "{description}"

Available categories: {categories}

Reply with ONLY the category name, exactly as written in the list above.
If none fits, reply with "{default}"."""


class AgentError(Exception):
    """The language model call failed or returned nothing usable."""
    pass


def _build_model(settings: GeminiSettings, temperature: float) -> Any:
    """Configure Google Generative AI and return a model handle."""
    genai.configure(api_key=settings.api_key)
    return genai.GenerativeModel(
        model_name=settings.model_name,
        generation_config={
            "temperature": temperature,
            "max_output_tokens": settings.max_tokens,
        }
    )


class ExpenseCategorizationAgent:
    """
    Suggests a category for an expense description.

    Best-effort: any failure, blank reply or reply outside the category set
    yields "Other". The caller decides whether to keep the suggestion.
    """

    def __init__(self, settings: GeminiSettings, model: Optional[Any] = None):
        self._settings = settings
        # Low temperature: the answer is a label, not prose
        self._model = model or _build_model(settings, temperature=0.0)

    @staticmethod
    def match_category(reply: str, categories: Sequence[str]) -> str:
        """
        Map a model reply onto the known categories.

        Surrounding quotes and punctuation are ignored and case does not
        matter. Unknown labels fall back to "Other".
        """
        label = reply.strip().strip("\"'`.*").strip()
        if not label:
            return DEFAULT_CATEGORY

        by_key = {c.casefold(): c for c in categories}
        if label.casefold() in by_key:
            return by_key[label.casefold()]

        # Models sometimes answer with a sentence; take a category it names
        # as a whole word, longest name first
        first_line = label.splitlines()[0].casefold()
        for key in sorted(by_key, key=len, reverse=True):
            if re.search(rf"\b{re.escape(key)}\b", first_line):
                return by_key[key]
        return DEFAULT_CATEGORY

    async def suggest_category(
        self,
        description: str,
        categories: Sequence[str],
    ) -> str:
        """Ask the model for the best category for `description`."""
        if not description.strip():
            return DEFAULT_CATEGORY

        prompt = CATEGORIZATION_PROMPT.format(
            description=description.strip(),
            categories=", ".join(categories),
            default=DEFAULT_CATEGORY,
        )
        try:
            response = await self._model.generate_content_async(prompt)
            reply = response.text or ""
        except Exception as e:
            logger.warning(
                "category_suggestion_failed",
                description=description,
                error=str(e),
            )
            return DEFAULT_CATEGORY

        category = self.match_category(reply, categories)
        logger.debug("category_suggested", description=description, category=category)
        return category


class FinancialTipsAgent:
    """
    Generates personalised financial tips from a spending digest.

    The digest is the newline-joined "category: amount - description" block
    built by expense_ledger.reports.spending_digest.
    """

    def __init__(self, settings: GeminiSettings, model: Optional[Any] = None):
        self._settings = settings
        self._model = model or _build_model(settings, temperature=settings.temperature)

    async def generate_tips(self, spending_data: str) -> str:
        """
        Raises:
            AgentError: If the model call fails or the reply is empty
        """
        prompt = FINANCIAL_TIPS_PROMPT.format(spending_data=spending_data)
        try:
            response = await self._model.generate_content_async(prompt)
            text = (response.text or "").strip()
        except Exception as e:
            raise AgentError(f"Failed to generate financial tips: {e}") from e

        if not text:
            raise AgentError("The model returned no financial tips")
        return text
