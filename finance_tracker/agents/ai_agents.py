"""
AI Agents for Finance Tracker

DESIGN DECISION: Gemini is used at three boundaries, each wrapped in its
own agent class:
1. Classification - merchant name → category / frequency / side / type
2. Extraction - receipt or statement images → transaction candidates
3. Chat - questions about the dashboard, answered from computed numbers

CRITICAL BOUNDARIES:

1. CLASSIFICATION AGENT:
   - Learned rules come FIRST and never touch the network
   - CAN: Suggest values for the entry form
   - CANNOT: Write to the rule cache (only an explicit save learns)

2. EXTRACTION AGENT:
   - CAN: Read documents and propose candidates
   - CANNOT: Persist anything - output goes through the import reconciler

3. CHAT AGENT:
   - CAN: Explain the user's numbers, propose transactions to add
   - CANNOT: Invent figures - it only sees the context we build
   - Proposed transactions are CANDIDATES; the user confirms them

Every model call is retried with tenacity and converted to
ExternalServiceError on timeout, auth failure or an unparseable payload.
The model object is injectable so tests never reach the network.
"""

import asyncio
import io
import json
import re
from pathlib import Path
from typing import Any, Literal, Optional, Union

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from PIL import Image
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_tracker.config import get_settings
from finance_tracker.config.settings import GeminiSettings
from finance_tracker.errors import ExternalServiceError, ValidationError
from finance_tracker.models.results import Financials
from finance_tracker.models.transaction import (
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    ExpenseType,
    Frequency,
    RawCandidate,
    RuleEntry,
    StatementMeta,
    normalize_name,
    parse_expense_type,
    parse_frequency,
)
from finance_tracker.reconcile.importer import validate_category
from finance_tracker.rules.cache import MIN_NAME_LENGTH, CategoryRuleCache
from finance_tracker.store.transaction_store import TransactionStore


logger = structlog.get_logger(__name__)


SERVICE_NAME = "gemini"

# Errors a retry cannot fix
_AUTH_ERRORS = (
    google_exceptions.PermissionDenied,
    google_exceptions.Unauthenticated,
)

DocumentImage = Union[bytes, str, Path, Image.Image]


# =============================================================================
# RESULT MODELS
# =============================================================================

class Suggestion(BaseModel):
    """A classification for the entry form, from a rule or from Gemini."""

    category: str
    frequency: str = Frequency.ONE_TIME.value
    is_income: bool = False
    type: ExpenseType = ExpenseType.VARIABLE
    from_cache: bool = False

    def to_rule(self) -> RuleEntry:
        return RuleEntry(
            category=self.category,
            frequency=self.frequency,
            is_income=self.is_income,
            type=None if self.is_income else self.type,
        )


class ExtractionResult(BaseModel):
    """What Gemini read off one or more document images."""

    is_statement: bool = False
    metadata: Optional[StatementMeta] = None
    transactions: list[RawCandidate] = Field(default_factory=list)


class ChatMessage(BaseModel):
    role: Literal["user", "model"]
    text: str


class ChatAnswer(BaseModel):
    """Markdown reply plus any transactions the model proposed adding."""

    text: str
    proposed: list[RawCandidate] = Field(default_factory=list)


# =============================================================================
# SHARED PLUMBING
# =============================================================================

def extract_json(text: str) -> Any:
    """
    Pull the outermost JSON object out of a model reply.

    Replies often wrap JSON in prose or ``` fences.

    Raises:
        ExternalServiceError: If no parseable object is present
    """
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ExternalServiceError(
            SERVICE_NAME, "AI service returned no JSON", reason="malformed"
        )
    try:
        return json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise ExternalServiceError(
            SERVICE_NAME, f"AI service returned invalid JSON: {e}", reason="malformed"
        )


def load_image(source: DocumentImage) -> Image.Image:
    """Open raw bytes, a path, or pass an already loaded image through."""
    if isinstance(source, Image.Image):
        return source
    try:
        if isinstance(source, bytes):
            image = Image.open(io.BytesIO(source))
        else:
            image = Image.open(Path(source))
        image.load()
    except (OSError, ValueError) as e:
        raise ValidationError("images", f"Could not read document image: {e}")
    return image


class _GeminiAgent:
    """Owns the model and the retry/timeout/error-conversion policy."""

    temperature_override: Optional[float] = None

    def __init__(
        self,
        model: Optional[Any] = None,
        settings: Optional[GeminiSettings] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._model = model if model is not None else self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        temperature = self.temperature_override
        if temperature is None:
            temperature = self._settings.temperature
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": temperature,
                "max_output_tokens": self._settings.max_tokens,
            },
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(_AUTH_ERRORS),
        reraise=True,
    )
    async def _call_model(self, contents: Any) -> str:
        response = await asyncio.wait_for(
            self._model.generate_content_async(contents),
            timeout=self._settings.timeout_seconds,
        )
        return response.text

    async def _generate(self, contents: Any) -> str:
        """
        Call the model, converting every failure to ExternalServiceError.
        """
        try:
            return (await self._call_model(contents)).strip()
        except asyncio.TimeoutError:
            raise ExternalServiceError(
                SERVICE_NAME, "AI service timed out", reason="timeout"
            )
        except _AUTH_ERRORS as e:
            raise ExternalServiceError(
                SERVICE_NAME,
                "Could not connect to Gemini. Please check your API key.",
                reason="auth",
            ) from e
        except Exception as e:
            raise ExternalServiceError(
                SERVICE_NAME, f"AI service call failed: {e}", reason="unavailable"
            ) from e


# =============================================================================
# CLASSIFICATION
# =============================================================================

class ClassificationAgent(_GeminiAgent):
    """
    Suggests how to classify a merchant name.

    Cache-first: a learned rule answers synchronously, before any
    network call is even considered.
    """

    temperature_override = 0.1

    def __init__(
        self,
        rule_cache: CategoryRuleCache,
        model: Optional[Any] = None,
        settings: Optional[GeminiSettings] = None,
    ):
        super().__init__(model=model, settings=settings)
        self._rules = rule_cache

    def cached(self, name: str) -> Optional[Suggestion]:
        """Learned rule for the name, if any. Never touches the network."""
        rule = self._rules.lookup(name)
        if rule is None:
            return None
        return Suggestion(
            category=rule.category,
            frequency=rule.frequency,
            is_income=rule.is_income,
            type=rule.type or ExpenseType.VARIABLE,
            from_cache=True,
        )

    def _build_prompt(self, name: str) -> str:
        return f"""Classify transaction: "{name}"

Context lists:
- Income Categories: {', '.join(INCOME_CATEGORIES)}
- Expense Categories: {', '.join(EXPENSE_CATEGORIES)}

Return STRICT JSON only:
{{
  "category": "String (must be one of the lists above)",
  "frequency": "String (one-time, weekly, biweekly, monthly, quarterly, annual)",
  "isIncome": boolean,
  "type": "String (variable, bill, subscription) - only for expenses"
}}"""

    async def classify(self, name: str) -> Optional[Suggestion]:
        """
        Suggest category, frequency, side and type for a merchant.

        Returns:
            Suggestion, or None for names too short to classify

        Raises:
            ExternalServiceError: If Gemini fails or answers nonsense
        """
        hit = self.cached(name)
        if hit is not None:
            return hit
        if len(normalize_name(name)) < MIN_NAME_LENGTH:
            return None

        data = extract_json(await self._generate(self._build_prompt(name)))
        if not isinstance(data, dict):
            raise ExternalServiceError(
                SERVICE_NAME, "AI classification was not an object", reason="malformed"
            )

        is_income = bool(data.get("isIncome"))
        frequency = parse_frequency(data.get("frequency")) or Frequency.ONE_TIME
        suggestion = Suggestion(
            category=validate_category(data.get("category"), is_income),
            frequency=frequency.value,
            is_income=is_income,
            type=parse_expense_type(data.get("type")),
        )
        logger.info(
            "ai_classification",
            merchant=name,
            category=suggestion.category,
            frequency=suggestion.frequency,
        )
        return suggestion


# =============================================================================
# EXTRACTION
# =============================================================================

class ExtractionAgent(_GeminiAgent):
    """
    Reads receipts and account statements.

    A single receipt yields one candidate; a statement yields the account
    descriptor plus every listed transaction.
    """

    temperature_override = 0.1

    def _build_prompt(self, known_rules: dict[str, RuleEntry]) -> str:
        rules_text = "\n".join(
            f"- {merchant}: {rule.category} ({rule.frequency})"
            for merchant, rule in sorted(known_rules.items())
        ) or "- none yet"

        return f"""You are reading financial documents for a personal finance tracker.

The images are either ONE receipt/bill or pages of ONE account statement.

Known merchant classifications (reuse these when the merchant matches):
{rules_text}

Income Categories: {', '.join(INCOME_CATEGORIES)}
Expense Categories: {', '.join(EXPENSE_CATEGORIES)}

Important:
- Amounts are positive numbers; use isIncome for direction
- Card payments and transfers between the user's own accounts use the
  "Credit Card Payment" or "Transfer" category
- Dates are YYYY-MM-DD
- Use null for anything you cannot read; never guess

For a single receipt return STRICT JSON:
{{"name": "...", "amount": 0.0, "date": "YYYY-MM-DD", "category": "...",
  "frequency": "one-time", "isIncome": false, "type": "variable"}}

For a statement return STRICT JSON:
{{"metadata": {{"provider": "...", "last4": "1234 or null", "balance": 0.0,
   "type": "credit_card | bank_account", "date": "closing date YYYY-MM-DD"}},
  "transactions": [ ...objects shaped like the single receipt... ]}}"""

    async def extract(
        self,
        images: list[DocumentImage],
        known_rules: Optional[dict[str, RuleEntry]] = None,
    ) -> ExtractionResult:
        """
        Extract candidates from document images.

        Raises:
            ValidationError: No images, or an image cannot be opened
            ExternalServiceError: If Gemini fails or the payload is unusable
        """
        if not images:
            raise ValidationError("images", "At least one document image is required")

        loaded = [load_image(image) for image in images]
        text = await self._generate([self._build_prompt(known_rules or {}), *loaded])
        data = extract_json(text)
        if not isinstance(data, dict):
            raise ExternalServiceError(
                SERVICE_NAME, "AI extraction was not an object", reason="malformed"
            )

        try:
            if "transactions" in data:
                rows = data.get("transactions") or []
                if not isinstance(rows, list):
                    raise ExternalServiceError(
                        SERVICE_NAME, "Statement transactions were not a list", reason="malformed"
                    )
                return ExtractionResult(
                    is_statement=True,
                    metadata=StatementMeta.model_validate(data.get("metadata") or {}),
                    transactions=[
                        RawCandidate.model_validate(row) for row in rows if isinstance(row, dict)
                    ],
                )
            return ExtractionResult(transactions=[RawCandidate.model_validate(data)])
        except PydanticValidationError as e:
            raise ExternalServiceError(
                SERVICE_NAME, f"AI extraction had an unexpected shape: {e}", reason="malformed"
            )


# =============================================================================
# CHAT
# =============================================================================

_ACTION_BLOCK = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


class FinanceChatAgent(_GeminiAgent):
    """
    Answers questions about the dashboard.

    The model only sees numbers we computed plus a small sample of rows.
    If the user asks to add something, the model may append an action
    block, which is returned as a candidate for confirmation.
    """

    SAMPLE_ROWS = 5

    def build_context(self, financials: Financials, store: TransactionStore) -> str:
        by_category = {k: f"{v:.2f}" for k, v in financials.by_category.items()}
        income_sample = [tx.to_record() for tx in store.income[:self.SAMPLE_ROWS]]
        expense_sample = [tx.to_record() for tx in store.expenses[:self.SAMPLE_ROWS]]

        return f"""You are a helpful financial assistant analyzing the user's personal finance dashboard.

CURRENT DATA ({financials.month:02d}/{financials.year}):
- Total Monthly Income: ${financials.total_income:.2f}
- Total Monthly Expenses: ${financials.total_expenses:.2f}
- Net Cash Flow: ${financials.net:.2f}
- Expense Breakdown by Category: {json.dumps(by_category)}
- Transaction Count: {len(store)}
- Active Subscriptions: {financials.active_subscription_count} (${financials.total_subscriptions_cost:.2f}/month)
- Credit Card Payments This Month: ${financials.total_cc_payments:.2f}

Raw Data (Sample):
Income: {json.dumps(income_sample)}...
Expenses: {json.dumps(expense_sample)}...

Answer the user's question concisely based on this data. Formatting: use markdown.
Only use the numbers above; if the data does not answer the question, say so.

If the user asks you to add a transaction, append exactly one block per
transaction:
```json
{{"action": "add_transaction", "transaction": {{"name": "...", "amount": 0.0,
  "date": "YYYY-MM-DD", "category": "...", "frequency": "one-time",
  "isIncome": false, "type": "variable"}}}}
```"""

    @staticmethod
    def parse_actions(text: str) -> tuple[str, list[RawCandidate]]:
        """Split a reply into display text and proposed candidates."""
        proposed = []
        for block in _ACTION_BLOCK.findall(text):
            try:
                action = json.loads(block)
            except json.JSONDecodeError:
                continue
            if not isinstance(action, dict) or action.get("action") != "add_transaction":
                continue
            payload = action.get("transaction")
            if isinstance(payload, dict):
                try:
                    proposed.append(RawCandidate.model_validate(payload))
                except PydanticValidationError:
                    logger.warning("chat_action_dropped", payload=payload)

        display = _ACTION_BLOCK.sub("", text).strip() if proposed else text
        return display, proposed

    async def answer(
        self,
        question: str,
        financials: Financials,
        store: TransactionStore,
        history: Optional[list[ChatMessage]] = None,
    ) -> ChatAnswer:
        """
        Answer a question about the current month.

        Raises:
            ExternalServiceError: If Gemini fails
        """
        limit = self._settings.chat_history_limit
        recent = (history or [])[-limit:] if limit else []
        contents = [
            {"role": message.role, "parts": [message.text]}
            for message in recent
        ]
        contents.append({
            "role": "user",
            "parts": [
                self.build_context(financials, store)
                + "\n\nUser Question: "
                + question
            ],
        })

        text, proposed = self.parse_actions(await self._generate(contents))
        return ChatAnswer(text=text, proposed=proposed)
