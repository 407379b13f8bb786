"""
Core Data Models for Finance Tracker

These models define the schemas for every record the tracker stores.
They are designed to:
1. Survive messy, AI-extracted and user-edited input
2. Round-trip the camelCase JSON the app has always persisted
3. Make income vs. expense a property of the record's TYPE, not a flag

DESIGN DECISION: A transaction is a tagged union `Income | Expense`.
The old UI carried a transient `isIncome` flag that could disagree with the
collection a record lived in. Here the variant IS the collection, so
`is_income` is derived and can never drift.
"""

import datetime as dt
import re
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Frequency(str, Enum):
    """How often a transaction happens."""
    ONE_TIME = "one-time"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class ExpenseType(str, Enum):
    """Expense flavour, used for subscription tracking."""
    VARIABLE = "variable"
    BILL = "bill"
    SUBSCRIPTION = "subscription"


class AccountType(str, Enum):
    """Kind of account a statement was produced for."""
    CREDIT_CARD = "credit_card"
    BANK_ACCOUNT = "bank_account"


# Spellings seen in legacy data and AI output
_FREQUENCY_ALIASES = {
    "one time": Frequency.ONE_TIME,
    "onetime": Frequency.ONE_TIME,
    "once": Frequency.ONE_TIME,
    "bi-weekly": Frequency.BIWEEKLY,
    "fortnightly": Frequency.BIWEEKLY,
    "yearly": Frequency.ANNUAL,
    "annually": Frequency.ANNUAL,
}


# =============================================================================
# CATEGORY VOCABULARIES
# =============================================================================

TRANSFER = "Transfer"
CREDIT_CARD_PAYMENT = "Credit Card Payment"
DEFAULT_CATEGORY = "Other"

# Money moved between the user's own accounts; never counted as income/expense
SPECIAL_CATEGORIES = frozenset({TRANSFER, CREDIT_CARD_PAYMENT})

INCOME_CATEGORIES: tuple[str, ...] = (
    "Salary",
    "Freelance",
    "Investments",
    "Gift",
    "Refund",
    TRANSFER,
    CREDIT_CARD_PAYMENT,
    DEFAULT_CATEGORY,
)

EXPENSE_CATEGORIES: tuple[str, ...] = (
    "Housing",
    "Food",
    "Transport",
    "Utilities",
    "Entertainment",
    "Health",
    "Shopping",
    "Personal",
    "Subscriptions",
    TRANSFER,
    CREDIT_CARD_PAYMENT,
    DEFAULT_CATEGORY,
)


def categories_for(is_income: bool) -> tuple[str, ...]:
    """Return the vocabulary matching the income/expense side."""
    return INCOME_CATEGORIES if is_income else EXPENSE_CATEGORIES


def is_special_category(category: Optional[str]) -> bool:
    """Transfers and credit-card payments are tracked separately."""
    return category in SPECIAL_CATEGORIES


# =============================================================================
# LENIENT PARSERS
# =============================================================================

_AMOUNT_JUNK = re.compile(r"[,$€£₹\s]")


def normalize_name(name: Optional[str]) -> str:
    """Merchant key used for matching: lower-cased and trimmed."""
    return (name or "").lower().strip()


def new_id() -> str:
    """Fresh opaque identifier."""
    return str(uuid4())


def safe_decimal(value: Any) -> Optional[Decimal]:
    """
    Convert a raw amount to Decimal.

    Accepts numbers and strings such as "1,234.50" or "$15.49".
    Returns None for anything that is not a finite number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    else:
        text = _AMOUNT_JUNK.sub("", str(value))
        if not text:
            return None
        try:
            result = Decimal(text)
        except (InvalidOperation, ValueError):
            return None
    if not result.is_finite():
        return None
    return result


def safe_amount(value: Any) -> Decimal:
    """Non-negative amount; unparseable input becomes 0."""
    amount = safe_decimal(value)
    if amount is None:
        return Decimal("0")
    return abs(amount)


def safe_date(value: Any) -> Optional[dt.date]:
    """Safely convert a value to date."""
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        text = value.strip()
        # ISO timestamps from JavaScript, e.g. 2025-01-01T00:00:00.000Z
        if re.match(r"^\d{4}-\d{2}-\d{2}T", text):
            text = text[:10]
        for fmt in ["%Y-%m-%d", "%m/%d/%Y", "%d-%m-%Y", "%Y/%m/%d"]:
            try:
                return dt.datetime.strptime(text, fmt).date()
            except ValueError:
                continue
    return None


def parse_frequency(value: Any) -> Optional[Frequency]:
    """Map a raw frequency string to the enum, or None if unrecognised."""
    if isinstance(value, Frequency):
        return value
    if not isinstance(value, str):
        return None
    key = value.lower().strip()
    if key in _FREQUENCY_ALIASES:
        return _FREQUENCY_ALIASES[key]
    try:
        return Frequency(key)
    except ValueError:
        return None


def parse_expense_type(value: Any) -> ExpenseType:
    """Map a raw expense type, defaulting to variable."""
    if isinstance(value, ExpenseType):
        return value
    try:
        return ExpenseType(str(value).lower().strip())
    except ValueError:
        return ExpenseType.VARIABLE


# =============================================================================
# TRANSACTIONS
# =============================================================================

class _TransactionBase(BaseModel):
    """
    Fields shared by income and expense records.

    `amount` is the face value for `frequency` - it is never stored
    pre-normalized. `date` is the transaction date for one-time items and
    the most recent occurrence for recurring ones.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Stable identifier, never reused"
    )
    name: str = Field(
        default="",
        description="Merchant or source label (case preserved)"
    )
    amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Face value for the frequency"
    )
    date: dt.date = Field(
        ...,
        description="Transaction date / latest occurrence"
    )
    # Kept as a plain string so unknown legacy values survive a round-trip
    frequency: str = Field(
        default=Frequency.MONTHLY.value,
        description="one-time | weekly | biweekly | monthly | quarterly | annual"
    )
    category: str = Field(
        default=DEFAULT_CATEGORY,
        description="Category from the matching vocabulary"
    )
    statement_id: Optional[str] = Field(
        default=None,
        alias="statementId",
        description="Statement that produced this row via import"
    )
    # Read-time projection marker, never persisted
    virtual: bool = Field(default=False, exclude=True)

    @field_validator("name", mode="before")
    @classmethod
    def none_name_is_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("category", mode="before")
    @classmethod
    def missing_category_is_other(cls, v: Any) -> str:
        if v is None or str(v).strip() == "":
            return DEFAULT_CATEGORY
        return str(v)

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        """Bad amounts become 0 instead of failing the whole record."""
        return safe_amount(v)

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, v: Any) -> Any:
        parsed = safe_date(v)
        return parsed if parsed is not None else v

    @field_validator("frequency", mode="before")
    @classmethod
    def coerce_frequency(cls, v: Any) -> str:
        freq = parse_frequency(v)
        if freq is not None:
            return freq.value
        return "" if v is None else str(v)

    @field_validator("statement_id", mode="before")
    @classmethod
    def empty_statement_is_none(cls, v: Any) -> Optional[str]:
        return v or None

    @property
    def is_recurring(self) -> bool:
        return self.frequency != Frequency.ONE_TIME.value

    @property
    def merchant_key(self) -> str:
        return normalize_name(self.name)

    @property
    def is_special(self) -> bool:
        return is_special_category(self.category)

    def to_record(self) -> dict:
        """Serialize to the persisted camelCase shape (no variant tag)."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"kind"},
            exclude_none=True,
        )


class Income(_TransactionBase):
    """A record in the `income` collection."""

    kind: Literal["income"] = "income"

    @property
    def is_income(self) -> bool:
        return True


class Expense(_TransactionBase):
    """A record in the `expenses` collection."""

    kind: Literal["expense"] = "expense"
    type: ExpenseType = Field(
        default=ExpenseType.VARIABLE,
        description="variable | bill | subscription"
    )

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> ExpenseType:
        return parse_expense_type(v)

    @property
    def is_income(self) -> bool:
        return False

    @property
    def is_subscription(self) -> bool:
        return self.type == ExpenseType.SUBSCRIPTION


Transaction = Annotated[Union[Income, Expense], Field(discriminator="kind")]


def make_transaction(is_income: bool, **fields: Any) -> Union[Income, Expense]:
    """Build the right variant for a side of the ledger."""
    if is_income:
        fields.pop("type", None)
        return Income(**fields)
    return Expense(**fields)


# =============================================================================
# STATEMENTS & BALANCE TRANSFERS
# =============================================================================

class Statement(BaseModel):
    """
    Snapshot of one account as of one closing date.

    Several statements can share (provider, last4): they are successive
    periods of the same account. The latest one carries the current balance.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = Field(default_factory=new_id, min_length=1)
    provider: str = Field(
        ...,
        min_length=1,
        description="Issuer name"
    )
    last4: Optional[str] = Field(
        default=None,
        description="Account suffix, if known"
    )
    date: dt.date = Field(
        ...,
        description="Statement closing date"
    )
    balance: Optional[Decimal] = Field(
        default=None,
        description="Signed balance, user-correctable"
    )
    type: AccountType = Field(default=AccountType.CREDIT_CARD)
    transaction_count: int = Field(
        default=0,
        ge=0,
        alias="transactionCount"
    )

    @field_validator("last4", mode="before")
    @classmethod
    def normalize_last4(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("balance", mode="before")
    @classmethod
    def coerce_balance(cls, v: Any) -> Optional[Decimal]:
        return safe_decimal(v)

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, v: Any) -> Any:
        parsed = safe_date(v)
        return parsed if parsed is not None else v

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> AccountType:
        try:
            return AccountType(str(v).lower().strip())
        except ValueError:
            return AccountType.CREDIT_CARD

    @property
    def account_key(self) -> tuple[str, str]:
        return (normalize_name(self.provider), self.last4 or "")

    def matches(self, provider: str, last4: Optional[str], closing: dt.date) -> bool:
        """Same (provider, last4, date) triple."""
        return (
            normalize_name(self.provider) == normalize_name(provider)
            and (self.last4 or None) == (last4 or None)
            and self.date == closing
        )

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class BalanceTransfer(BaseModel):
    """A promotional-rate balance transfer, tracked independently."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = Field(default_factory=new_id, min_length=1)
    name: str = ""
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    start_date: dt.date = Field(..., alias="startDate")
    apr_end_date: dt.date = Field(..., alias="aprEndDate")

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return safe_amount(v)

    @field_validator("start_date", "apr_end_date", mode="before")
    @classmethod
    def coerce_dates(cls, v: Any) -> Any:
        parsed = safe_date(v)
        return parsed if parsed is not None else v

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# RULES & CANDIDATES
# =============================================================================

class RuleEntry(BaseModel):
    """
    A user-confirmed classification for one merchant.

    CRITICAL: Only written on explicit save, never from a raw AI guess.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    category: str = DEFAULT_CATEGORY
    frequency: str = Frequency.MONTHLY.value
    is_income: bool = Field(default=False, alias="isIncome")
    type: Optional[ExpenseType] = None

    @field_validator("frequency", mode="before")
    @classmethod
    def coerce_frequency(cls, v: Any) -> str:
        freq = parse_frequency(v)
        return freq.value if freq else Frequency.ONE_TIME.value

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> Optional[ExpenseType]:
        if v is None or v == "":
            return None
        return parse_expense_type(v)

    @field_validator("is_income", mode="before")
    @classmethod
    def coerce_is_income(cls, v: Any) -> bool:
        return bool(v)

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class RawCandidate(BaseModel):
    """
    An unreviewed transaction guess.

    This is PROPOSED data from the AI service, the chat assistant or an
    entry form. Every field is loose on purpose; the validator and the
    import reconciler turn it into a real Income/Expense.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="ignore",
    )

    id: Optional[str] = None
    name: str = ""
    amount: Any = None
    date: Any = None
    category: Optional[str] = None
    frequency: Optional[str] = None
    is_income: Optional[bool] = Field(default=None, alias="isIncome")
    type: Optional[str] = None
    statement_id: Optional[str] = Field(default=None, alias="statementId")

    @field_validator("name", mode="before")
    @classmethod
    def none_name_is_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("is_income", mode="before")
    @classmethod
    def coerce_is_income(cls, v: Any) -> Optional[bool]:
        if v is None:
            return None
        if isinstance(v, str):
            return v.strip().lower() in ("true", "yes", "1", "income")
        return bool(v)


class StatementMeta(BaseModel):
    """Account descriptor returned alongside a bulk statement extraction."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="ignore",
    )

    provider: str = Field(default="Unknown")
    last4: Optional[str] = None
    balance: Optional[Decimal] = None
    type: AccountType = AccountType.CREDIT_CARD
    date: Optional[dt.date] = None

    @field_validator("provider", mode="before")
    @classmethod
    def default_provider(cls, v: Any) -> str:
        text = "" if v is None else str(v).strip()
        return text or "Unknown"

    @field_validator("last4", mode="before")
    @classmethod
    def normalize_last4(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        if text.lower() in ("", "null", "none", "unknown"):
            return None
        return text

    @field_validator("balance", mode="before")
    @classmethod
    def coerce_balance(cls, v: Any) -> Optional[Decimal]:
        return safe_decimal(v)

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> AccountType:
        try:
            return AccountType(str(v).lower().strip())
        except ValueError:
            return AccountType.CREDIT_CARD

    @field_validator("date", mode="before")
    @classmethod
    def coerce_date(cls, v: Any) -> Optional[dt.date]:
        return safe_date(v)
