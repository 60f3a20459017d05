"""Value Objects shared across the domain.

Value Objects are immutable and compared by value, not identity.
They encapsulate validation so invalid values can never exist.

Every costing operation goes through ``COSTING_CONTEXT`` so results are
the same no matter which decimal context the calling thread has set.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Context, Decimal, InvalidOperation

from costing.domain.exceptions import ValidationError

COSTING_CONTEXT = Context(prec=34, rounding=ROUND_HALF_EVEN)

DEFAULT_CURRENCY = "USD"


@dataclass(frozen=True)
class Money:
    """Monetary amount with currency.

    Uses Decimal to avoid floating-point rounding errors that would be
    unacceptable in financial calculations.  The amount is signed; the
    non-negative rules for costs and snapshots live on the types that
    own them, so a corrupted stored value can still be loaded and reported.
    """

    amount: Decimal
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            raise ValidationError(
                f"Money amount must be a Decimal, got {type(self.amount).__name__}"
            )
        if not self.amount.is_finite():
            raise ValidationError(f"Money amount must be finite, got {self.amount}")

    # --- Arithmetic helpers ---------------------------------------------------

    def __add__(self, other: Money) -> Money:
        self._assert_same_currency(other)
        return Money(COSTING_CONTEXT.add(self.amount, other.amount), self.currency)

    def __sub__(self, other: Money) -> Money:
        self._assert_same_currency(other)
        return Money(COSTING_CONTEXT.subtract(self.amount, other.amount), self.currency)

    def __mul__(self, factor: int) -> Money:
        if not isinstance(factor, int) or isinstance(factor, bool):
            raise TypeError(f"Can only multiply Money by int, got {type(factor).__name__}")
        return Money(COSTING_CONTEXT.multiply(self.amount, Decimal(factor)), self.currency)

    def divide(self, quantity: int) -> Money:
        """Per-unit amount: ``self / quantity`` at full costing precision."""
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            raise TypeError(f"Can only divide Money by int, got {type(quantity).__name__}")
        if quantity <= 0:
            raise ValidationError(f"Cannot divide money by quantity {quantity}")
        return Money(COSTING_CONTEXT.divide(self.amount, Decimal(quantity)), self.currency)

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def difference(self, other: Money) -> Decimal:
        """Absolute distance between two amounts of the same currency."""
        self._assert_same_currency(other)
        return COSTING_CONTEXT.abs(COSTING_CONTEXT.subtract(self.amount, other.amount))

    def rounded(self, places: int = 2) -> Decimal:
        """Amount rounded for display; stored values keep full precision."""
        return self.amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_EVEN)

    # --- Display --------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.rounded(2)} {self.currency}"

    # --- Internal helpers -----------------------------------------------------

    def _assert_same_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise ValidationError(
                f"Cannot combine {self.currency} with {other.currency}"
            )

    # --- Factory --------------------------------------------------------------

    @staticmethod
    def of(amount: str | int | Decimal, currency: str = DEFAULT_CURRENCY) -> Money:
        """Convenient factory that coerces to Decimal safely.

        Floats are refused: their binary representation would leak into
        the cost basis.
        """
        if isinstance(amount, float):
            raise ValidationError(f"Money amount must not be a float, got {amount!r}")
        try:
            return Money(Decimal(str(amount)), currency)
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError(f"Invalid money amount: {amount!r}") from exc

    @staticmethod
    def zero(currency: str = DEFAULT_CURRENCY) -> Money:
        return Money(Decimal("0"), currency)
