from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Union


@dataclass(slots=True, frozen=True)
class Bounded:
    limit: int

    def remaining(self, used: int | Decimal) -> int | Decimal:
        return max(0, self.limit - used)

    def is_reached(self, used: int | Decimal) -> bool:
        return used >= self.limit

    def percentage(self, used: int | Decimal) -> float:
        if self.limit == 0:
            return 0.0
        return float(used) / self.limit * 100

    def as_optional(self) -> int | None:
        return self.limit


@dataclass(slots=True, frozen=True)
class Unlimited:
    def remaining(self, used: int | Decimal) -> None:
        return None

    def is_reached(self, used: int | Decimal) -> bool:
        return False

    def percentage(self, used: int | Decimal) -> float:
        return 0.0

    def as_optional(self) -> None:
        return None


Quota = Union[Bounded, Unlimited]

UNLIMITED = Unlimited()


def quota_from_column(value: int | None) -> Quota:
    """Stored quotas use NULL for unlimited."""
    if value is None:
        return UNLIMITED
    return Bounded(int(value))
