"""
Payment sources.

Every payment is raised against exactly one billable thing: a
consultation, a sale, a hospitalization stay or a surgery.  The source is
modelled as a small tagged variant instead of four nullable foreign keys
so that a payment can never point at zero or at several sources.  It is
persisted on :class:`billing.models.Payment` as ``(source_kind,
source_id)``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class PaymentSource:
    id: int

    kind: ClassVar[str] = ''

    def __post_init__(self) -> None:
        if not isinstance(self.id, int) or isinstance(self.id, bool) or self.id < 1:
            raise ValueError(f'invalid {self.kind} id: {self.id!r}')

    @staticmethod
    def from_parts(kind: str, source_id: int) -> 'PaymentSource':
        try:
            cls = SOURCE_TYPES[kind]
        except KeyError:
            raise ValueError(f'unknown payment source kind: {kind!r}') from None
        return cls(int(source_id))

    def as_dict(self) -> dict:
        return {'kind': self.kind, 'id': self.id}


@dataclass(frozen=True)
class Consultation(PaymentSource):
    kind: ClassVar[str] = 'consultation'


@dataclass(frozen=True)
class Sale(PaymentSource):
    kind: ClassVar[str] = 'sale'


@dataclass(frozen=True)
class Hospitalization(PaymentSource):
    """A hospitalization stay; ``id`` is the :class:`billing.models.Stay` pk."""
    kind: ClassVar[str] = 'hospitalization'


@dataclass(frozen=True)
class Surgery(PaymentSource):
    kind: ClassVar[str] = 'surgery'


SOURCE_TYPES: dict[str, type[PaymentSource]] = {
    cls.kind: cls for cls in (Consultation, Sale, Hospitalization, Surgery)
}

SOURCE_CHOICES = [(kind, kind.capitalize()) for kind in SOURCE_TYPES]
