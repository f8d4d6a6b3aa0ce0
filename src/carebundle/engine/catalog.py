"""
CareBundle Service Catalog

Collaborators the composition engine prices allocations with.

- ServiceCatalog: service code -> ServiceType
- RateRepository: ServiceType (+ date) -> current billing rate

The surrounding application can supply its own implementations; the
in-memory versions here are built from service_types.yaml.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional, Protocol, Union

from ..models import ServiceRate, ServiceType
from ..packs import load_service_types


class ServiceCatalog(Protocol):
    def get(self, code: str) -> Optional[ServiceType]:
        ...

    def __contains__(self, code: object) -> bool:
        ...


class RateRepository(Protocol):
    def current_rate(
        self, service_type: ServiceType, on: Optional[date] = None
    ) -> Optional[Decimal]:
        ...


@dataclass
class InMemoryServiceCatalog:
    """Service types keyed by code. Inactive types are not returned."""

    _types: dict[str, ServiceType] = field(default_factory=dict)

    @classmethod
    def from_types(cls, types: Iterable[ServiceType]) -> InMemoryServiceCatalog:
        return cls({t.code: t for t in types})

    def add(self, service_type: ServiceType) -> None:
        self._types[service_type.code] = service_type

    def get(self, code: str) -> Optional[ServiceType]:
        service_type = self._types.get(code)
        if service_type is None or not service_type.active:
            return None
        return service_type

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and self.get(code) is not None

    def codes(self) -> set[str]:
        return {code for code, t in self._types.items() if t.active}


@dataclass
class InMemoryRateRepository:
    """
    Dated rates per service code.

    The current rate is the one with the latest effective_from on or
    before the date that has not ended.
    """

    _rates: dict[str, list[ServiceRate]] = field(default_factory=dict)

    @classmethod
    def from_rates(cls, rates: Iterable[ServiceRate]) -> InMemoryRateRepository:
        repo = cls()
        for rate in rates:
            repo.add(rate)
        return repo

    def add(self, rate: ServiceRate) -> None:
        self._rates.setdefault(rate.service_code, []).append(rate)

    def current_rate(
        self, service_type: ServiceType, on: Optional[date] = None
    ) -> Optional[Decimal]:
        on = on or date.today()
        effective = [
            r for r in self._rates.get(service_type.code, []) if r.is_effective_on(on)
        ]
        if not effective:
            return None
        return max(effective, key=lambda r: r.effective_from).rate


def load_catalog(
    path: Union[str, Path],
) -> tuple[InMemoryServiceCatalog, InMemoryRateRepository]:
    """Build both collaborators from a service_types document."""
    types, rates = load_service_types(path)
    return InMemoryServiceCatalog.from_types(types), InMemoryRateRepository.from_rates(rates)
