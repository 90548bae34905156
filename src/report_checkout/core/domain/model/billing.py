from __future__ import annotations

from dataclasses import dataclass

INDIA = "india"
MAHARASHTRA = "maharashtra"


@dataclass(frozen=True)
class Region:
    country: str
    state: str | None = None

    @property
    def is_india(self) -> bool:
        return self.country.strip().lower() == INDIA

    @property
    def is_maharashtra(self) -> bool:
        return self.is_india and (self.state or "").strip().lower() == MAHARASHTRA


@dataclass(frozen=True)
class BillingDetails:
    first_name: str
    last_name: str
    email: str
    country: str
    phone_number: str
    phone_code: str = ""
    street_address: str | None = None
    state: str | None = None
    city: str | None = None
    postal_code: str | None = None
    company_name: str | None = None
    gstin: str | None = None

    @property
    def region(self) -> Region:
        return Region(country=self.country, state=self.state)

    @property
    def phone(self) -> str:
        return f"{self.phone_code} {self.phone_number}".strip()
