from __future__ import annotations

from enum import Enum


class LicenseTier(str, Enum):
    SINGLE = "single"
    TEAM = "team"
    ENTERPRISE = "enterprise"

    @property
    def default_title(self) -> str:
        return f"{self.value.capitalize()} License"

    @staticmethod
    def parse(value: str) -> "LicenseTier":
        return LicenseTier(value.strip().lower())

    @staticmethod
    def from_label(label: str) -> "LicenseTier":
        """Maps free-text license names ("Team License") from custom payment links."""
        text = label.lower()
        if "team" in text:
            return LicenseTier.TEAM
        if "enterprise" in text:
            return LicenseTier.ENTERPRISE
        return LicenseTier.SINGLE
