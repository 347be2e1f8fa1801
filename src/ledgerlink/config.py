"""Import pipeline settings."""

import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

from ledgerlink.domain.errors import ValidationError

ENV_PREFIX = "LEDGERLINK_"

_ENV_NAMES = {
    "dedup_window_days": "DEDUP_WINDOW_DAYS",
    "transfer_tolerance_days": "TRANSFER_TOLERANCE_DAYS",
    "similarity_threshold": "SIMILARITY_THRESHOLD",
    "review_threshold": "REVIEW_THRESHOLD",
    "parse_time_budget": "PARSE_TIME_BUDGET",
}


@dataclass(frozen=True)
class ImportSettings:
    """Tunables of the import pipeline.

    Attributes:
        dedup_window_days: Half-width of the date window searched for duplicates
        transfer_tolerance_days: Settlement lag tolerated between the two legs
            of an internal transfer
        similarity_threshold: Minimum description similarity (0-1) of a
            transfer counterpart
        review_threshold: Confidence under which a record needs review
        parse_time_budget: Seconds a statement may spend being parsed
    """

    dedup_window_days: int = 3
    transfer_tolerance_days: int = 2
    similarity_threshold: float = 0.5
    review_threshold: float = 0.7
    parse_time_budget: float = 90.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ImportSettings":
        """Build settings from LEDGERLINK_* environment variables.

        Raises:
            ValidationError: If a variable holds an unusable value
        """
        if environ is None:
            environ = os.environ

        overrides = {}
        for f in fields(cls):
            name = ENV_PREFIX + _ENV_NAMES[f.name]
            raw = environ.get(name)
            if raw is None or raw.strip() == "":
                continue
            try:
                overrides[f.name] = int(raw) if f.type in (int, "int") else float(raw)
            except ValueError:
                raise ValidationError(f"{name} must be a number, got '{raw}'")

        settings = cls(**overrides)
        settings.validate()
        return settings

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ValidationError: If any setting is out of range
        """
        if self.dedup_window_days < 0 or self.transfer_tolerance_days < 0:
            raise ValidationError("Day windows cannot be negative")
        for name in ("similarity_threshold", "review_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValidationError(f"{name} must be between 0 and 1, got {value}")
        if self.parse_time_budget <= 0:
            raise ValidationError("parse_time_budget must be positive")
