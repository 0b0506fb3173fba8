from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExchangeRateResponse(BaseModel):
    """Latest rates for one base currency as returned by `/latest/{base}`."""

    model_config = ConfigDict(extra="ignore")

    result: str = "success"
    documentation: str = ""
    terms_of_use: str = ""
    time_last_update_unix: int = 0
    time_last_update_utc: str = ""
    time_next_update_unix: int = 0
    time_next_update_utc: str = ""
    base_code: str
    conversion_rates: Dict[str, float] = Field(default_factory=dict)

    @field_validator("base_code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        return v.upper()

    def get_rate(self, currency_code: str) -> Optional[float]:
        return self.conversion_rates.get(currency_code)

    def convert_from_base(self, amount: float, to_currency: str) -> Optional[float]:
        rate = self.get_rate(to_currency)
        if rate is None:
            return None
        return amount * rate

    def convert(
        self, amount: float, from_currency: str, to_currency: str
    ) -> Optional[float]:
        if from_currency == self.base_code:
            return self.convert_from_base(amount, to_currency)
        from_rate = self.get_rate(from_currency)
        to_rate = self.get_rate(to_currency)
        if from_rate is None or to_rate is None or from_rate == 0:
            return None
        # Cross through the base currency
        return amount / from_rate * to_rate


class PairConversionResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    conversion_rate: float


class SupportedCodesResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    supported_codes: List[List[str]] = Field(default_factory=list)

    def as_pairs(self) -> List[Tuple[str, str]]:
        return [(row[0], row[1]) for row in self.supported_codes if len(row) >= 2]
