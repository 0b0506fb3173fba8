"""Pydantic models for upstream API responses."""

from .rates import (
    ExchangeRateResponse,
    PairConversionResponse,
    SupportedCodesResponse,
)

__all__ = [
    "ExchangeRateResponse",
    "PairConversionResponse",
    "SupportedCodesResponse",
]
