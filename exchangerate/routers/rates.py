from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from pydantic import BaseModel, Field

from exchangerate.models.rates import ExchangeRateResponse
from exchangerate.services.cache import CacheError, create_cache_key
from exchangerate.services.client import ExchangeRateClient
from exchangerate.services.errors import UnsupportedCodeError

"""Rates router exposing the cached client over HTTP.

Endpoints:
    - GET /rates/latest/{base}             -> full rate table
    - GET /rates/pair/{from}/{to}          -> direct pair rate
    - GET /rates/convert?amount&from&to    -> converted amount
    - GET /rates/codes                     -> supported currency codes
    - DELETE /rates/cache                  -> clear every cached response
    - DELETE /rates/cache/{endpoint}       -> invalidate one key (?params=USD&params=EUR)
"""

router = APIRouter(prefix="/rates", tags=["rates"])

CODE_PATTERN = r"^[A-Za-z]{3}$"
CACHE_ENDPOINTS = ("latest", "pair", "codes")


def get_client(request: Request) -> ExchangeRateClient:
    return request.app.state.client


class PairRateOut(BaseModel):
    from_currency: str
    to_currency: str
    rate: float


class ConversionOut(BaseModel):
    amount: float
    from_currency: str
    to_currency: str
    converted_amount: float
    rate: float


class CurrencyCodesOut(BaseModel):
    currencies: Dict[str, str]
    count: int = Field(..., ge=0)


@router.get(
    "/latest/{base}",
    response_model=ExchangeRateResponse,
    summary="Latest exchange rates for a base currency",
)
def latest_rates(
    base: str = Path(..., pattern=CODE_PATTERN),
    client: ExchangeRateClient = Depends(get_client),
):
    return client.get_latest_rates(base.upper())


@router.get(
    "/pair/{from_currency}/{to_currency}",
    response_model=PairRateOut,
    summary="Direct conversion rate between two currencies",
)
def pair_rate(
    from_currency: str = Path(..., pattern=CODE_PATTERN),
    to_currency: str = Path(..., pattern=CODE_PATTERN),
    client: ExchangeRateClient = Depends(get_client),
):
    src, dst = from_currency.upper(), to_currency.upper()
    return PairRateOut(
        from_currency=src, to_currency=dst, rate=client.get_pair_rate(src, dst)
    )


@router.get("/convert", response_model=ConversionOut, summary="Convert an amount")
def convert(
    amount: float = Query(..., ge=0),
    from_currency: str = Query(..., pattern=CODE_PATTERN),
    to_currency: str = Query(..., pattern=CODE_PATTERN),
    client: ExchangeRateClient = Depends(get_client),
):
    src, dst = from_currency.upper(), to_currency.upper()
    rate = client.get_latest_rates(src).get_rate(dst)
    if rate is None:
        raise UnsupportedCodeError(f"Unsupported currency code: {dst}")
    converted = amount * rate
    return ConversionOut(
        amount=amount,
        from_currency=src,
        to_currency=dst,
        converted_amount=converted,
        rate=rate,
    )


@router.get("/codes", response_model=CurrencyCodesOut, summary="Supported currency codes")
def supported_codes(client: ExchangeRateClient = Depends(get_client)):
    codes = client.get_supported_codes()
    return CurrencyCodesOut(currencies=dict(codes), count=len(codes))


@router.delete("/cache", summary="Clear every cached response")
def clear_cache(client: ExchangeRateClient = Depends(get_client)):
    try:
        client.clear_cache()
    except CacheError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return {"status": "cleared"}


@router.delete("/cache/{endpoint}", summary="Invalidate one cached response")
def invalidate(
    endpoint: str,
    params: List[str] = Query(default=[]),
    client: ExchangeRateClient = Depends(get_client),
):
    if endpoint not in CACHE_ENDPOINTS:
        raise HTTPException(status_code=404, detail=f"unknown cache endpoint '{endpoint}'")
    upper = [p.upper() for p in params]
    try:
        client.invalidate(endpoint, *upper)
    except CacheError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return {"status": "invalidated", "key": create_cache_key(endpoint, upper)}
