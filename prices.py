# prices.py
"""
Hourly price sources for the arbitrage simulator.

Every source returns a 24-point Series of prices per MWh indexed by hour
(0..23), ready for `dispatch.select_schedule`:

  * `mock_prices`        – fixed day shape (cheap night, evening peak)
  * `random_prices`      – random draw from time-of-day price bands
  * `read_price_csv`     – user-supplied table with hour/price columns
  * `agile_hourly_prices`– Octopus Agile import rates for a given date

Agile prices are region-specific; each region has a single-letter code (A‥P).
If you don’t know the code, pass `postcode`, we’ll look up its grid supply
point group with Octopus.

Series names carry the currency: `price` for the generic sources (dollars,
as in the explainer UI), `AGILE_NAME` for Agile (pounds).
"""

from __future__ import annotations
import datetime as dt
import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import requests

from dispatch import HOURS

log = logging.getLogger(__name__)

DEFAULT_PRICE = 50.0          # backfill for hours missing from a CSV

HOUR_KEYS = ("hour", "time", "period")
PRICE_KEYS = ("price", "cost", "rate")

# (hours, low, high) – integers drawn from [low, high)
PRICE_BANDS: Tuple[Tuple[Sequence[int], int, int], ...] = (
    ((*range(1, 6), *range(9, 17)), 20, 50),    # night trough + midday
    ((7, 8, *range(18, 22)), 70, 120),          # morning + evening peaks
)
SHOULDER_BAND = (40, 80)

PRODUCT_CODE = "AGILE-24-10-01"
GSP_URL = "https://api.octopus.energy/v1/industry/grid-supply-points/"
AGILE_NAME = "price_£pMWh"
CURRENCY = {"price": "$", AGILE_NAME: "£"}


class PriceFileError(ValueError):
    """A price table could not be turned into a 24-hour series."""


def _hourly(values, name: str = "price") -> pd.Series:
    return pd.Series(np.asarray(values, dtype=float),
                     index=pd.Index(range(HOURS), name="hour"), name=name)


def currency_of(prices: pd.Series) -> str:
    """Currency sign for a series returned by one of the sources below."""
    return CURRENCY.get(prices.name, "$")


def mock_prices() -> pd.Series:
    """
    Cheap overnight (30), expensive evening peak (110),
    flat shoulder (55) the rest of the day.
    """
    hours = np.arange(HOURS)
    base = np.where((hours >= 16) & (hours < 20), 110.0,
            np.where(hours < 6, 30.0, 55.0))
    return _hourly(base)


def random_prices(seed: Optional[int] = None) -> pd.Series:
    """Draw one day of whole-unit prices from the time-of-day bands."""
    rng = np.random.default_rng(seed)
    low = np.full(HOURS, SHOULDER_BAND[0])
    high = np.full(HOURS, SHOULDER_BAND[1])
    for hours, lo, hi in PRICE_BANDS:
        low[list(hours)] = lo
        high[list(hours)] = hi
    return _hourly(rng.integers(low, high))


def _find_column(columns, keys: Sequence[str]) -> Optional[str]:
    for col in columns:
        name = str(col).strip().lower()
        if any(k in name for k in keys):
            return col
    return None


def read_price_csv(source, strict: bool = False) -> pd.Series:
    """
    Parse an uploaded price table.

    The hour and price columns are found by header name (first header
    containing hour/time/period, resp. price/cost/rate). Only the first 24
    rows are read; rows whose hour or price is not numeric, or whose hour is
    outside 0..23, are dropped. Missing hours are filled with DEFAULT_PRICE
    unless *strict*, in which case anything short of 24 valid rows raises
    PriceFileError.
    """
    try:
        raw = pd.read_csv(source, nrows=HOURS, skipinitialspace=True)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as exc:
        raise PriceFileError(f"could not parse price table: {exc}") from exc

    hour_col = _find_column(raw.columns, HOUR_KEYS)
    price_col = _find_column([c for c in raw.columns if c != hour_col], PRICE_KEYS)
    if hour_col is None or price_col is None:
        raise PriceFileError(
            f"need an hour column ({'/'.join(HOUR_KEYS)}) and a price column "
            f"({'/'.join(PRICE_KEYS)}); got {list(raw.columns)}")

    df = pd.DataFrame({
        "hour": pd.to_numeric(raw[hour_col], errors="coerce"),
        "price": pd.to_numeric(raw[price_col], errors="coerce"),
    }).dropna()
    df = df[(df.hour >= 0) & (df.hour < HOURS) & (df.hour == df.hour.round())]
    df = df.astype({"hour": int}).drop_duplicates("hour").sort_values("hour")

    if df.empty:
        raise PriceFileError("no valid hour/price rows in price table")

    missing = sorted(set(range(HOURS)) - set(df.hour))
    if missing:
        if strict:
            raise PriceFileError(
                f"only {len(df)} valid rows, missing hours {missing}")
        log.warning("price table missing hours %s – using %.0f", missing, DEFAULT_PRICE)

    s = df.set_index("hour").price.reindex(range(HOURS), fill_value=DEFAULT_PRICE)
    return _hourly(s.to_numpy())


def _postcode_to_region(postcode: str) -> str:
    r = requests.get(GSP_URL, params={"postcode": postcode}, timeout=10)
    r.raise_for_status()
    try:
        group_id = r.json()["results"][0]["group_id"]   # e.g. "_C"
    except (KeyError, IndexError, TypeError) as exc:
        raise ValueError(f"no Agile region found for postcode {postcode!r}") from exc
    return str(group_id).lstrip("_")


def agile_hourly_prices(
    date: dt.date,
    region: Optional[str] = None,
    postcode: Optional[str] = None,
) -> pd.Series:
    """
    Return Agile import prices for *date* (UTC) as 24 hourly £/MWh values.

    Half-hour slots the API leaves out are filled from the nearest known slot;
    each hour is the mean of its two half-hours. An empty response raises
    ValueError so the caller can fall back to another source.
    """
    if region is None:
        if postcode is None:
            raise ValueError("Need either region letter or postcode")
        region = _postcode_to_region(postcode)

    tariff_code = f"E-1R-{PRODUCT_CODE}-{region}"
    period_from = dt.datetime.combine(date, dt.time.min, tzinfo=dt.timezone.utc)
    period_to = period_from + dt.timedelta(days=1)

    url = (
        f"https://api.octopus.energy/v1/products/{PRODUCT_CODE}"
        f"/electricity-tariffs/{tariff_code}/standard-unit-rates/"
    )
    params = {
        "period_from": period_from.isoformat(timespec="seconds").replace("+00:00", "Z"),
        "period_to": period_to.isoformat(timespec="seconds").replace("+00:00", "Z"),
    }
    r = requests.get(url, params=params, timeout=20)
    r.raise_for_status()

    # half-hour slot number since midnight → £/MWh (API gives p/kWh)
    start = pd.Timestamp(period_from)
    try:
        rates = pd.Series({
            int((pd.Timestamp(item["valid_from"]) - start).total_seconds() // 1800):
                float(item["value_inc_vat"]) * 10
            for item in r.json()["results"]
        }, dtype=float).sort_index()
    except (KeyError, TypeError) as exc:
        raise ValueError(f"malformed Agile response for {date} region {region}: {exc!r}") from exc

    slots = range(2 * HOURS)
    rates = rates[rates.index.isin(slots)]
    if rates.empty:
        raise ValueError(f"Agile returned no rates for {date} region {region}")
    log.info("Agile %s region %s: %d/%d half-hour rates", date, region,
             len(rates), len(slots))
    half_hourly = rates.reindex(slots).ffill().bfill()
    hourly = half_hourly.to_numpy().reshape(HOURS, 2).mean(axis=1)
    return _hourly(hourly, name=AGILE_NAME)
