# dispatch.py
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Mapping, Tuple, Union

import numpy as np
import pandas as pd
from pandas.api.types import is_number, is_numeric_dtype

log = logging.getLogger(__name__)

HOURS = 24
CHARGE_SLOTS = 5        # one cycle per day at 4 MWh / 1 MW
DISCHARGE_SLOTS = 4

PriceLike = Union[pd.Series, Mapping[int, float], Iterable[float]]


@dataclass(frozen=True)
class BatteryCfg:
    capacity_mwh: float = 4.0     # usable capacity
    power_mw: float = 1.0         # max charge/discharge
    round_trip_eff: float = 0.8

    def __post_init__(self):
        if not self.capacity_mwh > 0:
            raise ValueError(f"capacity_mwh must be >0, got {self.capacity_mwh}")
        if not self.power_mw > 0:
            raise ValueError(f"power_mw must be >0, got {self.power_mw}")
        check_efficiency(self.round_trip_eff)


@dataclass(frozen=True)
class Schedule:
    charging_hours: FrozenSet[int] = field(default_factory=frozenset)
    discharging_hours: FrozenSet[int] = field(default_factory=frozenset)

    def __post_init__(self):
        for name in ("charging_hours", "discharging_hours"):
            hours = frozenset(getattr(self, name))
            check_hours(hours)
            object.__setattr__(self, name, frozenset(int(h) for h in hours))
        both = self.charging_hours & self.discharging_hours
        if both:
            raise ValueError(f"hours {sorted(both)} both charge and discharge")

    @property
    def is_empty(self) -> bool:
        return not self.charging_hours and not self.discharging_hours


def check_hours(hours: Iterable) -> None:
    """Raise unless every entry is an integer hour in 0..23."""
    bad = [h for h in hours
           if isinstance(h, bool) or not isinstance(h, (int, np.integer))
           or not 0 <= h < HOURS]
    if bad:
        raise ValueError(f"schedule hours out of range 0..{HOURS - 1}: {sorted(bad, key=str)}")


def check_efficiency(efficiency: float) -> float:
    if not (0 < efficiency <= 1.0):
        raise ValueError(f"efficiency must be in (0,1], got {efficiency}")
    return efficiency


def validate_prices(prices: PriceLike) -> pd.Series:
    """
    Coerce *prices* to the canonical 24-slot Series (index = hour 0..23).

    Accepts a Series indexed by hour, a {hour: price} mapping, or a plain
    sequence of 24 prices (position = hour). Anything that is not exactly one
    finite price per hour raises ValueError.
    """
    if isinstance(prices, pd.Series):
        s = prices.copy()
    elif isinstance(prices, Mapping):
        s = pd.Series(dict(prices))
    else:
        s = pd.Series(list(prices))

    if len(s) != HOURS:
        raise ValueError(f"need exactly {HOURS} hourly prices, got {len(s)}")
    if s.index.has_duplicates:
        dupes = sorted(set(s.index[s.index.duplicated()]))
        raise ValueError(f"duplicate hours in price series: {dupes}")
    try:
        hours = [int(h) for h in s.index]
    except (TypeError, ValueError):
        raise ValueError("price series index must be integer hours 0..23") from None
    if any(h != orig for h, orig in zip(hours, s.index)) or sorted(hours) != list(range(HOURS)):
        raise ValueError("price series must cover hours 0..23 exactly once")

    if not is_numeric_dtype(s) and not all(is_number(v) for v in s):
        raise ValueError("price series contains non-numeric prices")
    values = s.astype(float)
    if not np.isfinite(values.to_numpy()).all():
        raise ValueError("price series contains non-numeric or non-finite prices")

    out = pd.Series(values.to_numpy(), index=pd.Index(hours, name="hour"), name="price")
    return out.sort_index()


def select_schedule(prices: PriceLike, efficiency: float) -> Schedule:
    """
    Pick charge/discharge hours for one daily cycle:
      • seed 5 cheapest hours to charge, 4 dearest to discharge
      • while the dearest charge hour costs more than the cheapest discharge
        hour is worth after losses (price × efficiency), drop both
    Ties go to the lowest hour index, so the result is deterministic.
    """
    price = validate_prices(prices)
    check_efficiency(efficiency)

    # stable sort on (price, hour)
    ranked = sorted(price.index, key=lambda h: (price[h], h))
    charging = set(ranked[:CHARGE_SLOTS])
    discharging = set(ranked[-DISCHARGE_SLOTS:])

    while charging and discharging:
        hi = max(charging, key=lambda h: (price[h], -h))
        lo = min(discharging, key=lambda h: (price[h], h))
        discharging_value = price[lo] * efficiency
        if price[hi] <= discharging_value:
            break
        log.debug("pruning pair charge@%d (%.2f) / discharge@%d (%.2f worth %.2f)",
                  hi, price[hi], lo, price[lo], discharging_value)
        charging.discard(hi)
        discharging.discard(lo)

    # nothing left to sell into: any leftover charging is a pure loss
    if not discharging:
        charging.clear()

    return Schedule(frozenset(int(h) for h in charging),
                    frozenset(int(h) for h in discharging))


def simulate_dispatch(prices: PriceLike,
                      schedule: Schedule,
                      cfg: BatteryCfg = BatteryCfg()) -> dict:
    """
    Walk hours 0..23 applying *schedule* under the battery's limits.

    Charging always draws the full power limit from the grid while only
    ``power × efficiency`` lands in the battery (the efficiency is applied
    once, on the way in). Discharge is capped by what is stored.

    Returns a dict with:
      - df  : DataFrame indexed by hour (price, power_mw, soc_mwh, soc_pct)
      - charging_cost, discharging_revenue, net_revenue, final_soc_pct
    """
    price = validate_prices(prices)
    check_hours(schedule.charging_hours | schedule.discharging_hours)

    soc = 0.0
    power_trace = []         # − charge, + discharge
    soc_trace = []

    for hour, p in price.items():
        power = 0.0
        if hour in schedule.charging_hours:
            power = -cfg.power_mw
            soc = min(cfg.capacity_mwh, soc + cfg.power_mw * cfg.round_trip_eff)
        elif hour in schedule.discharging_hours:
            power = min(cfg.power_mw, soc)
            soc = max(0.0, soc - power)

        power_trace.append(power)
        soc_trace.append(soc)

    df = pd.DataFrame(
        {"price": price,
         "power_mw": power_trace,
         "soc_mwh": soc_trace},
        index=price.index,
    )
    df["soc_pct"] = df.soc_mwh / cfg.capacity_mwh * 100

    charged = df.power_mw < 0
    discharged = df.power_mw > 0
    charging_cost = float((-df.power_mw[charged] * df.price[charged]).sum())
    discharging_revenue = float((df.power_mw[discharged] * df.price[discharged]).sum())
    net_revenue = discharging_revenue - charging_cost

    return {
        "df": df,
        "charging_cost": charging_cost,
        "discharging_revenue": discharging_revenue,
        "net_revenue": net_revenue,
        "final_soc_pct": float(df.soc_pct.iloc[-1]),
    }


def run_arbitrage(prices: PriceLike,
                  cfg: BatteryCfg = BatteryCfg()) -> Tuple[Schedule, dict]:
    """Select a schedule for *prices* and simulate it on *cfg*."""
    price = validate_prices(prices)
    schedule = select_schedule(price, cfg.round_trip_eff)
    log.info("charging %s, discharging %s",
             sorted(schedule.charging_hours), sorted(schedule.discharging_hours))
    return schedule, simulate_dispatch(price, schedule, cfg)
