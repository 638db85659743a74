# simulate.py
import argparse
import datetime as dt
import logging
from typing import Optional, Sequence

import pandas as pd
import requests

from config import battery_from_config, load_config
from dispatch import run_arbitrage
from prices import (agile_hourly_prices, currency_of, mock_prices, random_prices,
                    read_price_csv)

log = logging.getLogger("simulate")

SOURCES = ("mock", "random", "csv", "agile")


def load_prices(source: str,
                seed: Optional[int] = None,
                csv: Optional[str] = None,
                date: Optional[dt.date] = None,
                region: Optional[str] = None,
                postcode: Optional[str] = None) -> pd.Series:
    """Fetch one day of hourly prices from *source*."""
    if source not in SOURCES:
        raise ValueError(f"unknown price source {source!r}, pick one of {SOURCES}")
    if source == "random":
        return random_prices(seed)
    if source == "csv":
        if not csv:
            raise ValueError("--csv PATH is required for the csv source")
        return read_price_csv(csv)
    if source == "agile":
        # default to yesterday, today's rates may not be complete
        query_date = date or dt.date.today() - dt.timedelta(days=1)
        try:
            return agile_hourly_prices(query_date, region=region, postcode=postcode)
        except (requests.RequestException, ValueError) as exc:
            log.warning("Agile prices unavailable (%s) – using mock prices instead.", exc)
            return mock_prices()
    return mock_prices()


def format_report(schedule, res: dict, currency: str = "$") -> str:
    """Plain-text summary plus the hour-by-hour trajectory."""
    df = res["df"]
    out = [
        f"Charging hours:    {', '.join(map(str, sorted(schedule.charging_hours))) or 'N/A'}",
        f"Discharging hours: {', '.join(map(str, sorted(schedule.discharging_hours))) or 'N/A'}",
        f"Charging cost:     {currency}{res['charging_cost']:,.2f}",
        f"Discharge revenue: {currency}{res['discharging_revenue']:,.2f}",
        f"Net revenue:       {currency}{res['net_revenue']:,.2f}",
        f"Final SoC:         {res['final_soc_pct']:.1f}%",
        "",
        "hr |  price | power(MW) | SoC(MWh) | SoC(%)",
        "---|--------|-----------|----------|-------",
    ]
    for hour, row in df.iterrows():
        out.append(f"{hour:>2} | {row.price:>6.1f} | {row.power_mw:>9.2f} | "
                   f"{row.soc_mwh:>8.2f} | {row.soc_pct:>5.1f}")
    return "\n".join(out)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Pick a daily battery charge/discharge schedule and simulate it")
    p.add_argument("--config", type=str,
                   help="YAML file with battery/prices sections")
    p.add_argument("--source", choices=SOURCES,
                   help="Price source (default: mock, or prices.source from --config)")
    p.add_argument("--seed", type=int,
                   help="Seed for --source random")
    p.add_argument("--csv", type=str,
                   help="Price table for --source csv (hour and price columns)")
    p.add_argument("--date", type=dt.date.fromisoformat,
                   help="Day for --source agile, YYYY-MM-DD (default yesterday)")

    g = p.add_mutually_exclusive_group()
    g.add_argument("--region", type=str,
                   help="Agile region letter, e.g. C")
    g.add_argument("--postcode", type=str,
                   help="UK postcode, e.g. EC2A3AY")

    p.add_argument("--capacity", type=float, help="Battery capacity in MWh")
    p.add_argument("--power", type=float, help="Charge/discharge limit in MW")
    p.add_argument("--efficiency", type=float, help="Round-trip efficiency, (0,1]")
    p.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return p


def main(argv: Optional[Sequence[str]] = None) -> dict:
    p = build_parser()
    args = p.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        cfg = load_config(args.config) if args.config else {}
        price_cfg = cfg.get("prices") or {}
        cfg_seed = price_cfg.get("seed")
        battery = battery_from_config(cfg,
                                      capacity_mwh=args.capacity,
                                      power_mw=args.power,
                                      round_trip_eff=args.efficiency)
        prices = load_prices(args.source or price_cfg.get("source", "mock"),
                             seed=args.seed if args.seed is not None else cfg_seed,
                             csv=args.csv or price_cfg.get("csv"),
                             date=args.date,
                             region=args.region,
                             postcode=args.postcode)
        schedule, res = run_arbitrage(prices, battery)
    except (OSError, ValueError) as exc:
        p.error(str(exc))

    print(format_report(schedule, res, currency_of(prices)))
    return res


# ── CLI ───────────────────────────────────────────────────────────────
if __name__ == "__main__":
    main()
