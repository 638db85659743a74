import pandas as pd
import pytest
import requests
from config import battery_from_config, load_config
from dispatch import BatteryCfg
from simulate import load_prices, main


def test_mock_run_report(capsys):
    res = main(["--source", "mock"])
    out = capsys.readouterr().out
    assert "Charging hours:    0, 1, 2, 3, 4" in out
    assert "Discharging hours: 16, 17, 18, 19" in out
    assert "Net revenue:       $290.00" in out
    assert res["net_revenue"] == pytest.approx(290.0)


def test_flat_csv_reports_no_schedule(tmp_path, capsys):
    f = tmp_path / "prices.csv"
    f.write_text("hour,price\n" + "\n".join(f"{h},50" for h in range(24)))
    res = main(["--source", "csv", "--csv", str(f)])
    out = capsys.readouterr().out
    assert "Charging hours:    N/A" in out
    assert res["net_revenue"] == 0


def test_config_file_and_overrides(tmp_path):
    f = tmp_path / "battery.yaml"
    f.write_text("battery:\n  capacity_mwh: 8\n  power_mw: 2\n"
                 "prices:\n  source: random\n  seed: 11\n")
    res = main(["--config", str(f), "--efficiency", "0.9"])
    df = res["df"]
    assert df.power_mw.abs().max() <= 2
    assert df.soc_mwh.max() <= 8


def test_bad_efficiency_is_usage_error(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--source", "mock", "--efficiency", "1.5"])
    assert exc.value.code == 2
    assert "efficiency" in capsys.readouterr().err


def test_csv_source_needs_path():
    with pytest.raises(SystemExit):
        main(["--source", "csv"])


def test_unknown_source_from_config(tmp_path):
    f = tmp_path / "c.yaml"
    f.write_text("prices:\n  source: carrier-pigeon\n")
    with pytest.raises(SystemExit):
        main(["--config", str(f)])


def test_agile_falls_back_to_mock(monkeypatch):
    def boom(*a, **k):
        raise requests.ConnectionError("offline")
    monkeypatch.setattr(requests, "get", boom)
    s = load_prices("agile", region="C")
    assert s.equals(load_prices("mock"))


def test_battery_from_config_defaults_and_overrides():
    assert battery_from_config({}) == BatteryCfg()
    cfg = {"battery": {"capacity_mwh": 10, "round_trip_eff": 0.85}}
    b = battery_from_config(cfg, power_mw=2.5, round_trip_eff=None)
    assert b == BatteryCfg(capacity_mwh=10.0, power_mw=2.5, round_trip_eff=0.85)


def test_load_config(tmp_path):
    f = tmp_path / "empty.yaml"
    f.write_text("")
    assert load_config(f) == {}
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")
    g = tmp_path / "list.yaml"
    g.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError):
        load_config(g)


def _agile_day(value):
    start = pd.Timestamp("2024-03-26", tz="UTC")
    return {"results": [
        {"valid_from": (start + pd.Timedelta(minutes=30 * i)).strftime("%Y-%m-%dT%H:%M:%SZ"),
         "value_inc_vat": value(i // 2)}
        for i in range(48)
    ]}


class Reply:
    def __init__(self, payload): self._p = payload
    def raise_for_status(self): pass
    def json(self): return self._p


def test_agile_report_in_pounds(monkeypatch, capsys):
    # 5p/kWh overnight, 30p/kWh in the evening
    payload = _agile_day(lambda h: 30.0 if 17 <= h <= 20 else 5.0)
    monkeypatch.setattr(requests, "get", lambda *a, **k: Reply(payload))
    res = main(["--source", "agile", "--region", "C", "--date", "2024-03-26"])
    out = capsys.readouterr().out
    assert "Net revenue:       £" in out
    assert "$" not in out
    assert res["net_revenue"] == pytest.approx(4 * 300.0 - 5 * 50.0)


def test_agile_malformed_falls_back_to_mock(monkeypatch, capsys):
    monkeypatch.setattr(requests, "get", lambda *a, **k: Reply({"detail": "Not found."}))
    res = main(["--source", "agile", "--region", "C", "--date", "2024-03-26"])
    assert "Net revenue:       $290.00" in capsys.readouterr().out
    assert res["net_revenue"] == pytest.approx(290.0)
