import json
import sys
from pathlib import Path

import pytest
from rich.console import Console

from portfolio_engine import cli
from portfolio_engine.errors import PortfolioEngineError
from portfolio_engine.models.holding import Holding

HOLDINGS = [
    {"id": "a", "name": "Alpha", "current_value": 8000, "target_allocation": 50},
    {"id": "b", "name": "Bravo", "current_value": 2000, "target_allocation": 50},
]


@pytest.fixture
def console(monkeypatch):
    c = Console(record=True, width=160)
    monkeypatch.setattr(cli, "console", c)
    return c


def _write(tmp_path: Path, data) -> Path:
    path = tmp_path / "holdings.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def _run(monkeypatch, *argv: str) -> None:
    monkeypatch.setattr(sys, "argv", ["portfolio-engine", *argv])
    cli.main()


class TestLoadRecords:
    def test_list(self, tmp_path):
        records = cli.load_records(_write(tmp_path, HOLDINGS), Holding)
        assert [h.id for h in records] == ["a", "b"]

    def test_wrapped(self, tmp_path):
        records = cli.load_records(_write(tmp_path, {"holdings": HOLDINGS}), Holding)
        assert len(records) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(PortfolioEngineError):
            cli.load_records(tmp_path / "nope.json", Holding)


class TestMain:
    def test_allocate(self, tmp_path, monkeypatch, console):
        _run(monkeypatch, "allocate", str(_write(tmp_path, HOLDINGS)), "4000")
        text = console.export_text()
        assert "Investment Allocation" in text
        assert "₪4,000.00" in text

    def test_forecast(self, tmp_path, monkeypatch, console):
        _run(monkeypatch, "forecast", str(_write(tmp_path, HOLDINGS)), "1000")
        assert "Targets reached after 6" in console.export_text()

    def test_invalid_targets(self, tmp_path, monkeypatch, console):
        data = [dict(h, target_allocation=60) for h in HOLDINGS]
        with pytest.raises(SystemExit) as exc:
            _run(monkeypatch, "allocate", str(_write(tmp_path, data)), "100")
        assert exc.value.code == 1
        assert "120.0%" in console.export_text()

    def test_normalize_flag(self, tmp_path, monkeypatch, console):
        data = [dict(h, target_allocation=60) for h in HOLDINGS]
        _run(
            monkeypatch,
            "--normalize-targets",
            "allocate",
            str(_write(tmp_path, data)),
            "4000",
        )
        assert "Investment Allocation" in console.export_text()

    def test_bad_record(self, tmp_path, monkeypatch, console):
        data = [{"id": "a", "current_value": -1, "target_allocation": 100}]
        with pytest.raises(SystemExit):
            _run(monkeypatch, "allocate", str(_write(tmp_path, data)), "100")
        text = console.export_text()
        assert "Error" in text
        assert "greater_than_equal" in text

    def test_no_command(self, monkeypatch, capsys):
        with pytest.raises(SystemExit):
            _run(monkeypatch)
        assert "portfolio-engine" in capsys.readouterr().out
