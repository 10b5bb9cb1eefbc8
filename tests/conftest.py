"""Shared fixtures for pipeline tests."""

import sys
from pathlib import Path

import pandas as pd
import pytest

# Ensure repo root is on sys.path so imports like `import states` work
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


def _years(start: int, end: int, births: int) -> dict[int, int]:
    return {year: births for year in range(start, end + 1)}


def make_national(series: dict[tuple[str, str], dict[int, int]]) -> pd.DataFrame:
    """{(name, sex): {year: births}} → national table."""
    rows = [
        {"year": year, "sex": sex, "name": name, "births": births}
        for (name, sex), by_year in series.items()
        for year, births in by_year.items()
    ]
    return pd.DataFrame(rows, columns=["year", "sex", "name", "births"])


def make_state(series: dict[tuple[str, str, str], dict[int, int]]) -> pd.DataFrame:
    """{(name, sex, state): {year: births}} → state table."""
    rows = [
        {"year": year, "sex": sex, "state": state, "name": name, "births": births}
        for (name, sex, state), by_year in series.items()
        for year, births in by_year.items()
    ]
    return pd.DataFrame(rows, columns=["year", "sex", "state", "name", "births"])


KHALEESI_CA: dict[int, int] = {2011: 5, 2012: 95, 2013: 400, 2014: 800, 2015: 1200}
FOLLOWER_STATES: tuple[str, ...] = ("TX", "FL", "NY", "WA", "AZ")


@pytest.fixture
def national_records() -> pd.DataFrame:
    """One name per rule-chain outcome (cutoff 1990, baseline 1980-1989).

    Ancient only has a 1950 row, outside both windows.
    """
    return make_national({
        ("Michael", "M"): {**_years(1980, 1989, 10000), **_years(1990, 2000, 8000)},
        ("Gary", "M"): {**_years(1980, 1989, 2000), **_years(1990, 1995, 500)},
        ("Dwight", "M"): {**_years(1980, 1989, 600), **_years(1990, 1995, 500)},
        ("Aiden", "M"): {1985: 40, 1987: 36, **_years(1995, 2000, 5000)},
        ("Oldname", "M"): {1982: 20},
        ("Zelda", "F"): {**_years(1980, 1989, 600), **_years(1990, 1999, 2000)},
        ("Nevaeh", "F"): _years(2001, 2005, 1000),
        ("Khaleesi", "F"): dict(KHALEESI_CA),
        ("Hundred", "F"): {1995: 100},
        ("Rareone", "F"): {1995: 99},
        ("Ancient", "F"): {1950: 10000},
    })


@pytest.fixture
def state_records() -> pd.DataFrame:
    """Khaleesi starts in CA in 2011 and reaches five more states in 2012.

    Emma is background volume so every state has a realistic size.
    """
    series: dict[tuple[str, str, str], dict[int, int]] = {
        ("Emma", "F", "CA"): _years(2011, 2015, 500000),
        ("Khaleesi", "F", "CA"): dict(KHALEESI_CA),
    }
    for state in FOLLOWER_STATES:
        series[("Emma", "F", state)] = _years(2011, 2015, 100000)
        series[("Khaleesi", "F", state)] = {2012: 5, 2014: 10}
    return make_state(series)


@pytest.fixture
def tmp_pipeline(tmp_path: Path) -> dict[str, str]:
    """Return paths for a temporary pipeline layout."""
    dirs = {
        "cache": str(tmp_path / "data"),
        "output": str(tmp_path / "analysis_output"),
        "pipeline_state": str(tmp_path / ".pipeline_state"),
    }
    for d in dirs.values():
        Path(d).mkdir(parents=True, exist_ok=True)
    return dirs
