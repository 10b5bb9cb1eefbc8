"""Download SSA baby-name archives and keep a local cache of the parsed tables.

Standalone: python acquire.py [--cache-dir data] [--force-refresh] [--national-only]
Module:     from acquire import load_records, get_national_records, get_state_records
"""

from __future__ import annotations

import io
import json
import logging
import re
import shutil
import sys
import time
import zipfile
from dataclasses import dataclass
from datetime import date
from pathlib import Path

import pandas as pd
import requests
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants (adjust as needed)
# ---------------------------------------------------------------------------

NATIONAL_URL: str = "https://www.ssa.gov/oact/babynames/names.zip"
STATE_URL: str = "https://www.ssa.gov/oact/babynames/state/namesbystate.zip"
REQUEST_HEADERS: dict[str, str] = {"User-Agent": "Mozilla/5.0"}   # SSA rejects bare clients
REQUEST_TIMEOUT: int = 300

DEFAULT_CACHE_DIR: str = "data"
DEFAULT_MAX_AGE_DAYS: int = 30

NATIONAL_COLUMNS: list[str] = ["year", "sex", "name", "births"]
STATE_COLUMNS: list[str] = ["year", "sex", "state", "name", "births"]

_NATIONAL_FILE = re.compile(r"^yob(\d{4})\.txt$")
_STATE_FILE = re.compile(r"^[A-Z]{2}\.TXT$")

# "Nan" and "Null" are real names in the SSA files, so NA parsing stays off everywhere
_DTYPES = {"year": "int64", "sex": object, "state": object, "name": object, "births": "int64"}


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class CacheStatus(BaseModel):
    cache_dir: str
    national_exists: bool
    state_exists: bool
    metadata_exists: bool
    data_fresh: bool
    last_download: date | None = None


@dataclass(frozen=True)
class BabyNames:
    national: pd.DataFrame
    state: pd.DataFrame | None = None


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def _raw_dir(cache_dir: str) -> Path:
    return Path(cache_dir) / "raw"


def _national_path(cache_dir: str) -> Path:
    return _raw_dir(cache_dir) / "national_data.csv.gz"


def _state_path(cache_dir: str) -> Path:
    return _raw_dir(cache_dir) / "state_data.csv.gz"


def _metadata_path(cache_dir: str) -> Path:
    return _raw_dir(cache_dir) / "download_metadata.json"


def setup_cache_directory(cache_dir: str = DEFAULT_CACHE_DIR) -> Path:
    for sub in ("raw", "processed", "cache"):
        (Path(cache_dir) / sub).mkdir(parents=True, exist_ok=True)
    return Path(cache_dir)


# ---------------------------------------------------------------------------
# Download & parse
# ---------------------------------------------------------------------------


def _download(url: str) -> bytes:
    logger.info("acquire: downloading %s", url)
    response = requests.get(url, headers=REQUEST_HEADERS, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    logger.info("acquire: %s bytes received", f"{len(response.content):,}")
    return response.content


def parse_national_zip(content: bytes) -> pd.DataFrame:
    """names.zip → (year, sex, name, births); the year comes from each file name."""
    frames: list[pd.DataFrame] = []
    with zipfile.ZipFile(io.BytesIO(content)) as zf:
        for member in sorted(zf.namelist()):
            m = _NATIONAL_FILE.match(Path(member).name)
            if not m:
                continue
            with zf.open(member) as fh:
                frame = pd.read_csv(fh, names=["name", "sex", "births"], header=None, keep_default_na=False)
            frame["year"] = int(m.group(1))
            frames.append(frame)
    if not frames:
        logger.warning("acquire: no yobYYYY.txt files found in national archive")
        return _empty(NATIONAL_COLUMNS)
    return _typed(pd.concat(frames, ignore_index=True)[NATIONAL_COLUMNS])


def parse_state_zip(content: bytes) -> pd.DataFrame:
    """namesbystate.zip → (year, sex, state, name, births)."""
    frames: list[pd.DataFrame] = []
    with zipfile.ZipFile(io.BytesIO(content)) as zf:
        for member in sorted(zf.namelist()):
            if not _STATE_FILE.match(Path(member).name):
                continue
            with zf.open(member) as fh:
                frames.append(pd.read_csv(fh, names=["state", "sex", "year", "name", "births"], header=None, keep_default_na=False))
    if not frames:
        logger.warning("acquire: no XX.TXT files found in state archive")
        return _empty(STATE_COLUMNS)
    return _typed(pd.concat(frames, ignore_index=True)[STATE_COLUMNS])


def _empty(columns: list[str]) -> pd.DataFrame:
    return _typed(pd.DataFrame(columns=columns))


def _typed(frame: pd.DataFrame) -> pd.DataFrame:
    return frame.astype({c: _DTYPES[c] for c in frame.columns})


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


def check_cache_status(cache_dir: str = DEFAULT_CACHE_DIR, max_age_days: int = DEFAULT_MAX_AGE_DAYS) -> CacheStatus:
    """Existence of each cached file and whether the last download is recent enough."""
    metadata_path = _metadata_path(cache_dir)
    fresh = False
    last_download: date | None = None
    if metadata_path.exists():
        try:
            metadata = json.loads(metadata_path.read_text())
            last_download = date.fromisoformat(metadata["download_date"])
            fresh = (date.today() - last_download).days <= max_age_days
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("acquire: unreadable cache metadata (%s); treating cache as stale", e)

    return CacheStatus(
        cache_dir=str(cache_dir),
        national_exists=_national_path(cache_dir).exists(),
        state_exists=_state_path(cache_dir).exists(),
        metadata_exists=metadata_path.exists(),
        data_fresh=fresh,
        last_download=last_download,
    )


def _write_cache(cache_dir: str, names: BabyNames, download_seconds: float) -> None:
    setup_cache_directory(cache_dir)
    names.national.to_csv(_national_path(cache_dir), index=False, compression="gzip")
    if names.state is not None:
        names.state.to_csv(_state_path(cache_dir), index=False, compression="gzip")
    else:
        # An older state file would otherwise inherit the new download date
        _state_path(cache_dir).unlink(missing_ok=True)
    metadata = {
        "download_date": date.today().isoformat(),
        "download_seconds": round(download_seconds, 2),
        "national_rows": len(names.national),
        "state_rows": len(names.state) if names.state is not None else 0,
        "include_state": names.state is not None,
        "package_versions": {"pandas": pd.__version__, "requests": requests.__version__},
    }
    _metadata_path(cache_dir).write_text(json.dumps(metadata, indent=2))
    logger.info("acquire: cached data under %s", _raw_dir(cache_dir))


def _read_cached(path: Path, columns: list[str]) -> pd.DataFrame:
    frame = pd.read_csv(path, compression="gzip", keep_default_na=False)
    return _typed(frame[columns])


def clear_cache(cache_dir: str = DEFAULT_CACHE_DIR) -> None:
    for sub in ("raw", "processed", "cache"):
        target = Path(cache_dir) / sub
        if target.exists():
            shutil.rmtree(target)
    logger.info("acquire: cache cleared under %s", cache_dir)


# ---------------------------------------------------------------------------
# Public entry-points
# ---------------------------------------------------------------------------


def download_records(include_state: bool = True) -> BabyNames:
    national = parse_national_zip(_download(NATIONAL_URL))
    state = parse_state_zip(_download(STATE_URL)) if include_state else None
    return BabyNames(national=national, state=state)


def load_records(
    cache_dir: str = DEFAULT_CACHE_DIR,
    include_state: bool = True,
    force_refresh: bool = False,
    max_age_days: int = DEFAULT_MAX_AGE_DAYS,
    allow_download: bool = True,
) -> BabyNames:
    """Load from the cache, downloading first when forced, missing, or stale.

    Raises FileNotFoundError when a download is needed but not allowed.
    """
    status = check_cache_status(cache_dir, max_age_days)
    need_download = (
        force_refresh
        or not status.national_exists
        or (include_state and not status.state_exists)
        or not status.data_fresh
    )

    if need_download:
        if not allow_download:
            raise FileNotFoundError(f"No fresh cached SSA data under {cache_dir} and downloads are disabled")
        start = time.monotonic()
        names = download_records(include_state=include_state)
        _write_cache(cache_dir, names, time.monotonic() - start)
    else:
        logger.info("acquire: loading cached data (last downloaded %s)", status.last_download)
        national = _read_cached(_national_path(cache_dir), NATIONAL_COLUMNS)
        state = _read_cached(_state_path(cache_dir), STATE_COLUMNS) if include_state else None
        names = BabyNames(national=national, state=state)

    logger.info("acquire: national data %s rows", f"{len(names.national):,}")
    if names.state is not None:
        logger.info("acquire: state data %s rows", f"{len(names.state):,}")
    return names


def get_national_records(cache_dir: str = DEFAULT_CACHE_DIR, **kwargs) -> pd.DataFrame:
    return load_records(cache_dir=cache_dir, include_state=False, **kwargs).national


def get_state_records(cache_dir: str = DEFAULT_CACHE_DIR, **kwargs) -> pd.DataFrame:
    return load_records(cache_dir=cache_dir, include_state=True, **kwargs).state


# ---------------------------------------------------------------------------
# Standalone entry-point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    cache_dir = DEFAULT_CACHE_DIR
    if "--cache-dir" in sys.argv:
        idx = sys.argv.index("--cache-dir")
        if idx + 1 < len(sys.argv):
            cache_dir = sys.argv[idx + 1]
    names = load_records(
        cache_dir=cache_dir,
        include_state="--national-only" not in sys.argv,
        force_refresh="--force-refresh" in sys.argv,
    )
    status = check_cache_status(cache_dir)
    logger.info("acquire: done. cache status %s", status.model_dump())
