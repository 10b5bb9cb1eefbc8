"""Tests for explorer.py – session queries over one loaded dataset."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from classify import Classification  # noqa: E402
from explorer import MAX_COMPARE_ROWS, ExplorerSession  # noqa: E402


@pytest.fixture
def session(national_records, state_records) -> ExplorerSession:
    return ExplorerSession.from_records(national_records, state_records)


class TestExplore:
    def test_single_sex(self, session):
        rows = session.explore("gary", "m")
        assert len(rows) == 1
        assert rows[0].classification == Classification.ESTABLISHED

    def test_both_sexes_when_unspecified(self, session):
        rows = session.explore("Khaleesi")
        assert [r.sex for r in rows] == ["F"]

    def test_unknown_name(self, session):
        assert session.explore("Zzyzx") == []


class TestCompare:
    def test_keeps_requested_order(self, session):
        table = session.compare(["Michael", "aiden", "Gary"], "M")
        assert table["name"].tolist() == ["Michael", "Aiden", "Gary"]

    def test_row_limit(self, session):
        names = ["Michael", "Gary", "Dwight", "Aiden", "Oldname"] * 2
        table = session.compare(names, "M")
        assert len(table) <= MAX_COMPARE_ROWS


class TestVerifyAndOrigin:
    def test_verify(self, session):
        checks = session.verify("Zelda", "F")
        assert [c.rule for c in checks if c.passed] == ["ESTABLISHED", "RISING"]

    def test_verify_unknown(self, session):
        assert session.verify("Zzyzx", "F") == []

    def test_origin_for_new_name(self, session):
        result = session.origin("Khaleesi", "F")
        assert result is not None
        assert result.origin_state == "CA"
        assert result.classification == Classification.TRULY_NEW

    def test_origin_for_established_name(self, session):
        assert session.origin("Gary", "M") is None

    def test_state_sizes_cached(self, session):
        assert session.state_sizes is session.state_sizes

    def test_timeline(self, session):
        assert session.timeline("Khaleesi", "F")["state"].iloc[0] == "CA"

    def test_no_state_records(self, national_records):
        national_only = ExplorerSession.from_records(national_records)
        with pytest.raises(ValueError):
            national_only.origin("Khaleesi", "F")
        with pytest.raises(ValueError):
            national_only.timeline("Khaleesi", "F")
