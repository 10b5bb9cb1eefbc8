"""Interactive querying over one loaded dataset.

Module: from explorer import ExplorerSession

    session = ExplorerSession.from_records(names.national, names.state)
    session.explore("Khaleesi")
    session.origin("Khaleesi", "F")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import pandas as pd

from classify import (
    ClassificationConfig,
    ClassifiedName,
    RuleCheck,
    classify_all,
    get_classification,
    is_eligible,
    normalize_name,
    verify_classification,
)
from origins import (
    LOOKUP_MIN_STATES,
    LOOKUP_MIN_TOTAL_BIRTHS,
    OriginResult,
    compute_state_sizes,
    find_origin_for,
    state_adoption_timeline,
)

logger = logging.getLogger(__name__)

MAX_COMPARE_ROWS: int = 8

COMPARE_COLUMNS: list[str] = [
    "name", "sex", "classification", "classification_confidence",
    "baseline_total_births", "modern_total_births", "growth_ratio", "modern_peak_year",
]


@dataclass
class ExplorerSession:
    """Caller-owned context: the tables, their classification, and cached state sizes."""
    national: pd.DataFrame
    classified: pd.DataFrame
    state: pd.DataFrame | None = None
    config: ClassificationConfig = field(default_factory=ClassificationConfig)
    min_total_births: int = LOOKUP_MIN_TOTAL_BIRTHS
    min_states: int = LOOKUP_MIN_STATES
    _state_sizes: pd.DataFrame | None = field(default=None, init=False, repr=False)

    @classmethod
    def from_records(
        cls,
        national: pd.DataFrame,
        state: pd.DataFrame | None = None,
        config: ClassificationConfig | None = None,
    ) -> ExplorerSession:
        config = config or ClassificationConfig()
        classified = classify_all(national, cutoff_year=config.cutoff_year, config=config)
        return cls(national=national, classified=classified, state=state, config=config)

    def _require_state(self) -> pd.DataFrame:
        if self.state is None:
            raise ValueError("No state records loaded in this session")
        return self.state

    @property
    def state_sizes(self) -> pd.DataFrame:
        if self._state_sizes is None:
            self._state_sizes = compute_state_sizes(self._require_state())
        return self._state_sizes

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def explore(self, name: str, sex: str | None = None) -> list[ClassifiedName]:
        """Classification rows for a name; both sexes when ``sex`` is omitted."""
        sexes = [sex.upper()] if sex else ["F", "M"]
        rows = [get_classification(self.classified, name, s) for s in sexes]
        found = [r for r in rows if r is not None]
        if not found:
            logger.info("explorer: %s not found in the national data", normalize_name(name))
        return found

    def compare(self, names: list[str], sex: str) -> pd.DataFrame:
        if len(names) > MAX_COMPARE_ROWS:
            logger.warning(
                "explorer: comparing the first %d of %d names", MAX_COMPARE_ROWS, len(names),
            )
        wanted = [normalize_name(n) for n in names[:MAX_COMPARE_ROWS]]
        rows = self.classified[
            self.classified["name"].isin(wanted) & (self.classified["sex"] == sex.upper())
        ]
        order = {n: i for i, n in enumerate(wanted)}
        rows = rows.sort_values("name", key=lambda s: s.map(order))
        return rows[COMPARE_COLUMNS].reset_index(drop=True)

    def verify(self, name: str, sex: str) -> list[RuleCheck]:
        row = get_classification(self.classified, name, sex)
        if row is None:
            logger.info("explorer: %s (%s) not found", normalize_name(name), sex.upper())
            return []
        return verify_classification(row, self.config)

    def origin(self, name: str, sex: str) -> OriginResult | None:
        """Origin for a name with no historical precedent; None otherwise."""
        row = get_classification(self.classified, name, sex)
        if row is None or not is_eligible(row.classification):
            logger.info(
                "explorer: %s (%s) is %s; origin analysis covers names without historical precedent",
                normalize_name(name), sex.upper(), row.classification.value if row else "not found",
            )
            return None
        return find_origin_for(
            name, sex, self._require_state(),
            classified=self.classified,
            min_total_births=self.min_total_births,
            min_states=self.min_states,
            state_sizes=self.state_sizes,
        )

    def timeline(self, name: str, sex: str) -> pd.DataFrame:
        return state_adoption_timeline(self._require_state(), name, sex)
