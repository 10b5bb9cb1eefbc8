"""Static reference data for the 50 U.S. states plus the District of Columbia.

The SSA state-level files cover all 51 jurisdictions, so DC is included here
and assigned to the South region, matching Census Bureau practice.
"""

from collections import Counter

# ---------------------------------------------------------------------------
# State reference data
# ---------------------------------------------------------------------------
# Fields:
#   name          – canonical full name (title case)
#   usps_code     – 2-letter USPS postal code (the code used in SSA state files)
#   census_region – Census Bureau region name
# ---------------------------------------------------------------------------

STATES: list[dict] = [
    {"name": "Alabama",              "usps_code": "AL", "census_region": "South"},
    {"name": "Alaska",               "usps_code": "AK", "census_region": "West"},
    {"name": "Arizona",              "usps_code": "AZ", "census_region": "West"},
    {"name": "Arkansas",             "usps_code": "AR", "census_region": "South"},
    {"name": "California",           "usps_code": "CA", "census_region": "West"},
    {"name": "Colorado",             "usps_code": "CO", "census_region": "West"},
    {"name": "Connecticut",          "usps_code": "CT", "census_region": "Northeast"},
    {"name": "Delaware",             "usps_code": "DE", "census_region": "South"},
    {"name": "District of Columbia", "usps_code": "DC", "census_region": "South"},
    {"name": "Florida",              "usps_code": "FL", "census_region": "South"},
    {"name": "Georgia",              "usps_code": "GA", "census_region": "South"},
    {"name": "Hawaii",               "usps_code": "HI", "census_region": "West"},
    {"name": "Idaho",                "usps_code": "ID", "census_region": "West"},
    {"name": "Illinois",             "usps_code": "IL", "census_region": "Midwest"},
    {"name": "Indiana",              "usps_code": "IN", "census_region": "Midwest"},
    {"name": "Iowa",                 "usps_code": "IA", "census_region": "Midwest"},
    {"name": "Kansas",               "usps_code": "KS", "census_region": "Midwest"},
    {"name": "Kentucky",             "usps_code": "KY", "census_region": "South"},
    {"name": "Louisiana",            "usps_code": "LA", "census_region": "South"},
    {"name": "Maine",                "usps_code": "ME", "census_region": "Northeast"},
    {"name": "Maryland",             "usps_code": "MD", "census_region": "South"},
    {"name": "Massachusetts",        "usps_code": "MA", "census_region": "Northeast"},
    {"name": "Michigan",             "usps_code": "MI", "census_region": "Midwest"},
    {"name": "Minnesota",            "usps_code": "MN", "census_region": "Midwest"},
    {"name": "Mississippi",          "usps_code": "MS", "census_region": "South"},
    {"name": "Missouri",             "usps_code": "MO", "census_region": "Midwest"},
    {"name": "Montana",              "usps_code": "MT", "census_region": "West"},
    {"name": "Nebraska",             "usps_code": "NE", "census_region": "Midwest"},
    {"name": "Nevada",               "usps_code": "NV", "census_region": "West"},
    {"name": "New Hampshire",        "usps_code": "NH", "census_region": "Northeast"},
    {"name": "New Jersey",           "usps_code": "NJ", "census_region": "Northeast"},
    {"name": "New Mexico",           "usps_code": "NM", "census_region": "West"},
    {"name": "New York",             "usps_code": "NY", "census_region": "Northeast"},
    {"name": "North Carolina",       "usps_code": "NC", "census_region": "South"},
    {"name": "North Dakota",         "usps_code": "ND", "census_region": "Midwest"},
    {"name": "Ohio",                 "usps_code": "OH", "census_region": "Midwest"},
    {"name": "Oklahoma",             "usps_code": "OK", "census_region": "South"},
    {"name": "Oregon",               "usps_code": "OR", "census_region": "West"},
    {"name": "Pennsylvania",         "usps_code": "PA", "census_region": "Northeast"},
    {"name": "Rhode Island",         "usps_code": "RI", "census_region": "Northeast"},
    {"name": "South Carolina",       "usps_code": "SC", "census_region": "South"},
    {"name": "South Dakota",         "usps_code": "SD", "census_region": "Midwest"},
    {"name": "Tennessee",            "usps_code": "TN", "census_region": "South"},
    {"name": "Texas",                "usps_code": "TX", "census_region": "South"},
    {"name": "Utah",                 "usps_code": "UT", "census_region": "West"},
    {"name": "Vermont",              "usps_code": "VT", "census_region": "Northeast"},
    {"name": "Virginia",             "usps_code": "VA", "census_region": "South"},
    {"name": "Washington",           "usps_code": "WA", "census_region": "West"},
    {"name": "West Virginia",        "usps_code": "WV", "census_region": "South"},
    {"name": "Wisconsin",            "usps_code": "WI", "census_region": "Midwest"},
    {"name": "Wyoming",              "usps_code": "WY", "census_region": "West"},
]

# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------

_BY_CODE: dict[str, dict] = {s["usps_code"]: s for s in STATES}

STATE_CODES: frozenset[str] = frozenset(_BY_CODE)


def get_state_by_code(code: str) -> dict | None:
    """Look up a state by 2-letter USPS code (case-insensitive)."""
    return _BY_CODE.get(code.strip().upper())


def region_for(code: str) -> str | None:
    """Census region for a state code, or None for codes outside the table."""
    ref = get_state_by_code(code)
    return ref["census_region"] if ref else None


def state_name(code: str) -> str:
    """Full state name for display; unknown codes are returned unchanged."""
    ref = get_state_by_code(code)
    return ref["name"] if ref else code


# Computed once at import time
REGION_STATE_COUNTS: dict[str, int] = dict(Counter(s["census_region"] for s in STATES))
