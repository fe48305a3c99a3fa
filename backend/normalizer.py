import re

# Matches: DEPT NNNN, DEPT-NNNN, DEPTNNN, CS 1331, MATH 1551, etc.
CANONICAL = re.compile(r'^([A-Za-z]{2,6})\s*[-]?\s*(\d{4}[A-Za-z]?)$')

SEM_RE = re.compile(r"^(Spring|Summer|Fall)\s+(\d{4})$", re.IGNORECASE)

# Within a year: Spring < Summer < Fall.
SEASON_ORDER = {"Spring": 1, "Summer": 2, "Fall": 3}


def normalize_code(raw: str) -> str | None:
    """
    Normalizes a course code to canonical 'DEPT NNNN' format.
    Handles: 'cs1331', 'CS-1331', 'CS 1331', 'MATH 1551'
    Returns None if the string cannot be parsed as a course code.
    """
    if not raw or not str(raw).strip():
        return None
    m = CANONICAL.match(str(raw).strip())
    if m:
        dept = m.group(1).upper()
        num = m.group(2)
        return f"{dept} {num}"
    return None


def course_subject(code: str) -> str:
    """'CS 1331' → 'CS'."""
    return str(code or "").strip().split(" ")[0].upper()


def course_level(code: str) -> int:
    """Numeric part of a course code: 'CS 1331' → 1331, unparseable → 0."""
    parts = str(code or "").strip().split(" ")
    if len(parts) < 2:
        return 0
    digits = re.match(r"\d+", parts[1])
    return int(digits.group(0)) if digits else 0


def normalize_input(raw_str: str, catalog_codes: set) -> dict:
    """
    Splits comma/newline/semicolon-separated input and normalizes each code.

    Returns:
      {
        "valid":          ["CS 1331", "MATH 1551"],   # normalized + found in catalog
        "invalid":        ["asdfasdf"],               # failed regex
        "not_in_catalog": ["CS 9999"]                 # valid format but unknown course
      }
    """
    if not raw_str or not raw_str.strip():
        return {"valid": [], "invalid": [], "not_in_catalog": []}

    tokens = re.split(r'[,\n;]+', raw_str)
    valid = []
    invalid = []
    not_in_catalog = []
    seen: set[str] = set()

    for token in tokens:
        token = token.strip()
        if not token:
            continue
        normalized = normalize_code(token)
        if normalized is None:
            if token not in seen:
                invalid.append(token)
                seen.add(token)
        elif normalized in seen:
            pass  # deduplicate silently
        elif normalized not in catalog_codes:
            not_in_catalog.append(normalized)
            seen.add(normalized)
        else:
            valid.append(normalized)
            seen.add(normalized)

    return {"valid": valid, "invalid": invalid, "not_in_catalog": not_in_catalog}


def parse_semester(value) -> tuple[str, int] | None:
    """
    Accepts 'Fall 2024', {'season': 'Fall', 'year': 2024} or ('Fall', 2024).
    Returns (season, year) with the season capitalized, or None.
    """
    if value is None:
        return None
    if isinstance(value, dict):
        season = str(value.get("season", "") or "").strip().capitalize()
        year = value.get("year")
        try:
            year = int(year)
        except (TypeError, ValueError):
            return None
        if season not in SEASON_ORDER:
            return None
        return season, year
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return parse_semester({"season": value[0], "year": value[1]})
    m = SEM_RE.match(str(value).strip())
    if not m:
        return None
    return m.group(1).capitalize(), int(m.group(2))


def semester_label(season: str, year: int) -> str:
    return f"{season} {year}"


def semester_sort_key(season: str, year: int) -> tuple[int, int]:
    """Year ascending, then Spring(1) < Summer(2) < Fall(3)."""
    return int(year), SEASON_ORDER.get(season, 0)
