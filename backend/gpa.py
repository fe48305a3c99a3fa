from decimal import Decimal, ROUND_HALF_UP

from normalizer import parse_semester, semester_label, semester_sort_key
from validators import COMPLETED, is_credit_count, normalize_record

# Grade → grade points. Only these grades enter GPA credit totals.
GRADE_POINTS = {
    "A+": Decimal("4.0"), "A": Decimal("4.0"), "A-": Decimal("3.7"),
    "B+": Decimal("3.3"), "B": Decimal("3.0"), "B-": Decimal("2.7"),
    "C+": Decimal("2.3"), "C": Decimal("2.0"), "C-": Decimal("1.7"),
    "D+": Decimal("1.3"), "D": Decimal("1.0"), "D-": Decimal("0.7"),
    "F": Decimal("0.0"), "WF": Decimal("0.0"),
}

# Non-letter statuses: no quality points and no attempted credits.
EXCLUDED_GRADES = {"W", "I", "IP"}

MAX_GPA = Decimal("4.0")
STABLE_THRESHOLD = Decimal("0.1")
TREND_WINDOW = 3
DEFAULT_CREDITS_PER_SEMESTER = 15

_CENT = Decimal("0.01")


def round_half_up(value, places: Decimal = _CENT) -> float:
    return float(Decimal(str(value)).quantize(places, rounding=ROUND_HALF_UP))


def grade_points(grade) -> Decimal | None:
    """Grade points for a letter grade, or None when the grade does not count."""
    key = str(grade or "").strip().upper()
    if key in EXCLUDED_GRADES:
        return None
    return GRADE_POINTS.get(key)


def graded_records(records: list[dict]) -> list[dict]:
    """Completed records whose grade counts toward GPA."""
    out = []
    for raw in records or []:
        rec = normalize_record(raw)
        if rec["status"] != COMPLETED:
            continue
        if grade_points(rec["grade"]) is None:
            continue
        if not is_credit_count(rec["credits"]):
            continue
        out.append(rec)
    return out


def _totals(records: list[dict]) -> tuple[int, Decimal]:
    credits = 0
    quality = Decimal("0")
    for rec in records:
        c = int(rec["credits"])
        credits += c
        quality += grade_points(rec["grade"]) * c
    return credits, quality


def _ratio(quality: Decimal, credits: int) -> Decimal:
    if credits <= 0:
        return Decimal("0")
    return (quality / Decimal(credits)).quantize(_CENT, rounding=ROUND_HALF_UP)


def compute_cumulative_gpa(records: list[dict]) -> dict:
    """
    Cumulative GPA over every completed, graded record.

    F counts its credits; W/I/IP are skipped entirely. Order-independent.
    """
    credits, quality = _totals(graded_records(records))
    return {
        "gpa": float(_ratio(quality, credits)),
        "total_credits": credits,
        "quality_points": float(quality),
    }


def compute_semester_gpas(records: list[dict]) -> list[dict]:
    """
    Per-semester GPA rows ordered by year, then Spring < Summer < Fall.

    Records whose semester cannot be parsed are left out of the per-semester
    view (they still count toward the cumulative GPA).
    """
    groups: dict[tuple[str, int], list[dict]] = {}
    for rec in graded_records(records):
        sem = parse_semester(rec.get("semester"))
        if sem is None:
            continue
        groups.setdefault(sem, []).append(rec)

    rows = []
    for (season, year), recs in groups.items():
        credits, quality = _totals(recs)
        rows.append({
            "semester": semester_label(season, year),
            "season": season,
            "year": year,
            "gpa": float(_ratio(quality, credits)),
            "credits": credits,
            "quality_points": float(quality),
            "courses": [
                {
                    "course_code": rec.get("code"),
                    "grade": str(rec.get("grade")).strip().upper(),
                    "credits": int(rec["credits"]),
                    "quality_points": float(grade_points(rec["grade"]) * int(rec["credits"])),
                }
                for rec in recs
            ],
        })
    rows.sort(key=lambda r: semester_sort_key(r["season"], r["year"]))
    return rows


def analyze_trend(semester_gpas: list[dict]) -> dict:
    """
    Trend over semester GPA rows (already ordered oldest → newest).

    direction is "stable" when the last change is within ±0.1.
    projected_next = last GPA + average slope over up to the last 3
    semesters, clamped to [0.0, 4.0].
    """
    if not semester_gpas:
        return {"direction": "stable", "change_from_last": 0.0, "average": 0.0, "projected_next": 0.0}

    gpas = [Decimal(str(row["gpa"])) for row in semester_gpas]
    average = sum(gpas) / len(gpas)
    if len(gpas) == 1:
        return {
            "direction": "stable",
            "change_from_last": 0.0,
            "average": round_half_up(average),
            "projected_next": round_half_up(gpas[0]),
        }

    change = gpas[-1] - gpas[-2]
    direction = "stable"
    if abs(change) > STABLE_THRESHOLD:
        direction = "improving" if change > 0 else "declining"

    recent = gpas[-TREND_WINDOW:]
    slope = (recent[-1] - recent[0]) / (len(recent) - 1)
    projected = min(MAX_GPA, max(Decimal("0"), gpas[-1] + slope))

    return {
        "direction": direction,
        "change_from_last": round_half_up(change),
        "average": round_half_up(average),
        "projected_next": round_half_up(projected),
    }


def required_gpa_for_goal(
    records: list[dict],
    target_gpa: float,
    remaining_semesters: int,
    credits_per_semester: int = DEFAULT_CREDITS_PER_SEMESTER,
) -> dict:
    """
    GPA needed over the remaining semesters to finish at target_gpa.

    Solves target × (current + future) = current_qp + required × future.
    """
    target = Decimal(str(target_gpa))
    current_credits, current_quality = _totals(graded_records(records))
    future_credits = max(0, int(remaining_semesters)) * max(0, int(credits_per_semester))

    if current_credits == 0:
        achievable = Decimal("0") <= target <= MAX_GPA
        return {
            "required_future_gpa": round_half_up(min(MAX_GPA, max(Decimal("0"), target))),
            "is_achievable": achievable,
            "explanation": (
                f"You need to maintain a {target:.2f} GPA to achieve your target."
                if achievable
                else f"A {target:.2f} GPA is outside the 0.00-4.00 scale."
            ),
        }

    current_gpa = _ratio(current_quality, current_credits)
    if future_credits == 0:
        achievable = current_gpa >= target
        return {
            "required_future_gpa": 0.0,
            "is_achievable": achievable,
            "explanation": (
                f"No semesters remain. Your current GPA of {current_gpa:.2f} "
                + ("meets" if achievable else "does not meet")
                + f" the {target:.2f} target."
            ),
        }

    required = (target * (current_credits + future_credits) - current_quality) / future_credits
    if required < 0:
        explanation = (
            f"Your target GPA of {target:.2f} is not achievable as a future goal. "
            f"Your current GPA of {current_gpa:.2f} already exceeds this target."
        )
    elif required > MAX_GPA:
        explanation = (
            f"Your target GPA of {target:.2f} is not achievable. "
            f"You would need a {required:.2f} GPA in the remaining semesters."
        )
    else:
        explanation = (
            f"To achieve your target GPA of {target:.2f}, you need to maintain a "
            f"{required:.2f} GPA over the next {remaining_semesters} semesters."
        )

    return {
        "required_future_gpa": round_half_up(min(MAX_GPA, max(Decimal("0"), required))),
        "is_achievable": Decimal("0") <= required <= MAX_GPA,
        "explanation": explanation,
    }


def compute_gpa(records: list[dict]) -> dict:
    """GPA entrypoint: cumulative figures, semester rows and trend."""
    cumulative = compute_cumulative_gpa(records)
    semester_gpas = compute_semester_gpas(records)
    return {
        "current_gpa": cumulative["gpa"],
        "cumulative_gpa": cumulative["gpa"],
        "total_credits": cumulative["total_credits"],
        "quality_points": cumulative["quality_points"],
        "semester_gpas": semester_gpas,
        "trend": analyze_trend(semester_gpas),
    }
