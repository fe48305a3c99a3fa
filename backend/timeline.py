import math

DEFAULT_CREDITS_PER_SEMESTER = 15


def estimate_timeline(
    overall: dict,
    credits_per_semester: int = DEFAULT_CREDITS_PER_SEMESTER,
) -> dict:
    """
    Rough graduation timeline estimate based on remaining program credits.

    Args:
        overall: the "overall" summary from progress.evaluate_progress()
            Uses "remaining_credits" and "in_progress_credits".
        credits_per_semester: assumed load per semester (default 15)

    Returns:
        {
          "remaining_credits": 84.0,
          "remaining_after_in_progress": 72.0,
          "estimated_semesters": 5,
          "disclaimer": "..."
        }
    """
    per_term = max(1, int(credits_per_semester or DEFAULT_CREDITS_PER_SEMESTER))
    remaining = float(overall.get("remaining_credits", 0) or 0)
    after_current = max(0.0, remaining - float(overall.get("in_progress_credits", 0) or 0))

    estimated = math.ceil(after_current / per_term) if after_current > 0 else 0

    return {
        "remaining_credits": remaining,
        "remaining_after_in_progress": after_current,
        "credits_per_semester": per_term,
        "estimated_semesters": estimated,
        "disclaimer": (
            f"Rough estimate. Assumes {per_term} credits per semester "
            "and all courses offered each term. Ignores actual offering schedules "
            "and prerequisites not yet satisfied."
        ),
    }
