"""
Heuristic tables used by the recommendation engine.

The defaults below are used when the data directory carries no override
tables. data_loader.load_data() builds the same shape from
major_subjects.csv / thread_rules.csv / course_sequences.csv and the result
is passed into recommender.recommend() as `tables`.
"""

import copy

# Points per bonus. Bonuses are additive and independent of each other.
SCORE_WEIGHTS = {
    "prerequisite_ready": 50,
    "major_subject": 40,
    "thread_match": 30,
    "sequence": 25,
    "foundation": 20,
    "core_type": 15,
    "required_type": 10,
    "credit_load": 5,
}

# score >= threshold → bucket, checked top-down.
PRIORITY_THRESHOLDS = [
    ("high", 70),
    ("medium", 40),
]

# Category tag = first bonus in this list that fired.
CATEGORY_PRECEDENCE = [
    ("prerequisite_ready", "prerequisite-ready"),
    ("major_subject", "major-requirement"),
    ("thread_match", "thread-related"),
    ("foundation", "foundation"),
]
DEFAULT_CATEGORY = "elective"

FOUNDATION_LEVELS = (1000, 3000)    # [min, max)
PREFERRED_CREDITS = (3, 4)          # inclusive

MAJOR_SUBJECTS = {
    "Computer Science": ["CS", "MATH"],
    "Electrical Engineering": ["ECE", "EE", "MATH", "PHYS"],
    "Mechanical Engineering": ["ME", "MATH", "PHYS"],
    "Aerospace Engineering": ["AE", "MATH", "PHYS"],
    "Industrial Engineering": ["ISYE", "MATH"],
    "Civil Engineering": ["CE", "MATH", "PHYS"],
    "Chemical Engineering": ["CHBE", "CHEM", "MATH"],
    "Biomedical Engineering": ["BMED", "BIOL", "MATH"],
    "Business Administration": ["MGT", "ACCT", "ECON", "MATH"],
    "Psychology": ["PSYC", "MATH", "BIOL"],
    "Biology": ["BIOL", "CHEM", "MATH"],
    "Chemistry": ["CHEM", "MATH", "PHYS"],
    "Physics": ["PHYS", "MATH"],
    "Mathematics": ["MATH", "CS"],
}

# A rule fires when any thread_keyword is a substring of a declared thread
# name and the course passes the subject / level / title filters.
THREAD_RULES = [
    {
        "rule_id": "intelligence",
        "thread_keywords": ["intelligence", "ai"],
        "subjects": ["CS"],
        "min_level": 3600,
        "max_level": 4999,
        "title_keywords": ["intelligence", "machine", "learning", "vision", "robotics"],
    },
    {
        "rule_id": "systems",
        "thread_keywords": ["systems"],
        "subjects": ["CS"],
        "min_level": None,
        "max_level": None,
        "title_keywords": ["systems", "operating", "network", "distributed"],
    },
    {
        "rule_id": "theory",
        "thread_keywords": ["theory"],
        "subjects": ["CS"],
        "min_level": None,
        "max_level": None,
        "title_keywords": ["algorithm", "complexity", "theory", "discrete"],
    },
]

# course → courses that must all be completed for the sequence bonus.
COURSE_SEQUENCES = {
    "CS 1332": ["CS 1331"],
    "CS 2110": ["CS 1331"],
    "CS 3510": ["CS 1332"],
    "CS 3251": ["CS 2110"],
    "CS 4400": ["CS 1332"],
    "MATH 1552": ["MATH 1551"],
    "MATH 2551": ["MATH 1552"],
    "PHYS 2212": ["PHYS 2211"],
}


def default_tables() -> dict:
    """Fresh copy of the built-in tables, safe for the caller to modify."""
    return {
        "weights": dict(SCORE_WEIGHTS),
        "major_subjects": copy.deepcopy(MAJOR_SUBJECTS),
        "thread_rules": copy.deepcopy(THREAD_RULES),
        "course_sequences": copy.deepcopy(COURSE_SEQUENCES),
    }


def thread_rule_matches(rule: dict, thread_name: str) -> bool:
    name = str(thread_name or "").lower()
    return any(k in name for k in rule.get("thread_keywords", []))
