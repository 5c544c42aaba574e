"""Deck classification and the standard exam categories.

Decks are grouped under the three fields of the national IT exam syllabus;
anything outside the standard list lands in ``Other``.
"""

TECHNOLOGY = "Technology"
MANAGEMENT = "Management"
STRATEGY = "Strategy"
OTHER = "Other"

GROUP_ORDER = [TECHNOLOGY, MANAGEMENT, STRATEGY, OTHER]

STANDARD_CATEGORIES: dict[str, list[str]] = {
    TECHNOLOGY: [
        "Fundamental Theory",
        "Computer Systems",
        "Database",
        "Network",
        "Security",
        "System Development",
    ],
    MANAGEMENT: [
        "Project Management",
        "Service Management",
    ],
    STRATEGY: [
        "System Strategy",
        "Business Strategy",
        "Corporate Affairs and Law",
    ],
}


def standard_deck_names() -> list[str]:
    return [name for group in STANDARD_CATEGORIES.values() for name in group]


def classify_deck(name: str) -> str:
    """Return the group label for a deck name."""
    for group, names in STANDARD_CATEGORIES.items():
        if name in names:
            return group
    return OTHER


def group_decks(names: list[str]) -> dict[str, list[str]]:
    """Bucket deck names by group, sorted within each group; empty groups omitted."""
    grouped: dict[str, list[str]] = {group: [] for group in GROUP_ORDER}
    for name in names:
        grouped[classify_deck(name)].append(name)
    return {group: sorted(members) for group, members in grouped.items() if members}
