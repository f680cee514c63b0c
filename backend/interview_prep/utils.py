import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """Lowercase, collapse every run of non-alphanumeric characters into one dash and trim dashes.

    >>> slugify("React Hooks & State!")
    'react-hooks-state'
    """
    return _NON_ALNUM.sub("-", value.lower()).strip("-")


def percentage(part: int, total: int) -> float:
    """part / total * 100 rounded to 2 decimals, 0 when total is 0."""
    if not total:
        return 0.0
    return round(part * 100 / total, 2)
