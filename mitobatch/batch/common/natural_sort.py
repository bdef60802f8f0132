"""Version-style ("natural") ordering of strings, as `sort -V` would order file listings."""
import re

_DIGITS = re.compile(r'(\d+)')

Segment = tuple[int, int | str]


def natural_key(value: str) -> tuple[tuple[Segment, ...], str]:
    """Sort key comparing embedded numeric substrings by value rather than character by
    character. Values whose segments compare equal ("x01", "x1") are ordered by their raw text,
    so the ordering is total.
    """
    segments: list[Segment] = []
    for index, part in enumerate(_DIGITS.split(value)):
        if index % 2 == 1:
            segments.append((0, int(part)))
        elif part != '':
            segments.append((1, part))
    return (tuple(segments), value)


def natural_sorted(values):
    return sorted(values, key=natural_key)
