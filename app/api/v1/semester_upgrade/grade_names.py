"""
Grade name arithmetic for year upgrades.

Grade names are display labels ("一年级", "3年级", "Grade 3"), so promotion parses the
numeral out of the name, bumps it and writes it back in place. Two numeral systems are
recognised, each as its own match type:

* IdeographicMatch: 一..九, or the formal 壹..玖. Nine is the ceiling; a ninth grade keeps its name.
  The successor is always written with the standard numeral (壹年级 -> 二年级).
* ArabicMatch: the first run of ASCII digits, any size.

A name holding both kinds is treated as ideographic.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional, Union

_STANDARD_NUMERALS = "一二三四五六七八九"
_FORMAL_NUMERALS = "壹贰叁肆伍陆柒捌玖"
_IDEOGRAPHIC_VALUES = {
    **{ch: i + 1 for i, ch in enumerate(_STANDARD_NUMERALS)},
    **{ch: i + 1 for i, ch in enumerate(_FORMAL_NUMERALS)},
}
MAX_IDEOGRAPHIC_LEVEL = 9

_ARABIC_RUN = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class IdeographicMatch:
    index: int
    numeral: str
    value: int


@dataclass(frozen=True)
class ArabicMatch:
    start: int
    end: int
    value: int


@dataclass(frozen=True)
class NoMatch:
    pass


GradeNumeral = Union[IdeographicMatch, ArabicMatch, NoMatch]

TerminalGradePredicate = Callable[[str], bool]


def match_grade_numeral(name: str) -> GradeNumeral:
    for index, ch in enumerate(name):
        value = _IDEOGRAPHIC_VALUES.get(ch)
        if value is not None:
            return IdeographicMatch(index=index, numeral=ch, value=value)
    m = _ARABIC_RUN.search(name)
    if m:
        return ArabicMatch(start=m.start(), end=m.end(), value=int(m.group()))
    return NoMatch()


def grade_level(name: str) -> Optional[int]:
    """Numeric level encoded in a grade name, or None when the name carries no numeral."""
    match = match_grade_numeral(name)
    if isinstance(match, NoMatch):
        return None
    return match.value


def increment_grade_name(name: str) -> str:
    """Name of the grade one promotion step above `name`.

    >>> increment_grade_name("三年级")
    '四年级'
    >>> increment_grade_name("Grade 3")
    'Grade 4'
    >>> increment_grade_name("九年级")
    '九年级'
    """
    match = match_grade_numeral(name)
    if isinstance(match, IdeographicMatch):
        new_value = match.value + 1
        if new_value > MAX_IDEOGRAPHIC_LEVEL:
            return name
        return name[: match.index] + _STANDARD_NUMERALS[new_value - 1] + name[match.index + 1 :]
    if isinstance(match, ArabicMatch):
        return name[: match.start] + str(match.value + 1) + name[match.end :]
    return name


def terminal_grade_predicate(level: int) -> TerminalGradePredicate:
    """Predicate matching grade names whose level is exactly `level` ("六年级", "Grade 6", not "Grade 16")."""

    def _is_terminal(name: str) -> bool:
        return grade_level(name) == level

    return _is_terminal
