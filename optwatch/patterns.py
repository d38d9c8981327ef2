"""Pattern tree that usage descriptions are compiled into and argv is matched against."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional as _Opt

MatchResult = tuple[bool, list["Pattern"], list["Pattern"]]


def _tagged(value: Any) -> tuple[type, Any]:
    # Values compare by type as well, so that False, 0 and "0" stay distinct.
    return type(value), value


class Pattern(ABC):
    """Common behaviour of every node in a usage pattern."""

    name: str = ""
    value: Any = None

    @abstractmethod
    def flat(self, *types: type) -> list["Pattern"]:
        """Return the nodes of the given types, or every leaf when none are given."""

    @abstractmethod
    def match(self, left: list["Pattern"], collected: _Opt[list["Pattern"]] = None) -> MatchResult:
        """Match against ``left``; return (matched, remaining, collected)."""

    @abstractmethod
    def _key(self) -> tuple:
        """Fields that decide structural equality."""

    def fix(self) -> "Pattern":
        """Share equal leaves and prepare repeated ones to accumulate values."""
        self.fix_identities(None)
        self.fix_repeating_arguments()
        return self

    def fix_identities(self, uniq: _Opt[list["Pattern"]] = None) -> None:
        """Leaves hold no children, so there is nothing to share."""

    def fix_repeating_arguments(self) -> "Pattern":
        """Turn leaves that occur more than once into counters or lists."""
        cases = [list(child.children) for child in transform(self).children]
        for case in cases:
            repeated = [element for element in case if case.count(element) > 1]
            for element in repeated:
                kind = type(element)
                if kind is Argument or (kind is Option and element.argcount > 0):
                    if isinstance(element.value, str):
                        element.value = element.value.split()
                    elif not isinstance(element.value, list):
                        element.value = []
                if kind is Command or (kind is Option and element.argcount == 0):
                    element.value = 0
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Pattern):
            return NotImplemented
        return type(self) is type(other) and self._key() == other._key()

    __hash__ = None  # type: ignore[assignment]


class LeafPattern(Pattern):
    """A pattern without children: an argument, a command or an option."""

    def __init__(self, name: str, value: Any = None) -> None:
        self.name = name
        self.value = value

    def flat(self, *types: type) -> list[Pattern]:
        return [self] if not types or type(self) in types else []

    @abstractmethod
    def single_match(self, left: list[Pattern]) -> tuple[_Opt[int], _Opt[Pattern]]:
        """Return the position and matched node in ``left``, or (None, None)."""

    def match(self, left: list[Pattern], collected: _Opt[list[Pattern]] = None) -> MatchResult:
        if collected is None:
            collected = []
        pos, matched = self.single_match(left)
        if matched is None or pos is None:
            return False, left, collected
        remaining = left[:pos] + left[pos + 1:]
        same_name = [item for item in collected if item.name == self.name]
        if type(self.value) is int or isinstance(self.value, list):
            if type(self.value) is int:
                increment: Any = 1
            elif isinstance(matched.value, str):
                increment = [matched.value]
            else:
                increment = matched.value
            if not same_name:
                matched.value = increment
                return True, remaining, collected + [matched]
            first = same_name[0]
            if type(first.value) is int:
                first.value = first.value + increment
            elif isinstance(first.value, list):
                first.value = first.value + list(increment)
            return True, remaining, collected
        return True, remaining, collected + [matched]

    def _key(self) -> tuple:
        return self.name, _tagged(self.value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.value!r})"


class Argument(LeafPattern):
    """A positional argument such as ``<file>`` or ``FILE``."""

    def __init__(self, name: str, value: Any = None) -> None:
        super().__init__(name, value)

    def single_match(self, left: list[Pattern]) -> tuple[_Opt[int], _Opt[Pattern]]:
        for pos, item in enumerate(left):
            if isinstance(item, Argument):
                return pos, Argument(self.name, item.value)
        return None, None


class Command(LeafPattern):
    """A literal word that must appear in argv."""

    def __init__(self, name: str, value: Any = False) -> None:
        super().__init__(name, value)

    def single_match(self, left: list[Pattern]) -> tuple[_Opt[int], _Opt[Pattern]]:
        for pos, item in enumerate(left):
            if isinstance(item, Argument):
                if item.value == self.name:
                    return pos, Command(self.name, True)
                break
        return None, None


class Option(LeafPattern):
    """A short and/or long option, possibly taking an argument."""

    def __init__(self, short: str = "", long: str = "", argcount: int = 0, value: Any = False) -> None:
        if value is False and argcount > 0:
            value = None
        super().__init__(long or short, value)
        self.short = short
        self.long = long
        self.argcount = argcount

    def single_match(self, left: list[Pattern]) -> tuple[_Opt[int], _Opt[Pattern]]:
        for pos, item in enumerate(left):
            if item.name == self.name:
                return pos, item
        return None, None

    def _key(self) -> tuple:
        return self.short, self.long, self.argcount, self.name, _tagged(self.value)

    def __repr__(self) -> str:
        return f"Option({self.short!r}, {self.long!r}, {self.argcount!r}, {self.value!r})"


class BranchPattern(Pattern):
    """A pattern that groups other patterns."""

    def __init__(self, *children: Pattern) -> None:
        self.children: list[Pattern] = list(children)

    def flat(self, *types: type) -> list[Pattern]:
        if type(self) in types:
            return [self]
        return [node for child in self.children for node in child.flat(*types)]

    def fix_identities(self, uniq: _Opt[list[Pattern]] = None) -> None:
        """Make equal leaves in the tree the very same object."""
        if uniq is None:
            uniq = unique(self.flat())
        for pos, child in enumerate(self.children):
            if isinstance(child, BranchPattern):
                child.fix_identities(uniq)
            else:
                self.children[pos] = uniq[uniq.index(child)]

    def _key(self) -> tuple:
        return (self.children,)

    def __repr__(self) -> str:
        inner = ", ".join(repr(child) for child in self.children)
        return f"{type(self).__name__}({inner})"


def _match_each(children: list[Pattern], left: list[Pattern], collected: list[Pattern]) -> MatchResult:
    for child in children:
        _, left, collected = child.match(left, collected)
    return True, left, collected


class Required(BranchPattern):
    """All children must match, in order."""

    def match(self, left: list[Pattern], collected: _Opt[list[Pattern]] = None) -> MatchResult:
        if collected is None:
            collected = []
        remaining, gathered = left, collected
        for child in self.children:
            matched, remaining, gathered = child.match(remaining, gathered)
            if not matched:
                return False, left, collected
        return True, remaining, gathered


class Optional(BranchPattern):
    """Children match if they can; the group itself always matches."""

    def match(self, left: list[Pattern], collected: _Opt[list[Pattern]] = None) -> MatchResult:
        return _match_each(self.children, left, [] if collected is None else collected)


class OptionsShortcut(BranchPattern):
    """Stands for every option listed in the options section but not in usage."""

    def match(self, left: list[Pattern], collected: _Opt[list[Pattern]] = None) -> MatchResult:
        return _match_each(self.children, left, [] if collected is None else collected)


class OneOrMore(BranchPattern):
    """Its single child must match at least once."""

    def match(self, left: list[Pattern], collected: _Opt[list[Pattern]] = None) -> MatchResult:
        if collected is None:
            collected = []
        if len(self.children) != 1:
            raise ValueError("OneOrMore needs exactly one child")
        child = self.children[0]
        remaining, gathered = left, collected
        previous: _Opt[list[Pattern]] = None
        matched = True
        times = 0
        while matched:
            matched, remaining, gathered = child.match(remaining, gathered)
            if matched:
                times += 1
            if previous is remaining:
                break
            previous = remaining
        if times >= 1:
            return True, remaining, gathered
        return False, left, collected


class Either(BranchPattern):
    """One of the children must match; the one leaving fewest items wins."""

    def match(self, left: list[Pattern], collected: _Opt[list[Pattern]] = None) -> MatchResult:
        if collected is None:
            collected = []
        outcomes = [
            outcome
            for outcome in (child.match(left, collected) for child in self.children)
            if outcome[0]
        ]
        if not outcomes:
            return False, left, collected
        first_length = len(outcomes[0][1])
        best = outcomes[0]
        for outcome in outcomes:
            if len(outcome[1]) < first_length:
                best = outcome
        return best


def transform(pattern: Pattern) -> Either:
    """Expand a pattern into an almost equivalent one with a single Either at the top.

    ``((-a | -b) (-c | -d))`` becomes ``(-a -c | -a -d | -b -c | -b -d)``;
    ``[-a]`` becomes ``(-a)`` and ``(-a...)`` becomes ``(-a -a)``.
    """
    result: list[list[Pattern]] = []
    groups: list[list[Pattern]] = [[pattern]]
    while groups:
        children = groups.pop(0)
        parent = next((child for child in children if isinstance(child, BranchPattern)), None)
        if parent is None:
            result.append(children)
            continue
        children = list(children)
        children.remove(parent)
        if isinstance(parent, Either):
            for child in parent.children:
                groups.append([child] + children)
        elif isinstance(parent, OneOrMore):
            groups.append(parent.children * 2 + children)
        else:
            groups.append(parent.children + children)
    return Either(*(Required(*case) for case in result))


def unique(patterns: list[Pattern]) -> list[Pattern]:
    """Drop patterns whose representation was already seen, keeping order."""
    seen: set[str] = set()
    result = []
    for pattern in patterns:
        text = repr(pattern)
        if text not in seen:
            seen.add(text)
            result.append(pattern)
    return result