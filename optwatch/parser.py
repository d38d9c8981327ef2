"""Build a command-line parser from a conventional help message and apply it to argv."""

from __future__ import annotations

import re
import sys
from typing import Any, Iterable

from optwatch.patterns import (
    Argument,
    Command,
    Either,
    OneOrMore,
    Option,
    Optional,
    OptionsShortcut,
    Pattern,
    Required,
    unique,
)


class DocoptError(Exception):
    """Base class of every error raised while building or applying a parser."""


class UserError(DocoptError):
    """The arguments given do not fit the usage description."""

    def __init__(self, message: str = "", usage: str = "") -> None:
        super().__init__(message)
        self.usage = usage


class LanguageError(DocoptError):
    """The help message itself is malformed."""


class Tokens:
    """A queue of tokens together with the error class raised for problems in them."""

    def __init__(self, tokens: Iterable[str], error: type[DocoptError] = DocoptError) -> None:
        self.tokens = list(tokens)
        self.error = error

    @classmethod
    def from_string(cls, source: str) -> "Tokens":
        """Split a command line on whitespace; problems are user errors."""
        return cls(source.split(), UserError)

    @classmethod
    def from_pattern(cls, source: str) -> "Tokens":
        """Tokenise a usage pattern; problems are language errors."""
        source = re.sub(r"([\[\]()|]|\.\.\.)", r" \1 ", source)
        parts = re.split(r"\s+|(\S*<.*?>)", source)
        return cls((part for part in parts if part), LanguageError)

    @property
    def is_user(self) -> bool:
        return self.error is UserError

    def current(self) -> str | None:
        """Return the next token without consuming it."""
        return self.tokens[0] if self.tokens else None

    def move(self) -> str | None:
        """Consume and return the next token."""
        return self.tokens.pop(0) if self.tokens else None

    def __len__(self) -> int:
        return len(self.tokens)


def _is_upper(text: str) -> bool:
    return text.upper() == text and any(char.isupper() for char in text)


def parse_section(name: str, source: str) -> list[str]:
    """Return every block of ``source`` whose first line contains ``name``."""
    pattern = re.compile(
        r"^([^\n]*" + re.escape(name) + r"[^\n]*\n?(?:[ \t].*?(?:\n|$))*)",
        re.IGNORECASE | re.MULTILINE,
    )
    return [match.group(0).strip() for match in pattern.finditer(source)]


_OPTION_START = re.compile(r"\n[ \t]*(-\S+?)")
_DEFAULT = re.compile(r"\[default: (.*)\]", re.IGNORECASE)


def parse_defaults(doc: str) -> list[Option]:
    """Collect the options described in every "options:" section."""
    defaults: list[Option] = []
    for section in parse_section("options:", doc):
        _, _, section = section.partition(":")
        text = "\n" + section
        starts = list(_OPTION_START.finditer(text))
        for current, following in zip(starts, starts[1:] + [None]):
            end = following.start() if following is not None else len(text)
            description = current.group(1) + text[current.end():end]
            if description.startswith("-"):
                defaults.append(parse_option(description))
    return defaults


def parse_option(option_description: str) -> Option:
    """Build an option from a line such as ``-f, --file=FILE  Input [default: x]``."""
    options, _, description = option_description.strip().partition("  ")
    options = options.replace(",", " ").replace("=", " ")
    short = ""
    long = ""
    argcount = 0
    value: Any = False
    for word in options.split():
        if word.startswith("--"):
            long = word
        elif word.startswith("-"):
            short = word
        else:
            argcount = 1
        if argcount > 0:
            found = _DEFAULT.findall(description)
            value = found[0] if found else None
    return Option(short, long, argcount, value)


def parse_pattern(source: str, options: list[Option]) -> Required:
    """Compile a formal usage string into a pattern tree."""
    tokens = Tokens.from_pattern(source)
    result = _parse_expr(tokens, options)
    if tokens.current() is not None:
        raise tokens.error("unexpected ending: " + " ".join(tokens.tokens))
    return Required(*result)


def parse_argv(tokens: Tokens, options: list[Option], options_first: bool) -> list[Pattern]:
    """Turn argv tokens into options and arguments.

    With ``options_first`` everything after the first positional argument is
    positional as well; ``--`` always ends option parsing.
    """
    parsed: list[Pattern] = []
    while tokens.current() is not None:
        current = tokens.current()
        if current == "--":
            parsed.extend(Argument("", value) for value in tokens.tokens)
            return parsed
        if current.startswith("--"):
            parsed.extend(_parse_long(tokens, options))
        elif current.startswith("-") and current != "-":
            parsed.extend(_parse_shorts(tokens, options))
        elif options_first:
            parsed.extend(Argument("", value) for value in tokens.tokens)
            return parsed
        else:
            parsed.append(Argument("", tokens.move()))
    return parsed


def _parse_expr(tokens: Tokens, options: list[Option]) -> list[Pattern]:
    seq = _parse_seq(tokens, options)
    if tokens.current() != "|":
        return seq
    result: list[Pattern] = [Required(*seq)] if len(seq) > 1 else seq
    while tokens.current() == "|":
        tokens.move()
        seq = _parse_seq(tokens, options)
        if len(seq) > 1:
            result.append(Required(*seq))
        else:
            result.extend(seq)
    if len(result) > 1:
        return [Either(*result)]
    return result


def _parse_seq(tokens: Tokens, options: list[Option]) -> list[Pattern]:
    result: list[Pattern] = []
    while tokens.current() not in (None, "]", ")", "|"):
        atom = _parse_atom(tokens, options)
        if tokens.current() == "...":
            atom = [OneOrMore(*atom)]
            tokens.move()
        result.extend(atom)
    return result


def _parse_atom(tokens: Tokens, options: list[Option]) -> list[Pattern]:
    token = tokens.current()
    if token in ("(", "["):
        tokens.move()
        inner = _parse_expr(tokens, options)
        if token == "(":
            matching, result = ")", [Required(*inner)]
        else:
            matching, result = "]", [Optional(*inner)]
        moved = tokens.move()
        if moved != matching:
            raise tokens.error(
                f"unmatched '{token}', expected: '{matching}' got: '{moved or ''}'"
            )
        return result
    if token == "options":
        tokens.move()
        return [OptionsShortcut()]
    if token.startswith("--") and token != "--":
        return _parse_long(tokens, options)
    if token.startswith("-") and token not in ("-", "--"):
        return _parse_shorts(tokens, options)
    if (token.startswith("<") and token.endswith(">")) or _is_upper(token):
        return [Argument(tokens.move(), None)]
    return [Command(tokens.move(), False)]


def _parse_long(tokens: Tokens, options: list[Option]) -> list[Pattern]:
    long, eq, rest = (tokens.move() or "").partition("=")
    value: Any = None if eq == "" and rest == "" else rest
    if not long.startswith("--"):
        raise DocoptError(f"long option '{long}' doesn't start with --")
    similar = [option for option in options if option.long == long]
    if tokens.is_user and not similar:
        similar = [option for option in options if option.long.startswith(long)]
    if len(similar) > 1:
        names = ", ".join(option.long for option in similar)
        raise tokens.error(f"{long} is not a unique prefix: {names}?")
    if not similar:
        argcount = 1 if eq == "=" else 0
        option = Option("", long, argcount, False)
        options.append(option)
        if tokens.is_user:
            option = Option("", long, argcount, value if argcount else True)
        return [option]
    found = similar[0]
    option = Option(found.short, found.long, found.argcount, found.value)
    if option.argcount == 0:
        if value is not None:
            raise tokens.error(f"{option.long} must not have an argument")
    elif value is None:
        if tokens.current() in (None, "--"):
            raise tokens.error(f"{option.long} requires argument")
        value = tokens.move()
    if tokens.is_user:
        option.value = value if value is not None else True
    return [option]


def _parse_shorts(tokens: Tokens, options: list[Option]) -> list[Pattern]:
    token = tokens.move() or ""
    if not token.startswith("-") or token.startswith("--"):
        raise DocoptError(f"short option '{token}' doesn't start with -")
    left = token.lstrip("-")
    parsed: list[Pattern] = []
    while left:
        short, left = "-" + left[0], left[1:]
        similar = [option for option in options if option.short == short]
        if len(similar) > 1:
            raise tokens.error(f"{short} is specified ambiguously {len(similar)} times")
        if not similar:
            option = Option(short, "", 0, False)
            options.append(option)
            if tokens.is_user:
                option = Option(short, "", 0, True)
        else:
            found = similar[0]
            option = Option(short, found.long, found.argcount, found.value)
            value: Any = None
            if option.argcount > 0:
                if left == "":
                    if tokens.current() in (None, "--"):
                        raise tokens.error(f"{short} requires argument")
                    value = tokens.move()
                else:
                    value, left = left, ""
            if tokens.is_user:
                option.value = value if value is not None else True
        parsed.append(option)
    return parsed


def formal_usage(section: str) -> str:
    """Rewrite a usage section as one alternation of parenthesised patterns."""
    _, _, section = section.partition(":")
    words = section.split()
    if not words:
        raise LanguageError("no fields found in usage (perhaps a spacing error).")
    program = words[0]
    parts = [") | (" if word == program else word for word in words[1:]]
    return "( " + "".join(part + " " for part in parts) + ")"


def extras(help: bool, version: str | None, options: list[Pattern], doc: str) -> str:
    """Return the help text or version string when argv asked for one, else ''."""
    if help and any(
        option.name in ("-h", "--help") and option.value is True for option in options
    ):
        return doc.strip("\n")
    if version and any(
        option.name == "--version" and option.value is True for option in options
    ):
        return version
    return ""


def _diff(items: list[Pattern], remove: list[Pattern]) -> list[Pattern]:
    pool: list[Pattern | None] = list(remove)
    result = []
    for item in items:
        for pos, other in enumerate(pool):
            if other is not None and other == item:
                pool[pos] = None
                break
        else:
            result.append(item)
    return result


def _parse(
    doc: str, argv: list[str], help: bool, version: str | None, options_first: bool
) -> tuple[dict[str, Any] | None, str]:
    sections = parse_section("usage:", doc)
    if not sections:
        raise LanguageError('"usage:" (case-insensitive) not found.')
    if len(sections) > 1:
        raise LanguageError('More than one "usage:" (case-insensitive).')
    usage = sections[0]
    try:
        options = parse_defaults(doc)
        pattern = parse_pattern(formal_usage(usage), options)
        pattern_argv = parse_argv(Tokens(argv, UserError), options, options_first)
        pattern_options = unique(pattern.flat(Option))
        for shortcut in pattern.flat(OptionsShortcut):
            shortcut.children = _diff(unique(parse_defaults(doc)), pattern_options)
        output = extras(help, version, pattern_argv, doc)
        if output:
            return None, output
        pattern.fix()
        matched, left, collected = pattern.match(pattern_argv)
        if matched and not left:
            return {node.name: node.value for node in pattern.flat() + collected}, ""
        raise UserError("")
    except UserError as err:
        err.usage = f"{err}\n{usage}".strip()
        raise


def docopt(
    doc: str,
    argv: list[str] | None = None,
    help: bool = True,
    version: str | None = None,
    options_first: bool = False,
    exit: bool = True,
) -> dict[str, Any] | None:
    """Parse ``argv`` (default ``sys.argv[1:]``) against the usage in ``doc``.

    Returns a mapping of names to values. When argv asks for help or the
    version, the text is printed and the program exits with 0, or ``None`` is
    returned when ``exit`` is false. Bad arguments print the usage and exit
    with 1, or raise :class:`UserError` when ``exit`` is false. A malformed
    ``doc`` raises :class:`LanguageError`.
    """
    if argv is None:
        argv = sys.argv[1:]
    try:
        args, output = _parse(doc, list(argv), help, version, options_first)
    except UserError as err:
        print(err.usage)
        if exit:
            raise SystemExit(1) from err
        raise
    if output:
        print(output)
        if exit:
            raise SystemExit(0)
    return args