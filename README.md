# optwatch

Two small tools in one package:

- **Argument parsing from a help message** (`optwatch.parser`). You write
  the usage text your program prints, and `docopt` reads the command line
  against it.
- **File system change notification** (`optwatch.watcher`). `Watcher`
  reports files being created, modified, deleted and renamed, and lets you
  pick which kinds of change you care about for each path.

The package is a library only; it installs no commands.

## Installation

```
pip install optwatch
```

## Parsing arguments

```python
from optwatch.parser import docopt

USAGE = """Usage:
  config_example tcp [<host>] [--force] [--timeout=<seconds>]
  config_example serial <port> [--baud=<rate>] [--timeout=<seconds>]
  config_example -h | --help | --version
"""

arguments = docopt(USAGE, ["tcp", "127.0.0.1", "--force"], True, "0.1.1rc", False)
# {'tcp': True, 'serial': False, '<host>': '127.0.0.1', '<port>': None,
#  '--force': True, '--timeout': None, '--baud': None,
#  '-h': False, '--help': False, '--version': False}
```

The signature is
`docopt(doc, argv=None, help=True, version=None, options_first=False, exit=True)`.
The result is a plain `dict` with one entry for each command, argument and
option:

- commands and flags are `True` or `False`;
- options that take a value hold a string, or `None` when not given;
- a flag that may repeat (`-vv`, `[-v...]`) holds a count;
- an argument that may repeat (`<file>...`) holds a list of strings.

When `argv` is `None`, `sys.argv[1:]` is used. An "Options:" section of the
help text declares synonyms (`-v, --verbose`), which options take a value,
and their defaults (`[default: 10]`). Long options given on the command line
may be abbreviated to any unique prefix. `[options]` in a usage line stands
for every option of the "Options:" section that the usage does not name.

By default `-h`/`--help` prints the help text and exits with status 0,
`--version` prints the version string you pass in, and a command line that
doesn't fit the usage prints the usage and exits with status 1. With
`exit=False`, help and version are still printed but `docopt` returns
`None`, and a bad command line prints the usage and raises
`optwatch.parser.UserError`, whose `usage` attribute holds the message and
usage text. A malformed help message (no "usage:", more than one, unmatched
brackets, an option described twice) raises `optwatch.parser.LanguageError`
whatever `exit` is. Both derive from `DocoptError`.

With `options_first=True`, everything after the first positional argument is
taken as positional, which suits programs that hand the rest of the command
line to a subcommand. `--` always ends option parsing.

The pieces underneath are public as well: `parse_section`, `parse_defaults`,
`parse_option`, `parse_pattern`, `parse_argv`, `formal_usage`, `extras` and
`Tokens` in `optwatch.parser`, and the pattern tree (`Argument`, `Command`,
`Option`, `Required`, `Optional`, `OptionsShortcut`, `OneOrMore`, `Either`,
`transform`, `unique`) in `optwatch.patterns`.

## Watching files

```python
from optwatch.watcher import Notify, Watcher

watcher = Watcher()
watcher.watch("/tmp/foo")                                  # every kind of change
watcher.watch_flags("/tmp/bar", Notify.CREATE | Notify.DELETE)

for event in watcher:          # ends once the watcher is closed
    if event.is_create():
        print("created", event.name)
    elif event.is_delete():
        print("deleted", event.name)
    elif event.is_modify():
        print("modified", event.name)
    elif event.is_rename():
        print("renamed", event.name)

# from another thread, or when you are finished:
watcher.close()
```

Events are `FileEvent` objects with an absolute path in `name` and a
`Notify` mask; `is_modify()` is true for attribute changes as well, and
`is_attrib()` only for those. Moving a file out of a name gives a rename
event for the old name and a create event for the new one, when that lies
in a watched directory. Events wait on the `watcher.events` queue, which
receives `None` after `close()`; iterating over the watcher yields events
until then. Errors met while reading changes are put on `watcher.errors`.

When you watch a directory, you get events for the directory and for the
entries directly inside it, not for deeper levels, and those entries are
filtered with the directory's flags. Watching a path that does not exist
raises `FileNotFoundError`. `remove_watch` stops a watch and raises
`ValueError` for a path that is not watched. `close` ends the watcher;
closing twice does nothing, and watching after `close` raises
`RuntimeError`. A `Watcher` is also a context manager that closes itself
on exit.