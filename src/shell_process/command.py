"""Command descriptions.

A ``Command`` names a binary, its positional arguments and its options, and
renders them into the single string handed to the process creation call.

```python
cmd = Command.make("ls").with_options(["-l"])
cmd.serialize()  # "/usr/bin/ls -l"

cmd = Command("tar", ["-c"], {"-f": "out.tar", "--": ["a.txt", "b.txt"]})
cmd.serialize()  # "/usr/bin/tar -c -f out.tar -- a.txt b.txt"
```
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Union

from shell_process.exceptions import CommandError

logger = logging.getLogger(__name__)

_BINARY_PATTERN = re.compile(r"(?:exec )?(?P<cmd>\S+)")
_WHITESPACE_RUN = re.compile(r"\s{2,}")

OptionKey = Union[str, int]
Options = Union[Mapping[OptionKey, Any], Sequence[Any]]


def default_search_path(environ: Mapping[str, str] | None = None) -> list[str]:
    """Directories listed in PATH, in order."""
    environ = os.environ if environ is None else environ
    return [entry for entry in environ.get("PATH", "").split(os.pathsep) if entry]


def find_executable(token: str, search_path: Iterable[str]) -> str | None:
    """Resolve ``token`` to an absolute path.

    The token is looked up relative to the current directory first, then in
    each directory of ``search_path``. Only regular files match; whether they
    are executable is checked by ``Command.validate``.
    """
    if os.path.isfile(token):
        return os.path.abspath(token)

    for directory in search_path:
        candidate = os.path.join(directory, token)
        if os.path.isfile(candidate):
            return os.path.abspath(candidate)

    return None


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _normalize_options(options: Options | None) -> dict[OptionKey, Any]:
    if options is None:
        return {}
    if isinstance(options, Mapping):
        return dict(options)
    if isinstance(options, (str, bytes)):
        msg = "options must be a mapping or a sequence, not a string"
        raise TypeError(msg)
    return dict(enumerate(options))


class Command:
    """A binary plus its arguments and options."""

    def __init__(
        self,
        name: str,
        args: Sequence[Any] | None = None,
        options: Options | None = None,
        search_path: Iterable[str] | None = None,
    ) -> None:
        """
        Args:
            name: The command; its first token (after an optional "exec ") is the binary.
            args: Positional arguments, rendered in order after the binary.
            options: Option name to value mapping, or a sequence of bare options.
            search_path: Directories searched for the binary. Defaults to PATH.
        """
        self.name = name
        match = _BINARY_PATTERN.search(name)
        if match is None:
            self.binary: str | None = None
        else:
            path = list(search_path) if search_path is not None else default_search_path()
            self.binary = find_executable(match.group("cmd"), path)
            if self.binary is None:
                logger.debug("Binary %r not found in %s", match.group("cmd"), path)
        self.args: list[Any] = list(args) if args is not None else []
        self.options: dict[OptionKey, Any] = _normalize_options(options)

    @classmethod
    def make(cls, name: str) -> Command:
        return cls(name)

    def with_args(self, *args: Any) -> Command:
        """Replace the positional arguments.

        Accepts either several arguments or a single list/tuple of them.
        """
        if len(args) == 1 and _is_sequence(args[0]):
            args = tuple(args[0])
        self.args = list(args)
        return self

    def with_options(self, options: Options | None = None) -> Command:
        self.options = _normalize_options(options)
        return self

    def _render_options(self) -> list[str]:
        rendered: list[str] = []
        trailing: str | None = None
        for option, value in self.options.items():
            if _is_sequence(value):
                trailing = " ".join([str(option), *(str(v) for v in value)])
                continue

            if isinstance(option, int):
                rendered.append(str(value))
            elif value is True or value is None:
                rendered.append(option)
            elif value is False:
                continue
            else:
                rendered.append(f"{option} {value}".strip())

        if trailing is not None:
            rendered.append(trailing)
        return rendered

    def serialize(self) -> str:
        """Render the full command line."""
        parts = [self.binary or "", " ".join(str(arg) for arg in self.args), *self._render_options()]
        return _WHITESPACE_RUN.sub(" ", " ".join(parts)).strip()

    def validate(self) -> None:
        """Check the command can be executed.

        Raises:
            CommandError: If the binary was not found or is not executable, or
                if more than one option holds a sequence of values.
        """
        if self.binary is None:
            error_msg = f"Command not found: {self.name!r}"
            raise CommandError(error_msg)

        if not os.path.isfile(self.binary) or not os.access(self.binary, os.X_OK):
            error_msg = f"{self} not executable."
            raise CommandError(error_msg)

        sequences = [option for option, value in self.options.items() if _is_sequence(value)]
        if len(sequences) > 1:
            error_msg = f"Multiple nargs detected: {sequences}"
            raise CommandError(error_msg)

    def __str__(self) -> str:
        return f"Command [{self.binary}]"

    def __repr__(self) -> str:
        return f"Command({self.serialize()!r})"
