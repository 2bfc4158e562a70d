"""The command-line program: root command, global options and version command."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version as _dist_version
from typing import Any, Callable, Sequence

from pxc import commander
from pxc.config import cm
from pxc.portforward import stop_tunnel

logger = logging.getLogger("pxc")

SDK_VERSION = (0, 101, 27)

_OPTIONS_HINT = (
    'Use "pxc --options" for a list of global command-line options '
    "(applies to all commands)"
)

Handler = Callable[[argparse.Namespace], Any]


@dataclass(frozen=True)
class _GlobalOption:
    flags: tuple[str, ...]
    dest: str
    metavar: str
    help: str
    type: Callable[[str], Any] = str


_GLOBAL_OPTIONS = (
    _GlobalOption(
        ("--config-file",),
        "config_file",
        "string",
        "Config file (default is $HOME/.pxc/config.yml)",
    ),
    _GlobalOption(("--token",), "token", "string", "Portworx authentication token"),
    _GlobalOption(
        ("--secret-name",),
        "secret_name",
        "string",
        "Name of Kubernetes secret holding the authentication token",
    ),
    _GlobalOption(
        ("--secret-namespace",),
        "secret_namespace",
        "string",
        "Namespace of Kubernetes secret holding the authentication token",
    ),
    _GlobalOption(
        ("-v", "--verbosity"),
        "verbosity",
        "int",
        "Verbosity level: 0 fatal, 1 warnings, 2 info, 3 or more debug",
        int,
    ),
)


def _add_global_options(parser: argparse.ArgumentParser, suppress: bool) -> None:
    default = argparse.SUPPRESS if suppress else None
    for option in _GLOBAL_OPTIONS:
        parser.add_argument(
            *option.flags,
            dest=option.dest,
            metavar=option.metavar,
            type=option.type,
            default=default,
            help=option.help,
        )


def _global_options_text() -> str:
    names = [f"{', '.join(o.flags)} {o.metavar}" for o in _GLOBAL_OPTIONS]
    width = max(len(n) for n in names)
    lines = ["Global Flags:"]
    lines += [
        f"  {name.ljust(width)}   {option.help}"
        for name, option in zip(names, _GLOBAL_OPTIONS)
    ]
    return "\n".join(lines) + "\n"


def _verbosity_level(verbosity: int) -> int:
    if verbosity == 0:
        return logging.CRITICAL
    if verbosity == 1:
        return logging.WARNING
    if verbosity == 2:
        return logging.INFO
    return logging.DEBUG


@dataclass
class ComponentConfig:
    """What is needed to create a component."""

    name: str = ""
    version: str = ""
    short: str = ""
    root_flags: Callable[[argparse.ArgumentParser], None] | None = None


class Component:
    """A command-line program with global options and sub-commands."""

    def __init__(self, config: ComponentConfig) -> None:
        self.config = config
        self._parser = argparse.ArgumentParser(
            prog=config.name or None,
            description=config.short or None,
            epilog=_OPTIONS_HINT,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        _add_global_options(self._parser, suppress=False)
        self._parser.add_argument(
            "--options",
            action="store_true",
            help="Show global options for all commands",
        )
        self._subparsers = self._parser.add_subparsers(dest="_command", metavar="command")
        self._prepared = False
        self.add_command("version", self._version, "Show version information")

    def add_command(
        self, name: str, handler: Handler, help: str = ""
    ) -> argparse.ArgumentParser:
        """Add a sub-command run by ``handler(args)``; return its parser."""
        if name in self._subparsers.choices:
            raise ValueError(f"command {name!r} already exists")
        sub = self._subparsers.add_parser(name, help=help, description=help or None)
        _add_global_options(sub, suppress=True)
        sub.set_defaults(_handler=handler)
        return sub

    def execute(self, argv: Sequence[str] | None = None) -> int:
        """Run the program with ``argv`` and return its exit status."""
        if not self._prepared:
            commander.setup()
            if self.config.root_flags is not None:
                self.config.root_flags(self._parser)
            self._prepared = True

        try:
            args = self._parser.parse_args(argv)
        except SystemExit as exc:
            if exc.code is None:
                return 0
            return exc.code if isinstance(exc.code, int) else 1

        try:
            self._pre_run(args)
            handler = getattr(args, "_handler", None)
            if handler is not None:
                handler(args)
            else:
                self._root(args)
            return 0
        except Exception as exc:  # noqa: BLE001 - reported as the program's error
            print(f"{exc}", file=sys.stderr)
            return 1
        finally:
            stop_tunnel()

    def _pre_run(self, args: argparse.Namespace) -> None:
        flags = cm().flags
        for option in _GLOBAL_OPTIONS:
            value = getattr(args, option.dest, None)
            if value is not None:
                setattr(flags, option.dest, value)
        logger.setLevel(_verbosity_level(flags.verbosity))
        cm().load()
        logger.info("%s version: %s", self.config.name, self.config.version)

    def _root(self, args: argparse.Namespace) -> None:
        if getattr(args, "options", False):
            sys.stdout.write(_global_options_text())
        else:
            self._parser.print_help()

    def _version(self, args: argparse.Namespace) -> None:
        major, minor, patch = SDK_VERSION
        print(
            f"{self.config.name} Version: {self.config.version}\n"
            f"Portworx SDK Version: {major}.{minor}.{patch}"
        )


def _package_version() -> str:
    try:
        return _dist_version("pxc")
    except PackageNotFoundError:
        return "unknown"


def main(argv: Sequence[str] | None = None) -> int:
    """Run the pxc command line."""
    component = Component(
        ComponentConfig(
            name="pxc",
            version=_package_version(),
            short="Portworx client",
        )
    )
    return component.execute(argv)