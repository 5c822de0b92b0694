import argparse
import dataclasses
import signal
import threading
import typing

from remover import _runner


@dataclasses.dataclass(frozen=True)
class Flag:
    """Data structure describing a single command line flag."""

    names: typing.Tuple[str, ...]
    dest: str
    help: str
    #: Required flags are only marked as such in the help text. They are
    #: checked by the removal run itself so that a missing one is reported
    #: as a configuration error like any other missing input.
    required: bool = False
    is_switch: bool = False


@dataclasses.dataclass(frozen=True)
class Command:
    """Data structure describing a sub-command and the handler that runs it."""

    name: str
    help: str
    flags: typing.Tuple[Flag, ...]
    handler: typing.Callable[[typing.Dict[str, typing.Any]], int]


def _remove(args: typing.Dict[str, typing.Any]) -> int:
    """Run a node removal that stops early when the process is interrupted."""
    cancel = threading.Event()

    def _on_signal(signum, frame):
        print(f"Received signal {signum}, cancelling removal.", flush=True)
        cancel.set()

    previous = {
        signum: signal.signal(signum, _on_signal)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        return _runner.main(args, cancel=cancel)
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


REMOVE = Command(
    name="remove",
    help="Remove a node from the search cluster and its auto scaling group.",
    flags=(
        Flag(("--cluster-url",), "cluster_url", "Search cluster URL", required=True),
        Flag(("--group",), "group", "Auto scaling group name", required=True),
        Flag(("--node-name",), "node_name", "Node name to remove", required=True),
        Flag(("--region",), "region", "AWS region"),
        Flag(("-p", "--profile"), "aws_profile", "AWS profile name"),
        Flag(("--config-path",), "config_path", "Path to a YAML config file"),
        Flag(("--pretty-print",), "pretty_print", "Indent log output", is_switch=True),
    ),
    handler=_remove,
)

COMMANDS: typing.Tuple[Command, ...] = (REMOVE,)


def create_parser(
    commands: typing.Sequence[Command] = COMMANDS,
) -> argparse.ArgumentParser:
    """Create an argument parser with a sub-parser for each command descriptor."""
    parser = argparse.ArgumentParser(prog="search-node-remover")
    subparsers = parser.add_subparsers(dest="command")
    for command in commands:
        subparser = subparsers.add_parser(command.name, help=command.help)
        for flag in command.flags:
            suffix = " (required)" if flag.required else ""
            if flag.is_switch:
                subparser.add_argument(
                    *flag.names,
                    dest=flag.dest,
                    action="store_true",
                    help=flag.help,
                )
            else:
                subparser.add_argument(
                    *flag.names, dest=flag.dest, help=f"{flag.help}{suffix}"
                )
    return parser


def dispatch(
    arguments: typing.Sequence[str] = None,
    commands: typing.Sequence[Command] = COMMANDS,
) -> int:
    """
    Parse the command line and run the handler of the selected command.

    :param arguments:
        Command line arguments, which default to those of the current process.
    :param commands:
        Command descriptors from which the parser is built.
    :return:
        Exit status returned by the command handler, or 2 when no known
        command was selected.
    """
    parser = create_parser(commands)
    args = vars(parser.parse_args(arguments))
    name = args.pop("command")
    command = next((c for c in commands if c.name == name), None)
    if command is None:
        parser.print_usage()
        return 2
    return command.handler(args)
