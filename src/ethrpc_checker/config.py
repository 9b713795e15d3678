# SPDX-License-Identifier: AGPL-3.0

import argparse
import os
import sys
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import MISSING, dataclass, fields
from dataclasses import field as dataclass_field
from typing import Any

import toml

from .logs import warn
from .utils import parse_time

# common strings
internal = "internal"

# groups
node, probes, output = (
    "Node options",
    "Probe options",
    "Output options",
)

DEFAULT_CONFIG_FILE = "ethrpc-checker.toml"


class ConfigSource:
    void = "void"
    default = "default"
    config_file = "config-file"
    command_line = "command-line"


# helper to define config fields
def arg(
    help: str,
    global_default: Any,
    metavar: str | None = None,
    group: str | None = None,
    short: str | None = None,
    countable: bool = False,
    global_default_str: str | None = None,
    action: Callable = None,
):
    return dataclass_field(
        default=None,
        metadata={
            "help": help,
            "global_default": global_default,
            "metavar": metavar,
            "group": group,
            "short": short,
            "countable": countable,
            "global_default_str": global_default_str,
            "action": action,
        },
    )


class ParseTime(argparse.Action):
    """Parse a duration like "500ms", "10s" or "1m" into seconds."""

    def __call__(self, parser, namespace, values, option_string=None):
        try:
            values = ParseTime.parse(values)
        except ValueError as e:
            parser.error(f"argument {option_string}: {e}")
        setattr(namespace, self.dest, values)

    @staticmethod
    def parse(values: str | int | float) -> float:
        seconds = parse_time(values)
        if seconds < 0:
            raise ValueError(f"negative duration: {values}")
        return seconds

    @staticmethod
    def unparse(values: float) -> str:
        return f"{values:g}s"


@dataclass(frozen=True)
class Config:
    """Configuration object for ethrpc-checker.

    Don't instantiate this directly, since all fields have default value None. Instead, use:

     - `default_config()` to get the default configuration with the actual default values
     - `with_overrides()` to create a new configuration object with some fields overridden
    """

    ### Internal fields (not used to generate arg parsers)

    _parent: "Config" = dataclass_field(
        repr=False,
        metadata={
            internal: True,
        },
    )

    _source: str = dataclass_field(
        metadata={
            internal: True,
        },
    )

    ### General options
    #
    # These fields have no actual default value: a Config object built from
    # some external source (toml file, command line) only carries the values
    # that source sets. The actual defaults live in the `global_default`
    # metadata and are materialized by `default_config()`, which sits at the
    # bottom of the layer chain.

    config: str = arg(
        help="path to the config file",
        metavar="FILE",
        global_default=lambda: os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE),
        global_default_str=f"./{DEFAULT_CONFIG_FILE}",
    )

    version: bool = arg(
        help="print the version number",
        global_default=False,
    )

    ### Node options

    rpc_endpoint: str = arg(
        help="JSON-RPC endpoint of the node under test",
        global_default="http://localhost:8545",
        metavar="URL",
        group=node,
    )

    rich_privkey: str = arg(
        help="hex private key of a funded account used to send transactions",
        global_default=None,
        metavar="HEX",
        group=node,
    )

    request_timeout: str = arg(
        help="timeout for a single JSON-RPC request",
        global_default="10s",
        metavar="DURATION",
        group=node,
        action=ParseTime,
    )

    ### Probe options

    timeout: str = arg(
        help="how long to wait for a submitted transaction to be mined",
        global_default="10s",
        metavar="DURATION",
        group=probes,
        action=ParseTime,
    )

    filter_wait: str = arg(
        help="how long to wait for a new block before polling block filter changes; should exceed the block time of the network",
        global_default="3s",
        metavar="DURATION",
        group=probes,
        action=ParseTime,
    )

    contract: str = arg(
        help="path to a compiled ERC20 artifact (JSON with `abi` and `bytecode`) deployed by the contract probes",
        global_default=None,
        metavar="ARTIFACT_JSON",
        group=probes,
    )

    storage_slot: int = arg(
        help="slot index of the balances mapping in the token contract, used by eth_getStorageAt",
        global_default=4,
        metavar="SLOT",
        group=probes,
    )

    ### Output options

    verbose: int = arg(
        help="increase verbosity levels: -v prints the values of successful probes",
        global_default=0,
        group=output,
        short="v",
        countable=True,
    )

    debug: bool = arg(
        help="run in debug mode",
        global_default=False,
        group=output,
    )

    no_status: bool = arg(
        help="disable progress display",
        global_default=False,
        group=output,
    )

    json_output: str = arg(
        help="output probe results in JSON",
        global_default=None,
        metavar="JSON_FILE_PATH",
        group=output,
    )

    ### Methods

    def __getattribute__(self, name):
        """Look up values in parent object if they are not set in the current object.

        This is because we consider the current object to override its parent.

        Because of this, printing a Config object will show a "flattened/resolved" view of the configuration.
        """

        # look up value in current object
        value = object.__getattribute__(self, name)
        if value is not None:
            return value

        # look up value in parent object
        parent = object.__getattribute__(self, "_parent")
        if parent is not None:
            return getattr(parent, name)

        return value

    def with_overrides(self, source: str, **overrides):
        """Create a new configuration object with some fields overridden.

        Use vars(namespace) to pass in the arguments from an argparse parser or
        just a dictionary with the overrides (e.g. from a toml file)."""

        try:
            return Config(_parent=self, _source=source, **overrides)
        except TypeError as e:
            # follow argparse error message format and behavior
            warn(f"error: unrecognized argument: {str(e).split()[-1]}")
            sys.exit(2)

    def value_with_source(self, name: str) -> tuple[Any, str]:
        # look up value in current object
        value = object.__getattribute__(self, name)
        if value is not None:
            return (value, self._source)

        # look up value in parent object
        parent = self._parent
        if parent is not None:
            return parent.value_with_source(name)

        return (value, self._source)

    def values(self):
        skip_empty = self._parent is not None

        for field in fields(self):
            if field.metadata.get(internal):
                continue

            field_value = object.__getattribute__(self, field.name)
            if skip_empty and field_value is None:
                continue

            yield field.name, field_value

    def values_by_layer(self) -> dict[str, dict[str, Any]]:
        # source -> {field, value}
        if self._parent is None:
            return OrderedDict([(self._source, dict(self.values()))])

        values = self._parent.values_by_layer()
        values[self._source] = dict(self.values())
        return values

    def formatted_layers(self) -> str:
        lines = []
        for layer, values in self.values_by_layer().items():
            lines.append(f"{layer}:")
            for field, value in values.items():
                # never echo the signing key
                if field == "rich_privkey":
                    value = "<redacted>"
                lines.append(f"  {field}: {value}")
        return "\n".join(lines)

    def validate(self) -> None:
        """Raise ValueError if the resolved configuration cannot drive a run."""

        if not self.rpc_endpoint:
            raise ValueError("rpc_endpoint must be set")

        if not self.rich_privkey:
            raise ValueError("rich_privkey must be set")

        for name in ("timeout", "request_timeout", "filter_wait"):
            value = getattr(self, name)
            if not isinstance(value, int | float):
                raise ValueError(f"invalid {name}: {value!r}")

        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

        if isinstance(self.storage_slot, bool) or not isinstance(self.storage_slot, int):
            raise ValueError(f"invalid storage_slot: {self.storage_slot!r}")

        if self.storage_slot < 0:
            raise ValueError(f"invalid storage_slot: {self.storage_slot}")


def resolve_config_files(args: list[str], include_missing: bool = False) -> list[str]:
    config_parser = argparse.ArgumentParser(add_help=False)
    config_parser.add_argument("--config", metavar="FILE")

    # beware: errors will cause a system exit
    args = config_parser.parse_known_args(args)[0]

    # if --config is passed explicitly, use that
    # no check for existence is done here, we don't want to silently ignore
    # missing config files when they are requested explicitly
    if args.config:
        return [args.config]

    default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
    if not include_missing and not os.path.exists(default_config_path):
        return []

    return [default_config_path]


class TomlParser:
    def parse_file(self, toml_file_path: str) -> dict:
        with open(toml_file_path) as f:
            return self.parse_str(f.read(), source=toml_file_path)

    # exposed for easier testing
    def parse_str(self, file_contents: str, source: str = DEFAULT_CONFIG_FILE) -> dict:
        parsed = toml.loads(file_contents)
        return self.parse_dict(parsed, source=source)

    # exposed for easier testing
    def parse_dict(self, parsed: dict, source: str = DEFAULT_CONFIG_FILE) -> dict:
        if len(parsed) != 1:
            warn(
                f"error: expected a single `[global]` section in {source}, "
                f"got {len(parsed)}: {', '.join(parsed.keys())}"
            )
            sys.exit(2)

        data = parsed.get("global")
        if data is None:
            for key in parsed:
                warn(f"error: expected a `[global]` section in {source}, got '{key}'")
                sys.exit(2)

        # gather custom actions
        actions = {
            field.name: field.metadata["action"]
            for field in fields(Config)
            if field.metadata.get("action")
        }

        result = {}
        for key, value in data.items():
            key = key.replace("-", "_")
            action = actions.get(key)
            try:
                result[key] = action.parse(value) if action else value
            except ValueError as e:
                warn(f"error: invalid value for `{key}` in {source}: {e}")
                sys.exit(2)
        return result


def _create_default_config() -> "Config":
    values = {}

    for field in fields(Config):
        # we build the default config by looking at the global_default metadata field
        default = field.metadata.get("global_default", MISSING)
        if default == MISSING:
            continue

        # retrieve the default value
        raw_value = default() if callable(default) else default

        # parse the default value, if a custom parser is provided
        action = field.metadata.get("action", None)
        if action and raw_value is not None:
            raw_value = action.parse(raw_value)
        values[field.name] = raw_value

    return Config(_parent=None, _source=ConfigSource.default, **values)


def _create_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ethrpc-checker",
        description="Check the Ethereum JSON-RPC surface of a live node.",
    )

    groups = {
        None: parser,
    }

    # add arguments from the Config dataclass
    for field_info in fields(Config):
        # skip internal fields
        if field_info.metadata.get(internal, False):
            continue

        long_name = f"--{field_info.name.replace('_', '-')}"
        names = [long_name]

        short_name = field_info.metadata.get("short", None)
        if short_name:
            names.append(f"-{short_name}")

        arg_help = field_info.metadata.get("help", "")
        metavar = field_info.metadata.get("metavar", None)
        group_name = field_info.metadata.get("group", None)
        if group_name not in groups:
            groups[group_name] = parser.add_argument_group(group_name)

        group = groups[group_name]

        if field_info.type is bool:
            group.add_argument(*names, help=arg_help, action="store_true", default=None)
        elif field_info.metadata.get("countable", False):
            group.add_argument(*names, help=arg_help, action="count")
        else:
            # add the default value to the help text
            default = field_info.metadata.get("global_default", None)
            if default is not None:
                default_str = field_info.metadata.get("global_default_str", None)
                default_str = repr(default) if default_str is None else default_str
                arg_help += f" (default: {default_str})"

            kwargs = {
                "help": arg_help,
                "metavar": metavar,
                "type": field_info.type,
            }
            if action := field_info.metadata.get("action", None):
                kwargs["action"] = action
            group.add_argument(*names, **kwargs)

    return parser


def _create_toml_parser() -> TomlParser:
    return TomlParser()


# public singleton accessors
def default_config() -> "Config":
    return _default_config


def arg_parser() -> argparse.ArgumentParser:
    return _arg_parser


def toml_parser():
    return _toml_parser


# init module-level singletons
_arg_parser = _create_arg_parser()
_default_config = _create_default_config()
_toml_parser = _create_toml_parser()


# can generate a sample config file using:
# python -m ethrpc_checker.config ARGS > ethrpc-checker.toml
def main():
    def _to_toml_str(value: Any, type) -> str:
        assert value is not None
        if type is str:
            return f'"{value}"'
        if type is bool:
            return str(value).lower()
        return str(value)

    args = arg_parser().parse_args()
    config = default_config().with_overrides(
        source=ConfigSource.command_line, **vars(args)
    )

    lines = ["[global]"]
    current_group_name = None

    for field_info in fields(config):
        if field_info.metadata.get(internal, False):
            # skip internal fields
            continue

        name = field_info.name.replace("_", "-")
        if name in ["config", "version"]:
            # skip fields that don't make sense in a config file
            continue

        group_name = field_info.metadata.get("group", None)
        if group_name != current_group_name:
            separator = "#" * 80
            lines.append(f"\n{separator}")
            lines.append(f"# {group_name: ^76} #")
            lines.append(separator)
            current_group_name = group_name

        arg_help = field_info.metadata.get("help", "")
        arg_help_tokens = arg_help.split("; ")
        arg_help_str = "\n# ".join(arg_help_tokens)
        lines.append(f"\n# {arg_help_str}")

        (value, source) = config.value_with_source(field_info.name)

        # unparse value if action is provided
        if value is not None and (action := field_info.metadata.get("action", None)):
            value = action.unparse(value)

        if value is None:
            metavar = field_info.metadata.get("metavar", None)
            lines.append(f"# {name} = {metavar}")
        else:
            value_str = _to_toml_str(value, field_info.type)
            lines.append(f"{name} = {value_str}")

    print("\n".join(lines))


if __name__ == "__main__":
    main()
