# SPDX-License-Identifier: AGPL-3.0

import json
from collections.abc import Mapping
from timeit import default_timer as timer
from typing import Any

from eth_hash.auto import keccak


def stripped(hexstring: str) -> str:
    """Remove 0x prefix from hexstring"""
    return hexstring[2:] if hexstring.startswith("0x") else hexstring


def decode_hex(hexstring: str) -> bytes | None:
    try:
        # not checking if length is even because fromhex accepts spaces
        return bytes.fromhex(stripped(hexstring))
    except ValueError:
        return None


def hexify(x: Any) -> str:
    """Render bytes-like values and ints as 0x-prefixed hex strings."""
    if isinstance(x, str):
        return x if x.startswith("0x") else f"0x{x}"
    elif isinstance(x, bytes | bytearray):
        # HexBytes is a bytes subclass, its hex() dropped the 0x prefix in v1
        return "0x" + bytes(x).hex()
    elif isinstance(x, int):
        return f"0x{x:02x}"
    else:
        raise TypeError(f"cannot hexify {type(x).__name__}: {x!r}")


def is_zero_bytes(b: bytes) -> bool:
    return all(v == 0 for v in b)


def storage_slot_key(address: str, slot_index: int) -> bytes:
    """
    Storage key of `mapping[address]` for a mapping declared at `slot_index`,
    i.e. keccak256(abi.encode(address, uint256(slot_index))).
    """
    addr = decode_hex(address)
    if addr is None or len(addr) != 20:
        raise ValueError(f"invalid address: {address}")

    return keccak(addr.rjust(32, b"\x00") + slot_index.to_bytes(32, "big"))


def _to_json_value(x: Any) -> Any:
    # AttributeDict (web3) is a Mapping but not a dict
    if isinstance(x, Mapping):
        return dict(x)
    if isinstance(x, bytes | bytearray):
        return hexify(x)
    if isinstance(x, set | frozenset | tuple):
        return list(x)
    raise TypeError(f"Object of type {type(x).__name__} is not JSON serializable")


def beautify(x: Any) -> str:
    """Pretty-print blocks, transactions, receipts and logs as indented JSON."""
    return json.dumps(x, indent=2, default=_to_json_value)


def structurally_equal(a: Any, b: Any) -> bool:
    """Compare two node responses field by field, ignoring container types."""
    as_json = lambda x: json.dumps(x, sort_keys=True, default=_to_json_value)  # noqa: E731
    return as_json(a) == as_json(b)


#
# Colors
#


def green(text: str) -> str:
    return f"\033[32m{text}\033[0m"


def red(text: str) -> str:
    return f"\033[31m{text}\033[0m"


def yellow(text: str) -> str:
    return f"\033[33m{text}\033[0m"


def cyan(text: str) -> str:
    return f"\033[36m{text}\033[0m"


color_good = green
color_info = cyan
color_warn = yellow
color_error = red


def indent_text(text: str, n: int = 4) -> str:
    return "\n".join(" " * n + line for line in text.splitlines())


#
# Time
#


class NamedTimer:
    def __init__(self, name: str, auto_start=True):
        self.name = name
        self.start_time = timer() if auto_start else None
        self.end_time = None

    def start(self):
        if self.start_time is not None:
            raise ValueError(f"Timer {self.name} has already been started.")
        self.start_time = timer()

    def stop(self):
        # if the timer has already been stopped, do nothing
        self.end_time = self.end_time or timer()

    def elapsed(self) -> float:
        if self.start_time is None:
            raise ValueError(f"Timer {self.name} has not been started")

        end_time = self.end_time if self.end_time is not None else timer()

        return end_time - self.start_time

    def report(self) -> str:
        return f"{self.name}: {format_time(self.elapsed())}"

    def __str__(self):
        return self.report()


def format_time(seconds: float) -> str:
    """
    Returns a pretty string for an elapsed time in seconds.
    Automatically chooses a relevant time unit (h, m, s, ms)

    Examples:
        3602.13 -> 1h00m02s
        62.003 -> 1m02s
        1.000000001 -> 1.000s
        0.123456789 -> 123.457ms
    """
    if seconds >= 3600:
        hours = int(seconds / 3600)
        minutes = int((seconds - (3600 * hours)) / 60)
        seconds_rounded = int(seconds - (3600 * hours) - (60 * minutes))
        return f"{hours}h{minutes:02}m{seconds_rounded:02}s"
    elif seconds >= 60:
        minutes = int(seconds / 60)
        seconds_rounded = int(seconds - (60 * minutes))
        return f"{minutes}m{seconds_rounded:02}s"
    elif seconds >= 1:
        return f"{seconds:.3f}s"
    else:
        return f"{seconds * 1e3:.3f}ms"


def parse_time(arg: int | float | str, default_unit: str | None = "s") -> float:
    """
    Parse a duration string into a number of seconds, with an optional unit suffix.

    Examples:
        "200ms" -> 0.2
        "5s" -> 5.0
        "2m" -> 120.0
        "1h" -> 3600.0

    Note: does not support combined units like "1m30s"
    """

    if default_unit and default_unit not in ["ms", "s", "m", "h"]:
        raise ValueError(f"Invalid time unit: {default_unit}")

    if isinstance(arg, str):
        arg = arg.strip()
        if arg.endswith("ms"):
            return float(arg[:-2]) / 1000
        elif arg.endswith("s"):
            return float(arg[:-1])
        elif arg.endswith("m"):
            return float(arg[:-1]) * 60
        elif arg.endswith("h"):
            return float(arg[:-1]) * 3600
        elif arg == "0":
            return 0.0
        else:
            if not default_unit:
                raise ValueError(f"Could not infer time unit from {arg}")
            return parse_time(arg + default_unit, default_unit=None)
    elif isinstance(arg, int | float):
        if not default_unit:
            raise ValueError(f"Could not infer time unit from {arg}")
        return parse_time(str(arg) + default_unit, default_unit=None)
    else:
        raise ValueError(f"Invalid time argument: {arg}")
