# SPDX-License-Identifier: AGPL-3.0

import json
import re
from dataclasses import dataclass
from typing import Any

from eth_abi import encode
from eth_hash.auto import keccak

from .logs import debug
from .utils import decode_hex, hexify


def str_abi(item: dict) -> str:
    """
    Construct a canonical signature string from a function or event abi item,
    e.g. "transfer(address,uint256)" or "Transfer(address,address,uint256)".
    """

    def str_tuple(args: list) -> str:
        ret = []
        for arg in args:
            typ = arg["type"]
            match = re.search(r"^tuple((\[[0-9]*\])*)$", typ)
            if match:
                ret.append(str_tuple(arg["components"]) + match.group(1))
            else:
                ret.append(typ)
        return "(" + ",".join(ret) + ")"

    if item["type"] not in ("function", "event"):
        raise ValueError(item)
    return item["name"] + str_tuple(item["inputs"])


def input_types(item: dict) -> list[str]:
    # canonical types of each input, with tuples expanded to "(t1,t2,...)"
    return [
        str_abi({"type": "function", "name": "", "inputs": [arg]})[1:-1]
        for arg in item["inputs"]
    ]


@dataclass(frozen=True)
class ContractInfo:
    """Pre-compiled contract: ABI plus creation bytecode."""

    name: str
    abi: list[dict]
    bytecode: bytes

    def _find(self, typ: str, name: str) -> dict:
        for item in self.abi:
            if item.get("type") == typ and item.get("name") == name:
                return item
        raise KeyError(f"{typ} {name} not found in the {self.name} abi")

    def selector(self, fn_name: str) -> bytes:
        return keccak(str_abi(self._find("function", fn_name)).encode())[:4]

    def encode_call(self, fn_name: str, *args: Any) -> bytes:
        item = self._find("function", fn_name)
        return self.selector(fn_name) + encode(input_types(item), list(args))

    def event_topic(self, event_name: str) -> str:
        return hexify(keccak(str_abi(self._find("event", event_name)).encode()))


def parse_bytecode(value: str | dict | None) -> bytes:
    # solc/forge artifacts nest the hexcode under "object"
    if isinstance(value, dict):
        value = value.get("object")

    if not value:
        raise ValueError("bytecode not found")

    bytecode = decode_hex(value)
    if bytecode is None:
        # e.g. unlinked library placeholders
        raise ValueError(f"bytecode is not valid hex: {value[:32]}...")

    return bytecode


def load_contract(path: str) -> ContractInfo:
    """
    Load a compiled contract artifact: a JSON document with an `abi` list and
    a `bytecode` hexstring (or an object with the hexstring under `object`).
    """

    with open(path, encoding="utf8") as f:
        artifact = json.load(f)

    abi = artifact.get("abi")
    if not isinstance(abi, list):
        raise ValueError(f"abi not found in {path}")

    bytecode = parse_bytecode(artifact.get("bytecode"))
    name = artifact.get("contractName") or path.rsplit("/", 1)[-1].split(".")[0]
    debug(f"Loaded {name} from {path} ({len(bytecode)} bytes of bytecode)")

    return ContractInfo(name=name, abi=abi, bytecode=bytecode)
