import json

import pytest
from eth_abi import decode
from eth_hash.auto import keccak

from ethrpc_checker.contract import input_types, load_contract, parse_bytecode, str_abi
from ethrpc_checker.utils import hexify


def test_str_abi_function(erc20):
    assert str_abi(erc20._find("function", "transfer")) == "transfer(address,uint256)"
    assert str_abi(erc20._find("function", "balanceOf")) == "balanceOf(address)"


def test_str_abi_event(erc20):
    transfer_event = erc20._find("event", "Transfer")
    assert str_abi(transfer_event) == "Transfer(address,address,uint256)"


def test_str_abi_tuple():
    item = {
        "type": "function",
        "name": "f",
        "inputs": [
            {
                "type": "tuple[2]",
                "components": [{"type": "uint8"}, {"type": "bytes"}],
            },
            {"type": "bool"},
        ],
    }
    assert str_abi(item) == "f((uint8,bytes)[2],bool)"
    assert input_types(item) == ["(uint8,bytes)[2]", "bool"]


def test_str_abi_rejects_other_items():
    with pytest.raises(ValueError):
        str_abi({"type": "constructor", "inputs": []})


def test_selector(erc20):
    # well-known ERC20 selectors
    assert erc20.selector("transfer").hex() == "a9059cbb"
    assert erc20.selector("balanceOf").hex() == "70a08231"


def test_encode_call(erc20, account):
    data = erc20.encode_call("transfer", account.address, 1)

    assert data[:4] == erc20.selector("transfer")
    assert len(data) == 4 + 32 * 2

    to, value = decode(["address", "uint256"], data[4:])
    assert to.lower() == account.address.lower()
    assert value == 1


def test_encode_call_unknown_function(erc20):
    with pytest.raises(KeyError):
        erc20.encode_call("approve", "0x" + "00" * 20, 1)


def test_event_topic(erc20):
    expected = hexify(keccak(b"Transfer(address,address,uint256)"))
    assert erc20.event_topic("Transfer") == expected
    assert expected.startswith("0xddf252ad")


def test_parse_bytecode():
    assert parse_bytecode("0x6080") == bytes.fromhex("6080")
    assert parse_bytecode("6080") == bytes.fromhex("6080")
    assert parse_bytecode({"object": "0x6080", "linkReferences": {}}) == b"\x60\x80"

    with pytest.raises(ValueError):
        parse_bytecode(None)

    with pytest.raises(ValueError):
        parse_bytecode({"object": ""})

    # unlinked library placeholder
    with pytest.raises(ValueError):
        parse_bytecode("0x73__$a1b2c3$__")


def test_load_contract(tmp_path, erc20):
    artifact = {
        "contractName": "Token",
        "abi": erc20.abi,
        "bytecode": {"object": hexify(erc20.bytecode)},
    }
    path = tmp_path / "Token.json"
    path.write_text(json.dumps(artifact))

    contract = load_contract(str(path))
    assert contract.name == "Token"
    assert contract.bytecode == erc20.bytecode
    assert contract.selector("transfer") == erc20.selector("transfer")


def test_load_contract_name_from_filename(tmp_path, erc20):
    path = tmp_path / "MyToken.json"
    path.write_text(json.dumps({"abi": erc20.abi, "bytecode": "0x6080"}))

    assert load_contract(str(path)).name == "MyToken"


def test_load_contract_without_abi(tmp_path):
    path = tmp_path / "Broken.json"
    path.write_text(json.dumps({"bytecode": "0x6080"}))

    with pytest.raises(ValueError, match="abi"):
        load_contract(str(path))
