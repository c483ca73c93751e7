"""
Tests for step witnesses and the calldata they encode to
"""
import pytest
from eth_hash.auto import keccak

from mipsevm_witness.abi import encode_args, function_selector, parse_signature, uint256
from mipsevm_witness.exceptions import CodecError, PreimageError, SizeError
from mipsevm_witness.step_witness import StepWitness
from mipsevm_witness.witness import StateWitness

STATE = StateWitness.from_fields(mem_root=b"\x33" * 32, pc=8, next_pc=12, step=3)


def length_prefixed(data: bytes) -> bytes:
    return len(data).to_bytes(8, "big") + data


def test_well_known_selectors():
    assert function_selector("transfer(address,uint256)") == bytes.fromhex("a9059cbb")
    assert function_selector("step(bytes,bytes)") == bytes.fromhex("f8e0cb96")


def test_parse_signature():
    assert parse_signature("step(bytes,bytes)") == ("step", ["bytes", "bytes"])
    assert parse_signature("reset()") == ("reset", [])
    with pytest.raises(ValueError):
        parse_signature("step")


def test_encode_args_rejects_unknown_types():
    with pytest.raises(ValueError):
        encode_args(["address"], [bytes(20)])
    with pytest.raises(ValueError):
        encode_args(["uint256", "bytes"], [1])
    with pytest.raises(ValueError):
        uint256(-1)


@pytest.mark.parametrize(
    "key, has_preimage",
    [
        pytest.param(None, False, id="no_key"),
        pytest.param(bytes(32), False, id="zero_key"),
        pytest.param(b"\x02" + bytes(31), True, id="keccak_type_only"),
        pytest.param(bytes(31) + b"\x01", True, id="low_byte"),
    ],
)
def test_has_preimage(key, has_preimage: bool):
    assert StepWitness(STATE, b"", preimage_key=key).has_preimage() is has_preimage


def test_no_preimage_input_without_key():
    assert StepWitness(STATE, b"\x01").encode_preimage_oracle_input() is None


def test_step_input_layout():
    proof = bytes(range(64))
    calldata = StepWitness(STATE, proof).encode_step_input()
    assert calldata[:4] == bytes.fromhex("f8e0cb96")
    # state: 226 bytes, padded to 256
    assert calldata[4:36] == uint256(0x40)
    assert calldata[36:68] == uint256(0x160)
    assert calldata[68:100] == uint256(226)
    assert calldata[100:326] == bytes(STATE)
    assert calldata[326:356] == bytes(30)
    assert calldata[356:388] == uint256(64)
    assert calldata[388:] == proof


def test_local_preimage_input():
    key = b"\x01" + bytes(30) + b"\x05"
    data = b"\xaa" * 20
    witness = StepWitness(
        STATE, b"", preimage_key=key, preimage_value=length_prefixed(data), preimage_offset=4
    )
    assert witness.preimage_data == data
    assert witness.encode_preimage_oracle_input() == (
        function_selector("loadLocalData(uint256,bytes32,uint256,uint256)")
        + uint256(5)
        + data
        + bytes(12)
        + uint256(20)
        + uint256(4)
    )


def test_local_preimage_longer_than_a_word_is_rejected():
    witness = StepWitness(
        STATE,
        b"",
        preimage_key=b"\x01" + bytes(31),
        preimage_value=length_prefixed(bytes(33)),
        preimage_offset=0,
    )
    with pytest.raises(PreimageError):
        witness.encode_preimage_oracle_input()


def test_keccak256_preimage_input():
    data = b"hello world, this preimage spans more than one word!"
    key = b"\x02" + keccak(data)[1:]
    witness = StepWitness(
        STATE, b"", preimage_key=key, preimage_value=length_prefixed(data), preimage_offset=8
    )
    padding = bytes(-len(data) % 32)
    assert witness.encode_preimage_oracle_input() == (
        function_selector("loadKeccak256PreimagePart(uint256,bytes)")
        + uint256(8)
        + uint256(0x40)
        + uint256(len(data))
        + data
        + padding
    )


@pytest.mark.parametrize("key_type", [0, 3, 0xFF])
def test_unsupported_key_type_is_rejected(key_type: int):
    witness = StepWitness(
        STATE,
        b"",
        preimage_key=bytes([key_type]) + b"\x01" * 31,
        preimage_value=length_prefixed(b"x"),
        preimage_offset=0,
    )
    with pytest.raises(PreimageError):
        witness.encode_preimage_oracle_input()


def test_missing_preimage_value_is_rejected():
    witness = StepWitness(STATE, b"", preimage_key=b"\x02" + b"\x01" * 31)
    with pytest.raises(PreimageError):
        witness.encode_preimage_oracle_input()


def test_state_is_coerced_and_checked():
    assert isinstance(StepWitness(bytes(STATE)).state, StateWitness)
    with pytest.raises(SizeError):
        StepWitness(bytes(225))
    with pytest.raises(SizeError):
        StepWitness(STATE, preimage_key=bytes(31))


def test_json_round_trip():
    witness = StepWitness(
        STATE,
        b"\x01\x02",
        preimage_key=b"\x02" + b"\x07" * 31,
        preimage_value=length_prefixed(b"abc"),
        preimage_offset=3,
    )
    data = witness.json_dict()
    assert data["state"] == STATE.to_hex()
    assert data["proof"] == "0x0102"
    assert data["preimageOffset"] == 3
    assert StepWitness.from_json(data) == witness


def test_json_without_preimage():
    data = StepWitness(STATE, b"").json_dict()
    assert set(data) == {"state", "proof"}
    assert StepWitness.from_json(data).preimage_key is None


@pytest.mark.parametrize(
    "data",
    [
        pytest.param({}, id="no_state"),
        pytest.param([], id="not_an_object"),
        pytest.param({"state": "0x00"}, id="short_state"),
        pytest.param({"state": STATE.to_hex(), "proof": "0xzz"}, id="bad_proof"),
        pytest.param({"state": STATE.to_hex(), "preimageKey": "0x01"}, id="short_key"),
        pytest.param({"state": STATE.to_hex(), "preimageOffset": -1}, id="negative_offset"),
        pytest.param({"state": STATE.to_hex(), "preimageOffset": 1 << 32}, id="offset_over_u32"),
        pytest.param({"state": STATE.to_hex(), "preimageOffset": "7"}, id="offset_not_int"),
    ],
)
def test_from_json_rejects_malformed(data):
    with pytest.raises(CodecError):
        StepWitness.from_json(data)
