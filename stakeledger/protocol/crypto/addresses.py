import bech32 # type: ignore
from .hash import hash160
from typing import Tuple, Optional

ACCOUNT_PREFIX = "stk"
CONTRACT_PREFIX = "stkc"

def _encode(prefix: str, h20: bytes) -> str:
    five_bit_r = bech32.convertbits(h20, 8, 5)
    if five_bit_r is None:
        raise ValueError("Error converting to bech32 words")
    return bech32.bech32_encode(prefix, five_bit_r)

def address_from_pubkey(pub_bytes: bytes, prefix: str = ACCOUNT_PREFIX) -> str:
    """Creates Bech32 address from public key."""
    return _encode(prefix, hash160(pub_bytes))

def contract_address(deployer: str, nonce: int, prefix: str = CONTRACT_PREFIX) -> str:
    """Deterministic address for the nonce-th contract deployed by `deployer`."""
    return _encode(prefix, hash160(f"{deployer}:{nonce}".encode("utf-8")))

def decode_address(addr: str) -> Tuple[str, bytes]:
    """Decodes Bech32 address to (prefix, h20_bytes)."""
    hrp, data = bech32.bech32_decode(addr)
    if hrp is None or data is None:
        raise ValueError("Invalid bech32 address")

    decoded = bech32.convertbits(data, 5, 8, False)
    if decoded is None:
        raise ValueError("Error converting from bech32 words")

    return hrp, bytes(decoded)

def is_valid_address(addr: str, expected_prefix: Optional[str] = None) -> bool:
    if not isinstance(addr, str):
        return False
    try:
        hrp, body = decode_address(addr)
    except ValueError:
        return False
    if expected_prefix and hrp != expected_prefix:
        return False
    return len(body) == 20

def is_ledger_address(addr: str) -> bool:
    """True for account and contract addresses, the only valid holders of tokens or roles."""
    return any(is_valid_address(addr, prefix) for prefix in (ACCOUNT_PREFIX, CONTRACT_PREFIX))
