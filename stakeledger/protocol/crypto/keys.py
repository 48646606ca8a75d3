from ecdsa import SigningKey, VerifyingKey, SECP256k1 # type: ignore
import os

PRIVATE_KEY_SIZE = 32

def generate_private_key() -> bytes:
    """Generates a random 32-byte private key."""
    return os.urandom(PRIVATE_KEY_SIZE)

def private_key_from_hex(priv_hex: str) -> bytes:
    """Parses a hex private key, as stored in keystores and node data dirs."""
    try:
        priv = bytes.fromhex(priv_hex.strip())
    except ValueError:
        raise ValueError("Invalid hex string")
    if len(priv) != PRIVATE_KEY_SIZE:
        raise ValueError(f"Invalid private key length: {len(priv)} bytes (expected {PRIVATE_KEY_SIZE})")
    return priv

def public_key_from_private(priv_bytes: bytes) -> bytes:
    """Returns compressed 33-byte public key from private key."""
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    return sk.get_verifying_key().to_string("compressed")

def sign(message_hash: bytes, priv_bytes: bytes) -> bytes:
    """Signs a call hash with private key. Returns 64-byte (r,s) signature."""
    sk = SigningKey.from_string(priv_bytes, curve=SECP256k1)
    # RFC 6979 nonces: the same call signs to the same bytes
    return sk.sign_digest_deterministic(
        message_hash,
        sigencode=lambda r, s, order: r.to_bytes(32, 'big') + s.to_bytes(32, 'big'),
    )

def verify(message_hash: bytes, signature: bytes, pub_bytes: bytes) -> bool:
    """Verifies ECDSA signature. Malformed keys or signatures verify as False."""
    if len(signature) != 64:
        return False
    try:
        vk = VerifyingKey.from_string(pub_bytes, curve=SECP256k1)
        return vk.verify_digest(
            signature,
            message_hash,
            sigdecode=lambda sig, order: (int.from_bytes(sig[:32], 'big'), int.from_bytes(sig[32:], 'big')),
        )
    except Exception:
        return False
