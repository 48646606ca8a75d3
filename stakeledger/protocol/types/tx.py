# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from typing import Dict, Any
import json
from ..crypto.hash import sha256_hex
from ..crypto.keys import sign as crypto_sign
from .common import CallType


class SignedCall(BaseModel):
    """A state-changing contract call submitted to a node."""
    call_type: CallType
    from_address: str
    nonce: int
    args: Dict[str, Any] = Field(default_factory=dict)  # Method arguments, caller excluded
    signature: str = ""  # hex ECDSA (r||s), default empty
    pub_key: str = ""    # hex compressed public key of sender

    def hash(self) -> str:
        # Canonical JSON keeps the hash independent of argument order
        args_str = json.dumps(self.args, sort_keys=True, separators=(",", ":"))
        payload_str = (
            self.call_type.value
            + self.from_address
            + str(self.nonce)
            + args_str
            + self.pub_key
        )
        return sha256_hex(payload_str.encode("utf-8"))

    def sign(self, priv_key_bytes: bytes):
        """Signs the call hash."""
        msg_hash = bytes.fromhex(self.hash())
        self.signature = crypto_sign(msg_hash, priv_key_bytes).hex()
