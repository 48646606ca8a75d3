# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from typing import Any, Dict
from .common import EventName


class ContractEvent(BaseModel):
    """Log entry emitted by a contract. Only committed calls produce visible events."""
    name: EventName
    contract: str                 # Emitting contract address
    args: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int = 0
    index: int = -1               # Position in the committed log, -1 while pending
    call_id: str = ""
