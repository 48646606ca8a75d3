# MIT License
# Copyright (c) 2025 Hashborn

"""
In-process execution host for ledger contracts.

Every state-changing contract method runs inside `Runtime.execute`, which holds
a single re-entrant lock for the whole call. The outermost call snapshots the
state of every deployed contract; if anything raises, all snapshots are
restored and buffered events are dropped, so a call either applies all of its
effects or none of them. Nested calls (the staking contract calling the token)
join the outer call.
"""
from typing import Callable, Dict, List, Optional, Tuple, Any
import functools
import inspect
import json
import logging
import threading

from pydantic import BaseModel, TypeAdapter, ValidationError as PydanticValidationError

from ...protocol.types.common import (
    CallType, EventName, LedgerError, InvalidSignature, InvalidNonce,
    UnknownMethod, InvalidArguments,
)
from ...protocol.types.events import ContractEvent
from ...protocol.types.tx import SignedCall
from ...protocol.crypto.hash import sha256_hex
from ...protocol.crypto.keys import verify
from ...protocol.crypto.addresses import address_from_pubkey, contract_address, decode_address
from ..observability import metrics
from ..storage.db import StorageDB
from .clock import SystemClock, ManualClock
from .events import EventBus
from .receipts import CallReceipt, CallReceiptStore, STATUS_SUCCESS, STATUS_REVERTED

logger = logging.getLogger(__name__)


class Contract:
    """Base class for contracts hosted by a Runtime."""

    kind = "contract"

    def __init__(self):
        self.address: Optional[str] = None
        self.runtime: Optional["Runtime"] = None
        self.state: BaseModel = None

    def _require_runtime(self) -> "Runtime":
        if self.runtime is None:
            raise RuntimeError(f"{type(self).__name__} is not deployed")
        return self.runtime

    def _now(self) -> int:
        return self._require_runtime().now()

    def _emit(self, name: EventName, args: Dict[str, Any]):
        self._require_runtime().emit(self, name, args)

    def snapshot(self) -> BaseModel:
        return self.state.model_copy(deep=True)

    def restore(self, snapshot: BaseModel):
        self.state = snapshot

    def on_deploy(self, deployer: str):
        """Runs once, inside a call, right after the contract gets its address."""


def transaction(method: Callable) -> Callable:
    """Marks a contract method as state-changing; it will run through Runtime.execute."""

    @functools.wraps(method)
    def wrapper(self, caller: str, *args, **kwargs):
        return self._require_runtime().execute(
            self, method.__name__, caller,
            lambda: method(self, caller, *args, **kwargs)
        )

    wrapper.is_transaction = True
    return wrapper


class Runtime:
    def __init__(self,
                 clock=None,
                 event_bus: EventBus = None,
                 receipts: CallReceiptStore = None):
        self.clock = clock if clock is not None else SystemClock()
        self.event_bus = event_bus if event_bus is not None else EventBus()
        self.receipts = receipts if receipts is not None else CallReceiptStore()

        self.contracts: Dict[str, Contract] = {}
        # Committed event log, in commit order
        self.logs: List[ContractEvent] = []
        # Signed-call nonces: address -> next expected nonce
        self.nonces: Dict[str, int] = {}
        self.routes: Dict[CallType, Tuple[Contract, str]] = {}
        self.last_receipt: Optional[CallReceipt] = None

        self._deploy_nonces: Dict[str, int] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._pending: List[ContractEvent] = []
        self._call_seq = 0
        self._call_id = ""

    # --- Time ---
    def now(self) -> int:
        return self.clock.now()

    def advance_time(self, seconds: int) -> int:
        if not isinstance(self.clock, ManualClock):
            raise ValueError("advance_time requires a ManualClock")
        with self._lock:
            return self.clock.advance(seconds)

    # --- Deployment ---
    def deploy(self, contract: Contract, deployer: str) -> Contract:
        """Assigns a deterministic address to `contract` and runs its deploy hook."""
        with self._lock:
            nonce = self._deploy_nonces.get(deployer, 0)
            address = contract_address(deployer, nonce)
            if address in self.contracts:
                raise ValueError(f"Contract address collision at {address}")

            contract.address = address
            contract.runtime = self
            self.contracts[address] = contract
            try:
                self.execute(contract, "deploy", deployer, lambda: contract.on_deploy(deployer))
            except Exception:
                del self.contracts[address]
                contract.runtime = None
                raise

            self._deploy_nonces[deployer] = nonce + 1
            logger.info(f"Deployed {type(contract).__name__} at {address} (deployer={deployer})")
            return contract

    def get_contract(self, address: str) -> Optional[Contract]:
        return self.contracts.get(address)

    # --- Execution ---
    def execute(self, contract: Contract, method: str, caller: str, fn: Callable[[], Any]) -> Any:
        """Runs `fn` as one all-or-nothing call."""
        with self._lock:
            if self._depth > 0:
                # Nested call joins the enclosing one
                self._depth += 1
                try:
                    return fn()
                finally:
                    self._depth -= 1

            snapshots = {addr: c.snapshot() for addr, c in self.contracts.items()}
            self._call_seq += 1
            self._call_id = sha256_hex(f"{contract.address}:{method}:{caller}:{self._call_seq}".encode("utf-8"))
            self._pending = []
            timestamp = self.now()
            receipt = CallReceipt(
                call_id=self._call_id,
                contract=contract.address,
                method=method,
                caller=caller,
                status=STATUS_SUCCESS,
                timestamp=timestamp,
            )

            try:
                self._depth = 1
                try:
                    result = fn()
                finally:
                    self._depth = 0
            except Exception as e:
                for addr, snap in snapshots.items():
                    self.contracts[addr].restore(snap)
                self._pending = []

                receipt.status = STATUS_REVERTED
                receipt.error = e.code if isinstance(e, LedgerError) else type(e).__name__
                receipt.message = str(e)
                self._finish(receipt)
                logger.info(f"Reverted {method} on {contract.address} from {caller}: {receipt.error} ({e})")
                self.event_bus.emit("call_reverted", receipt=receipt)
                raise

            committed = self._commit_pending()
            receipt.event_indexes = [ev.index for ev in committed]
            self._finish(receipt)
            for ev in committed:
                self.event_bus.emit(ev.name.value, event=ev)
            self.event_bus.emit("call_succeeded", receipt=receipt)
            return result

    def emit(self, contract: Contract, name: EventName, args: Dict[str, Any]):
        """Buffers an event for the current call; it becomes visible only on commit."""
        if self._depth == 0:
            raise RuntimeError("Events can only be emitted inside a call")
        self._pending.append(ContractEvent(
            name=name,
            contract=contract.address,
            args=dict(args),
            timestamp=self.now(),
            call_id=self._call_id,
        ))

    def _commit_pending(self) -> List[ContractEvent]:
        committed = []
        for ev in self._pending:
            ev.index = len(self.logs)
            self.logs.append(ev)
            metrics.record_event(ev)
            committed.append(ev)
        self._pending = []
        return committed

    def _finish(self, receipt: CallReceipt):
        self.receipts.add(receipt)
        self.last_receipt = receipt
        metrics.record_call(receipt.method, receipt.status, receipt.error)

    # --- Event log queries ---
    def events(self, name: Optional[str] = None, contract: Optional[str] = None,
               since_index: int = 0) -> List[ContractEvent]:
        with self._lock:
            out = []
            for ev in self.logs[since_index:]:
                if name and ev.name.value != name:
                    continue
                if contract and ev.contract != contract:
                    continue
                out.append(ev)
            return out

    # --- Signed calls ---
    def route(self, call_type: CallType, contract: Contract, method: str):
        """Allow-lists `contract.method` as the target of signed calls of `call_type`."""
        target = getattr(contract, method, None)
        if target is None or not getattr(target, "is_transaction", False):
            raise ValueError(f"{type(contract).__name__}.{method} is not a transaction method")
        self.routes[call_type] = (contract, method)

    def get_nonce(self, address: str) -> int:
        with self._lock:
            return self.nonces.get(address, 0)

    def submit(self, call: SignedCall) -> Any:
        """
        Verifies and dispatches a signed call.

        The nonce is consumed once the signature and nonce check pass, even if
        the call itself reverts.

        Returns:
            The contract method's return value. The receipt is `last_receipt`.
        """
        with self._lock:
            self._verify_call(call)

            route = self.routes.get(call.call_type)
            if route is None:
                raise UnknownMethod(f"No route for {call.call_type.value}")
            contract, method_name = route
            method = getattr(contract, method_name)

            self._check_arguments(call, method)

            self.nonces[call.from_address] = call.nonce + 1
            logger.debug(f"Dispatching {call.call_type.value} from {call.from_address} nonce={call.nonce}")
            return method(call.from_address, **call.args)

    def _check_arguments(self, call: SignedCall, method: Callable):
        """Rejects arguments that do not fit the method's signature and annotations."""
        signature = inspect.signature(method)
        try:
            signature.bind(call.from_address, **call.args)
        except TypeError as e:
            raise InvalidArguments(f"Bad arguments for {call.call_type.value}: {e}")

        for name, value in call.args.items():
            annotation = signature.parameters[name].annotation
            if annotation is inspect.Parameter.empty:
                continue
            try:
                # Strict: no "5" -> 5 or True -> 1 coercion
                TypeAdapter(annotation).validate_python(value, strict=True)
            except PydanticValidationError:
                raise InvalidArguments(
                    f"Bad argument {name!r} for {call.call_type.value}: "
                    f"expected {getattr(annotation, '__name__', annotation)}, got {type(value).__name__}"
                )

    def _verify_call(self, call: SignedCall):
        if not call.signature or not call.pub_key:
            raise InvalidSignature("Missing signature or pub_key")

        try:
            prefix, _ = decode_address(call.from_address)
            pub_bytes = bytes.fromhex(call.pub_key)
            sig_bytes = bytes.fromhex(call.signature)
        except ValueError as e:
            raise InvalidSignature(f"Invalid address format or key: {e}")

        derived_addr = address_from_pubkey(pub_bytes, prefix=prefix)
        if derived_addr != call.from_address:
            raise InvalidSignature(f"pub_key mismatch: derived {derived_addr}, expected {call.from_address}")

        if not verify(bytes.fromhex(call.hash()), sig_bytes, pub_bytes):
            raise InvalidSignature("Invalid signature")

        expected = self.nonces.get(call.from_address, 0)
        if call.nonce != expected:
            raise InvalidNonce(f"Invalid nonce: expected {expected}, got {call.nonce}")

    # --- Persistence ---
    def persist(self, db: StorageDB):
        """
        Writes contract state, nonces, clock and new events in one sqlite transaction.

        The event log is append-only, so only events past the stored `event_count`
        are written.
        """
        with self._lock:
            stored_events = int(db.get_state("event_count") or 0)
            items = {f"contract:{addr}": c.state.model_dump_json() for addr, c in self.contracts.items()}
            items["nonces"] = json.dumps(self.nonces)
            items["deploy_nonces"] = json.dumps(self._deploy_nonces)
            items["clock"] = str(self.now())
            new_events = self.logs[stored_events:]
            for ev in new_events:
                items[f"event:{ev.index:012d}"] = ev.model_dump_json()
            items["event_count"] = str(len(self.logs))
            db.set_many(items)
            logger.debug(f"Persisted {len(self.contracts)} contracts and {len(new_events)} new events")

    def restore(self, db: StorageDB) -> int:
        """
        Loads persisted state into the already-deployed contracts.

        Contracts must be redeployed in the same order by the same deployers so
        that their addresses match. Returns the number of contracts restored.
        """
        with self._lock:
            restored = 0
            for addr, contract in self.contracts.items():
                raw = db.get_state(f"contract:{addr}")
                if raw:
                    contract.state = type(contract.state).model_validate_json(raw)
                    restored += 1

            raw_nonces = db.get_state("nonces")
            if raw_nonces:
                self.nonces = {k: int(v) for k, v in json.loads(raw_nonces).items()}

            raw_deploy = db.get_state("deploy_nonces")
            if raw_deploy:
                for k, v in json.loads(raw_deploy).items():
                    self._deploy_nonces[k] = max(int(v), self._deploy_nonces.get(k, 0))

            raw_events = db.get_state_by_prefix("event:")
            if raw_events:
                self.logs = [ContractEvent.model_validate_json(v) for v in raw_events.values()]

            raw_clock = db.get_state("clock")
            if raw_clock and isinstance(self.clock, ManualClock) and int(raw_clock) > self.clock.now():
                self.clock.set(int(raw_clock))

            logger.info(f"Restored {restored} contracts, {len(self.logs)} events")
            return restored
