from fastapi import FastAPI, HTTPException, Body
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from pydantic import BaseModel
from typing import Optional, Any
import logging

from ... import __version__
from ...protocol.types.common import LedgerError, ValidationError
from ...protocol.types.stake import StakeView
from ...protocol.types.tx import SignedCall
from ..core.node import LedgerNode
from ..observability.metrics import metrics_registry, update_metrics

logger = logging.getLogger(__name__)

app = FastAPI(title="StakeLedger Node RPC")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Set by the node CLI (or tests) before serving
node: Optional[LedgerNode] = None


class CallResponse(BaseModel):
    call_id: str
    status: str
    result: Any = None


class AdvanceTime(BaseModel):
    seconds: int


def _require_node() -> LedgerNode:
    if not node:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return node


def _jsonable(result: Any) -> Any:
    # Amounts go out as strings; 18-decimal values overflow JSON number precision
    if isinstance(result, bool) or result is None or isinstance(result, str):
        return result
    if isinstance(result, int):
        return str(result)
    if isinstance(result, (tuple, list)):
        return [_jsonable(r) for r in result]
    return result


@app.get("/")
async def root():
    return {"message": "StakeLedger Node RPC", "version": __version__}


@app.get("/status")
async def get_status():
    n = _require_node()
    return {
        "network": n.config.network_id,
        "time": n.runtime.now(),
        "events": len(n.runtime.logs),
        "token": {
            "address": n.token.address,
            "name": n.token.name,
            "symbol": n.token.symbol,
            "decimals": n.token.decimals,
            "total_supply": str(n.token.total_supply()),
        },
        "staking": {
            "address": n.staking.address,
            "owner": n.staking.owner,
            "min_staking_period": n.staking.min_staking_period,
            "reward_rate_percent": n.staking.reward_rate_percent,
            "total_staked": str(n.staking.total_staked()),
            "reward_reserve": str(n.staking.reward_reserve()),
        },
    }


@app.get("/balance/{address}")
async def get_balance(address: str):
    n = _require_node()
    return {
        "address": address,
        "balance": str(n.token.balance_of(address)),
        "nonce": n.runtime.get_nonce(address),
    }


@app.get("/allowance/{owner}/{spender}")
async def get_allowance(owner: str, spender: str):
    n = _require_node()
    return {
        "owner": owner,
        "spender": spender,
        "allowance": str(n.token.allowance(owner, spender)),
    }


@app.get("/stake/{address}", response_model=StakeView)
async def get_stake(address: str):
    n = _require_node()
    record = n.staking.stake_of(address)
    return StakeView(
        participant=address,
        amount=record.amount,
        since=record.since if record.is_active else None,
        unlocks_at=n.staking.unlocks_at(address),
        accrued_reward=n.staking.calculate_reward(address),
    )


@app.get("/reward/{address}")
async def get_reward(address: str):
    n = _require_node()
    return {"address": address, "reward": str(n.staking.calculate_reward(address))}


@app.get("/events")
async def get_events(name: Optional[str] = None, since: int = 0, limit: int = 100):
    n = _require_node()
    events = n.runtime.events(name=name, since_index=since)[:limit]
    return {"events": [ev.model_dump(mode="json") for ev in events]}


@app.get("/receipt/{call_id}")
async def get_receipt(call_id: str):
    n = _require_node()
    receipt = n.runtime.receipts.get(call_id)
    if not receipt:
        raise HTTPException(status_code=404, detail="Receipt not found")
    return receipt.to_dict()


@app.post("/tx/send", response_model=CallResponse)
async def send_call(call: SignedCall = Body(...)):
    n = _require_node()
    try:
        result = n.runtime.submit(call)
    except ValidationError as e:
        # Rejected before execution: no receipt, nonce untouched
        logger.warning(f"Rejected {call.call_type.value} from {call.from_address}: {e.code}")
        raise HTTPException(status_code=400, detail={"error": e.code, "message": e.message})
    except LedgerError as e:
        # Reverted during execution: the nonce is spent
        n.persist()
        receipt = n.runtime.last_receipt
        raise HTTPException(status_code=400, detail={
            "error": e.code,
            "message": e.message,
            "call_id": receipt.call_id if receipt else None,
        })
    except Exception as e:
        # Failed inside the contract: the nonce is spent and the call reverted
        logger.error(f"{call.call_type.value} from {call.from_address} failed: {e}", exc_info=True)
        n.persist()
        receipt = n.runtime.last_receipt
        raise HTTPException(status_code=400, detail={
            "error": type(e).__name__,
            "message": str(e),
            "call_id": receipt.call_id if receipt else None,
        })

    n.persist()
    receipt = n.runtime.last_receipt
    return CallResponse(call_id=receipt.call_id, status=receipt.status, result=_jsonable(result))


@app.post("/time/advance")
async def advance_time(req: AdvanceTime):
    n = _require_node()
    try:
        now = n.runtime.advance_time(req.seconds)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    n.persist()
    return {"time": now}


@app.get("/metrics")
async def get_metrics():
    n = _require_node()
    update_metrics(n.runtime)
    return Response(content=generate_latest(metrics_registry), media_type=CONTENT_TYPE_LATEST)
