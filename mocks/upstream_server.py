from decimal import Decimal
from typing import Any, Dict
import uuid

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

app = FastAPI(title="Mock Upstream Server", version="1.0.0")

# Minor units per (address, coin_type); Paystack balance in kobo
STATE: Dict[str, Any] = {}


def reset() -> None:
    STATE.clear()
    STATE.update(
        {
            "balances": {},
            "failing_coin_types": set(),
            "paystack_balance_kobo": 50_000_000,
            "transfers": {},
            "transfer_outcome": "success",
            "credits": {},
        }
    )


reset()


@app.get("/health")
def health(): return {"status": "ok"}


@app.post("/_mock/balance")
def set_balance(payload: Dict[str, Any]):
    STATE["balances"][(payload["address"], payload["coin_type"])] = int(payload["total_balance"])
    return {"status": "ok"}


# Sui JSON-RPC


@app.post("/rpc")
async def sui_rpc(request: Request):
    body = await request.json()
    method, params = body.get("method"), body.get("params", [])

    if method == "sui_getLatestCheckpointSequenceNumber":
        return {"jsonrpc": "2.0", "id": body.get("id"), "result": "1024"}

    if method == "suix_getBalance":
        address, coin_type = params[0], params[1]
        if coin_type in STATE["failing_coin_types"]:
            raise HTTPException(status_code=502, detail="upstream node error")
        total = STATE["balances"].get((address, coin_type), 0)
        return {
            "jsonrpc": "2.0",
            "id": body.get("id"),
            "result": {"coinType": coin_type, "coinObjectCount": 1, "totalBalance": str(total)},
        }

    return {"jsonrpc": "2.0", "id": body.get("id"), "error": {"code": -32601, "message": "Method not found"}}


# Paystack


@app.post("/paystack/transferrecipient")
async def create_recipient(payload: Dict[str, Any]):
    if len(payload.get("account_number", "")) != 10:
        return JSONResponse(status_code=400, content={"status": False, "message": "Invalid account number"})
    return {"status": True, "data": {"recipient_code": f"RCP_{payload['account_number']}"}}


@app.post("/paystack/transfer")
async def initiate_transfer(payload: Dict[str, Any]):
    reference = payload["reference"]
    if reference in STATE["transfers"]:
        return JSONResponse(status_code=400, content={"status": False, "message": "Duplicate Transaction Reference"})
    if payload["amount"] > STATE["paystack_balance_kobo"]:
        return JSONResponse(status_code=400, content={"status": False, "message": "Your balance is not enough"})

    status = STATE["transfer_outcome"]
    if status == "success":
        STATE["paystack_balance_kobo"] -= payload["amount"]
    transfer = {"reference": reference, "status": status, "transfer_code": f"TRF_{uuid.uuid4().hex[:10]}"}
    STATE["transfers"][reference] = transfer
    return {"status": True, "data": transfer}


@app.get("/paystack/transfer/verify/{reference}")
def verify_transfer(reference: str):
    transfer = STATE["transfers"].get(reference)
    if transfer is None:
        return JSONResponse(status_code=404, content={"status": False, "message": "Transfer not found"})
    return {"status": True, "data": transfer}


@app.get("/paystack/balance")
def paystack_balance():
    return {"status": True, "data": [{"currency": "NGN", "balance": STATE["paystack_balance_kobo"]}]}


# Token crediting service


@app.post("/credit")
async def credit_tokens(request: Request, payload: Dict[str, Any]):
    key = request.headers.get("Idempotency-Key") or payload["transaction_id"]
    if key not in STATE["credits"]:
        STATE["credits"][key] = {
            "transaction_hash": f"0x{uuid.uuid4().hex}",
            "amount": str(Decimal(payload["token_amount"])),
        }
    return {"transaction_hash": STATE["credits"][key]["transaction_hash"]}
