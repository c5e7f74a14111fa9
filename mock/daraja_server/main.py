from fastapi import FastAPI, Header, HTTPException, Request
import os
import time
import uuid

app = FastAPI(title="Mock Daraja Server", version="1.0.0")
# Phone numbers that make the STK push request fail, comma separated
REJECT_PHONES = set(filter(None, os.environ.get("MOCK_DARAJA_REJECT_PHONES", "").split(",")))

@app.get("/health")
def health(): return {"status": "ok"}

@app.get("/oauth/v1/generate")
def generate_token(grant_type: str, authorization: str = Header(default="")):
    if grant_type != "client_credentials" or not authorization.startswith("Basic "):
        raise HTTPException(status_code=400, detail="invalid grant")
    return {"access_token": uuid.uuid4().hex, "expires_in": "3599"}

@app.post("/mpesa/stkpush/v1/processrequest")
async def stk_push(request: Request, authorization: str = Header(default="")):
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="missing token")
    body = await request.json()
    if body.get("PhoneNumber") in REJECT_PHONES:
        return {"requestId": uuid.uuid4().hex, "errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid PhoneNumber"}
    tag = f"{int(time.time())}{uuid.uuid4().hex[:6]}"
    return {
        "MerchantRequestID": f"29115-{tag}",
        "CheckoutRequestID": f"ws_CO_{tag}",
        "ResponseCode": "0",
        "ResponseDescription": "Success. Request accepted for processing",
        "CustomerMessage": "Success. Request accepted for processing",
    }
