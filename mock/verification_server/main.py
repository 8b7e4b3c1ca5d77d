from fastapi import FastAPI
from pydantic import BaseModel
import os
import uuid

app = FastAPI(title="Mock Verification Server", version="1.0.0")
API_KEY = os.environ.get("MOCK_VERIFICATION_KEY", "mock-key")
SANDBOX_OTP = "111111"
# Identity numbers the sandbox treats as unknown / unlinked
INVALID_IDS = {"000000000000"}
UNLINKED_IDS = {"111111111111"}

requests = {}


class GenerateBody(BaseModel):
    key: str
    id_number: str


class SubmitBody(BaseModel):
    key: str
    request_id: str
    otp: str


def _error(status_code: int, message: str):
    return {"status_code": status_code, "status": "error", "message": message, "data": None}


@app.get("/health")
def health(): return {"status": "ok"}

@app.post("/api/v1/aadhaar-v2/generate-otp")
def generate_otp(body: GenerateBody):
    if body.key != API_KEY:
        return _error(401, "Invalid API key")
    if body.id_number in INVALID_IDS:
        return _error(422, "Invalid Aadhaar number")
    if body.id_number in UNLINKED_IDS:
        return _error(422, "Mobile number is not linked with this Aadhaar")
    request_id = str(uuid.uuid4())
    requests[request_id] = {"id_number": body.id_number, "used": False}
    return {"status_code": 200, "status": "success", "message": "OTP sent", "request_id": request_id, "data": {"otp_sent": True}}

@app.post("/api/v1/aadhaar-v2/submit-otp")
def submit_otp(body: SubmitBody):
    if body.key != API_KEY:
        return _error(401, "Invalid API key")
    entry = requests.get(body.request_id)
    if entry is None:
        return _error(422, "Invalid Request")
    if entry["used"]:
        return _error(422, "Request already processed")
    if body.otp != SANDBOX_OTP:
        return _error(422, "Invalid OTP")
    entry["used"] = True
    return {"status_code": 200, "status": "success", "message": "Verified", "data": {"valid_aadhaar": True}}
