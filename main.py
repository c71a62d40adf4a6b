import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from sqlalchemy.orm import Session

from commands import CommandInterpreter
from config import GOOGLE_GEOCODING_API_KEY, LOG_LEVEL, UBER_BASE_URL
from database import get_db, init_db
from geocoding import Geocoder, GoogleGeocoder
from providers import RideProvider, UberProvider
from schemas import CommandRequest, CommandResponse
from store import RideStore

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield

app = FastAPI(title="SmartRide Commands", lifespan=lifespan)

def get_geocoder() -> Geocoder:
    return GoogleGeocoder(GOOGLE_GEOCODING_API_KEY)

def get_provider_factory() -> Callable[[str], RideProvider]:
    return lambda bearer_token: UberProvider(UBER_BASE_URL, bearer_token)

def bearer_token(authorization: Optional[str] = Header(None)) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Bearer token required")
    return token.strip()

def build_interpreter(user_id: str, token: str, db: Session, geocoder: Geocoder,
                      provider_factory: Callable[[str], RideProvider]) -> CommandInterpreter:
    return CommandInterpreter(
        user_id=user_id,
        provider=provider_factory(token),
        geocoder=geocoder,
        store=RideStore(db),
    )

@app.post("/commands", response_model=CommandResponse)
def run_command(request: CommandRequest, db: Session = Depends(get_db),
                geocoder: Geocoder = Depends(get_geocoder),
                provider_factory=Depends(get_provider_factory)):
    interpreter = build_interpreter(request.user_id, request.access_token, db, geocoder, provider_factory)
    return CommandResponse(text=interpreter.run(request.text))

@app.post("/fares", response_model=CommandResponse)
def quote_fares(request: CommandRequest, db: Session = Depends(get_db),
                geocoder: Geocoder = Depends(get_geocoder),
                provider_factory=Depends(get_provider_factory)):
    interpreter = build_interpreter(request.user_id, request.access_token, db, geocoder, provider_factory)
    return CommandResponse(text=interpreter.call("fares", request.text.strip().lower()))

@app.get("/rides/{request_id}", response_model=CommandResponse)
def ride_status(request_id: str, user_id: str = "", token: str = Depends(bearer_token),
                db: Session = Depends(get_db), geocoder: Geocoder = Depends(get_geocoder),
                provider_factory=Depends(get_provider_factory)):
    interpreter = build_interpreter(user_id, token, db, geocoder, provider_factory)
    return CommandResponse(text=interpreter.call("status", request_id))

@app.delete("/rides/{request_id}", response_model=CommandResponse)
def cancel_ride(request_id: str, user_id: str = "", token: str = Depends(bearer_token),
                db: Session = Depends(get_db), geocoder: Geocoder = Depends(get_geocoder),
                provider_factory=Depends(get_provider_factory)):
    interpreter = build_interpreter(user_id, token, db, geocoder, provider_factory)
    return CommandResponse(text=interpreter.call("cancel", request_id))

@app.get("/health")
def health():
    return {"status": "ok"}

if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
