from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from api import lobbies, wallet
from config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(
    title="Dice Lobby API",
    description="Backend API for multiplayer dice wagering lobbies",
    version="1.0.0",
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(lobbies.router)
app.include_router(wallet.router)


@app.get("/")
def root():
    return {"message": "Dice Lobby API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
