# File: backend/app/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from app.core.config import settings
from app.api.api import api_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description="Locate signing placeholders in PDF templates and stamp signer values into them.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)

logger.info(
    f"Stamping with shear={settings.SIGNATURE_SHEAR} ink='{settings.INK_COLOR}', "
    f"stream guard {settings.MAX_STREAM_BYTES} bytes, signed files in {settings.SIGNED_DIR}"
)


@app.get("/")
def read_root():
    return {"status": "Packet Signer API is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
