# File: backend/app/core/config.py
import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    PROJECT_NAME: str = "Packet Signer API"
    PROJECT_VERSION: str = "0.1.0"

    # Storage settings
    SIGNED_DIR: str = os.getenv("SIGNED_DIR", os.path.join(os.getcwd(), "signed"))

    # Tag scanning
    # Streams with a larger raw payload are skipped instead of decompressed
    MAX_STREAM_BYTES: int = int(os.getenv("MAX_STREAM_BYTES", "500000"))
    # |x| and |y| both below this → position treated as unresolved
    POSITION_NOISE_THRESHOLD: float = float(os.getenv("POSITION_NOISE_THRESHOLD", "1.0"))
    # Role assigned to [[TEXT:...]] tags, which carry no signer role
    CATCH_ALL_ROLE: str = os.getenv("CATCH_ALL_ROLE", "any")

    # Stamping
    SIGNATURE_SHEAR: float = float(os.getenv("SIGNATURE_SHEAR", "0.2"))
    INK_COLOR: str = os.getenv("INK_COLOR", "0 0 0.5")
    # "Document completed: <timestamp>" on the last page of every stamped document
    COMPLETION_FOOTER: bool = os.getenv("COMPLETION_FOOTER", "true").lower() in ("1", "true", "yes")

    # CORS settings
    CORS_ORIGINS: list = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

settings = Settings()
