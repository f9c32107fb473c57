import os
from pathlib import Path
from dotenv import load_dotenv
load_dotenv()  # reads .env in the project root

_AUTH_DATA_DIR = Path(__file__).resolve().parent / "auth" / "data"


class Settings:
    DATA_DIR = Path(os.getenv("DATA_DIR", "./data")).expanduser().resolve()
    DATA_DIR.mkdir(parents=True, exist_ok=True)

    WEB_HOST = os.getenv("WEB_HOST", "0.0.0.0")
    WEB_PORT = int(os.getenv("WEB_PORT", "8000"))
    PUBLIC_BASE = os.getenv("PUBLIC_BASE", "http://localhost:8000")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL = os.getenv(
        "DATABASE_URL", f"sqlite:///{DATA_DIR / 'pawboard.sqlite3'}"
    )
    # Upper bound on a single store round-trip (sqlite busy timeout / pool wait).
    STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))
    STORE_RETRY_BACKOFF_SECONDS = float(os.getenv("STORE_RETRY_BACKOFF_SECONDS", "0.1"))

    # ------------------------------------------------------------------
    # Sessions ----------------------------------------------------------

    SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")
    SESSION_LIFETIME_DAYS = float(os.getenv("SESSION_LIFETIME_DAYS", "30"))
    SESSION_ID_BYTES = int(os.getenv("SESSION_ID_BYTES", "32"))
    # "auto" follows the request scheme, otherwise a boolean override.
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "auto").strip().lower()

    # ------------------------------------------------------------------
    # Passwords ---------------------------------------------------------

    ARGON2_TIME_COST = int(os.getenv("ARGON2_TIME_COST", "3"))
    ARGON2_MEMORY_COST = int(os.getenv("ARGON2_MEMORY_COST", "65536"))
    ARGON2_PARALLELISM = int(os.getenv("ARGON2_PARALLELISM", "4"))
    PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "8"))
    PASSWORD_MAX_BYTES = int(os.getenv("PASSWORD_MAX_BYTES", "72"))

    COMMON_PASSWORDS_FILE = Path(
        os.getenv("COMMON_PASSWORDS_FILE", str(_AUTH_DATA_DIR / "common_passwords.txt"))
    )
    DISPOSABLE_DOMAINS_FILE = Path(
        os.getenv(
            "DISPOSABLE_DOMAINS_FILE",
            str(_AUTH_DATA_DIR / "disposable_domains.txt"),
        )
    )

    # ------------------------------------------------------------------
    # Login throttling --------------------------------------------------

    LOGIN_ATTEMPT_LIMIT = int(os.getenv("LOGIN_ATTEMPT_LIMIT", "5"))
    LOGIN_ATTEMPT_WINDOW = int(os.getenv("LOGIN_ATTEMPT_WINDOW", "300"))
    LOGIN_BACKOFF_SECONDS = int(os.getenv("LOGIN_BACKOFF_SECONDS", "900"))

    def session_cookie_secure(self, scheme: str) -> bool:
        """Return whether the session cookie must carry ``Secure``."""

        if self.SESSION_COOKIE_SECURE == "auto":
            return scheme == "https"
        return self.SESSION_COOKIE_SECURE in {"1", "true", "yes", "on"}

    def resolve_data_path(self, path: str | os.PathLike[str]) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.DATA_DIR / candidate
        return candidate.expanduser().resolve()


settings = Settings()
