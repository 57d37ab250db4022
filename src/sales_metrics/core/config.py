import os


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "t", "yes")


# PostgreSQL connection parts, used when DATABASE_URL is not given explicitly
DB_HOST: str = os.getenv("DB_HOST", "")
DB_PORT: int = int(os.getenv("DB_PORT", "5432"))
DB_USER: str = os.getenv("DB_USER", "user")
DB_PASSWORD: str = os.getenv("DB_PASSWORD", "pass")
DB_NAME: str = os.getenv("DB_NAME", "actifai")

# Connection pool bounds for PostgreSQL, ignored by sqlite
DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "5"))
DB_POOL_MAX_OVERFLOW: int = int(os.getenv("DB_POOL_MAX_OVERFLOW", "10"))
DB_POOL_TIMEOUT_SECONDS: float = float(os.getenv("DB_POOL_TIMEOUT_SECONDS", "30"))


def build_database_url() -> str:
    """
    Resolve the SQLAlchemy connection URL.

    An explicit DATABASE_URL wins. Otherwise a PostgreSQL URL is assembled from
    the DB_* variables when DB_HOST is set, and a local sqlite file is used as
    the last resort.
    """
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit
    if DB_HOST:
        return f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    return "sqlite+aiosqlite:///./sales_metrics.sqlite3"


DATABASE_URL: str = build_database_url()

QUERY_TIMEOUT_SECONDS: float = float(os.getenv("QUERY_TIMEOUT_SECONDS", "10"))
SEED_ON_STARTUP: bool = _env_flag("SEED_ON_STARTUP", "true")

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_NAMESPACES: list[str] = [
    ns.strip() for ns in os.getenv("LOG_NAMESPACES", "").split(",") if ns.strip()
]

HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "3000"))
