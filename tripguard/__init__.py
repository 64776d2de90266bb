"""Risk controls, throttling, blacklisting and user account management stored in SQLite."""

__version__ = "0.1.0"

__all__ = [
    "errors",
    "risk_models",
    "risk_repository",
    "risk_engine",
    "risk_service",
    "users_models",
    "users_repository",
    "users_service",
    "worker",
]