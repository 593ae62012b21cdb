"""SystemRPG - authentication core for the RPG group management backend.

Issues, verifies and revokes JWT access and refresh tokens and gates every
protected request behind a bearer token check. The ASGI application lives
at ``systemrpg.infrastructure.api.app:app``.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
