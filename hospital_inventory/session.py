"""Estado de autenticación: sesión inmutable, almacenamiento del token y gestor."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from pydantic import BaseModel, ConfigDict

from .events import AUTH_UNAUTHORIZED, EventChannel
from .replenishment.models import LoginResult, UserProfile

if TYPE_CHECKING:  # pragma: no cover - solo para anotaciones
    from .api_client import InventoryClient

logger = logging.getLogger(__name__)


class Session(BaseModel):
    """Token bearer y usuario autenticado; se reemplaza completo en cada cambio."""

    model_config = ConfigDict(frozen=True)

    token: str | None = None
    user: UserProfile | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)


class TokenStore:
    """Persist only the bearer token in a small JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("No se pudo leer el token almacenado en %s: %s", self.path, exc)
            return None
        token = data.get("token") if isinstance(data, dict) else None
        return token or None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({"token": token}), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class SessionManager:
    """Holds the current :class:`Session` and keeps the token store in sync."""

    def __init__(self, store: TokenStore, *, events: EventChannel | None = None) -> None:
        self.store = store
        self.session = Session(token=store.load())
        self._unsubscribe: Callable[[], None] | None = None
        if events is not None:
            self._unsubscribe = events.subscribe(AUTH_UNAUTHORIZED, self._on_unauthorized)

    def _adopt(self, result: LoginResult) -> Session:
        self.session = Session(token=result.token, user=result.user)
        self.store.save(result.token)
        logger.info("Sesión iniciada para %s", result.user.email)
        return self.session

    def login(self, client: "InventoryClient", email: str, password: str) -> Session:
        return self._adopt(client.login(email, password))

    def login_with_temp_code(self, client: "InventoryClient", email: str, code: str) -> Session:
        """Inicia sesión con el código temporal enviado por correo de recuperación."""

        return self._adopt(client.login_with_temp_code(email, code))

    def register(
        self,
        client: "InventoryClient",
        *,
        name: str,
        email: str,
        password: str,
        phone: str | None = None,
        address: str | None = None,
    ) -> Session:
        client.register(name=name, email=email, password=password, phone=phone, address=address)
        return self.login(client, email, password)

    def logout(self) -> Session:
        self.session = Session()
        self.store.clear()
        return self.session

    def update_user(self, client: "InventoryClient", **fields: Any) -> Session:
        data = client.with_session(self.session).update_user(**fields)
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            user = UserProfile.model_validate(data["user"])
        elif self.session.user is not None:
            changes = {key: value for key, value in fields.items() if key != "password"}
            user = self.session.user.model_copy(update=changes)
        else:
            user = None
        self.session = Session(token=self.session.token, user=user)
        return self.session

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_unauthorized(self, payload: Any) -> None:
        logger.info("Token rechazado por el backend; cerrando sesión")
        self.logout()


__all__ = ["Session", "SessionManager", "TokenStore"]
