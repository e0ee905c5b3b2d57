from __future__ import annotations

import hmac
import os
from dataclasses import dataclass
from typing import Literal, Optional

from db import cart

ADMIN_PASSWORD = os.getenv("CLASSDESK_ADMIN_PASSWORD", "admin")
USER_PASSWORD = os.getenv("CLASSDESK_USER_PASSWORD", "user")

Role = Literal["admin", "customer"]


def role_for_password(password: str) -> Optional[Role]:
    """Shared password gate: the password alone decides the role."""
    password = password or ""
    if hmac.compare_digest(password.encode(), ADMIN_PASSWORD.encode()):
        return "admin"
    if hmac.compare_digest(password.encode(), USER_PASSWORD.encode()):
        return "customer"
    return None


@dataclass
class GlobalState:
    """
    Centralized application state shared by screens.

    Fields:
      - role: "admin" | "customer" | None before the password gate
      - cart_session: cart session id owned by this app instance
      - language: language used for names in the customer panel and orders
    """

    role: Optional[Role] = None
    cart_session: Optional[str] = None
    language: str = "es"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    async def start_session(self) -> str:
        """Open a cart session if none is active, return its id."""
        if self.cart_session is None:
            self.cart_session = await cart.start_session()
        return self.cart_session

    async def end_session(self) -> None:
        """
        Drop the cart session and forget the role.
        Called upon logging out and on quit.
        """
        if self.cart_session is not None:
            await cart.end_session(self.cart_session)
        self.cart_session = None
        self.role = None
