from __future__ import annotations

from typing import Callable, Protocol

from returns.result import Result

from report_checkout.core.domain.model.errors import CheckoutError
from report_checkout.core.domain.model.session import CheckoutSession

SessionChange = Callable[[CheckoutSession], Result[CheckoutSession, CheckoutError]]


class SessionRepository(Protocol):
    def save(self, session: CheckoutSession) -> Result[CheckoutSession, CheckoutError]: ...

    def get(self, session_id: str) -> Result[CheckoutSession, CheckoutError]: ...

    def update(
        self, session_id: str, change: SessionChange
    ) -> Result[CheckoutSession, CheckoutError]:
        """
        Load, apply ``change`` and store the result as one step. Concurrent
        updates of the same session must not interleave; a failed change
        leaves the stored session untouched.
        """
        ...

    def find_by_order_id(self, internal_order_id: str) -> CheckoutSession | None:
        """Session whose current attempt carries ``internal_order_id``."""
        ...

    def delete(self, session_id: str) -> Result[None, CheckoutError]: ...
