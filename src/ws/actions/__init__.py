"""WebSocket action dispatch table and result type."""

from __future__ import annotations

import dataclasses
from typing import Callable, Awaitable

from src.ws.context import WsSessionContext


@dataclasses.dataclass
class ActionResult:
    """Returned by each action handler.

    If ``needs_runner`` is True, the main loop calls ``run_turn(ctx)`` after
    the handler returns. Otherwise the handler replied inline.
    """
    needs_runner: bool = False


ActionHandler = Callable[[WsSessionContext, dict], Awaitable[ActionResult]]


def get_action_dispatch() -> dict[str, ActionHandler]:
    """Build the action -> handler table; imports are deferred to avoid cycles."""
    from src.ws.actions.chat import handle_chat
    from src.ws.actions.restore import handle_restore
    from src.ws.actions.reset import handle_reset

    return {
        "chat": handle_chat,
        "restore": handle_restore,
        "reset": handle_reset,
    }
