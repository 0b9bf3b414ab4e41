"""
Session lifecycle for Kanbill.

Authentication is an external collaborator: it reports who is signed in
and calls back when that changes. A session start loads the user's board
and starts the timer; a session end stops the timer and clears the board.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Set

from kanbill.services.board import BoardController
from kanbill.services.timer import TimerTicker

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional["User"]], None]


@dataclass(frozen=True)
class User:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    is_pro: bool = False


class AuthProvider(ABC):
    """Source of the signed-in user."""

    @abstractmethod
    def current_user(self) -> Optional[User]:
        pass

    @abstractmethod
    def on_session_change(self, listener: SessionListener) -> None:
        """Register ``listener(user_or_none)`` for sign-in and sign-out."""
        pass


class StaticAuthProvider(AuthProvider):
    """
    Provider with a fixed identity.

    Used by the MCP server (identity from config) and in tests, where
    ``sign_in``/``sign_out`` simulate session changes.
    """

    def __init__(self, user: Optional[User] = None):
        self._user = user
        self._listeners: List[SessionListener] = []

    def current_user(self) -> Optional[User]:
        return self._user

    def on_session_change(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def sign_in(self, user: User) -> None:
        self._user = user
        for listener in self._listeners:
            listener(user)

    def sign_out(self) -> None:
        self._user = None
        for listener in self._listeners:
            listener(None)


class SessionManager:
    """Ties the board and its timer to the authentication state."""

    def __init__(self, controller: BoardController, ticker: Optional[TimerTicker] = None):
        self.controller = controller
        self.ticker = ticker or TimerTicker(controller)
        self.user: Optional[User] = None
        self._changes: Set[asyncio.Task] = set()
        self._last_change: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self.user is not None

    async def start(self, user: User) -> None:
        """Load ``user``'s board and start the timer."""
        if self.user is not None and self.user.id != user.id:
            await self.end()
        self.user = user
        await self.controller.load(user.id)
        self.ticker.start()
        logger.info(f"Session started for {user.id}")

    async def end(self) -> None:
        """Stop the timer, let pending writes finish and clear the board."""
        await self.ticker.stop()
        await self.controller.flush()
        self.controller.reset()
        if self.user is not None:
            logger.info(f"Session ended for {self.user.id}")
        self.user = None

    async def handle(self, user: Optional[User]) -> None:
        """React to a session change reported by an AuthProvider."""
        if user is None:
            await self.end()
        elif self.user is None or self.user.id != user.id:
            await self.start(user)

    def attach(self, auth: AuthProvider) -> None:
        """
        Follow ``auth`` from now on.

        Listeners are called synchronously, so each change is scheduled on
        the running loop and applied after the previous one. A user who is
        already signed in starts a session straight away. Must be called
        from a running event loop; await ``settle()`` to wait for the
        scheduled changes.
        """
        auth.on_session_change(self._on_change)
        user = auth.current_user()
        if user is not None:
            self._on_change(user)

    async def settle(self) -> None:
        """Wait until every scheduled session change has been applied."""
        while self._changes:
            await asyncio.gather(*set(self._changes), return_exceptions=True)

    def _on_change(self, user: Optional[User]) -> None:
        previous = self._last_change

        async def run():
            if previous is not None and not previous.done():
                await asyncio.wait({previous})
            try:
                await self.handle(user)
            except Exception:
                logger.exception(f"Session change to {user.id if user else 'signed out'} failed")

        job = asyncio.get_running_loop().create_task(run())
        self._last_change = job
        self._changes.add(job)
        job.add_done_callback(self._changes.discard)
