from typing import Optional

from flask import has_request_context
from flask_login import current_user, user_logged_in, user_logged_out


def current_identity() -> Optional[int]:
    """Id of the logged-in user for the current request, or None for anonymous play."""
    if not has_request_context():
        return None
    if current_user and current_user.is_authenticated:
        return current_user.id
    return None


class IdentitySubscription:
    """Delivers login/logout notifications for one app to ``callback(event, user)``.

    The receivers are held strongly, so ``unsubscribe`` must run when the
    subscriber goes away; use it as a context manager where possible.
    """

    def __init__(self, app, callback):
        self.app = app
        self.callback = callback
        self.active = False

    def subscribe(self):
        if not self.active:
            user_logged_in.connect(self._on_login, self.app, weak=False)
            user_logged_out.connect(self._on_logout, self.app, weak=False)
            self.active = True
        return self

    def unsubscribe(self):
        if not self.active:
            return
        user_logged_in.disconnect(self._on_login, self.app)
        user_logged_out.disconnect(self._on_logout, self.app)
        self.active = False

    def _on_login(self, sender, user=None, **extra):
        self.callback('login', user)

    def _on_logout(self, sender, user=None, **extra):
        self.callback('logout', user)

    def __enter__(self):
        return self.subscribe()

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()
        return False


class RoundIdentity:
    """The player a round scores for.

    Starts as whoever created the round, adopts a user who logs in and keeps
    playing it, and falls back to anonymous when that user logs out.
    """

    def __init__(self, user_id: Optional[int] = None):
        self.user_id = user_id

    def __call__(self) -> Optional[int]:
        return self.user_id

    def refresh(self, user_id: Optional[int]) -> None:
        if user_id is not None:
            self.user_id = user_id

    def on_change(self, event, user):
        user_id = getattr(user, 'id', None)
        if event == 'logout' and user_id is not None and user_id == self.user_id:
            self.user_id = None
