"""Route guard - redirects page requests without a session to the login page.

The guard looks only at whether the session cookie is present. Decoding
and signature checks happen downstream, where the session is used.
"""

from dataclasses import dataclass
from enum import Enum

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse

LOGIN_PATH = "/auth/login"
HOME_PATH = "/"

PUBLIC_PATHS = (
    "/auth/login",
    "/auth/signup",
    "/auth/verify",
    "/verify",
)

# Reachable without a session; API routes enforce auth themselves.
PASSTHROUGH_PATHS = (
    "/api/",
    "/static/",
    "/favicon.ico",
    "/health",
)


class GuardAction(Enum):
    ALLOW = "allow"
    REDIRECT_TO_LOGIN = "redirect_to_login"
    REDIRECT_TO_HOME = "redirect_to_home"


@dataclass(frozen=True)
class GuardDecision:
    """What to do with a request; session_expired marks the login redirect."""

    action: GuardAction
    session_expired: bool = False

    @property
    def location(self) -> str | None:
        if self.action is GuardAction.REDIRECT_TO_HOME:
            return HOME_PATH
        if self.action is GuardAction.REDIRECT_TO_LOGIN:
            return f"{LOGIN_PATH}?session_expired=true" if self.session_expired else LOGIN_PATH
        return None


def _matches(path: str, prefixes: tuple[str, ...]) -> bool:
    return any(path == prefix or path.startswith(prefix) for prefix in prefixes)


def decide(path: str, has_session: bool) -> GuardDecision:
    """Decide how to route a request given its path and whether it carries a session cookie."""
    if _matches(path, PUBLIC_PATHS):
        # Logged-in users hitting the login page go home instead of re-logging in
        if has_session and path == LOGIN_PATH:
            return GuardDecision(GuardAction.REDIRECT_TO_HOME)
        return GuardDecision(GuardAction.ALLOW)

    if path == HOME_PATH:
        if not has_session:
            return GuardDecision(GuardAction.REDIRECT_TO_LOGIN)
        return GuardDecision(GuardAction.ALLOW)

    if has_session or _matches(path, PASSTHROUGH_PATHS):
        return GuardDecision(GuardAction.ALLOW)

    return GuardDecision(GuardAction.REDIRECT_TO_LOGIN, session_expired=True)


class RouteGuardMiddleware(BaseHTTPMiddleware):
    """Middleware that applies decide() to every request.

    Redirects are 302s. The cookie value is never inspected here.
    """

    def __init__(self, app, cookie_name: str = "session"):
        super().__init__(app)
        self._cookie_name = cookie_name

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        has_session = bool(request.cookies.get(self._cookie_name))
        decision = decide(request.url.path, has_session)

        if decision.action is GuardAction.ALLOW:
            return await call_next(request)

        return RedirectResponse(url=decision.location, status_code=302)
