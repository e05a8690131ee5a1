"""Trusted-header authentication for the registrations API.

Identity is established upstream (API gateway / SSO proxy) and forwarded in
``X-Principal-*`` headers. This module only reads them; it never verifies
credentials. Requests without ``X-Principal-Id`` are anonymous.
"""

from dataclasses import dataclass

from rest_framework import authentication, permissions

from .domain import Participant

ROLE_PARTICIPANT = "participant"
ROLE_ORGANIZER = "organizer"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as seen by DRF (``request.user``)."""

    id: str
    role: str = ROLE_PARTICIPANT
    category: str = ""
    email: str = ""
    name: str = ""

    is_authenticated = True
    is_anonymous = False

    @property
    def pk(self) -> str:
        return self.id

    @property
    def is_organizer(self) -> bool:
        return self.role == ROLE_ORGANIZER

    def as_participant(self) -> Participant:
        return Participant(id=self.id, category=self.category, email=self.email, name=self.name)


class TrustedHeaderAuthentication(authentication.BaseAuthentication):
    def authenticate(self, request):
        pid = (request.headers.get("X-Principal-Id") or "").strip()
        if not pid:
            return None
        principal = Principal(
            id=pid,
            role=(request.headers.get("X-Principal-Role") or ROLE_PARTICIPANT).strip().lower(),
            category=(request.headers.get("X-Principal-Category") or "").strip(),
            email=(request.headers.get("X-Principal-Email") or "").strip(),
            name=(request.headers.get("X-Principal-Name") or "").strip(),
        )
        return principal, None

    def authenticate_header(self, request):
        # Makes DRF answer 401 instead of 403 for anonymous callers
        return "X-Principal-Id"


class IsParticipant(permissions.BasePermission):
    def has_permission(self, request, view):
        return bool(getattr(request.user, "is_authenticated", False))


class IsOrganizer(permissions.BasePermission):
    def has_permission(self, request, view):
        return bool(getattr(request.user, "is_organizer", False))
