"""
Custom DRF authentication classes.
"""
from django.conf import settings
from rest_framework.authentication import BaseAuthentication


class SessionTokenAuthentication(BaseAuthentication):
    """
    Authenticate requests with the opaque session token cookie.

    Returns None (anonymous) when the cookie is absent or the session is
    unknown or expired; views decide whether anonymous access is allowed.
    """

    def authenticate(self, request):
        """
        Returns:
            tuple: (user, token) if the session is valid, None otherwise
        """
        from apps.rbac.services import SessionService

        token = request.COOKIES.get(settings.AUTH_SESSION_COOKIE_NAME)
        if not token:
            return None

        user = SessionService.validate_session(token)
        if user is None:
            return None
        return (user, token)

    def authenticate_header(self, request):
        # Makes DRF answer 401 rather than 403 for unauthenticated requests
        return 'Session'
