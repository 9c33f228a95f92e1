"""
Authentication REST API views.

Implements endpoints for:
- Login (opens a session and sets the session cookie)
- Logout (destroys the session and clears the cookie)
- Current user
"""
from django.conf import settings
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiExample, extend_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core import rate_limiting
from apps.core.exceptions import ValidationError
from apps.core.middleware import get_client_ip
from apps.core.views import AuthenticatedAPIView
from apps.rbac.audit import request_context
from apps.rbac.serializers import LoginSerializer, UserSerializer
from apps.rbac.services import AuthService


def set_session_cookie(response, token):
    response.set_cookie(
        settings.AUTH_SESSION_COOKIE_NAME,
        token,
        max_age=settings.AUTH_SESSION_MAX_AGE,
        httponly=True,
        secure=not settings.DEBUG,
        samesite='Lax',
        path='/',
    )


def clear_session_cookie(response):
    response.set_cookie(
        settings.AUTH_SESSION_COOKIE_NAME,
        '',
        max_age=0,
        httponly=True,
        secure=not settings.DEBUG,
        samesite='Lax',
        path='/',
    )


@extend_schema(
    tags=['Authentication'],
    summary='Log in',
    description='''
Authenticate with email and password.

On success the opaque session token is set as an HttpOnly cookie.

**No authentication required** - this is a public endpoint.

**Rate limit**: 5 attempts per 15 minutes per IP
    ''',
    request=LoginSerializer,
    responses={
        200: OpenApiTypes.OBJECT,
        400: OpenApiTypes.OBJECT,
        401: OpenApiTypes.OBJECT,
        429: OpenApiTypes.OBJECT,
    },
    examples=[
        OpenApiExample(
            'Login Request',
            value={'email': 'analyst@secops.com', 'password': 'AnalystPass123!'},
            request_only=True
        ),
        OpenApiExample(
            'Invalid Credentials',
            value={'error': {'code': 'AUTHENTICATION_ERROR', 'message': 'Invalid email or password'}},
            response_only=True,
            status_codes=['401']
        ),
    ]
)
class LoginView(APIView):
    """
    POST /api/auth/login

    No authentication required.
    """
    authentication_classes = []
    permission_classes = []

    def post(self, request):
        ip_address = get_client_ip(request)
        rate_limiting.rate_limiter.enforce_limit(
            ip_address,
            rate_limiting.RATE_LIMITS['LOGIN'],
            endpoint=request.path,
            ip_address=ip_address,
        )

        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            raise ValidationError('Invalid login data', details=serializer.errors)

        user, token = AuthService.login(
            serializer.validated_data['email'],
            serializer.validated_data['password'],
            **request_context(request)
        )

        response = Response(
            {'user': UserSerializer(user).data, 'message': 'Login successful'},
            status=status.HTTP_200_OK
        )
        set_session_cookie(response, token)
        return response


@extend_schema(
    tags=['Authentication'],
    summary='Log out',
    request=None,
    responses={200: OpenApiTypes.OBJECT}
)
class LogoutView(APIView):
    """
    POST /api/auth/logout

    Destroys the current session if there is one; always clears the cookie.
    """
    permission_classes = []

    def post(self, request):
        token = request.COOKIES.get(settings.AUTH_SESSION_COOKIE_NAME)
        user = request.user if request.user and request.user.is_authenticated else None

        AuthService.logout(token, user=user, **request_context(request))

        response = Response({'message': 'Logout successful'}, status=status.HTTP_200_OK)
        clear_session_cookie(response)
        return response


@extend_schema(
    tags=['Authentication'],
    summary='Current user',
    responses={200: UserSerializer, 401: OpenApiTypes.OBJECT}
)
class MeView(AuthenticatedAPIView):
    """
    GET /api/auth/me
    """

    def get(self, request):
        return Response({'user': UserSerializer(request.user).data})
