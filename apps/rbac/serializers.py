"""
RBAC serializers for REST API endpoints.
"""
from rest_framework import serializers

from apps.rbac.models import User


class LoginSerializer(serializers.Serializer):
    """Serializer for user login."""

    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        max_length=256,
        style={'input_type': 'password'}
    )

    def validate_email(self, value):
        return value.strip().lower()


class UserSerializer(serializers.ModelSerializer):
    """Public projection of a user."""

    class Meta:
        model = User
        fields = ['id', 'email', 'role', 'last_login_at', 'created_at']
        read_only_fields = fields
