"""
Incident serializers for REST API endpoints.

Input serializers validate request shape only; authorization and
status transition rules are enforced by the services.
"""
from rest_framework import serializers

from apps.incidents.models import Comment, Incident, Severity, Status
from apps.rbac.models import User


class UserSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'email', 'role']


class IncidentSerializer(serializers.ModelSerializer):
    """Serializer for incident responses."""

    created_by_id = serializers.UUIDField(read_only=True)
    created_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = Incident
        fields = [
            'id', 'title', 'description', 'severity', 'status', 'source',
            'created_by_id', 'created_by', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class CommentSerializer(serializers.ModelSerializer):
    """Serializer for comment responses."""

    incident_id = serializers.UUIDField(read_only=True)
    author_id = serializers.UUIDField(read_only=True)
    author = UserSummarySerializer(read_only=True)

    class Meta:
        model = Comment
        fields = ['id', 'incident_id', 'author_id', 'author', 'body', 'created_at']
        read_only_fields = fields


class IncidentCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField()
    severity = serializers.ChoiceField(choices=Severity.choices)
    source = serializers.CharField(max_length=255, required=False, allow_null=True, allow_blank=True)


class IncidentUpdateSerializer(serializers.Serializer):
    """Any subset of the editable incident fields."""

    title = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False)
    severity = serializers.ChoiceField(choices=Severity.choices, required=False)
    status = serializers.ChoiceField(choices=Status.choices, required=False)
    source = serializers.CharField(max_length=255, required=False, allow_null=True, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError('At least one field must be provided.')
        return attrs


class PaginationQuerySerializer(serializers.Serializer):
    cursor = serializers.UUIDField(required=False)
    limit = serializers.IntegerField(min_value=1, max_value=100, default=20)


class IncidentQuerySerializer(PaginationQuerySerializer):
    status = serializers.ChoiceField(choices=Status.choices, required=False)
    severity = serializers.ChoiceField(choices=Severity.choices, required=False)
    q = serializers.CharField(required=False, allow_blank=True, max_length=200)


class CommentCreateSerializer(serializers.Serializer):
    body = serializers.CharField(max_length=10000)
