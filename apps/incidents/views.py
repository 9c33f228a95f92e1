"""
Incident REST API views.

Views are thin: they validate request shape with serializers and hand
off to IncidentService / CommentService, which own authorization,
caching and auditing.
"""
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.response import Response

from apps.core.exceptions import ValidationError
from apps.core.views import AuthenticatedAPIView
from apps.incidents.serializers import (
    CommentCreateSerializer, CommentSerializer, IncidentCreateSerializer,
    IncidentQuerySerializer, IncidentSerializer, IncidentUpdateSerializer,
    PaginationQuerySerializer,
)
from apps.incidents.services import CommentService, IncidentService
from apps.rbac.audit import request_context


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise ValidationError('Validation error', details=serializer.errors)
    return serializer.validated_data


class IncidentListView(AuthenticatedAPIView):
    """
    GET /api/incidents/ - List incidents visible to the caller
    POST /api/incidents/ - Create an incident
    """

    @extend_schema(
        tags=['Incidents'],
        summary='List incidents',
        parameters=[
            OpenApiParameter('status', OpenApiTypes.STR, description='Filter by status'),
            OpenApiParameter('severity', OpenApiTypes.STR, description='Filter by severity'),
            OpenApiParameter('q', OpenApiTypes.STR, description='Free-text search in title and description'),
            OpenApiParameter('cursor', OpenApiTypes.UUID, description='Id of the last item of the previous page'),
            OpenApiParameter('limit', OpenApiTypes.INT, description='Page size (1-100, default 20)'),
        ],
        responses={200: OpenApiTypes.OBJECT}
    )
    def get(self, request):
        query = _validated(IncidentQuerySerializer, request.query_params)
        result = IncidentService.list_incidents(request.user, query, **request_context(request))
        return Response(result)

    @extend_schema(
        tags=['Incidents'],
        summary='Create incident',
        request=IncidentCreateSerializer,
        responses={201: IncidentSerializer}
    )
    def post(self, request):
        data = _validated(IncidentCreateSerializer, request.data)
        incident = IncidentService.create_incident(request.user, data, **request_context(request))
        return Response(incident, status=status.HTTP_201_CREATED)


class IncidentStatsView(AuthenticatedAPIView):
    """
    GET /api/incidents/stats - Incident counts per status
    """

    @extend_schema(
        tags=['Incidents'],
        summary='Incident statistics',
        responses={200: OpenApiTypes.OBJECT}
    )
    def get(self, request):
        return Response(IncidentService.get_incident_stats(request.user))


class IncidentDetailView(AuthenticatedAPIView):
    """
    GET /api/incidents/{id} - Get incident
    PATCH /api/incidents/{id} - Update incident (partial)
    DELETE /api/incidents/{id} - Delete incident
    """

    @extend_schema(tags=['Incidents'], summary='Get incident', responses={200: IncidentSerializer})
    def get(self, request, incident_id):
        return Response(IncidentService.get_incident(request.user, incident_id, **request_context(request)))

    @extend_schema(
        tags=['Incidents'],
        summary='Update incident',
        request=IncidentUpdateSerializer,
        responses={200: IncidentSerializer}
    )
    def patch(self, request, incident_id):
        data = _validated(IncidentUpdateSerializer, request.data)
        incident = IncidentService.update_incident(request.user, incident_id, data, **request_context(request))
        return Response(incident)

    @extend_schema(tags=['Incidents'], summary='Delete incident', responses={204: None})
    def delete(self, request, incident_id):
        IncidentService.delete_incident(request.user, incident_id, **request_context(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


class IncidentCommentsView(AuthenticatedAPIView):
    """
    GET /api/incidents/{id}/comments - List comments
    POST /api/incidents/{id}/comments - Add a comment
    """

    @extend_schema(
        tags=['Comments'],
        summary='List comments',
        parameters=[
            OpenApiParameter('cursor', OpenApiTypes.UUID),
            OpenApiParameter('limit', OpenApiTypes.INT),
        ],
        responses={200: OpenApiTypes.OBJECT}
    )
    def get(self, request, incident_id):
        query = _validated(PaginationQuerySerializer, request.query_params)
        cursor = query.get('cursor')
        result = CommentService.get_incident_comments(
            request.user,
            incident_id,
            cursor=str(cursor) if cursor else None,
            limit=query['limit'],
        )
        return Response(result)

    @extend_schema(
        tags=['Comments'],
        summary='Add comment',
        request=CommentCreateSerializer,
        responses={201: CommentSerializer}
    )
    def post(self, request, incident_id):
        data = _validated(CommentCreateSerializer, request.data)
        comment = CommentService.create_comment(request.user, incident_id, data, **request_context(request))
        return Response(comment, status=status.HTTP_201_CREATED)


class CommentDetailView(AuthenticatedAPIView):
    """
    DELETE /api/comments/{id} - Delete a comment
    """

    @extend_schema(tags=['Comments'], summary='Delete comment', responses={204: None})
    def delete(self, request, comment_id):
        CommentService.delete_comment(request.user, comment_id, **request_context(request))
        return Response(status=status.HTTP_204_NO_CONTENT)
