"""
Incident and comment services.

Every operation follows the same order: authorize, validate, persist,
invalidate cache, then append the audit record. Reads consult the cache
first and always enforce object-level access, including on cache hits.
"""
import logging
from typing import Any, Dict, Optional

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count

from apps.core.cache import CacheKeys, CacheService, CacheTTL, IncidentCacheInvalidator
from apps.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from apps.incidents.models import Comment, Incident, Status
from apps.incidents.serializers import CommentSerializer, IncidentSerializer
from apps.incidents.workflow import IncidentWorkflow
from apps.rbac.audit import AuditService, diff_fields
from apps.rbac.models import User
from apps.rbac.services import RBACService

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

UPDATABLE_FIELDS = ('title', 'description', 'severity', 'status', 'source')


def paginate(queryset, cursor=None, limit: int = DEFAULT_PAGE_SIZE, anchor_queryset=None):
    """
    Keyset pagination, newest first.

    ``cursor`` is the id of the last item of the previous page; the page
    holds items strictly older than it, ordered by (created_at, id).
    The cursor is resolved in ``anchor_queryset`` (default: ``queryset``)
    so a filtered listing keeps paging after the cursor item stops
    matching the filters.

    Returns:
        Tuple of (items, next_cursor, has_more)

    Raises:
        ValidationError: If the cursor does not identify an item of the anchor queryset
    """
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    queryset = queryset.order_by('-created_at', '-id')

    if anchor_queryset is None:
        anchor_queryset = queryset

    if cursor:
        try:
            anchor = anchor_queryset.filter(id=cursor).values('created_at', 'id').first()
        except (DjangoValidationError, ValueError):
            anchor = None
        if anchor is None:
            raise ValidationError('Invalid cursor', details={'cursor': str(cursor)})
        queryset = queryset.filter(created_at__lte=anchor['created_at']).exclude(
            created_at=anchor['created_at'], id__gte=anchor['id']
        )

    items = list(queryset[:limit + 1])
    has_more = len(items) > limit
    items = items[:limit]
    next_cursor = str(items[-1].id) if has_more and items else None
    return items, next_cursor, has_more


def _page(data, next_cursor, has_more) -> Dict[str, Any]:
    return {
        'data': data,
        'pagination': {'nextCursor': next_cursor, 'hasMore': has_more},
    }


def _get_incident(incident_id) -> Incident:
    try:
        return Incident.objects.select_related('created_by').get(id=incident_id)
    except (Incident.DoesNotExist, DjangoValidationError, ValueError):
        raise NotFoundError('Incident')


class IncidentService:
    """Service for incident operations."""

    @classmethod
    def create_incident(cls, user: User, data: Dict[str, Any],
                        ip_address: str = None, user_agent: str = None) -> Dict[str, Any]:
        """
        Create an incident owned by ``user`` in the initial status.

        Returns:
            Serialized incident
        """
        if not RBACService.can_create_incident(user):
            raise AuthorizationError('Insufficient permissions to create incident')

        incident = Incident.objects.create(
            title=data['title'],
            description=data['description'],
            severity=data['severity'],
            source=data.get('source') or None,
            status=IncidentWorkflow.INITIAL_STATUS,
            created_by=user,
        )

        IncidentCacheInvalidator.invalidate_incident_cache()
        AuditService.log_incident_create(
            user.id,
            incident.id,
            details={'title': incident.title, 'severity': incident.severity},
            ip_address=ip_address,
            user_agent=user_agent,
        )

        logger.info(
            "Incident created",
            extra={'incident_id': str(incident.id), 'user_id': str(user.id), 'severity': incident.severity}
        )
        return IncidentSerializer(incident).data

    @classmethod
    def get_incident(cls, user: User, incident_id,
                     ip_address: str = None, user_agent: str = None) -> Dict[str, Any]:
        """
        Fetch one incident through the detail cache.

        Raises:
            NotFoundError: If the incident does not exist
            AuthorizationError: If the user may not view it
        """
        cache_key = CacheKeys.format(CacheKeys.INCIDENT_DETAIL, incident_id=incident_id)
        data = CacheService.get(cache_key)

        if data is None:
            incident = _get_incident(incident_id)
            RBACService.require_incident_access(user, incident, 'view')
            data = IncidentSerializer(incident).data
            CacheService.set(cache_key, data, CacheTTL.INCIDENT_DETAIL)
        else:
            owner = Incident(id=data['id'], created_by_id=data['created_by_id'])
            RBACService.require_incident_access(user, owner, 'view')

        AuditService.log_incident_view(user.id, incident_id, ip_address=ip_address, user_agent=user_agent)
        return data

    @classmethod
    def list_incidents(cls, user: User, query: Dict[str, Any],
                       ip_address: str = None, user_agent: str = None) -> Dict[str, Any]:
        """
        List incidents visible to ``user``, newest first.

        Args:
            query: Optional status, severity, q (free text), cursor and limit

        Returns:
            {'data': [...], 'pagination': {'nextCursor', 'hasMore'}}
        """
        scope = RBACService.get_incident_filter(user)
        params = {
            'status': query.get('status'),
            'severity': query.get('severity'),
            'q': query.get('q') or None,
            'cursor': str(query['cursor']) if query.get('cursor') else None,
            'limit': query.get('limit') or DEFAULT_PAGE_SIZE,
        }
        key_template = CacheKeys.INCIDENT_SEARCH if params['q'] else CacheKeys.INCIDENT_LIST
        cache_key = CacheKeys.format(
            key_template,
            query_hash=CacheKeys.hash_query({'scope': scope, **params})
        )

        result = CacheService.get(cache_key)
        if result is None:
            # Scope first so no later filter can widen visibility
            scoped = Incident.objects.filter(**scope)
            queryset = scoped.select_related('created_by')
            if params['status']:
                queryset = queryset.filter(status=params['status'])
            if params['severity']:
                queryset = queryset.filter(severity=params['severity'])
            if params['q']:
                queryset = queryset.search(params['q'])

            items, next_cursor, has_more = paginate(
                queryset, params['cursor'], params['limit'], anchor_queryset=scoped
            )
            result = _page(IncidentSerializer(items, many=True).data, next_cursor, has_more)
            CacheService.set(cache_key, result, CacheTTL.INCIDENT_LIST)

        if params['q']:
            AuditService.log_incident_search(
                user.id,
                params,
                len(result['data']),
                ip_address=ip_address,
                user_agent=user_agent,
            )
        return result

    @classmethod
    def update_incident(cls, user: User, incident_id, data: Dict[str, Any],
                        ip_address: str = None, user_agent: str = None) -> Dict[str, Any]:
        """
        Apply a partial update.

        Raises:
            NotFoundError: If the incident does not exist
            AuthorizationError: If the user may not update it
            ValidationError: If the requested status change is not permitted
        """
        with transaction.atomic():
            try:
                incident = Incident.objects.select_for_update().get(id=incident_id)
            except (Incident.DoesNotExist, DjangoValidationError, ValueError):
                raise NotFoundError('Incident')

            RBACService.require_incident_access(user, incident, 'update')

            if 'status' in data:
                IncidentWorkflow.validate_transition(user, incident, incident.status, data['status'])

            updates = {field: data[field] for field in UPDATABLE_FIELDS if field in data}
            changes = diff_fields(incident, updates, UPDATABLE_FIELDS)
            for field, value in updates.items():
                setattr(incident, field, value)
            if changes:
                incident.save(update_fields=list(changes) + ['updated_at'])

        IncidentCacheInvalidator.invalidate_incident_cache(incident.id)
        AuditService.log_incident_update(
            user.id, incident.id, changes, ip_address=ip_address, user_agent=user_agent
        )

        logger.info(
            "Incident updated",
            extra={'incident_id': str(incident.id), 'user_id': str(user.id), 'changes': list(changes)}
        )
        incident = Incident.objects.select_related('created_by').get(id=incident.id)
        return IncidentSerializer(incident).data

    @classmethod
    def delete_incident(cls, user: User, incident_id,
                        ip_address: str = None, user_agent: str = None) -> None:
        incident = _get_incident(incident_id)
        RBACService.require_incident_access(user, incident, 'delete')

        incident.delete()

        IncidentCacheInvalidator.invalidate_incident_cache(incident_id)
        AuditService.log_incident_delete(user.id, incident_id, ip_address=ip_address, user_agent=user_agent)
        logger.info("Incident deleted", extra={'incident_id': str(incident_id), 'user_id': str(user.id)})

    @classmethod
    def get_incident_stats(cls, user: User) -> Dict[str, int]:
        """
        Count visible incidents per status.

        Returns:
            {'total': n, 'OPEN': n, 'IN_PROGRESS': n, 'RESOLVED': n, 'CLOSED': n}
        """
        scope = RBACService.get_incident_filter(user)
        cache_key = CacheKeys.format(
            CacheKeys.INCIDENT_STATS,
            query_hash=CacheKeys.hash_query({'scope': scope})
        )

        def compute():
            counts = {status: 0 for status in Status.values}
            rows = (
                Incident.objects.filter(**scope)
                .values('status')
                .annotate(count=Count('id'))
                .order_by()
            )
            for row in rows:
                counts[row['status']] = row['count']
            return {'total': sum(counts.values()), **counts}

        return CacheService.get_or_set(cache_key, compute, CacheTTL.INCIDENT_STATS)


class CommentService:
    """Service for incident comments."""

    @classmethod
    def create_comment(cls, user: User, incident_id, data: Dict[str, Any],
                       ip_address: str = None, user_agent: str = None) -> Dict[str, Any]:
        incident = _get_incident(incident_id)
        RBACService.require_comment_access(user, incident, 'create')

        comment = Comment.objects.create(incident=incident, author=user, body=data['body'])

        IncidentCacheInvalidator.invalidate_incident_cache(incident.id)
        AuditService.log_comment_create(
            user.id, comment.id, incident.id, ip_address=ip_address, user_agent=user_agent
        )

        logger.info(
            "Comment created",
            extra={'comment_id': str(comment.id), 'incident_id': str(incident.id), 'user_id': str(user.id)}
        )
        return CommentSerializer(comment).data

    @classmethod
    def get_incident_comments(cls, user: User, incident_id, cursor: Optional[str] = None,
                              limit: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
        """
        List an incident's comments, newest first.

        Returns:
            {'data': [...], 'pagination': {'nextCursor', 'hasMore'}}
        """
        incident = _get_incident(incident_id)
        RBACService.require_comment_access(user, incident, 'view')

        cache_key = CacheKeys.format(
            CacheKeys.INCIDENT_COMMENTS,
            incident_id=incident.id,
            cursor=cursor or 'start',
            limit=limit,
        )

        def compute():
            queryset = Comment.objects.filter(incident=incident).select_related('author')
            items, next_cursor, has_more = paginate(queryset, cursor, limit)
            return _page(CommentSerializer(items, many=True).data, next_cursor, has_more)

        return CacheService.get_or_set(cache_key, compute, CacheTTL.INCIDENT_COMMENTS)

    @classmethod
    def delete_comment(cls, user: User, comment_id,
                       ip_address: str = None, user_agent: str = None) -> None:
        try:
            comment = Comment.objects.get(id=comment_id)
        except (Comment.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFoundError('Comment')

        RBACService.require_comment_delete(user, comment)

        incident_id = comment.incident_id
        comment.delete()

        IncidentCacheInvalidator.invalidate_incident_cache(incident_id)
        AuditService.log_comment_delete(
            user.id, comment_id, incident_id, ip_address=ip_address, user_agent=user_agent
        )
        logger.info(
            "Comment deleted",
            extra={'comment_id': str(comment_id), 'incident_id': str(incident_id), 'user_id': str(user.id)}
        )
