"""
Tests for IncidentService and CommentService.

Covers scoping, keyset pagination, cache consistency after writes,
status workflow enforcement and the audit trail each operation leaves.
"""
import uuid

import pytest

from apps.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from apps.incidents.models import Comment, Incident, Severity, Status
from apps.incidents.services import CommentService, IncidentService, paginate
from apps.rbac.models import AuditLog


def _create(user, title='Malware beacon', severity=Severity.MEDIUM, **extra):
    data = {'title': title, 'description': f'{title} observed on host-7', 'severity': severity, **extra}
    return IncidentService.create_incident(user, data, ip_address='192.0.2.1', user_agent='pytest')


def _list(user, **query):
    query.setdefault('limit', 20)
    return IncidentService.list_incidents(user, query)


@pytest.mark.django_db
class TestCreateIncident:

    def test_create_opens_incident_owned_by_caller(self, client_user):
        data = _create(client_user, source='EDR')

        assert data['status'] == 'OPEN'
        assert data['created_by_id'] == str(client_user.id)
        assert data['source'] == 'EDR'

        entry = AuditLog.objects.by_resource('incident', data['id']).get()
        assert entry.action == 'CREATE_INCIDENT'
        assert entry.details == {'title': 'Malware beacon', 'severity': 'MEDIUM'}
        assert entry.ip_address == '192.0.2.1'

    def test_blank_source_is_stored_as_null(self, client_user):
        assert _create(client_user, source='')['source'] is None


@pytest.mark.django_db
class TestListIncidents:

    def test_client_sees_only_own_incidents(self, client_user, other_client_user, analyst):
        mine = _create(client_user)
        _create(other_client_user)

        assert [i['id'] for i in _list(client_user)['data']] == [mine['id']]
        assert len(_list(analyst)['data']) == 2

    def test_cached_analyst_page_never_leaks_to_client(self, client_user, other_client_user, analyst):
        _create(client_user)
        _create(other_client_user)

        assert len(_list(analyst)['data']) == 2
        assert len(_list(client_user)['data']) == 1

    def test_create_invalidates_cached_lists(self, analyst, client_user):
        _create(client_user)
        assert len(_list(analyst)['data']) == 1

        _create(client_user, title='Second')

        assert len(_list(analyst)['data']) == 2

    def test_filters(self, analyst):
        _create(analyst, severity=Severity.CRITICAL)
        low = _create(analyst, severity=Severity.LOW)
        Incident.objects.filter(id=low['id']).update(status=Status.RESOLVED)

        critical = _list(analyst, severity='CRITICAL')['data']
        resolved = _list(analyst, status='RESOLVED')['data']

        assert [i['severity'] for i in critical] == ['CRITICAL']
        assert [i['id'] for i in resolved] == [low['id']]

    def test_search_matches_title_or_description_and_is_audited(self, analyst, client_user):
        _create(client_user, title='Phishing wave')
        _create(client_user, title='Port scan')

        result = IncidentService.list_incidents(analyst, {'q': 'PHISH', 'limit': 20})
        # Second call is served from cache but is still audited
        IncidentService.list_incidents(analyst, {'q': 'PHISH', 'limit': 20})

        assert [i['title'] for i in result['data']] == ['Phishing wave']
        searches = AuditLog.objects.by_action('SEARCH_INCIDENTS').for_user(analyst)
        assert searches.count() == 2
        assert searches.first().details['result_count'] == 1
        assert searches.first().details['query']['q'] == 'PHISH'

    def test_plain_listing_is_not_audited(self, analyst):
        _list(analyst)
        assert not AuditLog.objects.by_action('SEARCH_INCIDENTS').exists()


@pytest.mark.django_db
class TestPagination:

    def test_walks_every_incident_once_newest_first(self, analyst):
        created = [_create(analyst, title=f'Incident {n}')['id'] for n in range(25)]

        seen, cursor, pages = [], None, 0
        while True:
            page = _list(analyst, limit=10, cursor=cursor)
            seen.extend(i['id'] for i in page['data'])
            pages += 1
            if not page['pagination']['hasMore']:
                assert page['pagination']['nextCursor'] is None
                break
            cursor = page['pagination']['nextCursor']

        assert pages == 3
        assert len(seen) == len(set(seen)) == 25
        assert set(seen) == set(created)
        timestamps = list(
            Incident.objects.filter(id__in=seen).order_by('-created_at', '-id').values_list('id', flat=True)
        )
        assert seen == [str(i) for i in timestamps]

    def test_exact_page_has_no_more(self, analyst):
        for n in range(3):
            _create(analyst, title=f'Incident {n}')

        page = _list(analyst, limit=3)

        assert len(page['data']) == 3
        assert page['pagination'] == {'nextCursor': None, 'hasMore': False}

    def test_unknown_cursor_is_rejected(self, analyst):
        _create(analyst)
        with pytest.raises(ValidationError) as exc_info:
            _list(analyst, cursor=str(uuid.uuid4()))
        assert exc_info.value.message == 'Invalid cursor'

    def test_filtered_paging_survives_cursor_item_changing_status(self, analyst):
        created = [_create(analyst, title=f'Incident {n}')['id'] for n in range(4)]

        first = _list(analyst, status=Status.OPEN, limit=2)
        cursor = first['pagination']['nextCursor']
        Incident.objects.filter(id=cursor).update(status=Status.RESOLVED)

        second = _list(analyst, status=Status.OPEN, limit=2, cursor=cursor)

        first_ids = [i['id'] for i in first['data']]
        second_ids = [i['id'] for i in second['data']]
        assert len(second_ids) == 2
        assert set(first_ids) | set(second_ids) == set(created)
        assert not set(first_ids) & set(second_ids)
        assert second['pagination'] == {'nextCursor': None, 'hasMore': False}

    def test_cursor_outside_scope_is_rejected(self, client_user, other_client_user):
        foreign = _create(other_client_user)
        with pytest.raises(ValidationError):
            _list(client_user, cursor=foreign['id'])

    def test_malformed_cursor_is_rejected(self, analyst):
        with pytest.raises(ValidationError):
            paginate(Incident.objects.all(), 'not-a-uuid', 10)

    def test_limit_is_clamped(self, analyst):
        _create(analyst)
        items, _, _ = paginate(Incident.objects.all(), None, 500)
        assert len(items) == 1


@pytest.mark.django_db
class TestGetIncident:

    def test_owner_can_view_and_view_is_audited(self, incident, client_user):
        data = IncidentService.get_incident(client_user, incident.id)

        assert data['title'] == incident.title
        assert AuditLog.objects.by_action('VIEW_INCIDENT').for_user(client_user).count() == 1

    def test_cached_detail_still_checks_access(self, incident, analyst, other_client_user):
        IncidentService.get_incident(analyst, incident.id)

        with pytest.raises(AuthorizationError):
            IncidentService.get_incident(other_client_user, incident.id)

    def test_missing_incident(self, analyst):
        with pytest.raises(NotFoundError) as exc_info:
            IncidentService.get_incident(analyst, uuid.uuid4())
        assert exc_info.value.message == 'Incident not found'


@pytest.mark.django_db
class TestUpdateIncident:

    def test_update_records_field_changes(self, incident, client_user):
        IncidentService.get_incident(client_user, incident.id)

        data = IncidentService.update_incident(client_user, incident.id, {'title': 'Credential stuffing'})

        assert data['title'] == 'Credential stuffing'
        assert IncidentService.get_incident(client_user, incident.id)['title'] == 'Credential stuffing'
        entry = AuditLog.objects.by_action('UPDATE_INCIDENT').get()
        assert entry.details == {
            'changes': {'title': {'from': 'Suspicious login burst', 'to': 'Credential stuffing'}}
        }

    def test_owner_may_resolve(self, incident, client_user):
        data = IncidentService.update_incident(client_user, incident.id, {'status': Status.RESOLVED})
        assert data['status'] == 'RESOLVED'

    def test_owner_may_not_reopen(self, incident, client_user):
        incident.status = Status.IN_PROGRESS
        incident.save()

        with pytest.raises(ValidationError) as exc_info:
            IncidentService.update_incident(client_user, incident.id, {'status': Status.OPEN})

        assert exc_info.value.details == {'from': 'IN_PROGRESS', 'to': 'OPEN'}
        incident.refresh_from_db()
        assert incident.status == Status.IN_PROGRESS
        assert not AuditLog.objects.by_action('UPDATE_INCIDENT').exists()

    def test_client_admin_may_not_close(self, incident, client_admin):
        with pytest.raises(ValidationError):
            IncidentService.update_incident(client_admin, incident.id, {'status': Status.CLOSED})

    def test_non_owner_is_denied(self, incident, other_client_user):
        with pytest.raises(AuthorizationError):
            IncidentService.update_incident(other_client_user, incident.id, {'title': 'mine now'})

    def test_setting_current_status_is_allowed(self, incident, client_user):
        data = IncidentService.update_incident(client_user, incident.id, {'status': Status.OPEN})
        assert data['status'] == 'OPEN'
        assert AuditLog.objects.by_action('UPDATE_INCIDENT').get().details == {'changes': {}}

    def test_missing_incident(self, analyst):
        with pytest.raises(NotFoundError):
            IncidentService.update_incident(analyst, uuid.uuid4(), {'title': 'x'})


@pytest.mark.django_db
class TestDeleteIncident:

    def test_only_analyst_deletes(self, incident, client_user, analyst):
        with pytest.raises(AuthorizationError):
            IncidentService.delete_incident(client_user, incident.id)

        IncidentService.delete_incident(analyst, incident.id)

        assert not Incident.objects.filter(id=incident.id).exists()
        assert AuditLog.objects.by_resource('incident', incident.id).by_action('DELETE_INCIDENT').exists()

    def test_deleted_incident_is_not_served_from_cache(self, incident, analyst):
        IncidentService.get_incident(analyst, incident.id)
        IncidentService.delete_incident(analyst, incident.id)

        with pytest.raises(NotFoundError):
            IncidentService.get_incident(analyst, incident.id)


@pytest.mark.django_db
class TestStats:

    def test_counts_per_status_within_scope(self, analyst, client_user, other_client_user):
        _create(client_user)
        resolved = _create(client_user)
        _create(other_client_user)
        Incident.objects.filter(id=resolved['id']).update(status=Status.RESOLVED)

        assert IncidentService.get_incident_stats(client_user) == {
            'total': 2, 'OPEN': 1, 'IN_PROGRESS': 0, 'RESOLVED': 1, 'CLOSED': 0,
        }
        assert IncidentService.get_incident_stats(analyst)['total'] == 3

    def test_stats_refresh_after_create(self, analyst):
        assert IncidentService.get_incident_stats(analyst)['total'] == 0
        _create(analyst)
        assert IncidentService.get_incident_stats(analyst)['total'] == 1


@pytest.mark.django_db
class TestComments:

    def test_create_and_list(self, incident, client_user, analyst):
        assert CommentService.get_incident_comments(client_user, incident.id)['data'] == []

        first = CommentService.create_comment(client_user, incident.id, {'body': 'Seen on VPN gateway'})
        second = CommentService.create_comment(analyst, incident.id, {'body': 'Blocked at firewall'})

        page = CommentService.get_incident_comments(client_user, incident.id)
        assert [c['id'] for c in page['data']] == [second['id'], first['id']]
        assert page['data'][0]['author']['role'] == 'ANALYST'
        assert AuditLog.objects.by_action('CREATE_COMMENT').count() == 2

    def test_non_viewer_cannot_comment_or_read(self, incident, other_client_user):
        with pytest.raises(AuthorizationError):
            CommentService.create_comment(other_client_user, incident.id, {'body': 'hi'})
        with pytest.raises(AuthorizationError):
            CommentService.get_incident_comments(other_client_user, incident.id)

    def test_comment_pagination(self, incident, analyst):
        for n in range(5):
            CommentService.create_comment(analyst, incident.id, {'body': f'note {n}'})

        first = CommentService.get_incident_comments(analyst, incident.id, limit=3)
        rest = CommentService.get_incident_comments(
            analyst, incident.id, cursor=first['pagination']['nextCursor'], limit=3
        )

        assert first['pagination']['hasMore'] is True
        assert len(rest['data']) == 2
        assert rest['pagination']['hasMore'] is False

    def test_delete_by_author_or_analyst(self, incident, client_user, client_admin, analyst):
        comment = CommentService.create_comment(client_user, incident.id, {'body': 'false alarm'})

        with pytest.raises(AuthorizationError):
            CommentService.delete_comment(client_admin, comment['id'])

        CommentService.delete_comment(client_user, comment['id'])

        assert not Comment.objects.exists()
        entry = AuditLog.objects.by_action('DELETE_COMMENT').get()
        assert entry.details == {'incident_id': str(incident.id)}
        assert CommentService.get_incident_comments(analyst, incident.id)['data'] == []

    def test_delete_missing_comment(self, analyst):
        with pytest.raises(NotFoundError):
            CommentService.delete_comment(analyst, uuid.uuid4())


@pytest.mark.django_db
def test_incident_lifecycle(client_user, analyst):
    """A client reports, an analyst triages and closes, the trail records it all."""
    incident = _create(client_user, title='Ransomware note on file share', severity=Severity.CRITICAL)

    IncidentService.update_incident(analyst, incident['id'], {'status': Status.IN_PROGRESS})
    CommentService.create_comment(analyst, incident['id'], {'body': 'Isolating the host'})
    IncidentService.update_incident(client_user, incident['id'], {'status': Status.RESOLVED})

    with pytest.raises(ValidationError):
        IncidentService.update_incident(client_user, incident['id'], {'status': Status.CLOSED})

    closed = IncidentService.update_incident(analyst, incident['id'], {'status': Status.CLOSED})

    assert closed['status'] == 'CLOSED'
    assert IncidentService.get_incident_stats(client_user)['CLOSED'] == 1
    actions = list(
        AuditLog.objects.order_by('id').values_list('action', flat=True)
    )
    assert actions == [
        'CREATE_INCIDENT', 'UPDATE_INCIDENT', 'CREATE_COMMENT', 'UPDATE_INCIDENT', 'UPDATE_INCIDENT',
    ]
