"""
Tests for the outbox admin routes (Flask endpoints).
These tests verify authentication, request validation and the operator actions.
"""
import json

import pytest

from dojo.auth.utils import verify_admin_pin
from dojo.outbox import get_outbox
from dojo.outbox.entry import EntryStatus
from dojo.outbox.errors import ExecutorError
from dojo.outbox.service import OutboxService

EMAIL = {"to": ["parent@example.com"], "subject": "Grading reminder", "body": "See you Saturday"}


@pytest.fixture
def pending_entry(app):
    return OutboxService.enqueue("email", EMAIL)


# ==============================================================================
# AUTH TESTS
# ==============================================================================

class TestAdminAuth:
    """Tests for the admin PIN check."""

    def test_missing_pin_returns_401(self, client):
        response = client.get('/admin/outbox')

        assert response.status_code == 401
        assert json.loads(response.data)['error'] == 'Authentication required'

    def test_wrong_pin_returns_403(self, client):
        response = client.get('/admin/outbox', headers={'X-Admin-Pin': '0000'})

        assert response.status_code == 403
        assert json.loads(response.data)['error'] == 'Admin privileges required'

    def test_non_ascii_pin_returns_403(self, client):
        response = client.get('/admin/outbox', headers={'X-Admin-Pin': 'p\u00efn'})

        assert response.status_code == 403

    def test_verify_admin_pin(self, app):
        assert verify_admin_pin('4321') is True
        assert verify_admin_pin('p\u00efn') is False
        assert verify_admin_pin(None) is False

    def test_health_is_public(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert json.loads(response.data) == {'status': 'ok', 'executors': ['email']}


# ==============================================================================
# GET /admin/outbox TESTS
# ==============================================================================

class TestListEntries:
    """Tests for GET /admin/outbox."""

    def test_default_lists_exhausted_failures(self, client, admin_headers, pending_entry):
        response = client.get('/admin/outbox', headers=admin_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['entries'] == []
        assert data['filters']['status'] == 'failed'

    def test_exhausted_failure_is_listed(self, app, client, admin_headers, pending_entry):
        store = get_outbox().store
        entry = store.get_by_id(pending_entry.id)
        entry.attempts = entry.max_attempts
        entry.mark_failed("smtp timeout")
        store.save(entry)

        data = json.loads(client.get('/admin/outbox', headers=admin_headers).data)

        assert [e['id'] for e in data['entries']] == [pending_entry.id]
        assert data['entries'][0]['error_message'] == 'smtp timeout'

    def test_failed_view_uses_processor_attempt_limit(self, app, client, admin_headers, pending_entry):
        outbox = get_outbox()
        outbox.processor.max_attempts = 3
        entry = outbox.store.get_by_id(pending_entry.id)
        entry.attempts = 3
        entry.mark_failed("smtp timeout")
        outbox.store.save(entry)

        listed = json.loads(client.get('/admin/outbox', headers=admin_headers).data)
        summary = json.loads(client.get('/admin/outbox/summary', headers=admin_headers).data)

        assert [e['id'] for e in listed['entries']] == [pending_entry.id]
        assert summary['needs_attention'] == 1

    def test_failed_view_filtered_by_action_type_only_lists_exhausted(self, app, client, admin_headers, pending_entry):
        store = get_outbox().store
        retrying = store.get_by_id(pending_entry.id)
        retrying.attempts = 1
        retrying.mark_failed("smtp timeout")
        store.save(retrying)
        exhausted = OutboxService.enqueue("email", EMAIL, max_attempts=1)
        exhausted.attempts = 1
        exhausted.mark_failed("smtp timeout")
        store.save(exhausted)

        response = client.get('/admin/outbox?status=failed&action_type=email', headers=admin_headers)

        assert [e['id'] for e in json.loads(response.data)['entries']] == [exhausted.id]

    def test_all_lists_outstanding_entries(self, client, admin_headers, pending_entry):
        response = client.get('/admin/outbox?status=all', headers=admin_headers)

        data = json.loads(response.data)
        assert data['total'] == 1
        assert data['entries'][0]['status'] == 'pending'

    def test_filter_by_status_and_action_type(self, client, admin_headers, pending_entry):
        OutboxService.enqueue("github_issue", {"title": "Broken"})

        response = client.get('/admin/outbox?status=pending&action_type=github_issue', headers=admin_headers)

        data = json.loads(response.data)
        assert [e['action_type'] for e in data['entries']] == ['github_issue']

    def test_unknown_status_returns_400(self, client, admin_headers):
        response = client.get('/admin/outbox?status=retrying', headers=admin_headers)

        assert response.status_code == 400

    def test_out_of_range_limit_uses_default(self, client, admin_headers):
        response = client.get('/admin/outbox?limit=5000', headers=admin_headers)

        assert json.loads(response.data)['filters']['limit'] == 50


class TestGetEntry:
    """Tests for GET /admin/outbox/<id> and /summary."""

    def test_get_entry(self, client, admin_headers, pending_entry):
        response = client.get(f'/admin/outbox/{pending_entry.id}', headers=admin_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['id'] == pending_entry.id
        assert json.loads(data['payload']) == EMAIL

    def test_get_missing_entry_returns_404(self, client, admin_headers):
        response = client.get('/admin/outbox/nonexistent', headers=admin_headers)

        assert response.status_code == 404
        assert 'error' in json.loads(response.data)

    def test_summary(self, client, admin_headers, pending_entry):
        response = client.get('/admin/outbox/summary', headers=admin_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['by_status']['pending'] == 1
        assert data['outstanding'] == 1
        assert data['needs_attention'] == 0


# ==============================================================================
# POST /admin/outbox TESTS
# ==============================================================================

class TestEnqueueEntry:
    """Tests for POST /admin/outbox."""

    def test_enqueue_email(self, client, admin_headers):
        response = client.post('/admin/outbox', headers=admin_headers,
                               json={'action_type': 'email', 'payload': EMAIL, 'max_attempts': 3})

        assert response.status_code == 201
        data = json.loads(response.data)
        assert data['status'] == 'pending'
        assert data['attempts'] == 0
        assert data['max_attempts'] == 3
        assert get_outbox().store.get_by_id(data['id']).action_type == 'email'

    def test_missing_action_type_returns_400(self, client, admin_headers):
        response = client.post('/admin/outbox', headers=admin_headers, json={'payload': EMAIL})

        assert response.status_code == 400

    def test_missing_payload_returns_400(self, client, admin_headers):
        response = client.post('/admin/outbox', headers=admin_headers, json={'action_type': 'email'})

        assert response.status_code == 400

    @pytest.mark.parametrize('max_attempts', [0, -1, 'three', 2.5, True])
    def test_invalid_max_attempts_returns_400(self, client, admin_headers, max_attempts):
        response = client.post('/admin/outbox', headers=admin_headers,
                               json={'action_type': 'email', 'payload': EMAIL, 'max_attempts': max_attempts})

        assert response.status_code == 400

    def test_unregistered_action_type_is_still_accepted(self, client, admin_headers):
        response = client.post('/admin/outbox', headers=admin_headers,
                               json={'action_type': 'sms', 'payload': {'to': '+6421000000'}})

        assert response.status_code == 201


# ==============================================================================
# OPERATOR ACTION TESTS
# ==============================================================================

class TestRetryEntry:
    """Tests for POST /admin/outbox/<id>/retry."""

    def test_retry_succeeds(self, client, admin_headers, pending_entry, email_executor):
        response = client.post(f'/admin/outbox/{pending_entry.id}/retry', headers=admin_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'retry triggered'
        assert data['entry']['status'] == 'succeeded'
        assert data['entry']['external_id'] == 'msg-123'
        assert len(email_executor.calls) == 1

    def test_retry_failure_is_recorded(self, client, admin_headers, pending_entry, email_executor):
        email_executor.error = ExecutorError("smtp timeout")

        response = client.post(f'/admin/outbox/{pending_entry.id}/retry', headers=admin_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['entry']['status'] == 'failed'
        assert data['entry']['error_message'] == 'smtp timeout'

    def test_retry_terminal_entry_returns_400(self, client, admin_headers, pending_entry):
        client.post(f'/admin/outbox/{pending_entry.id}/retry', headers=admin_headers)

        response = client.post(f'/admin/outbox/{pending_entry.id}/retry', headers=admin_headers)

        assert response.status_code == 400

    def test_retry_leased_entry_returns_409(self, app, client, admin_headers, pending_entry):
        outbox = get_outbox()
        entry = outbox.store.get_by_id(pending_entry.id)
        outbox.store.claim(entry, outbox.processor.lease, outbox.processor.clock())

        response = client.post(f'/admin/outbox/{pending_entry.id}/retry', headers=admin_headers)

        assert response.status_code == 409

    def test_retry_missing_entry_returns_404(self, client, admin_headers):
        response = client.post('/admin/outbox/nonexistent/retry', headers=admin_headers)

        assert response.status_code == 404


class TestAbandonEntry:
    """Tests for POST /admin/outbox/<id>/abandon."""

    def test_abandon(self, client, admin_headers, pending_entry):
        response = client.post(f'/admin/outbox/{pending_entry.id}/abandon', headers=admin_headers)

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'abandoned'
        assert data['entry']['status'] == 'abandoned'
        assert get_outbox().store.list_pending(10) == []
        assert get_outbox().store.get_by_id(pending_entry.id).status == EntryStatus.ABANDONED

    def test_abandon_missing_entry_returns_404(self, client, admin_headers):
        response = client.post('/admin/outbox/nonexistent/abandon', headers=admin_headers)

        assert response.status_code == 404
