import pytest
from django.core.cache import cache
from django.urls import reverse
from rest_framework.test import APIClient

from billing.models import AuditEvent, User

pytestmark = pytest.mark.django_db


def login(client, username, password):
    return client.post(reverse('login_view'), {'username': username, 'password': password}, format='json')


def test_login_returns_jwt_and_legacy_token():
    client = APIClient()
    User.objects.create_user(username='cashier1', password='P@ssw0rd1', role='cashier')
    r = login(client, 'cashier1', 'P@ssw0rd1')
    assert r.status_code == 200
    assert r.data['jwt_access'] and r.data['jwt_refresh'] and r.data['token']
    assert r.data['role'] == 'cashier'


def test_role_cannot_be_escalated_at_login():
    client = APIClient()
    u = User.objects.create_user(username='doc1', password='P@ssw0rd1', role='doctor')
    r = client.post(reverse('login_view'), {'username': 'doc1', 'password': 'P@ssw0rd1', 'role': 'admin'},
                    format='json')
    assert r.status_code == 200
    assert r.data['role'] == 'doctor'
    u.refresh_from_db()
    assert u.role == 'doctor'


def test_failed_login_is_audited():
    client = APIClient()
    User.objects.create_user(username='cashier1', password='P@ssw0rd1', role='cashier')
    r = login(client, 'cashier1', 'wrong')
    assert r.status_code == 400
    assert AuditEvent.objects.filter(action='login', detail__result='fail').exists()


def test_token_and_jwt_both_authenticate():
    client = APIClient()
    User.objects.create_user(username='cashier1', password='P@ssw0rd1', role='cashier')
    r = login(client, 'cashier1', 'P@ssw0rd1')

    client.credentials(HTTP_AUTHORIZATION=f"Token {r.data['token']}")
    assert client.get('/api/invoice-ranges/status').status_code == 200

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {r.data['jwt_access']}")
    assert client.get('/api/invoice-ranges/status').status_code == 200


def test_anonymous_requests_are_rejected():
    client = APIClient()
    for path in ('/api/invoices', '/api/payments', '/api/invoice-ranges', '/api/invoice-ranges/status'):
        r = client.get(path)
        assert r.status_code in (401, 403)
        assert r.data['ok'] is False


def test_refresh_and_logout():
    client = APIClient()
    User.objects.create_user(username='admin1', password='P@ssw0rd1', role='admin')
    r = login(client, 'admin1', 'P@ssw0rd1')

    refreshed = client.post(reverse('jwt_refresh_view'), {'refresh': r.data['jwt_refresh']}, format='json')
    assert refreshed.status_code == 200
    assert refreshed.data['jwt_access']

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {r.data['jwt_access']}")
    out = client.post(reverse('jwt_logout_view'), {'refresh': r.data['jwt_refresh']}, format='json')
    assert out.status_code == 200
    assert out.data['blacklisted'] == 1


def test_login_is_throttled():
    cache.clear()
    client = APIClient()
    statuses = [login(client, 'nobody', 'wrong').status_code for _ in range(11)]
    assert statuses[:10] == [400] * 10
    assert statuses[10] == 429
