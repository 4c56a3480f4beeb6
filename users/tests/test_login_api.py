import pytest
from rest_framework import status

from users.models import LoginAttempt

pytestmark = pytest.mark.django_db

LOGIN_URL = '/api/auth/login/'
STATUS_URL = '/api/auth/lockout-status/'


def login(client, password, identifier='juan@example.com', portal='customer'):
    return client.post(LOGIN_URL, {
        'identifier': identifier,
        'password': password,
        'portal': portal,
    }, format='json')


def test_login_returns_tokens(api_client, customer):
    response = login(api_client, 'correct-horse-42')

    assert response.status_code == status.HTTP_200_OK
    assert response.data['access']
    assert response.data['refresh']
    assert response.data['user']['email'] == 'juan@example.com'
    assert response.data['user']['role'] == 'customer'


def test_wrong_password(api_client, customer):
    response = login(api_client, 'wrong')

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.data['code'] == 'invalid_credentials'
    assert response.data['attempts_remaining'] == 2


def test_third_failure_returns_423_with_countdown(api_client, customer):
    login(api_client, 'wrong')
    login(api_client, 'wrong')

    response = login(api_client, 'wrong')

    assert response.status_code == status.HTTP_423_LOCKED
    assert response['Retry-After'] == '60'
    assert response.data['remaining_seconds'] == 60
    assert response.data['lock_level'] == 1
    assert 'try again in 1 minute' in response.data['error']

    response = login(api_client, 'correct-horse-42')
    assert response.status_code == status.HTTP_423_LOCKED


def test_lockout_status_endpoint(api_client, customer):
    for _ in range(3):
        login(api_client, 'wrong')

    response = api_client.get(STATUS_URL, {'identifier': 'JUAN@example.com', 'portal': 'customer'})

    assert response.status_code == status.HTTP_200_OK
    assert response.data['is_locked'] is True
    assert 0 < response.data['remaining_seconds'] <= 60
    assert response.data['attempts_remaining'] == 0
    assert response.data['server_time']


def test_lockout_status_for_unknown_identifier(api_client, db):
    response = api_client.get(STATUS_URL, {'identifier': 'ghost@example.com'})

    assert response.status_code == status.HTTP_200_OK
    assert response.data['is_locked'] is False
    assert response.data['attempts_remaining'] == 3


def test_admin_unlocks_identifier(api_client, auth_client, customer, admin_user):
    for _ in range(3):
        login(api_client, 'wrong')

    response = auth_client(admin_user).post('/api/auth/admin/login-attempts/unlock/', {
        'identifier': 'juan@example.com',
        'user_type': 'customer',
    }, format='json')

    assert response.status_code == status.HTTP_200_OK
    assert response.data['unlocked'] == 1
    assert login(api_client, 'correct-horse-42').status_code == status.HTTP_200_OK


def test_admin_unlocks_single_key(api_client, auth_client, customer, admin_user):
    for _ in range(3):
        login(api_client, 'wrong')
    attempt = LoginAttempt.objects.get()

    response = auth_client(admin_user).post(f'/api/auth/admin/login-attempts/{attempt.id}/unlock/')

    assert response.status_code == status.HTTP_200_OK
    assert response.data['attempt']['is_locked'] is False


def test_unlock_unknown_identifier(auth_client, admin_user):
    response = auth_client(admin_user).post('/api/auth/admin/login-attempts/unlock/', {
        'identifier': 'ghost@example.com',
        'user_type': 'customer',
    }, format='json')

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_login_attempts_are_admin_only(auth_client, customer):
    response = auth_client(customer).get('/api/auth/admin/login-attempts/')

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_forwarded_for_header_does_not_reset_lockout(api_client, customer):
    responses = [
        api_client.post(LOGIN_URL, {
            'identifier': 'juan@example.com',
            'password': 'wrong',
            'portal': 'customer',
        }, format='json', HTTP_X_FORWARDED_FOR=f'10.0.0.{i}')
        for i in range(3)
    ]

    assert [r.status_code for r in responses] == [
        status.HTTP_401_UNAUTHORIZED,
        status.HTTP_401_UNAUTHORIZED,
        status.HTTP_423_LOCKED,
    ]
    assert LoginAttempt.objects.get().ip_address == '127.0.0.1'


def test_forwarded_for_is_used_behind_trusted_proxy(api_client, customer, settings):
    settings.REST_FRAMEWORK = {**settings.REST_FRAMEWORK, 'NUM_PROXIES': 1}

    api_client.post(LOGIN_URL, {
        'identifier': 'juan@example.com',
        'password': 'wrong',
        'portal': 'customer',
    }, format='json', HTTP_X_FORWARDED_FOR='203.0.113.7')

    assert LoginAttempt.objects.get().ip_address == '203.0.113.7'


def test_garbage_forwarded_for_behind_proxy(api_client, customer, settings):
    settings.REST_FRAMEWORK = {**settings.REST_FRAMEWORK, 'NUM_PROXIES': 1}

    response = api_client.post(LOGIN_URL, {
        'identifier': 'juan@example.com',
        'password': 'wrong',
        'portal': 'customer',
    }, format='json', HTTP_X_FORWARDED_FOR='not-an-ip')

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert LoginAttempt.objects.get().ip_address == '0.0.0.0'
