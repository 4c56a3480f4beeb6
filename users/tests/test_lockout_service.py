from datetime import timedelta

import pytest

from core.exceptions import AccountLocked, InvalidCredentials
from users.models import LoginAttempt, User, UserRole
from users.services import AuthenticationService, LoginLockoutService, RoleLookupService

pytestmark = pytest.mark.django_db

IP = '10.0.0.8'


@pytest.fixture
def lockout(clock):
    return LoginLockoutService(clock=clock)


def test_third_failure_locks_key(lockout):
    for _ in range(2):
        status = lockout.record_failed_attempt('juan@example.com', 'customer', IP)
        assert not status.is_locked

    status = lockout.record_failed_attempt('juan@example.com', 'customer', IP)

    assert status.is_locked
    assert status.lock_level == 1
    assert status.remaining_seconds == 60

    with pytest.raises(AccountLocked) as exc_info:
        lockout.check_login_allowed('juan@example.com', 'customer', IP)
    assert exc_info.value.wait == 60


def test_identifier_is_normalized(lockout):
    lockout.record_failed_attempt('  Juan@Example.COM ', 'customer', IP)
    lockout.record_failed_attempt('juan@example.com', 'customer', IP)

    assert LoginAttempt.objects.get().failed_attempts == 2


def test_keys_are_separate_per_portal_and_ip(lockout):
    for _ in range(3):
        lockout.record_failed_attempt('juan@example.com', 'customer', IP)

    lockout.check_login_allowed('juan@example.com', 'customer', '10.0.0.9')
    lockout.check_login_allowed('juan@example.com', 'admin', IP)


def test_lock_expires(lockout, clock):
    for _ in range(3):
        lockout.record_failed_attempt('juan@example.com', 'customer', IP)

    clock.advance(timedelta(seconds=61))

    status = lockout.check_login_allowed('juan@example.com', 'customer', IP)
    assert status.attempts_remaining == 3
    assert status.lock_level == 1


def test_unlock(lockout):
    for _ in range(3):
        lockout.record_failed_attempt('juan@example.com', 'customer', IP)
        lockout.record_failed_attempt('juan@example.com', 'customer', '10.0.0.9')

    assert lockout.unlock('JUAN@example.com', 'customer') == 2
    assert lockout.unlock('nobody@example.com', 'customer') == 0

    status = lockout.check_login_allowed('juan@example.com', 'customer', IP)
    assert status.failed_attempts == 0
    assert status.lock_level == 0


def test_cleanup_removes_stale_keys(lockout, clock):
    lockout.record_failed_attempt('old@example.com', 'customer', IP)
    lockout.record_failed_attempt('new@example.com', 'customer', IP)
    LoginAttempt.objects.filter(identifier='old@example.com').update(
        updated_at=clock.now() - timedelta(days=31)
    )
    LoginAttempt.objects.filter(identifier='new@example.com').update(
        updated_at=clock.now() - timedelta(days=1)
    )

    assert lockout.cleanup(retention_days=30) == 1
    assert list(LoginAttempt.objects.values_list('identifier', flat=True)) == ['new@example.com']


# =============================================================================
# AUTHENTICATION
# =============================================================================

def test_wrong_password_reports_attempts_left(customer, lockout):
    with pytest.raises(InvalidCredentials) as exc_info:
        AuthenticationService.authenticate('juan@example.com', 'wrong', 'customer', IP, lockout)

    assert exc_info.value.detail['attempts_remaining'] == 2


def test_locking_failure_raises_account_locked(customer, lockout):
    for _ in range(2):
        with pytest.raises(InvalidCredentials):
            AuthenticationService.authenticate('juan@example.com', 'wrong', 'customer', IP, lockout)

    with pytest.raises(AccountLocked):
        AuthenticationService.authenticate('juan@example.com', 'wrong', 'customer', IP, lockout)

    # Верный пароль во время блокировки не проверяется
    with pytest.raises(AccountLocked):
        AuthenticationService.authenticate('juan@example.com', 'correct-horse-42', 'customer', IP, lockout)


def test_success_clears_counter(customer, lockout, clock):
    with pytest.raises(InvalidCredentials):
        AuthenticationService.authenticate('juan@example.com', 'wrong', 'customer', IP, lockout)

    user = AuthenticationService.authenticate('Juan@Example.com', 'correct-horse-42', 'customer', IP, lockout)

    assert user == customer
    assert user.last_login == clock.now()
    assert lockout.get_lockout_status('juan@example.com', 'customer', IP).failed_attempts == 0


def test_unknown_user_counts_as_failure(db, lockout):
    with pytest.raises(InvalidCredentials):
        AuthenticationService.authenticate('ghost@example.com', 'whatever', 'customer', IP, lockout)

    assert lockout.get_lockout_status('ghost@example.com', 'customer', IP).failed_attempts == 1


def test_wrong_portal_is_rejected(customer, lockout):
    with pytest.raises(InvalidCredentials):
        AuthenticationService.authenticate('juan@example.com', 'correct-horse-42', 'admin', IP, lockout)

    assert lockout.get_lockout_status('juan@example.com', 'admin', IP).failed_attempts == 1


def test_member_logs_in_with_member_id(member, lockout):
    user = AuthenticationService.authenticate('M-0001', 'correct-horse-42', 'member', IP, lockout)

    assert user == member


def test_deactivated_account(customer, lockout):
    customer.is_active = False
    customer.save()

    with pytest.raises(InvalidCredentials) as exc_info:
        AuthenticationService.authenticate('juan@example.com', 'correct-horse-42', 'customer', IP, lockout)

    assert str(exc_info.value) == 'Your account has been deactivated.'
    assert lockout.get_lockout_status('juan@example.com', 'customer', IP).failed_attempts == 0


def test_role_lookup_finds_admins_and_permission_holders(admin_user, reviewer, customer):
    User.objects.create_user(
        email='former@agricart.local', password='x', name='Former', role=UserRole.ADMIN, is_active=False
    )

    recipients = RoleLookupService.users_with_role_or_permission('admin', 'orders.view_order')

    assert set(recipients) == {admin_user, reviewer}
