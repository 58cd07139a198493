"""
Test suite for the core module
Tests: roles, auth, users, system configuration, audit logs, cache service, search
"""
import re
from unittest import mock

from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from backend.core.cache_service import cache_service, CacheKeys, CacheService
from backend.core.cache_utils import cached_query, invalidate_dashboard_cache, make_cache_key, REPORTS_KEY_PREFIX
from backend.core.models import AuditLog, SystemConfig
from backend.core.permissions import (
    ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT, ROLE_CUSTOMER, ROLE_TECHNICIAN_IN_SHOP,
    user_has_role, is_manager, is_backoffice_staff
)
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.utils import generate_document_number, paginate_queryset


class RoleTests(TestCase):
    """Test role helpers"""

    def test_user_has_role(self):
        user = TestDataFactory.create_user(roles=[ROLE_ACCOUNTANT])
        self.assertTrue(user_has_role(user, ROLE_ACCOUNTANT))
        self.assertFalse(user_has_role(user, ROLE_ADMIN))

    def test_superuser_passes_every_check(self):
        user = TestDataFactory.create_user(is_superuser=True)
        self.assertTrue(is_manager(user))
        self.assertTrue(user_has_role(user, ROLE_TECHNICIAN_IN_SHOP))

    def test_customer_is_not_backoffice_staff(self):
        customer = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        technician = TestDataFactory.create_user(roles=[ROLE_TECHNICIAN_IN_SHOP])
        self.assertFalse(is_backoffice_staff(customer))
        self.assertTrue(is_backoffice_staff(technician))
        self.assertFalse(is_manager(technician))


class AuthAPITests(TestCase):
    """Test registration, login and the current-user endpoint"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_register_assigns_customer_role(self):
        data = {
            'username': 'newcustomer',
            'email': 'newcustomer@test.com',
            'password': 'Str0ng-pass-123',
            'password_confirm': 'Str0ng-pass-123',
        }
        response = self.client.post('/api/v1/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertEqual(response.data['user']['roles'], [ROLE_CUSTOMER])

    def test_register_password_mismatch(self):
        data = {
            'username': 'mismatch',
            'password': 'Str0ng-pass-123',
            'password_confirm': 'other-pass-123',
        }
        response = self.client.post('/api/v1/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login_returns_tokens(self):
        TestDataFactory.create_user(username='loginuser', password='testpass123')
        response = self.client.post('/api/v1/auth/login/', {'username': 'loginuser', 'password': 'testpass123'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

    def test_me_role_flags(self):
        user = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.client.authenticate_user(user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_manager'])
        self.assertFalse(response.data['is_admin'])
        self.assertTrue(response.data['can_access_accounting'])

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class UserAPITests(TestCase):
    """Test user administration endpoints"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(roles=[ROLE_ADMIN])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_list_users_requires_admin(self):
        manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.client.authenticate_user(manager)
        response = self.client.get('/api/v1/users/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_users_filtered_by_role(self):
        TestDataFactory.create_user(roles=[ROLE_ACCOUNTANT])
        response = self.client.get('/api/v1/users/', {'role': ROLE_ACCOUNTANT})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_replace_roles(self):
        user = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        response = self.client.put(f'/api/v1/users/{user.id}/roles/', {'roles': [ROLE_MANAGER]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        user.refresh_from_db()
        self.assertEqual(user.role_names, [ROLE_MANAGER])
        self.assertTrue(user.is_staff)
        self.assertTrue(AuditLog.objects.filter(action='role_change', object_id=str(user.id)).exists())

    def test_unknown_role_rejected(self):
        user = TestDataFactory.create_user()
        response = self.client.put(f'/api/v1/users/{user.id}/roles/', {'roles': ['Wizard']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_delete_self(self):
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class SystemConfigAPITests(TestCase):
    """Test system configuration endpoints and their cache"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_user(roles=[ROLE_ADMIN])
        self.client = AuthenticatedAPIClient()
        SystemConfig.objects.create(key='store_name', value='Main Store', is_public=True)
        SystemConfig.objects.create(key='smtp_password', value='secret', is_public=False)

    def test_anonymous_sees_public_configs_only(self):
        response = self.client.get('/api/v1/system-configs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        keys = [c['key'] for c in response.data]
        self.assertEqual(keys, ['store_name'])

    def test_private_config_hidden_from_anonymous(self):
        response = self.client.get('/api/v1/system-configs/smtp_password/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_invalidates_cached_value(self):
        self.client.get('/api/v1/system-configs/store_name/')
        self.assertTrue(cache_service.exists(CacheKeys.system_config('store_name')))

        self.client.authenticate_user(self.admin)
        response = self.client.patch('/api/v1/system-configs/store_name/', {'value': 'Outlet'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.get('/api/v1/system-configs/store_name/')
        self.assertEqual(response.data['value'], 'Outlet')

    def test_non_admin_cannot_create(self):
        user = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.client.authenticate_user(user)
        response = self.client.post('/api/v1/system-configs/', {'key': 'x', 'value': 'y'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class AuditLogAPITests(TestCase):
    """Test audit log visibility"""

    def setUp(self):
        self.admin = TestDataFactory.create_user(roles=[ROLE_ADMIN])
        self.user = TestDataFactory.create_user()
        AuditLog.objects.create(user=self.admin, action='create', model_name='Product', object_id='1')
        AuditLog.objects.create(user=self.user, action='update', model_name='Order', object_id='2')
        self.client = AuthenticatedAPIClient()

    def test_admin_sees_all_logs(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(len(response.data), 2)

    def test_user_sees_own_logs(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['model_name'], 'Order')

    def test_filter_by_action(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/audit-logs/', {'action': 'create'})
        self.assertEqual(len(response.data), 1)


class CacheServiceTests(TestCase):
    """Test the cache service and query caching helpers"""

    def setUp(self):
        cache.clear()
        cache_service.clear_tracking()

    def test_get_or_set_calls_factory_once(self):
        calls = []

        def factory():
            calls.append(1)
            return {'value': 42}

        self.assertEqual(cache_service.get_or_set('cache:test:one', factory), {'value': 42})
        self.assertEqual(cache_service.get_or_set('cache:test:one', factory), {'value': 42})
        self.assertEqual(len(calls), 1)

    def test_none_is_not_cached(self):
        cache_service.get_or_set('cache:test:none', lambda: None)
        self.assertFalse(cache_service.exists('cache:test:none'))

    def test_remove_by_pattern(self):
        cache_service.set(CacheKeys.products_list(1, 20), ['a'])
        cache_service.set(CacheKeys.products_list(2, 20), ['b'])
        cache_service.set(CacheKeys.categories(), ['c'])

        removed = cache_service.remove_by_pattern(CacheKeys.PRODUCTS_LIST_PATTERN)

        self.assertEqual(removed, 2)
        self.assertIsNone(cache_service.get(CacheKeys.products_list(1, 20)))
        self.assertEqual(cache_service.get(CacheKeys.categories()), ['c'])

    def test_search_key_hashes_filters(self):
        key = CacheKeys.search('Laptop ', 1, 20, {'brand': 3})
        self.assertTrue(key.startswith('cache:search:laptop:1:20:'))
        self.assertNotIn('brand', key)

    def test_cached_query_and_invalidation(self):
        calls = []

        @cached_query(cache_ttl=60, key_prefix=f"{REPORTS_KEY_PREFIX}unit")
        def expensive(x):
            calls.append(x)
            return x * 2

        self.assertEqual(expensive(2), 4)
        self.assertEqual(expensive(2), 4)
        self.assertEqual(len(calls), 1)

        invalidate_dashboard_cache()
        expensive(2)
        self.assertEqual(len(calls), 2)

    def test_make_cache_key_is_stable(self):
        self.assertEqual(make_cache_key('p', 1, a=2), make_cache_key('p', 1, a=2))
        self.assertNotEqual(make_cache_key('p', 1), make_cache_key('p', 2))

    def test_product_save_invalidates_product_lists(self):
        cache_service.set(CacheKeys.products_list(1, 20), ['stale'])
        TestDataFactory.create_product()
        self.assertIsNone(cache_service.get(CacheKeys.products_list(1, 20)))

    def test_cache_clear_endpoint(self):
        admin = TestDataFactory.create_user(roles=[ROLE_ADMIN])
        client = AuthenticatedAPIClient()
        client.authenticate_user(admin)
        cache_service.set(CacheKeys.brands(), ['x'])

        response = client.post('/api/v1/cache/clear/', {'pattern': 'cache:brand*'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['removed'], 1)

        response = client.post('/api/v1/cache/clear/', {'pattern': 'other:*'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class PatternCacheBackend:
    """In-memory stand-in for a backend with server-side pattern deletes, like django-redis"""

    def __init__(self):
        self.data = {}

    def set(self, key, value, timeout=None):
        self.data[key] = value

    def get(self, key):
        return self.data.get(key)

    def delete(self, key):
        self.data.pop(key, None)

    def delete_many(self, keys):
        for key in keys:
            self.data.pop(key, None)

    def delete_pattern(self, pattern):
        matched = [k for k in self.data if re.fullmatch(pattern.replace('*', '.*'), k)]
        self.delete_many(matched)
        return len(matched)


class CacheKeyTrackingTests(TestCase):
    """Test the key bookkeeping behind pattern removal"""

    def setUp(self):
        cache.clear()

    def test_pattern_backend_does_not_track_keys(self):
        service = CacheService(backend=PatternCacheBackend(), default_ttl=60)
        for i in range(50):
            service.set(CacheKeys.search(f'query {i}', 1, 20), [i])
        self.assertEqual(len(service._known_keys), 0)
        self.assertEqual(service.remove_by_pattern(CacheKeys.SEARCH_PATTERN), 50)

    def test_expired_keys_are_pruned(self):
        service = CacheService(default_ttl=60)
        with mock.patch('backend.core.cache_service.time.monotonic', return_value=1000.0):
            service.set('cache:test:short', 'a', 10)
            service.set('cache:test:long', 'b', 600)
        with mock.patch('backend.core.cache_service.time.monotonic', return_value=1100.0):
            service.remove_by_pattern('cache:other*')
        self.assertEqual(list(service._known_keys), ['cache:test:long'])

    def test_tracked_keys_are_bounded(self):
        service = CacheService(default_ttl=60)
        with mock.patch('backend.core.cache_service.MAX_TRACKED_KEYS', 3):
            for i in range(5):
                service.set(f'cache:test:{i}', i)
        self.assertEqual(list(service._known_keys), ['cache:test:2', 'cache:test:3', 'cache:test:4'])
        self.assertIsNone(service.get('cache:test:0'))
        self.assertEqual(service.remove_by_pattern('cache:test:*'), 3)


class UtilsTests(TestCase):
    """Test document numbers and paging"""

    def test_document_number_format(self):
        number = generate_document_number('ORD')
        self.assertRegex(number, r'^ORD-\d{8}-[0-9A-F]{8}$')
        short = generate_document_number('TKT', hex_length=6)
        self.assertTrue(re.match(r'^TKT-\d{8}-[0-9A-F]{6}$', short))

    def test_paginate_queryset(self):
        for i in range(5):
            SystemConfig.objects.create(key=f'k{i}', value=str(i))
        total, rows = paginate_queryset(SystemConfig.objects.all(), 2, 2)
        self.assertEqual(total, 5)
        self.assertEqual([r.key for r in rows], ['k2', 'k3'])


class GlobalSearchTests(TestCase):
    """Test cross-module search"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()

    def test_customer_only_sees_own_orders(self):
        customer = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        other = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        own = TestDataFactory.create_order(customer)
        TestDataFactory.create_order(other)

        self.client.authenticate_user(customer)
        response = self.client.get('/api/v1/search/', {'q': 'ORD-'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([o['id'] for o in response.data['orders']], [own.id])
        self.assertEqual(response.data['invoices'], [])

    def test_empty_query(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/v1/search/')
        self.assertEqual(response.data['products'], [])
