"""
Tests for login and user preferences endpoints
"""
from django.contrib.auth.models import User
from django.test import TestCase
from rest_framework.test import APIClient

from .models import UserPreferences, display_name, slack_user_id_for


class UserPreferencesModelTest(TestCase):

    def test_preferences_created_with_user(self):
        user = User.objects.create_user(username='ops', password='pw')
        self.assertTrue(UserPreferences.objects.filter(user=user).exists())
        self.assertEqual(slack_user_id_for(user), '')

    def test_display_name(self):
        user = User.objects.create_user(username='ops', first_name='Ada', last_name='Lovelace')
        self.assertEqual(display_name(user), 'Ada Lovelace')
        self.assertEqual(display_name(User.objects.create_user(username='plain')), 'plain')
        self.assertEqual(display_name(None), 'unknown')


class AuthViewsTest(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='ops', email='ops@example.com', password='s3cret')
        self.client = APIClient()

    def test_login_with_email(self):
        response = self.client.post(
            '/api/auth/token/', {'email': 'OPS@example.com', 'password': 's3cret'}, format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn('access', response.data)

    def test_login_wrong_password(self):
        response = self.client.post(
            '/api/auth/token/', {'email': 'ops@example.com', 'password': 'nope'}, format='json',
        )
        self.assertEqual(response.status_code, 400)

    def test_update_slack_user_id(self):
        self.client.force_authenticate(self.user)

        response = self.client.patch('/api/auth/preferences/', {'slack_user_id': 'U0123ABC'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertEqual(self.user.preferences.slack_user_id, 'U0123ABC')

    def test_invalid_slack_user_id_rejected(self):
        self.client.force_authenticate(self.user)
        response = self.client.patch('/api/auth/preferences/', {'slack_user_id': 'not-an-id'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_me(self):
        self.client.force_authenticate(self.user)
        response = self.client.get('/api/auth/me/')
        self.assertEqual(response.data['email'], 'ops@example.com')
        self.assertIn('preferences', response.data)
