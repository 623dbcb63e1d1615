"""
Tests for the trade endpoints.

POST/GET /api/trades/, GET/PATCH /api/trades/<id>/ and
POST /api/trades/<id>/complete/.
"""

from django.test import TestCase
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework import status

from core import trades
from core.models import ClothingItem, Message, Trade, TradeStatus


User = get_user_model()


class TradeAPITestCase(TestCase):

    def setUp(self):
        self.client = APIClient()

        self.alice = User.objects.create_user(
            username='alice', email='alice@test.com', password='testpass123',
            first_name='Alice', last_name='Smith'
        )
        self.bob = User.objects.create_user(
            username='bob', email='bob@test.com', password='testpass123'
        )
        self.carol = User.objects.create_user(
            username='carol', email='carol@test.com', password='testpass123'
        )

        self.scarf = self.make_item(self.alice, 'Wool Scarf')
        self.boots = self.make_item(self.alice, 'Black Boots')
        self.jacket = self.make_item(self.bob, 'Denim Jacket')
        self.shirt = self.make_item(self.bob, 'Linen Shirt')
        self.dress = self.make_item(self.carol, 'Summer Dress')

    def make_item(self, owner, title):
        return ClothingItem.objects.create(
            owner=owner,
            title=title,
            description='Good as new',
            category='tops',
            size='M',
            condition='good',
        )

    def propose(self):
        return trades.propose_trade(self.alice, self.bob.id, [self.scarf.id], [self.jacket.id])

    def accepted(self):
        trade = self.propose()
        trades.accept_trade(trade.id, self.alice)
        trades.accept_trade(trade.id, self.bob)
        return trade

    def detail_url(self, trade_id):
        return f'/api/trades/{trade_id}/'


class TradeProposalAPITests(TradeAPITestCase):

    def test_propose_trade(self):
        self.client.force_authenticate(user=self.alice)

        response = self.client.post('/api/trades/', {
            'receiver_id': self.bob.id,
            'initiator_item_ids': [self.scarf.id, self.boots.id],
            'receiver_item_ids': [self.jacket.id],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], 'pending')
        self.assertFalse(response.data['initiator_accepted'])
        self.assertFalse(response.data['receiver_accepted'])
        self.assertEqual(response.data['initiator']['id'], self.alice.id)
        self.assertEqual(response.data['receiver']['id'], self.bob.id)
        self.assertEqual(
            [entry['item']['id'] for entry in response.data['initiator_items']],
            [self.scarf.id, self.boots.id]
        )
        self.assertEqual(response.data['receiver_items'][0]['item']['title'], 'Denim Jacket')
        self.assertIsNone(response.data['meeting'])
        self.assertIsNotNone(response.data['chat_id'])

    def test_propose_with_foreign_item_is_rejected(self):
        self.client.force_authenticate(user=self.alice)

        response = self.client.post('/api/trades/', {
            'receiver_id': self.bob.id,
            'initiator_item_ids': [self.scarf.id],
            'receiver_item_ids': [self.dress.id],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'validation_error')
        self.assertEqual(Trade.objects.count(), 0)

    def test_propose_without_receiver_is_rejected(self):
        self.client.force_authenticate(user=self.alice)

        response = self.client.post('/api/trades/', {
            'initiator_item_ids': [self.scarf.id],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('receiver_id', response.data)

    def test_propose_without_items_is_rejected(self):
        self.client.force_authenticate(user=self.alice)

        response = self.client.post('/api/trades/', {
            'receiver_id': self.bob.id,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Trade.objects.count(), 0)

    def test_propose_to_self_is_rejected(self):
        self.client.force_authenticate(user=self.alice)

        response = self.client.post('/api/trades/', {
            'receiver_id': self.alice.id,
            'initiator_item_ids': [self.scarf.id],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unauthenticated_request_is_rejected(self):
        response = self.client.post('/api/trades/', {
            'receiver_id': self.bob.id,
            'initiator_item_ids': [self.scarf.id],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class TradeRetrievalAPITests(TradeAPITestCase):

    def test_list_contains_only_own_trades(self):
        mine = self.propose()
        trades.propose_trade(self.carol, self.bob.id, [self.dress.id], [])
        self.client.force_authenticate(user=self.alice)

        response = self.client.get('/api/trades/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], mine.id)

    def test_participant_can_fetch_trade(self):
        trade = self.propose()
        self.client.force_authenticate(user=self.bob)

        response = self.client.get(self.detail_url(trade.id))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], trade.id)

    def test_outsider_gets_forbidden(self):
        trade = self.propose()
        self.client.force_authenticate(user=self.carol)

        response = self.client.get(self.detail_url(trade.id))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['code'], 'not_participant')

    def test_unknown_trade_is_not_found(self):
        self.client.force_authenticate(user=self.alice)

        response = self.client.get(self.detail_url(999999))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')


class TradeUpdateAPITests(TradeAPITestCase):

    def test_accept_by_both_parties(self):
        trade = self.propose()

        self.client.force_authenticate(user=self.bob)
        response = self.client.patch(self.detail_url(trade.id), {'accept': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['receiver_accepted'])
        self.assertEqual(response.data['status'], 'pending')

        self.client.force_authenticate(user=self.alice)
        response = self.client.patch(self.detail_url(trade.id), {'accept': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'accepted')

    def test_counter_offer_resets_acceptance(self):
        trade = self.propose()
        trades.accept_trade(trade.id, self.alice)
        self.client.force_authenticate(user=self.bob)

        response = self.client.patch(
            self.detail_url(trade.id), {'receiver_item_ids': [self.shirt.id]}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['initiator_accepted'])
        self.assertEqual(
            [entry['item']['id'] for entry in response.data['receiver_items']],
            [self.shirt.id]
        )

    def test_meeting_on_pending_trade_is_rejected(self):
        trade = self.propose()
        self.client.force_authenticate(user=self.alice)

        response = self.client.patch(
            self.detail_url(trade.id), {'meeting': {'location': 'Cafe'}}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_state')

    def test_meeting_on_accepted_trade(self):
        trade = self.accepted()
        self.client.force_authenticate(user=self.alice)

        response = self.client.patch(self.detail_url(trade.id), {
            'meeting': {
                'time': '2030-05-01T10:00:00Z',
                'location': 'Central Station',
                'coordinates': [13.4, 52.5],
            }
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['meeting']['location'], 'Central Station')
        self.assertEqual(response.data['meeting']['coordinates'], [13.4, 52.5])
        self.assertIsNotNone(response.data['meeting']['time'])

    def test_meeting_with_bad_coordinates_is_rejected(self):
        trade = self.accepted()
        self.client.force_authenticate(user=self.alice)

        response = self.client.patch(
            self.detail_url(trade.id), {'meeting': {'coordinates': [200, 0]}}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        trade.refresh_from_db()
        self.assertIsNone(trade.meeting_coordinates)

    def test_empty_meeting_is_rejected(self):
        trade = self.accepted()
        self.client.force_authenticate(user=self.alice)

        response = self.client.patch(self.detail_url(trade.id), {'meeting': {}}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_exactly_one_action_is_required(self):
        trade = self.propose()
        self.client.force_authenticate(user=self.alice)

        for payload in (
            {},
            {'accept': True, 'receiver_item_ids': [self.shirt.id]},
            {'accept': False},
            {'status': 'completed'},
        ):
            response = self.client.patch(self.detail_url(trade.id), payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, payload)

        trade.refresh_from_db()
        self.assertEqual(trade.status, TradeStatus.PENDING)
        self.assertFalse(trade.initiator_accepted)

    def test_outsider_cannot_update(self):
        trade = self.propose()
        self.client.force_authenticate(user=self.carol)

        response = self.client.patch(self.detail_url(trade.id), {'accept': True}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Message.objects.filter(chat__trade=trade).count(), 0)


class TradeCompletionAPITests(TradeAPITestCase):

    def test_complete_accepted_trade(self):
        trade = self.accepted()
        self.client.force_authenticate(user=self.bob)

        response = self.client.post(f'/api/trades/{trade.id}/complete/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'completed')
        self.assertEqual(response.data['initiator']['completed_trades'], 1)

        for user in (self.alice, self.bob):
            user.refresh_from_db()
            self.assertEqual(user.experience, 70)

    def test_complete_pending_trade_is_rejected(self):
        trade = self.propose()
        self.client.force_authenticate(user=self.bob)

        response = self.client.post(f'/api/trades/{trade.id}/complete/')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_state')
        trade.refresh_from_db()
        self.assertEqual(trade.status, TradeStatus.PENDING)

    def test_outsider_cannot_complete(self):
        trade = self.accepted()
        self.client.force_authenticate(user=self.carol)

        response = self.client.post(f'/api/trades/{trade.id}/complete/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        trade.refresh_from_db()
        self.assertEqual(trade.status, TradeStatus.ACCEPTED)

    def test_registered_user_with_apostrophe_email_completes_trade(self):
        response = self.client.post('/api/auth/register/', {
            'email': "o'neil@test.com",
            'password': 'SecurePass123!',
            'confirm_password': 'SecurePass123!',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        oneil = User.objects.get(email="o'neil@test.com")

        hat = self.make_item(oneil, 'Bucket Hat')
        trade = trades.propose_trade(oneil, self.bob.id, [hat.id], [self.jacket.id])
        trades.accept_trade(trade.id, oneil)
        trades.accept_trade(trade.id, self.bob)
        self.client.force_authenticate(user=oneil)

        response = self.client.post(f'/api/trades/{trade.id}/complete/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'completed')
        for user in (oneil, self.bob):
            user.refresh_from_db()
            self.assertEqual(user.experience, 70)
            self.assertEqual(user.completed_trades, 1)
