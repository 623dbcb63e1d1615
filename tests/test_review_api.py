"""
Tests for the review endpoint.

POST /api/reviews/ and GET /api/reviews/?trade_id=<id>.
"""

from django.test import TestCase
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework import status

from core import trades
from core.models import ClothingItem, Review


User = get_user_model()


class ReviewAPITestCase(TestCase):

    def setUp(self):
        self.client = APIClient()

        self.alice = User.objects.create_user(
            username='alice', email='alice@test.com', password='testpass123'
        )
        self.bob = User.objects.create_user(
            username='bob', email='bob@test.com', password='testpass123'
        )
        self.carol = User.objects.create_user(
            username='carol', email='carol@test.com', password='testpass123'
        )

        self.scarf = ClothingItem.objects.create(
            owner=self.alice, title='Wool Scarf', description='Warm',
            category='accessories', size='One size', condition='good'
        )
        self.jacket = ClothingItem.objects.create(
            owner=self.bob, title='Denim Jacket', description='Classic',
            category='tops', size='L', condition='like_new'
        )

        self.trade = trades.propose_trade(
            self.alice, self.bob.id, [self.scarf.id], [self.jacket.id]
        )
        trades.accept_trade(self.trade.id, self.alice)
        trades.accept_trade(self.trade.id, self.bob)
        trades.complete_trade(self.trade.id, self.alice)


class ReviewSubmissionAPITests(ReviewAPITestCase):

    def test_submit_review(self):
        self.client.force_authenticate(user=self.alice)

        response = self.client.post('/api/reviews/', {
            'trade_id': self.trade.id,
            'rating': 5,
            'comment': 'Lovely jacket!',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['rating'], 5)
        self.assertEqual(response.data['trade'], self.trade.id)
        self.assertEqual(response.data['reviewer']['id'], self.alice.id)
        self.assertEqual(response.data['reviewed']['id'], self.bob.id)

        self.bob.refresh_from_db()
        self.assertEqual(self.bob.positive_reviews, 1)

    def test_resubmission_returns_ok_and_overwrites(self):
        self.client.force_authenticate(user=self.alice)
        payload = {'trade_id': self.trade.id, 'rating': 3, 'comment': 'Okay'}
        self.client.post('/api/reviews/', payload, format='json')

        payload.update(rating=4, comment='Better than I thought')
        response = self.client.post('/api/reviews/', payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['rating'], 4)
        self.assertEqual(Review.objects.count(), 1)

    def test_out_of_range_rating_is_rejected(self):
        self.client.force_authenticate(user=self.alice)

        response = self.client.post('/api/reviews/', {
            'trade_id': self.trade.id,
            'rating': 6,
            'comment': 'Too good',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('rating', response.data)

    def test_blank_comment_is_rejected(self):
        self.client.force_authenticate(user=self.alice)

        response = self.client.post('/api/reviews/', {
            'trade_id': self.trade.id,
            'rating': 5,
            'comment': '   ',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('comment', response.data)

    def test_unfinished_trade_is_rejected(self):
        boots = ClothingItem.objects.create(
            owner=self.alice, title='Boots', description='Sturdy',
            category='shoes', size='42', condition='fair'
        )
        pending = trades.propose_trade(self.alice, self.bob.id, [boots.id], [])
        self.client.force_authenticate(user=self.bob)

        response = self.client.post('/api/reviews/', {
            'trade_id': pending.id,
            'rating': 5,
            'comment': 'Too early',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'invalid_state')

    def test_outsider_cannot_review(self):
        self.client.force_authenticate(user=self.carol)

        response = self.client.post('/api/reviews/', {
            'trade_id': self.trade.id,
            'rating': 1,
            'comment': 'Never met them',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Review.objects.count(), 0)

    def test_unknown_trade_is_not_found(self):
        self.client.force_authenticate(user=self.alice)

        response = self.client.post('/api/reviews/', {
            'trade_id': 999999,
            'rating': 5,
            'comment': 'Great',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ReviewListAPITests(ReviewAPITestCase):

    def test_list_reviews_of_trade(self):
        self.client.force_authenticate(user=self.alice)
        self.client.post('/api/reviews/', {
            'trade_id': self.trade.id, 'rating': 5, 'comment': 'Great'
        }, format='json')

        response = self.client.get('/api/reviews/', {'trade_id': self.trade.id})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['comment'], 'Great')

    def test_trade_id_is_required(self):
        self.client.force_authenticate(user=self.alice)

        response = self.client.get('/api/reviews/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.get('/api/reviews/', {'trade_id': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_outsider_cannot_list(self):
        self.client.force_authenticate(user=self.carol)

        response = self.client.get('/api/reviews/', {'trade_id': self.trade.id})

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
