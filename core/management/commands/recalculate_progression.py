# Recalculate Progression Management Command
from collections import Counter

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Count

from core.models import User, Trade, TradeStatus, Review
from core.progression import POSITIVE_REVIEW_THRESHOLD


class Command(BaseCommand):
    help = 'Recalculates completed trade and positive review counters from trades and reviews.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Run the command without saving changes to the database.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Batch size for bulk processing.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        batch_size = options['batch_size']

        if batch_size < 1:
            raise CommandError('--batch-size must be a positive integer.')

        self.recalculate_users(dry_run, batch_size)

        if dry_run:
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS('Recalculation completed successfully.'))

    def completed_trade_counts(self):
        counts = Counter()
        completed = Trade.objects.filter(status=TradeStatus.COMPLETED)
        for initiator_id, receiver_id in completed.values_list('initiator_id', 'receiver_id'):
            counts[initiator_id] += 1
            counts[receiver_id] += 1
        return counts

    def positive_review_counts(self):
        rows = (
            Review.objects.filter(rating__gte=POSITIVE_REVIEW_THRESHOLD)
            .values('reviewed_id')
            .annotate(total=Count('id'))
        )
        return {row['reviewed_id']: row['total'] for row in rows}

    def recalculate_users(self, dry_run, batch_size):
        self.stdout.write('Recalculating user progression counters...')

        trade_counts = self.completed_trade_counts()
        review_counts = self.positive_review_counts()

        users = User.objects.order_by('id').iterator(chunk_size=batch_size)
        updates = []
        count = 0
        changed = 0

        for user in users:
            new_trades = trade_counts.get(user.id, 0)
            new_reviews = review_counts.get(user.id, 0)

            if user.completed_trades != new_trades or user.positive_reviews != new_reviews:
                if dry_run:
                    self.stdout.write(
                        f'  [DRY-RUN] User {user.id} ({user.email}): '
                        f'Trades {user.completed_trades} -> {new_trades}, '
                        f'Positive reviews {user.positive_reviews} -> {new_reviews}'
                    )
                user.completed_trades = new_trades
                user.positive_reviews = new_reviews
                updates.append(user)
                changed += 1

            if len(updates) >= batch_size:
                if not dry_run:
                    User.objects.bulk_update(updates, ['completed_trades', 'positive_reviews'])
                updates = []

            count += 1
            if count % 100 == 0:
                self.stdout.write(f'Processed {count} users...')

        if updates and not dry_run:
            User.objects.bulk_update(updates, ['completed_trades', 'positive_reviews'])

        self.stdout.write(f'Processed {count} users total, {changed} updated.')
