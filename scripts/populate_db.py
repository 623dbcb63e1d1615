import os
import sys
import django
import random
from datetime import timedelta
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'clothing_swap.settings')
django.setup()

from django.utils import timezone

from core.models import User, ClothingItem, TradeStatus
from core import chat, reviews, trades

fake = Faker()

ITEM_NAMES = {
    'tops': ['T-Shirt', 'Blouse', 'Hoodie', 'Sweater', 'Flannel Shirt'],
    'bottoms': ['Jeans', 'Chinos', 'Skirt', 'Shorts', 'Cargo Pants'],
    'dresses': ['Summer Dress', 'Maxi Dress', 'Cocktail Dress', 'Wrap Dress'],
    'shoes': ['Sneakers', 'Boots', 'Loafers', 'Sandals'],
    'accessories': ['Scarf', 'Beanie', 'Leather Belt', 'Tote Bag', 'Sunglasses'],
}
SIZES = ['XS', 'S', 'M', 'L', 'XL']
CONDITIONS = ['new', 'like_new', 'good', 'fair', 'poor']
TAGS = ['vintage', 'streetwear', 'cotton', 'denim', 'wool', 'summer', 'winter', 'casual', 'formal']


def create_users(num_users=20):
    print(f"Creating {num_users} users...")
    users = []

    for _ in range(num_users):
        email = fake.unique.email()
        user = User.objects.create_user(
            username=email,
            email=email,
            password='password123',
            first_name=fake.first_name(),
            last_name=fake.last_name(),
        )
        users.append(user)

    print(f"Created {len(users)} users.")
    return users


def create_clothing_items(users):
    print("Creating clothing items...")
    items = []

    for user in users:
        # Each user lists 2-5 items
        for _ in range(random.randint(2, 5)):
            category = random.choice(list(ITEM_NAMES))
            item = ClothingItem.objects.create(
                owner=user,
                title=f"{fake.color_name()} {random.choice(ITEM_NAMES[category])}",
                description=fake.paragraph(),
                category=category,
                size=random.choice(SIZES),
                condition=random.choice(CONDITIONS),
                images=[fake.image_url() for _ in range(random.randint(1, 3))],
                tags=','.join(random.sample(TAGS, random.randint(0, 3))),
            )
            items.append(item)

    print(f"Created {len(items)} clothing items.")
    return items


def create_trades(users, num_trades=15):
    print("Creating trades...")
    created = []

    for _ in range(num_trades):
        initiator, receiver = random.sample(users, 2)
        initiator_items = list(initiator.clothing_items.values_list('id', flat=True))
        receiver_items = list(receiver.clothing_items.values_list('id', flat=True))

        trade = trades.propose_trade(
            initiator,
            receiver.id,
            random.sample(initiator_items, min(len(initiator_items), random.randint(1, 2))),
            random.sample(receiver_items, min(len(receiver_items), random.randint(1, 2))),
        )
        chat.append_user_message(trade.chat.id, initiator, fake.sentence())

        # Walk part of the trades further along the negotiation
        stage = random.choice(['pending', 'accepted', 'meeting', 'completed', 'cancelled'])

        if stage == 'cancelled':
            trades.cancel_trade(trade.id, receiver)
        elif stage != 'pending':
            trades.accept_trade(trade.id, receiver)
            trades.accept_trade(trade.id, initiator)

            if stage in ('meeting', 'completed'):
                trades.set_meeting(
                    trade.id,
                    initiator,
                    time=timezone.now() + timedelta(days=random.randint(1, 14)),
                    location=fake.street_address(),
                    coordinates=[float(fake.longitude()), float(fake.latitude())],
                )

            if stage == 'completed':
                trade = trades.complete_trade(trade.id, receiver)

        created.append(trade)

    print(f"Created {len(created)} trades.")
    return created


def create_reviews(created_trades):
    print("Creating reviews...")
    count = 0

    for trade in created_trades:
        if trade.status != TradeStatus.COMPLETED:
            continue

        for reviewer in (trade.initiator, trade.receiver):
            # 70% chance of leaving a review
            if random.random() < 0.7:
                reviews.submit_review(
                    trade.id,
                    reviewer,
                    random.randint(2, 5),
                    fake.sentence(nb_words=12),
                )
                count += 1

    print(f"Created {count} reviews.")


def main():
    print("Starting database population...")

    users = create_users(num_users=20)
    create_clothing_items(users)
    created_trades = create_trades(users)
    create_reviews(created_trades)

    print("Database population completed successfully!")


if __name__ == '__main__':
    main()
