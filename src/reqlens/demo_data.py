"""Dummy users and orders for the demo tables."""

import random
from typing import Any

from faker import Faker

_PRODUCT_NOUNS = (
    "Chair",
    "Table",
    "Keyboard",
    "Shoes",
    "Gloves",
    "Lamp",
    "Backpack",
    "Bottle",
    "Headphones",
    "Jacket",
)


def make_faker(rng: random.Random) -> Faker:
    """Faker instance seeded from the shared random source."""
    faker = Faker()
    faker.seed_instance(rng.getrandbits(32))
    return faker


def generate_users(count: int, rng: random.Random) -> list[dict[str, Any]]:
    """Users ``User 1..count`` with stable emails and ages in 18..60.

    Emails are deterministic so reseeding is idempotent under the
    unique-email constraint.
    """
    return [
        {
            "name": f"User {i}",
            "email": f"user{i}@example.com",
            "age": rng.randint(18, 60),
        }
        for i in range(1, count + 1)
    ]


def generate_orders(
    count: int,
    rng: random.Random,
    faker: Faker,
    max_user_id: int = 50,
) -> list[dict[str, Any]]:
    """Orders with a random user id, product name and price in 10..1000."""
    return [
        {
            "userId": rng.randint(1, max_user_id),
            "product": f"{faker.color_name()} {rng.choice(_PRODUCT_NOUNS)}",
            "price": rng.randint(10, 1000),
        }
        for _ in range(count)
    ]
