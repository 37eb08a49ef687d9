"""Seed the users collection with a demo user."""
from __future__ import annotations

import logging

from dotenv import load_dotenv

from eldercare.users.models import UserCreate
from eldercare.users.service import UserService


def add_user() -> None:
    user = UserService().create_user(UserCreate(name="John Doe", email="john@example.com"))
    print(f"User added! ({user.id})")


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    add_user()
