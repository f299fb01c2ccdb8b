"""Shared fixtures: an in-memory Motor database, seeded accounts/products and an app wired to it."""

import asyncio
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock

# keep the suite on in-process delivery and a known secret, whatever the shell has
os.environ["REDIS_URL"] = ""
os.environ["ACCESS_TOKEN_SECRET"] = "test-secret"

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from storefront_chat import main
from storefront_chat.database.connection import ensure_indexes, mongo_db_dependency
from storefront_chat.repositories.conversation_repository import ConversationRepository
from storefront_chat.repositories.message_repository import MessageRepository
from storefront_chat.repositories.product_repository import ProductRepository
from storefront_chat.repositories.user_repository import UserRepository
from storefront_chat.services.chat_service import ChatService
from storefront_chat.utils.dependencies import AuthenticatedUser
from storefront_chat.utils.notifications import ChatNotifier
from storefront_chat.utils.security import create_access_token
from storefront_chat.utils.websocket_manager import registry


def run(coro):
    """Drive a coroutine on a private loop (the mock database is loop agnostic)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture(autouse=True)
def _clear_rooms():
    yield
    registry.rooms.clear()


@pytest.fixture
def db():
    database = AsyncMongoMockClient()["storefront_test"]
    run(ensure_indexes(database))
    return database


@pytest.fixture
def accounts(db):
    ids = {
        name: ObjectId()
        for name in (
            "customer",
            "other_customer",
            "inactive_customer",
            "seller",
            "other_seller",
            "inactive_seller",
            "admin",
        )
    }
    users = [
        {"_id": ids["customer"], "name": "Ada Buyer", "email": "ada@example.com", "role": "customer", "is_active": True, "password": "x"},
        {"_id": ids["other_customer"], "name": "Ben Buyer", "email": "ben@example.com", "role": "customer", "is_active": True, "password": "x"},
        {"_id": ids["inactive_customer"], "name": "Cy Gone", "email": "cy@example.com", "role": "customer", "is_active": False, "password": "x"},
        {"_id": ids["seller"], "name": "Lamp Shop", "email": "lamps@example.com", "role": "seller", "is_active": True, "password": "x"},
        {"_id": ids["other_seller"], "name": "Rug Shop", "email": "rugs@example.com", "role": "seller", "is_active": True, "password": "x"},
        {"_id": ids["inactive_seller"], "name": "Closed Shop", "email": "closed@example.com", "role": "seller", "is_active": False, "password": "x"},
        {"_id": ids["admin"], "name": "Store Admin", "email": "admin@example.com", "role": "admin", "is_active": True, "password": "x"},
    ]
    products = {
        "lamp": {"_id": ObjectId(), "name": "Desk lamp", "offer_price": 19.5, "image": ["lamp.jpg"], "seller": ids["seller"]},
        "rug": {"_id": ObjectId(), "name": "Wool rug", "offer_price": 120.0, "image": [], "seller": ids["other_seller"]},
        "orphan": {"_id": ObjectId(), "name": "Mystery box", "offer_price": 5.0, "image": [], "seller": None},
        "closed": {"_id": ObjectId(), "name": "Old chair", "offer_price": 40.0, "image": [], "seller": ids["inactive_seller"]},
        "admin_mug": {"_id": ObjectId(), "name": "Staff mug", "offer_price": 8.0, "image": [], "seller": ids["admin"]},
    }
    run(db["users"].insert_many(users))
    run(db["products"].insert_many(list(products.values())))

    values = {name: str(oid) for name, oid in ids.items()}
    values.update({f"{name}_product": str(doc["_id"]) for name, doc in products.items()})
    return SimpleNamespace(**values)


def as_user(user_id: str, role: str) -> AuthenticatedUser:
    return AuthenticatedUser(id=user_id, role=role)


@pytest.fixture
def notifier():
    return AsyncMock(spec=ChatNotifier)


@pytest.fixture
def service(db, notifier):
    return ChatService(
        ConversationRepository(db),
        MessageRepository(db),
        UserRepository(db),
        ProductRepository(db),
        notifier,
    )


@pytest.fixture
def app(db, monkeypatch):
    monkeypatch.setattr(main, "connect_to_mongo", AsyncMock())
    monkeypatch.setattr(main, "close_mongo_connection", AsyncMock())
    application = main.create_app()
    application.dependency_overrides[mongo_db_dependency] = lambda: db
    return application


@pytest.fixture
def client(app):
    # one portal for HTTP and websocket sessions, so emits cross between them
    with TestClient(app) as test_client:
        yield test_client


def customer_headers(user_id: str) -> dict:
    return {"Cookie": f"token={create_access_token(user_id)}"}


def seller_headers(user_id: str) -> dict:
    return {"Cookie": f"sellerToken={create_access_token(user_id)}"}
