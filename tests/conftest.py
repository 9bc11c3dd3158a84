import os
from datetime import datetime, timedelta, timezone

import boto3
import pytest
from moto import mock_aws

from eventboard.schemas.category import CategoryCreate
from eventboard.schemas.event import EventCreate
from eventboard.schemas.user import Actor, Role, UserCreate
from eventboard.services.category_service import CategoryService
from eventboard.services.event_service import EventService
from eventboard.services.user_service import UserService
from scripts.init_dynamodb import create_table_if_not_exists

TEST_TABLE_NAME = "EventBoard_Test"

# the lowest cost bcrypt accepts; keeps user fixtures fast
TEST_BCRYPT_ROUNDS = 4


class FrozenClock:
    """Controllable replacement for the services' clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def aws_credentials():
    """Fake credentials so nothing can reach a real AWS account"""
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["DYNAMODB_ENDPOINT_URL"] = ""


@pytest.fixture
def dynamodb_resource(aws_credentials):
    """In-memory DynamoDB with a fresh table for every test"""
    with mock_aws():
        resource = boto3.resource("dynamodb", region_name="us-east-1")
        create_table_if_not_exists(TEST_TABLE_NAME, dynamodb=resource)
        yield resource


@pytest.fixture
def clock():
    return FrozenClock(datetime(2030, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def user_service(dynamodb_resource):
    """Create UserService instance with test table"""
    return UserService(dynamodb_resource, TEST_TABLE_NAME, bcrypt_rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def category_service(dynamodb_resource):
    """Create CategoryService instance with test table"""
    return CategoryService(dynamodb_resource, TEST_TABLE_NAME)


@pytest.fixture
def event_service(dynamodb_resource, user_service, clock):
    """Create EventService instance with test table"""
    return EventService(
        dynamodb_resource, TEST_TABLE_NAME, clock=clock, user_service=user_service
    )


@pytest.fixture
def sample_users(user_service):
    """An admin and three regular users"""
    users = {}
    for key, name, role in [
        ("admin", "Ada Admin", Role.ADMIN),
        ("organizer", "Olga Organizer", Role.USER),
        ("alice", "Alice Participant", Role.USER),
        ("bob", "Bob Participant", Role.USER),
    ]:
        users[key] = user_service.create_user(
            UserCreate(
                name=name,
                email=f"{key}@example.com",
                password="secret123",
                role=role,
            )
        )
    return users


@pytest.fixture
def actors(sample_users):
    return {key: Actor(id=user.id, role=user.role) for key, user in sample_users.items()}


@pytest.fixture
def category(category_service):
    return category_service.create_category(
        CategoryCreate(name="Music", description="Concerts and festivals")
    )


@pytest.fixture
def make_event_data(category, clock):
    """Factory for valid event payloads, starting ten days after the clock"""

    def factory(**overrides):
        data = {
            "title": "Jazz in the Park",
            "description": "An evening of live jazz by the lake",
            "date": clock.now + timedelta(days=10),
            "location": {
                "address": "Rua das Flores 100",
                "city": "Curitiba",
                "state": "PR",
                "country": "Brasil",
            },
            "category": category.id,
            "capacity": 50,
            "price": 0,
            "tags": ["music", "outdoor"],
        }
        data.update(overrides)
        return EventCreate(**data)

    return factory


@pytest.fixture
def approved_event(event_service, make_event_data, actors):
    """An event created by the organizer and approved by the admin"""
    event = event_service.create_event(make_event_data(), actors["organizer"])
    return event_service.approve_event(event.id, actors["admin"])
