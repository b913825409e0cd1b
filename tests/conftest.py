"""Shared fixtures: a throwaway data directory with a small, known data set."""
from datetime import date, datetime, time, timedelta

import pytest

from crowdfunding.app import create_app
from crowdfunding.models import Category, Project, RewardTier, User
from crowdfunding.repositories import DataStore

TODAY = date.today()
NOON = datetime.combine(TODAY, time(12, 0))

OPEN_PROJECT = "12345678"
CLOSED_PROJECT = "23456789"
FUNDED_PROJECT = "34567890"


def fixed_clock():
    return NOON


def seed_small(data):
    data.users.save_all([
        User("U001", "alice", "alice@example.com", "secret"),
        User("U002", "bob", "bob@example.com", "hunter2"),
        User("U003", "carol", "carol@example.com", "pa,ss\"word"),
    ])
    data.categories.save_all([
        Category("C01", "Technology", "Gadgets, apps and tools"),
        Category("C02", "Art", "Paintings \"and\" prints"),
    ])
    data.projects.save_all([
        Project(OPEN_PROJECT, "Solar Lamp", 1000.0, TODAY + timedelta(days=10),
                0.0, "C01", "A lamp that charges itself", "U001"),
        Project(CLOSED_PROJECT, "Street Mural", 500.0, TODAY - timedelta(days=1),
                0.0, "C02", "Paint the old wall", "U002"),
        Project(FUNDED_PROJECT, "Board Game", 200.0, TODAY + timedelta(days=3),
                250.0, "C01", "Cards, dice and a board", "U002"),
    ])
    data.reward_tiers.save_all([
        RewardTier("T1", OPEN_PROJECT, "Early Bird", 100.0, 2, 2, "First lamps off the line"),
        RewardTier("T2", OPEN_PROJECT, "Sold Out", 50.0, 5, 0, "Sticker pack"),
        RewardTier("T3", FUNDED_PROJECT, "Deluxe", 20.0, 10, 10, "Deluxe box"),
    ])
    data.pledges.save_all([])
    return data


@pytest.fixture
def data(tmp_path):
    return seed_small(DataStore(tmp_path, clock=fixed_clock))


@pytest.fixture
def alice(data):
    return data.users.find_by_id("U001")


@pytest.fixture
def bob(data):
    return data.users.find_by_id("U002")


@pytest.fixture
def app(tmp_path):
    app = create_app({"TESTING": True, "CROWDFUNDING_DATA_DIR": str(tmp_path)})
    with app.app_context():
        seed_small(app.extensions["crowdfunding"])
    return app


@pytest.fixture
def client(app):
    return app.test_client()
