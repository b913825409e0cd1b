"""Repositories: header handling, lookups, in-place update, bad rows."""
import logging
import threading

import pytest

from crowdfunding.csv_store import CsvStore
from crowdfunding.errors import DuplicateRecordError, RecordNotFoundError
from crowdfunding.models import Category, User
from crowdfunding.repositories import (CategoryRepository, PledgeRepository, RewardTierRepository,
                                       UserRepository)

from conftest import CLOSED_PROJECT, FUNDED_PROJECT, OPEN_PROJECT


def test_header_row_is_skipped(data):
    rows = data.store.load("users.csv")
    assert rows[0] == ["userId", "username", "email", "password"]
    assert [u.user_id for u in data.users.load_all()] == ["U001", "U002", "U003"]


def test_file_without_header_is_read_from_first_row(tmp_path):
    store = CsvStore(tmp_path)
    store.save("categories.csv", [["C01", "Tech", "gadgets"], ["C02", "Art", "paint"]])
    cats = CategoryRepository(store).load_all()
    assert [c.category_id for c in cats] == ["C01", "C02"]


def test_find_by_id(data):
    project = data.projects.find_by_id(OPEN_PROJECT)
    assert project.name == "Solar Lamp"
    assert data.projects.find_by_id("99999999") is None
    assert data.projects.find_by_id(None) is None


def test_collection_finders(data):
    assert {p.project_id for p in data.projects.find_by_category("C01")} == {OPEN_PROJECT, FUNDED_PROJECT}
    assert [t.tier_id for t in data.reward_tiers.find_by_project(OPEN_PROJECT)] == ["T1", "T2"]
    assert data.reward_tiers.find_by_project(CLOSED_PROJECT) == []


def test_update_replaces_in_place_and_keeps_order(data):
    project = data.projects.find_by_id(CLOSED_PROJECT)
    project.description = "Moved to a new wall, \"bigger\""
    data.projects.update(project)

    projects = data.projects.load_all()
    assert [p.project_id for p in projects] == [OPEN_PROJECT, CLOSED_PROJECT, FUNDED_PROJECT]
    assert projects[1].description == "Moved to a new wall, \"bigger\""


def test_update_unknown_key_raises(data):
    with pytest.raises(RecordNotFoundError):
        data.categories.update(Category("C99", "Nope"))


def test_add_rejects_duplicate_key_and_username(data):
    with pytest.raises(DuplicateRecordError):
        data.categories.add(Category("C01", "Again"))
    with pytest.raises(DuplicateRecordError):
        data.users.add(User("U999", "alice"))


def test_authenticate_compares_plaintext_exactly(data):
    assert data.users.authenticate("alice", "secret").user_id == "U001"
    assert data.users.authenticate("alice", "Secret") is None
    assert data.users.authenticate("nobody", "secret") is None
    assert data.users.authenticate("carol", "pa,ss\"word").user_id == "U003"


def test_next_user_id(data):
    assert data.users.next_id() == "U004"


def test_malformed_rows_are_skipped_and_logged(tmp_path, caplog):
    store = CsvStore(tmp_path)
    store.save("reward_tiers.csv", [
        ["tierId", "projectId", "name", "minimumAmount", "totalQuantity", "remainingQuantity", "description"],
        ["T1", "12345678", "Good", "10.0", "5", "5", "ok"],
        ["T2", "12345678", "Bad number", "ten", "5", "5", "broken"],
        ["T3", "12345678", "Too short"],
        ["T4", "12345678", "Over sold", "10.0", "5", "-1", "broken"],
        ["T5", "12345678", "Also good", "20.0", "3", "1", "ok"],
    ])
    with caplog.at_level(logging.WARNING, logger="crowdfunding.repositories"):
        tiers = RewardTierRepository(store).load_all()
    assert [t.tier_id for t in tiers] == ["T1", "T5"]
    assert len([r for r in caplog.records if "Skipping malformed row" in r.getMessage()]) == 3


def test_pledge_with_bad_status_is_skipped(tmp_path):
    store = CsvStore(tmp_path)
    store.save("pledges.csv", [
        ["P000001", "U001", "12345678", "2026-01-01 10:00:00", "10.0", "", "SUCCESS", ""],
        ["P000002", "U001", "12345678", "2026-01-01 10:00:00", "10.0", "", "MAYBE", ""],
        ["P000003", "U001", "12345678", "yesterday", "10.0", "", "SUCCESS", ""],
    ])
    assert [p.pledge_id for p in PledgeRepository(store).load_all()] == ["P000001"]


def test_save_of_load_is_field_identical(data, alice, bob):
    assert data.process_pledge(OPEN_PROJECT, alice, 150, "T1").accepted
    assert not data.process_pledge(OPEN_PROJECT, bob, 40, "T1").accepted
    assert not data.process_pledge(CLOSED_PROJECT, bob, 10).accepted
    repos = {
        "users.csv": data.users,
        "categories.csv": data.categories,
        "projects.csv": data.projects,
        "reward_tiers.csv": data.reward_tiers,
        "pledges.csv": data.pledges,
    }
    for name, repo in repos.items():
        before = data.store.load(name)
        repo.save_all(repo.load_all())
        assert data.store.load(name) == before
    assert len(data.store.load("pledges.csv")) == 4


def test_add_and_update_keep_malformed_rows(data):
    broken = ["C09", "Too short"]
    data.categories.restore(data.categories.snapshot() + [broken])

    data.categories.add(Category("C10", "Games", "board games"))
    data.categories.update(Category("C01", "Technology", "gadgets and tools"))

    rows = data.categories.snapshot()
    assert broken in rows
    assert rows.index(broken) == len(rows) - 2
    assert [c.category_id for c in data.categories.load_all()] == ["C01", "C02", "C10"]
    assert data.categories.find_by_id("C01").description == "gadgets and tools"


def test_malformed_row_key_is_still_taken(data):
    data.categories.restore(data.categories.snapshot() + [["C09", "Too short"]])
    with pytest.raises(DuplicateRecordError):
        data.categories.add(Category("C09", "Again"))
    with pytest.raises(RecordNotFoundError):
        data.categories.update(Category("C42", "Nope"))


def test_max_sequence_counts_malformed_rows(tmp_path):
    store = CsvStore(tmp_path)
    store.save("pledges.csv", [
        ["P000001", "U001", "12345678", "2026-01-01 10:00:00", "10.0", "", "SUCCESS", ""],
        ["P000007", "U001", "12345678", "yesterday", "10.0", "", "SUCCESS", ""],
    ])
    assert PledgeRepository(store).max_sequence() == 7


def test_next_user_id_skips_malformed_rows(data):
    data.users.restore(data.users.snapshot() + [["U007", "ghost"]])
    assert data.users.next_id() == "U008"


def test_concurrent_registrations_get_distinct_ids(data):
    users = []
    barrier = threading.Barrier(6)

    def register(n):
        barrier.wait()
        users.append(data.users.register(f"user{n}", f"user{n}@example.com", "pw"))

    threads = [threading.Thread(target=register, args=(n,)) for n in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len({u.user_id for u in users}) == 6
    saved = {u.username for u in data.users.load_all()}
    assert {f"user{n}" for n in range(6)} <= saved
    assert len(data.users.load_all()) == 9


def test_empty_user_repository(tmp_path):
    repo = UserRepository(CsvStore(tmp_path))
    assert repo.load_all() == []
    assert repo.find_by_username("alice") is None
    assert repo.next_id() == "U001"
