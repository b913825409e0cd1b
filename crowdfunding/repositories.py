"""Typed repositories over the CSV record store.

Each repository owns one collection file. Writes always rewrite the whole
file; ``add`` appends one row and ``update`` swaps one row in place, and both
keep every other row where it was. Rows that cannot be parsed are logged and
skipped on read, but they are written back untouched, so one bad line neither
hides the rest of a collection nor gets lost on the next write.
"""
import logging
import os
import threading

from crowdfunding.csv_store import CsvStore
from crowdfunding.errors import DuplicateRecordError, MalformedRecordError, RecordNotFoundError
from crowdfunding.models import Category, Pledge, Project, RewardTier, User
from crowdfunding.pledges import PledgeEngine

logger = logging.getLogger(__name__)


class CsvRepository:
    filename = None
    model = None

    def __init__(self, store: CsvStore):
        self.store = store

    @property
    def kind(self):
        return self.model.__name__

    def _is_header(self, row):
        return bool(row) and row[0] == self.model.HEADERS[0]

    def _read(self):
        """Every data row in file order as ``[raw_row, entity or None]``."""
        rows = self.store.load(self.filename)
        start = 1 if rows and self._is_header(rows[0]) else 0
        records = []
        for line, row in enumerate(rows[start:], start=start + 1):
            if not row:
                continue
            try:
                entity = self.model.from_row(row)
            except MalformedRecordError as e:
                logger.warning("Skipping malformed row %s:%d: %s", self.filename, line, e.reason)
                entity = None
            records.append([row, entity])
        return records

    def _write(self, records):
        rows = [list(self.model.HEADERS)]
        rows.extend(entity.to_row() if entity is not None else raw for raw, entity in records)
        self.store.save(self.filename, rows)

    def raw_keys(self):
        """First cell of every data row, parsable or not."""
        return [raw[0] for raw, _ in self._read()]

    def load_all(self):
        return [entity for _, entity in self._read() if entity is not None]

    def load_index(self):
        return {entity.key: entity for entity in self.load_all()}

    def find_by_id(self, key):
        if not key:
            return None
        return self.load_index().get(key)

    def save_all(self, entities):
        """Replace the whole collection with ``entities``."""
        self._write([[None, entity] for entity in entities])

    def add(self, entity):
        records = self._read()
        if any(raw[0] == entity.key for raw, _ in records):
            raise DuplicateRecordError(self.kind, entity.key)
        records.append([None, entity])
        self._write(records)
        return entity

    def update(self, entity):
        records = self._read()
        for record in records:
            if record[0][0] == entity.key:
                record[1] = entity
                break
        else:
            raise RecordNotFoundError(self.kind, entity.key)
        self._write(records)
        return entity

    def snapshot(self):
        return self.store.load(self.filename)

    def restore(self, rows):
        self.store.save(self.filename, rows)


class UserRepository(CsvRepository):
    filename = "users.csv"
    model = User

    def __init__(self, store: CsvStore):
        super().__init__(store)
        self._register_lock = threading.Lock()

    def find_by_username(self, username):
        for user in self.load_all():
            if user.username == username:
                return user
        return None

    def authenticate(self, username, password):
        user = self.find_by_username(username)
        if user is not None and user.check_password(password):
            return user
        return None

    def add(self, entity):
        if self.find_by_username(entity.username) is not None:
            raise DuplicateRecordError("User", entity.username)
        return super().add(entity)

    def next_id(self):
        numbers = [int(key[1:]) for key in self.raw_keys()
                   if key[:1] == "U" and key[1:].isdigit()]
        return "U%03d" % (max(numbers, default=0) + 1)

    def register(self, username, email, password):
        """Create a user with the next free id."""
        with self._register_lock:
            user = self.add(User(self.next_id(), username, email, password))
        logger.info("Registered user %s (%s)", user.user_id, user.username)
        return user


class CategoryRepository(CsvRepository):
    filename = "categories.csv"
    model = Category


class ProjectRepository(CsvRepository):
    filename = "projects.csv"
    model = Project

    def find_by_category(self, category_id):
        return [p for p in self.load_all() if p.category_id == category_id]


class RewardTierRepository(CsvRepository):
    filename = "reward_tiers.csv"
    model = RewardTier

    def find_by_project(self, project_id):
        return [t for t in self.load_all() if t.project_id == project_id]


class PledgeRepository(CsvRepository):
    filename = "pledges.csv"
    model = Pledge

    def find_by_project(self, project_id):
        return [p for p in self.load_all() if p.project_id == project_id]

    def find_by_user(self, user_id):
        return [p for p in self.load_all() if p.user_id == user_id]

    def max_sequence(self):
        # unparsable rows still hold their ids
        numbers = [int(key[1:]) for key in self.raw_keys()
                   if key[:1] == "P" and key[1:].isdigit()]
        return max(numbers, default=0)


# ---------------- Facade ----------------
class DataStore:
    """All collections of one data directory plus the pledge engine on top.

    Usable standalone (``DataStore("data")``) or as a Flask extension::

        data = DataStore()
        data.init_app(app)
    """

    def __init__(self, data_dir=None, clock=None):
        self.clock = clock
        if data_dir is not None:
            self.configure(data_dir)

    def configure(self, data_dir):
        self.data_dir = os.fspath(data_dir)
        self.store = CsvStore(self.data_dir)
        self.users = UserRepository(self.store)
        self.categories = CategoryRepository(self.store)
        self.projects = ProjectRepository(self.store)
        self.reward_tiers = RewardTierRepository(self.store)
        self.pledges = PledgeRepository(self.store)
        kwargs = {"clock": self.clock} if self.clock else {}
        self.engine = PledgeEngine(self.projects, self.reward_tiers, self.pledges, **kwargs)
        logger.info("Crowdfunding data directory: %s", os.path.abspath(self.data_dir))
        return self

    def init_app(self, app):
        app.config.setdefault("CROWDFUNDING_DATA_DIR", "data")
        self.configure(app.config["CROWDFUNDING_DATA_DIR"])
        app.extensions["crowdfunding"] = self

    def authenticate(self, username, password):
        return self.users.authenticate(username, password)

    def process_pledge(self, project_id, user, amount, reward_tier_id=None):
        return self.engine.process_pledge(project_id, user, amount, reward_tier_id)
