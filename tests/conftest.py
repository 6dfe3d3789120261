from datetime import date, datetime, time, timedelta

import pytest

from app import create_app
from config import Config
from models import db
from models.claim import Claim, PurchasedArticle
from models.technician import Technician
from models.user import Role, User
from security.csrf import CSRF_COOKIE
from security.session import create_session
from services import inventory, slot_generator
from services.slot_store import list_slots
from services.collaborators import ClaimRegistry, Collaborators, ResponsablePicker

# far enough in the future for "slot must not be in the past" checks
FUTURE_DAY = date(2099, 3, 2)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    AUTO_CREATE_SCHEMA = True
    LOG_LEVEL = "WARNING"


class FixedWarranty:
    """Warranty evaluator answering the same thing for every article."""

    def __init__(self, covered: bool):
        self.covered = covered
        self.calls = []

    def is_under_warranty(self, purchased_article_id, at):
        self.calls.append(purchased_article_id)
        return self.covered


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def collaborators(app):
    return Collaborators()


@pytest.fixture
def covered_collaborators(app):
    return Collaborators(warranty=FixedWarranty(True), claims=ClaimRegistry(), responsables=ResponsablePicker())


@pytest.fixture
def uncovered_collaborators(app):
    return Collaborators(warranty=FixedWarranty(False), claims=ClaimRegistry(), responsables=ResponsablePicker())


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(*role_names, email=None, name=None):
        counter["n"] += 1
        user = User(email=email or f"user{counter['n']}@example.test", full_name=name)
        for role_name in role_names:
            user.roles.append(Role.query.filter_by(name=role_name).one())
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_technician(app, make_user):
    def _make(name="Tech", with_account=True):
        user = make_user("TECHNICIAN", name=name) if with_account else None
        tech = Technician(user_id=user.id if user else None, full_name=name)
        db.session.add(tech)
        db.session.commit()
        return tech

    return _make


@pytest.fixture
def make_claim(app):
    def _make(client, purchased_days_ago=30, warranty_days=365):
        article = PurchasedArticle(
            client_id=client.id,
            label="Washing machine",
            purchased_at=datetime.utcnow() - timedelta(days=purchased_days_ago),
            warranty_days=warranty_days,
        )
        db.session.add(article)
        db.session.flush()
        claim = Claim(client_id=client.id, purchased_article_id=article.id, description="Does not spin")
        db.session.add(claim)
        db.session.commit()
        return claim

    return _make


@pytest.fixture
def make_part(app):
    counter = {"n": 0}

    def _make(unit_price=20, stock=5, alert_threshold=None, name=None):
        counter["n"] += 1
        return inventory.create_part(
            name or f"Part {counter['n']}",
            f"REF-{counter['n']:04d}",
            unit_price,
            stock=stock,
            alert_threshold=alert_threshold,
        )

    return _make


@pytest.fixture
def technician(make_technician):
    return make_technician("Tech Seven")


@pytest.fixture
def client_user(make_user):
    return make_user("CLIENT", name="Client Three")


@pytest.fixture
def responsable(make_user):
    return make_user("RESPONSABLE", name="Resp One")


@pytest.fixture
def morning_slots(technician):
    """Four one-hour slots 08-12 on FUTURE_DAY, ordered by start time."""
    slot_generator.generate_slots(technician.id, FUTURE_DAY, FUTURE_DAY, time(8), time(12), 60)
    return list_slots(technician_id=technician.id)


@pytest.fixture
def login(app, client):
    def _login(user, csrf=True):
        token = create_session(user.id)
        client.set_cookie(app.config["AUTH_COOKIE_NAME"], token)
        if csrf:
            client.set_cookie(CSRF_COOKIE, "test-csrf-token")
            client.environ_base["HTTP_X_CSRF_TOKEN"] = "test-csrf-token"
        else:
            client.delete_cookie(CSRF_COOKIE)
            client.environ_base.pop("HTTP_X_CSRF_TOKEN", None)
        return client

    return _login
