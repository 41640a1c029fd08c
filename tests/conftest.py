"""Pytest fixtures for testing"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./welfare_test.db")

import pytest
from decimal import Decimal
from typing import Any, Dict, Generator, List, Tuple
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from welfare_gateway.api.dependencies import get_notifier
from welfare_gateway.api.main import create_app
from welfare_gateway.domain.models import Actor, Capability
from welfare_gateway.infrastructure.auth.tokens import issue_token
from welfare_gateway.infrastructure.database.models import Base
from welfare_gateway.infrastructure.database.seed import init_db, seed_defaults
from welfare_gateway.infrastructure.database.session import build_engine, get_db
from welfare_gateway.services.evidence import EvidenceStore
from welfare_gateway.services.review import ReviewService


FAST_CATEGORY = "CAT-BEREAVEMENT"  # max RM500, reviewer decides
BOARD_CATEGORY = "CAT-ILLNESS-INPATIENT"  # board decides, reviewer disburses


class RecordingNotifier:
    """Collects notifications instead of delivering them"""

    def __init__(self):
        self.sent: List[Tuple[str, str, Dict[str, Any]]] = []

    def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        self.sent.append((user_id, event, payload))


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so separate sessions (and threads) share data"""
    engine = build_engine(f"sqlite:///{tmp_path / 'welfare.db'}")
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    seed = factory()
    try:
        seed_defaults(seed)
    finally:
        seed.close()
    return factory


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """Create test database and session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def review_service(db: Session, notifier: RecordingNotifier) -> ReviewService:
    return ReviewService(db, notifier=notifier)


@pytest.fixture
def reviewer() -> Actor:
    return Actor("reviewer-1", frozenset({Capability.REVIEWER}))


@pytest.fixture
def board_member() -> Actor:
    return Actor("board-1", frozenset({Capability.BOARD}))


@pytest.fixture
def fund_manager() -> Actor:
    return Actor("finance-1", frozenset({Capability.FUND_MANAGER}))


@pytest.fixture
def student() -> Actor:
    return Actor("student-1", frozenset({Capability.REQUESTER}))


@pytest.fixture
def make_request(review_service: ReviewService, student: Actor):
    """Factory: submit a request in the given category"""

    def _make(category_id: str = FAST_CATEGORY, amount: str = "450.00", justification: str = "Funeral costs"):
        return review_service.submit_request(student, category_id, Decimal(amount), justification)

    return _make


@pytest.fixture
def attach_receipt(db: Session, reviewer: Actor):
    """Factory: attach an active receipt to a request, returning its ID"""

    def _attach(request_id, locator: str = "receipts/transfer-slip.pdf") -> str:
        return EvidenceStore(db).attach_evidence(request_id, reviewer.actor_id, locator).id

    return _attach


@pytest.fixture
def auth_headers():
    """Factory: bearer header for an actor"""

    def _headers(actor: Actor) -> Dict[str, str]:
        return {"Authorization": f"Bearer {issue_token(actor.actor_id, actor.capabilities)}"}

    return _headers


@pytest.fixture
def client(session_factory, notifier: RecordingNotifier) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    return TestClient(app)
