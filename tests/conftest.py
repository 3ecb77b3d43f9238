# tests/conftest.py
import io
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from PIL import Image
from sqlalchemy.pool import StaticPool
from sqlmodel import Session

from achayapathra.db.db import create_db_engine, init_db
from achayapathra.main import create_app
from achayapathra.models.donation import Donation
from achayapathra.models.user import User
from achayapathra.safety.signals import FixedImageSignalProvider, ImageSignals, get_signal_provider
from achayapathra.utils.auth_helper import ALGORITHM, get_jwt_secret
from achayapathra.utils.s3_service import ImageStorage, get_image_storage


CLEAN_SIGNALS = ImageSignals(
    overall_quality=90,
    discoloration_detected=False,
    moisture_level=20,
    texture_score=90,
)

SPOILED_SIGNALS = ImageSignals(
    overall_quality=15,
    discoloration_detected=True,
    moisture_level=95,
    texture_score=10,
)


class FakeS3Client:
    def __init__(self):
        self.objects = {}

    def upload_fileobj(self, buffer, bucket, key):
        self.objects[key] = buffer.read()

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://cdn.test/{Params['Key']}"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


def make_user(session: Session, name: str, role: str, **extra) -> User:
    user = User(
        public_id=f"{name}-{uuid.uuid4().hex[:8]}",
        name=name.title(),
        email=f"{name}@example.org",
        role=role,
        **extra,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def make_donation(session: Session, donor: User, status="pending", **extra) -> Donation:
    fields = dict(
        donor_id=donor.id,
        title="Veg biryani",
        food_category="vegetarian",
        quantity=40,
        storage_condition="covered",
        preparation_time=datetime.now(timezone.utc) - timedelta(hours=1),
        location="MG Road community hall",
        latitude=12.9716,
        longitude=77.5946,
        status=status,
    )
    fields.update(extra)

    donation = Donation(**fields)
    session.add(donation)
    session.commit()
    session.refresh(donation)
    return donation


@pytest.fixture
def donor(session):
    return make_user(session, "donor", "donor")


@pytest.fixture
def ngo(session):
    return make_user(session, "ngo", "ngo", latitude=12.9716, longitude=77.5946)


@pytest.fixture
def other_ngo(session):
    return make_user(session, "helpinghands", "ngo")


@pytest.fixture
def admin(session):
    return make_user(session, "admin", "admin")


def auth_headers(user: User) -> dict:
    token = jwt.encode({"sub": user.public_id}, get_jwt_secret(), algorithm=ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


def png_bytes(color=(200, 120, 40)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (64, 48), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def signal_provider():
    return FixedImageSignalProvider(CLEAN_SIGNALS)


@pytest.fixture
def app(engine, s3_client, signal_provider):
    app = create_app(engine)
    storage = ImageStorage(client=s3_client, bucket="test-bucket")

    app.dependency_overrides[get_image_storage] = lambda: storage
    app.dependency_overrides[get_signal_provider] = lambda: signal_provider
    return app


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app, raise_app_exceptions=True)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
