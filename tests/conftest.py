"""Pytest configuration and fixtures."""

import base64
import os
import time
from collections.abc import Callable, Generator

# Settings are read at import time, so the environment must be in place first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AI_API_KEY"] = ""
os.environ["IDENTITY_JWT_SECRET"] = "test-identity-secret"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key"
os.environ["WEBHOOK_SIGNING_SECRET"] = "whsec_" + base64.b64encode(b"test-webhook-secret").decode()
os.environ["GOOGLE_CLIENT_ID"] = "test-google-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-google-client-secret"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["RATE_LIMIT_BACKEND"] = "memory"

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.integratepdf import models_db  # noqa: F401
from app.integratepdf.database import Base, get_db, get_session_factory
from app.integratepdf.main import app
from app.integratepdf.models import ExtractionPayload, StructuredDataItem
from app.integratepdf.services import rate_limit
from app.integratepdf.services.ai import get_ai_service
from app.integratepdf.services.storage_service import LocalStorageService, get_storage_service

IDENTITY_SECRET = "test-identity-secret"


class FakeAIService:
    """Stands in for AIService; returns a fixed payload or raises `error`."""

    def __init__(self):
        self.calls: list[tuple[str, bytes, str | None]] = []
        self.error: Exception | None = None
        self.items = [
            StructuredDataItem(key="Invoice Number", value="INV-1001", confidence=0.9),
            StructuredDataItem(key="Total Amount", value="$150.00", confidence=0.8),
            StructuredDataItem(key="Vendor", value="Acme Corp", confidence=0.7),
        ]

    async def extract_structured_data(self, file_name, pdf_bytes, keywords=None):
        self.calls.append((file_name, pdf_bytes, keywords))
        if self.error is not None:
            raise self.error
        return ExtractionPayload(
            fileName=file_name,
            extractedKeywords=[k.strip() for k in (keywords or "").split(",") if k.strip()],
            structuredData=self.items,
        )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    """Session factory bound to a fresh in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def storage(tmp_path) -> LocalStorageService:
    return LocalStorageService(tmp_path / "storage")


@pytest.fixture
def fake_ai_service() -> FakeAIService:
    return FakeAIService()


# =============================================================================
# Application
# =============================================================================


@pytest.fixture
def client(
    session_factory: sessionmaker,
    storage: LocalStorageService,
    fake_ai_service: FakeAIService,
) -> Generator[TestClient, None, None]:
    """Create a test client wired to the in-memory database and fakes."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_storage_service] = lambda: storage
    app.dependency_overrides[get_ai_service] = lambda: fake_ai_service
    rate_limit._upload_rate_limiter = None

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    rate_limit._upload_rate_limiter = None


@pytest.fixture
def make_auth_headers() -> Callable[..., dict[str, str]]:
    """Factory for Authorization headers carrying a signed identity token."""

    def _make(sub: str = "user_alice", expires_in: int = 3600, **claims) -> dict[str, str]:
        now = int(time.time())
        token = jwt.encode(
            {"sub": sub, "iat": now, "exp": now + expires_in, **claims},
            IDENTITY_SECRET,
            algorithm="HS256",
        )
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def auth_headers(make_auth_headers) -> dict[str, str]:
    return make_auth_headers("user_alice", email="alice@example.com", first_name="Alice")


@pytest.fixture
def other_auth_headers(make_auth_headers) -> dict[str, str]:
    return make_auth_headers("user_bob", email="bob@example.com")


# =============================================================================
# Files
# =============================================================================


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """
    Create a minimal valid PDF for testing.

    This is a minimal PDF structure that should be recognized as a valid PDF.
    """
    pdf_content = b"""%PDF-1.4
1 0 obj
<< /Type /Catalog /Pages 2 0 R >>
endobj
2 0 obj
<< /Type /Pages /Kids [3 0 R] /Count 1 >>
endobj
3 0 obj
<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R >>
endobj
4 0 obj
<< /Length 44 >>
stream
BT
/F1 12 Tf
100 700 Td
(Invoice) Tj
ET
endstream
endobj
xref
0 5
0000000000 65535 f
0000000009 00000 n
0000000058 00000 n
0000000115 00000 n
0000000214 00000 n
trailer
<< /Size 5 /Root 1 0 R >>
startxref
306
%%EOF"""
    return pdf_content


@pytest.fixture
def invalid_file_bytes() -> bytes:
    """Create invalid (non-PDF) file bytes for testing."""
    return b"This is not a PDF file"


@pytest.fixture
def uploaded_document(client: TestClient, auth_headers, sample_pdf_bytes) -> dict:
    """Upload the sample PDF as the default user and return the document."""
    response = client.post(
        "/documents",
        files={"file": ("invoice.pdf", sample_pdf_bytes, "application/pdf")},
        data={"keywords": "Invoice Number, Total"},
        headers=auth_headers,
    )
    assert response.status_code == 200, response.text
    return response.json()["document"]
