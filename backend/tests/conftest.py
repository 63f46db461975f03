# tests/conftest.py
import asyncio
import os
import shutil
import tempfile
from pathlib import Path

# Settings are read at import time; point them at throwaway locations first
_TEST_STORAGE = tempfile.mkdtemp(prefix="pagecast-test-")
os.environ.setdefault("STORAGE_PATH", _TEST_STORAGE)
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pagecast.database import Base
from pagecast.dependencies import get_coordinator
from pagecast.errors import StoreFailed, SynthesisFailed
from pagecast.main import app
from pagecast.services.coordinator import PipelineCoordinator
from pagecast.services.extractor import ExtractedPage
from pagecast.services.ledger import Ledger
from pagecast.services.retry import RetryPolicy
from pagecast.services.synthesizer import validate_text

SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

THREE_PAGES = [
    "Chapter one. It was a bright cold day in April.",
    "Chapter two. The clocks were striking thirteen.",
    "Chapter three. Winston slipped quickly through the glass doors.",
]


class FakeExtractor:
    def __init__(self, texts=None, error=None):
        self.texts = list(THREE_PAGES if texts is None else texts)
        self.error = error
        self.calls = 0

    async def extract(self, data):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [ExtractedPage(page_number=n, text=text) for n, text in enumerate(self.texts, start=1)]


class FakeSynthesizer:
    """Records calls; failures are scripted per page text"""
    file_extension = "mp3"
    content_type = "audio/mpeg"

    def __init__(self):
        self.calls = []
        self.fail_times = {}  # text -> number of leading calls that fail
        self.always_fail = set()
        self.gate = None  # asyncio.Event that holds every call until set
        self.active = 0
        self.max_active = 0

    async def synthesize(self, text, voice_id):
        self.calls.append((text, voice_id))
        validate_text(text)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if text in self.always_fail:
                raise SynthesisFailed("voice service unavailable")
            if self.fail_times.get(text, 0) > 0:
                self.fail_times[text] -= 1
                raise SynthesisFailed("transient timeout")
            return f"AUDIO[{voice_id}]:{text}".encode()
        finally:
            self.active -= 1

    def calls_for(self, text):
        return [call for call in self.calls if call[0] == text]


class FakeStore:
    def __init__(self):
        self.objects = {}
        self.fail_times = 0

    async def put(self, key, data, content_type):
        if self.fail_times > 0:
            self.fail_times -= 1
            raise StoreFailed(f"Upload of {key} failed")
        self.objects[key] = (data, content_type)
        return f"https://cdn.test/{key}"


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def engine():
    """Create test database engine"""
    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool  # Needed for SQLite in-memory database
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def ledger(session_factory):
    return Ledger(session_factory)


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_attempts=3, min_delay=1.0, max_delay=10.0, factor=2.0, randomize=False)


@pytest.fixture
def coordinator(extractor, synthesizer, store, ledger, retry_policy, sleeper):
    return PipelineCoordinator(
        extractor=extractor,
        synthesizer=synthesizer,
        store=store,
        ledger=ledger,
        retry_policy=retry_policy,
        concurrency=2,
        sleep=sleeper
    )


@pytest.fixture
def sample_document(ledger):
    """Create a three page document owned by owner-a"""
    pages = [ExtractedPage(page_number=n, text=text) for n, text in enumerate(THREE_PAGES, start=1)]
    return ledger.create_document("Report", "owner-a", pages)


@pytest.fixture
def client(coordinator):
    """Test client wired to the test coordinator"""
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers():
    return {"X-Owner-Id": "owner-a"}


@pytest.fixture(scope="session", autouse=True)
def cleanup_test_files():
    """Clean up test storage after all tests are done"""
    yield
    shutil.rmtree(_TEST_STORAGE, ignore_errors=True)
    for file in ["pagecast.db", "test-pagecast.db"]:
        if Path(file).exists():
            os.remove(file)


def _escape_pdf_text(value):
    return value.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_text_pdf(page_texts):
    """PDF bytes with one page per entry; an empty entry gives a blank page"""
    import io

    from pypdf import PdfWriter
    from pypdf.generic import DecodedStreamObject, DictionaryObject, NameObject

    writer = PdfWriter()
    for text in page_texts:
        page = writer.add_blank_page(width=595, height=842)
        if not text:
            continue
        font_ref = writer._add_object(DictionaryObject({
            NameObject("/Type"): NameObject("/Font"),
            NameObject("/Subtype"): NameObject("/Type1"),
            NameObject("/BaseFont"): NameObject("/Helvetica"),
        }))
        page[NameObject("/Resources")] = DictionaryObject({
            NameObject("/Font"): DictionaryObject({NameObject("/F1"): font_ref})
        })
        stream = DecodedStreamObject()
        stream.set_data(f"BT\n/F1 12 Tf\n72 780 Td\n({_escape_pdf_text(text)}) Tj\nET".encode("latin-1"))
        page[NameObject("/Contents")] = writer._add_object(stream)

    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
def make_pdf():
    return build_text_pdf
