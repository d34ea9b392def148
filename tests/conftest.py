import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Load .env file first before any other imports
from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

# Tests never talk to real vendors or a real database
os.environ["PROVIDER_MODE"] = "mock"
os.environ["APP_ENV"] = "development"
os.environ.pop("DATABASE_URL", None)

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(scope="session", autouse=True)
def configure_test_providers():
    """Force providers to run in mock mode during pytest."""
    from reelforge.config import settings

    original_mode = settings.provider_mode
    original_env = settings.environment
    original_db = settings.database_url

    settings.provider_mode = "mock"
    settings.environment = "development"
    settings.database_url = None
    yield
    settings.provider_mode = original_mode
    settings.environment = original_env
    settings.database_url = original_db


@pytest.fixture
def repository():
    """Fresh in-memory project repository for tests."""
    from reelforge.repository import InMemoryProjectRepository

    return InMemoryProjectRepository()


@pytest.fixture
def describer():
    """Text provider double for description, prompt and keyword calls."""
    provider = AsyncMock()
    provider.name = "describer"
    provider.complete.return_value = '{"storyboard_description": "雨夜的街头，一个撑伞的女孩"}'
    return provider


@pytest.fixture
def image_provider():
    provider = AsyncMock()
    provider.name = "images"
    provider.generate_image.return_value = "https://img.example/shot.png"
    return provider


@pytest.fixture
def providers(describer, image_provider):
    """Provider set with scripted text and image adapters, mocks elsewhere."""
    from reelforge.providers import (
        EchoTextProvider,
        MockStyleAnalyzer,
        MockTranslator,
        MockVideoProvider,
        ProviderSet,
    )

    return ProviderSet(
        splitter=EchoTextProvider(),
        describer=describer,
        translator=MockTranslator(),
        images=image_provider,
        videos=MockVideoProvider(),
        analyzer=MockStyleAnalyzer(),
    )


@pytest.fixture
def assets(repository, providers):
    from reelforge.assets import SegmentAssetService

    return SegmentAssetService(repository=repository, providers=providers)


def make_segment(number: int, text: str, **fields):
    from reelforge.models import Segment

    return Segment(id=fields.pop("id", f"seg-{number}"), number=number, text=text, **fields)


def make_project(segments=None, **fields):
    from reelforge.models import Project

    return Project(id=fields.pop("id", "proj-1"), name=fields.pop("name", "测试项目"), segments=segments or [], **fields)
