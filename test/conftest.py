import sys
import time
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import jwt
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from asgi_lifespan import LifespanManager
from limits.aio.storage import MemoryStorage

# Add the src directory to sys.path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from analyses import InMemoryAnalysisStore
from auth.auth import AuthConfig, SupabaseJWTAuth
from auth.credits import InMemoryProfileStore
from auth.rate_limiting import RateLimiter
from auth.usage_tracking import InMemoryUsageLogStore, Profile, Tier
from service.config import AdmissionComponents, build_admission_components
from service.dependencies import get_resume_model
from service.service import create_app

TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"

RESUME_TEXT = (
    "Jane Doe, Senior Software Engineer. Experience: Acme Corp 2018-2024, led a team of six "
    "engineers building payment APIs in Python and FastAPI, cut latency by 40 percent. "
    "Education: BSc Computer Science, State University. Skills: Python, Redis, PostgreSQL."
)

ANALYSIS_RESULT = {
    "contact": {"name": "Jane Doe"},
    "summary": "Senior engineer focused on payment APIs.",
    "experience": [
        {"company": "Acme Corp", "title": "Senior Software Engineer", "bullets": ["Led a team of six"]},
    ],
    "education": [{"institution": "State University", "degree": "BSc"}],
    "skills": ["Python", "Redis"],
    "atsScore": 78,
    "atsBreakdown": {"formatting": 80, "keywords": 70, "structure": 85, "content": 77},
    "issues": [
        {"type": "warning", "category": "keywords", "message": "Few cloud keywords", "fix": "Mention AWS"},
    ],
    "detectedKeywords": ["Python"],
    "suggestedKeywords": ["AWS"],
    "strengths": ["Quantified impact"],
    "improvements": ["Add a skills summary"],
}

OPTIMIZED_RESULT = {
    "contact": {"name": "Jane Doe"},
    "summary": "Senior software engineer who builds low-latency payment APIs.",
    "experience": [
        {"company": "Acme Corp", "title": "Senior Software Engineer", "bullets": ["Cut API latency by 40%"]},
    ],
    "education": [{"institution": "State University", "degree": "BSc"}],
    "skills": ["Python", "FastAPI", "Redis"],
    "improvements": ["Stronger action verbs"],
}


def make_token(user_id: str, email: str = "", expires_in: int = 3600, secret: str = TEST_JWT_SECRET) -> str:
    claims = {
        "sub": user_id,
        "email": email or f"{user_id}@example.com",
        "aud": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_header(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


class FakeResumeModel:
    """Stands in for ResumeModel, streaming canned partial objects"""

    def __init__(self, chunks: Optional[list[dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.chunks = chunks if chunks is not None else []
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def stream_object(self, schema, prompt, temperature=0.3, max_tokens=4000) -> AsyncIterator[dict[str, Any]]:
        self.calls.append({"schema": schema, "prompt": prompt, "temperature": temperature})
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


def partials_of(result: dict[str, Any]) -> list[dict[str, Any]]:
    """Build a growing sequence of partial objects ending with the full result"""
    keys = list(result)
    return [{k: result[k] for k in keys[:i]} for i in range(1, len(keys) + 1)]


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Configure logging for tests."""
    logging.basicConfig(level=logging.INFO)


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    return InMemoryProfileStore([
        Profile(id="free-user", email="free@example.com", credits=3, tier=Tier.FREE),
        Profile(id="broke-user", email="broke@example.com", credits=0, tier=Tier.FREE),
        Profile(id="pro-user", email="pro@example.com", credits=5, tier=Tier.PRO),
        Profile(id="enterprise-user", email="ent@example.com", credits=0, tier=Tier.ENTERPRISE),
    ])


@pytest.fixture
def usage_store() -> InMemoryUsageLogStore:
    return InMemoryUsageLogStore()


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(MemoryStorage())


@pytest.fixture
def auth_config() -> AuthConfig:
    auth_config = AuthConfig()
    auth_config.register_auth_strategy("supabase_jwt", SupabaseJWTAuth(jwt_secret=TEST_JWT_SECRET))
    return auth_config


@pytest.fixture
def analysis_store() -> InMemoryAnalysisStore:
    return InMemoryAnalysisStore()


@pytest.fixture
def components(auth_config, profile_store, usage_store, rate_limiter, analysis_store) -> AdmissionComponents:
    return build_admission_components(
        auth_config=auth_config,
        profile_store=profile_store,
        usage_store=usage_store,
        rate_limiter=rate_limiter,
        analysis_store=analysis_store,
    )


@pytest.fixture
def resume_model() -> FakeResumeModel:
    return FakeResumeModel(chunks=partials_of(ANALYSIS_RESULT))


@pytest.fixture
def app(components, resume_model):
    app = create_app(components)
    app.dependency_overrides[get_resume_model] = lambda: resume_model
    return app


@pytest_asyncio.fixture
async def client(app):
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost:5000") as client:
            yield client
