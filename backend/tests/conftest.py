"""Shared test fixtures and configuration for backend tests."""
from typing import Dict, Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

from qwen_rag.errors import GenerationError
from qwen_rag.generation.base import SEARCH_DOCUMENT, GenerationClient
from qwen_rag.main import app


class FakeGenerationClient(GenerationClient):
    """Deterministic in-process GenerationClient.

    Texts listed in ``vectors`` embed to the given vector; any other text
    embeds to ``[len(text), 1.0, 0.0]``.  Texts in ``fail_on`` raise
    GenerationError.  Every call is recorded for assertions.
    """

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        answer: str = "fake answer",
        fail_on: Iterable[str] = (),
    ) -> None:
        self.vectors = dict(vectors or {})
        self.answer = answer
        self.fail_on = set(fail_on)
        self.embed_calls: List[tuple] = []
        self.prompts: List[str] = []
        self.closed = False

    @property
    def model_id(self) -> str:
        return "fake-model"

    async def generate_embedding(self, text: str, input_type: str = SEARCH_DOCUMENT) -> List[float]:
        self.embed_calls.append((text, input_type))
        if text in self.fail_on:
            raise GenerationError(f"refusing to embed {text!r}", "fake")
        if text in self.vectors:
            return list(self.vectors[text])
        return [float(len(text)), 1.0, 0.0]

    async def generate_response(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.answer

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app (lifespan not run)."""
    return TestClient(app)
