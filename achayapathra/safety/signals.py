import os
import random
import threading
from typing import Optional, Protocol

import httpx
from fastapi import Request
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from achayapathra.errors import AssessmentFailure


VISION_MODEL_URL = os.getenv("VISION_MODEL_URL")
VISION_TIMEOUT_SECONDS = float(os.getenv("VISION_TIMEOUT_SECONDS", "10"))

_provider_lock = threading.Lock()


class ImageSignals(BaseModel):
    overall_quality: float = Field(ge=0, le=100)
    discoloration_detected: bool
    moisture_level: float = Field(ge=0, le=100)
    texture_score: float = Field(ge=0, le=100)


class ImageSignalProvider(Protocol):
    def analyze(self, image_ref: Optional[str]) -> ImageSignals: ...


class RandomImageSignalProvider:
    """
    Simulated image analysis. Every field is drawn independently and
    uniformly; discoloration shows up 30% of the time.

    Each call builds its own generator so concurrent requests never share
    random state. Pass a seed to make the draws reproducible.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed

    def analyze(self, image_ref: Optional[str]) -> ImageSignals:
        rng = random.Random(self.seed)

        return ImageSignals(
            overall_quality=rng.random() * 100,
            discoloration_detected=rng.random() > 0.7,
            moisture_level=rng.random() * 100,
            texture_score=rng.random() * 100,
        )


class FixedImageSignalProvider:
    def __init__(self, signals: ImageSignals):
        self.signals = signals
        self.calls: list[Optional[str]] = []

    def analyze(self, image_ref: Optional[str]) -> ImageSignals:
        self.calls.append(image_ref)
        return self.signals


class HttpVisionSignalProvider:
    """
    Adapter for a hosted vision model. The model receives the stored image
    reference and must answer with the four signal fields as JSON.
    """

    def __init__(self, url: str, client: Optional[httpx.Client] = None, timeout: float = VISION_TIMEOUT_SECONDS):
        self.url = url
        self.client = client or httpx.Client(timeout=httpx.Timeout(timeout, connect=5.0))

    def analyze(self, image_ref: Optional[str]) -> ImageSignals:
        if not image_ref:
            raise AssessmentFailure("No image reference to analyze")

        try:
            response = self.client.post(self.url, json={"image": image_ref})
            response.raise_for_status()
            return ImageSignals.model_validate(response.json())
        except httpx.HTTPError as e:
            logger.warning("Vision model request failed for {}: {}", image_ref, e)
            raise AssessmentFailure(f"Vision model unavailable: {e}") from e
        except (ValueError, ValidationError) as e:
            raise AssessmentFailure(f"Vision model returned an invalid payload: {e}") from e

    def close(self):
        self.client.close()


def build_signal_provider() -> ImageSignalProvider:
    if os.getenv("IMAGE_SIGNAL_PROVIDER", "random") == "http":
        if not VISION_MODEL_URL:
            raise RuntimeError("VISION_MODEL_URL must be set for the http signal provider")
        return HttpVisionSignalProvider(VISION_MODEL_URL)

    return RandomImageSignalProvider()


def get_signal_provider(request: Request) -> ImageSignalProvider:
    # one provider per app, so the vision client keeps a single pool
    with _provider_lock:
        provider = getattr(request.app.state, "signal_provider", None)
        if provider is None:
            provider = build_signal_provider()
            request.app.state.signal_provider = provider
    return provider
