"""Two-stage image embedding through a rate-limited inference provider.

The vision model first describes the image in a few keywords; the embedding
model then turns that description into a vector. Callers only ever see a
vector or ``None``.
"""

from __future__ import annotations

import base64
import logging
import mimetypes
import os
import random
import threading
from io import BytesIO
from typing import Any, List

import requests
from PIL import Image

from .errors import ImageUnavailable, InferenceError, ProviderCoolingDown, ProviderThrottled
from .rate_limit import RateLimiter
from .settings import PipelineSettings

logger = logging.getLogger(__name__)

VISION_PROMPT = "Describe this item in a few keywords for a lost and found database."
# Cloudinary-style delivery URLs accept an inline resize/quality transform
CLOUDINARY_TRANSFORM = "w_400,h_400,c_limit,q_auto"
LOCAL_MAX_SIZE = (400, 400)
MAX_JITTER_SECONDS = 0.25


def downsample_url(url: str) -> str:
    if "/upload/" in url and f"/upload/{CLOUDINARY_TRANSFORM}/" not in url:
        return url.replace("/upload/", f"/upload/{CLOUDINARY_TRANSFORM}/", 1)
    return url


def _dig(data: Any, *path: Any) -> Any:
    for key in path:
        if isinstance(key, int):
            if not isinstance(data, list) or len(data) <= key:
                return None
        elif not isinstance(data, dict):
            return None
        data = data[key] if isinstance(key, int) else data.get(key)
    return data


class InferenceClient:
    def __init__(
        self,
        settings: PipelineSettings,
        limiter: RateLimiter | None = None,
        *,
        session: requests.Session | None = None,
        rng: random.Random | None = None,
    ):
        self.settings = settings
        self.limiter = limiter or RateLimiter(settings.rate_per_minute, settings.cooldown_seconds)
        self.session = session or requests.Session()
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def compute_embedding(self, image_ref: str | None) -> List[float] | None:
        """Return an embedding for *image_ref*, or ``None`` if one is not available yet."""
        if not image_ref:
            return None
        if not self.settings.api_key:
            logger.warning("GOOGLE_API_KEY is missing; skipping embedding generation")
            return None
        remaining = self.limiter.cooldown_remaining()
        if remaining > 0:
            logger.info("Provider cooldown active (%.0fs left); skipping %s", remaining, image_ref)
            return None
        try:
            description = self.describe_image(image_ref)
            embedding = self.embed_text(description)
        except ProviderCoolingDown as exc:
            logger.info("Embedding for %s skipped: %s", image_ref, exc)
            return None
        except InferenceError as exc:
            logger.error("Embedding generation failed for %s: %s", image_ref, exc)
            return None
        logger.info("Generated embedding with %d dimensions for %s", len(embedding), image_ref)
        return embedding

    def describe_image(self, image_ref: str) -> str:
        data, mime_type = self.load_image(image_ref)
        payload = {
            "contents": [{
                "parts": [
                    {"text": VISION_PROMPT},
                    {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(data).decode("ascii")}},
                ]
            }]
        }
        url = f"{self.settings.base_url}/models/{self.settings.vision_model}:generateContent"
        response = self._post(url, payload)
        text = _dig(response, "candidates", 0, "content", "parts", 0, "text")
        if not isinstance(text, str) or not text.strip():
            raise InferenceError("No description generated by the vision model")
        logger.debug("Vision description: %s", text.strip())
        return text.strip()

    def embed_text(self, text: str) -> List[float]:
        model = self.settings.embedding_model
        payload = {"model": f"models/{model}", "content": {"parts": [{"text": text}]}}
        url = f"{self.settings.base_url}/models/{model}:embedContent"
        response = self._post(url, payload)
        values = _dig(response, "embedding", "values")
        if not isinstance(values, list) or not values:
            raise InferenceError("No embedding returned by the embedding model")
        try:
            return [float(v) for v in values]
        except (TypeError, ValueError) as exc:
            raise InferenceError("Embedding contained non-numeric values") from exc

    def retry_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number *attempt* (0-based), jitter included."""
        base = self.settings.backoff_base_ms / 1000.0
        return base * (self.settings.backoff_factor ** attempt) + self._rng.uniform(0, MAX_JITTER_SECONDS)

    # ------------------------------------------------------------------
    # Image resolution
    # ------------------------------------------------------------------
    def load_image(self, image_ref: str) -> tuple[bytes, str]:
        if image_ref.startswith(("http://", "https://")):
            return self._fetch_remote(downsample_url(image_ref))
        return self._read_local(image_ref)

    def _fetch_remote(self, url: str) -> tuple[bytes, str]:
        try:
            resp = self.session.get(url, timeout=self.settings.request_timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ImageUnavailable(f"Unable to download image {url}: {exc}") from exc
        mime_type = (resp.headers.get("Content-Type") or "").split(";")[0].strip()
        if not mime_type.startswith("image/"):
            mime_type = mimetypes.guess_type(url)[0] or "image/jpeg"
        return resp.content, mime_type

    def _resolve_local_path(self, ref: str) -> str:
        root = self.settings.image_root
        if ref.startswith("/uploads/") and root:
            return os.path.join(root, ref[len("/uploads/"):])
        if os.path.isabs(ref) or not root:
            return ref
        return os.path.join(root, ref)

    def _read_local(self, ref: str) -> tuple[bytes, str]:
        path = self._resolve_local_path(ref)
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as exc:
            raise ImageUnavailable(f"Unable to read image file {path}: {exc}") from exc
        mime_type = mimetypes.guess_type(path)[0] or "image/jpeg"
        return self._downsample(data, mime_type)

    @staticmethod
    def _downsample(data: bytes, mime_type: str) -> tuple[bytes, str]:
        try:
            img = Image.open(BytesIO(data))
            if img.width <= LOCAL_MAX_SIZE[0] and img.height <= LOCAL_MAX_SIZE[1]:
                return data, mime_type
            img.thumbnail(LOCAL_MAX_SIZE)
            out_format = "PNG" if mime_type in ("image/png", "image/webp", "image/gif") else "JPEG"
            if out_format == "JPEG" and img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            buf = BytesIO()
            img.save(buf, format=out_format, optimize=True)
        except (OSError, ValueError):
            # Not something Pillow can decode; let the provider judge the raw bytes
            return data, mime_type
        return buf.getvalue(), "image/png" if out_format == "PNG" else "image/jpeg"

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _post(self, url: str, payload: dict) -> dict:
        attempt = 0
        while True:
            remaining = self.limiter.cooldown_remaining()
            if remaining > 0:
                raise ProviderCoolingDown(remaining)
            self.limiter.wait()
            # Another caller may have hit a 429 while this one slept for its slot
            remaining = self.limiter.cooldown_remaining()
            if remaining > 0:
                raise ProviderCoolingDown(remaining)
            try:
                resp = self.session.post(
                    url,
                    params={"key": self.settings.api_key},
                    json=payload,
                    timeout=self.settings.request_timeout,
                )
            except (requests.Timeout, requests.ConnectionError) as exc:
                error = InferenceError(f"Request to inference provider failed: {exc}", transient=True)
            else:
                status = resp.status_code
                if status == 429:
                    self.limiter.trip()
                    raise ProviderThrottled()
                if 200 <= status < 300:
                    try:
                        return resp.json()
                    except ValueError as exc:
                        raise InferenceError("Inference provider returned malformed JSON") from exc
                error = InferenceError(
                    f"Inference provider error (HTTP {status}): {resp.text[:500]}",
                    status=status,
                    transient=status >= 500,
                )
            if not error.transient or attempt >= self.settings.max_retries:
                raise error
            delay = self.retry_delay(attempt)
            logger.warning(
                "Inference request failed (%s). Retrying in %.2fs (attempt %d/%d)",
                error.status or "network", delay, attempt + 1, self.settings.max_retries,
            )
            self.limiter.sleep(delay)
            attempt += 1


_client: InferenceClient | None = None
_client_lock = threading.Lock()


def get_inference_client(config=None) -> InferenceClient:
    """Return the process-wide :class:`InferenceClient`, building it on first use.

    *config* defaults to the current Flask app's config.
    """
    global _client
    with _client_lock:
        if _client is None:
            if config is None:
                from flask import current_app

                config = current_app.config
            _client = InferenceClient(PipelineSettings.from_mapping(config))
        return _client


def reset_inference_client() -> None:
    global _client
    with _client_lock:
        _client = None


__all__ = ["InferenceClient", "get_inference_client", "reset_inference_client", "downsample_url"]
