"""
gcp_clients.py - Google Cloud + Gemini helper utilities for CleanNote

This module provides the connections to Google services:
1. Firestore (database for users, journal entries and weekly insights)
2. Gemini text generation through the Google Gen AI SDK, either with an API
   key (GEMINI_API_KEY) or through Vertex AI (GCP_PROJECT / GCP_LOCATION)

Main Features:
- Loads environment variables from a `.env` file if available.
- Exposes every environment setting of the service as a module constant.
- `generate_text()` returns the raw model text and raises typed errors:
    - ConfigurationError when no credential/project is configured
    - GenerationError (status + body) when the API call fails
- `get_firestore_client()` returns a cached Firestore client.

The module is import-safe: clients are only created on first use.
"""

import os
import logging
from typing import Optional

from dotenv import load_dotenv, find_dotenv
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from google.cloud import firestore

_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())

# --- Load environment variables on import ---
try:
    _env_path = find_dotenv(usecwd=True)
    if _env_path:
        load_dotenv(_env_path, override=False)
        _logger.debug("Loaded .env from %s", _env_path)
    else:
        load_dotenv(override=False)
        _logger.debug("No .env found with find_dotenv(); attempted default load.")
except Exception as e:
    _logger.warning("Error loading .env: %s", e)

# --- Environment Configurations ---
GCP_PROJECT: Optional[str] = os.environ.get("GCP_PROJECT")
GCP_LOCATION: str = os.environ.get("GCP_LOCATION", "us-central1")
GEMINI_API_KEY: Optional[str] = os.environ.get("GEMINI_API_KEY") or os.environ.get("GEMINI_TOKEN")
GEMINI_MODEL: str = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")

# Transcription endpoint (Hugging Face inference router by default)
HF_TOKEN: Optional[str] = os.environ.get("HF_TOKEN")
TRANSCRIBE_URL: str = os.environ.get(
    "TRANSCRIBE_URL",
    "https://router.huggingface.co/hf-inference/models/openai/whisper-large-v3",
)

# Identity provider (GoTrue-compatible auth server)
AUTH_URL: Optional[str] = os.environ.get("AUTH_URL")
AUTH_SERVICE_KEY: Optional[str] = os.environ.get("AUTH_SERVICE_KEY")

SESSION_COOKIE_SECURE: bool = os.environ.get("SESSION_COOKIE_SECURE", "0") == "1"
HTTP_TIMEOUT_SECONDS: float = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "60"))

_logger.debug(
    "GCP_PROJECT=%s, GCP_LOCATION=%s, GEMINI_MODEL=%s, GEMINI_API_KEY_set=%s",
    GCP_PROJECT,
    GCP_LOCATION,
    GEMINI_MODEL,
    bool(GEMINI_API_KEY),
)

_genai_client: Optional[genai.Client] = None
_firestore_client: Optional[firestore.Client] = None


class ConfigurationError(RuntimeError):
    """A required setting (credential, project, endpoint) is missing."""


class GenerationError(RuntimeError):
    """The text-generation API answered with an error."""

    def __init__(self, status: Optional[int], body: str):
        super().__init__(f"Gemini generate error {status}: {body}")
        self.status = status
        self.body = body


def get_genai_client() -> genai.Client:
    """
    Return the shared Gen AI client, creating it on first use.

    An API key takes precedence; otherwise Vertex AI is used with the
    configured project. Raises ConfigurationError when neither is set.
    """
    global _genai_client
    if _genai_client is not None:
        return _genai_client

    if GEMINI_API_KEY:
        _logger.info("Initializing Gemini client with API key")
        _genai_client = genai.Client(api_key=GEMINI_API_KEY)
    elif GCP_PROJECT:
        _logger.info("Initializing Gemini client on Vertex AI: project=%s, location=%s", GCP_PROJECT, GCP_LOCATION)
        _genai_client = genai.Client(vertexai=True, project=GCP_PROJECT, location=GCP_LOCATION)
    else:
        raise ConfigurationError("Server missing GEMINI_API_KEY (or GCP_PROJECT for Vertex AI)")
    return _genai_client


async def generate_text(
    prompt_text: str,
    model_name: Optional[str] = None,
    max_output_tokens: int = 2048,
    temperature: float = 0.7,
    top_p: float = 0.9,
) -> str:
    """
    Generate text with Gemini and return the model's raw text.

    No structure is enforced here; callers parse the answer themselves.
    A blocked prompt or an empty candidate list yields an empty string.

    Raises:
        ConfigurationError: no credential configured.
        GenerationError: the API returned an error status.
    """
    client = get_genai_client()
    model_to_use = model_name or GEMINI_MODEL
    config = genai_types.GenerateContentConfig(
        max_output_tokens=max_output_tokens,
        temperature=temperature,
        top_p=top_p,
    )

    try:
        response = await client.aio.models.generate_content(
            model=model_to_use,
            contents=prompt_text,
            config=config,
        )
    except genai_errors.APIError as e:
        _logger.error("Gemini generation failed with status %s: %s", e.code, e.message)
        raise GenerationError(e.code, str(e.details or e.message)) from e

    if not response.candidates:
        _logger.warning("Gemini response was blocked. Prompt Feedback: %s", response.prompt_feedback)
        return ""

    return response.text or ""


def get_firestore_client() -> firestore.Client:
    """
    Return a cached Firestore client for the configured project.

    Raises ConfigurationError if the client cannot be created.
    """
    global _firestore_client
    if _firestore_client is not None:
        return _firestore_client
    try:
        _logger.debug("Initializing Firestore client for project: %s", GCP_PROJECT)
        _firestore_client = firestore.Client(project=GCP_PROJECT)
    except Exception as e:
        _logger.exception("Firestore client initialization failed: %s", e)
        raise ConfigurationError("Could not connect to database.") from e
    return _firestore_client
