from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from provenance_core.runtime_config import EngineRuntimeConfig


class ProvenanceConfig(BaseModel):
    """
    Configuration for the Provenance Core Engine.
    Decouples the engine from environment variables.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # LLM Configuration
    openai_api_key: Optional[str] = Field(None, description="OpenAI API Key for extraction and image checks")
    extraction_model: str = Field("gpt-5-mini", description="Model used for claim extraction")
    vision_model: str = Field("gpt-4o", description="Vision-capable model for image verification")

    # Storage
    firestore_project: Optional[str] = Field(None, description="GCP project for Firestore (default credentials if empty)")
    collection_prefix: str = Field("knowledge", description="Prefix for Firestore collection names")
    media_bucket: str = Field("media-assets", description="GCS bucket that receives promoted media")

    # Runtime knobs (env-backed); loaded lazily when omitted
    runtime: Optional[EngineRuntimeConfig] = Field(None, description="Runtime tunables, see runtime_config")
