import logging

from provenance_core.agents.llm_client import LLMClient
from provenance_core.config import ProvenanceConfig
from provenance_core.runtime_config import EngineRuntimeConfig

logger = logging.getLogger(__name__)


class BaseSkill:
    def __init__(self, config: ProvenanceConfig, llm_client: LLMClient):
        self.config = config
        self.runtime = (config.runtime if config else None) or EngineRuntimeConfig.load_from_env()
        self.llm_client = llm_client
