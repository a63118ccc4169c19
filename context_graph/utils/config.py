"""
Configuration management for the graph store, Bedrock and application settings.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service."""
    region: str
    model_id: str
    max_tokens: int
    temperature: float
    retry_attempts: int
    retry_delay: float


@dataclass
class GraphStoreConfig:
    """Configuration for the embedded Kuzu graph store."""
    path: str
    user: str
    password: str


@dataclass
class RetrievalConfig:
    """Configuration for context retrieval strategies."""
    entity_limit: int
    history_limit: int
    max_hops: int
    co_mention_limit: int


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    log_file: Optional[str]
    bedrock_llm: BedrockLLMConfig
    graph_store: GraphStoreConfig
    retrieval: RetrievalConfig
    mcp: MCPConfig


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Bedrock configuration, one attempt unless the caller opts into retries
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-sonnet-20240229-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '4096')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.0')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '1')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '1.0')))

    # Graph store configuration
    graph_store_config = GraphStoreConfig(path=os.getenv('GRAPH_DB_PATH', './data/memory.kuzu'),
                                          user=os.getenv('GRAPH_DB_USER', 'admin'),
                                          password=os.getenv('GRAPH_DB_PASSWORD', 'admin123'))

    # Retrieval configuration
    retrieval_config = RetrievalConfig(entity_limit=int(os.getenv('RETRIEVAL_ENTITY_LIMIT', '10')),
                                       history_limit=int(os.getenv('RETRIEVAL_HISTORY_LIMIT', '10')),
                                       max_hops=int(os.getenv('RETRIEVAL_MAX_HOPS', '2')),
                                       co_mention_limit=int(os.getenv('RETRIEVAL_CO_MENTION_LIMIT', '10')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     log_file=os.getenv('LOG_FILE') or None,
                     bedrock_llm=bedrock_llm_config,
                     graph_store=graph_store_config,
                     retrieval=retrieval_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
