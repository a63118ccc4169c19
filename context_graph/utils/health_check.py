"""
Health check utilities for the application.
"""

from typing import Any, Dict

from .bedrock_llm import BedrockLLM
from .graph_client import GraphStore, PersistenceError, ResultShapeError
from .logging_config import get_logger

logger = get_logger(__name__)


def check_health(graph_store: GraphStore, llm: BedrockLLM) -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    health_status = get_health_status(graph_store, llm)

    all_healthy = all(status.get('healthy', False) for status in health_status.values())

    if all_healthy:
        logger.info('All system components are healthy')
    else:
        logger.warning('Some system components are unhealthy')

    return all_healthy


def get_health_status(graph_store: GraphStore, llm: BedrockLLM) -> Dict[str, Any]:
    """Get detailed health status of all components.

    Returns:
        Dictionary with health status of each component
    """
    health_status = {}

    # Check graph store
    try:
        with graph_store.session() as session:
            store_healthy = graph_store.health_check(session)
        health_status['graph_store'] = {'healthy': store_healthy, 'service': 'Kuzu', 'path': graph_store.config.path}
    except (PersistenceError, ResultShapeError) as e:
        health_status['graph_store'] = {'healthy': False, 'service': 'Kuzu', 'error': str(e)}

    # Check Bedrock LLM
    health_status['bedrock_llm'] = {
        'healthy': llm.health_check(),
        'service': 'Amazon Bedrock LLM',
        'model': llm.model_id
    }

    return health_status
