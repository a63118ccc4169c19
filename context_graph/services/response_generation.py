"""
Response Generation Service producing the assistant reply from graph context.
"""

from ..utils.bedrock_llm import BedrockLLMError, TextCompletion
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT_TEMPLATE = """You are a helpful AI assistant with persistent memory powered by a context graph.

CONTEXT FROM YOUR MEMORY:
{context}

Use this context to provide informed, personalized responses. Reference relevant information
from your memory when appropriate. If you remember something about people, topics, or past
conversations mentioned, incorporate that knowledge naturally.

Be conversational and helpful while demonstrating that you remember and understand the
connections between different pieces of information."""


class ResponseGenerationError(Exception):
    """Custom exception for response generation errors."""
    pass


class ResponseGenerator:
    """Generate assistant replies with retrieved context embedded in the system prompt."""

    def __init__(self, llm: TextCompletion):
        """Initialize the response generator."""
        self.llm = llm
        logger.info('Initialized ResponseGenerator')

    def generate(self, user_text: str, context: str) -> str:
        """
        Generate the reply for a user turn.

        Args:
            user_text: The user's message
            context: Retrieved context block

        Returns:
            Reply text, used verbatim

        Raises:
            ResponseGenerationError: If the LLM call fails
        """
        system_prompt = SYSTEM_PROMPT_TEMPLATE.format(context=context)
        try:
            response = self.llm.complete(system_prompt, user_text)
        except BedrockLLMError as e:
            logger.error(f'LLM error during response generation: {e}')
            raise ResponseGenerationError(f'Response generation failed: {e}') from e
        except Exception as e:
            logger.error(f'Unexpected error during response generation: {e}')
            raise ResponseGenerationError(f'Unexpected response generation error: {e}') from e

        logger.debug(f'Generated response (length: {len(response)})')
        return response
