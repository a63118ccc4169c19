"""
JSON utilities for cleaning LLM responses.
"""


def clean_json_response(response: str) -> str:
    """Clean LLM response by removing code block markers.

    Args:
        response: Raw LLM response

    Returns:
        Cleaned JSON string
    """
    response = response.strip()

    # Remove ```json and ``` markers
    if response.startswith('```json'):
        response = response[7:]
    elif response.startswith('```'):
        response = response[3:]

    if response.endswith('```'):
        response = response[:-3]

    return response.strip()


def slice_json_object(response: str) -> str:
    """Cut the span from the first '{' to the last '}' out of a chatty answer.

    Args:
        response: LLM response that may wrap a JSON object in prose

    Returns:
        The object span, or the input unchanged when no braces are found
    """
    start = response.find('{')
    end = response.rfind('}')
    if start == -1 or end < start:
        return response
    return response[start:end + 1]
