"""Repair strategies for generated output that fails validation."""
import json
import re
from typing import Optional

from ..config import get_settings
from ..prompts import get_prompt_loader
from ..utils.logging import get_logger
from .invoker import RepairFunction

PROMPT_NAME = "repair/fix_json"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def create_repair_function(
    client,
    model: Optional[str] = None,
    schema_description: Optional[str] = None
) -> RepairFunction:
    """
    Create a repair strategy that asks the model to fix its own output.

    The prompt quotes the invalid text and the specific parse or validation
    error. A failing repair call yields None so the original error stands.

    Args:
        client: Client with a ``completion`` coroutine
        model: Model to use (settings default when None)
        schema_description: Optional extra notes about the schema
    """
    settings = get_settings()
    loader = get_prompt_loader()
    model = model or settings.default_model
    logger = get_logger("repair")

    async def repair(text: str, error: Exception) -> Optional[str]:
        request = loader.build_request(
            PROMPT_NAME,
            text=text,
            error=str(error),
            is_parse_error=isinstance(error, json.JSONDecodeError),
            schema_description=schema_description
        )

        try:
            repaired = await client.completion(model=model, **request)
        except Exception as e:
            logger.warning(f"Repair attempt failed: {e}")
            return None

        # Models like to wrap the answer in fences or prose
        match = _JSON_OBJECT.search(repaired)
        return match.group(0) if match else repaired

    return repair


def create_logging_repair_function(agent_name: str) -> RepairFunction:
    """
    Repair strategy that only records what went wrong.

    Useful while debugging prompts: shows what the model generated and always
    gives up, so the original error is raised.
    """
    logger = get_logger("repair")

    async def repair(text: str, error: Exception) -> Optional[str]:
        logger.warning(f"[{agent_name}] Schema validation failed: {str(error)[:200]}")
        logger.warning(f"[{agent_name}] Generated text: {text[:500]}...")
        return None

    return repair
