"""
Prompt templates for StoryIntake LLM calls.

Every call the pipeline makes (extraction, JSON repair, progress summaries)
is a Jinja2 template in this package. A template may split its text into
[SYSTEM] and [USER] sections. ``config.yaml`` ties each prompt to the
generation type whose settings it uses and may pin values of its own.
"""

from pathlib import Path
from typing import Dict, Any, Optional
import yaml
from jinja2 import Environment, FileSystemLoader, Template

from ..config import get_settings

SYSTEM_MARKER = '[SYSTEM]'
USER_MARKER = '[USER]'


class PromptError(ValueError):
    """A prompt rendered into something that cannot be sent."""


class PromptLoader:
    """
    Render prompt templates into ready-to-send generation requests.

    Usage:
        loader = PromptLoader()
        request = loader.build_request("repair/fix_json", text=raw, error=str(e))
        fixed = await client.completion(model=model, **request)

        # request: {"system_prompt": ..., "prompt": ..., "temperature": ..., "max_tokens": ...}
    """

    def __init__(self, prompts_dir: Optional[Path] = None):
        """
        Initialize prompt loader.

        Args:
            prompts_dir: Directory holding templates and config.yaml
                (defaults to this package)
        """
        if prompts_dir is None:
            # Templates ship inside the package
            prompts_dir = Path(__file__).parent

        self.prompts_dir = Path(prompts_dir)

        # Block tags must not leave stray blank lines in prompts
        self.env = Environment(
            loader=FileSystemLoader(str(self.prompts_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True
        )
        # Story data is embedded as JSON; keep non-ASCII names readable
        self.env.policies['json.dumps_kwargs'] = {'sort_keys': False, 'ensure_ascii': False}

        self.config = self._load_config()
        self._template_cache: Dict[str, Template] = {}

    def _load_config(self) -> Dict[str, Dict[str, Any]]:
        """Read config.yaml, keeping only per-prompt mappings."""
        config_file = self.prompts_dir / "config.yaml"

        if not config_file.exists():
            # Every prompt falls back to settings
            return {}

        with open(config_file, 'r', encoding='utf-8') as f:
            raw = yaml.safe_load(f) or {}

        if not isinstance(raw, dict):
            raise PromptError(f"{config_file} must map prompt names to metadata")

        return {
            name: meta for name, meta in raw.items()
            if isinstance(meta, dict)
        }

    @staticmethod
    def _split_sections(text: str) -> Dict[str, str]:
        """
        Split rendered text into system and user parts.

        Text before any marker is ignored when a marker exists; text without
        markers is all user prompt.
        """
        system_prompt = ""
        user_prompt = ""

        if SYSTEM_MARKER in text:
            remainder = text.split(SYSTEM_MARKER, 1)[1]
            if USER_MARKER in remainder:
                system_part, user_part = remainder.split(USER_MARKER, 1)
                system_prompt = system_part.strip()
                user_prompt = user_part.strip()
            else:
                system_prompt = remainder.strip()
        elif USER_MARKER in text:
            user_prompt = text.split(USER_MARKER, 1)[1].strip()
        else:
            user_prompt = text.strip()

        return {
            "system": system_prompt,
            "user": user_prompt
        }

    def _template(self, prompt_name: str) -> Template:
        template_name = prompt_name if prompt_name.endswith('.j2') else f"{prompt_name}.j2"

        if template_name not in self._template_cache:
            self._template_cache[template_name] = self.env.get_template(template_name)

        return self._template_cache[template_name]

    def render(self, prompt_name: str, **variables) -> Dict[str, str]:
        """
        Render a prompt template with variables.

        Args:
            prompt_name: Template path without extension (e.g. "repair/fix_json")
            **variables: Template variables

        Returns:
            Dict with 'system' and 'user' keys

        Raises:
            jinja2.TemplateNotFound: If the template does not exist
            PromptError: If the user section renders empty
        """
        sections = self._split_sections(self._template(prompt_name).render(**variables))

        if not sections["user"]:
            raise PromptError(f"Prompt '{prompt_name}' rendered an empty user message")

        return sections

    def get_metadata(self, prompt_name: str) -> Dict[str, Any]:
        """Metadata for a prompt from config.yaml ({} when it has none)."""
        return self.config.get(prompt_name.replace('.j2', ''), {})

    def generation_type(self, prompt_name: str) -> str:
        """Settings key for a prompt; defaults to the template's folder name."""
        default = prompt_name.split('/', 1)[0]
        return self.get_metadata(prompt_name).get('generation_type', default)

    def get_temperature(self, prompt_name: str, default: Optional[float] = None) -> float:
        """
        Temperature for a prompt.

        A value pinned in config.yaml wins, then ``default``, then the
        settings of the prompt's generation type.
        """
        pinned = self.get_metadata(prompt_name).get('temperature')
        if pinned is not None:
            return pinned
        if default is not None:
            return default
        return get_settings().get_temperature(self.generation_type(prompt_name))

    def get_max_tokens(self, prompt_name: str, default: Optional[int] = None) -> int:
        """Max tokens for a prompt, resolved like ``get_temperature``."""
        pinned = self.get_metadata(prompt_name).get('max_tokens')
        if pinned is not None:
            return pinned
        if default is not None:
            return default
        return get_settings().get_max_tokens(self.generation_type(prompt_name))

    def build_request(self, prompt_name: str, **variables) -> Dict[str, Any]:
        """
        Render a prompt and attach its sampling parameters.

        The result is keyword arguments for ``OpenRouterClient.completion``
        and the invoker's ``generate_object``/``stream_object``. An empty
        system section is sent as None.
        """
        sections = self.render(prompt_name, **variables)
        return {
            "system_prompt": sections["system"] or None,
            "prompt": sections["user"],
            "temperature": self.get_temperature(prompt_name),
            "max_tokens": self.get_max_tokens(prompt_name)
        }


# Shared loader; templates are cached per instance
_loader: Optional[PromptLoader] = None


def get_prompt_loader() -> PromptLoader:
    """Get the shared PromptLoader."""
    global _loader
    if _loader is None:
        _loader = PromptLoader()
    return _loader
