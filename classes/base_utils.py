# classes/base_utils.py


import json
import logging
import re

from classes import settings
from classes.errors import ConfigurationError
from classes.llm_client import ChatLlmClient


logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n"
)

logger = logging.getLogger("opsync_agent")


class BaseUtils():
    llm_timeout = settings.LLM_TIMEOUT

    # -----------------------
    # General Utils
    # -----------------------

    def color_print(self, text, color=None):
        COLOR_CODES = {
            'red': '31', 'green': '32', 'yellow': '33', 'blue': '34', 'magenta': '35', 'cyan': '36',
            'bright_red': '91', 'bright_green': '92', 'bright_yellow': '93',
        }
        if color and color.lower() in COLOR_CODES:
            text = f"\033[{COLOR_CODES[color.lower()]}m{text}\033[0m"
        logger.info(str(text))

    def to_json(self, value) -> str:
        """
        JSON text for results going back to the reasoning backend or into the audit log.
        Dates and other odd values fall back to str().
        """
        return json.dumps(value, default=str)

    def unsafe_string_format(self, dest_string, print_unused_keys_report=True, **kwargs):
        """
        Formats a destination string by replacing placeholders with corresponding values from kwargs.

        it works differently from the standard "format" method as instead of looking for all the potential keys, looks only for the keys as passed in kwargs
        (JSON braces and unknown placeholders are left alone)
        """
        missing_keys = []

        def replacer(match):
            key = match.group(1)
            if key in kwargs:
                return str(kwargs[key])
            missing_keys.append(key)
            return match.group(0)

        pattern = re.compile(r'\{(\w+)\}')
        result = pattern.sub(replacer, dest_string)
        if missing_keys and print_unused_keys_report:
            logger.info(f"Missing keys within string-to-format in unsafe_string_format: {', '.join(missing_keys)}")
        return result

    # -----------------------
    # LLM base plumbing
    # -----------------------

    def _build_chat_llm(self, model_name: str | None = None, timeout: float | None = None) -> ChatLlmClient:
        """
        Build a per-request chat client for the configured backend.
        Raises ConfigurationError when no API key is configured.
        """
        api_key = settings.get_llm_api_key()
        if not api_key:
            raise ConfigurationError("GROQ_API_KEY environment variable is not set.")
        if not timeout:
            timeout = self.llm_timeout
        return ChatLlmClient(
            model_name=model_name or settings.LLM_MODEL,
            api_key=api_key,
            base_url=settings.LLM_BASE_URL,
            timeout=timeout,
            temperature=settings.LLM_TEMPERATURE,
            max_tokens=settings.LLM_MAX_TOKENS,
        )
