"""API key and prompt resolution.

Key lookup order:
1. File named by DEEPSEEK_API_KEY_FILE (must exist)
2. ./deepseek_api_key.secret
3. DEEPSEEK_API_KEY environment variable

Key material is never logged; only its source is.
"""

import os
from pathlib import Path
from typing import Mapping, Optional

import structlog

from pretackler.utils.exceptions import ConfigError

logger = structlog.get_logger()

KEY_FILE_ENV = "DEEPSEEK_API_KEY_FILE"
KEY_ENV = "DEEPSEEK_API_KEY"
DEFAULT_KEY_FILE = "deepseek_api_key.secret"


def _read_key_file(path: Path) -> Optional[str]:
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise ConfigError(f"Failed to read key file {path}: {e}")
    key = content.strip()
    if not key:
        raise ConfigError(f"Key file is empty: {path}")
    return key


def load_api_key(
    environ: Optional[Mapping[str, str]] = None,
    search_dir: Optional[Path] = None,
) -> str:
    """Resolve the bearer token.

    Raises:
        ConfigError: No usable key was found
    """
    environ = os.environ if environ is None else environ
    search_dir = Path.cwd() if search_dir is None else search_dir

    explicit = environ.get(KEY_FILE_ENV)
    if explicit:
        key = _read_key_file(Path(explicit))
        if key is None:
            raise ConfigError(f"Key file named by {KEY_FILE_ENV} does not exist: {explicit}")
        logger.debug("api_key_resolved", source=KEY_FILE_ENV)
        return key

    key = _read_key_file(search_dir / DEFAULT_KEY_FILE)
    if key is not None:
        logger.debug("api_key_resolved", source=DEFAULT_KEY_FILE)
        return key

    if KEY_ENV in environ:
        key = environ[KEY_ENV].strip()
        if not key:
            raise ConfigError(f"Environment variable {KEY_ENV} is empty")
        logger.debug("api_key_resolved", source=KEY_ENV)
        return key

    raise ConfigError(
        f"No API key found. Place `{DEFAULT_KEY_FILE}` in the working directory, "
        f"or set {KEY_FILE_ENV} or {KEY_ENV}."
    )


def load_prompt(path: Path) -> str:
    """Read the system prompt template.

    Raises:
        ConfigError: File is missing, unreadable, or blank
    """
    try:
        prompt = Path(path).read_text(encoding="utf-8").strip()
    except OSError as e:
        raise ConfigError(f"Failed to read prompt template {path}: {e}")
    if not prompt:
        raise ConfigError(f"Prompt template is empty: {path}")
    return prompt
