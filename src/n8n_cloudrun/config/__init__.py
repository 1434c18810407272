"""Configuration loading for n8n-cloudrun deployments.

Main components:
- load_project_config: Resolve and validate the project configuration
- resolve_setting: Ordered resolver chain (file, environment, prompt)
- Default names, APIs and probe settings
"""

from n8n_cloudrun.config.loader import (
    from_default,
    from_env,
    from_file,
    from_prompt,
    load_project_config,
    read_config_file,
    resolve_setting,
)

__all__ = [
    "from_default",
    "from_env",
    "from_file",
    "from_prompt",
    "load_project_config",
    "read_config_file",
    "resolve_setting",
]
