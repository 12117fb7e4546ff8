"""Pipeline configuration.

The single source of truth for asset location, cipher selection, the
passphrase variable name and the external build/test stages.
"""

from .loader import (  # noqa: F401
    DEFAULT_CONFIG_REL_PATH,
    AssetSettings,
    PipelineConfig,
    load_pipeline_config,
    parse_pipeline_config,
    resolve_config_path,
)
