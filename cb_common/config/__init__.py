"""Configuration helpers shared across cairn-bench packages."""

from cb_common.config.env import parse_bool_env, parse_path_env

__all__ = ["parse_bool_env", "parse_path_env"]
