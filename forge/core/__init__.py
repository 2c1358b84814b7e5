"""Core domain types and logic."""

from .config import ConfigError, ForgeConfig, ServiceConfig, load_config
from .errors import ErrorCode
from .repo import RepoError, RepoRoot, detect_repo_root
from .result import Err, Ok, Result, is_err, is_ok

__all__ = [
    # config
    "ConfigError",
    "ForgeConfig",
    "ServiceConfig",
    "load_config",
    # errors
    "ErrorCode",
    # repo
    "RepoError",
    "RepoRoot",
    "detect_repo_root",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
]
