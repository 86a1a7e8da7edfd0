"""
Utility helpers: configuration loading, logging and name handling.
"""

from .logging_utils import setup_logging
from .io import load_config, load_pipeline_config
from .text_utils import tidy_variable_name, sanitize_filename

__all__ = [
    'setup_logging',
    'load_config',
    'load_pipeline_config',
    'tidy_variable_name',
    'sanitize_filename',
]
