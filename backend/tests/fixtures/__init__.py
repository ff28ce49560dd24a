"""
Test Fixtures Package
"""

from .sample_data import (
    BASE_TIME,
    SAMPLE_GENERATION_RECORD,
    SAMPLE_FAILED_RECORD,
    SAMPLE_LEGACY_RECORD,
    make_job,
)

__all__ = [
    'BASE_TIME',
    'SAMPLE_GENERATION_RECORD',
    'SAMPLE_FAILED_RECORD',
    'SAMPLE_LEGACY_RECORD',
    'make_job',
]
