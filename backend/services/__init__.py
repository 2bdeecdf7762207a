"""
Compliance Reading Engine - Backend Services
Version: 1.1.0

Changelog:
v1.1.0 (2026-10-12): Submission engine, metrology guard
v1.0.0 (2026-10-05): Initial services module
"""

from . import errors
from . import evaluation
from . import instantiation
from . import completeness
from . import answer_store
from . import metrology
from . import forms_repository
from . import submission_engine
