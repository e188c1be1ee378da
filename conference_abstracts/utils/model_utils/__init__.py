"""
Thin CRUD helpers over the SQLAlchemy models. Business code goes through
these so logging, context and audit entries stay consistent.
"""

from . import base  # re-export to make base helpers discoverable.
