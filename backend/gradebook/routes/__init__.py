"""Application route blueprints."""

from .certificates import certificates_bp
from .grades import grades_bp
from .groups import groups_bp
from .reports import reports_bp

__all__ = ["certificates_bp", "grades_bp", "groups_bp", "reports_bp"]
