"""Services package: expose all concrete services from one import."""
from .match_service import MatchService, MatchNotFoundError
from .stats_service import StatsService
from .extraction_service import ExtractionService, ExtractionError, ExtractionResult
from .validation_service import ValidationService, ValidationResult
from .export_service import ExportService
from .import_service import ImportService

__all__ = [
    'MatchService',
    'MatchNotFoundError',
    'StatsService',
    'ExtractionService',
    'ExtractionError',
    'ExtractionResult',
    'ValidationService',
    'ValidationResult',
    'ExportService',
    'ImportService',
]
