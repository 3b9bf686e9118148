# stepflow/core/models/app.py
from typing import Optional
from pydantic import BaseModel, model_validator, Field, ConfigDict
from stepflow.core.models.database import PostgresConfig
from stepflow.core.errors import (
    ConfigurationError,
    ErrorCode,
    ValidationReport,
    raise_collected,
)
from stepflow.core.utils.url import mask_database_url
import logging
import os


class WorkerConfig(BaseModel):
    """Polling worker settings."""

    model_config = ConfigDict(frozen=True)

    # Sleep between two polls of the task table, in seconds.
    poll_interval_seconds: float = 5.0


class AppConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    # None = in-process MemoryStore (tests, local experiments)
    database: Optional[PostgresConfig] = None
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    # Directory holding `<workflow name>.yml` definitions. None = bundled definitions.
    definitions_dir: Optional[str] = None
    # GeoJSON FeatureCollection used by the `analysis` job
    regions_file: Optional[str] = None

    @model_validator(mode='after')
    def validate_app_configuration(self):
        """Validate worker and filesystem settings.

        Collects all independent errors and raises them together.
        """
        report = ValidationReport('config')

        if self.worker.poll_interval_seconds <= 0:
            report.add(
                ConfigurationError(
                    message='poll_interval_seconds must be positive',
                    code=ErrorCode.CONFIG_INVALID_POLL_INTERVAL,
                    notes=[f'got poll_interval_seconds={self.worker.poll_interval_seconds}'],
                    help_text='use a positive number of seconds, e.g. 5',
                )
            )

        if self.definitions_dir is not None and not os.path.isdir(self.definitions_dir):
            report.add(
                ConfigurationError(
                    message='definitions_dir does not exist',
                    code=ErrorCode.CONFIG_INVALID_PATH,
                    notes=[f'definitions_dir={self.definitions_dir!r}'],
                    help_text='point definitions_dir at a directory of <name>.yml files',
                )
            )

        if self.regions_file is not None and not os.path.isfile(self.regions_file):
            report.add(
                ConfigurationError(
                    message='regions_file does not exist',
                    code=ErrorCode.CONFIG_INVALID_PATH,
                    notes=[f'regions_file={self.regions_file!r}'],
                    help_text='point regions_file at a GeoJSON FeatureCollection',
                )
            )

        raise_collected(report)
        return self

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Build a config from STEPFLOW_* environment variables."""
        database_url = os.getenv('STEPFLOW_DATABASE_URL')
        poll_interval = os.getenv('STEPFLOW_POLL_INTERVAL')
        worker = (
            WorkerConfig(poll_interval_seconds=float(poll_interval))
            if poll_interval
            else WorkerConfig()
        )
        return cls(
            database=PostgresConfig(database_url=database_url) if database_url else None,
            worker=worker,
            definitions_dir=os.getenv('STEPFLOW_DEFINITIONS_DIR') or None,
            regions_file=os.getenv('STEPFLOW_REGIONS_FILE') or None,
        )

    def log_config(self, logger: Optional[logging.Logger] = None) -> None:
        """
        Log the AppConfig in a human-readable format.
        Masks sensitive data like database passwords.

        Args:
            logger: Logger instance to use. If None, uses root logger.
        """
        if logger is None:
            logger = logging.getLogger()

        logger.info('AppConfig:\n%s', self._format_for_logging())

    def _format_for_logging(self) -> str:
        """Internal helper to format the AppConfig for human-readable logging."""
        lines: list[str] = []

        if self.database is not None:
            lines.append('  database:')
            lines.append(f'    database_url: {mask_database_url(self.database.database_url)}')
            lines.append(f'    pool_size: {self.database.pool_size}')
            lines.append(f'    max_overflow: {self.database.max_overflow}')
        else:
            lines.append('  database: memory')

        lines.append('  worker:')
        lines.append(f'    poll_interval: {self.worker.poll_interval_seconds}s')
        lines.append(f'  definitions_dir: {self.definitions_dir or "<bundled>"}')
        if self.regions_file is not None:
            lines.append(f'  regions_file: {self.regions_file}')

        return '\n'.join(lines)
