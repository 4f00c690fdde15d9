"""Debug report writer for failure analysis."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from product_ingest.config import settings
from product_ingest.logging_config import attach_debug_log, detach_debug_log

logger = logging.getLogger(__name__)

MAX_DOCUMENT_SAMPLES = 5


class DebugReportWriter:
    """
    Writes the debug artifacts of one run under the logs directory.

    Files are namespaced by the run's ISO timestamp:
    - ``ingest-debug-{ts}.log``: newline-delimited JSON log of the run
    - ``error-details-{ts}.json``: error histogram plus every failed document
    - ``documents-sample-{ts}.json``: up to 5 transformed documents
    """

    def __init__(self, base_path: Optional[str] = None, timestamp: Optional[datetime] = None):
        """
        Initialize debug report writer.

        Args:
            base_path: Directory for the artifacts (defaults to config)
            timestamp: Run timestamp (defaults to now)
        """
        self.base_path = Path(base_path or settings.logs_dir)
        self.base_path.mkdir(parents=True, exist_ok=True)

        stamp = (timestamp or datetime.utcnow()).isoformat(timespec="seconds").replace(":", "-")
        self.log_path = self.base_path / f"ingest-debug-{stamp}.log"
        self.error_report_path = self.base_path / f"error-details-{stamp}.json"
        self.samples_path = self.base_path / f"documents-sample-{stamp}.json"

        self.error_details: list[dict[str, Any]] = []
        self.document_samples: list[dict[str, Any]] = []
        self._log_handler: Optional[logging.Handler] = None

    def start(self):
        """Start mirroring log records into the run's debug log."""
        if self._log_handler is None:
            self._log_handler = attach_debug_log(self.log_path)
            logger.info(f"Debug log: {self.log_path}")

    def stop(self):
        if self._log_handler is not None:
            detach_debug_log(self._log_handler)
            self._log_handler = None

    def add_sample(self, product_id: Any, title: Optional[str], document: dict[str, Any]):
        if len(self.document_samples) >= MAX_DOCUMENT_SAMPLES:
            return
        self.document_samples.append({
            "productId": product_id,
            "title": title,
            "transformedDocument": document,
        })

    def add_errors(self, errors: list[dict[str, Any]]):
        self.error_details.extend(errors)

    def _write_json(self, path: Path, data: Any) -> Path:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)
        return path

    def write(self, summary: dict[str, Any], error_analysis: dict[str, Any]) -> dict[str, Path]:
        """
        Write the error report and document samples.

        Args:
            summary: Run summary counters
            error_analysis: Error histogram keyed by message

        Returns:
            Paths of the written files
        """
        report = {
            "summary": summary,
            "errorAnalysis": error_analysis,
            "errors": self.error_details,
            "timestamp": datetime.utcnow().isoformat(),
        }
        paths = {
            "log": self.log_path,
            "errors": self._write_json(self.error_report_path, report),
            "samples": self._write_json(self.samples_path, self.document_samples),
        }
        logger.info(f"Debug report written to {self.error_report_path}")
        return paths
