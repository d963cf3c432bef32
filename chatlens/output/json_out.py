"""JSON output formatter for analysis reports.

Generates camelCase JSON for programmatic use.
"""

from __future__ import annotations

import dataclasses
import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from .. import __version__
from ..engine.analyzer import AnalysisReport


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in rest)


def to_plain(value: Any) -> Any:
    """Convert result records into JSON-ready values with camelCase keys."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            _camel(f.name): to_plain(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, Enum):
        return getattr(value, "label", value.value)
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


class JSONOutput:
    """JSON output formatter."""

    def generate(
        self,
        report: AnalysisReport,
        source_info: dict | None = None
    ) -> dict:
        """Generate JSON-serializable dictionary.

        Args:
            report: Analysis report to serialize
            source_info: Optional snapshot details (path, counts)

        Returns:
            Dictionary ready for JSON serialization
        """
        requested = report.requested()

        result: dict[str, Any] = {
            "metadata": {
                "generatedAt": datetime.now().isoformat(),
                "tool": "Chatlens",
                "version": __version__,
                "analyses": [kind.value for kind in requested],
                "failed": [kind.value for kind in report.failed],
            }
        }

        if source_info:
            result["source"] = source_info

        for kind in requested:
            result[_camel(kind.value)] = to_plain(report.get(kind))

        return result

    def to_json(
        self,
        report: AnalysisReport,
        indent: int = 2,
        **kwargs
    ) -> str:
        """Generate JSON string.

        Args:
            report: Analysis report
            indent: JSON indentation level
            **kwargs: Additional arguments passed to generate()

        Returns:
            JSON formatted string
        """
        data = self.generate(report, **kwargs)
        return json.dumps(data, indent=indent, ensure_ascii=False, default=str)

    def save(
        self,
        report: AnalysisReport,
        output_path: str | Path,
        **kwargs
    ) -> None:
        """Save JSON report to file."""
        content = self.to_json(report, **kwargs)
        Path(output_path).write_text(content, encoding='utf-8')


def export_json(
    report: AnalysisReport,
    output_path: str | Path | None = None,
    **kwargs
) -> str | None:
    """Convenience function to export a report to JSON.

    Args:
        report: Analysis report
        output_path: Optional path to save file. If None, returns string.
        **kwargs: Additional arguments passed to JSONOutput.generate()

    Returns:
        JSON string if no output_path, None otherwise
    """
    output = JSONOutput()

    if output_path:
        output.save(report, output_path, **kwargs)
        return None
    else:
        return output.to_json(report, **kwargs)
