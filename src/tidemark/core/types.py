"""Type aliases used across Tidemark."""

from __future__ import annotations

from typing import Any

JsonDict = dict[str, Any]
TableName = str
ParameterKey = str
ExportId = str
