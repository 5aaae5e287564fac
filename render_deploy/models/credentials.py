"""Credential preparation models."""

from pathlib import Path
from typing import Any

from pydantic import BaseModel


class PreparedCredentials(BaseModel):
    """Single-line credentials ready to paste into Render."""

    formatted_credentials: str
    output_path: Path
    masked_credentials: dict[str, Any]
