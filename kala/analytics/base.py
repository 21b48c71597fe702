"""
Analysis Result Container

Standard wrapper for analysis outputs so batch runs can report on and save
results uniformly.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Union
import json
import logging

import pandas as pd


logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Standard container for analysis results."""
    name: str
    description: str
    data: Union[pd.DataFrame, Dict[str, Any], Any]
    metadata: Dict[str, Any]
    created_at: datetime = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now()

    @property
    def is_empty(self) -> bool:
        if self.data is None:
            return True
        if isinstance(self.data, pd.DataFrame):
            return self.data.empty
        return False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'name': self.name,
            'description': self.description,
            'metadata': self.metadata,
            'created_at': self.created_at.isoformat(),
            'data_type': type(self.data).__name__,
            'data_shape': getattr(self.data, 'shape', None),
        }

    def save(self, output_dir: Union[str, Path]) -> Path:
        """
        Write the data as <name>.parquet and the metadata as <name>.json.

        Args:
            output_dir: Directory to write to, created if needed

        Returns:
            Path of the metadata file
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(exist_ok=True, parents=True)

        if isinstance(self.data, pd.DataFrame):
            self.data.to_parquet(output_dir / f"{self.name}.parquet", index=False)

        metadata_file = output_dir / f"{self.name}.json"
        with open(metadata_file, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

        logger.info(f"Saved analysis result '{self.name}' to {output_dir}")
        return metadata_file
