"""
Pydantic models for the conversion run report
"""

from datetime import datetime
from typing import List, Optional, Dict
from pydantic import BaseModel, Field


# ============================================================
# Layer Models
# ============================================================

class LayerReport(BaseModel):
    name: str
    geometry_type: str
    tag_columns: List[str] = Field(default_factory=list)
    has_json_field: bool = False
    features_read: int = 0
    features_converted: int = 0
    rows_skipped: int = 0
    skip_reasons: Dict[str, int] = Field(default_factory=dict)  # reason code -> rows

    def record_skip(self, reason: str, count: int = 1) -> None:
        self.rows_skipped += count
        self.skip_reasons[reason] = self.skip_reasons.get(reason, 0) + count


class DroppedLayer(BaseModel):
    name: str
    reason: str
    detail: str


# ============================================================
# Run Model
# ============================================================

class ConversionReport(BaseModel):
    input_path: str
    output_path: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    completed: bool = False

    layers: List[LayerReport] = Field(default_factory=list)
    dropped_layers: List[DroppedLayer] = Field(default_factory=list)

    # Entity counts written to the output
    nodes: int = 0
    ways: int = 0
    relations: int = 0

    @property
    def rows_skipped(self) -> int:
        return sum(layer.rows_skipped for layer in self.layers)

    @property
    def layers_dropped(self) -> int:
        return len(self.dropped_layers)

    @property
    def features_converted(self) -> int:
        return sum(layer.features_converted for layer in self.layers)
