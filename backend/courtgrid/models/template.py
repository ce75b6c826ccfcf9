from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from courtgrid.models.block import BlockType, CourtRef
from courtgrid.utils.time_math import format_hhmm


@dataclass(frozen=True)
class TemplateEntry:
    """
    One recurring block in a template.

    courts=None means "every court the template is applied to".
    """

    start_time: int
    end_time: int
    block_type: BlockType
    priority: Optional[int] = None
    reason: Optional[str] = None
    courts: Optional[Tuple[CourtRef, ...]] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": format_hhmm(self.start_time),
            "end_time": format_hhmm(self.end_time),
            "block_type": self.block_type.value,
            "priority": self.priority,
            "reason": self.reason,
            "courts": [c.to_dict() for c in self.courts] if self.courts is not None else None,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class Template:
    template_id: str
    name: str
    entries: List[TemplateEntry]
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_id": self.template_id,
            "name": self.name,
            "description": self.description,
            "entries": [e.to_dict() for e in self.entries],
        }
