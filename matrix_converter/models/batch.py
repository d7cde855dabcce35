from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from .effect_settings import EffectSettings
from .. import config


@dataclass(frozen=True)
class BatchItem:
    id: str
    filename: str
    data: bytes
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class Success:
    data: bytes
    member_name: str


@dataclass(frozen=True)
class Failure:
    reason: str
    error: Optional[Exception] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class BatchItemResult:
    id: str
    filename: str
    outcome: Union[Success, Failure]

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Success)


class BatchStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    FATAL = "fatal"


@dataclass
class BatchJob:
    """Ordered inputs + one shared EffectSettings for every item."""
    items: List[BatchItem]
    settings: EffectSettings = field(default_factory=EffectSettings)
    output_format: str = config.DEFAULT_OUTPUT_FORMAT
    quality: int = config.DEFAULT_QUALITY


@dataclass
class BatchResult:
    status: BatchStatus
    results: List[BatchItemResult]
    archive: Optional[bytes] = None
    archive_name: str = config.BATCH_ARCHIVE_NAME
    message: str = ""

    @property
    def successes(self) -> List[BatchItemResult]:
        return [r for r in self.results if r.ok]

    @property
    def failures(self) -> List[BatchItemResult]:
        return [r for r in self.results if not r.ok]
