from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Status(str, Enum):
    INDEXING = "INDEXING"
    INDEXED = "INDEXED"
    FAILED = "FAILED"


@dataclass(kw_only=True)
class Site:
    id: int = 0
    url: str
    name: str
    status: Status
    status_time: datetime
    last_error: str | None = None


@dataclass(kw_only=True)
class Page:
    id: int = 0
    site_id: int
    path: str
    code: int
    content: str


@dataclass(kw_only=True)
class Lemma:
    id: int = 0
    site_id: int
    lemma: str
    frequency: int


@dataclass(kw_only=True)
class Index:
    id: int = 0
    page_id: int
    lemma_id: int
    rank: float
