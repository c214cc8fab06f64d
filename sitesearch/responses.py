from typing import Literal

from pydantic import BaseModel


class Accepted(BaseModel):
    result: Literal[True] = True


class Rejected(BaseModel):
    result: Literal[False] = False
    error: str


CommandResult = Accepted | Rejected


class SearchItem(BaseModel):
    site: str
    site_name: str
    uri: str
    title: str
    snippet: str
    relevance: float


class SearchResults(BaseModel):
    result: Literal[True] = True
    count: int
    data: list[SearchItem]


SearchResponse = SearchResults | Rejected


class TotalStatistics(BaseModel):
    sites: int
    pages: int
    lemmas: int
    indexing: bool


class DetailedStatistics(BaseModel):
    url: str
    name: str
    status: str
    status_time: str
    error: str
    pages: int
    lemmas: int


class StatisticsData(BaseModel):
    total: TotalStatistics
    detailed: list[DetailedStatistics]


class StatisticsResponse(BaseModel):
    result: Literal[True] = True
    statistics: StatisticsData
