from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


CellValue = Union[str, int, float, bool, None]


class SortModel(BaseModel):
    key: Optional[str] = None
    direction: Literal["asc", "desc"] = "asc"


class ViewStateModel(BaseModel):
    search: str = ""
    column_filters: Dict[str, str] = Field(default_factory=dict)
    sort: SortModel = Field(default_factory=SortModel)
    page_size: Optional[int] = None
    page: int = 1


class TableModel(BaseModel):
    headers: List[str]
    rows: List[List[CellValue]]


class ViewRequestModel(BaseModel):
    table: TableModel
    state: ViewStateModel = Field(default_factory=ViewStateModel)


class SaveTableModel(BaseModel):
    tableName: str = ""
    fileName: str = ""
    sheetName: str = ""
    headers: Optional[List[str]] = None
    rows: Optional[List[List[CellValue]]] = None
