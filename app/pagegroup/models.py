"""
Pydantic models for the page-grouped extraction pipeline.

Defines the domain types (page groups, field specs, extracted pages,
accumulated results, progress events) and the request/response shapes of
the HTTP surface. Wire names are camelCase; Python attributes are
snake_case.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising to camelCase while accepting either spelling."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ExtractionMode(str, Enum):
    """Supported extraction strategies."""

    FIELD = "field"
    TABLE = "table"


DEFAULT_TABLE_HEADERS: list[str] = ["Date", "Description", "Amount", "Balance"]


# =============================================================================
# Domain Models
# =============================================================================


class PageGroup(CamelModel):
    """
    A contiguous range of pages processed as one inference unit.

    Attributes:
        group_index: 0-based position of the group in the plan.
        start_page: First page of the group (1-based, inclusive).
        end_page: Last page of the group (1-based, inclusive).
        total_pages: Page count of the whole document.
        is_last_group: True exactly when end_page == total_pages.
    """

    group_index: int = Field(..., ge=0)
    start_page: int = Field(..., ge=1)
    end_page: int = Field(..., ge=1)
    total_pages: int = Field(..., ge=1)
    is_last_group: bool

    @model_validator(mode="after")
    def check_bounds(self) -> "PageGroup":
        """Ensure the range is well formed and the last-group flag agrees."""
        if self.end_page < self.start_page:
            raise ValueError("endPage must not be lower than startPage")
        if self.end_page > self.total_pages:
            raise ValueError("endPage must not exceed totalPages")
        if self.is_last_group != (self.end_page == self.total_pages):
            raise ValueError("isLastGroup must be true exactly when endPage == totalPages")
        return self

    @property
    def page_numbers(self) -> list[int]:
        return list(range(self.start_page, self.end_page + 1))

    @property
    def label(self) -> str:
        """Human-readable name, e.g. ``group 2 (pages 11-20)``."""
        return f"group {self.group_index + 1} (pages {self.start_page}-{self.end_page})"


class FieldSpec(CamelModel):
    """A named value to pull from every page in field mode."""

    field_name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)

    @field_validator("field_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("fieldName must not be blank")
        return v


class FieldValue(BaseModel):
    """One extracted value and its detected kind."""

    value: str | None = None
    type: Literal["text", "date"] = "text"


class ExtractedPage(CamelModel):
    """Field-mode result for a single source page."""

    page_number: int = Field(..., ge=1)
    fields: dict[str, FieldValue]


class TableData(BaseModel):
    """Header schema plus the rows found on one page."""

    headers: list[str] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)


class ExtractedTablePage(CamelModel):
    """Table-mode result for a single source page."""

    page_number: int = Field(..., ge=1)
    table_data: TableData


class ExtractionData(BaseModel):
    """Pages produced by one unit of work, or by a whole run."""

    pages: list[ExtractedPage | ExtractedTablePage] = Field(default_factory=list)


class AccumulatedResult(ExtractionData):
    """
    Ordered, growing set of per-page outputs.

    Pages are sorted by page number ascending with at most one entry per
    page number; see ``ResultAccumulator``.
    """


class ProgressEvent(CamelModel):
    """
    Record yielded to the caller for each completed unit of work.

    ``data`` holds the pages the unit produced and ``accumulated`` the
    page-sorted result so far. A final event with ``done=True`` carries the
    whole accumulated result in ``data``.
    """

    success: bool
    mode: ExtractionMode
    data: ExtractionData = Field(default_factory=ExtractionData)
    accumulated: AccumulatedResult | None = None
    group_info: PageGroup | None = None
    page_number: int | None = None
    error: str | None = None
    degraded: bool = False
    completed_pages: int = Field(default=0, ge=0)
    total_pages: int = Field(default=0, ge=0)
    done: bool = False


# =============================================================================
# Request / Response Models
# =============================================================================


class ErrorResponse(BaseModel):
    """Envelope returned for every failed request."""

    success: Literal[False] = False
    error: str


class MergePDFsRequest(BaseModel):
    """Base64 encoded PDF inputs, merged in the given order."""

    pdfs: list[str] = Field(..., min_length=1)


class MergePDFsResponse(CamelModel):
    success: bool = True
    merged_pdf: str = Field(..., alias="mergedPDF")
    page_count: int = Field(..., ge=0)
    skipped_inputs: list[int] = Field(default_factory=list)


class DocumentRequest(CamelModel):
    """Request carrying a single base64 encoded PDF."""

    base64_content: str = Field(..., min_length=1)


class PageCountResponse(CamelModel):
    success: bool = True
    page_count: int = Field(..., ge=0)


class SuggestFieldsResponse(BaseModel):
    success: bool = True
    fields: list[FieldSpec]


class ExtractGroupRequest(DocumentRequest):
    """Request for field extraction over one page group."""

    selected_fields: list[str] = Field(..., min_length=1)
    group_info: PageGroup

    @field_validator("selected_fields")
    @classmethod
    def validate_selected_fields(cls, v: list[str]) -> list[str]:
        """Strip names, drop blanks and keep the first of any duplicate."""
        cleaned: list[str] = []
        for name in v:
            name = name.strip()
            if name and name not in cleaned:
                cleaned.append(name)
        if not cleaned:
            raise ValueError("At least one field must be selected")
        return cleaned


class ExtractGroupResponse(CamelModel):
    success: bool = True
    data: ExtractionData
    group_info: PageGroup


class ExtractTableResponse(BaseModel):
    success: bool = True
    data: ExtractionData


class ExtractDocumentRequest(CamelModel):
    """Request for a full run over one or more PDFs, streamed by default."""

    pdfs: list[str] = Field(..., min_length=1)
    mode: ExtractionMode = ExtractionMode.FIELD
    selected_fields: list[str] | None = None
    stream: bool = True


class ExtractDocumentResponse(CamelModel):
    success: bool = True
    mode: ExtractionMode
    data: ExtractionData
    skipped_inputs: list[int] = Field(default_factory=list)


class ExportFieldsRequest(BaseModel):
    pages: list[ExtractedPage]


class ExportTableRequest(BaseModel):
    pages: list[ExtractedTablePage]


class CacheClearResponse(BaseModel):
    success: bool = True
    cleared: dict[str, int]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy")
    version: str = Field(default="1.0.0")
