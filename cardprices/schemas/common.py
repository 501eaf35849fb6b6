from pydantic import BaseModel, Field


class JobErrorResponse(BaseModel):
    """Error envelope returned by the scheduled job endpoints"""

    error: str = Field(..., description="Error message")


class ServiceErrorResponse(BaseModel):
    """Error envelope returned by client-facing endpoints (429/503)"""

    error: str = Field(..., description="Short error title")
    details: str | None = Field(None, description="Error detail")
