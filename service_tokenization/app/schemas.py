"""
Request bodies accepted by the gateway.
"""

from pydantic import BaseModel, ConfigDict, Field


class ConnectRequest(BaseModel):
    """Body of POST /connect."""

    orgUid: str = Field(..., min_length=1)


class TokenizeRequest(BaseModel):
    """Body of POST /tokenize."""

    model_config = ConfigDict(extra="ignore")

    org_uid: str = Field(..., min_length=1)
    warehouse_project_id: str = Field(..., min_length=1)
    vintage_year: int
    sequence_num: int
    to_address: str = Field(..., min_length=1)
    amount: float
    warehouseUnitId: str = Field(..., min_length=1)
