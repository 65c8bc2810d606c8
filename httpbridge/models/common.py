from pydantic import BaseModel


class AckResponse(BaseModel):
    message: str


class ErrorDetail(BaseModel):
    kind: str
    message: str


class ErrorResponse(BaseModel):
    detail: ErrorDetail
