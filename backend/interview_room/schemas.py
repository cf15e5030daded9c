from typing import Literal

from pydantic import BaseModel, Field


class AuthMessage(BaseModel):
    type: Literal["auth"]
    token: str = Field(min_length=1)


class FeedbackCategory(BaseModel):
    name: str
    score: float = 0
    feedback: str = ""


class FeedbackReport(BaseModel):
    overallScore: float = 0
    categories: list[FeedbackCategory] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    summary: str = ""
