from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class SeekerCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)


class AnswerIn(BaseModel):
    question: str = Field(..., min_length=1, examples=["What's your preferred budget range for rent per month?"])
    answer: str = Field(..., min_length=1, examples=["Around $700"])


class QAPair(BaseModel):
    question: str
    answer: str


class SeekerRead(BaseModel):
    id: str
    user_id: str
    answers: List[QAPair]
    completed: bool
    created_at: datetime
    updated_at: datetime
    model_config = {"from_attributes": True}


class QuestionsResponse(BaseModel):
    questions: List[str]
