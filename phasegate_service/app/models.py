from pydantic import BaseModel, Field
from typing import Dict, Any, Optional, Union


class CorpusRequest(BaseModel):
    corpus: Dict[str, Any]


class HypothesesRequest(BaseModel):
    corpus: Dict[str, Any]
    cap: int = Field(15, ge=1)


class ReviewRequest(BaseModel):
    corpus: Dict[str, Any]
    evidence: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    feasibility_threshold: Optional[Union[str, int]] = None
    hypothesis_cap: int = Field(15, ge=1)
    passes: int = Field(1, ge=1, le=10)
    sign: bool = True


class VerifyRequest(BaseModel):
    record: Dict[str, Any]
    corpus: Dict[str, Any]
    evidence: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    trust_store: Optional[Dict[str, Any]] = None


class SeverityRequest(BaseModel):
    impact: str
    ecosystem: Optional[str] = None


class RoleMessageRequest(BaseModel):
    text: str
    author: str = "human"


class InvariantRequest(BaseModel):
    statement: str


class ChallengeRequest(BaseModel):
    invariant_id: str
    claim: str


class ResolutionRequest(BaseModel):
    resolution: str
    resolved_by: str
