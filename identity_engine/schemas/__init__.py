from .claims import (
    BatchDecision,
    CandidateClaim,
    Claim,
    ClaimEvidenceLink,
    ClaimWithEvidence,
    LinkedEvidence,
    NewClaimProposal,
)
from .evidence import EVIDENCE_TO_CLAIM_TYPE, Evidence, EvidenceContext
from .issues import ClaimEvalResult, ClaimIssue, GroundingVerdict
from .matching import MatchResult, Opportunity, Requirement, RequirementMatch
from .synthesis import ClaimUpdate, SynthesisProgress, SynthesisResult

__all__ = [
    "BatchDecision",
    "CandidateClaim",
    "Claim",
    "ClaimEvalResult",
    "ClaimEvidenceLink",
    "ClaimIssue",
    "ClaimUpdate",
    "ClaimWithEvidence",
    "EVIDENCE_TO_CLAIM_TYPE",
    "Evidence",
    "EvidenceContext",
    "GroundingVerdict",
    "LinkedEvidence",
    "MatchResult",
    "NewClaimProposal",
    "Opportunity",
    "Requirement",
    "RequirementMatch",
    "SynthesisProgress",
    "SynthesisResult",
]
