"""Post-agent safety verification."""

from src.smarty.verifier.safety import SafetyVerifier, VerifiedBranch

__all__ = ["SafetyVerifier", "VerifiedBranch"]
