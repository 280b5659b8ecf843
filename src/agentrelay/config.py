"""
Orchestrator configuration.

Matching weights and quality-score deductions are policy, not contract:
every number here can be overridden per deployment.
"""

import json
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from agentrelay.domain.models import ExecutionStrategy


class MatchingPolicy(BaseModel):
    """Weights used by the CapabilityMatcher."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    strength_weight: float = Field(default=3.0, ge=0.0)
    capability_weight: float = Field(default=2.0, ge=0.0)
    output_weight: float = Field(default=1.0, ge=0.0)
    limitation_penalty: float = Field(default=4.0, ge=0.0)
    min_confidence: float = Field(default=0.3, ge=0.0, le=1.0)


class RecoveryPolicy(BaseModel):
    """Bounds for the RecoveryManager strategies."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_retries: int = Field(default=2, ge=0)
    max_decomposition_depth: int = Field(default=1, ge=0)


class QualityScorePolicy(BaseModel):
    """Deductions applied to the report's overall quality score."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    base_score: float = Field(default=100.0, gt=0.0)
    failed_check_penalty: float = Field(default=15.0, ge=0.0)
    indeterminate_penalty: float = Field(default=10.0, ge=0.0)
    error_penalty: float = Field(default=5.0, ge=0.0)
    recovery_penalty: float = Field(default=2.0, ge=0.0)
    bottleneck_ratio: float = Field(default=1.5, gt=1.0)


class OrchestratorConfig(BaseModel):
    """Top-level configuration for WorkflowOrchestrator."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_workers: int = Field(default=4, ge=1, description="Bounded worker pool size")
    step_timeout: float | None = Field(
        default=None, gt=0.0, description="Default per-step timeout in seconds"
    )
    default_strategy: ExecutionStrategy = ExecutionStrategy.SEQUENTIAL
    matching: MatchingPolicy = Field(default_factory=MatchingPolicy)
    recovery: RecoveryPolicy = Field(default_factory=RecoveryPolicy)
    scoring: QualityScorePolicy = Field(default_factory=QualityScorePolicy)

    @classmethod
    def from_file(cls, path: Path) -> "OrchestratorConfig":
        """Load configuration from a JSON file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            pydantic.ValidationError: If the content is invalid
        """
        if not path.exists():
            raise FileNotFoundError(f"Config not found: {path}")
        return cls.model_validate(json.loads(path.read_text()))
