from mpca.workflows.execute import ExecutionOutcome, execute_feature
from mpca.workflows.init import init_project
from mpca.workflows.plan import plan_feature
from mpca.workflows.verify import (
    Evidence,
    VerificationResult,
    parse_test_output,
    render_report,
    verify_feature,
)

__all__ = [
    "Evidence",
    "ExecutionOutcome",
    "VerificationResult",
    "execute_feature",
    "init_project",
    "parse_test_output",
    "plan_feature",
    "render_report",
    "verify_feature",
]
