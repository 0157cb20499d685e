"""tcsignal - Instance readiness signals for provisioning orchestrators.

Provides:
    - Invocation configuration parsing and validation
    - Shell command execution with deadline-aware cancellation
    - EC2 instance identity lookup (IMDSv2) with static overrides
    - SQS signal publishing with a bounded retry/timeout budget
    - The orchestration flow that maps outcomes to process exit codes
"""

__version__ = "0.3.0"

STATUS_SUCCESS = "SUCCESS"
STATUS_FAILURE = "FAILURE"
VALID_STATUSES = (STATUS_SUCCESS, STATUS_FAILURE)

EXIT_OK = 0
EXIT_COMMAND_FAILED = 1
EXIT_INFRA_FAILURE = 2
