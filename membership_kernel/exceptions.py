"""
Typed Exception Hierarchy for the Membership Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Lifecycle errors are shown to club administrators verbatim and mapped to
API responses by the surrounding application. Callers must be able to tell
a rejected request (fix the input) from a stale snapshot (refresh and retry)
without parsing message strings.

Every exception therefore:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        engine.request_transition(member_id, MemberStatus.LEFT, reason, actor)
    except MissingCategoryError as e:
        api_response(code=e.code, to_status=e.to_status)
    except ConsistencyError as e:
        reload_member_and_retry(e)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    MembershipKernelError (base)
    |
    +-- LifecycleValidationError          rejected before any mutation
    |   +-- InvalidTransitionError
    |   +-- MissingCategoryError
    |   +-- ReasonLengthError
    |   +-- InvalidRangeError
    |   +-- SameDayTransitionError
    |   +-- MembershipTypeChangeError
    |
    +-- ConsistencyError                  refresh state and retry
    |   +-- OverlapError
    |   +-- ConcurrentModificationError
    |   +-- LifecycleInvariantError
    |
    +-- PeriodError
    |   +-- NotOpenError
    |   +-- PeriodNotFoundError
    |
    +-- LookupFailedError
    |   +-- MemberNotFoundError
    |   +-- TransitionNotFoundError
    |
    +-- CancellationError
        +-- CancellationNotAllowedError
        +-- CancellationExistsError
        +-- NoCancellationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_TRANSITION          | Edge not in the status graph
                | MISSING_LEFT_CATEGORY       | LEFT without explicit or auto category
                | REASON_LENGTH               | Reason blank or longer than allowed
                | INVALID_RANGE               | leave_date before join_date
                | SAME_DAY_TRANSITION         | Second status change on one date
                | MEMBERSHIP_TYPE_CHANGE      | Type change without an open period
----------------|-----------------------------|-----------------------------------------
Consistency     | PERIOD_OVERLAP              | Membership periods would intersect
                | CONCURRENT_MODIFICATION     | Timeline changed since the snapshot
                | LIFECYCLE_INVARIANT         | A derived state breaks an invariant
----------------|-----------------------------|-----------------------------------------
Period          | PERIOD_NOT_OPEN             | Closing an already closed period
                | PERIOD_NOT_FOUND            | Unknown period id
----------------|-----------------------------|-----------------------------------------
Lookup          | MEMBER_NOT_FOUND            | Unknown member id
                | TRANSITION_NOT_FOUND        | Unknown transition id
----------------|-----------------------------|-----------------------------------------
Cancellation    | CANCELLATION_NOT_ALLOWED    | Status cannot receive a cancellation
                | CANCELLATION_EXISTS         | A cancellation is already recorded
                | NO_CANCELLATION             | Nothing to revoke

Nothing in the kernel retries automatically. Retry policy belongs to the
caller.
"""


class MembershipKernelError(Exception):
    """
    Base exception for all membership kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "MEMBERSHIP_KERNEL_ERROR"


# Validation errors


class LifecycleValidationError(MembershipKernelError):
    """Base exception for requests rejected before any mutation."""

    code: str = "LIFECYCLE_VALIDATION_ERROR"


class InvalidTransitionError(LifecycleValidationError):
    """The requested status change is not an edge of the status graph."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, effective_date: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.effective_date = effective_date
        at = f" on {effective_date}" if effective_date else ""
        super().__init__(
            f"Transition from {from_status} to {to_status} is not allowed{at}"
        )


class MissingCategoryError(LifecycleValidationError):
    """A transition to LEFT needs a left category and none could be resolved."""

    code: str = "MISSING_LEFT_CATEGORY"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"A left category is required for {from_status} -> {to_status}"
        )


class ReasonLengthError(LifecycleValidationError):
    """Transition reason is blank or too long."""

    code: str = "REASON_LENGTH"

    def __init__(self, length: int, min_length: int, max_length: int):
        self.length = length
        self.min_length = min_length
        self.max_length = max_length
        super().__init__(
            f"Reason must be between {min_length} and {max_length} characters "
            f"(got {length})"
        )


class InvalidRangeError(LifecycleValidationError):
    """A period's leave date lies before its join date."""

    code: str = "INVALID_RANGE"

    def __init__(self, join_date: str, leave_date: str, period_id: str | None = None):
        self.period_id = period_id
        self.join_date = join_date
        self.leave_date = leave_date
        super().__init__(
            f"Leave date {leave_date} is before join date {join_date}"
        )


class SameDayTransitionError(LifecycleValidationError):
    """A status change already exists on this effective date."""

    code: str = "SAME_DAY_TRANSITION"

    def __init__(self, effective_date: str, existing_transition_id: str):
        self.effective_date = effective_date
        self.existing_transition_id = existing_transition_id
        super().__init__(
            f"A status change is already recorded on {effective_date} "
            f"(transition {existing_transition_id})"
        )


class MembershipTypeChangeError(LifecycleValidationError):
    """A membership type change cannot be recorded on this date."""

    code: str = "MEMBERSHIP_TYPE_CHANGE"

    def __init__(self, member_id: str, effective_date: str, detail: str):
        self.member_id = member_id
        self.effective_date = effective_date
        self.detail = detail
        super().__init__(
            f"Cannot change membership type of {member_id} on {effective_date}: {detail}"
        )


# Consistency errors


class ConsistencyError(MembershipKernelError):
    """Base exception for errors that require a refresh before retrying."""

    code: str = "CONSISTENCY_ERROR"


class OverlapError(ConsistencyError):
    """A membership period would intersect another period of the member."""

    code: str = "PERIOD_OVERLAP"

    def __init__(
        self,
        member_id: str,
        join_date: str,
        leave_date: str | None,
        conflicting_period_ids: list[str],
    ):
        self.member_id = member_id
        self.join_date = join_date
        self.leave_date = leave_date
        self.conflicting_period_ids = conflicting_period_ids
        end = leave_date or "open"
        super().__init__(
            f"Period {join_date}..{end} of member {member_id} overlaps "
            f"{len(conflicting_period_ids)} existing period(s)"
        )


class ConcurrentModificationError(ConsistencyError):
    """The member's timeline changed between snapshot and commit."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, member_id: str, expected_version: int, actual_version: int):
        self.member_id = member_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Member {member_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )


class LifecycleInvariantError(ConsistencyError):
    """A derived timeline would break a lifecycle invariant."""

    code: str = "LIFECYCLE_INVARIANT"

    def __init__(self, invariant: str, member_id: str, detail: str):
        self.invariant = invariant
        self.member_id = member_id
        self.detail = detail
        super().__init__(f"[{invariant}] member {member_id}: {detail}")


# Period errors


class PeriodError(MembershipKernelError):
    """Base exception for membership period errors."""

    code: str = "PERIOD_ERROR"


class NotOpenError(PeriodError):
    """The period already has a leave date."""

    code: str = "PERIOD_NOT_OPEN"

    def __init__(self, period_id: str, leave_date: str):
        self.period_id = period_id
        self.leave_date = leave_date
        super().__init__(f"Period {period_id} is already closed on {leave_date}")


class PeriodNotFoundError(PeriodError):
    """Period with given ID was not found."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_id: str):
        self.period_id = period_id
        super().__init__(f"Membership period not found: {period_id}")


# Lookup errors


class LookupFailedError(MembershipKernelError):
    """Base exception for unknown identifiers."""

    code: str = "LOOKUP_FAILED"


class MemberNotFoundError(LookupFailedError):
    """Member with given ID was not found."""

    code: str = "MEMBER_NOT_FOUND"

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__(f"Member not found: {member_id}")


class TransitionNotFoundError(LookupFailedError):
    """Status transition with given ID was not found."""

    code: str = "TRANSITION_NOT_FOUND"

    def __init__(self, transition_id: str):
        self.transition_id = transition_id
        super().__init__(f"Status transition not found: {transition_id}")


# Cancellation errors


class CancellationError(MembershipKernelError):
    """Base exception for formal cancellation errors."""

    code: str = "CANCELLATION_ERROR"


class CancellationNotAllowedError(CancellationError):
    """The member's status does not accept a cancellation."""

    code: str = "CANCELLATION_NOT_ALLOWED"

    def __init__(self, member_id: str, status: str):
        self.member_id = member_id
        self.status = status
        super().__init__(
            f"Member {member_id} with status {status} cannot be cancelled"
        )


class CancellationExistsError(CancellationError):
    """A formal cancellation is already recorded for the member."""

    code: str = "CANCELLATION_EXISTS"

    def __init__(self, member_id: str, cancellation_date: str):
        self.member_id = member_id
        self.cancellation_date = cancellation_date
        super().__init__(
            f"Member {member_id} already has a cancellation effective {cancellation_date}"
        )


class NoCancellationError(CancellationError):
    """There is no formal cancellation to revoke."""

    code: str = "NO_CANCELLATION"

    def __init__(self, member_id: str):
        self.member_id = member_id
        super().__init__(f"Member {member_id} has no recorded cancellation")
