"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The scheduler decides per error type whether a pass aborts, a single
configuration is recorded as failed, or a row is rejected at load time.
Matching on message text for those decisions is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, log-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - RIGHT way:
    try:
        next_due_date(current, frequency, timezone)
    except InvalidFrequencyError as e:
        log.error("bad frequency", extra={"value": e.frequency})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from BillingKernelError:

    BillingKernelError (base)
    |
    +-- ScheduleError
    |   +-- InvalidFrequencyError
    |   +-- InvalidTimezoneError
    |   +-- InvalidSchedulerSettingsError
    |
    +-- GenerationError
    |   +-- GenerationTimeoutError
    |
    +-- NotFoundError
    |   +-- TenantNotFoundError
    |   +-- GenerationConfigNotFoundError
    |   +-- GenerationLogNotFoundError
    |
    +-- GenerationLogNotRetryableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Schedule        | INVALID_FREQUENCY             | Frequency not monthly/quarterly/yearly
                | INVALID_TIMEZONE              | Unknown IANA timezone name
                | INVALID_SCHEDULER_SETTINGS    | Bad value in settings file or env
----------------|-------------------------------|---------------------------------------
Generation      | GENERATION_FAILED             | Downstream generation raised
                | GENERATION_TIMEOUT            | Downstream call exceeded its budget
----------------|-------------------------------|---------------------------------------
Lookup          | TENANT_NOT_FOUND              | Tenant id does not exist
                | GENERATION_CONFIG_NOT_FOUND   | Config id does not exist
                | GENERATION_LOG_NOT_FOUND      | Log entry id does not exist
----------------|-------------------------------|---------------------------------------
Retry           | GENERATION_LOG_NOT_RETRYABLE  | Retry requested for a non-failed entry
"""


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Schedule-related exceptions


class ScheduleError(BillingKernelError):
    """Base exception for schedule configuration errors."""

    code: str = "SCHEDULE_ERROR"


class InvalidFrequencyError(ScheduleError):
    """Frequency value is not one of the supported recurrences."""

    code: str = "INVALID_FREQUENCY"

    def __init__(self, frequency: object):
        self.frequency = str(frequency)
        super().__init__(
            f"Unsupported generation frequency: {frequency!r} "
            f"(expected monthly, quarterly or yearly)"
        )


class InvalidTimezoneError(ScheduleError):
    """Timezone name is not a known IANA zone."""

    code: str = "INVALID_TIMEZONE"

    def __init__(self, timezone_name: object):
        self.timezone_name = str(timezone_name)
        super().__init__(f"Unknown timezone: {timezone_name!r}")


class InvalidSchedulerSettingsError(ScheduleError):
    """A scheduler setting is missing or has an unusable value."""

    code: str = "INVALID_SCHEDULER_SETTINGS"

    def __init__(self, setting: str, reason: str):
        self.setting = setting
        self.reason = reason
        super().__init__(f"Invalid scheduler setting {setting}: {reason}")


# Generation-related exceptions


class GenerationError(BillingKernelError):
    """Invoice generation for a tenant failed downstream."""

    code: str = "GENERATION_FAILED"

    def __init__(self, tenant_id: str, message: str):
        self.tenant_id = tenant_id
        super().__init__(message)


class GenerationTimeoutError(GenerationError):
    """Invoice generation did not return within the configured budget."""

    code: str = "GENERATION_TIMEOUT"

    def __init__(self, tenant_id: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            tenant_id,
            f"Invoice generation timed out after {timeout_seconds:g}s",
        )


# Lookup exceptions


class NotFoundError(BillingKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class TenantNotFoundError(NotFoundError):
    """Tenant with given ID was not found."""

    code: str = "TENANT_NOT_FOUND"

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant not found: {tenant_id}")


class GenerationConfigNotFoundError(NotFoundError):
    """Generation configuration with given ID was not found."""

    code: str = "GENERATION_CONFIG_NOT_FOUND"

    def __init__(self, config_id: str):
        self.config_id = config_id
        super().__init__(f"Invoice generation config not found: {config_id}")


class GenerationLogNotFoundError(NotFoundError):
    """Generation log entry with given ID was not found."""

    code: str = "GENERATION_LOG_NOT_FOUND"

    def __init__(self, log_id: str):
        self.log_id = log_id
        super().__init__(f"Invoice generation log not found: {log_id}")


class GenerationLogNotRetryableError(BillingKernelError):
    """Only failed generation log entries can be retried."""

    code: str = "GENERATION_LOG_NOT_RETRYABLE"

    def __init__(self, log_id: str, status: str):
        self.log_id = log_id
        self.status = status
        super().__init__(
            f"Only failed generations can be retried: log {log_id} is {status}"
        )
