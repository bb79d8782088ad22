"""
MsScan Errors

Failure types raised by the scan stages. Each fatal error names the stage that failed
and the process exit code main() returns for it.
"""


class MsScanError(RuntimeError):
    stage = "Scan"
    exit_code = 1


class PrivilegeError(MsScanError):
    stage = "Privilege check"
    exit_code = 1


class CatalogRegistrationError(MsScanError):
    stage = "Catalog registration"
    exit_code = 3


class QueryExecutionError(MsScanError):
    stage = "Update query"
    exit_code = 4


class ReportWriteError(MsScanError):
    stage = "Report write"
    exit_code = 5


class CleanupWarning(Exception):
    """Non-fatal cleanup failure. Printed by the cleanup stages, never turned into an exit code."""
