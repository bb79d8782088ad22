"""
MsScan Scanner

Registers an offline update catalog (wsusscn2.cab) with the Windows Update Agent and
searches it for updates that are not installed on the local system.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

from msscan_errors import CatalogRegistrationError, CleanupWarning, QueryExecutionError
from msscan_report import MissingUpdate, to_record


# ============================================================
# WINDOWS UPDATE AGENT CONSTANTS
# ============================================================

SESSION_PROGID = "Microsoft.Update.Session"
SERVICE_MANAGER_PROGID = "Microsoft.Update.ServiceManager"

DEFAULT_SOURCE_NAME = "Offline Sync Service"
SEARCH_CRITERIA = "IsInstalled=0"

# ServerSelection.ssOthers, required when searching a registered scan package
SERVER_SELECTION_OTHERS = 3

# UpdateServiceOption.usoNonVolatileService
ADD_SERVICE_FLAGS = 1

# OperationResultCode values that mean the search did not complete
FAILED_RESULT_CODES = {4: "Failed", 5: "Aborted"}


# ============================================================
# PATHS
# ============================================================

def default_scan_cache_dir() -> str:
    windir = os.environ.get("SYSTEMROOT", r"C:\Windows")
    return os.path.join(windir, "SoftwareDistribution", "ScanFile")


# ============================================================
# MODELS
# ============================================================

# Data class for one update as returned by the platform search
@dataclass(frozen=True)
class RawUpdateItem:
    title: str
    severity: str
    description: str
    url: str


class UpdateScanner(ABC):
    """
    Platform capability the scan depends on.

    Implementations register an offline catalog as a named scan source, run one
    "not installed" query against it and report where the platform keeps its scan cache.
    """

    @abstractmethod
    def register_offline_catalog(self, path: str, source_name: str) -> str:
        pass

    @abstractmethod
    def query_not_installed(self, source_handle: str) -> List[RawUpdateItem]:
        pass

    @abstractmethod
    def unregister_source(self, source_handle: str) -> None:
        pass

    @abstractmethod
    def scan_cache_location(self) -> str:
        pass


# ============================================================
# CATALOG CHECKS
# ============================================================

def validate_catalog_path(path: str) -> str:
# Reject a catalog the agent could never open, before asking it to

    if not path:
        raise CatalogRegistrationError("No catalog path given.")

    abs_path = os.path.abspath(path)

    if not os.path.exists(abs_path):
        raise CatalogRegistrationError(f"Catalog not found: {abs_path}")
    if not os.path.isfile(abs_path):
        raise CatalogRegistrationError(f"Catalog is not a file: {abs_path}")
    if not os.access(abs_path, os.R_OK):
        raise CatalogRegistrationError(f"Catalog is not readable: {abs_path}")

    return abs_path


# ============================================================
# WUA COM SCANNER
# ============================================================

class WuaOfflineScanner(UpdateScanner):
    """
    UpdateScanner over the Windows Update Agent COM API (pywin32).

    ``dispatch`` and ``com_error`` default to ``win32com.client.Dispatch`` and
    ``pywintypes.com_error``; they are resolved on first use so the module imports on
    hosts without pywin32.
    """

    def __init__(
        self,
        dispatch: Optional[Callable] = None,
        com_error: Optional[type] = None,
        cache_dir: Optional[str] = None,
    ) -> None:
        self._dispatch = dispatch
        self._com_error = com_error
        self._cache_dir = cache_dir or default_scan_cache_dir()
        self._session = None
        self._service_manager = None

    def _bind(self, error_type: type) -> None:
        # Resolve pywin32 on first use, reporting a broken install as the calling stage's failure

        try:
            if self._dispatch is None:
                import win32com.client

                self._dispatch = win32com.client.Dispatch
            if self._com_error is None:
                import pywintypes

                self._com_error = pywintypes.com_error
        except ImportError as exc:
            raise error_type(f"pywin32 is not available: {exc}") from exc

    def _get_service_manager(self):
        if self._service_manager is None:
            self._service_manager = self._dispatch(SERVICE_MANAGER_PROGID)
        return self._service_manager

    def _get_session(self):
        if self._session is None:
            self._session = self._dispatch(SESSION_PROGID)
        return self._session

    def register_offline_catalog(self, path: str, source_name: str) -> str:
        abs_path = validate_catalog_path(path)
        self._bind(CatalogRegistrationError)

        try:
            service = self._get_service_manager().AddScanPackageService(source_name, abs_path, ADD_SERVICE_FLAGS)
            service_id = str(service.ServiceID)
        except self._com_error as exc:
            raise CatalogRegistrationError(f"Windows Update Agent rejected {abs_path}: {exc}") from exc

        if not service_id:
            raise CatalogRegistrationError(f"Windows Update Agent returned no service ID for {abs_path}")

        return service_id

    def query_not_installed(self, source_handle: str) -> List[RawUpdateItem]:
        self._bind(QueryExecutionError)

        try:
            searcher = self._get_session().CreateUpdateSearcher()
            searcher.ServerSelection = SERVER_SELECTION_OTHERS
            searcher.ServiceID = source_handle
            result = searcher.Search(SEARCH_CRITERIA)

            result_code = int(result.ResultCode)
            if result_code in FAILED_RESULT_CODES:
                raise QueryExecutionError(
                    f"Search against service {source_handle} returned {FAILED_RESULT_CODES[result_code]} "
                    f"(ResultCode {result_code})"
                )

            updates = result.Updates
            return [read_update(updates.Item(i)) for i in range(updates.Count)]
        except self._com_error as exc:
            raise QueryExecutionError(f"Search against service {source_handle} failed: {exc}") from exc

    def unregister_source(self, source_handle: str) -> None:
        self._bind(CleanupWarning)

        try:
            self._get_service_manager().RemoveService(source_handle)
        except self._com_error as exc:
            raise CleanupWarning(f"Could not unregister scan source {source_handle}: {exc}") from exc

    def scan_cache_location(self) -> str:
        return self._cache_dir


def read_update(update) -> RawUpdateItem:
# Read the report fields from an IUpdate COM object

    urls = update.MoreInfoUrls
    url = urls.Item(0) if urls is not None and urls.Count > 0 else ""

    return RawUpdateItem(
        title=update.Title or "",
        severity=update.MsrcSeverity or "",
        description=update.Description or "",
        url=url or "",
    )


# ============================================================
# SCAN
# ============================================================

def register_catalog(scanner: UpdateScanner, catalog_path: str, source_name: str = DEFAULT_SOURCE_NAME) -> str:
# Register the catalog as the only scan source and return its handle

    print(f"[*] Registering offline catalog: {catalog_path}")
    source_handle = scanner.register_offline_catalog(catalog_path, source_name)
    print(f"[+] Registered scan source '{source_name}' (ServiceID: {source_handle})")
    return source_handle


def query_catalog(scanner: UpdateScanner, source_handle: str) -> List[MissingUpdate]:
# Query the registered source once and map every returned item to a record

    print("[*] Searching for updates that are not installed...")
    raw_items = scanner.query_not_installed(source_handle)
    print(f"[+] Search returned {len(raw_items)} update(s)")

    return [to_record(item) for item in raw_items]
