"""Permissions domain exceptions"""

from typing import Optional


class PermissionsError(Exception):
    """Base class for permission engine failures"""

    pass


class PermissionsUnavailableError(PermissionsError):
    """Raised when permissions cannot be loaded (store or transport failure)"""

    def __init__(self, company_id: str, reason: Optional[str] = None):
        self.company_id = company_id
        self.reason = reason
        message = f"Permissions unavailable for company {company_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class CompanyNotFoundError(PermissionsError):
    """Raised when no permissions can be resolved because the company does not exist"""

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"Company {company_id} not found")


class ModuleDependencyError(PermissionsError):
    """Raised when an override would disable a module another enabled module requires"""

    def __init__(self, conflicts: list[str]):
        self.conflicts = conflicts
        super().__init__(f"Cannot proceed: {', '.join(conflicts)}")


class ResourceNotFoundError(PermissionsError):
    """Raised when a plan, override or warning an admin action refers to does not exist"""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class PlanNotFoundError(ResourceNotFoundError):
    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__("Plan not found")


class OverrideNotFoundError(ResourceNotFoundError):
    def __init__(self, company_id: str, module_name: str):
        self.company_id = company_id
        self.module_name = module_name
        super().__init__(f"No override for {module_name}")


class ModuleWarningNotFoundError(ResourceNotFoundError):
    def __init__(self, warning_id: int):
        self.warning_id = warning_id
        super().__init__("Warning not found")
